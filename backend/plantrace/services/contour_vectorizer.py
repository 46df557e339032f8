"""
Contour Vectorizer

Turns a filled pixel region into a clean polygon:
1. Trace the outer boundary (OpenCV border following)
2. Simplify with Douglas-Peucker
3. Snap near-axis edges to exact right angles
4. Remove rectangular micro-bumps left by drawing imprecision
"""

from typing import List, Optional, Sequence, Tuple
import logging
import math

import cv2
import numpy as np

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

# Exact unit directions for 0, 90, 180 and 270 degrees (image y points down)
AXIS_DIRECTIONS = {
    0: (1.0, 0.0),
    90: (0.0, 1.0),
    180: (-1.0, 0.0),
    270: (0.0, -1.0),
}

COLLINEAR_ANGLE_TOL = 0.01  # radians
MAX_SNAP_PASSES = 8


def trace_contour(filled_mask: "np.ndarray") -> List[Tuple[int, int]]:
    """
    Trace the outer boundary of the largest filled region.

    Args:
        filled_mask: Binary mask (1=region, 0=background)

    Returns:
        Boundary pixels in traversal order, or [] for an empty mask
    """
    binary = (np.asarray(filled_mask) != 0).astype(np.uint8)
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)
    if not contours:
        return []

    largest = max(contours, key=lambda c: (cv2.contourArea(c), len(c)))
    return [(int(pt[0][0]), int(pt[0][1])) for pt in largest]


def douglas_peucker(points: Sequence[Point], epsilon: float) -> List[Point]:
    """
    Ramer-Douglas-Peucker polyline simplification.

    Keeps both endpoints; the point farthest from the chord is kept (and both
    halves processed) when its distance exceeds epsilon, otherwise the span
    collapses to its endpoints. Uses an explicit stack so contours with
    thousands of points do not hit the recursion limit.

    Args:
        points: Input polyline
        epsilon: Maximum allowed perpendicular distance

    Returns:
        Simplified polyline (fewer than 3 points pass through unchanged)
    """
    n = len(points)
    if n <= 2:
        return list(points)

    pts = np.asarray(points, dtype=np.float64)
    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True

    stack = [(0, n - 1)]
    while stack:
        start, end = stack.pop()
        if end - start < 2:
            continue

        first, last = pts[start], pts[end]
        dx, dy = last - first
        line_len = math.hypot(dx, dy)
        inner = pts[start + 1:end]

        if line_len == 0:
            dists = np.hypot(inner[:, 0] - first[0], inner[:, 1] - first[1])
        else:
            dists = np.abs(
                dy * inner[:, 0] - dx * inner[:, 1] + last[0] * first[1] - last[1] * first[0]
            ) / line_len

        offset = int(np.argmax(dists))
        if dists[offset] > epsilon:
            split = start + 1 + offset
            keep[split] = True
            stack.append((start, split))
            stack.append((split, end))

    return [tuple(points[i]) for i in range(n) if keep[i]]


def _nearest_axis_angle(angle_deg: float) -> Tuple[int, float]:
    """Return (axis angle in {0, 90, 180, 270}, absolute deviation in degrees)."""
    normalized = angle_deg % 360.0
    best_axis, best_diff = 0, 360.0
    for axis in (0, 90, 180, 270, 360):
        diff = abs(normalized - axis)
        if diff < best_diff:
            best_axis, best_diff = axis % 360, diff
    return best_axis, best_diff


def _line_intersection(
    ax: float, ay: float, adx: float, ady: float,
    bx: float, by: float, bdx: float, bdy: float,
) -> Optional[Point]:
    """Intersect two lines given as (point, direction); None when parallel."""
    denom = adx * bdy - ady * bdx
    if abs(denom) < 1e-10:
        return None
    t = ((bx - ax) * bdy - (by - ay) * bdx) / denom
    return (ax + adx * t, ay + ady * t)


def _edge_lines(vertices: Sequence[Point], tolerance_deg: float) -> List[dict]:
    """Describe every polygon edge as a line, snapping near-axis directions."""
    n = len(vertices)
    edges = []
    for i in range(n):
        ax, ay = vertices[i]
        bx, by = vertices[(i + 1) % n]
        dx, dy = bx - ax, by - ay
        length = math.hypot(dx, dy)
        angle = math.atan2(dy, dx)
        axis, deviation = _nearest_axis_angle(math.degrees(angle))

        if deviation <= tolerance_deg:
            dir_x, dir_y = AXIS_DIRECTIONS[axis]
            angle = math.radians(axis)
        else:
            dir_x, dir_y = dx / (length or 1.0), dy / (length or 1.0)

        edges.append({
            "mid_x": (ax + bx) / 2.0,
            "mid_y": (ay + by) / 2.0,
            "dir_x": dir_x,
            "dir_y": dir_y,
            "angle": angle,
            "length": length,
            "start": (float(ax), float(ay)),
        })
    return edges


def _parallel(a: dict, b: dict) -> bool:
    diff = abs(a["angle"] - b["angle"]) % math.pi
    return diff <= COLLINEAR_ANGLE_TOL or abs(diff - math.pi) <= COLLINEAR_ANGLE_TOL


def _merge_line_run(run: List[dict]) -> dict:
    """
    Replace consecutive parallel edges by one line at their length-weighted
    mean offset.
    """
    head = run[0]
    if len(run) == 1:
        return head

    nx, ny = -head["dir_y"], head["dir_x"]
    total = sum(e["length"] for e in run)
    offsets = [nx * e["mid_x"] + ny * e["mid_y"] for e in run]
    if total > 0:
        offset = sum(e["length"] * o for e, o in zip(run, offsets)) / total
    else:
        offset = sum(offsets) / len(run)

    shift = offset - offsets[0]
    merged = dict(head)
    merged["mid_x"] = head["mid_x"] + nx * shift
    merged["mid_y"] = head["mid_y"] + ny * shift
    merged["length"] = total
    return merged


def _merged_lines(edges: List[dict]) -> List[dict]:
    n = len(edges)
    start = next((i for i in range(n) if not _parallel(edges[i - 1], edges[i])), None)
    if start is None:
        return []

    runs: List[List[dict]] = []
    for edge in edges[start:] + edges[:start]:
        if runs and _parallel(runs[-1][-1], edge):
            runs[-1].append(edge)
        else:
            runs.append([edge])
    return [_merge_line_run(run) for run in runs]


def _snap_once(vertices: Sequence[Point], tolerance_deg: float) -> List[Point]:
    lines = _merged_lines(_edge_lines(vertices, tolerance_deg))
    if len(lines) < 3:
        return [(float(x), float(y)) for x, y in vertices]

    # Vertex k sits between line k-1 and line k
    result: List[Point] = []
    for k in range(len(lines)):
        prev, curr = lines[k - 1], lines[k]
        pt = _line_intersection(
            prev["mid_x"], prev["mid_y"], prev["dir_x"], prev["dir_y"],
            curr["mid_x"], curr["mid_y"], curr["dir_x"], curr["dir_y"],
        )
        result.append(_clean_point(pt if pt is not None else curr["start"]))

    result = _drop_duplicates(result)
    if len(result) < 3:
        return [(float(x), float(y)) for x, y in vertices]
    return result


def _same_vertices(a: Sequence[Point], b: Sequence[Point]) -> bool:
    return len(a) == len(b) and all(
        abs(p[0] - q[0]) <= 1e-6 and abs(p[1] - q[1]) <= 1e-6 for p, q in zip(a, b)
    )


def snap_polygon_edges(vertices: Sequence[Point], tolerance_deg: float = 5.0) -> List[Point]:
    """
    Square up a closed polygon.

    Each edge within tolerance_deg of 0/90/180/270 degrees is rotated about its
    midpoint to exactly that angle; other edges (e.g. 45 degree chamfers) keep
    their direction. Runs of parallel neighbouring edges are merged into one
    line at their length-weighted mean offset, and vertices are recomputed as
    intersections of adjacent lines. The pass repeats until the vertices stop
    moving, so snapping an already snapped polygon returns it unchanged.

    Args:
        vertices: Polygon vertices (last -> first closes the ring)
        tolerance_deg: Maximum angular deviation to snap

    Returns:
        Snapped vertices (fewer than 3 pass through unchanged)
    """
    if len(vertices) < 3:
        return list(vertices)

    result = _snap_once(vertices, tolerance_deg)
    for _ in range(MAX_SNAP_PASSES):
        again = _snap_once(result, tolerance_deg)
        if _same_vertices(again, result):
            break
        result = again
    return result


def _clean_point(pt: Point) -> Point:
    # Suppress float noise so repeated snapping reproduces identical vertices
    return (round(pt[0], 9) + 0.0, round(pt[1], 9) + 0.0)


def _drop_duplicates(points: List[Point]) -> List[Point]:
    out: List[Point] = []
    for p in points:
        if not out or (abs(p[0] - out[-1][0]) > 1e-9 or abs(p[1] - out[-1][1]) > 1e-9):
            out.append(p)
    while len(out) > 1 and abs(out[0][0] - out[-1][0]) <= 1e-9 and abs(out[0][1] - out[-1][1]) <= 1e-9:
        out.pop()
    return out


def remove_polygon_micro_bumps(
    polygon: Sequence[Point],
    max_bump_depth_cm: float = 30.0,
    pixels_per_cm: float = 1.0,
) -> List[Point]:
    """
    Remove small rectangular tabs from an axis-aligned polygon.

    A tab is four consecutive vertices A, B, C, D where the legs A->B and C->D
    are parallel, run in opposite directions, and the outer edge B->C is
    perpendicular to them. When the outer edge and both legs are shorter than
    max_bump_depth_cm, B and C are removed and D is snapped back onto the main
    wall line through A. Larger protrusions (wings, real notches) survive.

    Args:
        polygon: Vertices, in cm (pixels_per_cm=1) or pixels
        max_bump_depth_cm: Size limit of a removable tab
        pixels_per_cm: Scale of the polygon coordinates

    Returns:
        Cleaned polygon (unchanged when it has fewer than 5 vertices)
    """
    if not polygon or len(polygon) < 5:
        return list(polygon) if polygon else []

    limit = max_bump_depth_cm * pixels_per_cm
    axis_tol = max(0.5, 0.5 * pixels_per_cm)
    collinear_tol = max(1.0, 1.0 * pixels_per_cm)
    pts = [(float(x), float(y)) for x, y in polygon]

    changed = True
    while changed and len(pts) >= 5:
        changed = False
        n = len(pts)
        for i in range(n):
            i_prev, i_next, i_next2 = (i - 1) % n, (i + 1) % n, (i + 2) % n
            a, b, c, d = pts[i_prev], pts[i], pts[i_next], pts[i_next2]

            outer_len = math.hypot(c[0] - b[0], c[1] - b[1])
            if outer_len >= limit or outer_len < 0.1:
                continue
            if math.hypot(b[0] - a[0], b[1] - a[1]) >= limit:
                continue
            if math.hypot(d[0] - c[0], d[1] - c[1]) >= limit:
                continue

            leg1_h = abs(a[1] - b[1]) < axis_tol
            leg1_v = abs(a[0] - b[0]) < axis_tol
            leg2_h = abs(c[1] - d[1]) < axis_tol
            leg2_v = abs(c[0] - d[0]) < axis_tol

            if leg1_h and leg2_h:
                if abs(b[0] - c[0]) >= axis_tol:
                    continue
                if (b[0] - a[0]) * (d[0] - c[0]) >= 0:
                    continue
                pts[i_next2] = (a[0], d[1])
            elif leg1_v and leg2_v:
                if abs(b[1] - c[1]) >= axis_tol:
                    continue
                if (b[1] - a[1]) * (d[1] - c[1]) >= 0:
                    continue
                pts[i_next2] = (d[0], a[1])
            else:
                continue

            for idx in sorted((i, i_next), reverse=True):
                del pts[idx]
            logger.debug(f"Removed micro-bump at ({b[0]:.1f}, {b[1]:.1f}), outer edge {outer_len:.1f}")
            changed = True
            break

    return _merge_collinear(pts, collinear_tol)


def _merge_collinear(pts: List[Point], tol: float) -> List[Point]:
    """Drop vertices lying on a straight horizontal or vertical run."""
    changed = True
    while changed:
        changed = False
        for i in range(len(pts)):
            if len(pts) <= 3:
                break
            a, b, c = pts[i - 1], pts[i], pts[(i + 1) % len(pts)]
            if abs(a[1] - b[1]) < tol and abs(b[1] - c[1]) < tol:
                del pts[i]
                changed = True
                break
            if abs(a[0] - b[0]) < tol and abs(b[0] - c[0]) < tol:
                del pts[i]
                changed = True
                break
    return pts


def polygon_area(polygon: Sequence[Point]) -> float:
    """Shoelace area (absolute value)."""
    n = len(polygon)
    if n < 3:
        return 0.0
    area = 0.0
    for i in range(n):
        x1, y1 = polygon[i]
        x2, y2 = polygon[(i + 1) % n]
        area += x1 * y2 - x2 * y1
    return abs(area) / 2.0


def polygon_centroid(polygon: Sequence[Point]) -> Point:
    """Vertex average, used to orient edge normals."""
    n = len(polygon)
    return (
        sum(p[0] for p in polygon) / n,
        sum(p[1] for p in polygon) / n,
    )


def polygon_bbox(polygon: Sequence[Point]) -> Tuple[float, float, float, float]:
    """Return (min_x, min_y, max_x, max_y)."""
    xs = [p[0] for p in polygon]
    ys = [p[1] for p in polygon]
    return (min(xs), min(ys), max(xs), max(ys))
