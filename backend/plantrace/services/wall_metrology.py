"""
Wall Metrology

Measures wall thickness by probing perpendicular to polygon edges, and
locates door/window openings as the pixels a morphological close had to seal.

Thickness probing works on the original RGBA pixels rather than a binary
mask: a wall is drawn as a band of dark edge lines and (optionally) a fill
body, so the probe walks until it leaves that band.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import math

import cv2
import numpy as np

from ..core.rules import DEFAULT_RULES, FloorPlanRules, round_half_up
from .contour_vectorizer import Point, polygon_centroid
from .mask_builder import PixelClass, classify_wall_pixels
from .raster import RasterImage

logger = logging.getLogger(__name__)


class WallOrientation(str, Enum):
    """Orientation of the wall a feature belongs to."""
    HORIZONTAL = "H"
    VERTICAL = "V"


@dataclass
class EdgeThickness:
    """Thickness measured along one polygon edge."""
    edge_index: int
    thickness_px: float
    thickness_cm: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "edge_index": self.edge_index,
            "thickness_px": self.thickness_px,
            "thickness_cm": self.thickness_cm,
        }


@dataclass
class WallThicknessResult:
    """
    Per-edge thicknesses and their median.

    Edge indices refer to the polygon that was measured; a polygon that is
    modified afterwards must be measured again.
    """
    edges: List[EdgeThickness] = field(default_factory=list)
    median_px: float = 0.0
    median_cm: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.edges

    def thickness_for_edge(self, edge_index: int) -> Optional[float]:
        for edge in self.edges:
            if edge.edge_index == edge_index:
                return edge.thickness_px
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "edges": [e.to_dict() for e in self.edges],
            "median_px": self.median_px,
            "median_cm": self.median_cm,
        }


@dataclass
class DoorGap:
    """
    An opening in a wall.

    orientation is the orientation of the wall containing the gap;
    segment_count > 1 means several dashed gap pieces were merged.
    """
    midpoint_px: Tuple[int, int]
    orientation: WallOrientation
    span_px: int
    pixel_count: int
    segment_count: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "midpoint_px": {"x": self.midpoint_px[0], "y": self.midpoint_px[1]},
            "orientation": self.orientation.value,
            "span_px": self.span_px,
            "pixel_count": self.pixel_count,
            "segment_count": self.segment_count,
        }


def _median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


# =============================================================================
# THICKNESS PROBING
# =============================================================================

def probe_wall_thickness(
    classes: "np.ndarray",
    x: float,
    y: float,
    dx: float,
    dy: float,
    max_probe: int,
    max_background_gap: int = DEFAULT_RULES.max_band_background_px,
) -> float:
    """
    Walk from (x, y) along (dx, dy) and measure the wall band crossed.

    The band is the run of EDGE and FILL pixels, tolerating up to
    max_background_gap background pixels inside it (anti-aliasing next to
    edge lines). ANNOTATION pixels are stepped over without extending the
    band. The walk stops at the image border.

    Args:
        classes: PixelClass array from classify_wall_pixels
        x: Probe start column (float)
        y: Probe start row (float)
        dx: Unit direction, x component
        dy: Unit direction, y component
        max_probe: Maximum walk distance in pixels

    Returns:
        Centre-to-centre distance of the first and last edge-line runs when
        at least two exist, otherwise the band width; 0 when no band is found.
    """
    h, w = classes.shape[:2]
    wall_start = wall_end = -1
    edge_runs: List[Tuple[int, int]] = []
    edge_run_start = -1
    background_gap = 0

    for d in range(1, max_probe + 1):
        px = round_half_up(x + dx * d)
        py = round_half_up(y + dy * d)
        if px < 0 or px >= w or py < 0 or py >= h:
            break

        cls = classes[py, px]
        if cls == PixelClass.ANNOTATION:
            continue

        if cls == PixelClass.EDGE or cls == PixelClass.FILL:
            if wall_start < 0:
                wall_start = d
            wall_end = d
            background_gap = 0
            if cls == PixelClass.EDGE:
                if edge_run_start < 0:
                    edge_run_start = d
            elif edge_run_start >= 0:
                edge_runs.append((edge_run_start, d - 1))
                edge_run_start = -1
        else:
            if edge_run_start >= 0:
                edge_runs.append((edge_run_start, d - 1))
                edge_run_start = -1
            if wall_start >= 0:
                background_gap += 1
                if background_gap > max_background_gap:
                    break

    if edge_run_start >= 0:
        edge_runs.append((edge_run_start, wall_end))

    if wall_start < 0:
        return 0

    if len(edge_runs) >= 2:
        first, last = edge_runs[0], edge_runs[-1]
        return (last[0] + last[1]) / 2 - (first[0] + first[1]) / 2

    return wall_end - wall_start + 1


def detect_wall_thickness(
    image: RasterImage,
    polygon: Sequence[Point],
    pixels_per_cm: float = 1.0,
    max_probe: int = DEFAULT_RULES.max_probe_px,
    probe_inward: bool = False,
    min_thickness_cm: Optional[float] = None,
    max_thickness_cm: Optional[float] = None,
    rules: FloorPlanRules = DEFAULT_RULES,
    classes: Optional["np.ndarray"] = None,
) -> WallThicknessResult:
    """
    Measure wall thickness along every polygon edge.

    Probes point away from the polygon centroid (room polygons, where the
    walls lie outside) or towards it with probe_inward=True (envelope
    polygons, where the walls lie inside the traced boundary).

    Args:
        image: Source RGBA image
        polygon: Polygon in pixel coordinates
        pixels_per_cm: Image scale
        max_probe: Hard cap on the probe walk in pixels
        probe_inward: Probe towards the centroid
        min_thickness_cm: Lower bound (defaults to rules)
        max_thickness_cm: Upper bound (defaults to rules)
        rules: Tuning constants
        classes: Precomputed classify_wall_pixels output

    Returns:
        WallThicknessResult; empty when fewer than 3 vertices or no edge
        yields at least 2 valid samples
    """
    n = len(polygon)
    if n < 3:
        return WallThicknessResult()

    min_cm = rules.wall_min_thickness_cm if min_thickness_cm is None else min_thickness_cm
    max_cm = rules.wall_max_thickness_cm if max_thickness_cm is None else max_thickness_cm

    if classes is None:
        classes = classify_wall_pixels(image)

    cx, cy = polygon_centroid(polygon)
    probe_depth = min(max_probe, round_half_up((max_cm + rules.probe_margin_cm) * pixels_per_cm))
    min_wall_px = max(2, round_half_up(min_cm * pixels_per_cm))
    max_wall_px = round_half_up(max_cm * pixels_per_cm)
    samples = rules.probe_samples_per_edge

    edges: List[EdgeThickness] = []
    for i in range(n):
        ax, ay = polygon[i]
        bx, by = polygon[(i + 1) % n]
        edge_dx, edge_dy = bx - ax, by - ay
        edge_len = math.hypot(edge_dx, edge_dy)
        if edge_len < 2:
            continue

        tx, ty = edge_dx / edge_len, edge_dy / edge_len
        perp_x, perp_y = -ty, tx

        mid_x, mid_y = (ax + bx) / 2, (ay + by) / 2
        dot = perp_x * (cx - mid_x) + perp_y * (cy - mid_y)
        if (dot < 0) if probe_inward else (dot > 0):
            perp_x, perp_y = -perp_x, -perp_y

        raw = []
        for si in range(1, samples + 1):
            frac = si / (samples + 1)
            thickness = probe_wall_thickness(
                classes,
                ax + tx * edge_len * frac,
                ay + ty * edge_len * frac,
                perp_x, perp_y,
                probe_depth,
                rules.max_band_background_px,
            )
            if thickness >= 2:
                raw.append(thickness)

        if len(raw) < 2:
            continue

        filtered = [v for v in raw if min_wall_px <= v <= max_wall_px]
        if len(filtered) < 2:
            continue

        thickness_px = _median(filtered)
        edges.append(EdgeThickness(
            edge_index=i,
            thickness_px=thickness_px,
            thickness_cm=thickness_px / pixels_per_cm,
        ))

    if not edges:
        logger.debug(f"No wall thickness measured on {n} edges")
        return WallThicknessResult()

    median_px = _median([e.thickness_px for e in edges])
    logger.debug(
        f"Wall thickness: {len(edges)}/{n} edges measured, "
        f"median {median_px:.1f} px ({median_px / pixels_per_cm:.1f} cm)"
    )
    return WallThicknessResult(
        edges=edges,
        median_px=median_px,
        median_cm=median_px / pixels_per_cm,
    )




# =============================================================================
# DOOR GAPS
# =============================================================================

@dataclass
class _RawGap:
    x0: int
    y0: int
    x1: int  # inclusive
    y1: int  # inclusive
    pixel_count: int
    centroid_x: float
    centroid_y: float
    orientation: WallOrientation

    def axis_range(self, orientation: WallOrientation) -> Tuple[int, int]:
        """Extent along the wall."""
        if orientation == WallOrientation.HORIZONTAL:
            return self.x0, self.x1
        return self.y0, self.y1

    def cross_range(self, orientation: WallOrientation) -> Tuple[int, int]:
        """Extent across the wall."""
        if orientation == WallOrientation.HORIZONTAL:
            return self.y0, self.y1
        return self.x0, self.x1


def _run_length(line: "np.ndarray", index: int) -> int:
    """Length of the run of non-zero values through line[index]."""
    if not line[index]:
        return 0
    zeros = np.flatnonzero(line == 0)
    before = zeros[zeros < index]
    after = zeros[zeros > index]
    start = int(before[-1]) + 1 if before.size else 0
    end = int(after[0]) - 1 if after.size else line.size - 1
    return end - start + 1


def _host_wall_orientation(
    closed: "np.ndarray",
    labels: "np.ndarray",
    label: int,
    x: int,
    y: int,
    bw: int,
    bh: int,
    centroid: Tuple[float, float],
) -> WallOrientation:
    """
    Orientation of the sealed wall a gap sits in.

    The closed wall runs far along its own direction through the gap and only
    its thickness across it. Equal runs fall back to the gap's bounding box
    aspect.
    """
    cx = min(max(round_half_up(centroid[0]), x), x + bw - 1)
    cy = min(max(round_half_up(centroid[1]), y), y + bh - 1)
    if labels[cy, cx] != label:
        ys, xs = np.nonzero(labels[y:y + bh, x:x + bw] == label)
        nearest = int(np.argmin((xs + x - centroid[0]) ** 2 + (ys + y - centroid[1]) ** 2))
        cx, cy = int(xs[nearest] + x), int(ys[nearest] + y)

    along_x = _run_length(closed[cy, :], cx)
    along_y = _run_length(closed[:, cx], cy)
    if along_x == along_y:
        return WallOrientation.HORIZONTAL if bw >= bh else WallOrientation.VERTICAL
    return WallOrientation.HORIZONTAL if along_x > along_y else WallOrientation.VERTICAL


def _gap_from_members(members: List[_RawGap], orientation: WallOrientation) -> DoorGap:
    x0 = min(m.x0 for m in members)
    y0 = min(m.y0 for m in members)
    x1 = max(m.x1 for m in members)
    y1 = max(m.y1 for m in members)
    span = (x1 - x0 + 1) if orientation == WallOrientation.HORIZONTAL else (y1 - y0 + 1)
    pixel_count = sum(m.pixel_count for m in members)
    # Pixel centroid of the whole opening
    mid_x = sum(m.centroid_x * m.pixel_count for m in members) / pixel_count
    mid_y = sum(m.centroid_y * m.pixel_count for m in members) / pixel_count
    return DoorGap(
        midpoint_px=(round_half_up(mid_x), round_half_up(mid_y)),
        orientation=orientation,
        span_px=span,
        pixel_count=pixel_count,
        segment_count=len(members),
    )


def _chain_dashed_gaps(gaps: List[_RawGap], max_dash_px: int) -> List[List[_RawGap]]:
    """
    Group gaps in walls of the same orientation that sit on one wall line and
    are separated by short wall dashes.
    """
    parent = list(range(len(gaps)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i in range(len(gaps)):
        for j in range(i + 1, len(gaps)):
            a, b = gaps[i], gaps[j]
            orientation = a.orientation
            if b.orientation != orientation:
                continue
            a_cross, b_cross = a.cross_range(orientation), b.cross_range(orientation)
            if a_cross[1] < b_cross[0] or b_cross[1] < a_cross[0]:
                continue
            a_axis, b_axis = a.axis_range(orientation), b.axis_range(orientation)
            separation = max(a_axis[0], b_axis[0]) - min(a_axis[1], b_axis[1]) - 1
            if separation <= max_dash_px:
                parent[find(j)] = find(i)

    chains: Dict[int, List[_RawGap]] = {}
    for i, gap in enumerate(gaps):
        chains.setdefault(find(i), []).append(gap)
    return list(chains.values())


def detect_door_gaps(
    original_mask: "np.ndarray",
    closed_mask: "np.ndarray",
    room_mask: Optional["np.ndarray"] = None,
    pixels_per_cm: float = 1.0,
    rules: FloorPlanRules = DEFAULT_RULES,
) -> List[DoorGap]:
    """
    Find the openings the morphological close sealed.

    Gap pixels were open in original_mask and are wall in closed_mask.
    They are grouped 8-connected; with room_mask given, only groups touching
    the room are kept. Each group takes the orientation of the closed wall it
    sits in, so dash pieces shorter than the wall is thick still belong to
    that wall. Gaps on one wall line separated by short dashes
    (<= max_dash_px) are chained and reported as a single opening when the
    chain spans at least min_gap_px; shorter chains are reported piecewise.
    Openings wider than max_gap_px are missing wall, not doors, and are
    dropped.

    Args:
        original_mask: Wall mask before closing (1=wall)
        closed_mask: Wall mask after closing (1=wall)
        room_mask: Filled room (1=room), optional
        pixels_per_cm: Image scale
        rules: Tuning constants

    Returns:
        List of DoorGap, ordered top-to-bottom, left-to-right
    """
    closed = (np.asarray(closed_mask) != 0).astype(np.uint8)
    gap_mask = ((np.asarray(original_mask) == 0) & (closed != 0)).astype(np.uint8)
    if not gap_mask.any():
        return []

    num_labels, labels, stats, centroids = cv2.connectedComponentsWithStats(gap_mask, connectivity=8)

    keep = np.ones(num_labels, dtype=bool)
    keep[0] = False
    if room_mask is not None:
        near_room = cv2.dilate(
            (np.asarray(room_mask) != 0).astype(np.uint8),
            np.ones((3, 3), dtype=np.uint8),
        )
        touching = np.zeros(num_labels, dtype=bool)
        touching[np.unique(labels[(near_room != 0) & (gap_mask != 0)])] = True
        keep &= touching

    raw: List[_RawGap] = []
    for label in np.flatnonzero(keep):
        x, y, bw, bh, area = (int(v) for v in stats[label])
        centroid = (float(centroids[label][0]), float(centroids[label][1]))
        raw.append(_RawGap(
            x0=x, y0=y,
            x1=x + bw - 1, y1=y + bh - 1,
            pixel_count=area,
            centroid_x=centroid[0],
            centroid_y=centroid[1],
            orientation=_host_wall_orientation(closed, labels, label, x, y, bw, bh, centroid),
        ))

    if not raw:
        return []

    max_dash_px = rules.max_dash_px(pixels_per_cm)
    min_gap_px = rules.min_gap_px(pixels_per_cm)
    max_gap_px = rules.max_gap_px(pixels_per_cm)

    gaps: List[DoorGap] = []
    for chain in _chain_dashed_gaps(raw, max_dash_px):
        orientation = chain[0].orientation
        merged = _gap_from_members(chain, orientation)
        if len(chain) > 1 and merged.span_px >= min_gap_px:
            gaps.append(merged)
        else:
            gaps.extend(_gap_from_members([g], g.orientation) for g in chain)

    too_wide = [g for g in gaps if g.span_px > max_gap_px]
    if too_wide:
        logger.debug(f"Dropped {len(too_wide)} openings wider than {max_gap_px} px")
        gaps = [g for g in gaps if g.span_px <= max_gap_px]

    gaps.sort(key=lambda g: (g.midpoint_px[1], g.midpoint_px[0]))
    logger.debug(f"Door gaps: {len(raw)} raw groups -> {len(gaps)} openings")
    return gaps
