"""
Building Envelope and Spanning Wall Detection

Envelope pipeline:
1. Wall mask (auto gray range, else dark-threshold sweep), denoised
2. Large morphological close seals every door and window
3. Flood fill from the border marks the exterior; the rest is the building
4. Contour -> Douglas-Peucker -> right-angle snapping -> micro-bump removal
5. Wall thickness probed inward from the envelope edges

Spanning walls are found by row/column density profiling inside the
building silhouette returned by the envelope pass.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import logging
import math

import numpy as np

from ..core.rules import (
    BoundingBox,
    DetectionOptions,
    FloorPlanRules,
    RefinedDetection,
    round_half_up,
)
from .contour_vectorizer import (
    Point,
    douglas_peucker,
    polygon_bbox,
    remove_polygon_micro_bumps,
    snap_polygon_edges,
    trace_contour,
)
from .mask_builder import (
    auto_detect_wall_range,
    build_gray_wall_mask,
    classify_wall_pixels,
    image_to_binary_mask,
)
from .morphology import filter_small_components, morphological_close, morphological_open
from .raster import RasterImage
from .region_extraction import fill_interior_holes, flood_fill_from_border
from .wall_metrology import (
    WallOrientation,
    WallThicknessResult,
    detect_wall_thickness,
    probe_wall_thickness,
)

logger = logging.getLogger(__name__)


@dataclass
class EnvelopeResult:
    """Outer building boundary plus the masks it was derived from."""
    polygon_px: List[Point]
    wall_thicknesses: WallThicknessResult
    wall_mask: "np.ndarray"
    building_mask: "np.ndarray"
    bbox_px: BoundingBox

    def to_dict(self) -> Dict[str, Any]:
        return {
            "polygon_px": [{"x": x, "y": y} for x, y in self.polygon_px],
            "wall_thicknesses": self.wall_thicknesses.to_dict(),
            "bbox_px": self.bbox_px.to_dict(),
            "building_pixels": int(np.count_nonzero(self.building_mask)),
        }


@dataclass(frozen=True)
class SpanningWall:
    """A structural wall crossing the whole building."""
    orientation: WallOrientation
    start_px: Tuple[float, float]
    end_px: Tuple[float, float]
    thickness_px: float
    thickness_cm: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orientation": self.orientation.value,
            "start_px": {"x": self.start_px[0], "y": self.start_px[1]},
            "end_px": {"x": self.end_px[0], "y": self.end_px[1]},
            "thickness_px": self.thickness_px,
            "thickness_cm": self.thickness_cm,
        }


@dataclass
class SpanningWallRejection:
    """Why a candidate band was not accepted as a spanning wall."""
    orientation: WallOrientation
    band_start: int
    band_end: int
    reason: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orientation": self.orientation.value,
            "band": {"start": self.band_start, "end": self.band_end},
            "reason": self.reason,
            "details": self.details,
        }


# =============================================================================
# ENVELOPE
# =============================================================================

def build_envelope_wall_mask(
    image: RasterImage,
    pixels_per_cm: float,
    rules: FloorPlanRules,
) -> Optional["np.ndarray"]:
    """
    Wall mask for envelope detection.

    Gray-band mask around the detected wall fill when the plan has one,
    otherwise the first dark threshold whose wall share looks plausible.
    """
    total = image.width * image.height
    min_area = rules.min_component_area(pixels_per_cm)
    open_radius = rules.open_radius_px(pixels_per_cm)

    wall_range = auto_detect_wall_range(image, rules)
    if wall_range is not None:
        raw = build_gray_wall_mask(image, wall_range.low, wall_range.high, rules)
        filtered = filter_small_components(raw, min_area)
        opened = morphological_open(filtered, open_radius) if open_radius > 0 else filtered
        opened_count = int(np.count_nonzero(opened))
        logger.info(
            f"Envelope wall mask: range {wall_range.low}-{wall_range.high}, "
            f"raw={int(np.count_nonzero(raw))}, filtered={int(np.count_nonzero(filtered))}, "
            f"opened={opened_count} ({opened_count / total * 100:.2f}%)"
        )
        return opened

    for threshold in rules.fallback_thresholds:
        candidate = image_to_binary_mask(image, threshold)
        count = int(np.count_nonzero(candidate))
        if total * rules.fallback_min_wall_fraction < count < total * rules.fallback_max_wall_fraction:
            logger.info(f"Envelope wall mask: dark threshold {threshold}, {count} px")
            return filter_small_components(candidate, min_area)
        logger.debug(f"Dark threshold {threshold} rejected: {count}/{total} px")

    return None


def detect_envelope(image: RasterImage, options: DetectionOptions) -> Optional[EnvelopeResult]:
    """
    Detect the outer boundary of the building.

    Args:
        image: Floor plan raster
        options: Scale and thickness bounds; RefinedDetection(bbox) restricts
            the search to a previously found envelope box and applies a
            stricter noise filter

    Returns:
        EnvelopeResult, or None when no plausible building is found
    """
    rules = options.rules
    ppc = options.pixels_per_cm
    h, w = image.height, image.width
    total = w * h

    wall_mask = build_envelope_wall_mask(image, ppc, rules)
    if wall_mask is None:
        logger.info("Envelope detection: no usable wall mask")
        return None

    close_radius = rules.envelope_close_radius_px(ppc)

    if isinstance(options.mode, RefinedDetection):
        margin = round_half_up(options.max_thickness_cm * ppc) + close_radius
        box = options.mode.bbox.padded(margin, w, h)
        restricted = np.zeros_like(wall_mask)
        restricted[box.y:box.y2, box.x:box.x2] = wall_mask[box.y:box.y2, box.x:box.x2]
        strict_radius = rules.strict_open_radius_px(ppc)
        wall_mask = morphological_open(restricted, strict_radius)
        logger.info(
            f"Refined envelope pass: box {box.to_dict()}, strict open r={strict_radius}, "
            f"{int(np.count_nonzero(wall_mask))} wall px"
        )

    closed = morphological_close(wall_mask, close_radius)
    exterior = flood_fill_from_border(closed)
    building_mask = (exterior == 0).astype(np.uint8)
    fill_interior_holes(building_mask)

    building_area = int(np.count_nonzero(building_mask))
    logger.info(
        f"Envelope: close r={close_radius}, building {building_area} px "
        f"({building_area / total * 100:.2f}%)"
    )
    if building_area < total * rules.min_building_fraction or building_area > total * rules.max_building_fraction:
        return None

    contour = trace_contour(building_mask)
    if len(contour) < 3:
        return None

    raw_polygon = douglas_peucker(contour, rules.simplify_epsilon_px(ppc))
    if len(raw_polygon) < 3:
        return None

    polygon = snap_polygon_edges(raw_polygon, rules.snap_tolerance_deg)
    logger.info(f"Envelope contour: {len(contour)} pts -> {len(raw_polygon)} -> {len(polygon)} vertices")
    if len(polygon) < 3:
        return None

    classes = classify_wall_pixels(image)

    def measure(poly):
        return detect_wall_thickness(
            image, poly, ppc,
            probe_inward=True,
            min_thickness_cm=options.min_thickness_cm,
            max_thickness_cm=options.max_thickness_cm,
            rules=rules,
            classes=classes,
        )

    thicknesses = measure(polygon)

    bump_limit_cm = thicknesses.median_cm or rules.default_bump_depth_cm
    cleaned = remove_polygon_micro_bumps(polygon, bump_limit_cm, ppc)
    if len(cleaned) >= 3 and cleaned != polygon:
        logger.info(f"Envelope micro-bumps removed: {len(polygon)} -> {len(cleaned)} vertices")
        polygon = cleaned
        thicknesses = measure(polygon)

    min_x, min_y, max_x, max_y = polygon_bbox(polygon)
    x0, y0 = int(math.floor(min_x)), int(math.floor(min_y))
    bbox = BoundingBox(
        x=x0, y=y0,
        width=int(math.ceil(max_x)) - x0,
        height=int(math.ceil(max_y)) - y0,
    )

    return EnvelopeResult(
        polygon_px=polygon,
        wall_thicknesses=thicknesses,
        wall_mask=wall_mask,
        building_mask=building_mask,
        bbox_px=bbox,
    )


# =============================================================================
# SPANNING WALLS
# =============================================================================

@dataclass
class _Band:
    start: int
    end: int
    avg_first: int = 0
    avg_last: int = 0
    avg_width: float = 0.0

    @property
    def height(self) -> int:
        return self.end - self.start + 1


def _first_last(mask: "np.ndarray") -> Tuple["np.ndarray", "np.ndarray", "np.ndarray"]:
    """Per-row (any, first index, last index) of a boolean 2D array."""
    any_set = mask.any(axis=1)
    first = np.argmax(mask, axis=1)
    last = mask.shape[1] - 1 - np.argmax(mask[:, ::-1], axis=1)
    return any_set, first, last


def _find_bands(wall: "np.ndarray", building: "np.ndarray", ppc: float, rules: FloorPlanRules) -> List[_Band]:
    """
    Profile every scan line and group those mostly covered by wall.

    wall and building are (scan, cross) boolean arrays: rows for horizontal
    walls, the transposed masks for vertical ones.
    """
    scan_count, cross_count = building.shape
    has_bldg, bldg_first, bldg_last = _first_last(building)
    bldg_width = np.where(has_bldg, bldg_last - bldg_first + 1, 0)
    wide = bldg_width >= rules.min_building_width_px
    bldg_width = np.where(wide, bldg_width, 0)

    cols = np.arange(cross_count)
    inside = (cols[None, :] >= bldg_first[:, None]) & (cols[None, :] <= bldg_last[:, None])
    wall_inside = wall & inside & wide[:, None]

    wall_count = wall_inside.sum(axis=1)
    has_wall, wall_first, wall_last = _first_last(wall_inside)
    wall_span = np.where(has_wall, wall_last - wall_first + 1, 0)

    safe_width = np.maximum(bldg_width, 1)
    density = np.where(wide, wall_count / safe_width, 0.0)
    span_fraction = np.where(wide, wall_span / safe_width, 0.0)
    qualifies = (density >= rules.span_density_threshold) & (span_fraction >= rules.span_fraction_threshold)

    bands: List[_Band] = []
    band_start = -1
    for s in range(scan_count):
        if qualifies[s]:
            if band_start < 0:
                band_start = s
        elif band_start >= 0:
            bands.append(_Band(band_start, s - 1))
            band_start = -1
    if band_start >= 0:
        bands.append(_Band(band_start, scan_count - 1))

    gap_merge = max(1, math.ceil(rules.band_merge_cm * ppc))
    merged: List[_Band] = []
    for band in bands:
        if merged and band.start - merged[-1].end <= gap_merge + 1:
            merged[-1].end = band.end
        else:
            merged.append(band)

    for band in merged:
        rows = slice(band.start, band.end + 1)
        counted = bldg_width[rows] > 0
        if counted.any():
            band.avg_first = round_half_up(float(bldg_first[rows][counted].mean()))
            band.avg_last = round_half_up(float(bldg_last[rows][counted].mean()))
            band.avg_width = float(bldg_width[rows][counted].mean())

    return merged


def _sample_positions(band: _Band, count: int) -> List[int]:
    return [
        round_half_up(band.avg_first + (i + 0.5) / count * (band.avg_last - band.avg_first))
        for i in range(count)
    ]


def _distance_to_boundary(band: _Band, building: "np.ndarray", samples: int) -> float:
    """Median distance from the band to the building edge along the scan axis."""
    distances = []
    for cross in _sample_positions(band, samples):
        if cross < 0 or cross >= building.shape[1]:
            continue
        column = np.flatnonzero(building[:, cross])
        if column.size:
            distances.append(min(band.start - int(column[0]), int(column[-1]) - band.end))
    if not distances:
        return math.inf
    distances.sort()
    return distances[len(distances) // 2]


def _continuity(band: _Band, wall: "np.ndarray") -> Tuple[int, int, int]:
    """(largest wall-free run, first wall position, last wall position) across the band."""
    cross_start, cross_end = band.avg_first, band.avg_last
    has_wall = wall[band.start:band.end + 1, cross_start:cross_end + 1].any(axis=0)

    max_gap = current = 0
    wall_first = wall_last = -1
    for offset, present in enumerate(has_wall):
        if present:
            c = cross_start + offset
            if wall_first < 0:
                wall_first = c
            wall_last = c
            max_gap = max(max_gap, current)
            current = 0
        else:
            current += 1
    return max(max_gap, current), wall_first, wall_last


def _wall_run_through(wall: "np.ndarray", cross: int, scan: int) -> int:
    """Length of the wall run along the scan axis through (scan, cross)."""
    column = wall[:, cross]
    if not column[scan]:
        return 0
    top = scan
    while top > 0 and column[top - 1]:
        top -= 1
    bottom = scan
    while bottom < column.size - 1 and column[bottom + 1]:
        bottom += 1
    return bottom - top + 1


def detect_spanning_walls(
    image: RasterImage,
    wall_mask: "np.ndarray",
    building_mask: "np.ndarray",
    options: DetectionOptions,
    rejections: Optional[List[SpanningWallRejection]] = None,
) -> List[SpanningWall]:
    """
    Find structural walls that cross the building from one outer wall to
    the opposite one.

    A band of consecutive rows (or columns) qualifies when wall pixels cover
    most of the local building width. Each band must then pass, in order:
    thickness, building_width, boundary_proximity, continuity, edge_touch,
    span_length and thickness_consistency checks.

    Args:
        image: Floor plan raster (used for thickness probing)
        wall_mask: Cleaned wall mask from detect_envelope
        building_mask: Building silhouette from detect_envelope
        options: Scale and thickness bounds
        rejections: When given, receives one SpanningWallRejection per
            rejected candidate band

    Returns:
        Accepted spanning walls, horizontal first
    """
    rules = options.rules
    ppc = options.pixels_per_cm
    wall = np.asarray(wall_mask) != 0
    building = np.asarray(building_mask) != 0
    if not building.any():
        return []

    classes = classify_wall_pixels(image)
    results: List[SpanningWall] = []

    for orientation, scan_wall, scan_bldg in (
        (WallOrientation.HORIZONTAL, wall, building),
        (WallOrientation.VERTICAL, wall.T, building.T),
    ):
        bands = _find_bands(scan_wall, scan_bldg, ppc, rules)
        for band in bands:
            accepted = _validate_band(
                band, orientation, scan_wall, scan_bldg, classes, options, rejections
            )
            if accepted is not None:
                results.append(accepted)

    logger.info(f"Spanning walls: {len(results)} accepted")
    return results


def _validate_band(
    band: _Band,
    orientation: WallOrientation,
    wall: "np.ndarray",
    building: "np.ndarray",
    classes: "np.ndarray",
    options: DetectionOptions,
    rejections: Optional[List[SpanningWallRejection]],
) -> Optional[SpanningWall]:
    rules = options.rules
    ppc = options.pixels_per_cm
    band_height = band.height
    band_cm = band_height / ppc

    def reject(reason: str, **details) -> None:
        logger.debug(f"{orientation.value} band {band.start}-{band.end} rejected: {reason} {details}")
        if rejections is not None:
            rejections.append(SpanningWallRejection(
                orientation=orientation,
                band_start=band.start,
                band_end=band.end,
                reason=reason,
                details=details,
            ))
        return None

    if band_cm < options.min_thickness_cm or band_cm > options.max_thickness_cm:
        return reject(
            "thickness",
            band_cm=band_cm,
            min_thickness_cm=options.min_thickness_cm,
            max_thickness_cm=options.max_thickness_cm,
        )

    if band.avg_width < rules.min_building_width_cm * ppc:
        return reject(
            "building_width",
            avg_building_width_cm=band.avg_width / ppc,
            min_cm=rules.min_building_width_cm,
        )

    distance = _distance_to_boundary(band, building, rules.span_probe_samples)
    if distance < band_height:
        return reject("boundary_proximity", distance_to_boundary=distance, band_height=band_height)

    max_allowed_gap = max(band_height * 2, round_half_up(band.avg_width * rules.continuity_gap_fraction))
    max_gap, wall_first, wall_last = _continuity(band, wall)
    if max_gap > max_allowed_gap:
        return reject(
            "continuity",
            max_gap=max_gap,
            max_allowed_gap=max_allowed_gap,
            max_gap_cm=max_gap / ppc,
        )

    margin = band_height * 2
    touches_start = wall_first <= band.avg_first + margin
    touches_end = wall_last >= band.avg_last - margin
    if not touches_start or not touches_end:
        return reject(
            "edge_touch",
            touches_start=touches_start,
            touches_end=touches_end,
            wall_first=wall_first,
            wall_last=wall_last,
            margin=margin,
        )

    span_length = wall_last - wall_first
    if span_length < rules.min_span_length_cm * ppc:
        return reject(
            "span_length",
            span_length_cm=span_length / ppc,
            min_span_cm=rules.min_span_length_cm,
        )

    thickness_px, valid, considered = _measure_band_thickness(
        band, orientation, wall, classes, options
    )
    required = max(1, math.ceil(considered * rules.span_probe_consistency))
    if valid < required:
        return reject(
            "thickness_consistency",
            valid_count=valid,
            required=required,
            considered=considered,
            samples=rules.span_probe_samples,
        )

    mid = (band.start + band.end) / 2
    if orientation == WallOrientation.HORIZONTAL:
        start, end = (float(band.avg_first), mid), (float(band.avg_last), mid)
    else:
        start, end = (mid, float(band.avg_first)), (mid, float(band.avg_last))

    logger.info(
        f"Spanning wall {orientation.value} at {mid:.1f}: "
        f"{band.avg_first}-{band.avg_last}, {thickness_px / ppc:.1f} cm"
    )
    return SpanningWall(
        orientation=orientation,
        start_px=start,
        end_px=end,
        thickness_px=thickness_px,
        thickness_cm=thickness_px / ppc,
    )


def _measure_band_thickness(
    band: _Band,
    orientation: WallOrientation,
    wall: "np.ndarray",
    classes: "np.ndarray",
    options: DetectionOptions,
) -> Tuple[float, int, int]:
    """
    Probe across the band at evenly spaced positions.

    Positions where the band meets a perpendicular wall (a wall run along
    the scan axis much longer than the band) are left out of the vote.

    Returns:
        (median thickness or band height, valid probes, considered probes)
    """
    rules = options.rules
    ppc = options.pixels_per_cm
    band_height = band.height
    max_probe = band_height + 10
    centre = (band.start + band.end) // 2
    perpendicular_run = rules.perpendicular_wall_ratio * band_height

    measurements = []
    considered = 0
    for cross in _sample_positions(band, rules.span_probe_samples):
        if cross < 0 or cross >= wall.shape[1]:
            continue
        if _wall_run_through(wall, cross, centre) > perpendicular_run:
            continue
        considered += 1

        probe_start = band.start - 2
        if orientation == WallOrientation.HORIZONTAL:
            thickness = probe_wall_thickness(classes, cross, probe_start, 0, 1, max_probe, rules.max_band_background_px)
        else:
            thickness = probe_wall_thickness(classes, probe_start, cross, 1, 0, max_probe, rules.max_band_background_px)

        if thickness > 0 and options.min_thickness_cm <= thickness / ppc <= options.max_thickness_cm:
            measurements.append(thickness)

    if not measurements:
        return float(band_height), 0, considered
    measurements.sort()
    return measurements[len(measurements) // 2], len(measurements), considered
