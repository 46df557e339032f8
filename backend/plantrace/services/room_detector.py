"""
Room Detection at a Seed Pixel

Given one click inside a room, returns the room polygon, the thickness of
its walls and the door openings along them.

Pipeline:
1. Wall mask from the auto-detected gray range (dark-threshold fallback)
2. Small-component filter (text, arrows) and optional open
3. Close with increasing radii until the flood fill from the seed stays
   within the area budget; the smallest working radius wins
4. Hole fill -> contour -> Douglas-Peucker -> right-angle snapping
5. Outward thickness probing and door gaps (pixels sealed by the close)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

import numpy as np

from ..core.rules import DetectionOptions
from .contour_vectorizer import Point, douglas_peucker, snap_polygon_edges, trace_contour
from .mask_builder import auto_detect_wall_range, build_gray_wall_mask, image_to_binary_mask
from .morphology import filter_small_components, morphological_close, morphological_open
from .raster import RasterImage
from .region_extraction import fill_interior_holes, flood_fill
from .wall_metrology import DoorGap, WallThicknessResult, detect_door_gaps, detect_wall_thickness

logger = logging.getLogger(__name__)


@dataclass
class RoomDetectionResult:
    """Room found from a seed click."""
    polygon_px: List[Point]
    wall_thicknesses: WallThicknessResult
    door_gaps: List[DoorGap] = field(default_factory=list)
    pixels_per_cm: float = 1.0

    @property
    def polygon_cm(self) -> List[Point]:
        return [(x / self.pixels_per_cm, y / self.pixels_per_cm) for x, y in self.polygon_px]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "polygon_px": [{"x": x, "y": y} for x, y in self.polygon_px],
            "polygon_cm": [{"x": x, "y": y} for x, y in self.polygon_cm],
            "wall_thicknesses": self.wall_thicknesses.to_dict(),
            "door_gaps": [g.to_dict() for g in self.door_gaps],
            "pixels_per_cm": self.pixels_per_cm,
        }


@dataclass
class _Candidate:
    """Best room fill found so far."""
    processed_mask: "np.ndarray"
    closed_mask: "np.ndarray"
    filled_mask: "np.ndarray"
    pixel_count: int
    label: str
    close_radius: int


def _try_mask(
    wall_mask: "np.ndarray",
    x: int,
    y: int,
    options: DetectionOptions,
    apply_open: bool,
    label: str,
    best: Optional[_Candidate],
) -> Optional[_Candidate]:
    """Run the close radii on one wall mask; return the new best candidate."""
    rules = options.rules
    ppc = options.pixels_per_cm
    max_pixels = options.max_pixels

    processed = filter_small_components(wall_mask, rules.min_component_area(ppc))
    open_radius = rules.open_radius_px(ppc)
    if apply_open and open_radius > 0:
        processed = morphological_open(processed, open_radius)

    best_count = best.pixel_count if best else 0
    for radius in rules.room_close_radii_px(ppc):
        closed = morphological_close(processed, radius)
        fill = flood_fill(closed, x, y, max_pixels)
        logger.debug(f"[{label}] close r={radius}: {fill.pixel_count} px (budget {max_pixels})")
        if fill.found and fill.pixel_count > best_count:
            return _Candidate(
                processed_mask=processed,
                closed_mask=closed,
                filled_mask=fill.filled_mask,
                pixel_count=fill.pixel_count,
                label=label,
                close_radius=radius,
            )
    return best


def detect_room_at_pixel(
    image: RasterImage,
    x: int,
    y: int,
    options: DetectionOptions,
) -> Optional[RoomDetectionResult]:
    """
    Detect the room containing pixel (x, y).

    Args:
        image: Floor plan raster (not modified)
        x: Seed column
        y: Seed row
        options: Scale, area budget and thickness bounds

    Returns:
        RoomDetectionResult, or None when the seed is outside the image or
        on a wall, every fill exceeds the area budget, or no polygon can be
        traced
    """
    if x < 0 or x >= image.width or y < 0 or y >= image.height:
        logger.info(f"Seed ({x}, {y}) outside {image.width}x{image.height} image")
        return None

    rules = options.rules
    ppc = options.pixels_per_cm
    best: Optional[_Candidate] = None

    wall_range = auto_detect_wall_range(image, rules)
    if wall_range is not None:
        gray_mask = build_gray_wall_mask(image, wall_range.low, wall_range.high, rules)
        best = _try_mask(gray_mask, x, y, options, True, "gray", best)

    if best is None:
        for threshold in rules.fallback_thresholds:
            dark_mask = image_to_binary_mask(image, threshold)
            best = _try_mask(dark_mask, x, y, options, False, f"dark-{threshold}", best)
            if best is not None:
                break

    if best is None:
        logger.info(f"No room found at ({x}, {y})")
        return None

    room_mask = best.filled_mask
    filled = fill_interior_holes(room_mask.copy())

    contour = trace_contour(filled)
    if len(contour) < 3:
        return None

    raw_polygon = douglas_peucker(contour, rules.simplify_epsilon_px(ppc))
    if len(raw_polygon) < 3:
        return None

    polygon = snap_polygon_edges(raw_polygon, rules.snap_tolerance_deg)
    if len(polygon) < 3:
        return None

    thicknesses = detect_wall_thickness(
        image, polygon, ppc,
        min_thickness_cm=options.min_thickness_cm,
        max_thickness_cm=options.max_thickness_cm,
        rules=rules,
    )
    door_gaps = detect_door_gaps(best.processed_mask, best.closed_mask, room_mask, ppc, rules)

    logger.info(
        f"Room at ({x}, {y}) via {best.label} mask, close r={best.close_radius}: "
        f"{best.pixel_count} px, {len(polygon)} vertices, {len(door_gaps)} door gaps, "
        f"median wall {thicknesses.median_cm:.1f} cm"
    )
    return RoomDetectionResult(
        polygon_px=polygon,
        wall_thicknesses=thicknesses,
        door_gaps=door_gaps,
        pixels_per_cm=ppc,
    )
