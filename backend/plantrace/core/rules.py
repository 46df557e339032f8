"""
Floor Plan Detection Rules

Every size-dependent heuristic of the detection pipeline is expressed here in
real-world units (cm) and converted to pixels with the caller's pixels-per-cm
scale. Keeping them in one frozen struct lets callers tune detection without
touching the algorithms.
"""

from dataclasses import dataclass, field
import math
from typing import Dict, Tuple, Union


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (banker's rounding would
    turn 2.5 px into 2 px and shift every derived threshold)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class FloorPlanRules:
    """Tuning constants for wall, room and envelope detection."""

    # Wall thickness bounds accepted by metrology and spanning-wall detection
    wall_min_thickness_cm: float = 5.0
    wall_max_thickness_cm: float = 50.0

    # Mask builder: gray-band defaults and saturation fallback
    gray_low: int = 80
    gray_high: int = 210
    color_min_luma: int = 10
    color_max_luma: int = 200
    color_min_saturation: float = 0.3
    color_min_channel: int = 40

    # Histogram peak search (auto wall range)
    histogram_white_fraction: float = 0.20
    histogram_peak_low: int = 10
    histogram_white_margin: int = 20
    histogram_min_peak_fraction: float = 0.003
    histogram_range_half_width: int = 80
    histogram_range_floor: int = 5
    histogram_white_headroom: int = 15

    # Dark-threshold fallback sweep for black-line plans
    fallback_thresholds: Tuple[int, ...] = (180, 200, 220, 240)
    fallback_min_wall_fraction: float = 0.005
    fallback_max_wall_fraction: float = 0.5

    # Morphology
    room_close_radii_cm: Tuple[float, ...] = (20.0, 40.0, 66.0)
    envelope_close_radius_cm: float = 80.0
    min_close_radius_px: int = 3
    max_close_radius_px: int = 300
    open_radius_cm: float = 4.0
    max_open_radius_px: int = 5
    strict_open_radius_cm: float = 6.0
    min_strict_open_radius_px: int = 3
    component_side_cm: float = 8.0
    min_component_area_px: int = 16

    # Vectorization
    simplify_epsilon_cm: float = 4.0
    snap_tolerance_deg: float = 5.0
    default_bump_depth_cm: float = 30.0

    # Metrology
    probe_samples_per_edge: int = 7
    probe_margin_cm: float = 10.0
    max_probe_px: int = 200
    max_band_background_px: int = 2
    max_dash_cm: float = 10.0
    min_gap_cm: float = 45.0
    max_gap_cm: float = 250.0

    # Preprocessing
    thin_feature_cm: float = 5.0 / 3.0
    min_thin_feature_radius_px: int = 2
    protection_margin_cm: float = 2.0
    directional_thick_cm: float = 1.5
    directional_long_cm: float = 3.0
    fallback_wall_thickness_cm: float = 30.0

    # Envelope sanity: building share of the image
    min_building_fraction: float = 0.01
    max_building_fraction: float = 0.99

    # Spanning walls
    span_density_threshold: float = 0.4
    span_fraction_threshold: float = 0.7
    min_building_width_px: int = 50
    band_merge_cm: float = 2.0
    min_building_width_cm: float = 100.0
    min_span_length_cm: float = 200.0
    span_probe_samples: int = 5
    span_probe_consistency: float = 0.8
    continuity_gap_fraction: float = 0.25
    perpendicular_wall_ratio: float = 3.0

    def px(self, cm: float, pixels_per_cm: float) -> int:
        """Convert a length in cm to whole pixels."""
        return round_half_up(cm * pixels_per_cm)

    def room_close_radii_px(self, pixels_per_cm: float) -> Tuple[int, ...]:
        return tuple(
            self._clamp_close(self.px(cm, pixels_per_cm))
            for cm in self.room_close_radii_cm
        )

    def envelope_close_radius_px(self, pixels_per_cm: float) -> int:
        return self._clamp_close(self.px(self.envelope_close_radius_cm, pixels_per_cm))

    def open_radius_px(self, pixels_per_cm: float) -> int:
        return max(0, min(self.max_open_radius_px, self.px(self.open_radius_cm, pixels_per_cm)))

    def strict_open_radius_px(self, pixels_per_cm: float) -> int:
        return max(
            self.min_strict_open_radius_px,
            self.px(self.strict_open_radius_cm, pixels_per_cm),
        )

    def min_component_area(self, pixels_per_cm: float) -> int:
        side = self.px(self.component_side_cm, pixels_per_cm)
        return max(self.min_component_area_px, side * side)

    def simplify_epsilon_px(self, pixels_per_cm: float) -> int:
        return max(1, self.px(self.simplify_epsilon_cm, pixels_per_cm))

    def max_dash_px(self, pixels_per_cm: float) -> int:
        return max(1, self.px(self.max_dash_cm, pixels_per_cm))

    def min_gap_px(self, pixels_per_cm: float) -> int:
        return max(2, self.px(self.min_gap_cm, pixels_per_cm))

    def max_gap_px(self, pixels_per_cm: float) -> int:
        return max(self.min_gap_px(pixels_per_cm), self.px(self.max_gap_cm, pixels_per_cm))

    def thin_feature_radius_px(self, pixels_per_cm: float) -> int:
        return max(
            self.min_thin_feature_radius_px,
            self.px(self.thin_feature_cm, pixels_per_cm),
        )

    def _clamp_close(self, radius: int) -> int:
        return max(self.min_close_radius_px, min(self.max_close_radius_px, radius))


DEFAULT_RULES = FloorPlanRules()


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned pixel box (top-left origin)."""

    x: int
    y: int
    width: int
    height: int

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    def padded(self, margin: int, max_width: int, max_height: int) -> "BoundingBox":
        """Grow the box by margin on every side, clipped to the image."""
        x0 = max(0, self.x - margin)
        y0 = max(0, self.y - margin)
        x1 = min(max_width, self.x2 + margin)
        y1 = min(max_height, self.y2 + margin)
        return BoundingBox(x=x0, y=y0, width=max(0, x1 - x0), height=max(0, y1 - y0))

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class FreshDetection:
    """First detection pass over the whole image."""


@dataclass(frozen=True)
class RefinedDetection:
    """Second envelope pass restricted to a previously detected bounding box."""

    bbox: BoundingBox


DetectionMode = Union[FreshDetection, RefinedDetection]


@dataclass
class DetectionOptions:
    """
    Per-call detection configuration.

    Attributes:
        pixels_per_cm: Image resolution; drives every size-dependent threshold
        max_area_cm2: Region-growth budget for room flood fill
        min_thickness_cm: Lower wall thickness bound
        max_thickness_cm: Upper wall thickness bound
        mode: FreshDetection or RefinedDetection(bbox)
        rules: Heuristic tuning
    """

    pixels_per_cm: float
    max_area_cm2: float = 100000.0
    min_thickness_cm: float = DEFAULT_RULES.wall_min_thickness_cm
    max_thickness_cm: float = DEFAULT_RULES.wall_max_thickness_cm
    mode: DetectionMode = field(default_factory=FreshDetection)
    rules: FloorPlanRules = DEFAULT_RULES

    def __post_init__(self):
        if not self.pixels_per_cm or self.pixels_per_cm <= 0:
            raise ValueError(f"pixels_per_cm must be positive, got {self.pixels_per_cm}")
        if self.min_thickness_cm > self.max_thickness_cm:
            raise ValueError(
                f"min_thickness_cm ({self.min_thickness_cm}) exceeds "
                f"max_thickness_cm ({self.max_thickness_cm})"
            )

    @property
    def max_pixels(self) -> int:
        """Flood-fill budget in pixels derived from max_area_cm2."""
        return max(1, round_half_up(self.max_area_cm2 * self.pixels_per_cm ** 2))
