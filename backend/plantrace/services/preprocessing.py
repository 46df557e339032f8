"""
Room Detection Preprocessing

Cleans a floor plan before room detection:
- thin coloured annotations (dimension lines, labels) are bleached to white
- with a known building envelope, dark pixels that are neither thick
  axis-aligned wall features nor inside the envelope wall band are bleached
- the result is flattened to normalized greyscale

The image is copied unless in_place=True is requested.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence
import logging
import math

import cv2
import numpy as np

from ..core.rules import DEFAULT_RULES, FloorPlanRules, round_half_up
from .contour_vectorizer import Point, polygon_centroid
from .envelope_detector import EnvelopeResult, SpanningWall
from .mask_builder import auto_detect_wall_range, colored_wall_mask, luma, saturation
from .morphology import morphological_open, morphological_open_rect
from .raster import RasterImage
from .wall_metrology import WallThicknessResult

logger = logging.getLogger(__name__)

WHITE = np.array([255, 255, 255, 255], dtype=np.uint8)


@dataclass
class EnvelopePrior:
    """Building envelope knowledge from an earlier detect_envelope pass."""
    polygon_px: Sequence[Point]
    wall_thicknesses: Optional[WallThicknessResult] = None
    spanning_walls: Sequence[SpanningWall] = field(default_factory=tuple)

    @classmethod
    def from_envelope(
        cls,
        envelope: EnvelopeResult,
        spanning_walls: Sequence[SpanningWall] = (),
    ) -> "EnvelopePrior":
        return cls(
            polygon_px=envelope.polygon_px,
            wall_thicknesses=envelope.wall_thicknesses,
            spanning_walls=tuple(spanning_walls),
        )


@dataclass
class PreprocessResult:
    """Cleaned image plus directional wall masks (envelope path only)."""
    image: RasterImage
    h_walls: Optional["np.ndarray"] = None
    v_walls: Optional["np.ndarray"] = None

    @property
    def has_wall_masks(self) -> bool:
        return self.h_walls is not None and self.v_walls is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.image.width,
            "height": self.image.height,
            "h_wall_pixels": int(np.count_nonzero(self.h_walls)) if self.h_walls is not None else None,
            "v_wall_pixels": int(np.count_nonzero(self.v_walls)) if self.v_walls is not None else None,
        }


def _to_int_points(points) -> "np.ndarray":
    return np.array(
        [[round_half_up(px), round_half_up(py)] for px, py in points],
        dtype=np.int32,
    )


def build_wall_protection_mask(
    height: int,
    width: int,
    envelope: EnvelopePrior,
    pixels_per_cm: float,
    rules: FloorPlanRules = DEFAULT_RULES,
) -> "np.ndarray":
    """
    Mark the pixels that must never be bleached.

    Each envelope edge gets an inward band as deep as its measured wall
    thickness (else the median, else the fallback thickness) plus a margin.
    Each spanning wall gets a band of half its thickness plus the margin on
    both sides of its centre line.

    Returns:
        uint8 mask, 1 = protected
    """
    mask = np.zeros((height, width), dtype=np.uint8)
    polygon = list(envelope.polygon_px)
    n = len(polygon)
    if n < 3:
        return mask

    margin_px = math.ceil(rules.protection_margin_cm * pixels_per_cm)
    thicknesses = envelope.wall_thicknesses
    median_px = (thicknesses.median_px if thicknesses else 0) or round_half_up(
        rules.fallback_wall_thickness_cm * pixels_per_cm
    )
    cx, cy = polygon_centroid(polygon)

    for i in range(n):
        ax, ay = polygon[i]
        bx, by = polygon[(i + 1) % n]
        edge_dx, edge_dy = bx - ax, by - ay
        edge_len = math.hypot(edge_dx, edge_dy)
        if edge_len < 1:
            continue

        ux, uy = edge_dx / edge_len, edge_dy / edge_len
        to_cx, to_cy = cx - (ax + bx) / 2, cy - (ay + by) / 2
        # Inward normal: the perpendicular pointing at the centroid
        if (-uy) * to_cx + ux * to_cy >= uy * to_cx + (-ux) * to_cy:
            nx, ny = -uy, ux
        else:
            nx, ny = uy, -ux

        edge_px = thicknesses.thickness_for_edge(i) if thicknesses else None
        depth = (edge_px or median_px) + margin_px
        quad = [
            (ax, ay), (bx, by),
            (bx + nx * depth, by + ny * depth),
            (ax + nx * depth, ay + ny * depth),
        ]
        cv2.fillPoly(mask, [_to_int_points(quad)], 1)

    for wall in envelope.spanning_walls:
        sx, sy = wall.start_px
        ex, ey = wall.end_px
        length = math.hypot(ex - sx, ey - sy)
        if length < 1:
            continue
        ux, uy = (ex - sx) / length, (ey - sy) / length
        half = round_half_up(wall.thickness_px / 2) + margin_px
        px, py = -uy * half, ux * half
        quad = [(sx + px, sy + py), (ex + px, ey + py), (ex - px, ey - py), (sx - px, sy - py)]
        cv2.fillPoly(mask, [_to_int_points(quad)], 1)

    return mask


def _flatten_to_normalized_gray(data: "np.ndarray") -> None:
    """Alpha onto white, BT.709 greyscale, stretch to 0..255. In place."""
    rgba = data.astype(np.float64)
    alpha = rgba[..., 3] / 255.0
    white = 255.0 * (1.0 - alpha)
    r = rgba[..., 0] * alpha + white
    g = rgba[..., 1] * alpha + white
    b = rgba[..., 2] * alpha + white
    gray = np.floor(0.2126 * r + 0.7152 * g + 0.0722 * b + 0.5)

    g_min, g_max = gray.min(), gray.max()
    if g_max > g_min:
        gray = np.floor(255.0 * (gray - g_min) / (g_max - g_min) + 0.5)

    out = np.clip(gray, 0, 255).astype(np.uint8)
    data[..., 0] = out
    data[..., 1] = out
    data[..., 2] = out
    data[..., 3] = 255


def preprocess_for_room_detection(
    image: RasterImage,
    pixels_per_cm: float = 1.0,
    envelope: Optional[EnvelopePrior] = None,
    in_place: bool = False,
    rules: FloorPlanRules = DEFAULT_RULES,
) -> PreprocessResult:
    """
    Prepare a floor plan for room detection.

    Args:
        image: Source image
        pixels_per_cm: Image scale
        envelope: Optional envelope knowledge (enables wall protection and
            directional wall extraction)
        in_place: Write into image.data instead of a copy
        rules: Tuning constants

    Returns:
        PreprocessResult; h_walls/v_walls are set only with an envelope
    """
    if pixels_per_cm <= 0:
        raise ValueError(f"pixels_per_cm must be positive, got {pixels_per_cm}")

    target = image if in_place else image.copy()
    data = target.data
    h, w = target.height, target.width

    use_envelope = envelope is not None and len(envelope.polygon_px) >= 3
    protected = (
        build_wall_protection_mask(h, w, envelope, pixels_per_cm, rules).astype(bool)
        if use_envelope
        else np.zeros((h, w), dtype=bool)
    )

    # Thin coloured features do not survive an opening
    colored = colored_wall_mask(target, max_luma=rules.color_max_luma, rules=rules)
    if colored.any():
        radius = rules.thin_feature_radius_px(pixels_per_cm)
        thick = morphological_open(colored.astype(np.uint8), radius).astype(bool)
        bleach = colored & ~thick & ~protected
        data[bleach] = WHITE
        logger.debug(f"Bleached {int(np.count_nonzero(bleach))} thin coloured pixels (r={radius})")

    h_walls = v_walls = None
    if use_envelope:
        wall_range = auto_detect_wall_range(target, rules)
        high = wall_range.high if wall_range else 200
        dark = (luma(target) < high).astype(np.uint8)

        thick_r = max(1, round_half_up(rules.directional_thick_cm * pixels_per_cm))
        long_r = max(2, round_half_up(rules.directional_long_cm * pixels_per_cm))
        h_walls = morphological_open_rect(dark, long_r, thick_r)
        v_walls = morphological_open_rect(dark, thick_r, long_r)
        features = (h_walls | v_walls).astype(bool)

        # Thin saturated wall strokes only need to be 3 px thick
        colored_dark = ((dark != 0) & (saturation(target) > rules.color_min_saturation)).astype(np.uint8)
        features |= morphological_open_rect(colored_dark, long_r, 1).astype(bool)
        features |= morphological_open_rect(colored_dark, 1, long_r).astype(bool)

        bleach = (dark != 0) & ~features & ~protected
        data[bleach] = WHITE
        logger.info(
            f"Envelope preprocessing: {int(np.count_nonzero(features))} wall-feature px, "
            f"{int(np.count_nonzero(protected))} protected px, {int(np.count_nonzero(bleach))} bleached"
        )

    _flatten_to_normalized_gray(data)
    return PreprocessResult(image=target, h_walls=h_walls, v_walls=v_walls)
