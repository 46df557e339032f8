"""
Wall Mask Builder

Classifies pixels of an RGBA floor plan as wall (1) or open (0).

Three strategies:
1. Fixed luma threshold (black-line drawings)
2. Gray band around an auto-detected wall fill peak (CAD plans with gray walls)
3. Per-pixel edge/fill/background classes for thickness probing
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional
import logging

import numpy as np

from ..core.rules import DEFAULT_RULES, FloorPlanRules
from .raster import RasterImage

logger = logging.getLogger(__name__)


class PixelClass(IntEnum):
    """Wall-probing classes for a single pixel."""
    BACKGROUND = 0
    EDGE = 1         # Dark wall outline
    FILL = 2         # Wall body (gray or coloured fill)
    ANNOTATION = 3   # Saturated red markup drawn over the plan


@dataclass(frozen=True)
class WallRange:
    """Luma band occupied by the wall fill."""
    low: int
    high: int

    def to_dict(self):
        return {"low": self.low, "high": self.high}


def luma(image: RasterImage) -> "np.ndarray":
    """Rec. 601 luma (0.299R + 0.587G + 0.114B) as float64, shape (H, W)."""
    rgb = image.rgb.astype(np.float64)
    return 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]


def saturation(image: RasterImage) -> "np.ndarray":
    """Channel spread relative to the brightest channel (0 = neutral gray)."""
    rgb = image.rgb
    max_c = rgb.max(axis=2).astype(np.float64)
    min_c = rgb.min(axis=2).astype(np.float64)
    sat = np.zeros_like(max_c)
    np.divide(max_c - min_c, max_c, out=sat, where=max_c > 0)
    return sat


def image_to_binary_mask(image: RasterImage, threshold: float) -> "np.ndarray":
    """
    Threshold the image luma.

    Args:
        image: Source image
        threshold: Luma below this is wall

    Returns:
        uint8 mask, 1 = wall, 0 = open
    """
    return (luma(image) < threshold).astype(np.uint8)


def colored_wall_mask(
    image: RasterImage,
    max_luma: float,
    rules: FloorPlanRules = DEFAULT_RULES,
) -> "np.ndarray":
    """
    Boolean mask of saturated, non-black pixels with luma in
    [color_min_luma, max_luma). Brown, red or blue CAD layers land here.
    """
    gray = luma(image)
    max_c = image.rgb.max(axis=2)
    return (
        (gray >= rules.color_min_luma)
        & (gray < max_luma)
        & (saturation(image) > rules.color_min_saturation)
        & (max_c > rules.color_min_channel)
    )


def auto_detect_wall_range(
    image: RasterImage,
    rules: FloorPlanRules = DEFAULT_RULES,
) -> Optional[WallRange]:
    """
    Find the gray range occupied by wall fill from the luma histogram.

    Typical plans show three peaks: black lines/text near 0, the wall fill in
    the mid-tones and white room interiors near 255. The dominant peak between
    the dark cutoff and the white level is taken as wall fill.

    Returns:
        WallRange bracketing the peak, or None when the image has no
        significant mid-tone (pure black-and-white line art).
    """
    total = image.width * image.height
    gray = np.rint(luma(image)).astype(np.int64)
    hist = np.bincount(gray.ravel(), minlength=256)

    # Lowest gray value that still belongs to the brightest 20% of pixels
    white_level = 255
    cum_from_top = 0
    for g in range(255, -1, -1):
        cum_from_top += hist[g]
        if cum_from_top > total * rules.histogram_white_fraction:
            white_level = g + 1
            break

    mid_low = rules.histogram_peak_low
    mid_high = max(mid_low + 1, white_level - rules.histogram_white_margin)
    window = hist[mid_low:mid_high]
    if window.size == 0:
        return None

    peak_offset = int(np.argmax(window))
    peak_count = int(window[peak_offset])
    wall_center = mid_low + peak_offset

    if peak_count == 0 or peak_count < total * rules.histogram_min_peak_fraction:
        logger.debug("No mid-tone wall fill peak found")
        return None

    wall_range = WallRange(
        low=max(rules.histogram_range_floor, wall_center - rules.histogram_range_half_width),
        high=min(
            white_level - rules.histogram_white_headroom,
            wall_center + rules.histogram_range_half_width,
        ),
    )
    logger.debug(f"Wall fill peak at {wall_center} ({peak_count} px) -> {wall_range}")
    return wall_range


def build_gray_wall_mask(
    image: RasterImage,
    low: float = 80,
    high: float = 210,
    rules: FloorPlanRules = DEFAULT_RULES,
) -> "np.ndarray":
    """
    Mark mid-gray pixels as wall.

    Wall bodies are usually a solid gray fill bordered by thin black lines.
    The band [low, high] captures the fill while black outlines, text and
    white interiors stay open. Dark but saturated pixels (luma below low) are
    also wall: coloured fills can have less luma than the gray band.

    Returns:
        uint8 mask, 1 = wall, 0 = open
    """
    gray = luma(image)
    in_band = (gray >= low) & (gray <= high)
    colored = colored_wall_mask(image, max_luma=low, rules=rules)
    return (in_band | colored).astype(np.uint8)


def classify_wall_pixels(image: RasterImage) -> "np.ndarray":
    """
    Classify every pixel as PixelClass (uint8 array, shape (H, W)).

    - ANNOTATION: strongly saturated red (e.g. pure red markup)
    - EDGE: luma < 80, or luma < 120 with low saturation
    - FILL: saturated 80-120, mid-tones with moderate saturation (the allowed
      saturation falls from 0.65 at luma 120 to 0.35 at luma 200), and light
      low-saturation fills (beige, cream) below luma 220
    - BACKGROUND: everything else
    """
    gray = luma(image)
    sat = saturation(image)
    rgb = image.rgb.astype(np.int16)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]

    classes = np.full(gray.shape, PixelClass.BACKGROUND, dtype=np.uint8)

    edge = (gray < 80) | ((gray < 120) & (sat < 0.3))
    fill = (gray >= 80) & (gray < 120) & (sat >= 0.3)

    sat_limit = 0.65 - (gray - 120.0) / 80.0 * 0.30
    fill |= (gray >= 120) & (gray < 200) & (sat <= sat_limit)
    fill |= (gray >= 200) & (gray < 220) & (sat < 0.2)

    annotation = (sat > 0.6) & (r >= 150) & (g < 90) & (r - b > 60)

    classes[fill] = PixelClass.FILL
    classes[edge] = PixelClass.EDGE
    classes[annotation] = PixelClass.ANNOTATION
    return classes
