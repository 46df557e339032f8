"""
Tests for wall mask building.

These tests validate:
- Luma thresholding
- Gray-band wall masks with the saturation fallback
- Histogram-based wall fill range detection
- Per-pixel classes used for thickness probing
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add backend to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from plantrace.services.mask_builder import (
    PixelClass,
    WallRange,
    auto_detect_wall_range,
    build_gray_wall_mask,
    classify_wall_pixels,
    image_to_binary_mask,
)
from plantrace.services.raster import RasterImage


def rgb_row(*pixels):
    """One-row RasterImage from (r, g, b) tuples."""
    return RasterImage.from_array(np.array([pixels], dtype=np.uint8))


class TestImageToBinaryMask:
    """Tests for fixed luma threshold."""

    def test_dark_pixels_are_wall(self, image_from_gray):
        image = image_from_gray([[0, 100, 200, 255]])
        mask = image_to_binary_mask(image, 128)
        assert mask.tolist() == [[1, 1, 0, 0]]

    def test_mask_is_uint8(self, image_from_gray):
        mask = image_to_binary_mask(image_from_gray([[0]]), 128)
        assert mask.dtype == np.uint8


class TestBuildGrayWallMask:
    """Tests for the gray-band wall mask."""

    def test_default_band(self, image_from_gray):
        """Black and white are open, mid-gray is wall."""
        mask = build_gray_wall_mask(image_from_gray([[0, 160, 255]]))
        assert mask.tolist() == [[0, 1, 0]]

    def test_band_bounds_inclusive(self, image_from_gray):
        image = image_from_gray([[80]])
        assert build_gray_wall_mask(image, 80, 210)[0, 0] == 1
        assert build_gray_wall_mask(image, 90, 210)[0, 0] == 0

    def test_saturated_dark_fill_is_wall(self):
        """A dark blue CAD layer falls below the band but is still wall."""
        mask = build_gray_wall_mask(rgb_row((20, 40, 160), (50, 50, 50)))
        assert mask.tolist() == [[1, 0]]


class TestAutoDetectWallRange:
    """Tests for histogram peak search."""

    def test_mid_gray_peak_detected(self, image_from_gray):
        pixels = np.full(80 * 80, 255, dtype=np.uint8)
        pixels[:640] = 160
        pixels[640:1280] = 0
        wall_range = auto_detect_wall_range(image_from_gray(pixels.reshape(80, 80)))

        assert wall_range == WallRange(low=80, high=240)
        assert wall_range.low <= 160 <= wall_range.high

    def test_black_and_white_only(self, image_from_gray):
        pixels = np.full(80 * 80, 255, dtype=np.uint8)
        pixels[:640] = 0
        assert auto_detect_wall_range(image_from_gray(pixels.reshape(80, 80))) is None

    def test_insignificant_peak_ignored(self, image_from_gray):
        """A handful of gray pixels (< 0.3%) is not a wall fill."""
        pixels = np.full(100 * 100, 255, dtype=np.uint8)
        pixels[:20] = 160
        assert auto_detect_wall_range(image_from_gray(pixels.reshape(100, 100))) is None


class TestClassifyWallPixels:
    """Tests for per-pixel probing classes."""

    @pytest.mark.parametrize("rgb,expected", [
        ((0, 0, 0), PixelClass.EDGE),
        ((100, 100, 100), PixelClass.EDGE),
        ((160, 160, 160), PixelClass.FILL),
        ((139, 69, 19), PixelClass.FILL),
        ((220, 210, 190), PixelClass.FILL),
        ((255, 255, 255), PixelClass.BACKGROUND),
        ((230, 230, 230), PixelClass.BACKGROUND),
        ((255, 0, 0), PixelClass.ANNOTATION),
    ])
    def test_class(self, rgb, expected):
        classes = classify_wall_pixels(rgb_row(rgb))
        assert classes[0, 0] == expected

    def test_saturated_midtone_is_background(self):
        """Strongly coloured mid-tones (labels, markers) are not wall fill."""
        classes = classify_wall_pixels(rgb_row((80, 200, 80)))
        assert classes[0, 0] == PixelClass.BACKGROUND
