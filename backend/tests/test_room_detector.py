"""
Tests for room detection from a seed pixel.

These tests validate:
- Polygon extraction for a room with a door opening
- Wall thickness and door gap reporting
- Rejection of seeds outside the image, on walls, or in oversized regions
- Gray-filled CAD walls (auto-detected wall range path)
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add backend to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from plantrace.core.rules import DetectionOptions
from plantrace.services.room_detector import detect_room_at_pixel
from plantrace.services.wall_metrology import WallOrientation

# 80x80 fixture at 0.05 px/cm (20 cm per pixel); the room is 13 m x 13 m
PPC = 0.05
LARGE_BUDGET = 10_000_000


@pytest.fixture
def options():
    return DetectionOptions(pixels_per_cm=PPC, max_area_cm2=LARGE_BUDGET)


class TestDetectRoomAtPixel:
    """Tests for the full room pipeline."""

    def test_room_polygon(self, room_image, options):
        result = detect_room_at_pixel(room_image, 40, 40, options)

        assert result is not None
        assert len(result.polygon_px) == 4
        assert sorted(result.polygon_px) == [
            pytest.approx((8, 8)),
            pytest.approx((8, 72)),
            pytest.approx((72, 8)),
            pytest.approx((72, 72)),
        ]

    def test_polygon_cm(self, room_image, options):
        result = detect_room_at_pixel(room_image, 40, 40, options)
        xs = [x for x, _ in result.polygon_cm]
        assert min(xs) == pytest.approx(160.0)
        assert max(xs) == pytest.approx(1440.0)

    def test_wall_thickness(self, room_image, options):
        result = detect_room_at_pixel(room_image, 40, 40, options)
        assert result.wall_thicknesses.median_px == 3
        assert result.wall_thicknesses.median_cm == pytest.approx(60.0)

    def test_door_gap(self, room_image, options):
        result = detect_room_at_pixel(room_image, 40, 40, options)

        assert len(result.door_gaps) == 1
        gap = result.door_gaps[0]
        assert gap.midpoint_px == (39, 6)
        assert gap.orientation == WallOrientation.HORIZONTAL
        assert gap.span_px == 5
        assert gap.pixel_count == 15

    @pytest.mark.parametrize("x,y", [(-1, 40), (40, 80), (200, 200)])
    def test_seed_out_of_bounds(self, room_image, options, x, y):
        assert detect_room_at_pixel(room_image, x, y, options) is None

    @pytest.mark.parametrize("x,y", [(6, 40), (5, 5)])
    def test_seed_on_wall(self, room_image, options, x, y):
        assert detect_room_at_pixel(room_image, x, y, options) is None

    def test_area_budget(self, room_image):
        tiny = DetectionOptions(pixels_per_cm=PPC, max_area_cm2=1)
        assert detect_room_at_pixel(room_image, 40, 40, tiny) is None

    def test_gray_cad_walls(self, gray_room_image, options):
        result = detect_room_at_pixel(gray_room_image, 40, 40, options)
        assert result is not None
        assert len(result.polygon_px) >= 4

    def test_image_not_modified(self, room_image, options):
        before = room_image.data.copy()
        detect_room_at_pixel(room_image, 40, 40, options)
        assert np.array_equal(room_image.data, before)

    def test_to_dict(self, room_image, options):
        data = detect_room_at_pixel(room_image, 40, 40, options).to_dict()
        assert len(data["polygon_px"]) == 4
        assert set(data["polygon_px"][0]) == {"x", "y"}
        assert data["pixels_per_cm"] == PPC
        assert data["door_gaps"][0]["midpoint_px"] == {"x": 39, "y": 6}
