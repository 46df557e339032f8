"""
Pytest configuration and fixtures for PlanTrace backend tests.

Synthetic floor plans are drawn with numpy: white (255) background,
black (0) or gray wall strokes.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add backend to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from plantrace.services.raster import RasterImage


def draw_ring(gray, x0, y0, x1, y1, thickness, value=0):
    """Draw a square wall ring with outer corners (x0, y0)-(x1, y1) inclusive."""
    gray[y0:y1 + 1, x0:x0 + thickness] = value
    gray[y0:y1 + 1, x1 - thickness + 1:x1 + 1] = value
    gray[y0:y0 + thickness, x0:x1 + 1] = value
    gray[y1 - thickness + 1:y1 + 1, x0:x1 + 1] = value
    return gray


@pytest.fixture
def image_from_gray():
    """Factory turning a 2D uint8 gray array into a RasterImage."""
    def _make(gray):
        return RasterImage.from_array(np.asarray(gray, dtype=np.uint8))
    return _make


@pytest.fixture
def room_gray() -> np.ndarray:
    """
    80x80 room: 3 px black wall ring between (5,5) and (75,75),
    interior (8,8)-(72,72), 5 px door gap at x=37..41 in the top wall.
    """
    gray = np.full((80, 80), 255, dtype=np.uint8)
    draw_ring(gray, 5, 5, 75, 75, 3)
    gray[5:8, 37:42] = 255
    return gray


@pytest.fixture
def room_image(room_gray) -> RasterImage:
    return RasterImage.from_array(room_gray)


@pytest.fixture
def gray_room_image() -> RasterImage:
    """
    80x80 room drawn like a CAD plan: 5 px gray-160 wall fill with a 2 px
    black inner edge line and a 5 px door gap in the top wall.
    """
    gray = np.full((80, 80), 255, dtype=np.uint8)
    draw_ring(gray, 5, 5, 75, 75, 5, value=160)
    draw_ring(gray, 8, 8, 72, 72, 2, value=0)
    gray[5:10, 37:42] = 255
    return RasterImage.from_array(gray)


@pytest.fixture
def building_gray() -> np.ndarray:
    """
    240x240 plan at 0.25 px/cm: 8 px (32 cm) black outer wall between
    (60,60) and (179,179), split by a 5 px (20 cm) horizontal interior wall
    at rows 118..122 running from outer wall to outer wall.
    """
    gray = np.full((240, 240), 255, dtype=np.uint8)
    draw_ring(gray, 60, 60, 179, 179, 8)
    gray[118:123, 60:180] = 0
    return gray


@pytest.fixture
def building_image(building_gray) -> RasterImage:
    return RasterImage.from_array(building_gray)
