"""
Tests for flood fill and hole filling.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add backend to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from plantrace.services.region_extraction import (
    fill_interior_holes,
    flood_fill,
    flood_fill_from_border,
)

from conftest import draw_ring


@pytest.fixture
def ring_mask() -> np.ndarray:
    """80x80 wall mask: 2 px ring between (10,10) and (69,69)."""
    mask = np.zeros((80, 80), dtype=np.uint8)
    draw_ring(mask, 10, 10, 69, 69, 2, value=1)
    return mask


class TestFloodFill:
    """Tests for the seeded fill."""

    def test_fills_enclosed_room(self, ring_mask):
        result = flood_fill(ring_mask, 40, 40, 10000)
        assert result.pixel_count == 56 * 56
        assert result.found
        assert result.filled_mask[12, 12] == 1
        assert result.filled_mask[11, 11] == 0

    def test_seed_on_wall(self, ring_mask):
        result = flood_fill(ring_mask, 10, 40, 10000)
        assert result.pixel_count == 0
        assert not result.found

    @pytest.mark.parametrize("x,y", [(-1, 5), (80, 5), (5, 80)])
    def test_seed_out_of_bounds(self, ring_mask, x, y):
        result = flood_fill(ring_mask, x, y, 10000)
        assert result.pixel_count == 0
        assert not result.filled_mask.any()

    def test_budget_exceeded(self, ring_mask):
        result = flood_fill(ring_mask, 40, 40, 100)
        assert result.exceeded
        assert not result.found

    def test_open_page_stops_at_budget(self):
        """A seed in open space stops near the budget instead of filling the page."""
        mask = np.zeros((500, 500), dtype=np.uint8)

        result = flood_fill(mask, 250, 250, 100)

        assert result.exceeded
        assert result.pixel_count == 101
        # Only the first window around the seed was filled
        assert int(result.filled_mask.sum()) <= 23 * 23

    def test_long_corridor_filled_exactly(self):
        """A region leaving the first window is followed until it is complete."""
        mask = np.ones((100, 300), dtype=np.uint8)
        mask[50, :] = 0

        result = flood_fill(mask, 150, 50, 1000)

        assert result.found
        assert result.pixel_count == 300
        assert int(result.filled_mask.sum()) == 300

    def test_fill_touching_image_edge(self, ring_mask):
        """Open space outside the ring reaches the image border."""
        result = flood_fill(ring_mask, 2, 2, 10000)
        assert result.pixel_count == 80 * 80 - 60 * 60

    def test_mask_not_modified(self, ring_mask):
        before = ring_mask.copy()
        flood_fill(ring_mask, 40, 40, 10000)
        assert np.array_equal(ring_mask, before)


class TestBorderFill:
    """Tests for exterior marking and hole filling."""

    def test_exterior(self, ring_mask):
        exterior = flood_fill_from_border(ring_mask)
        assert int(exterior.sum()) == 80 * 80 - 60 * 60
        assert exterior[0, 0] == 1
        assert exterior[40, 40] == 0

    def test_fill_interior_holes_in_place(self, ring_mask):
        result = fill_interior_holes(ring_mask)
        assert result is ring_mask
        assert int(ring_mask.sum()) == 60 * 60

    def test_open_ring_has_no_holes(self, ring_mask):
        ring_mask[10:12, 40:45] = 0
        fill_interior_holes(ring_mask)
        assert ring_mask[40, 40] == 0
