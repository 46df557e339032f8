"""
Tests for morphological mask conditioning.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add backend to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from plantrace.services.morphology import (
    filter_small_components,
    morphological_close,
    morphological_open,
    morphological_open_rect,
)


def broken_line(gap: int) -> np.ndarray:
    """60x60 mask with a 1 px horizontal line at row 30 broken by a gap."""
    mask = np.zeros((60, 60), dtype=np.uint8)
    mask[30, 10:50] = 1
    start = 30 - gap // 2
    mask[30, start:start + gap] = 0
    return mask


class TestMorphologicalClose:
    """Tests for gap sealing."""

    @pytest.mark.parametrize("gap", [1, 2, 3, 4])
    def test_seals_gaps_up_to_twice_radius(self, gap):
        closed = morphological_close(broken_line(gap), 2)
        assert closed[30, 10:50].all()

    def test_wider_gap_stays_open(self):
        closed = morphological_close(broken_line(5), 2)
        assert closed[30, 30] == 0

    def test_never_clears_wall(self):
        rng = np.random.default_rng(7)
        mask = (rng.random((50, 50)) > 0.7).astype(np.uint8)
        closed = morphological_close(mask, 2)
        assert np.all(closed[mask == 1] == 1)

    def test_zero_radius_is_identity(self):
        mask = broken_line(3)
        assert np.array_equal(morphological_close(mask, 0), mask)

    def test_input_not_modified(self):
        mask = broken_line(3)
        before = mask.copy()
        morphological_close(mask, 2)
        assert np.array_equal(mask, before)


class TestMorphologicalOpen:
    """Tests for noise removal."""

    def test_removes_thin_line(self):
        mask = np.zeros((30, 30), dtype=np.uint8)
        mask[15, 5:25] = 1
        assert not morphological_open(mask, 1).any()

    def test_thick_wall_survives(self):
        mask = np.zeros((30, 30), dtype=np.uint8)
        mask[10:15, 5:25] = 1
        assert np.array_equal(morphological_open(mask, 1), mask)

    def test_rect_open_is_directional(self):
        """An 11x3 kernel keeps horizontal strokes and drops vertical ones."""
        mask = np.zeros((60, 60), dtype=np.uint8)
        mask[10:13, 10:40] = 1   # horizontal, 3 thick
        mask[20:50, 50:53] = 1   # vertical, 3 thick

        opened = morphological_open_rect(mask, 5, 1)

        assert opened[10:13, 10:40].all()
        assert not opened[20:50, 50:53].any()


class TestFilterSmallComponents:
    """Tests for the connected-component size filter."""

    def test_keeps_large_drops_small(self):
        mask = np.zeros((30, 30), dtype=np.uint8)
        mask[2:7, 2:7] = 1       # 25 px
        mask[20:23, 20:23] = 1   # 9 px

        filtered = filter_small_components(mask, 16)

        assert filtered[2:7, 2:7].all()
        assert not filtered[20:23, 20:23].any()

    def test_diagonal_neighbours_are_separate(self):
        """Two 3x3 blocks touching at a corner are two 9 px components."""
        mask = np.zeros((20, 20), dtype=np.uint8)
        mask[5:8, 5:8] = 1
        mask[8:11, 8:11] = 1

        assert not filter_small_components(mask, 16).any()

    def test_empty_mask(self):
        mask = np.zeros((10, 10), dtype=np.uint8)
        assert not filter_small_components(mask, 16).any()
