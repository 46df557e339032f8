"""
Tests for contour tracing and polygon cleanup.

These tests validate:
- Boundary tracing of filled masks
- Douglas-Peucker simplification
- Right-angle snapping and collinear vertex removal
- Micro-bump removal with scale-aware limits
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add backend to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from plantrace.services.contour_vectorizer import (
    douglas_peucker,
    polygon_area,
    polygon_bbox,
    polygon_centroid,
    remove_polygon_micro_bumps,
    snap_polygon_edges,
    trace_contour,
)


class TestTraceContour:
    """Tests for boundary tracing."""

    def test_square_block(self):
        mask = np.zeros((20, 20), dtype=np.uint8)
        mask[5:15, 5:15] = 1

        contour = trace_contour(mask)

        assert len(contour) == 36
        assert (5, 5) in contour
        assert (14, 14) in contour
        assert all(5 <= x <= 14 and 5 <= y <= 14 for x, y in contour)

    def test_largest_region_wins(self):
        mask = np.zeros((40, 40), dtype=np.uint8)
        mask[2:5, 2:5] = 1
        mask[10:30, 10:30] = 1

        xs = [x for x, _ in trace_contour(mask)]
        assert min(xs) == 10

    def test_empty_mask(self):
        assert trace_contour(np.zeros((10, 10), dtype=np.uint8)) == []


class TestDouglasPeucker:
    """Tests for polyline simplification."""

    def test_collinear_points_collapse(self):
        points = [(0, 0), (1, 0), (2, 0), (3, 0), (4, 0)]
        assert douglas_peucker(points, 1.0) == [(0, 0), (4, 0)]

    def test_corner_kept(self):
        points = [(0, 0), (5, 0), (10, 0), (10, 5), (10, 10)]
        assert douglas_peucker(points, 1.0) == [(0, 0), (10, 0), (10, 10)]

    def test_small_wobble_removed(self):
        points = [(0, 0), (5, 0.5), (10, 0)]
        assert douglas_peucker(points, 1.0) == [(0, 0), (10, 0)]

    def test_short_input_unchanged(self):
        assert douglas_peucker([(0, 0), (3, 4)], 1.0) == [(0, 0), (3, 4)]

    def test_closed_ring_with_coincident_endpoints(self):
        """A traced contour may start and end on the same pixel."""
        points = [(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)]
        simplified = douglas_peucker(points, 1.0)
        assert simplified[0] == (0, 0)
        assert (10, 10) in simplified


class TestSnapPolygonEdges:
    """Tests for right-angle snapping."""

    def test_slightly_skewed_edge_snapped(self):
        snapped = snap_polygon_edges([(0, 0), (100, 2), (100, 50), (0, 50)])
        assert snapped == [
            pytest.approx((0, 1)),
            pytest.approx((100, 1)),
            pytest.approx((100, 50)),
            pytest.approx((0, 50)),
        ]

    def test_collinear_vertex_removed(self):
        snapped = snap_polygon_edges([(0, 0), (50, 0.5), (100, 0), (100, 50), (0, 50)])
        assert len(snapped) == 4
        assert snapped[0] == pytest.approx((0, 0.25))
        assert snapped[1] == pytest.approx((100, 0.25))

    def test_diagonal_edge_kept(self):
        """A 45 degree chamfer is outside the tolerance and keeps its angle."""
        polygon = [(0, 0), (100, 0), (100, 80), (80, 100), (0, 100)]
        snapped = snap_polygon_edges(polygon)
        assert len(snapped) == 5
        assert snapped[2] == pytest.approx((100, 80))
        assert snapped[3] == pytest.approx((80, 100))

    def test_idempotent_on_stepped_edge(self):
        """Two near-horizontal edges at different heights merge into one line."""
        polygon = [(0, 0), (50, 1), (100, 3), (100, 100), (0, 100)]

        once = snap_polygon_edges(polygon)
        twice = snap_polygon_edges(once)

        assert len(once) == 4
        assert once[0][1] == pytest.approx(once[1][1])
        assert once[0][1] == pytest.approx(1.25, abs=0.01)
        assert len(twice) == len(once)
        for a, b in zip(once, twice):
            assert a == pytest.approx(b)

    @pytest.mark.parametrize("seed", range(12))
    def test_idempotent_on_jittered_outline(self, seed):
        """Hand-traced L outlines with extra mid-edge vertices settle in one call."""
        corners = [(0, 0), (200, 0), (200, 100), (100, 100), (100, 200), (0, 200)]
        polygon = []
        for i, (ax, ay) in enumerate(corners):
            bx, by = corners[(i + 1) % len(corners)]
            polygon.extend([(ax, ay), ((ax + bx) / 2, (ay + by) / 2)])
        jitter = np.random.default_rng(seed).uniform(-1.5, 1.5, size=(len(polygon), 2))
        polygon = [(x + dx, y + dy) for (x, y), (dx, dy) in zip(polygon, jitter)]

        once = snap_polygon_edges(polygon)
        twice = snap_polygon_edges(once)

        assert len(once) == 6
        for i, (ax, ay) in enumerate(once):
            bx, by = once[(i + 1) % len(once)]
            assert ax == pytest.approx(bx) or ay == pytest.approx(by)
        assert len(twice) == len(once)
        for a, b in zip(once, twice):
            assert a == pytest.approx(b)

    def test_short_input_unchanged(self):
        assert snap_polygon_edges([(0, 0), (1, 1)]) == [(0, 0), (1, 1)]


class TestRemoveMicroBumps:
    """Tests for rectangular tab removal."""

    TAB = [(0, 0), (100, 0), (100, 40), (110, 40), (110, 60), (100, 60), (100, 100), (0, 100)]

    def test_small_tab_removed(self):
        cleaned = remove_polygon_micro_bumps(self.TAB, max_bump_depth_cm=30.0)
        assert cleaned == [(0, 0), (100, 0), (100, 100), (0, 100)]

    def test_wing_survives(self):
        """A protrusion with a 60 long outer edge is a real building part."""
        wing = [(0, 0), (100, 0), (100, 20), (110, 20), (110, 80), (100, 80), (100, 100), (0, 100)]
        assert len(remove_polygon_micro_bumps(wing, max_bump_depth_cm=30.0)) == 8

    def test_limit_scales_with_pixels_per_cm(self):
        scaled = [(x * 2, y * 2) for x, y in self.TAB]
        cleaned = remove_polygon_micro_bumps(scaled, max_bump_depth_cm=30.0, pixels_per_cm=2.0)
        assert cleaned == [(0, 0), (200, 0), (200, 200), (0, 200)]

    def test_tab_larger_than_limit_kept(self):
        cleaned = remove_polygon_micro_bumps(self.TAB, max_bump_depth_cm=15.0)
        assert len(cleaned) == 8

    def test_small_polygons_unchanged(self):
        square = [(0, 0), (10, 0), (10, 10), (0, 10)]
        assert remove_polygon_micro_bumps(square) == square
        assert remove_polygon_micro_bumps([]) == []


class TestPolygonHelpers:
    """Tests for area, centroid and bbox."""

    def test_area(self):
        assert polygon_area([(0, 0), (10, 0), (10, 5), (0, 5)]) == 50.0
        assert polygon_area([(0, 0), (0, 5), (10, 5), (10, 0)]) == 50.0
        assert polygon_area([(0, 0), (1, 1)]) == 0.0

    def test_centroid_and_bbox(self):
        square = [(0, 0), (10, 0), (10, 10), (0, 10)]
        assert polygon_centroid(square) == (5.0, 5.0)
        assert polygon_bbox(square) == (0, 0, 10, 10)
