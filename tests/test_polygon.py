"""Tests for polygon approximation."""
import numpy as np
import pytest

from colortrace.bitmap import Bitmap
from colortrace.polygon import best_polygon, calc_lon, calc_sums, penalty3
from colortrace.tracer import trace_bitmap
from colortrace.types import Sums


def traced(mask):
    return trace_bitmap(Bitmap.from_array(np.asarray(mask)), turdsize=0)[0]


@pytest.fixture
def block_path():
    return traced(np.ones((2, 2)))


class TestSums:
    """Test prefix sums."""

    def test_two_by_two(self, block_path):
        """Test sums of the 2x2 outline."""
        sums = calc_sums(block_path.points)
        assert len(sums) == 9
        assert sums[0] == Sums(0, 0, 0, 0, 0)
        assert sums[-1] == Sums(8, 8, 8, 14, 14)

    def test_relative_to_first_point(self):
        """Test that sums do not depend on the path position."""
        mask = np.zeros((6, 6))
        mask[3:5, 2:4] = 1
        shifted = traced(mask)
        assert calc_sums(shifted.points)[-1] == Sums(8, 8, 8, 14, 14)


class TestLon:
    """Test straight subpath detection."""

    def test_two_by_two(self, block_path):
        """Test the straight run table of the 2x2 outline."""
        assert calc_lon(block_path.points) == [4, 5, 6, 7, 0, 1, 2, 3]


class TestPenalty:
    """Test the edge penalty."""

    def test_straight_run_is_free(self, block_path):
        """Test that points on one line cost nothing."""
        sums = calc_sums(block_path.points)
        assert penalty3(block_path.points, sums, 0, 2) == pytest.approx(0.0)

    def test_corner_costs(self, block_path):
        """Test that cutting a corner has a positive penalty."""
        sums = calc_sums(block_path.points)
        assert penalty3(block_path.points, sums, 1, 3) > 0


class TestBestPolygon:
    """Test the optimal polygon."""

    def test_two_by_two(self, block_path):
        """Test the 2x2 outline becomes a quadrilateral."""
        points = block_path.points
        sums = calc_sums(points)
        assert best_polygon(points, sums, calc_lon(points)) == [0, 2, 4, 6]

    def test_large_square(self):
        """Test a large square needs exactly four edges."""
        mask = np.zeros((30, 30))
        mask[5:25, 5:25] = 1
        path = traced(mask)
        sums = calc_sums(path.points)
        polygon = best_polygon(path.points, sums, calc_lon(path.points))
        assert len(polygon) == 4
        assert polygon == sorted(polygon)
