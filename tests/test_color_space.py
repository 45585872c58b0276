"""Tests for color space conversions."""
import numpy as np
import pytest

from colortrace.color_space import (
    brightness,
    color_distance,
    color_distances,
    hue_distance,
    is_gray,
    is_white_like,
    lab_to_rgb,
    parse_key,
    rgb_key,
    rgb_to_hex,
    rgb_to_hsl,
    rgb_to_lab,
)


class TestLab:
    """Test RGB <-> Lab conversions."""

    def test_white_and_black(self):
        """Test the lightness extremes."""
        lab = rgb_to_lab([[255, 255, 255], [0, 0, 0]])
        assert lab[0, 0] == pytest.approx(100.0, abs=0.01)
        assert abs(lab[0, 1]) < 0.01 and abs(lab[0, 2]) < 0.01
        assert lab[1, 0] == pytest.approx(0.0, abs=0.01)

    def test_shape_preserved(self):
        """Test that single colors and batches keep their shape."""
        assert rgb_to_lab([10, 20, 30]).shape == (3,)
        assert rgb_to_lab(np.zeros((4, 3))).shape == (4, 3)

    def test_round_trip(self):
        """Test that RGB survives a trip through Lab."""
        colors = np.array([[255, 0, 0], [12, 200, 99], [128, 128, 128]])
        back = lab_to_rgb(rgb_to_lab(colors))
        assert back.dtype == np.int32
        assert np.max(np.abs(back - colors)) <= 1

    def test_out_of_gamut_is_clipped(self):
        """Test that impossible Lab values still give valid RGB."""
        rgb = lab_to_rgb([50.0, 200.0, -200.0])
        assert np.all(rgb >= 0) and np.all(rgb <= 255)


class TestHslAndHex:
    """Test HSL and hex helpers."""

    def test_hsl(self):
        """Test HSL of primary and neutral colors."""
        assert rgb_to_hsl((255, 0, 0)) == (0, 100, 50)
        assert rgb_to_hsl((0, 0, 255)) == (240, 100, 50)
        assert rgb_to_hsl((255, 255, 255)) == (0, 0, 100)
        assert rgb_to_hsl((128, 128, 128)) == (0, 0, 50)

    def test_hex(self):
        """Test hex formatting with clamping."""
        assert rgb_to_hex((255, 0, 16)) == "#ff0010"
        assert rgb_to_hex((300, -5, 0)) == "#ff0000"

    def test_keys(self):
        """Test color key formatting and parsing."""
        assert rgb_key((1, 22, 255)) == "1,22,255"
        assert parse_key("1,22,255") == (1, 22, 255)


class TestDistances:
    """Test color distances and predicates."""

    def test_color_distance(self):
        """Test Euclidean distance."""
        assert color_distance((0, 0, 0), (3, 4, 0)) == pytest.approx(5.0)

    def test_color_distances(self):
        """Test vectorized distances."""
        pixels = np.array([[0, 0, 0], [3, 4, 0], [255, 255, 255]])
        distances = color_distances(pixels, (0, 0, 0))
        assert distances[:2] == pytest.approx([0.0, 5.0])
        assert distances[2] == pytest.approx(np.sqrt(3) * 255)

    def test_hue_distance_wraps(self):
        """Test that hue distance goes the short way round."""
        assert hue_distance(350, 10) == 20
        assert hue_distance(10, 350) == 20
        assert hue_distance(0, 180) == 180

    def test_is_gray(self):
        """Test the gray predicate on HSL triples."""
        assert is_gray((0, 0, 50))
        assert is_gray((0, 100, 96))
        assert is_gray((120, 100, 3))
        assert not is_gray((0, 100, 50))
        assert not is_gray((200, 11, 50))

    def test_is_white_like(self):
        """Test the white-like threshold."""
        assert is_white_like((255, 255, 255))
        assert is_white_like((253, 253, 253))
        assert not is_white_like((250, 250, 250))

    def test_brightness(self):
        """Test luma weights."""
        values = brightness(np.array([[255, 255, 255], [0, 0, 0], [0, 255, 0]]))
        assert values[0] == pytest.approx(255.0, abs=0.01)
        assert values[1] == 0.0
        assert values[2] == pytest.approx(0.7153 * 255)
