"""Tests for palette post-processing and the remap table."""
import numpy as np
import pytest

from colortrace.palette import (
    ColorRemapTable,
    calculate_rates,
    ensure_visible,
    merge_hues,
    merge_speckle_and_gray,
    normalize_rates,
    postprocess_palette,
    quantize,
    reduce_palette,
)
from colortrace.raster_ingest import ingest_from_array
from colortrace.types import NoForegroundError, PaletteEntry, VectorizerConfig

from conftest import BLUE, RED, WHITE, make_canvas


def entry(rgb, rate):
    return PaletteEntry(rgb=rgb, rate=rate)


class TestColorRemapTable:
    """Test the append-only remap table."""

    def test_resolve_chain(self):
        """Test that chains resolve to their final key."""
        remap = ColorRemapTable()
        assert remap.add("1,1,1", "2,2,2")
        assert remap.add("2,2,2", "3,3,3")
        assert remap.resolve("1,1,1") == "3,3,3"
        assert remap.resolve("9,9,9") == "9,9,9"

    def test_first_mapping_wins(self):
        """Test that a key is only mapped once."""
        remap = ColorRemapTable()
        remap.add("1,1,1", "2,2,2")
        assert not remap.add("1,1,1", "3,3,3")
        assert remap.resolve("1,1,1") == "2,2,2"

    def test_refuses_cycles(self):
        """Test that self maps and cycles are refused."""
        remap = ColorRemapTable()
        assert not remap.add("1,1,1", "1,1,1")
        remap.add("1,1,1", "2,2,2")
        remap.add("2,2,2", "3,3,3")
        assert not remap.add("3,3,3", "1,1,1")
        assert len(remap) == 2

    def test_lookup_threshold(self):
        """Test exact and nearest lookups against the distance threshold."""
        remap = ColorRemapTable()
        remap.add("100,0,0", "255,0,0")
        colors = np.array([(100, 0, 0), (110, 0, 0), (0, 0, 200)])
        assert remap.lookup_many(colors, 40) == ["255,0,0", "255,0,0", None]
        assert remap.lookup_many(colors[:1], 0) == ["255,0,0"]

    def test_lookup_many(self):
        """Test batched lookups through a chain."""
        remap = ColorRemapTable()
        remap.add("0,0,0", "50,50,50")
        remap.add("50,50,50", "0,0,255")
        result = remap.lookup_many(np.array([[0, 0, 0], [3, 0, 0], [200, 200, 200]]), 10)
        assert result == ["0,0,255", "0,0,255", None]

    def test_empty_lookup(self):
        """Test lookups on an empty table."""
        assert ColorRemapTable().lookup_many(np.array([[1, 2, 3]]), 40) == [None]


class TestRates:
    """Test rate calculation and normalization."""

    def test_calculate_rates(self):
        """Test that counts become sorted percentages."""
        rates = calculate_rates([entry(RED, 30), entry(BLUE, 10), entry((0, 255, 0), 60)])
        assert [e.rate for e in rates] == [60.0, 30.0, 10.0]
        assert rates[0].rgb == (0, 255, 0)

    def test_normalize_rates(self):
        """Test rescaling to 100."""
        rates = normalize_rates([entry(RED, 30), entry(BLUE, 10)])
        assert [e.rate for e in rates] == [75.0, 25.0]


class TestMergeSpeckleAndGray:
    """Test background, noise and gray filtering."""

    def test_all_gray_collapses(self):
        """Test that an all-gray palette keeps only its main entry."""
        remap = ColorRemapTable()
        entries = [
            entry((0, 0, 0), 70.0),
            entry((128, 128, 128), 29.8),
            entry((100, 100, 100), 0.2),
        ]
        kept, all_gray = merge_speckle_and_gray(entries, WHITE, VectorizerConfig(), remap)

        assert all_gray
        assert [e.rgb for e in kept] == [(0, 0, 0)]
        assert remap.resolve("128,128,128") == "0,0,0"
        assert "100,100,100" not in remap

    def test_all_gray_keeps_top_entry(self):
        """Test that the top entry stays main even when it is background-like."""
        remap = ColorRemapTable()
        entries = [entry((250, 250, 250), 80.0), entry((20, 20, 20), 20.0)]
        kept, all_gray = merge_speckle_and_gray(entries, WHITE, VectorizerConfig(), remap)
        assert all_gray
        assert [e.rgb for e in kept] == [(250, 250, 250)]
        assert remap.resolve("20,20,20") == "250,250,250"

    def test_mixed_palette(self):
        """Test filtering of background, speckle gray and noise."""
        remap = ColorRemapTable()
        entries = [
            entry(RED, 50.0),
            entry(BLUE, 29.7),
            entry((128, 128, 128), 15.0),
            entry((250, 250, 250), 3.0),
            entry((90, 90, 90), 2.0),
            entry((0, 255, 0), 0.3),
        ]
        kept, all_gray = merge_speckle_and_gray(entries, WHITE, VectorizerConfig(), remap)

        assert not all_gray
        assert [e.rgb for e in kept] == [RED, BLUE, (128, 128, 128)]


class TestMergeHues:
    """Test merging of small entries with a similar hue."""

    def test_small_entry_absorbed(self):
        """Test that a small entry merges into a larger one."""
        remap = ColorRemapTable()
        merged = merge_hues(
            [entry(RED, 60.0), entry(BLUE, 37.0), entry((240, 10, 10), 3.0)],
            VectorizerConfig(),
            remap
        )
        assert [(e.rgb, e.rate) for e in merged] == [(RED, 63.0), (BLUE, 37.0)]
        assert remap.resolve("240,10,10") == "255,0,0"

    def test_larger_candidate_takes_over(self):
        """Test that the more frequent of two small entries survives."""
        remap = ColorRemapTable()
        merged = merge_hues(
            [entry(BLUE, 90.0), entry(RED, 3.0), entry((245, 5, 5), 4.0)],
            VectorizerConfig(),
            remap
        )
        assert [(e.rgb, e.rate) for e in merged] == [(BLUE, 90.0), ((245, 5, 5), 7.0)]
        assert remap.resolve("255,0,0") == "245,5,5"

    def test_gray_never_merged(self):
        """Test that gray entries are left alone."""
        remap = ColorRemapTable()
        entries = [entry((100, 100, 100), 90.0), entry((110, 110, 110), 3.0)]
        assert merge_hues(entries, VectorizerConfig(), remap) == entries
        assert len(remap) == 0


class TestReduceAndVisibility:
    """Test palette reduction and white replacement."""

    def test_reduce(self):
        """Test that dropped entries map to their nearest kept color."""
        remap = ColorRemapTable()
        entries = [
            entry(RED, 40.0),
            entry(BLUE, 30.0),
            entry((0, 255, 0), 20.0),
            entry((250, 10, 10), 10.0),
        ]
        kept = reduce_palette(entries, 2, remap)
        assert [e.rgb for e in kept] == [RED, BLUE]
        assert remap.resolve("250,10,10") == "255,0,0"
        assert remap.resolve("0,255,0") in {"255,0,0", "0,0,255"}

    def test_reduce_noop(self):
        """Test that small palettes are untouched."""
        remap = ColorRemapTable()
        entries = [entry(RED, 100.0)]
        assert reduce_palette(entries, 5, remap) == entries
        assert len(remap) == 0

    def test_white_becomes_black(self):
        """Test white entries on a white background."""
        remap = ColorRemapTable()
        visible = ensure_visible([entry(WHITE, 40.0), entry(RED, 60.0)], WHITE, remap)
        assert [e.rgb for e in visible] == [(0, 0, 0), RED]
        assert remap.resolve("255,255,255") == "0,0,0"

    def test_white_becomes_background(self):
        """Test white entries on a colored background."""
        remap = ColorRemapTable()
        visible = ensure_visible([entry(WHITE, 40.0), entry(RED, 60.0)], BLUE, remap)
        assert [e.rgb for e in visible] == [BLUE, RED]

    def test_duplicates_merged(self):
        """Test that a replaced entry merges with an equal color."""
        remap = ColorRemapTable()
        visible = ensure_visible(
            [entry(WHITE, 30.0), entry((0, 0, 0), 20.0), entry(RED, 50.0)], WHITE, remap
        )
        assert [(e.rgb, e.rate) for e in visible] == [((0, 0, 0), 50.0), (RED, 50.0)]


class TestPostprocessPalette:
    """Test the complete post-processing chain."""

    def test_rates_sum_to_100(self):
        """Test rates and remap targets of a mixed palette."""
        clusters = [
            entry(RED, 500),
            entry(BLUE, 300),
            entry((0, 200, 0), 120),
            entry((240, 10, 10), 30),
            entry((255, 200, 0), 30),
            entry((128, 0, 128), 20),
        ]
        palette, remap, all_gray = postprocess_palette(
            clusters, WHITE, VectorizerConfig(color_size=3)
        )

        assert not all_gray
        assert len(palette) <= 3
        assert sum(e.rate for e in palette) == pytest.approx(100.0, abs=0.05)

        live = {e.key for e in palette}
        for key in remap:
            assert remap.resolve(key) in live

    def test_hue_merge_disabled(self):
        """Test that merge_color_hue=False keeps similar hues apart."""
        clusters = [entry(RED, 600), entry(BLUE, 370), entry((240, 10, 10), 30)]

        merged, _, _ = postprocess_palette(clusters, WHITE, VectorizerConfig())
        separate, _, _ = postprocess_palette(
            clusters, WHITE, VectorizerConfig(merge_color_hue=False)
        )
        assert len(merged) == 2
        assert len(separate) == 3

    def test_remove_background_replaces_white(self):
        """Test the visibility pass is tied to remove_background."""
        clusters = [entry(WHITE, 50), entry(RED, 50)]

        kept, _, _ = postprocess_palette(clusters, BLUE, VectorizerConfig())
        replaced, _, _ = postprocess_palette(
            clusters, BLUE, VectorizerConfig(remove_background=True)
        )
        assert [e.rgb for e in kept] == [WHITE, RED]
        assert [e.rgb for e in replaced] == [BLUE, RED]


class TestQuantize:
    """Test the color stage on images."""

    def test_two_colors(self, two_color_image, rng):
        """Test that a two color drawing gives a two color palette."""
        result = quantize(ingest_from_array(two_color_image), VectorizerConfig().normalized(), rng)

        assert result.background == WHITE
        assert len(result.palette) == 2
        assert sum(e.rate for e in result.palette) == pytest.approx(100.0, abs=0.05)
        colors = sorted(result.palette, key=lambda e: e.rgb)
        assert np.abs(np.array(colors[0].rgb) - BLUE).max() <= 2
        assert np.abs(np.array(colors[1].rgb) - RED).max() <= 2
        assert not result.all_gray

    def test_solid_color_single_entry(self, rng):
        """Test a uniform red image with a one color palette."""
        config = VectorizerConfig(color_size=1).normalized()
        result = quantize(ingest_from_array(make_canvas(4, 4, RED)), config, rng)

        assert result.background == WHITE
        assert len(result.palette) == 1
        assert result.palette[0].rate == pytest.approx(100.0)
        assert np.abs(np.array(result.palette[0].rgb) - RED).max() <= 2

    def test_grayscale_drawing(self, rng):
        """Test that black on white is flagged as all gray."""
        image = make_canvas(20, 20)
        image[5:15, 5:15] = 0
        result = quantize(ingest_from_array(image), VectorizerConfig().normalized(), rng)
        assert result.all_gray
        assert [e.rgb for e in result.palette] == [(0, 0, 0)]

    def test_blank_image(self, rng):
        """Test that a white image has no foreground."""
        with pytest.raises(NoForegroundError):
            quantize(ingest_from_array(make_canvas(10, 10)), VectorizerConfig(), rng)
