"""Palette post-processing and the color remap table."""
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
from scipy.spatial.distance import cdist

from colortrace.background import detect_background
from colortrace.color_space import (
    color_distance,
    color_distances,
    hue_distance,
    is_gray,
    is_white_like,
    parse_key,
    rgb_key,
    rgb_to_hex,
)
from colortrace.kmeans import cluster_colors
from colortrace.types import (
    RGB,
    Deadline,
    NoForegroundError,
    PaletteEntry,
    PixelSource,
    VectorizerConfig,
)

logger = logging.getLogger(__name__)

# Entries at or above this rate are never absorbed by hue merging
HUE_MERGE_RATE_MIN = 5


class ColorRemapTable:
    """
    Append-only mapping from eliminated color keys to replacement keys.

    The first mapping recorded for a key wins, and additions that would close
    a cycle are refused, so following the chain from any key always ends.
    """

    def __init__(self):
        self._mapping: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._mapping)

    def __contains__(self, key: str) -> bool:
        return key in self._mapping

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def items(self):
        return self._mapping.items()

    def add(self, source: str, target: str) -> bool:
        """
        Record that ``source`` is drawn as ``target``.

        Returns:
            True if the mapping was recorded
        """
        if not source or not target or source == target:
            return False
        if source in self._mapping:
            return False
        if self.resolve(target) == source:
            logger.debug(f"Refused remap {source} -> {target}: would create a cycle")
            return False

        self._mapping[source] = target
        logger.debug(f"Remap {source} -> {target}")
        return True

    def resolve(self, key: str) -> str:
        """Follow the chain from ``key`` to a key with no mapping."""
        current = key
        for _ in range(len(self._mapping)):
            if current not in self._mapping:
                break
            current = self._mapping[current]
        return current

    def lookup_many(
        self,
        colors: np.ndarray,
        similar_color_distance: float
    ) -> List[Optional[str]]:
        """
        Resolve the replacement key for many colors at once.

        A color matches the nearest remapped source color that is strictly
        closer than ``similar_color_distance`` (an exact match always counts).

        Args:
            colors: (M, 3) RGB array
            similar_color_distance: Similarity threshold

        Returns:
            Resolved target key per color, or None
        """
        colors = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
        if not self._mapping or len(colors) == 0:
            return [None] * len(colors)

        sources = list(self._mapping)
        source_rgb = np.array([parse_key(k) for k in sources], dtype=np.float64)
        distances = cdist(colors, source_rgb)
        nearest = np.argmin(distances, axis=1)
        nearest_distance = distances[np.arange(len(colors)), nearest]
        matched = (nearest_distance < similar_color_distance) | (nearest_distance == 0)

        resolved = {}
        result: List[Optional[str]] = []
        for is_match, index in zip(matched, nearest):
            if not is_match:
                result.append(None)
                continue
            if index not in resolved:
                resolved[index] = self.resolve(sources[index])
            result.append(resolved[index])
        return result


@dataclass(frozen=True)
class QuantizeResult:
    """Output of the color stage, read-only during tracing."""
    background: RGB
    palette: Tuple[PaletteEntry, ...]
    remap: ColorRemapTable
    all_gray: bool = False

    @property
    def keys(self) -> List[str]:
        return [entry.key for entry in self.palette]


def sort_by_rate(entries: List[PaletteEntry]) -> List[PaletteEntry]:
    """Stable sort by descending rate."""
    return sorted(entries, key=lambda e: e.rate, reverse=True)


def calculate_rates(entries: List[PaletteEntry]) -> List[PaletteEntry]:
    """Turn member counts into percentages (2 decimals) and sort."""
    total = sum(e.rate for e in entries)
    if total <= 0:
        return list(entries)
    return sort_by_rate([e.with_rate(round(e.rate / total * 100, 2)) for e in entries])


def _near_background(entry: PaletteEntry, background: RGB, config: VectorizerConfig) -> bool:
    return color_distance(entry.rgb, background) <= config.bg_color_distance


def merge_speckle_and_gray(
    entries: List[PaletteEntry],
    background: RGB,
    config: VectorizerConfig,
    remap: ColorRemapTable
) -> Tuple[List[PaletteEntry], bool]:
    """
    Drop background-like, noisy and speckle gray entries.

    A palette made only of grays collapses to its most prominent entry; the
    other grays not near the background are remapped onto it.

    Returns:
        (kept entries, all_gray flag)
    """
    if entries and all(is_gray(e.hsl) for e in entries):
        main = entries[0]
        for entry in entries:
            if entry is main or _near_background(entry, background, config):
                continue
            if entry.rate < config.keep_color_rate_min:
                continue
            remap.add(entry.key, main.key)
        return [main], True

    kept = []
    main_gray = None
    for entry in entries:
        if _near_background(entry, background, config):
            continue
        if entry.rate < config.keep_color_rate_min:
            continue
        if not is_gray(entry.hsl):
            kept.append(entry)
            continue

        if main_gray is None:
            main_gray = entry
            kept.append(entry)
            continue

        # Small grays next to a dominant gray are speckle
        if main_gray.rate / entry.rate > 5 and entry.rate < 10:
            continue
        kept.append(entry)

    return kept, False


def merge_hues(
    entries: List[PaletteEntry],
    config: VectorizerConfig,
    remap: ColorRemapTable
) -> List[PaletteEntry]:
    """
    Merge small chromatic entries into a kept entry of nearly the same hue.

    The larger of the two absorbs the other's rate; the absorbed color is
    remapped to the absorber.
    """
    final: List[PaletteEntry] = []
    for entry in entries:
        if entry.rate >= HUE_MERGE_RATE_MIN:
            final.append(entry)
            continue

        for index, existing in enumerate(final):
            if is_gray(entry.hsl) or is_gray(existing.hsl):
                continue
            if hue_distance(existing.hsl[0], entry.hsl[0]) > config.merge_color_hue_min:
                continue
            if color_distance(entry.rgb, existing.rgb) > config.similar_color_distance:
                continue

            merged_rate = round(entry.rate + existing.rate, 2)
            if entry.rate > existing.rate:
                final[index] = entry.with_rate(merged_rate)
                remap.add(existing.key, entry.key)
            else:
                final[index] = existing.with_rate(merged_rate)
                remap.add(entry.key, existing.key)
            break
        else:
            final.append(entry)

    return final


def reduce_palette(
    entries: List[PaletteEntry],
    color_size: int,
    remap: ColorRemapTable
) -> List[PaletteEntry]:
    """Keep the ``color_size`` largest entries, remapping the rest to their nearest kept color."""
    if len(entries) <= color_size:
        return list(entries)

    ordered = sort_by_rate(entries)
    kept = ordered[:color_size]
    for dropped in ordered[color_size:]:
        target = min(kept, key=lambda e: color_distance(dropped.rgb, e.rgb))
        remap.add(dropped.key, target.key)

    logger.debug(f"Reduced palette from {len(entries)} to {len(kept)} colors")
    return kept


def ensure_visible(
    entries: List[PaletteEntry],
    background: RGB,
    remap: ColorRemapTable
) -> List[PaletteEntry]:
    """
    Replace white-like entries when the background rect is not drawn.

    White is drawn in the background color, or in black when the background
    is itself white-like. Entries that end up with the same color merge.
    """
    replacement = (0, 0, 0) if is_white_like(background) else tuple(background)

    merged: Dict[str, PaletteEntry] = {}
    for entry in entries:
        if is_white_like(entry.rgb):
            remap.add(entry.key, rgb_key(replacement))
            entry = PaletteEntry(rgb=replacement, rate=entry.rate)

        if entry.key in merged:
            previous = merged[entry.key]
            merged[entry.key] = previous.with_rate(previous.rate + entry.rate)
        else:
            merged[entry.key] = entry

    return list(merged.values())


def normalize_rates(entries: List[PaletteEntry]) -> List[PaletteEntry]:
    """Rescale rates so the palette sums to 100."""
    total = sum(e.rate for e in entries)
    if total <= 0:
        return list(entries)
    return [e.with_rate(round(e.rate / total * 100, 2)) for e in entries]


def postprocess_palette(
    entries: List[PaletteEntry],
    background: RGB,
    config: VectorizerConfig
) -> Tuple[List[PaletteEntry], ColorRemapTable, bool]:
    """
    Turn raw clusters into the final palette.

    Args:
        entries: Clusters with member counts as rates
        background: Detected background color
        config: Configuration

    Returns:
        (palette, remap table, all_gray flag)
    """
    remap = ColorRemapTable()

    palette = calculate_rates(entries)
    palette, all_gray = merge_speckle_and_gray(palette, background, config, remap)
    if config.merge_color_hue:
        palette = merge_hues(palette, config, remap)
    palette = reduce_palette(palette, config.color_size, remap)
    if config.remove_background:
        palette = ensure_visible(palette, background, remap)
    palette = normalize_rates(palette)

    return palette, remap, all_gray


def foreground_samples(
    source: PixelSource,
    background: RGB,
    config: VectorizerConfig
) -> np.ndarray:
    """Pixels farther than ``bg_color_distance`` from the background, as (N, 3)."""
    pixels = source.pixels()
    return pixels[color_distances(pixels, background) > config.bg_color_distance]


def quantize(
    source: PixelSource,
    config: VectorizerConfig,
    rng: Optional[np.random.Generator] = None,
    deadline: Optional[Deadline] = None
) -> QuantizeResult:
    """
    Reduce an image to a small palette.

    Args:
        source: Pixel source
        config: Normalized configuration
        rng: Random generator for K-means++
        deadline: Optional deadline

    Returns:
        QuantizeResult

    Raises:
        NoForegroundError: If no pixel or no palette entry survives
        VectorizationTimeout: If the deadline expires
    """
    background = detect_background(source, config)
    samples = foreground_samples(source, background, config)
    if len(samples) == 0:
        raise NoForegroundError("Every pixel is within the background color distance")

    clusters = cluster_colors(samples, config, rng=rng, deadline=deadline)
    palette, remap, all_gray = postprocess_palette(clusters, background, config)
    if not palette:
        raise NoForegroundError("No palette color survived post-processing")

    logger.info(
        f"Palette: {', '.join(f'{rgb_to_hex(e.rgb)} {e.rate}%' for e in palette)}"
        + (" (grayscale)" if all_gray else "")
    )
    return QuantizeResult(
        background=background,
        palette=tuple(palette),
        remap=remap,
        all_gray=all_gray
    )
