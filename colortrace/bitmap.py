"""Binary bitmaps and the per-color layer builder."""
import logging
from typing import List, Optional, Tuple

import numpy as np
from scipy.spatial.distance import cdist

from colortrace.color_space import brightness, color_distances
from colortrace.palette import QuantizeResult
from colortrace.types import RGB, PaletteEntry, PixelSource, VectorizerConfig

logger = logging.getLogger(__name__)


class Bitmap:
    """Fixed-size binary grid stored as a flat uint8 array indexed y * width + x."""

    def __init__(self, width: int, height: int, data: Optional[np.ndarray] = None):
        self.width = int(width)
        self.height = int(height)
        self.size = self.width * self.height
        if data is None:
            self.data = np.zeros(self.size, dtype=np.uint8)
        else:
            data = np.asarray(data).reshape(-1)
            if data.size != self.size:
                raise ValueError(
                    f"Bitmap data has {data.size} cells, expected {self.width}x{self.height}"
                )
            self.data = (data != 0).astype(np.uint8)

    @classmethod
    def from_array(cls, mask: np.ndarray) -> "Bitmap":
        """Build a bitmap from a (H, W) boolean or 0/1 array."""
        mask = np.asarray(mask)
        height, width = mask.shape
        return cls(width, height, mask)

    def at(self, x: int, y: int) -> bool:
        """Bit at (x, y); everything outside the grid is off."""
        if 0 <= x < self.width and 0 <= y < self.height:
            return self.data[y * self.width + x] == 1
        return False

    def flip(self, x: int, y: int) -> None:
        self.data[y * self.width + x] ^= 1

    def flip_row(self, y: int, x_start: int, x_end: int) -> None:
        """Invert the bits of row ``y`` for x in [x_start, x_end)."""
        if x_start < x_end:
            offset = y * self.width
            self.data[offset + x_start:offset + x_end] ^= 1

    def index(self, i: int) -> Tuple[int, int]:
        """(x, y) of flat index ``i``."""
        return i % self.width, i // self.width

    def find_next(self, start: int = 0) -> Optional[int]:
        """Flat index of the first on bit at or after ``start``, or None."""
        if start >= self.size:
            return None
        offset = int(np.argmax(self.data[start:]))
        if self.data[start + offset] == 0:
            return None
        return start + offset

    def count(self) -> int:
        return int(self.data.sum())

    def copy(self) -> "Bitmap":
        return Bitmap(self.width, self.height, self.data.copy())


def _remap_targets(
    pixels: np.ndarray,
    candidates: np.ndarray,
    quantized: QuantizeResult,
    similar_color_distance: float
) -> np.ndarray:
    """
    Palette index each candidate pixel is remapped to, -1 for none.

    Lookups run once per distinct color.
    """
    targets = np.full(len(pixels), -1, dtype=np.int64)
    if len(quantized.remap) == 0 or not np.any(candidates):
        return targets

    index_of = {key: i for i, key in enumerate(quantized.keys)}
    colors, inverse = np.unique(pixels[candidates], axis=0, return_inverse=True)
    resolved = quantized.remap.lookup_many(colors, similar_color_distance)
    color_targets = np.array(
        [index_of.get(key, -1) if key is not None else -1 for key in resolved],
        dtype=np.int64
    )
    targets[candidates] = color_targets[inverse.reshape(-1)]
    return targets


def build_layers(
    source: PixelSource,
    quantized: QuantizeResult,
    config: VectorizerConfig
) -> List[Tuple[PaletteEntry, Bitmap]]:
    """
    Build one bitmap per palette entry, in palette order.

    A pixel is on for an entry when it is not background-like and either the
    palette has a single entry, the pixel lies within
    ``similar_color_distance + kmeans_gap_fix_value`` of the entry, or the
    remap table resolves the pixel's color to the entry.

    Args:
        source: Pixel source
        quantized: Result of the color stage
        config: Configuration

    Returns:
        List of (entry, bitmap)
    """
    width, height = source.width, source.height
    pixels = source.pixels()
    foreground = color_distances(pixels, quantized.background) > config.bg_color_distance

    if len(quantized.palette) == 1:
        entry = quantized.palette[0]
        return [(entry, Bitmap(width, height, foreground))]

    palette_rgb = np.array([e.rgb for e in quantized.palette], dtype=np.float64)
    distances = cdist(pixels, palette_rgb)
    near = distances <= config.similar_color_distance + config.kmeans_gap_fix_value

    targets = _remap_targets(pixels, foreground, quantized, config.similar_color_distance)

    layers = []
    for i, entry in enumerate(quantized.palette):
        bits = foreground & (near[:, i] | (targets == i))
        layers.append((entry, Bitmap(width, height, bits)))
        logger.debug(f"Layer {entry.hex}: {int(bits.sum())} pixels")

    return layers


def build_monochrome_bitmap(
    source: PixelSource,
    background: RGB,
    config: VectorizerConfig
) -> Bitmap:
    """
    Build the single mask used in monochrome mode.

    ``blacklevel`` marks dark pixels, ``bgcolor`` marks pixels far from the
    background and ``balance`` marks either.
    """
    pixels = source.pixels()

    dark = brightness(pixels) < config.black_level
    if config.bitmap_type == 'blacklevel':
        bits = dark
    elif config.bitmap_type == 'bgcolor':
        bits = color_distances(pixels, background) > config.bgcolor_level
    else:
        bits = dark | (color_distances(pixels, background) > config.balance_level)

    return Bitmap(source.width, source.height, bits)
