"""Background color detection from border samples."""
import logging
import math
from collections import Counter
from typing import List, Tuple

import numpy as np

from colortrace.color_space import color_distance, color_distances, rgb_to_hex
from colortrace.types import RGB, PixelSource, VectorizerConfig

logger = logging.getLogger(__name__)

SAMPLES_PER_SIDE = 7
WHITE: RGB = (255, 255, 255)


def background_sample_points(width: int, height: int) -> List[Tuple[int, int]]:
    """
    Border sample points used to guess the background color.

    Points step along the top row, right column, bottom row and left column
    (each inset slightly from the edge), followed by the image center. All
    coordinates are clamped into the image and duplicates removed.

    Args:
        width: Image width
        height: Image height

    Returns:
        List of (x, y) pixel coordinates
    """
    step_w = max(1, math.ceil(width / SAMPLES_PER_SIDE))
    step_h = max(1, math.ceil(height / SAMPLES_PER_SIDE))

    candidates = []
    candidates.extend((x, 1) for x in range(1, width + 1, step_w))
    candidates.extend((width - 1, y) for y in range(1, height + 1, step_h))
    candidates.extend((x, height - 2) for x in range(1, width + 1, step_w))
    candidates.extend((4, y) for y in range(1, height + 1, step_h))

    def clamp(point):
        x, y = point
        return min(max(x, 0), width - 1), min(max(y, 0), height - 1)

    points = list(dict.fromkeys(clamp(p) for p in candidates))
    points.append(clamp((math.ceil(width / 2), math.ceil(height / 2))))
    return points


def merge_similar_colors(
    counts: List[Tuple[RGB, int]],
    distance: float
) -> List[Tuple[RGB, int]]:
    """
    Merge colors within ``distance`` of an already kept color (single pass).

    The merged count goes to whichever of the two colors is more frequent.

    Args:
        counts: (color, count) pairs, most frequent first
        distance: Similarity threshold

    Returns:
        Merged (color, count) pairs sorted by descending count
    """
    merged: List[List] = []
    for color, count in counts:
        for item in merged:
            if color_distance(item[0], color) <= distance:
                if count > item[1]:
                    item[0] = color
                item[1] += count
                break
        else:
            merged.append([color, count])

    merged.sort(key=lambda item: item[1], reverse=True)
    return [(tuple(color), count) for color, count in merged]


def detect_background(source: PixelSource, config: VectorizerConfig) -> RGB:
    """
    Detect the background color of an image.

    The most frequent border sample color (after merging similar samples)
    wins. An image with no pixel farther than ``bg_color_distance`` from that
    color is uniform; it gets a white background so the whole image is
    traced as foreground.

    Args:
        source: Pixel source
        config: Configuration

    Returns:
        Background RGB color
    """
    points = background_sample_points(source.width, source.height)
    counter = Counter(source.pixel(x, y) for x, y in points)

    merged = merge_similar_colors(counter.most_common(), config.similar_color_distance)
    background = merged[0][0]

    distances = color_distances(source.pixels(), background)
    if not np.any(distances > config.bg_color_distance):
        logger.info(
            f"Image is uniform ({rgb_to_hex(background)}), using white background"
        )
        return WHITE

    logger.info(f"Detected background color {rgb_to_hex(background)}")
    return background
