"""Color space conversions between RGB, XYZ, Lab, HSL and hex."""
import colorsys
import math
import warnings
from typing import Sequence, Tuple

import numpy as np
from skimage import color


def _as_rows(values) -> Tuple[np.ndarray, tuple]:
    arr = np.asarray(values, dtype=np.float64)
    if arr.shape[-1] != 3:
        raise ValueError(f"Expected 3 channels, got shape {arr.shape}")
    return arr.reshape(-1, 3), arr.shape


def rgb_to_xyz(rgb) -> np.ndarray:
    """
    Convert sRGB colors to CIE XYZ (D65).

    Args:
        rgb: RGB values in [0, 255], shape (..., 3)

    Returns:
        XYZ values with Y in [0, 1]
    """
    rows, shape = _as_rows(rgb)
    return color.rgb2xyz(rows / 255.0).reshape(shape)


def xyz_to_rgb(xyz) -> np.ndarray:
    """
    Convert CIE XYZ (D65) to sRGB integers.

    Out-of-gamut values are clipped to [0, 255].
    """
    rows, shape = _as_rows(xyz)
    rgb = color.xyz2rgb(rows)
    return np.clip(np.rint(rgb * 255.0), 0, 255).astype(np.int32).reshape(shape)


def xyz_to_lab(xyz) -> np.ndarray:
    rows, shape = _as_rows(xyz)
    return color.xyz2lab(rows).reshape(shape)


def lab_to_xyz(lab) -> np.ndarray:
    rows, shape = _as_rows(lab)
    with warnings.catch_warnings():
        # Cluster means can land outside the gamut; lab2xyz clips Z < 0
        warnings.simplefilter("ignore", UserWarning)
        return color.lab2xyz(rows).reshape(shape)


def rgb_to_lab(rgb) -> np.ndarray:
    """
    Convert sRGB colors to CIE Lab.

    Args:
        rgb: RGB values in [0, 255], shape (..., 3)

    Returns:
        Lab values, L in [0, 100]
    """
    return xyz_to_lab(rgb_to_xyz(rgb))


def lab_to_rgb(lab) -> np.ndarray:
    """Convert CIE Lab to sRGB integers in [0, 255]."""
    return xyz_to_rgb(lab_to_xyz(lab))


def rgb_to_hsl(rgb: Sequence[int]) -> Tuple[int, int, int]:
    """
    Convert an RGB color to HSL.

    Args:
        rgb: (r, g, b) in [0, 255]

    Returns:
        (hue in degrees, saturation in percent, lightness in percent), rounded
    """
    r, g, b = (float(c) / 255.0 for c in rgb)
    h, l, s = colorsys.rgb_to_hls(r, g, b)
    return int(round(h * 360)), int(round(s * 100)), int(round(l * 100))


def rgb_to_hex(rgb: Sequence[int]) -> str:
    r, g, b = (int(min(255, max(0, c))) for c in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def rgb_key(rgb: Sequence[int]) -> str:
    """Canonical 'r,g,b' key identifying a color."""
    r, g, b = (int(c) for c in rgb)
    return f"{r},{g},{b}"


def parse_key(key: str) -> Tuple[int, int, int]:
    r, g, b = (int(part) for part in key.split(','))
    return r, g, b


def color_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance between two colors."""
    return math.dist(tuple(float(c) for c in a), tuple(float(c) for c in b))


def color_distances(pixels: np.ndarray, target: Sequence[float]) -> np.ndarray:
    """Euclidean distance of every row of ``pixels`` (N, 3) to ``target``."""
    diff = np.asarray(pixels, dtype=np.float64) - np.asarray(target, dtype=np.float64)
    return np.sqrt(np.einsum('ij,ij->i', diff, diff))


def brightness(pixels: np.ndarray) -> np.ndarray:
    """Rec. 709 luma of (N, 3) RGB rows, in [0, 255]."""
    pixels = np.asarray(pixels, dtype=np.float64)
    return 0.2126 * pixels[:, 0] + 0.7153 * pixels[:, 1] + 0.0721 * pixels[:, 2]


def is_gray(hsl: Sequence[int]) -> bool:
    """True for near black, near white and weakly saturated HSL colors."""
    _, s, l = hsl
    return l >= 95 or l <= 5 or s <= 10


def hue_distance(h1: float, h2: float) -> float:
    """Circular distance between two hues in degrees."""
    distance = abs(h1 - h2) % 360
    return 360 - distance if distance > 180 else distance


def is_white_like(rgb: Sequence[int]) -> bool:
    return color_distance(rgb, (255, 255, 255)) < 5
