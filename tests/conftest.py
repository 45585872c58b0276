"""Pytest configuration and fixtures."""
import numpy as np
import pytest
from PIL import Image

RED = (255, 0, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)


def make_canvas(width: int, height: int, color=WHITE) -> np.ndarray:
    """Solid (H, W, 3) uint8 image."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :] = color
    return image


def bitmap_bits(bitmap) -> np.ndarray:
    """(H, W) boolean view of a bitmap."""
    return bitmap.data.reshape(bitmap.height, bitmap.width).astype(bool)


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(42)


@pytest.fixture
def two_color_image():
    """White 40x40 canvas with a red block above a blue block."""
    image = make_canvas(40, 40)
    image[5:20, 5:35] = RED
    image[22:36, 5:35] = BLUE
    return image


@pytest.fixture
def save_png(tmp_path):
    """Write a numpy image to a PNG file and return its path."""
    def _save(image: np.ndarray, name: str = "image.png"):
        path = tmp_path / name
        Image.fromarray(image).save(path)
        return path
    return _save
