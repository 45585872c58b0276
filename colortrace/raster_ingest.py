"""Raster image ingestion with alpha flattening and downscaling."""
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
from PIL import Image
from PIL import ImageOps, UnidentifiedImageError

from colortrace.types import ImageLoadError, PixelSource

logger = logging.getLogger(__name__)

# Pixels below this alpha (of 255) are more than half transparent and become white
OPAQUE_ALPHA_MIN = 128


def fit_size(width: int, height: int, max_side_length: Optional[int]) -> Tuple[int, int, float]:
    """
    Compute the downscaled size for an image.

    Args:
        width: Original width
        height: Original height
        max_side_length: Limit for the longer side, None for no limit

    Returns:
        (new_width, new_height, scale) with scale == 1.0 when no resize is needed
    """
    max_side = max(width, height)
    if not max_side_length or max_side <= max_side_length:
        return width, height, 1.0

    scale = max_side_length / max_side
    new_width = max(1, int(round(width * scale)))
    new_height = max(1, int(round(height * scale)))
    return new_width, new_height, scale


def flatten_alpha(rgba: np.ndarray) -> np.ndarray:
    """
    Replace more than half transparent pixels with opaque white.

    Args:
        rgba: (H, W, 4) uint8 array

    Returns:
        (H, W, 3) uint8 array
    """
    rgb = rgba[..., :3].copy()
    transparent = rgba[..., 3] < OPAQUE_ALPHA_MIN
    rgb[transparent] = 255
    return rgb


def load_image(
    path: Union[str, Path],
    max_side_length: Optional[int] = None
) -> PixelSource:
    """
    Load a raster image file.

    Args:
        path: Path to image file
        max_side_length: Downscale so the longer side fits, None to keep size

    Returns:
        PixelSource with RGB pixels

    Raises:
        FileNotFoundError: If file doesn't exist
        ImageLoadError: If file cannot be decoded
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    if not path.is_file():
        raise ImageLoadError(f"Path is not a file: {path}")

    try:
        with Image.open(path) as img:
            # Apply EXIF orientation transformation to handle rotation
            img = ImageOps.exif_transpose(img)

            has_alpha = img.mode in ('RGBA', 'LA', 'PA') or (
                img.mode == 'P' and 'transparency' in img.info
            )
            img = img.convert('RGBA' if has_alpha else 'RGB')

            width, height = img.size
            new_width, new_height, scale = fit_size(width, height, max_side_length)
            if scale != 1.0:
                img = img.resize((new_width, new_height), Image.Resampling.BILINEAR)
                logger.info(
                    f"Downscaled {path.name} from {width}x{height} to {new_width}x{new_height}"
                )

            pixels = np.array(img, dtype=np.uint8)

    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageLoadError(f"Failed to load image {path}: {e}")

    if has_alpha:
        pixels = flatten_alpha(pixels)

    return PixelSource(
        rgb=pixels,
        original_path=str(path),
        has_alpha=has_alpha,
        scale_back=scale
    )


def ingest_from_array(
    image: np.ndarray,
    path: str = "",
    max_side_length: Optional[int] = None
) -> PixelSource:
    """
    Create a PixelSource from a numpy array.

    Args:
        image: (H, W), (H, W, 3) or (H, W, 4) array, uint8 or floats in [0, 1]
        path: Optional path for reference
        max_side_length: Downscale so the longer side fits, None to keep size

    Returns:
        PixelSource

    Raises:
        ImageLoadError: If the array has an unsupported shape
    """
    image = np.asarray(image)

    if image.ndim == 2:
        # Grayscale - convert to RGB
        image = np.stack([image] * 3, axis=-1)

    if image.ndim != 3:
        raise ImageLoadError(f"Expected 2D or 3D array, got {image.ndim}D")

    if image.shape[0] == 0 or image.shape[1] == 0:
        raise ImageLoadError(f"Image has no pixels: shape {image.shape}")

    if image.dtype != np.uint8:
        image = image.astype(np.float64)
        # Normalize [0, 1] floats to [0, 255]
        if image.max() <= 1.0:
            image = image * 255.0
        image = np.clip(np.rint(image), 0, 255).astype(np.uint8)

    if image.shape[2] == 4:
        has_alpha = True
    elif image.shape[2] == 3:
        has_alpha = False
    else:
        raise ImageLoadError(f"Expected 3 or 4 channels, got {image.shape[2]}")

    height, width = image.shape[:2]
    new_width, new_height, scale = fit_size(width, height, max_side_length)
    if scale != 1.0:
        resized = Image.fromarray(image).resize(
            (new_width, new_height), Image.Resampling.BILINEAR
        )
        image = np.array(resized, dtype=np.uint8)

    rgb = flatten_alpha(image) if has_alpha else np.ascontiguousarray(image)

    return PixelSource(
        rgb=rgb,
        original_path=path,
        has_alpha=has_alpha,
        scale_back=scale
    )
