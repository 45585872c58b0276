"""colortrace: color raster to SVG vectorization.

K-means++ color clustering reduces an image to a small palette; each palette
layer is traced into smooth outlines with the Potrace algorithm.
"""
from colortrace.types import (
    Curve,
    PaletteEntry,
    SvgOptions,
    TraceResult,
    VectorizerConfig,
    VectorizationError,
    ConfigError,
    ImageLoadError,
    NoForegroundError,
    VectorizationTimeout,
)
from colortrace.pipeline import LoadStatus, Vectorizer, vectorize_file

__version__ = "0.1.0"

__all__ = [
    "Curve",
    "PaletteEntry",
    "SvgOptions",
    "TraceResult",
    "VectorizerConfig",
    "VectorizationError",
    "ConfigError",
    "ImageLoadError",
    "NoForegroundError",
    "VectorizationTimeout",
    "LoadStatus",
    "Vectorizer",
    "vectorize_file",
]
