"""Vectorization pipeline: load, quantize, trace and serialize."""
import logging
from dataclasses import replace
from enum import IntEnum
from pathlib import Path as FilePath
from typing import Dict, List, Optional, Union

import numpy as np

from colortrace.background import detect_background
from colortrace.bitmap import Bitmap, build_layers, build_monochrome_bitmap
from colortrace.color_space import rgb_to_hex
from colortrace.curve import adjust_vertices, reverse, smooth
from colortrace.optimize import optimize_curve
from colortrace.palette import QuantizeResult, quantize
from colortrace.polygon import best_polygon, calc_lon, calc_sums
from colortrace.raster_ingest import ingest_from_array, load_image
from colortrace.svg_export import generate_svg, save_svg
from colortrace.tracer import trace_bitmap
from colortrace.types import (
    Curve,
    Deadline,
    ImageLoadError,
    Layer,
    NoForegroundError,
    Path,
    PixelSource,
    SvgOptions,
    TraceResult,
    VectorizerConfig,
)

logger = logging.getLogger(__name__)


class LoadStatus(IntEnum):
    """Outcome of loading an image."""
    OK = 0
    EMPTY_PATH = 1
    FILE_NOT_FOUND = 2
    NO_TRACEABLE_CONTENT = 3
    UNREADABLE = 4


def path_to_curve(path: Path, config: VectorizerConfig) -> Curve:
    """Run the curve fitting stages on one traced path."""
    path.sums = calc_sums(path.points)
    path.lon = calc_lon(path.points)
    path.polygon = best_polygon(path.points, path.sums, path.lon)

    curve = adjust_vertices(path)
    if path.sign == "-":
        curve = reverse(curve)
    curve = smooth(curve, config.alphamax)
    if config.optcurve:
        curve = optimize_curve(curve, config.opttolerance)
    return curve


def trace_layer(
    bitmap: Bitmap,
    config: VectorizerConfig,
    turnpolicy: Optional[str] = None,
    deadline: Optional[Deadline] = None
) -> List[Curve]:
    """
    Trace one bitmap into smoothed curves.

    Args:
        bitmap: Layer bitmap
        config: Configuration
        turnpolicy: Overrides config.turnpolicy when given
        deadline: Optional deadline checked per path

    Returns:
        One curve per kept path
    """
    paths = trace_bitmap(
        bitmap,
        turnpolicy=turnpolicy or config.turnpolicy,
        turdsize=config.turdsize,
        deadline=deadline
    )
    return [path_to_curve(path, config) for path in paths]


class Vectorizer:
    """
    Raster to SVG vectorizer.

    Usage:
        vectorizer = Vectorizer(VectorizerConfig(color_size=4))
        if vectorizer.load_image("logo.png") == LoadStatus.OK:
            svg = vectorizer.get_svg()
    """

    def __init__(
        self,
        config: Optional[VectorizerConfig] = None,
        svg_options: Optional[SvgOptions] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """Initialize vectorizer.

        Args:
            config: Configuration, defaults if None; normalized on use
            svg_options: Default SVG options
            rng: Random generator for K-means++; seeded from
                config.random_seed if None
        """
        self.config = (config or VectorizerConfig()).normalized()
        self.svg_options = svg_options or SvgOptions()
        self._rng = rng
        self.clear()

    def clear(self) -> None:
        """Forget the loaded image and every intermediate result."""
        self.source: Optional[PixelSource] = None
        self.background = None
        self.quantized: Optional[QuantizeResult] = None
        self.bitmap: Optional[Bitmap] = None
        self._result: Optional[TraceResult] = None

    def _make_rng(self) -> np.random.Generator:
        if self._rng is not None:
            return self._rng
        return np.random.default_rng(self.config.random_seed)

    def _max_side_length(self) -> Optional[int]:
        # Only color mode downscales large images
        return self.config.max_side_length if self.config.mode == "color" else None

    def load_image(self, path: Union[str, FilePath, None]) -> LoadStatus:
        """
        Load and prepare an image file.

        Input problems are reported as a status, never raised.

        Args:
            path: Image file path

        Returns:
            LoadStatus
        """
        self.clear()
        if not path:
            return LoadStatus.EMPTY_PATH

        try:
            source = load_image(path, max_side_length=self._max_side_length())
        except FileNotFoundError as e:
            logger.error(str(e))
            return LoadStatus.FILE_NOT_FOUND
        except ImageLoadError as e:
            logger.error(str(e))
            return LoadStatus.UNREADABLE

        return self._prepare(source)

    def load_array(self, image: np.ndarray) -> LoadStatus:
        """Load and prepare an image given as a numpy array."""
        self.clear()
        try:
            source = ingest_from_array(image, max_side_length=self._max_side_length())
        except ImageLoadError as e:
            logger.error(str(e))
            return LoadStatus.UNREADABLE

        return self._prepare(source)

    def _prepare(self, source: PixelSource) -> LoadStatus:
        self.source = source
        logger.info(f"Loaded {source.width}x{source.height} image")

        if self.config.mode == "color":
            try:
                self.quantized = quantize(
                    source,
                    self.config,
                    rng=self._make_rng(),
                    deadline=Deadline(self.config.timeout)
                )
            except NoForegroundError as e:
                logger.warning(f"Nothing to trace: {e}")
                return LoadStatus.NO_TRACEABLE_CONTENT
            self.background = self.quantized.background
            return LoadStatus.OK

        self.background = detect_background(source, self.config)
        self.bitmap = build_monochrome_bitmap(source, self.background, self.config)
        if self.bitmap.count() == 0:
            logger.warning("Nothing to trace: monochrome mask is empty")
            return LoadStatus.NO_TRACEABLE_CONTENT
        return LoadStatus.OK

    def is_valid_svg(self) -> bool:
        """True when a loaded image has something to trace."""
        if self.config.mode == "color":
            return self.quantized is not None and len(self.quantized.palette) > 0
        return self.bitmap is not None and self.bitmap.count() > 0

    def trace(self) -> Optional[TraceResult]:
        """
        Trace the loaded image.

        Returns:
            TraceResult, or None if nothing traceable is loaded

        Raises:
            VectorizationTimeout: If config.timeout expires while tracing
        """
        if self._result is not None:
            return self._result
        if self.source is None or not self.is_valid_svg():
            return None

        deadline = Deadline(self.config.timeout)
        layers = []

        if self.config.mode == "color":
            turnpolicy = "white" if self.quantized.all_gray else self.config.turnpolicy
            for entry, bitmap in build_layers(self.source, self.quantized, self.config):
                curves = trace_layer(bitmap, self.config, turnpolicy, deadline)
                logger.info(f"Layer {entry.hex} ({entry.rate}%): {len(curves)} paths")
                layers.append(Layer(entry=entry, curves=curves))
        else:
            curves = trace_layer(self.bitmap, self.config, deadline=deadline)
            logger.info(f"Monochrome layer: {len(curves)} paths")
            layers.append(Layer(entry=None, curves=curves))

        self._result = TraceResult(
            width=self.source.width,
            height=self.source.height,
            mode=self.config.mode,
            background=tuple(self.background),
            layers=layers,
            scale_back=self.source.scale_back,
            remove_background=self.config.remove_background
        )
        return self._result

    def get_svg(self, **svg_options) -> Optional[str]:
        """
        Trace (if needed) and serialize to SVG.

        Args:
            **svg_options: Overrides for SvgOptions fields

        Returns:
            SVG string, or None when nothing was traced
        """
        result = self.trace()
        if result is None or result.is_empty:
            return None
        options = replace(self.svg_options, **svg_options)
        return generate_svg(result, options)

    def get_image_colors(self) -> Optional[Dict[str, object]]:
        """Background and palette colors as hex strings (color mode only)."""
        if self.quantized is None:
            return None
        return {
            "bg_color": rgb_to_hex(self.quantized.background),
            "color_list": [entry.hex for entry in self.quantized.palette],
        }


def vectorize_file(
    input_path: Union[str, FilePath],
    output_path: Optional[Union[str, FilePath]] = None,
    config: Optional[VectorizerConfig] = None,
    rng: Optional[np.random.Generator] = None,
    **svg_options
) -> Optional[str]:
    """
    Vectorize one image file.

    Args:
        input_path: Input image
        output_path: Optional path to save the SVG
        config: Configuration
        rng: Random generator for K-means++
        **svg_options: SvgOptions overrides

    Returns:
        SVG string, or None if the image could not be loaded or traced
    """
    vectorizer = Vectorizer(config, rng=rng)
    status = vectorizer.load_image(input_path)
    if status != LoadStatus.OK:
        logger.warning(f"Cannot vectorize {input_path}: {status.name}")
        return None

    svg = vectorizer.get_svg(**svg_options)
    if svg is not None and output_path:
        save_svg(svg, str(output_path))
    return svg
