"""Core types for the colortrace pipeline."""
import time
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np

from colortrace.color_space import rgb_key, rgb_to_hex, rgb_to_hsl

RGB = Tuple[int, int, int]

MODES = ("color", "black")
TURN_POLICIES = ("black", "white", "left", "right", "minority", "majority")
BITMAP_TYPES = ("blacklevel", "bgcolor", "balance")
PATH_TYPES = ("fill", "curve")


class SegmentTag(Enum):
    """Kind of a curve segment."""
    CORNER = "CORNER"
    CURVE = "CURVE"


@dataclass(frozen=True)
class Point:
    """2D point; integer pixel corners while tracing, floats afterwards."""
    x: float
    y: float


@dataclass(frozen=True)
class Sums:
    """Prefix sums of a path's coordinates relative to its first point."""
    x: float
    y: float
    xy: float
    x2: float
    y2: float


@dataclass
class Path:
    """Closed boundary traced from a bitmap."""
    points: List[Point]
    area: int
    sign: str  # "+" for a filled region, "-" for a hole
    min_x: int = 0
    min_y: int = 0
    max_x: int = 0
    max_y: int = 0

    # Working data filled in by the polygon stage
    sums: List[Sums] = field(default_factory=list)
    lon: List[int] = field(default_factory=list)
    polygon: List[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def x0(self) -> int:
        return self.points[0].x

    @property
    def y0(self) -> int:
        return self.points[0].y


@dataclass
class Segment:
    """One segment of a curve.

    A CURVE segment is the cubic Bezier (previous end, c0, c1, c2). A CORNER
    segment is the polyline (previous end, vertex, c2).
    """
    vertex: Point
    tag: SegmentTag = SegmentTag.CURVE
    c0: Optional[Point] = None
    c1: Optional[Point] = None
    c2: Optional[Point] = None
    alpha: float = 0.0
    alpha0: float = 0.0
    beta: float = 0.5
    locked_corner: bool = False  # vertex could not be optimized


@dataclass
class Curve:
    """Closed sequence of segments."""
    segments: List[Segment] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.segments)

    def __getitem__(self, item: int) -> Segment:
        return self.segments[item]

    def __iter__(self):
        return iter(self.segments)

    @property
    def tags(self) -> List[SegmentTag]:
        return [s.tag for s in self.segments]

    @property
    def vertices(self) -> List[Point]:
        return [s.vertex for s in self.segments]


@dataclass(frozen=True)
class PaletteEntry:
    """One representative color and its share of the foreground.

    ``rate`` holds the member count straight out of clustering and the
    percentage of foreground pixels once rates are calculated.
    """
    rgb: RGB
    rate: float

    @property
    def key(self) -> str:
        return rgb_key(self.rgb)

    @property
    def hex(self) -> str:
        return rgb_to_hex(self.rgb)

    @property
    def hsl(self) -> Tuple[int, int, int]:
        return rgb_to_hsl(self.rgb)

    def with_rate(self, rate: float) -> "PaletteEntry":
        return replace(self, rate=rate)


@dataclass
class Layer:
    """Curves traced for one palette color (no entry in monochrome mode)."""
    entry: Optional[PaletteEntry]
    curves: List[Curve] = field(default_factory=list)


@dataclass
class TraceResult:
    """Everything the SVG serializer needs."""
    width: int
    height: int
    mode: str
    background: RGB
    layers: List[Layer] = field(default_factory=list)
    scale_back: float = 1.0  # traced size / original size
    remove_background: bool = False

    @property
    def palette(self) -> List[PaletteEntry]:
        return [layer.entry for layer in self.layers if layer.entry is not None]

    @property
    def is_empty(self) -> bool:
        return not any(layer.curves for layer in self.layers)


@dataclass
class PixelSource:
    """Decoded raster image with alpha already flattened onto white."""
    rgb: np.ndarray  # (H, W, 3) uint8
    original_path: str = ""
    has_alpha: bool = False
    scale_back: float = 1.0  # < 1 when the image was downscaled on load

    @property
    def width(self) -> int:
        return int(self.rgb.shape[1])

    @property
    def height(self) -> int:
        return int(self.rgb.shape[0])

    def pixel(self, x: int, y: int) -> RGB:
        r, g, b = self.rgb[y, x]
        return int(r), int(g), int(b)

    def pixels(self) -> np.ndarray:
        """Row-major (H*W, 3) int array."""
        return self.rgb.reshape(-1, 3).astype(np.int32)


@dataclass
class VectorizerConfig:
    """Configuration for the vectorization pipeline."""
    # Mode: "color" clusters colors, "black" traces one monochrome mask
    mode: str = "color"

    # Potrace parameters
    turnpolicy: str = "minority"
    turdsize: int = 2
    optcurve: bool = True
    alphamax: float = 1.0
    opttolerance: float = 0.2

    # Monochrome mask
    bitmap_type: str = "balance"
    black_level: float = 128
    bgcolor_level: float = 120
    balance_level: float = 128

    # K-means++
    clusters_num: int = 10
    clusters_num_max: int = 20
    clusters_num_min: int = 5
    color_size: int = 5
    kmeans_difference_distance: float = 5
    kmeans_gap_fix_value: float = 5
    kmeans_use_lab_color: bool = True
    kmeans_max_iterations: int = 100

    # Palette post-processing
    keep_color_rate_min: float = 0.5
    similar_color_distance: float = 40
    bg_color_distance: float = 35
    merge_color_hue_min: float = 5
    merge_color_hue: bool = True
    remove_background: bool = False

    # Input handling
    max_side_length: Optional[int] = 512

    # Reproducibility and limits
    random_seed: Optional[int] = None
    timeout: Optional[float] = None

    def __post_init__(self):
        if self.mode not in MODES:
            raise ConfigError(f"Unknown mode {self.mode!r}, expected one of {MODES}")
        if self.turnpolicy not in TURN_POLICIES:
            raise ConfigError(
                f"Unknown turnpolicy {self.turnpolicy!r}, expected one of {TURN_POLICIES}"
            )
        if self.bitmap_type not in BITMAP_TYPES:
            raise ConfigError(
                f"Unknown bitmap_type {self.bitmap_type!r}, expected one of {BITMAP_TYPES}"
            )
        if self.turdsize < 0:
            raise ConfigError(f"turdsize must be >= 0, got {self.turdsize}")
        if self.color_size < 1:
            raise ConfigError(f"color_size must be >= 1, got {self.color_size}")

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "VectorizerConfig":
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration option(s): {', '.join(unknown)}")
        return cls(**dict(values))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def normalized(self) -> "VectorizerConfig":
        """Return a copy with clusters_num derived from color_size.

        clusters_num is raised to color_size when it is smaller, otherwise set
        to twice color_size capped at clusters_num_max, and never left below
        clusters_num_min.
        """
        if self.clusters_num < self.color_size:
            clusters_num = self.color_size
        else:
            clusters_num = min(self.color_size * 2, self.clusters_num_max)
        clusters_num = max(clusters_num, self.clusters_num_min)
        return replace(self, clusters_num=clusters_num)


@dataclass
class SvgOptions:
    """SVG generation options."""
    scale_size: float = 1.0
    path_type: str = "fill"  # "fill" or "curve" (stroke only)
    fill_color: str = "black"  # monochrome mode only
    precision: int = 3

    def __post_init__(self):
        if self.path_type not in PATH_TYPES:
            raise ConfigError(
                f"Unknown path_type {self.path_type!r}, expected one of {PATH_TYPES}"
            )
        if self.scale_size <= 0:
            raise ConfigError(f"scale_size must be > 0, got {self.scale_size}")


class Deadline:
    """Deadline and cancellation token for the unbounded loops.

    Checked once per K-means iteration and once per traced path.
    """

    def __init__(
        self,
        seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.seconds = seconds
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def expired(self) -> bool:
        if self._cancelled:
            return True
        return self._expires_at is not None and self._clock() >= self._expires_at

    def check(self, stage: str) -> None:
        """Raise VectorizationTimeout if cancelled or past the deadline."""
        if self._cancelled:
            raise VectorizationTimeout(f"{stage} cancelled")
        if self._expires_at is not None and self._clock() >= self._expires_at:
            raise VectorizationTimeout(f"{stage} exceeded the {self.seconds}s deadline")


class VectorizationError(Exception):
    """Base exception for vectorization errors."""
    pass


class ConfigError(VectorizationError):
    """Invalid configuration option."""
    pass


class ImageLoadError(VectorizationError):
    """Image exists but could not be decoded."""
    pass


class NoForegroundError(VectorizationError):
    """Every pixel belongs to the background; there is nothing to trace."""
    pass


class VectorizationTimeout(VectorizationError):
    """Deadline expired or the run was cancelled."""
    pass
