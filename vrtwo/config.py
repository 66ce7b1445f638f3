"""Run configuration for VRT pyramid generation"""
from __future__ import annotations

import dataclasses
import enum
import re

from .errors import ConfigurationError
from .geometry import Size

SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")


class ResamplingAlgorithm(enum.StrEnum):
    """Resampling method used when warping one level into the next

    See -r option at https://gdal.org/en/stable/programs/gdalwarp.html#cmdoption-gdalwarp-r
    """

    NearestNeighbour = "near"
    Average = "average"
    Bilinear = "bilinear"
    Cubic = "cubic"
    CubicSpline = "cubicspline"
    Lanczos = "lanczos"
    Max = "max"
    Med = "med"
    Min = "min"
    Mode = "mode"
    Q1 = "q1"
    Q3 = "q3"
    RMS = "rms"
    Sum = "sum"


class PathToOriginalDataset(enum.StrEnum):
    """How the base level refers to the input dataset"""

    SYMLINK = "symlink"
    ABSOLUTE_SYMLINK = "absoluteSymlink"
    COPY = "copy"


def default_create_options() -> list[tuple[str, str]]:
    # empty PREDICTOR value is resolved from the band data type
    return [("TILED", "YES"), ("COMPRESS", "DEFLATE"), ("PREDICTOR", "")]


@dataclasses.dataclass
class Config:
    """Options driving a single pyramid build"""

    tile_size: Size = Size(1024, 1024)
    min_ovr_size: Size = Size(256, 256)
    resampling: ResamplingAlgorithm = ResamplingAlgorithm.Average
    create_options: list[tuple[str, str]] = dataclasses.field(default_factory=default_create_options)
    nodata: float | None = None
    background: tuple[float, ...] | None = None
    wrapx: int | None = None
    path_to_original_dataset: PathToOriginalDataset = PathToOriginalDataset.SYMLINK
    overwrite: bool = False
    threads: int | None = None

    def __post_init__(self):
        for name in ("tile_size", "min_ovr_size"):
            size = Size(*getattr(self, name))
            if size.width <= 0 or size.height <= 0:
                raise ConfigurationError(f"{name} must be positive, got {size}")
            setattr(self, name, size)
        if self.wrapx is not None and self.wrapx < 0:
            raise ConfigurationError(f"wrapx shift must not be negative, got {self.wrapx}")
        if self.threads is not None and self.threads < 1:
            raise ConfigurationError(f"threads must be at least 1, got {self.threads}")


def parse_size(value: str) -> Size:
    """Parse WIDTHxHEIGHT, e.g. 1024x1024"""
    match = SIZE_PATTERN.match(value)
    if match is None:
        raise ConfigurationError(f"Invalid size {value!r}, expected WIDTHxHEIGHT")
    return Size(int(match.group(1)), int(match.group(2)))


def parse_create_option(value: str) -> tuple[str, str]:
    """Parse KEY=VALUE; a bare KEY or KEY= leaves the value to be determined"""
    key, _, option_value = value.partition("=")
    key = key.strip().upper()
    if not key:
        raise ConfigurationError(f"Invalid create option {value!r}, expected KEY=VALUE")
    return key, option_value.strip()


def parse_color(value: str) -> tuple[float, ...]:
    """Parse a comma separated list of per-band values"""
    try:
        return tuple(float(v) for v in value.split(","))
    except ValueError:
        raise ConfigurationError(f"Invalid color {value!r}, expected comma separated numbers")
