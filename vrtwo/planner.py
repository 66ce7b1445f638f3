"""Plan pyramid levels: overview sizes, tile grids and periodic padding"""
from __future__ import annotations

import dataclasses
import enum
import pathlib

from osgeo import gdal

from .config import Config
from .geometry import Extents, Size

gdal.UseExceptions()

# Padding added to each side of the finest overview when wrapping in x, worst
# case support of the resampling filters (lanczos)
WRAPX_PADDING = 6


class MaskType(enum.StrEnum):
    """How the source communicates pixel validity"""

    NONE = "none"
    NODATA = "nodata"
    BAND = "band"


@dataclasses.dataclass
class DatasetDescriptor:
    """Properties of the input dataset the planner cares about"""

    size: Size
    extents: Extents
    mask_flags: int
    driver_name: str = ""

    @classmethod
    def from_dataset(cls, ds: gdal.Dataset) -> "DatasetDescriptor":
        size = Size(ds.RasterXSize, ds.RasterYSize)
        band = ds.GetRasterBand(1)
        return cls(
            size,
            Extents.from_geotransform(ds.GetGeoTransform(), size),
            band.GetMaskFlags(),
            ds.GetDriver().ShortName,
        )


@dataclasses.dataclass
class Setup:
    """Everything computed once per run, before any pixel is touched"""

    size: Size
    extents: Extents
    ovr_sizes: list[Size] = dataclasses.field(default_factory=list)
    ovr_tiled: list[Size] = dataclasses.field(default_factory=list)
    x_plus: int = 0
    mask_type: MaskType = MaskType.NONE
    output_dataset: pathlib.Path | None = None

    @property
    def total_tiles(self) -> int:
        return sum(tiled.area for tiled in self.ovr_tiled)


def resolve_mask_type(mask_flags: int) -> MaskType:
    if mask_flags & gdal.GMF_ALL_VALID:
        return MaskType.NONE
    if mask_flags & gdal.GMF_NODATA:
        return MaskType.NODATA
    return MaskType.BAND


def halve(size: Size) -> Size:
    """Half size, rounding halves away from zero"""
    return Size((size.width + 1) // 2, (size.height + 1) // 2)


def tile_grid(size: Size, tile_size: Size) -> Size:
    return Size(
        (size.width + tile_size.width - 1) // tile_size.width,
        (size.height + tile_size.height - 1) // tile_size.height,
    )


def overview_sizes(size: Size, min_ovr_size: Size) -> list[Size]:
    """Halve size until both dimensions fall below min_ovr_size

    A level hitting the minimum exactly in either dimension is the last one.
    """
    sizes = []
    size = halve(size)
    while size.width >= min_ovr_size.width or size.height >= min_ovr_size.height:
        sizes.append(size)
        if size.width == min_ovr_size.width or size.height == min_ovr_size.height:
            break
        size = halve(size)
    return sizes


def make_setup(ds: DatasetDescriptor, config: Config) -> Setup:
    """Compute overview sizes, tile grids and x-wrap padding for a dataset"""
    setup = Setup(
        ds.size,
        dataclasses.replace(ds.extents),
        overview_sizes(ds.size, config.min_ovr_size),
        mask_type=resolve_mask_type(ds.mask_flags),
    )

    if config.wrapx is not None:
        # pad each level, doubling on the way up to the base
        add = WRAPX_PADDING
        for i in reversed(range(len(setup.ovr_sizes))):
            width, height = setup.ovr_sizes[i]
            setup.ovr_sizes[i] = Size(width + add, height)
            add *= 2

        setup.x_plus = add // 2

        pixel_width = setup.extents.width / setup.size.width
        eadd = setup.x_plus * pixel_width
        setup.extents.llx -= eadd
        setup.extents.urx += eadd

        setup.size = Size(setup.size.width + add, setup.size.height)

    setup.ovr_tiled = [tile_grid(size, config.tile_size) for size in setup.ovr_sizes]
    return setup
