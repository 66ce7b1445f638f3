"""GDAL raster helpers: type promotion, predictor and empty tiles"""
from __future__ import annotations

import dataclasses
import typing

import numpy
from osgeo import gdal

from .errors import ConfigurationError

gdal.UseExceptions()

FLOATING_POINT_TYPES = frozenset((gdal.GDT_Float32, gdal.GDT_Float64))

PREDICTOR_OFF = "1"
PREDICTOR_INTEGER = "2"
PREDICTOR_FLOATING_POINT = "3"


@dataclasses.dataclass(frozen=True)
class Promotion:
    """Wider pixel type able to hold a sentinel nodata value"""

    data_type: int
    nodata: float


_INT16 = Promotion(gdal.GDT_Int16, float(numpy.iinfo(numpy.int16).min))
_INT32 = Promotion(gdal.GDT_Int32, float(numpy.iinfo(numpy.int32).min))
_FLOAT64 = Promotion(gdal.GDT_Float64, float(numpy.finfo(numpy.float64).min))

# 8 bits -> 16 bits, 16 -> 32, 32 -> 64, 64 stays but gets a nodata value
MASK_PROMOTIONS: dict[int, Promotion] = {
    gdal.GDT_Byte: _INT16,
    gdal.GDT_UInt16: _INT32,
    gdal.GDT_Int16: _INT32,
    gdal.GDT_UInt32: _FLOAT64,
    gdal.GDT_Int32: _FLOAT64,
    gdal.GDT_Float32: _FLOAT64,
    gdal.GDT_Float64: _FLOAT64,
}

# Types used for exact sample comparison. Unsigned 32 bit data are compared as
# signed 32 bit values.
COMPARISON_TYPES: dict[int, type] = {
    gdal.GDT_Byte: numpy.uint8,
    gdal.GDT_UInt16: numpy.uint16,
    gdal.GDT_Int16: numpy.int16,
    gdal.GDT_UInt32: numpy.int32,
    gdal.GDT_Int32: numpy.int32,
    gdal.GDT_Float32: numpy.float32,
    gdal.GDT_Float64: numpy.float64,
}


def type_name(data_type: int) -> str:
    return gdal.GetDataTypeName(data_type)


def promote_for_mask(data_type: int) -> Promotion:
    try:
        return MASK_PROMOTIONS[data_type]
    except KeyError:
        raise ConfigurationError(f"Unsupported data type <{type_name(data_type)}>.")


def resolve_create_options(
    create_options: typing.Iterable[tuple[str, str]], data_type: int
) -> list[tuple[str, str]]:
    """Copy create options, filling in or checking PREDICTOR for the data type

    Floating point data want predictor 3, anything else 2. An explicit 1 turns
    the predictor off and is left alone.
    """
    predictor = PREDICTOR_FLOATING_POINT if data_type in FLOATING_POINT_TYPES else PREDICTOR_INTEGER

    resolved = []
    for key, value in create_options:
        if key.upper() == "PREDICTOR":
            if not value:
                value = predictor
            elif value != PREDICTOR_OFF and value != predictor:
                raise ConfigurationError(
                    "PREDICTOR value and bandtype mismatch. Use 2 for integer"
                    " and 3 for floating point or leave without value to be"
                    " determined automatically."
                )
        resolved.append((key, value))
    return resolved


def format_create_options(create_options: typing.Iterable[tuple[str, str]]) -> list[str]:
    return [f"{key}={value}" for key, value in create_options]


def compare_block(data: numpy.ndarray, data_type: int, value: float) -> bool:
    """True if every sample of the block equals value in the native type"""
    try:
        dtype = COMPARISON_TYPES[data_type]
    except KeyError:
        raise ConfigurationError(f"Unsupported data type <{type_name(data_type)}>.")
    if data.dtype.itemsize == numpy.dtype(dtype).itemsize:
        data = data.view(dtype)
    else:
        data = data.astype(dtype)
    if numpy.issubdtype(dtype, numpy.integer):
        # wrap around like a C cast, keeps e.g. 0xffffffff equal to -1
        expected = numpy.array(int(value), dtype=numpy.int64).astype(dtype)
    else:
        expected = numpy.array(value).astype(dtype)
    return bool(numpy.all(data == expected))


def empty_tile(ds: gdal.Dataset, background: typing.Sequence[float] | None) -> bool:
    """Decide whether a warped tile holds nothing worth storing

    With a background color the tile is empty only if all bands are uniformly
    that color. Otherwise the tile is empty if its mask has no valid pixel; a
    dataset without mask is fully valid.
    """
    if background is not None:
        background = fit_color(background, ds.RasterCount)
        for i, value in enumerate(background):
            band = ds.GetRasterBand(i + 1)
            if not compare_block(band.ReadAsArray(), band.DataType, value):
                return False
        return True

    band = ds.GetRasterBand(1)
    if band.GetMaskFlags() & gdal.GMF_ALL_VALID:
        return False

    mask = band.GetMaskBand().ReadAsArray()
    return not numpy.count_nonzero(mask)


def fit_color(color: typing.Sequence[float], band_count: int) -> list[float]:
    """Truncate or zero-pad a color to band_count values"""
    return (list(color) + [0.0] * band_count)[:band_count]
