#!/usr/bin/env python3
"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path

import numpy
import pytest
from osgeo import gdal, osr

gdal.UseExceptions()


@pytest.fixture
def temp_dir():
    """Create temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def write_geotiff(
    path,
    data,
    data_type=gdal.GDT_Byte,
    nodata=None,
    mask=None,
    geotransform=(-180.0, 360.0 / 1024, 0.0, 90.0, 0.0, -180.0 / 1024),
):
    """Write a WGS84 GeoTIFF from a (bands, rows, cols) or (rows, cols) array

    mask, if given, is stored as internal per-dataset mask.
    """
    data = numpy.asarray(data)
    if data.ndim == 2:
        data = data[numpy.newaxis]
    bands, rows, cols = data.shape

    ds = gdal.GetDriverByName("GTiff").Create(str(path), cols, rows, bands, data_type)
    srs = osr.SpatialReference()
    srs.ImportFromEPSG(4326)
    ds.SetProjection(srs.ExportToWkt())
    ds.SetGeoTransform(list(geotransform))
    for i in range(bands):
        band = ds.GetRasterBand(i + 1)
        if nodata is not None:
            band.SetNoDataValue(nodata)
        band.WriteArray(data[i])
    if mask is not None:
        ds.CreateMaskBand(gdal.GMF_PER_DATASET)
        ds.GetRasterBand(1).GetMaskBand().WriteArray(numpy.asarray(mask, dtype=numpy.uint8) * 255)
    ds.FlushCache()
    ds = None
    return Path(path)


@pytest.fixture
def geotiff_factory(temp_dir):
    """Return a function writing GeoTIFFs into the temporary directory."""

    def factory(name, data, **kwargs):
        return write_geotiff(temp_dir / name, data, **kwargs)

    return factory


@pytest.fixture
def sample_geotiff(geotiff_factory):
    """1024x1024 single band Byte raster with a gradient."""
    data = (numpy.arange(1024 * 1024, dtype=numpy.uint32).reshape(1024, 1024) % 200 + 1).astype(numpy.uint8)
    return geotiff_factory("sample.tif", data)


@pytest.fixture
def half_nodata_geotiff(geotiff_factory):
    """1024x1024 raster, left half nodata (0), right half 100."""
    data = numpy.zeros((1024, 1024), dtype=numpy.uint8)
    data[:, 512:] = 100
    return geotiff_factory("half.tif", data, nodata=0)
