#!/usr/bin/env python3
"""End to end tests for pyramid generation."""

import os
import xml.etree.ElementTree as ET

import numpy
import pytest
from osgeo import gdal, osr

from vrtwo import Config, PathToOriginalDataset, ResamplingAlgorithm, generate
from vrtwo import overview
from vrtwo.base import build_dataset_base, resolve_sidecars
from vrtwo.errors import ConfigurationError, OutputExistsError
from vrtwo.geometry import Size
from vrtwo.overview import copy_with_mask
from vrtwo.planner import MaskType

gdal.UseExceptions()


def make_config(**kwargs):
    options = dict(
        tile_size=Size(256, 256),
        min_ovr_size=Size(256, 256),
        resampling=ResamplingAlgorithm.NearestNeighbour,
        create_options=[("COMPRESS", "DEFLATE"), ("PREDICTOR", "")],
        threads=2,
    )
    options.update(kwargs)
    return Config(**options)


def overviews(path):
    root = ET.parse(path).getroot()
    return {band.get("band"): band.findall("Overview") for band in root.findall("VRTRasterBand")}


def simple_sources(path, band="1"):
    root = ET.parse(path).getroot()
    return root.find(f"VRTRasterBand[@band='{band}']").findall("SimpleSource")


class TestGenerate:
    """Tests for a complete pyramid."""

    def test_layout(self, temp_dir, sample_geotiff):
        output = temp_dir / "out"
        generate(sample_geotiff, output, make_config())

        assert (output / "dataset").is_file()
        assert (output / "original").is_symlink()
        assert os.readlink(output / "original") == os.path.join("..", "sample.tif")
        assert (output / "0" / "ovr.vrt").is_file()
        for x in range(2):
            for y in range(2):
                assert (output / "0" / f"{x}-{y}.tif").is_file()
        assert (output / "1" / "ovr.vrt").is_file()
        assert (output / "1" / "0-0.tif").is_file()
        assert not (output / "2").exists()

    def test_chain(self, temp_dir, sample_geotiff):
        output = temp_dir / "out"
        generate(sample_geotiff, output, make_config())

        for band_overviews in overviews(output / "dataset").values():
            assert len(band_overviews) == 1
            assert band_overviews[0].find("SourceFilename").text == "0/ovr.vrt"

        for band_overviews in overviews(output / "0" / "ovr.vrt").values():
            assert len(band_overviews) == 1
            assert band_overviews[0].find("SourceFilename").text == "../1/ovr.vrt"
            assert band_overviews[0].find("SourceFilename").get("relativeToVRT") == "1"

        for band_overviews in overviews(output / "1" / "ovr.vrt").values():
            assert band_overviews == []

    def test_levels_readable(self, temp_dir, sample_geotiff):
        output = temp_dir / "out"
        generate(sample_geotiff, output, make_config())

        ds = gdal.Open(str(output / "dataset"))
        assert (ds.RasterXSize, ds.RasterYSize) == (1024, 1024)
        band = ds.GetRasterBand(1)
        assert band.GetOverviewCount() == 1
        assert (band.GetOverview(0).XSize, band.GetOverview(0).YSize) == (512, 512)

        original = gdal.Open(str(sample_geotiff)).ReadAsArray()
        assert (band.ReadAsArray() == original).all()

        level1 = gdal.Open(str(output / "0" / "ovr.vrt"))
        assert len(simple_sources(output / "0" / "ovr.vrt")) == 4
        data = level1.ReadAsArray()
        assert data.min() >= 1
        assert data.max() <= 200

        tile = gdal.Open(str(output / "0" / "1-1.tif"))
        assert (tile.RasterXSize, tile.RasterYSize) == (256, 256)
        assert tile.GetRasterBand(1).DataType == gdal.GDT_Byte
        assert tile.GetGeoTransform()[0] == pytest.approx(-180.0 + 256 * 360.0 / 512)

    def test_empty_tiles_skipped(self, temp_dir, half_nodata_geotiff):
        output = temp_dir / "out"
        generate(half_nodata_geotiff, output, make_config())

        assert not (output / "0" / "0-0.tif").exists()
        assert not (output / "0" / "0-1.tif").exists()
        assert (output / "0" / "1-0.tif").exists()
        assert (output / "0" / "1-1.tif").exists()
        assert (output / "1" / "0-0.tif").exists()

        sources = simple_sources(output / "0" / "ovr.vrt")
        assert sorted(s.find("SourceFilename").text for s in sources) == ["1-0.tif", "1-1.tif"]

        level1 = gdal.Open(str(output / "0" / "ovr.vrt"))
        assert level1.GetRasterBand(1).GetNoDataValue() == 0
        data = level1.ReadAsArray()
        assert (data[:, :256] == 0).all()
        assert (data[:, 256:] == 100).all()

    def test_background(self, temp_dir, half_nodata_geotiff):
        output = temp_dir / "out"
        generate(half_nodata_geotiff, output, make_config(background=(0,)))

        assert (output / "0" / "bg.tif").exists()
        assert not (output / "0" / "0-0.tif").exists()
        assert (output / "0" / "1-0.tif").exists()

        sources = simple_sources(output / "0" / "ovr.vrt")
        assert sources[0].find("SourceFilename").text == "bg.tif"
        assert sources[0].find("DstRect").get("xSize") == "512"
        assert len(sources) == 3

    def test_band_mask(self, temp_dir, geotiff_factory):
        mask = numpy.zeros((1024, 1024), dtype=numpy.uint8)
        mask[:, 512:] = 1
        path = geotiff_factory("masked.tif", numpy.full((1024, 1024), 50), mask=mask)
        output = temp_dir / "out"
        generate(path, output, make_config())

        root = ET.parse(output / "dataset").getroot()
        assert root.find("MaskBand") is not None

        assert not (output / "0" / "0-0.tif").exists()
        assert (output / "0" / "1-0.tif").exists()

        tile = gdal.Open(str(output / "0" / "1-0.tif"))
        assert tile.GetRasterBand(1).DataType == gdal.GDT_Byte
        assert tile.GetRasterBand(1).GetMaskFlags() == gdal.GMF_PER_DATASET
        assert (tile.ReadAsArray() == 50).all()

        root = ET.parse(output / "0" / "ovr.vrt").getroot()
        mask_sources = root.findall("MaskBand/VRTRasterBand/SimpleSource")
        assert len(mask_sources) == 2
        assert all(s.find("SourceBand").text == "mask,1" for s in mask_sources)

        level1 = gdal.Open(str(output / "0" / "ovr.vrt"))
        level1_mask = level1.GetRasterBand(1).GetMaskBand().ReadAsArray()
        assert (level1_mask[:, :256] == 0).all()
        assert (level1_mask[:, 256:] == 255).all()

    def test_wrapx(self, temp_dir, sample_geotiff):
        output = temp_dir / "out"
        generate(sample_geotiff, output, make_config(wrapx=1))

        assert len(simple_sources(output / "dataset")) == 3

        original = gdal.Open(str(sample_geotiff)).ReadAsArray()
        ds = gdal.Open(str(output / "dataset"))
        assert (ds.RasterXSize, ds.RasterYSize) == (1048, 1024)
        data = ds.ReadAsArray()
        assert (data[:, 12:1036] == original).all()
        assert (data[:, :12] == original[:, 1011:1023]).all()
        assert (data[:, 1036:] == original[:, 1:13]).all()

        pixel_width = 360.0 / 1024
        assert ds.GetGeoTransform()[0] == pytest.approx(-180.0 - 12 * pixel_width)
        assert ds.GetGeoTransform()[1] == pytest.approx(pixel_width)

        level1 = gdal.Open(str(output / "0" / "ovr.vrt"))
        assert (level1.RasterXSize, level1.RasterYSize) == (524, 512)
        assert (output / "0" / "2-1.tif").exists()

    def test_no_levels(self, temp_dir, sample_geotiff):
        output = temp_dir / "out"
        generate(sample_geotiff, output, make_config(min_ovr_size=Size(4096, 4096)))

        assert (output / "dataset").is_file()
        assert not (output / "0").exists()
        assert all(ovr == [] for ovr in overviews(output / "dataset").values())

    def test_nodata_override(self, temp_dir, sample_geotiff):
        output = temp_dir / "out"
        generate(sample_geotiff, output, make_config(nodata=1))

        ds = gdal.Open(str(output / "dataset"))
        assert ds.GetRasterBand(1).GetNoDataValue() == 1
        level1 = gdal.Open(str(output / "0" / "ovr.vrt"))
        assert level1.GetRasterBand(1).GetNoDataValue() == 1

    def test_predictor_mismatch(self, temp_dir, sample_geotiff):
        config = make_config(create_options=[("COMPRESS", "DEFLATE"), ("PREDICTOR", "3")])
        with pytest.raises(ConfigurationError, match="PREDICTOR"):
            generate(sample_geotiff, temp_dir / "out", config)

    def test_tile_failure_aborts_run(self, temp_dir, sample_geotiff, monkeypatch):
        create_output_dataset = overview.create_output_dataset

        def failing(original, src, path, create_options, mask_type):
            if path.name == "1-1.tif":
                raise RuntimeError("disk full")
            create_output_dataset(original, src, path, create_options, mask_type)

        monkeypatch.setattr(overview, "create_output_dataset", failing)

        output = temp_dir / "out"
        with pytest.raises(RuntimeError, match="disk full"):
            generate(sample_geotiff, output, make_config())

        assert not (output / "0" / "1-1.tif").exists()
        assert all(ovr == [] for ovr in overviews(output / "dataset").values())
        assert not (output / "1").exists()


class TestOutput:
    """Tests for output directory handling."""

    def test_existing_output(self, temp_dir, sample_geotiff):
        output = temp_dir / "out"
        output.mkdir()
        with pytest.raises(OutputExistsError):
            generate(sample_geotiff, output, make_config())

    def test_overwrite(self, temp_dir, sample_geotiff):
        output = temp_dir / "out"
        generate(sample_geotiff, output, make_config())
        generate(sample_geotiff, output, make_config(overwrite=True))

        for band_overviews in overviews(output / "dataset").values():
            assert len(band_overviews) == 1


class TestDatasetBase:
    """Tests for the level 0 dataset."""

    def test_copy_unsupported(self, temp_dir, sample_geotiff):
        config = make_config(path_to_original_dataset=PathToOriginalDataset.COPY)
        with pytest.raises(ConfigurationError, match="not implemented"):
            build_dataset_base(config, sample_geotiff, temp_dir)

    def test_absolute_symlink(self, temp_dir, sample_geotiff):
        output = temp_dir / "out"
        output.mkdir()
        config = make_config(path_to_original_dataset=PathToOriginalDataset.ABSOLUTE_SYMLINK)
        build_dataset_base(config, sample_geotiff, output)

        assert os.path.isabs(os.readlink(output / "original"))
        assert gdal.Open(str(output / "dataset")).RasterXSize == 1024

    def test_sidecars(self, temp_dir, sample_geotiff):
        sidecar = temp_dir / "sample.tif.aux.xml"
        sidecar.write_text("<PAMDataset></PAMDataset>")
        (temp_dir / "sample.tiff").write_text("unrelated")

        assert resolve_sidecars(sample_geotiff) == [sidecar]

        output = temp_dir / "out"
        output.mkdir()
        build_dataset_base(make_config(), sample_geotiff, output)
        assert (output / "original.aux.xml").is_symlink()
        assert (output / "original.aux.xml").resolve() == sidecar.resolve()

    def test_setup(self, temp_dir, half_nodata_geotiff):
        output = temp_dir / "out"
        output.mkdir()
        setup = build_dataset_base(make_config(), half_nodata_geotiff, output)

        assert setup.output_dataset == output / "dataset"
        assert setup.mask_type is MaskType.NODATA
        assert setup.ovr_sizes == [Size(512, 512), Size(256, 256)]
        assert setup.ovr_tiled == [Size(2, 2), Size(1, 1)]

    def test_srtmhgt_keeps_file_name(self, temp_dir):
        mem = gdal.GetDriverByName("MEM").Create("", 1201, 1201, 1, gdal.GDT_Int16)
        srs = osr.SpatialReference()
        srs.ImportFromEPSG(4326)
        mem.SetProjection(srs.ExportToWkt())
        mem.SetGeoTransform((-0.5 / 1200, 1.0 / 1200, 0.0, 1.0 + 0.5 / 1200, 0.0, -1.0 / 1200))
        mem.GetRasterBand(1).Fill(100)
        hgt = temp_dir / "N00E000.hgt"
        gdal.GetDriverByName("SRTMHGT").CreateCopy(str(hgt), mem)
        mem = None

        output = temp_dir / "out"
        output.mkdir()
        build_dataset_base(make_config(), hgt, output)

        assert (output / "N00E000.hgt").is_symlink()
        assert not (output / "original").exists()
        root = ET.parse(output / "dataset").getroot()
        assert root.find("VRTRasterBand/SimpleSource/SourceFilename").text == "N00E000.hgt"
        assert gdal.Open(str(output / "dataset")).GetRasterBand(1).ReadAsArray(0, 0, 4, 4).tolist() == [[100] * 4] * 4


class TestTileOutput:
    """Tests for storing warped tiles."""

    def test_copy_with_mask(self):
        driver = gdal.GetDriverByName("MEM")
        src = driver.Create("", 40, 30, 2, gdal.GDT_Int16)
        src.CreateMaskBand(gdal.GMF_PER_DATASET)
        data = numpy.arange(30 * 40, dtype=numpy.int16).reshape(30, 40)
        mask = numpy.zeros((30, 40), dtype=numpy.uint8)
        mask[10:, 5:] = 255
        src.GetRasterBand(1).WriteArray(data)
        src.GetRasterBand(2).WriteArray(data * 2)
        src.GetRasterBand(1).GetMaskBand().WriteArray(mask)

        dst = driver.Create("", 40, 30, 2, gdal.GDT_Int16)
        dst.CreateMaskBand(gdal.GMF_PER_DATASET)
        copy_with_mask(src, dst)

        assert (dst.GetRasterBand(1).ReadAsArray() == data).all()
        assert (dst.GetRasterBand(2).ReadAsArray() == data * 2).all()
        assert (dst.GetRasterBand(1).GetMaskBand().ReadAsArray() == mask).all()
        assert (dst.GetRasterBand(2).GetMaskBand().ReadAsArray() == mask).all()
