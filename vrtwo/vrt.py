"""Write VRT (virtual mosaic) descriptors band source by band source

Each level of the pyramid is a VRT dataset whose bands are assembled from
``SimpleSource`` records. Records are fed to GDAL's VRT driver through the
``new_vrt_sources`` metadata domain, so every source carries the raster and
block properties captured when it was registered and GDAL never has to open
the referenced file before it is actually read.
"""
from __future__ import annotations

import dataclasses
import os
import pathlib
import threading
import typing
import xml.etree.ElementTree as ET

from osgeo import gdal

from .errors import DescriptorError
from .geometry import Extents, Rect, Size
from .planner import MaskType
from .raster import fit_color, type_name

gdal.UseExceptions()

NEW_VRT_SOURCES = "new_vrt_sources"

BACKGROUND_FILENAME = "bg.tif"


@dataclasses.dataclass
class RasterFormat:
    """Pixel layout of a dataset: data type, band count and color interpretation"""

    data_type: int
    band_count: int
    color_interpretations: tuple[int, ...] = ()

    @classmethod
    def from_dataset(cls, ds: gdal.Dataset) -> "RasterFormat":
        bands = [ds.GetRasterBand(i + 1) for i in range(ds.RasterCount)]
        return cls(
            bands[0].DataType,
            len(bands),
            tuple(band.GetColorInterpretation() for band in bands),
        )


@dataclasses.dataclass
class BandProperties:
    size: Size
    data_type: int
    block_size: Size

    @classmethod
    def from_band(cls, band: gdal.Band) -> "BandProperties":
        return cls(
            Size(band.XSize, band.YSize),
            band.DataType,
            Size(*band.GetBlockSize()),
        )


def _rect_element(parent: ET.Element, name: str, rect: Rect) -> ET.Element:
    return ET.SubElement(
        parent,
        name,
        xOff=str(rect.origin.x),
        yOff=str(rect.origin.y),
        xSize=str(rect.size.width),
        ySize=str(rect.size.height),
    )


def relative_to_vrt(filename: str | os.PathLike) -> str:
    return "0" if pathlib.PurePath(filename).is_absolute() else "1"


class BandDescriptor:
    """One band region reference, properties frozen at construction

    NB: src_band is zero-based.
    """

    def __init__(
        self,
        filename: str | os.PathLike,
        ds: gdal.Dataset,
        src_band: int,
        src_rect: Rect | None = None,
        dst_rect: Rect | None = None,
    ):
        self.filename = pathlib.PurePath(filename)
        self.src_band = src_band
        self.src = src_rect if src_rect is not None else Rect.whole(Size(ds.RasterXSize, ds.RasterYSize))
        self.dst = dst_rect if dst_rect is not None else self.src
        self.properties = BandProperties.from_band(ds.GetRasterBand(src_band + 1))

    def to_element(self, mask: bool = False) -> ET.Element:
        source = ET.Element("SimpleSource")

        filename = ET.SubElement(
            source,
            "SourceFilename",
            relativeToVRT=relative_to_vrt(self.filename),
            shared="1",
        )
        filename.text = self.filename.as_posix()

        band = ET.SubElement(source, "SourceBand")
        band.text = f"mask,{self.src_band + 1}" if mask else str(self.src_band + 1)

        _rect_element(source, "SrcRect", self.src)
        _rect_element(source, "DstRect", self.dst)

        bp = self.properties
        ET.SubElement(
            source,
            "SourceProperties",
            RasterXSize=str(bp.size.width),
            RasterYSize=str(bp.size.height),
            DataType=type_name(bp.data_type),
            BlockXSize=str(bp.block_size.width),
            BlockYSize=str(bp.block_size.height),
        )
        return source

    def serialize(self, mask: bool = False) -> str:
        return ET.tostring(self.to_element(mask), encoding="unicode")


class VrtDs:
    """Output VRT of one pyramid level

    Sources are only ever appended. Appending is guarded by an internal lock so
    a single instance can be shared by all tile workers of a level.
    """

    def __init__(
        self,
        path: str | os.PathLike,
        srs: str,
        extents: Extents,
        size: Size,
        raster_format: RasterFormat,
        nodata: float | None,
        mask_type: MaskType,
    ):
        self.path = pathlib.Path(path)
        self.band_count = raster_format.band_count
        self.mask_type = mask_type
        self._lock = threading.RLock()

        driver = gdal.GetDriverByName("VRT")
        self._ds = driver.Create(
            str(self.path), size.width, size.height, raster_format.band_count, raster_format.data_type
        )
        if srs:
            self._ds.SetProjection(srs)
        self._ds.SetGeoTransform(extents.geotransform(size))

        for i in range(self.band_count):
            band = self._ds.GetRasterBand(i + 1)
            if i < len(raster_format.color_interpretations):
                band.SetColorInterpretation(raster_format.color_interpretations[i])
            if nodata is not None:
                band.SetNoDataValue(nodata)

        self._mask_band = None
        if mask_type is MaskType.BAND:
            self._ds.CreateMaskBand(gdal.GMF_PER_DATASET)
            self._mask_band = self._ds.GetRasterBand(1).GetMaskBand()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.flush()

    @property
    def size(self) -> Size:
        return Size(self._ds.RasterXSize, self._ds.RasterYSize)

    @property
    def extents(self) -> Extents:
        return Extents.from_geotransform(self._ds.GetGeoTransform(), self.size)

    def flush(self):
        """Write the descriptor to disk and release the dataset"""
        if self._ds is None:
            return
        self._mask_band = None
        self._ds.FlushCache()
        self._ds = None

    def add_simple_source(
        self,
        band: int,
        filename: str | os.PathLike,
        ds: gdal.Dataset,
        src_band: int,
        src_rect: Rect | None = None,
        dst_rect: Rect | None = None,
    ):
        """Append a band region reference; band and src_band are zero-based

        References to the first band are mirrored into the per-dataset mask
        band, if there is one.
        """
        descriptor = BandDescriptor(filename, ds, src_band, src_rect, dst_rect)

        with self._lock:
            self._add_source(self._ds.GetRasterBand(band + 1), descriptor.serialize())

            if band or self._mask_band is None:
                return

            self._add_source(self._mask_band, descriptor.serialize(mask=True))

    def add_sources(
        self,
        filename: str | os.PathLike,
        ds: gdal.Dataset,
        dst_rect: Rect | None = None,
    ):
        """Map every band of ds onto the same band of this dataset"""
        with self._lock:
            for band in range(self.band_count):
                self.add_simple_source(band, filename, ds, band, None, dst_rect)

    def add_background(self, directory: str | os.PathLike, color: typing.Sequence[float] | None):
        """Underlay the whole raster with a uniform color

        The color lives in a single pixel raster stretched over the full
        dataset, it must be added before any other source.
        """
        if color is None:
            return

        background = fit_color(color, self.band_count)
        bg_path = pathlib.Path(directory) / BACKGROUND_FILENAME
        store_path = os.path.relpath(bg_path, self.path.parent)

        one = Size(1, 1)
        driver = gdal.GetDriverByName("GTiff")
        bg = driver.Create(
            str(bg_path), 1, 1, self.band_count, self._ds.GetRasterBand(1).DataType
        )
        bg.SetProjection(self._ds.GetProjection())
        bg.SetGeoTransform(self.extents.geotransform(one))
        for i, value in enumerate(background):
            src = self._ds.GetRasterBand(i + 1)
            band = bg.GetRasterBand(i + 1)
            band.SetColorInterpretation(src.GetColorInterpretation())
            band.Fill(value)
        bg.FlushCache()

        for i in range(self.band_count):
            self.add_simple_source(i, store_path, bg, i, Rect.whole(one), Rect.whole(self.size))
        bg = None

    def _add_source(self, band: gdal.Band, source: str):
        try:
            err = band.SetMetadataItem("source_0", source, NEW_VRT_SOURCES)
        except RuntimeError as e:
            raise DescriptorError(f"Cannot parse VRT source from XML: <{e}>.") from e
        if err:
            raise DescriptorError(f"Cannot add VRT source to {self.path}: {gdal.GetLastErrorMsg()}")
