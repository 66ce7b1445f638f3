"""Build one overview level: warp the previous level tile by tile"""
from __future__ import annotations

import concurrent.futures
import dataclasses
import logging
import os
import pathlib
import threading
import time

from osgeo import gdal

from .config import Config
from .geometry import Extents, Point, Rect, Size
from .planner import MaskType
from .raster import (
    empty_tile,
    format_create_options,
    promote_for_mask,
    resolve_create_options,
)
from .vrt import RasterFormat, VrtDs

gdal.UseExceptions()

OVERVIEW_NAME = "ovr.vrt"

# The GTiff driver is not safe to use concurrently while creating datasets
_create_lock = threading.Lock()


class Progress:
    """Count processed tiles across all levels"""

    def __init__(self, total: int):
        self.total = total
        self._count = 0
        self._lock = threading.Lock()

    def advance(self) -> int:
        with self._lock:
            self._count += 1
            return self._count


@dataclasses.dataclass
class Tile:
    """Placement of a single tile within its level"""

    level: int
    x: int
    y: int
    size: Size
    extents: Extents

    @property
    def name(self) -> str:
        return f"{self.x}-{self.y}.tif"

    def __str__(self) -> str:
        return f"{self.level}-{self.x}-{self.y}"


def plan_tiles(level: int, extents: Extents, size: Size, tiled: Size, tile_size: Size) -> list[Tile]:
    """Split a level into a row-major grid of tiles with their extents

    Last column and row take whatever is left over.
    """
    tile_width = (extents.width * tile_size.width) / size.width
    tile_height = (extents.height * tile_size.height) / size.height
    originx, originy = extents.upper_left

    last = Size(
        size.width - (tiled.width - 1) * tile_size.width,
        size.height - (tiled.height - 1) * tile_size.height,
    )

    tiles = []
    for i in range(tiled.area):
        x, y = i % tiled.width, i // tiled.width
        last_x = x == tiled.width - 1
        last_y = y == tiled.height - 1

        px_size = Size(
            last.width if last_x else tile_size.width,
            last.height if last_y else tile_size.height,
        )

        ulx = originx + tile_width * x
        uly = originy - tile_height * y
        lrx = extents.urx if last_x else ulx + tile_width
        lry = extents.lly if last_y else uly - tile_height

        tiles.append(Tile(level, x, y, px_size, Extents(ulx, lry, lrx, uly)))
    return tiles


def create_tmp_dataset(
    src: gdal.Dataset, extents: Extents, size: Size, mask_type: MaskType
) -> gdal.Dataset:
    """In-memory dataset to warp a tile into

    Datasets with an internal mask are widened to a bigger data type whose
    lowest value is free to serve as nodata.
    """
    raster_format = RasterFormat.from_dataset(src)
    data_type = raster_format.data_type
    nodata = src.GetRasterBand(1).GetNoDataValue()

    if mask_type is MaskType.BAND:
        promotion = promote_for_mask(data_type)
        data_type, nodata = promotion.data_type, promotion.nodata

    tmp = gdal.GetDriverByName("MEM").Create(
        "", size.width, size.height, raster_format.band_count, data_type
    )
    tmp.SetProjection(src.GetProjection())
    tmp.SetGeoTransform(extents.geotransform(size))
    for i in range(raster_format.band_count):
        band = tmp.GetRasterBand(i + 1)
        band.SetColorInterpretation(raster_format.color_interpretations[i])
        if nodata is not None:
            band.SetNoDataValue(nodata)
    return tmp


def warp_into(src: gdal.Dataset, tmp: gdal.Dataset, config: Config):
    """Warp from the full resolution source, never from its overviews"""
    nodata = tmp.GetRasterBand(1).GetNoDataValue()
    gdal.Warp(
        tmp,
        src,
        options=gdal.WarpOptions(
            resampleAlg=str(config.resampling),
            overviewLevel="NONE",
            dstNodata=nodata,
            warpOptions=["INIT_DEST=NO_DATA"],
        ),
    )


def copy_with_mask(src: gdal.Dataset, dst: gdal.Dataset):
    """Copy all data bands and the mask of src, src is a tile held in memory"""
    for i in range(src.RasterCount):
        dst.GetRasterBand(i + 1).WriteArray(src.GetRasterBand(i + 1).ReadAsArray())
    src_mask = src.GetRasterBand(1).GetMaskBand()
    dst.GetRasterBand(1).GetMaskBand().WriteArray(src_mask.ReadAsArray())


def create_output_dataset(
    original: gdal.Dataset,
    src: gdal.Dataset,
    path: pathlib.Path,
    create_options: list[str],
    mask_type: MaskType,
):
    """Store a warped tile as GeoTIFF

    Without an internal mask the tile is copied as is. Otherwise the output is
    created manually in the original data type and gets the mask of src as its
    per-dataset mask, CreateCopy() would not carry it.
    """
    driver = gdal.GetDriverByName("GTiff")

    if mask_type is not MaskType.BAND:
        with _create_lock:
            dst = driver.CreateCopy(str(path), src, options=create_options)
        dst.FlushCache()
        dst = None
        return

    raster_format = RasterFormat.from_dataset(original)
    with _create_lock:
        dst = driver.Create(
            str(path),
            src.RasterXSize,
            src.RasterYSize,
            raster_format.band_count,
            raster_format.data_type,
            options=create_options,
        )
        dst.SetProjection(src.GetProjection())
        dst.SetGeoTransform(src.GetGeoTransform())
        for i in range(raster_format.band_count):
            dst.GetRasterBand(i + 1).SetColorInterpretation(raster_format.color_interpretations[i])
        dst.CreateMaskBand(gdal.GMF_PER_DATASET)

    copy_with_mask(src, dst)
    dst.FlushCache()
    dst = None


def create_overview(
    config: Config,
    output: pathlib.Path,
    ovr_index: int,
    src_path: pathlib.Path,
    directory: pathlib.Path,
    size: Size,
    tiled: Size,
    progress: Progress,
    mask_type: MaskType,
) -> pathlib.Path:
    """Generate overview level ovr_index from the VRT at src_path

    Tiles are written to output/directory and collected in
    output/directory/ovr.vrt. Returns the VRT path relative to output.
    """
    ovr_name = directory / OVERVIEW_NAME
    ovr_path = output / ovr_name

    logging.info(
        "Creating overview #%d of %d tiles in %s from %s.",
        ovr_index,
        tiled.area,
        ovr_path,
        src_path,
    )

    src = gdal.Open(str(src_path))
    create_options = format_create_options(
        resolve_create_options(config.create_options, src.GetRasterBand(1).DataType)
    )

    ovr = VrtDs(
        ovr_path,
        src.GetProjection(),
        Extents.from_geotransform(src.GetGeoTransform(), Size(src.RasterXSize, src.RasterYSize)),
        size,
        RasterFormat.from_dataset(src),
        src.GetRasterBand(1).GetNoDataValue(),
        mask_type,
    )
    src = None

    with ovr:
        ovr.add_background(output / directory, config.background)

        tiles = plan_tiles(ovr_index, ovr.extents, size, tiled, config.tile_size)

        def process(tile: Tile):
            start = time.monotonic()
            logging.info("Processing tile %s (size: %s, extents: %s).", tile, tile.size, tile.extents)

            src = gdal.Open(str(src_path))
            tmp = create_tmp_dataset(src, tile.extents, tile.size, mask_type)
            warp_into(src, tmp, config)

            if empty_tile(tmp, config.background):
                logging.info(
                    "Processed tile #%d/%d %s (size: %s, extents: %s) [empty]; duration: %.3fs.",
                    progress.advance(),
                    progress.total,
                    tile,
                    tile.size,
                    tile.extents,
                    time.monotonic() - start,
                )
                return

            tile_path = output / directory / tile.name
            tile_path.unlink(missing_ok=True)
            create_output_dataset(src, tmp, tile_path, create_options, mask_type)

            written = gdal.Open(str(tile_path))
            ovr.add_sources(
                tile.name,
                written,
                Rect(Point(tile.x * config.tile_size.width, tile.y * config.tile_size.height), tile.size),
            )

            logging.info(
                "Processed tile #%d/%d %s (size: %s, extents: %s) [valid]; duration: %.3fs.",
                progress.advance(),
                progress.total,
                tile,
                tile.size,
                tile.extents,
                time.monotonic() - start,
            )

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=config.threads or os.cpu_count(), thread_name_prefix="tile"
        ) as executor:
            futures = [executor.submit(process, tile) for tile in tiles]
            try:
                for future in concurrent.futures.as_completed(futures):
                    future.result()
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    return ovr_name
