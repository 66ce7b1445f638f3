"""Level 0 of the pyramid: a VRT referencing the original dataset in place"""
from __future__ import annotations

import glob
import logging
import os
import pathlib

from osgeo import gdal

from .config import Config, PathToOriginalDataset
from .errors import ConfigurationError
from .geometry import Point, Rect, Size
from .planner import DatasetDescriptor, Setup, make_setup
from .vrt import RasterFormat, VrtDs

gdal.UseExceptions()

DATASET_NAME = "dataset"
ORIGINAL_NAME = "original"

# Drivers that identify files by their name, the link must keep it
NAME_SENSITIVE_DRIVERS = frozenset(("SRTMHGT",))


def symlink_source(config: Config, path: pathlib.Path, base: pathlib.Path) -> pathlib.Path:
    """Target of a link placed in base pointing to path"""
    if config.path_to_original_dataset is PathToOriginalDataset.ABSOLUTE_SYMLINK:
        return path.absolute()
    return pathlib.Path(os.path.relpath(path.absolute(), base.absolute()))


def symlink(oldpath: pathlib.Path, newpath: pathlib.Path):
    """Make newpath point to oldpath, replacing whatever is in the way"""
    logging.info("Linking %s <- %s.", oldpath, newpath)
    newpath.unlink(missing_ok=True)
    newpath.symlink_to(oldpath)


def resolve_sidecars(input_path: pathlib.Path) -> list[pathlib.Path]:
    """Files sharing the input's name as prefix, e.g. input.tif.aux.xml"""
    pattern = os.path.join(glob.escape(str(input_path.parent)), glob.escape(input_path.name) + ".*")
    return sorted(pathlib.Path(p) for p in glob.glob(pattern))


def build_dataset_base(config: Config, input_path: pathlib.Path, output: pathlib.Path) -> Setup:
    """Create output/dataset from a link to the input and plan the pyramid

    With x-wrap every band gets three sources: the input itself shifted by
    x_plus pixels, its right edge copied into the left pad and its left edge
    copied into the right pad.
    """
    if config.path_to_original_dataset is PathToOriginalDataset.COPY:
        # TODO: copy the dataset files with the driver's CopyFiles()
        raise ConfigurationError("Support for dataset copy not implemented yet.")

    output_dataset = output / DATASET_NAME

    src = gdal.Open(str(input_path))
    descriptor = DatasetDescriptor.from_dataset(src)

    input_dataset = pathlib.Path(ORIGINAL_NAME)
    if descriptor.driver_name in NAME_SENSITIVE_DRIVERS:
        input_dataset = pathlib.Path(input_path.name)

    input_dataset_symlink = output / input_dataset

    logging.info("Creating dataset base in %s from %s.", output_dataset, input_dataset_symlink)

    symlink(symlink_source(config, input_path, output), input_dataset_symlink)

    for sidecar in resolve_sidecars(input_path):
        extension = sidecar.name[len(input_path.name):]
        symlink(
            symlink_source(config, sidecar, output),
            input_dataset_symlink.with_name(input_dataset_symlink.name + extension),
        )

    setup = make_setup(descriptor, config)
    setup.output_dataset = output_dataset

    output_dataset.unlink(missing_ok=True)

    nodata = config.nodata if config.nodata is not None else src.GetRasterBand(1).GetNoDataValue()

    in_size = Size(src.RasterXSize, src.RasterYSize)
    with VrtDs(
        output_dataset,
        src.GetProjection(),
        setup.extents,
        setup.size,
        RasterFormat.from_dataset(src),
        nodata,
        setup.mask_type,
    ) as out:
        for i in range(src.RasterCount):
            if config.wrapx is None:
                out.add_simple_source(i, input_dataset, src, i)
                continue

            shift = config.wrapx
            x_plus = setup.x_plus
            strip = Size(x_plus, in_size.height)

            # center
            out.add_simple_source(i, input_dataset, src, i, None, Rect(Point(x_plus, 0), in_size))

            # right edge into the left pad
            right_src = Rect(Point(in_size.width - x_plus - shift, 0), strip)
            out.add_simple_source(i, input_dataset, src, i, right_src, Rect.whole(strip))

            # left edge into the right pad
            left_src = Rect(Point(shift, 0), strip)
            right_dst = Rect(Point(in_size.width + x_plus, 0), strip)
            out.add_simple_source(i, input_dataset, src, i, left_src, right_dst)

    return setup
