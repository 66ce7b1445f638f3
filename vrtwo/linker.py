"""Chain pyramid levels together through <Overview> elements"""
from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
import xml.etree.ElementTree as ET

from .errors import DescriptorError
from .vrt import relative_to_vrt


def parse_vrt(path: str | os.PathLike) -> ET.ElementTree:
    try:
        return ET.parse(path)
    except (ET.ParseError, OSError) as e:
        raise DescriptorError(f"Cannot parse XML from {path}: <{e}>.") from e


def save_vrt(tree: ET.ElementTree, path: str | os.PathLike):
    try:
        tree.write(path, encoding="utf-8")
    except OSError as e:
        raise DescriptorError(f"Cannot save updated VRT file into {path}.") from e


def add_overview(vrt_path: str | os.PathLike, ovr_path: str | os.PathLike):
    """Append an overview reference to every raster band of a VRT file

    ovr_path is stored as given: relative paths are resolved by GDAL against
    the directory of vrt_path.
    """
    tree = parse_vrt(vrt_path)
    ovr_path = pathlib.PurePath(ovr_path)

    for band_node in tree.getroot().iterfind("VRTRasterBand"):
        band = band_node.get("band")
        if band is None:
            logging.warning("Cannot find band attribute in VRTRasterBand.")
            continue

        overview = ET.SubElement(band_node, "Overview")
        source_filename = ET.SubElement(
            overview, "SourceFilename", relativeToVRT=relative_to_vrt(ovr_path)
        )
        source_filename.text = ovr_path.as_posix()
        source_band = ET.SubElement(overview, "SourceBand")
        source_band.text = band

    save_vrt(tree, vrt_path)


@dataclasses.dataclass
class Level:
    path: pathlib.Path
    width: int
    height: int
    band_count: int


def read_overview_chain(path: str | os.PathLike) -> list[Level]:
    """Follow the first band's overview references from a pyramid base"""
    levels = []
    path = pathlib.Path(path)
    seen = set()
    while path is not None and path.resolve() not in seen:
        seen.add(path.resolve())
        root = parse_vrt(path).getroot()
        bands = root.findall("VRTRasterBand")
        levels.append(
            Level(path, int(root.get("rasterXSize", 0)), int(root.get("rasterYSize", 0)), len(bands))
        )

        next_path = None
        overview = bands[0].find("Overview/SourceFilename") if bands else None
        if overview is not None and overview.text:
            next_path = pathlib.Path(overview.text)
            if overview.get("relativeToVRT") == "1":
                next_path = path.parent / next_path
        path = next_path
    return levels
