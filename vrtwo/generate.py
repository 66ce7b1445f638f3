"""Generate a virtual dataset with overviews

Output layout::

    <output>/dataset        level 0, references the input
    <output>/0/ovr.vrt      level 1
    <output>/0/<x>-<y>.tif  level 1 tiles
    <output>/1/ovr.vrt      level 2
    ...
"""
from __future__ import annotations

import logging
import os
import pathlib

from .base import build_dataset_base
from .config import Config
from .errors import OutputExistsError
from .linker import add_overview
from .overview import Progress, create_overview


def generate(input_path: str | os.PathLike, output_path: str | os.PathLike, config: Config):
    """Build the whole pyramid for input_path in output_path

    Levels are generated strictly in order, each one warped from the previous
    one and linked to it as its overview once complete.
    """
    input_path = pathlib.Path(input_path)
    output = pathlib.Path(output_path)

    if output.exists() and not config.overwrite:
        raise OutputExistsError(
            f"Destination directory {output} already exists. Use --overwrite"
            " to force existing output overwrite."
        )
    output.mkdir(parents=True, exist_ok=True)

    setup = build_dataset_base(config, input_path, output)

    progress = Progress(setup.total_tiles)
    logging.info(
        "About to generate %d overviews with %d tiles of size %s.",
        len(setup.ovr_sizes),
        progress.total,
        config.tile_size,
    )

    src_path = setup.output_dataset
    for i, (size, tiled) in enumerate(zip(setup.ovr_sizes, setup.ovr_tiled)):
        directory = pathlib.Path(str(i))
        (output / directory).mkdir(parents=True, exist_ok=True)

        ovr_name = create_overview(
            config, output, i, src_path, directory, size, tiled, progress, setup.mask_type
        )

        # previous level gets the new one as its overview
        ovr_path = output / ovr_name
        add_overview(src_path, os.path.relpath(ovr_path, src_path.parent))

        src_path = ovr_path
