#!/usr/bin/env python3
"""vrtwo CLI - Build VRT datasets with overviews from a single raster

The pyramid is a chain of VRT files: level 0 references the input in place,
every further level is a mosaic of GeoTIFF tiles warped from the level above.
"""

import logging
import sys
from pathlib import Path

import click

from . import config as config_module
from .errors import ConfigurationError
from .geometry import Size
from .generate import generate
from .linker import read_overview_chain


class SizeType(click.ParamType):
    """WIDTHxHEIGHT pixel size, e.g. 1024x1024"""

    name = "size"

    def convert(self, value, param, ctx):
        if isinstance(value, Size):
            return value
        try:
            return config_module.parse_size(value)
        except ConfigurationError as e:
            self.fail(str(e), param, ctx)


class CreateOptionType(click.ParamType):
    """GDAL creation option KEY=VALUE"""

    name = "key=value"

    def convert(self, value, param, ctx):
        if isinstance(value, tuple):
            return value
        try:
            return config_module.parse_create_option(value)
        except ConfigurationError as e:
            self.fail(str(e), param, ctx)


class ColorType(click.ParamType):
    """Comma separated per-band values, e.g. 0,0,255"""

    name = "color"

    def convert(self, value, param, ctx):
        if isinstance(value, tuple):
            return value
        try:
            return config_module.parse_color(value)
        except ConfigurationError as e:
            self.fail(str(e), param, ctx)


def setup_logging(verbose: bool):
    """Configure logging based on verbosity."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(threadName)s %(message)s",
        )


@click.group()
@click.version_option(package_name="vrtwo")
def cli():
    """vrtwo CLI - Build VRT datasets with overviews.

    \b
    Examples:
        vrtwo generate input.tif output
        vrtwo generate --tile-size 512x512 --wrapx 1 world.tif output
        vrtwo inspect output/dataset
    """
    pass


@cli.command("generate")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--tile-size",
    type=SizeType(),
    default="1024x1024",
    help="Size of overview tiles in pixels (default: 1024x1024)",
)
@click.option(
    "--min-ovr-size",
    type=SizeType(),
    default="256x256",
    help="Generate overviews until both dimensions drop below this size (default: 256x256)",
)
@click.option(
    "--resampling",
    type=click.Choice([str(r) for r in config_module.ResamplingAlgorithm]),
    default=str(config_module.ResamplingAlgorithm.Average),
    help="Resampling algorithm (default: average)",
)
@click.option(
    "--co",
    "create_options",
    type=CreateOptionType(),
    multiple=True,
    help="GeoTIFF creation option for tiles, repeatable; PREDICTOR without value is chosen from data type",
)
@click.option("--nodata", type=float, default=None, help="Override nodata value of the input")
@click.option(
    "--background",
    type=ColorType(),
    default=None,
    help="Background color; tiles of just this color are not stored",
)
@click.option(
    "--wrapx",
    type=click.IntRange(min=0),
    default=None,
    help="Make dataset periodic in x, value is the pixel overlap of the input edges",
)
@click.option(
    "--path-to-original-dataset",
    type=click.Choice([str(p) for p in config_module.PathToOriginalDataset]),
    default=str(config_module.PathToOriginalDataset.SYMLINK),
    help="How to refer to the input dataset (default: symlink)",
)
@click.option("--overwrite", is_flag=True, help="Overwrite existing output directory")
@click.option("--threads", type=click.IntRange(min=1), default=None, help="Number of tile workers (default: CPU count)")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def generate_command(
    input_file: Path,
    output_dir: Path,
    tile_size: Size,
    min_ovr_size: Size,
    resampling: str,
    create_options: tuple[tuple[str, str], ...],
    nodata: float | None,
    background: tuple[float, ...] | None,
    wrapx: int | None,
    path_to_original_dataset: str,
    overwrite: bool,
    threads: int | None,
    verbose: bool,
):
    """Generate a VRT pyramid for INPUT_FILE in OUTPUT_DIR.

    \b
    Examples:
        vrtwo generate dem.tif dem-vrt
        vrtwo generate --co COMPRESS=LZW --co PREDICTOR dem.tif dem-vrt
    """
    setup_logging(verbose)

    try:
        config = config_module.Config(
            tile_size=tile_size,
            min_ovr_size=min_ovr_size,
            resampling=config_module.ResamplingAlgorithm(resampling),
            create_options=list(create_options) if create_options else config_module.default_create_options(),
            nodata=nodata,
            background=background,
            wrapx=wrapx,
            path_to_original_dataset=config_module.PathToOriginalDataset(path_to_original_dataset),
            overwrite=overwrite,
            threads=threads,
        )

        click.echo(f"Generating VRT pyramid of {input_file} in {output_dir}...")
        generate(input_file, output_dir, config)
        click.echo(f"Successfully created {output_dir / 'dataset'}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


@cli.command("inspect")
@click.argument("dataset", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def inspect_command(dataset: Path, verbose: bool):
    """List the levels of a VRT pyramid.

    DATASET is the level 0 descriptor, usually OUTPUT_DIR/dataset.
    """
    setup_logging(verbose)

    try:
        levels = read_overview_chain(dataset)
    except Exception as e:
        click.echo(f"Error reading pyramid: {e}", err=True)
        sys.exit(1)

    click.echo(f"\nPyramid: {dataset}")
    click.echo(f"Levels: {len(levels)}\n")
    for i, level in enumerate(levels):
        click.echo(f"  {i}. {level.width} x {level.height} px, {level.band_count} band(s) - {level.path}")
    click.echo()


if __name__ == "__main__":
    cli()
