"""CLI interface for bioseq."""

import sys
from pathlib import Path

import click
import numpy as np
from bioio import BioImage
from loguru import logger

from bioseq.compositor import concat_c, concat_t, concat_z
from bioseq.config import config
from bioseq.exceptions import BioseqError
from bioseq.importer import BioioImporter, load_sequence, load_thumbnails, render_preview
from bioseq.plane import ResampleFilter


@click.group()
def cli():
    """bioseq - multi-dimensional bioimage sequence tools."""
    logger.remove()
    logger.add(sys.stderr, level=config.log_level)


@cli.command()
@click.argument("input", type=click.Path(exists=True, path_type=Path))
def info(input):
    """
    Show the dimensions of every series of a bioimage file.
    """
    importer = BioioImporter(BioImage)
    if not importer.open(input):
        click.echo(f"✗ Cannot open {input}", err=True)
        sys.exit(1)

    try:
        count = importer.series_count
        click.echo(f"{input.name}: {count} series")
        for series in range(count):
            importer.image.set_scene(series)
            meta = importer.metadata()
            click.echo(
                f"  [{series}] X={meta.size_x} Y={meta.size_y} Z={meta.size_z} "
                f"T={meta.size_t} C={meta.size_c} type={meta.data_type}"
            )
    finally:
        importer.close()


@cli.command()
@click.argument("input", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Output directory (defaults to the directory of INPUT)",
)
@click.option("--size", type=int, default=None, help="Maximum thumbnail edge length")
def thumb(input, output_dir, size):
    """
    Write a PNG thumbnail for every series of a bioimage file.

    Series that can't be rendered get a blank placeholder.
    """
    size = size or config.thumbnail_size
    output_dir = output_dir or input.parent
    output_dir.mkdir(parents=True, exist_ok=True)

    importer = BioioImporter(BioImage, thumbnail_size=size)
    if not importer.open(input):
        click.echo(f"✗ Cannot open {input}", err=True)
        sys.exit(1)
    count = importer.series_count
    importer.close()

    logger.info(f"Creating {count} thumbnails for {input.name}")
    for series, plane in enumerate(load_thumbnails(importer, input, count)):
        output_path = output_dir / f"{input.stem}.series_{series:03d}.thumb.png"
        render_preview(plane, size).save(output_path, "PNG")
        click.echo(f"  → {output_path.name}")


@cli.command()
@click.argument("inputs", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("--axis", type=click.Choice(["c", "z", "t"]), required=True, help="Merge axis")
@click.option("--interlaced", is_flag=True, help="Interlace Z / T merges")
@click.option("--rescale", is_flag=True, help="Resample sources to a common XY size")
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Output .npz file",
)
def merge(inputs, axis, interlaced, rescale, output):
    """
    Merge the first series of several bioimage files along C, Z or T.

    The result is saved as a TCZYX array named "data" in a NumPy .npz file.
    """
    sequences = []
    for path in inputs:
        seq = load_sequence(path, reader=BioImage)
        if seq is None:
            click.echo(f"✗ Cannot open {path}", err=True)
            sys.exit(1)
        sequences.append(seq)

    options = dict(
        fill_empty=config.fill_empty,
        rescale=rescale,
        resample=ResampleFilter(config.resample_filter),
    )
    try:
        if axis == "c":
            result = concat_c(sequences, **options)
        elif axis == "z":
            result = concat_z(sequences, interlaced=interlaced, **options)
        else:
            result = concat_t(sequences, interlaced=interlaced, **options)
    except (BioseqError, ValueError) as e:
        click.echo(f"✗ Merge failed: {e}", err=True)
        sys.exit(1)

    channel_names = np.array([result.channel_name(c) for c in range(result.size_c)])
    np.savez(output, data=result.to_array(), channel_names=channel_names)
    click.echo(
        f"✓ {result.name}: T={result.size_t} C={result.size_c} Z={result.size_z} "
        f"Y={result.size_y} X={result.size_x} -> {output}"
    )
