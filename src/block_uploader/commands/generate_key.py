"""Command for generating a symmetric encryption key."""

import base64
import logging
import os
from pathlib import Path

import click

from ..utils.crypt import generate_key
from . import FILE_RW_C, force

log = logging.getLogger(__name__)


@click.command()
@click.argument("output_file", metavar="OUTPUT_FILE", type=FILE_RW_C)
@force
def generate_key_command(output_file, force):
    """
    Write a new random encryption key, base64-encoded, to OUTPUT_FILE.
    """
    output_path = Path(output_file)
    if output_path.exists() and not force:
        raise click.ClickException(f"{output_path} already exists, use --force to overwrite it.")

    output_path.write_text(base64.b64encode(generate_key()).decode("ascii") + "\n")
    os.chmod(output_path, 0o600)
    log.info(f"Key written to {output_path}")
