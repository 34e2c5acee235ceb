"""Command for decrypting a downloaded blob that was uploaded with per-block encryption."""

import logging
from pathlib import Path

import click
from pydantic import ValidationError

from ..exceptions import BlockUploadError
from ..models.artifacts import EncryptionArtifacts
from ..utils.crypt import decrypt_blob, read_encryption_key
from . import FILE_R_E, FILE_RW_C, force

log = logging.getLogger(__name__)


@click.command()
@click.argument("encrypted_file", metavar="ENCRYPTED_FILE", type=FILE_R_E)
@click.argument("output_file", metavar="OUTPUT_FILE", type=FILE_RW_C)
@click.option(
    "--encryption-key-file",
    metavar="PATH",
    type=FILE_R_E,
    required=True,
    help="File containing the key used for the upload",
)
@click.option(
    "--artifacts-file",
    metavar="PATH",
    type=FILE_R_E,
    required=True,
    help="JSON file with the encryption artifacts written by the upload",
)
@force
def decrypt(encrypted_file, output_file, encryption_key_file, artifacts_file, force):
    """
    Decrypt ENCRYPTED_FILE into OUTPUT_FILE.
    """
    output_path = Path(output_file)
    if output_path.exists() and not force:
        raise click.ClickException(f"{output_path} already exists, use --force to overwrite it.")

    try:
        artifacts = EncryptionArtifacts.model_validate_json(Path(artifacts_file).read_text())
    except ValidationError as e:
        raise click.ClickException(f"Invalid artifacts file {artifacts_file}: {e}") from e

    try:
        key = read_encryption_key(encryption_key_file)
        with open(encrypted_file, "rb") as in_fd, open(output_path, "wb") as out_fd:
            written = decrypt_blob(key, in_fd, artifacts, out_fd)
    except BlockUploadError as e:
        output_path.unlink(missing_ok=True)
        raise click.ClickException(str(e)) from e

    log.info(f"Decrypted {written} bytes into {output_path}")
