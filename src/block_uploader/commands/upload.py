"""Command for uploading a file block by block."""

import logging
from pathlib import Path

import click
from tqdm.auto import tqdm

from ..constants import TQDM_DEFAULTS
from ..exceptions import BlockUploadError
from ..models.config import ConfigModel
from ..storage import BlockStorage
from ..storage.azure import AzureBlobStorage
from ..storage.s3 import S3BlockStorage
from ..upload import Callbacks, UploadCoordinator
from ..utils.config import read_config
from ..utils.crypt import read_encryption_key
from ..utils.io import FileSource
from . import (
    FILE_R_E,
    artifacts_file,
    config_file,
    config_files_from_option,
    encryption_key_file,
    output_json,
    threads,
)

log = logging.getLogger(__name__)


def build_storage(config: ConfigModel, content_type: str | None = None) -> BlockStorage:
    """Instantiate the storage service selected in the configuration."""
    if config.backend == "s3":
        return S3BlockStorage.from_options(config.s3_options, content_type=content_type)
    return AzureBlobStorage(config.azure)


@click.command()
@click.argument("file", metavar="FILE", type=FILE_R_E)
@click.argument("url", metavar="URL", type=str)
@config_file
@click.option(
    "--backend",
    type=click.Choice(["azure", "s3"]),
    default=None,
    help="Storage service; URL is a SAS blob URL for 'azure' and an object key for 's3' [default: from config, azure]",
)
@click.option("--block-size", type=click.IntRange(min=1), default=None, help="Block size in bytes")
@click.option("--block-id-prefix", type=str, default=None, help="Prefix of the block IDs")
@click.option("--content-type", type=str, default=None, help="Content type of the committed blob")
@threads
@encryption_key_file
@artifacts_file
@output_json
def upload(  # noqa: PLR0913
    file,
    url,
    config_files,
    backend,
    block_size,
    block_id_prefix,
    content_type,
    threads,
    encryption_key_file,
    artifacts_file,
    output_json,
):
    """
    Upload FILE to URL, block by block.

    If an encryption key is given, every block is encrypted on its own and the
    artifacts needed for decryption are written to the artifacts file.
    """
    upload_overrides = {
        "block_size": block_size,
        "block_id_prefix": block_id_prefix,
        "content_type": content_type,
        "simultaneous_uploads": threads,
    }
    overrides: dict[str, object] = {
        "upload": {k: v for k, v in upload_overrides.items() if v is not None},
    }
    if backend is not None:
        overrides["backend"] = backend
    if encryption_key_file is not None:
        overrides["encryption_key_path"] = encryption_key_file

    try:
        config = read_config(config_files_from_option(config_files), **overrides)
    except BlockUploadError as e:
        raise click.ClickException(str(e)) from e

    key = None
    if config.encryption_key_path is not None:
        if artifacts_file is None and not output_json:
            raise click.UsageError("Encrypted uploads need --artifacts-file or --json to keep the artifacts.")
        try:
            key = read_encryption_key(config.encryption_key_path)
        except BlockUploadError as e:
            raise click.ClickException(str(e)) from e

    source = FileSource(file)
    storage = build_storage(config, content_type=config.upload.content_type or source.content_type)

    log.info("Starting upload...")
    with tqdm(total=source.size, desc="UPLOAD  ", postfix=source.name, **TQDM_DEFAULTS) as pbar:  # type: ignore[call-overload]

        def on_progress(event):
            pbar.update(round(event["progress"] * source.size) - pbar.n)

        try:
            coordinator = UploadCoordinator(
                url,
                source,
                storage,
                options=config.upload,
                callbacks=Callbacks(on_progress=on_progress),
            )
            result = coordinator.run(encryption_key=key)
        except BlockUploadError as e:
            pbar.set_postfix_str(f"✗ ERROR {source.name}", refresh=True)
            raise click.ClickException(str(e)) from e
        pbar.set_postfix_str(f"✓ OK    {source.name}", refresh=True)

    if artifacts_file is not None and result.artifacts is not None:
        Path(artifacts_file).write_text(result.artifacts.model_dump_json(indent=2))
        log.info(f"Encryption artifacts written to {artifacts_file}")

    if output_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        click.echo(f"Uploaded {source.name} in {len(result.block_ids)} block(s)")

    log.info("Upload finished!")
