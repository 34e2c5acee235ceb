"""
Common click options for the CLI commands.
"""

from pathlib import Path

import click
import platformdirs

DEFAULT_CONFIG_PATH = Path(platformdirs.user_config_dir("block-uploader")) / "config.yaml"

# Aliases for path types for click options
# Naming convention: {DIR,FILE}_{Read,Write}_{Exists,Create}
FILE_R_E = click.Path(exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True)
FILE_RW_C = click.Path(exists=False, file_okay=True, dir_okay=False, writable=True, resolve_path=True)

config_file = click.option(
    "--config-file",
    "config_files",
    metavar="PATH",
    type=FILE_R_E,
    multiple=True,
    help=f"Path to config file, may be given multiple times; later files take precedence [default: {DEFAULT_CONFIG_PATH}]",
)

encryption_key_file = click.option(
    "--encryption-key-file",
    metavar="PATH",
    type=FILE_R_E,
    required=False,
    help="File containing the 32-byte symmetric key, raw or base64-encoded",
)

artifacts_file = click.option(
    "--artifacts-file",
    metavar="PATH",
    type=FILE_RW_C,
    required=False,
    help="JSON file holding the per-block encryption artifacts",
)

threads = click.option(
    "--threads",
    default=None,
    type=click.IntRange(min=1),
    help="Number of blocks transferred simultaneously [default: from config, 3]",
)

output_json = click.option("--json", "output_json", is_flag=True, help="Output JSON for machine-readability.")

force = click.option("--force/--no-force", help="Overwrite existing files")


def config_files_from_option(config_files: tuple[str, ...]) -> list[Path]:
    """Config files given on the command line, or the default config file if none were given."""
    if config_files:
        return [Path(p) for p in config_files]
    return [DEFAULT_CONFIG_PATH] if DEFAULT_CONFIG_PATH.is_file() else []
