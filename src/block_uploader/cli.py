"""
CLI module for handling command-line interface operations.
"""

import importlib.metadata
import logging

import click

from .commands.decrypt import decrypt
from .commands.dump_config import dump_config
from .commands.generate_key import generate_key_command
from .commands.upload import upload
from .constants import PACKAGE_ROOT
from .logging import setup_cli_logging

log = logging.getLogger(PACKAGE_ROOT + ".cli")


class OrderedGroup(click.Group):
    """
    A click Group that keeps track of the order in which commands are added.
    """

    def list_commands(self, ctx):
        """Return the list of commands in the order they were added."""
        return list(self.commands.keys())


def build_cli():
    """
    Factory for building the CLI application.
    """

    @click.group(
        cls=OrderedGroup,
        help="Upload large files to blob storage block by block, optionally encrypting each block.",
    )
    @click.version_option(
        version=importlib.metadata.version("block-uploader"),
        prog_name="block-uploader",
    )
    @click.option("--log-file", metavar="FILE", type=str, help="Path to log file")
    @click.option(
        "--log-level",
        default="INFO",
        type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
        help="Set the log level (default: INFO)",
    )
    def cli(log_file: str | None = None, log_level: str = "INFO"):
        """
        Command-line interface function for setting up logging.

        :param log_file: Path to the log file. If provided, a file logger will be added.
        :param log_level: Log level for the logger. It should be one of the following:
                           DEBUG, INFO, WARNING, ERROR, CRITICAL.
        """
        setup_cli_logging(log_file, log_level)

    cli.add_command(upload)
    cli.add_command(decrypt)
    cli.add_command(generate_key_command, name="generate-key")
    cli.add_command(dump_config, name="dump-config")

    return cli


def main():
    """
    Main entry point for the CLI application.
    """
    cli = build_cli()
    cli()


if __name__ == "__main__":
    main()
