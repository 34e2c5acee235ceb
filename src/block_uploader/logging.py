"""
Module: logging

Logging setup for the command line interface.
"""

from __future__ import annotations

import logging
import re
import sys
from os import PathLike
from pathlib import Path

from tqdm.auto import tqdm

log = logging.getLogger(__name__)

LOGGING_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOGGING_DATEFMT = "%Y-%m-%d %I:%M %p"

# HTTP client loggers that echo full request URLs at DEBUG level
NOISY_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3")

_SIGNATURE_PATTERN = re.compile(r"(?i)\b(sig|x-amz-signature|x-amz-security-token)=[^&\s'\"]+")


class RedactSignatureFilter(logging.Filter):
    """
    Masks SAS and presigned-URL signatures in log records.

    Upload URLs carry their credentials in the query string.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SIGNATURE_PATTERN.sub(r"\1=REDACTED", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class TqdmLoggingHandler(logging.Handler):
    """
    Writes log records to stderr via tqdm.write(), so they don't tear through progress bars.
    """

    def emit(self, record):
        try:
            msg = self.format(record)
            tqdm.write(msg, file=sys.stderr)
            self.flush()
        except Exception:
            self.handleError(record)


def add_filelogger(file_path: str | PathLike, level: str = "INFO", logger_name: str | None = None) -> None:
    """
    Additionally write log records to a file.

    :param file_path: Path to the log file
    :param level: Level name for the file handler, e.g. 'DEBUG' or 'INFO'
    :param logger_name: Logger to attach the handler to; the root logger if None
    """
    logger = logging.getLogger(logger_name)
    file_path = Path(file_path)

    file_handler = logging.FileHandler(file_path)
    file_handler.setLevel(level.upper())
    file_handler.setFormatter(logging.Formatter(fmt=LOGGING_FORMAT, datefmt=LOGGING_DATEFMT))
    file_handler.addFilter(RedactSignatureFilter())
    logger.addHandler(file_handler)
    log.info("File logger added for %s at %s with level %s.", logger.name, file_path, level.upper())


def setup_cli_logging(log_file: str | None, log_level: str):
    """
    Configure the root logger for the CLI: records go through tqdm to stderr, and optionally to a file.

    Signatures in upload URLs are masked in every handler.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level.upper())

    # Remove existing handlers to avoid duplication (e.g. default handlers)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = TqdmLoggingHandler()
    console_handler.setFormatter(logging.Formatter(fmt=LOGGING_FORMAT, datefmt=LOGGING_DATEFMT))
    console_handler.addFilter(RedactSignatureFilter())
    root_logger.addHandler(console_handler)

    # only surface the HTTP clients' request logs when debugging
    quiet_level = logging.DEBUG if log_level.upper() == "DEBUG" else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    if log_file:
        add_filelogger(log_file, log_level.upper())

    log.debug("Logging setup complete.")
