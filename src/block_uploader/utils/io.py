"""I/O utilities for reading byte ranges of the file being uploaded."""

import abc
import logging
import mimetypes
import os
from os import PathLike
from pathlib import Path
from typing import override

from ..constants import DEFAULT_CONTENT_TYPE
from ..exceptions import ReadFailure

log = logging.getLogger(__name__)


class BlockSource(metaclass=abc.ABCMeta):
    """Random-access, read-only source of the bytes to upload."""

    name: str
    size: int

    @property
    def content_type(self) -> str:
        """Guessed MIME type, based on the source name."""
        guessed, _ = mimetypes.guess_type(self.name)
        return guessed or DEFAULT_CONTENT_TYPE

    def _check_range(self, start: int, end: int):
        if start < 0 or end < start or end > self.size:
            raise ReadFailure(f"Byte range [{start}, {end}) exceeds the bounds of {self.name} ({self.size} bytes)")

    @abc.abstractmethod
    def read_range(self, start: int, end: int) -> bytes:
        """
        Read the half-open byte range ``[start, end)``.

        Must be safe to call from several threads at once.

        :raises ReadFailure: on I/O errors or if the range exceeds the bounds of the source
        """
        raise NotImplementedError()


class FileSource(BlockSource):
    """A file on the local file system. Every read uses its own file handle."""

    def __init__(self, file_path: str | PathLike):
        self.file_path = Path(file_path)
        self.name = self.file_path.name
        try:
            self.size = os.path.getsize(self.file_path)
        except OSError as e:
            raise ReadFailure(f"Unable to access {self.file_path}") from e

    @override
    def read_range(self, start: int, end: int) -> bytes:
        self._check_range(start, end)
        try:
            with open(self.file_path, "rb") as fd:
                fd.seek(start)
                data = fd.read(end - start)
        except OSError as e:
            raise ReadFailure(f"Reading bytes [{start}, {end}) of {self.file_path} has failed") from e

        if len(data) != end - start:
            raise ReadFailure(
                f"Short read from {self.file_path}: expected {end - start} bytes, got {len(data)}. "
                "Was the file modified during the upload?"
            )
        return data


class BytesSource(BlockSource):
    """An in-memory buffer, mostly useful for small payloads and tests."""

    def __init__(self, data: bytes, name: str = "data.bin"):
        self._data = bytes(data)
        self.name = name
        self.size = len(self._data)

    @override
    def read_range(self, start: int, end: int) -> bytes:
        self._check_range(start, end)
        return self._data[start:end]
