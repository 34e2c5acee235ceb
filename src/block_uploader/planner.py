"""
Block planning: how a file is split into blocks and how those blocks are named.
"""

import base64
import logging
import math
from collections.abc import Iterator
from dataclasses import dataclass

from .constants import BLOCK_ID_INDEX_WIDTH, MAX_BLOCKS
from .exceptions import InvalidConfiguration

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockRange:
    """Half-open byte range ``[start, end)`` of a single block."""

    index: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class UploadPlan:
    """
    Immutable block layout of a single upload.

    :param file_size: Size of the source file in bytes
    :param block_size: Effective block size; equals ``file_size`` if the file is smaller than the requested size
    :param total_blocks: Number of blocks; an empty file is uploaded as a single empty block
    """

    file_size: int
    block_size: int
    total_blocks: int

    def block_range(self, index: int) -> BlockRange:
        """
        Byte range of block ``index``. The last block is shorter whenever
        ``file_size`` is not a multiple of ``block_size``.
        """
        if not 0 <= index < self.total_blocks:
            raise IndexError(f"Block index {index} out of range for {self.total_blocks} blocks")
        start = index * self.block_size
        end = min((index + 1) * self.block_size, self.file_size)
        return BlockRange(index=index, start=min(start, end), end=end)

    def block_ranges(self) -> Iterator[BlockRange]:
        for index in range(self.total_blocks):
            yield self.block_range(index)


def _check_int(name: str, value) -> int:
    # bool is an int subclass but never a sensible size
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfiguration(f"{name} must be an integer, got {type(value).__name__}")
    return value


def plan(file_size: int, requested_block_size: int) -> UploadPlan:
    """
    Calculate the block layout for a file.

    :param file_size: Size of the file in bytes
    :param requested_block_size: Desired size of each block in bytes
    :raises InvalidConfiguration: for negative file sizes, non-positive block sizes
        or if the file would need more blocks than block IDs can address
    """
    file_size = _check_int("file_size", file_size)
    requested_block_size = _check_int("block_size", requested_block_size)

    if file_size < 0:
        raise InvalidConfiguration(f"file_size must not be negative, got {file_size}")
    if requested_block_size <= 0:
        raise InvalidConfiguration(f"block_size must be positive, got {requested_block_size}")

    if file_size == 0:
        # a single empty block, so the blob still gets committed
        return UploadPlan(file_size=0, block_size=requested_block_size, total_blocks=1)

    block_size = min(requested_block_size, file_size)
    total_blocks = math.ceil(file_size / block_size)

    if total_blocks > MAX_BLOCKS:
        raise InvalidConfiguration(
            f"File of {file_size} bytes needs {total_blocks} blocks of {block_size} bytes, "
            f"but at most {MAX_BLOCKS} blocks are supported. Increase the block size."
        )

    log.debug(f"Planned {total_blocks} block(s) of {block_size} bytes for {file_size} bytes")
    return UploadPlan(file_size=file_size, block_size=block_size, total_blocks=total_blocks)


def make_block_id(prefix: str, index: int) -> str:
    """
    Build the base64-encoded block ID ``<prefix><zero-padded index>``.

    All IDs of one upload have the same length, which the storage service requires.
    """
    raw = f"{prefix}{index:0{BLOCK_ID_INDEX_WIDTH}d}"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def block_index_from_id(block_id: str) -> int:
    """Recover the block index encoded in a block ID created by :func:`make_block_id`."""
    try:
        raw = base64.b64decode(block_id, validate=True).decode("utf-8")
        return int(raw[-BLOCK_ID_INDEX_WIDTH:])
    except ValueError as e:
        raise ValueError(f"Not a valid block ID: {block_id!r}") from e
