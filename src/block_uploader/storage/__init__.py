"""Storage services that blocks are staged with and committed to."""

from __future__ import annotations

import abc
import logging

log = logging.getLogger(__name__)


class BlockStorage(metaclass=abc.ABCMeta):
    """Baseclass for storage services supporting block-wise uploads"""

    @abc.abstractmethod
    def put_block(self, url: str, data: bytes, block_id: str):
        """
        Stage a single block under a block ID that is unique within the target blob.

        Must be safe to call from several threads at once.

        :param url: Target blob
        :param data: The block contents
        :param block_id: Base64-encoded block ID
        :raises TransferFailure: when staging the block failed
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def put_block_list(self, url: str, block_ids: list[str], content_type: str):
        """
        Assemble the blob from previously staged blocks, in the given order.

        :param url: Target blob
        :param block_ids: Block IDs in blob order
        :param content_type: Content type of the committed blob
        :raises CommitFailure: when the blob could not be committed
        """
        raise NotImplementedError()

    def discard(self, url: str):
        """
        Drop blocks staged for ``url`` that will never be committed.

        Called once after a failed or cancelled upload, when no transfer is running anymore.
        Services that clean up uncommitted blocks on their own need not override this.

        :param url: Target blob
        """
