"""Azure Blob Storage block uploads via the REST API, authenticated by a SAS URL."""

from typing import override
from xml.sax.saxutils import escape

import requests

from ..constants import STORAGE_REQUEST_TIMEOUT
from ..exceptions import CommitFailure, TransferFailure
from ..models.config import AzureOptions
from . import BlockStorage, log


def _redact(url: str) -> str:
    # SAS tokens in the query string are credentials
    return url.split("?", 1)[0]


class AzureBlobStorage(BlockStorage):
    """
    Implementation of block uploads for Azure block blobs.

    ``url`` is the blob URL including its SAS token.
    Uncommitted blocks are garbage collected by the service after a week, so
    nothing needs to be discarded after a failed upload.
    """

    __log = log.getChild("AzureBlobStorage")

    def __init__(self, options: AzureOptions | None = None, timeout: float = STORAGE_REQUEST_TIMEOUT):
        self._options = options or AzureOptions()
        self._timeout = timeout
        proxy_url = self._options.proxy_url
        self._proxies = {"http": str(proxy_url), "https": str(proxy_url)} if proxy_url is not None else None

    def _headers(self, **extra) -> dict[str, str]:
        return {"x-ms-version": self._options.api_version, **extra}

    @override
    def put_block(self, url: str, data: bytes, block_id: str):
        try:
            response = requests.put(
                url,
                params={"comp": "block", "blockid": block_id},
                data=data,
                headers=self._headers(**{"Content-Length": str(len(data))}),
                proxies=self._proxies,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransferFailure(f"Failed to stage block {block_id} at {_redact(url)}") from e

        if not response.ok:
            self.__log.error(f"Put Block {block_id} failed with status {response.status_code}: {response.text}")
            raise TransferFailure(
                f"Failed to stage block {block_id} at {_redact(url)} (HTTP {response.status_code})"
            )

    @staticmethod
    def block_list_xml(block_ids: list[str]) -> str:
        """Request body of a Put Block List operation."""
        latest = "".join(f"<Latest>{escape(block_id)}</Latest>" for block_id in block_ids)
        return f'<?xml version="1.0" encoding="utf-8"?><BlockList>{latest}</BlockList>'

    @override
    def put_block_list(self, url: str, block_ids: list[str], content_type: str):
        self.__log.info(f"Committing {len(block_ids)} block(s) to {_redact(url)}…")
        try:
            response = requests.put(
                url,
                params={"comp": "blocklist"},
                data=self.block_list_xml(block_ids).encode("utf-8"),
                headers=self._headers(
                    **{"Content-Type": "application/xml", "x-ms-blob-content-type": content_type}
                ),
                proxies=self._proxies,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise CommitFailure(f"Failed to commit block list at {_redact(url)}") from e

        if not response.ok:
            self.__log.error(f"Put Block List failed with status {response.status_code}: {response.text}")
            raise CommitFailure(f"Failed to commit block list at {_redact(url)} (HTTP {response.status_code})")
