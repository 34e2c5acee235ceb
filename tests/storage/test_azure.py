from unittest import mock

import pytest
import requests
from block_uploader.exceptions import CommitFailure, TransferFailure
from block_uploader.models.config import AzureOptions
from block_uploader.planner import make_block_id
from block_uploader.storage.azure import AzureBlobStorage

SAS_URL = "https://account.blob.core.windows.net/container/blob.bin?sv=2021-08-06&sig=secret"


def _response(status_code: int, text: str = "") -> mock.Mock:
    response = mock.Mock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text
    return response


@mock.patch("block_uploader.storage.azure.requests.put")
def test_put_block(put):
    put.return_value = _response(201)
    block_id = make_block_id("block", 3)

    AzureBlobStorage().put_block(SAS_URL, b"data", block_id)

    put.assert_called_once()
    args, kwargs = put.call_args
    assert args == (SAS_URL,)
    assert kwargs["params"] == {"comp": "block", "blockid": block_id}
    assert kwargs["data"] == b"data"
    assert kwargs["headers"]["x-ms-version"] == "2021-08-06"
    assert kwargs["headers"]["Content-Length"] == "4"
    assert kwargs["proxies"] is None


@mock.patch("block_uploader.storage.azure.requests.put")
def test_put_block_http_error(put):
    put.return_value = _response(403, "AuthenticationFailed")

    with pytest.raises(TransferFailure, match="HTTP 403") as excinfo:
        AzureBlobStorage().put_block(SAS_URL, b"data", make_block_id("block", 0))

    # the SAS signature must not leak into error messages
    assert "secret" not in str(excinfo.value)


@mock.patch("block_uploader.storage.azure.requests.put")
def test_put_block_connection_error(put):
    put.side_effect = requests.ConnectionError("connection reset")

    with pytest.raises(TransferFailure) as excinfo:
        AzureBlobStorage().put_block(SAS_URL, b"data", make_block_id("block", 0))

    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)


@mock.patch("block_uploader.storage.azure.requests.put")
def test_put_block_list(put):
    put.return_value = _response(201)
    block_ids = [make_block_id("block", n) for n in range(3)]

    AzureBlobStorage(AzureOptions(proxy_url="http://proxy.local:3128")).put_block_list(
        SAS_URL, block_ids, "video/mp4"
    )

    args, kwargs = put.call_args
    assert kwargs["params"] == {"comp": "blocklist"}
    assert kwargs["headers"]["x-ms-blob-content-type"] == "video/mp4"
    assert kwargs["proxies"] == {"http": "http://proxy.local:3128/", "https": "http://proxy.local:3128/"}
    body = kwargs["data"].decode("utf-8")
    assert body == (
        '<?xml version="1.0" encoding="utf-8"?><BlockList>'
        + "".join(f"<Latest>{block_id}</Latest>" for block_id in block_ids)
        + "</BlockList>"
    )


@mock.patch("block_uploader.storage.azure.requests.put")
def test_put_block_list_http_error(put):
    put.return_value = _response(400, "InvalidBlockList")

    with pytest.raises(CommitFailure, match="HTTP 400"):
        AzureBlobStorage().put_block_list(SAS_URL, [make_block_id("block", 0)], "text/plain")
