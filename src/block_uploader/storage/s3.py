"""S3 block uploads, mapping blocks onto the parts of a multipart upload."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, override

import botocore.exceptions
from boto3 import client as boto3_client  # type: ignore[import-untyped]
from botocore.config import Config as Boto3Config

from ..exceptions import CommitFailure, TransferFailure
from ..models.config import S3Options
from ..planner import block_index_from_id
from . import BlockStorage, log

if TYPE_CHECKING:
    from types_boto3_s3 import S3Client
else:
    # avoid undefined objects when not type checking
    S3Client = object


def _empty_str_to_none(string: str | None) -> str | None:
    # if user specifies empty strings, this might be an issue
    if string == "" or string is None:
        return None
    else:
        return string


def init_s3_client(s3_options: S3Options) -> S3Client:
    """Create a boto3 Client from the S3 options."""
    # configure proxies if proxy_url is defined
    proxy_url = s3_options.proxy_url
    s3_config = Boto3Config(
        proxies={"http": str(proxy_url), "https": str(proxy_url)} if proxy_url is not None else None,
    )

    s3_client: S3Client = boto3_client(
        service_name="s3",
        region_name=_empty_str_to_none(s3_options.region_name),
        use_ssl=s3_options.use_ssl,
        endpoint_url=_empty_str_to_none(str(s3_options.endpoint_url)),
        aws_access_key_id=_empty_str_to_none(s3_options.access_key),
        aws_secret_access_key=_empty_str_to_none(s3_options.secret),
        aws_session_token=_empty_str_to_none(s3_options.session_token),
        config=s3_config,
    )

    return s3_client


class S3BlockStorage(BlockStorage):
    """
    Block uploads onto S3 multipart uploads.

    ``url`` is the object key within the configured bucket. The first staged
    block of a key starts its multipart upload; part numbers are derived from
    the block index, so blocks may be staged in any order. All parts except
    the last one must be at least 5 MiB, which constrains the block size.
    S3 fixes the content type when the multipart upload starts, so it is
    given to the constructor rather than taken from the commit.
    """

    __log = log.getChild("S3BlockStorage")

    def __init__(self, bucket: str, s3_client: Any, content_type: str | None = None):
        self.bucket = bucket
        self.content_type = content_type
        self._s3 = s3_client
        self._lock = threading.Lock()
        self._upload_ids: dict[str, str] = {}
        self._etags: dict[str, dict[str, str]] = {}

    @classmethod
    def from_options(cls, s3_options: S3Options, content_type: str | None = None) -> S3BlockStorage:
        return cls(s3_options.bucket, init_s3_client(s3_options), content_type=content_type)

    def _upload_id(self, key: str) -> str:
        with self._lock:
            if key not in self._upload_ids:
                self.__log.info(f"Starting multipart upload to s3://{self.bucket}/{key}")
                extra = {"ContentType": self.content_type} if self.content_type else {}
                response = self._s3.create_multipart_upload(Bucket=self.bucket, Key=key, **extra)
                self._upload_ids[key] = response["UploadId"]
                self._etags[key] = {}
            return self._upload_ids[key]

    @override
    def put_block(self, url: str, data: bytes, block_id: str):
        part_number = block_index_from_id(block_id) + 1
        try:
            upload_id = self._upload_id(url)
            response = self._s3.upload_part(
                Bucket=self.bucket,
                Key=url,
                PartNumber=part_number,
                UploadId=upload_id,
                Body=data,
            )
        except botocore.exceptions.BotoCoreError as e:
            raise TransferFailure(f"Failed to upload part {part_number} of s3://{self.bucket}/{url}") from e
        except botocore.exceptions.ClientError as e:
            error_code = e.response.get("Error", {}).get("Code")
            raise TransferFailure(
                f"Failed to upload part {part_number} of s3://{self.bucket}/{url} (Error code: {error_code})"
            ) from e

        with self._lock:
            self._etags[url][block_id] = response["ETag"]

    @override
    def discard(self, url: str):
        self.abort(url)

    def abort(self, url: str):
        """Abort the multipart upload of ``url``, discarding all staged parts."""
        with self._lock:
            upload_id = self._upload_ids.pop(url, None)
            self._etags.pop(url, None)
        if upload_id is None:
            return

        self.__log.info(f"Aborting multipart upload of s3://{self.bucket}/{url}")
        try:
            self._s3.abort_multipart_upload(Bucket=self.bucket, Key=url, UploadId=upload_id)
        except (botocore.exceptions.BotoCoreError, botocore.exceptions.ClientError) as e:
            self.__log.warning(f"Aborting multipart upload of s3://{self.bucket}/{url} failed: {e}")

    @override
    def put_block_list(self, url: str, block_ids: list[str], content_type: str):
        with self._lock:
            upload_id = self._upload_ids.get(url)
            etags = dict(self._etags.get(url, {}))

        if upload_id is None:
            raise CommitFailure(f"No blocks have been staged for s3://{self.bucket}/{url}")

        missing = [block_id for block_id in block_ids if block_id not in etags]
        if missing:
            raise CommitFailure(f"{len(missing)} block(s) were never staged for s3://{self.bucket}/{url}")

        parts = [
            {"PartNumber": block_index_from_id(block_id) + 1, "ETag": etags[block_id]} for block_id in block_ids
        ]

        self.__log.info(f"Completing multipart upload of s3://{self.bucket}/{url} with {len(parts)} part(s)…")
        try:
            self._s3.complete_multipart_upload(
                Bucket=self.bucket,
                Key=url,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except (botocore.exceptions.BotoCoreError, botocore.exceptions.ClientError) as e:
            self.__log.error(f"Completing multipart upload of s3://{self.bucket}/{url} failed: {e}")
            self.abort(url)
            raise CommitFailure(f"Failed to complete multipart upload of s3://{self.bucket}/{url}") from e

        with self._lock:
            self._upload_ids.pop(url, None)
            self._etags.pop(url, None)
