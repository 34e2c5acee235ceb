from pathlib import Path
from typing import Annotated, Literal, Self

from pydantic import (
    AfterValidator,
    AnyHttpUrl,
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    model_validator,
)
from pydantic.types import PathType
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..constants import BLOCK_MAX_SIZE, DEFAULT_BLOCK_ID_PREFIX, DEFAULT_SIMULTANEOUS_UPLOADS

FilePath = Annotated[Path, AfterValidator(lambda v: v.expanduser()), PathType("file")]


class StrictBaseModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
        use_enum_values=True,
    )


class StrictBaseSettings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid", validate_assignment=True, use_enum_values=True, env_nested_delimiter="__"
    )


class UploadOptions(StrictBaseModel):
    block_id_prefix: Annotated[str, Field(min_length=1, pattern=r"^[A-Za-z0-9_\-]+$")] = DEFAULT_BLOCK_ID_PREFIX
    """
    Prefix of every block ID. The block index is appended, zero-padded to 5 digits.
    """

    block_size: Annotated[StrictInt, Field(gt=0)] = BLOCK_MAX_SIZE
    """
    Size of each block in bytes. Reduced to the file size for smaller files.
    """

    simultaneous_uploads: Annotated[StrictInt, Field(gt=0)] = DEFAULT_SIMULTANEOUS_UPLOADS
    """
    Maximum number of blocks transferred at the same time.
    """

    content_type: str | None = None
    """
    Content type stored with the committed blob.
    If undefined, it is guessed from the file name.
    """


class AzureOptions(StrictBaseModel):
    api_version: str = "2021-08-06"
    """
    Value of the ``x-ms-version`` header sent with every request.
    """

    proxy_url: AnyUrl | None = None
    """
    The proxy URL for storage requests (optional).
    """


class S3Options(StrictBaseModel):
    endpoint_url: AnyHttpUrl
    """
    The URL for the S3 service.
    """

    bucket: str
    """
    The name of the S3 bucket. Upload URLs are interpreted as object keys within this bucket.
    """

    access_key: str | None = None
    """
    The access key for the S3 bucket.
    If undefined, it is read from the AWS_ACCESS_KEY_ID environment variable.
    """

    secret: str | None = None
    """
    The secret key for the S3 bucket.
    If undefined, it is read from the AWS_SECRET_ACCESS_KEY environment variable.
    """

    session_token: str | None = None
    """
    The session token for temporary credentials (optional).
    """

    region_name: str | None = None
    """
    The region name for the S3 bucket.
    """

    use_ssl: bool = True
    """
    Whether to use SSL for S3 operations.
    """

    proxy_url: AnyUrl | None = None
    """
    The proxy URL for S3 operations (optional).
    """


class ConfigModel(StrictBaseSettings):
    model_config = SettingsConfigDict(env_prefix="block_uploader_")

    backend: Literal["azure", "s3"] = "azure"
    """
    Storage service the blocks are sent to.
    """

    upload: UploadOptions = UploadOptions()

    azure: AzureOptions = AzureOptions()

    s3_options: S3Options | None = None

    encryption_key_path: FilePath | None = None
    """
    Path to the symmetric key used to encrypt each block (optional).
    If undefined, blocks are uploaded unencrypted.
    """

    @model_validator(mode="after")
    def validate_backend_options(self) -> Self:
        if self.backend == "s3" and self.s3_options is None:
            raise ValueError("s3_options must be set when using the s3 backend.")
        return self
