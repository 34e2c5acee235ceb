from typing import Self

from pydantic import Field, model_validator

from ..constants import ASSOCIATED_DATA, ENCRYPTION_STRATEGY
from .config import StrictBaseModel


class EncryptionArtifacts(StrictBaseModel):
    """
    Per-block encryption metadata needed to decrypt an uploaded blob.

    All lists are indexed by block index.
    """

    iv: list[str]
    """Base64-encoded nonce of each block."""

    at: list[str]
    """Base64-encoded authentication tag of each block."""

    range: list[str]
    """Half-open byte range ``start-end`` of each block within the blob."""

    ad: str = ASSOCIATED_DATA
    """Associated data; none is used."""

    encryption_strategy: str = ENCRYPTION_STRATEGY
    """Authenticated-encryption scheme used for every block."""

    @model_validator(mode="after")
    def validate_lengths(self) -> Self:
        if not len(self.iv) == len(self.at) == len(self.range):
            raise ValueError("iv, at and range must have one entry per block.")
        return self


class UploadResult(StrictBaseModel):
    """Outcome of a successful upload."""

    file_name: str
    block_ids: list[str] = Field(default_factory=list)
    artifacts: EncryptionArtifacts | None = None
