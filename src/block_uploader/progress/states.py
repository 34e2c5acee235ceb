"""
This module contains the type definitions passed to upload callbacks.
"""

from enum import StrEnum
from typing import TypedDict

from ..models.artifacts import EncryptionArtifacts


class UploadPhase(StrEnum):
    """
    Lifecycle of a single upload.

    ``COMMITTING`` is entered at most once, from ``UPLOADING``.
    ``SUCCEEDED`` and ``FAILED`` are terminal.
    """

    PLANNING = "planning"
    UPLOADING = "uploading"
    COMMITTING = "committing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProgressEvent(TypedDict):
    """
    Passed to ``on_progress`` after each transferred block.
    """

    progress: float
    file_name: str


class SuccessEvent(TypedDict):
    """
    Passed to ``on_success`` once the block list has been committed.
    """

    artifacts: EncryptionArtifacts | None
    block_ids: list[str]
