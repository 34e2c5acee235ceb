"""Parallel block uploads to blob storage with optional per-block encryption."""

# ruff: noqa: F401
from .exceptions import (
    BlockUploadError,
    CommitFailure,
    EncryptionFailure,
    InvalidConfiguration,
    ReadFailure,
    TransferFailure,
    UploadCancelled,
)
from .executor import BoundedExecutor
from .planner import BlockRange, UploadPlan, make_block_id, plan
from .upload import Callbacks, UploadCoordinator
