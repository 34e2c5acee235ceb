"""Progress reporting types for block uploads."""

from .states import ProgressEvent, SuccessEvent, UploadPhase

__all__ = [
    "ProgressEvent",
    "SuccessEvent",
    "UploadPhase",
]
