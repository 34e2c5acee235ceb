class BlockUploadError(Exception):
    """Base exception for all errors raised by a block upload."""


class InvalidConfiguration(BlockUploadError, ValueError):
    """Raised when an upload is constructed with invalid arguments."""


class ReadFailure(BlockUploadError):
    """Raised when a byte range of the source file cannot be read."""


class EncryptionFailure(BlockUploadError):
    """Raised when a block cannot be encrypted or decrypted, e.g. because the key is malformed."""


class TransferFailure(BlockUploadError):
    """Raised when staging a single block with the storage service fails."""


class CommitFailure(BlockUploadError):
    """Raised when committing the block list fails."""


class UploadCancelled(BlockUploadError):
    """Raised when an upload was cancelled before all blocks were transferred."""
