"""Utility functions and classes for block uploads."""

# ruff: noqa: F401
from .config import read_config
from .crypt import BlockCipher, decrypt_blob, read_encryption_key
from .io import BlockSource, BytesSource, FileSource
