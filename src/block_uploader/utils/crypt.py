"""Utilities for per-block authenticated encryption and decryption."""

import base64
import binascii
import logging
from collections.abc import Callable
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import BinaryIO

import nacl.exceptions
import nacl.utils
from nacl.bindings import (
    crypto_aead_chacha20poly1305_ietf_ABYTES,
    crypto_aead_chacha20poly1305_ietf_KEYBYTES,
    crypto_aead_chacha20poly1305_ietf_NPUBBYTES,
)
from nacl.bindings import (
    crypto_aead_chacha20poly1305_ietf_decrypt as decrypt_block_raw,
)
from nacl.bindings import (
    crypto_aead_chacha20poly1305_ietf_encrypt as encrypt_block_raw,
)

from ..constants import ASSOCIATED_DATA, ENCRYPTION_STRATEGY
from ..exceptions import EncryptionFailure

log = logging.getLogger(__name__)

KEY_LENGTH = crypto_aead_chacha20poly1305_ietf_KEYBYTES  # 32 bytes
NONCE_LENGTH = crypto_aead_chacha20poly1305_ietf_NPUBBYTES  # 12 bytes
MAC_LENGTH = crypto_aead_chacha20poly1305_ietf_ABYTES  # 16 bytes


@dataclass(frozen=True)
class EncryptedBlock:
    ciphertext: bytes
    iv: bytes
    auth_tag: bytes


class BlockCipher:
    """
    ChaCha20-Poly1305 (IETF) encryption of single blocks.

    Every call draws a fresh random nonce, so one key can safely encrypt all
    blocks of an upload. The ciphertext has the same length as the plaintext;
    the authentication tag is returned separately.
    """

    STRATEGY = ENCRYPTION_STRATEGY
    ASSOCIATED_DATA = ASSOCIATED_DATA

    def __init__(self, random_bytes: Callable[[int], bytes] = nacl.utils.random):
        """
        :param random_bytes: Source of cryptographically random bytes for the nonces
        """
        self._random_bytes = random_bytes

    def encrypt_block(self, key: bytes, plaintext: bytes) -> EncryptedBlock:
        """
        Encrypt a single block.

        :param key: 32-byte symmetric key
        :param plaintext: The block contents
        :raises EncryptionFailure: if the key is malformed or the cipher rejects the input
        """
        iv = self._random_bytes(NONCE_LENGTH)
        try:
            sealed = encrypt_block_raw(bytes(plaintext), None, iv, key)
        except (nacl.exceptions.CryptoError, TypeError) as e:
            raise EncryptionFailure(f"Unable to encrypt block: {e}") from e

        return EncryptedBlock(ciphertext=sealed[:-MAC_LENGTH], iv=iv, auth_tag=sealed[-MAC_LENGTH:])

    @staticmethod
    def decrypt_block(key: bytes, ciphertext: bytes, iv: bytes, auth_tag: bytes) -> bytes:
        """
        Decrypt and authenticate a single block.

        :raises EncryptionFailure: if the key is wrong or the block was tampered with
        """
        try:
            return decrypt_block_raw(bytes(ciphertext) + auth_tag, None, iv, key)
        except (nacl.exceptions.CryptoError, TypeError) as e:
            raise EncryptionFailure(f"Unable to decrypt block: {e}") from e


def generate_key() -> bytes:
    """Generate a new random symmetric key."""
    return nacl.utils.random(KEY_LENGTH)


def read_encryption_key(key_file_path: str | PathLike) -> bytes:
    """
    Read a symmetric key from a file.

    The file either holds the raw 32 key bytes or their base64 encoding.

    :raises EncryptionFailure: if the file does not contain a valid key
    """
    content = Path(key_file_path).expanduser().read_bytes()
    if len(content) == KEY_LENGTH:
        return content

    try:
        key = base64.b64decode(content.strip(), validate=True)
    except binascii.Error as e:
        raise EncryptionFailure(f"Key file {key_file_path} is neither a raw nor a base64-encoded key") from e

    if len(key) != KEY_LENGTH:
        raise EncryptionFailure(f"Key in {key_file_path} has {len(key)} bytes, expected {KEY_LENGTH}")
    return key


def decrypt_blob(key: bytes, encrypted_stream: BinaryIO, artifacts, output_stream: BinaryIO) -> int:
    """
    Decrypt a blob uploaded with per-block encryption.

    The blob is processed block by block using the byte ranges, IVs and
    authentication tags recorded during the upload.

    :param key: The key used for the upload
    :param encrypted_stream: Readable binary stream of the committed blob
    :param artifacts: :class:`~block_uploader.models.artifacts.EncryptionArtifacts` of the upload
    :param output_stream: Writable binary stream for the plaintext
    :returns: number of plaintext bytes written
    """
    if artifacts.encryption_strategy != BlockCipher.STRATEGY or artifacts.ad != BlockCipher.ASSOCIATED_DATA:
        raise EncryptionFailure(
            f"Unsupported encryption artifacts: {artifacts.encryption_strategy} with associated data {artifacts.ad}"
        )

    written = 0
    for index, (byte_range, iv, auth_tag) in enumerate(zip(artifacts.range, artifacts.iv, artifacts.at, strict=True)):
        start, end = (int(x) for x in byte_range.split("-"))
        encrypted_stream.seek(start)
        ciphertext = encrypted_stream.read(end - start)
        if len(ciphertext) != end - start:
            raise EncryptionFailure(f"Encrypted blob is truncated in block {index} ({byte_range})")

        plaintext = BlockCipher.decrypt_block(key, ciphertext, base64.b64decode(iv), base64.b64decode(auth_tag))
        output_stream.write(plaintext)
        written += len(plaintext)

    log.debug(f"Decrypted {len(artifacts.range)} block(s), {written} bytes")
    return written
