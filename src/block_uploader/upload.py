"""Module for uploading a single file block by block to a blob storage service"""

from __future__ import annotations

import abc
import base64
import contextlib
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from os import PathLike
from typing import override

import nacl.utils
from pydantic import ValidationError

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
from .models.artifacts import EncryptionArtifacts, UploadResult
from .models.config import UploadOptions
from .planner import BlockRange, make_block_id, plan
from .progress import ProgressEvent, SuccessEvent, UploadPhase
from .storage import BlockStorage
from .utils.crypt import BlockCipher
from .utils.io import BlockSource, FileSource

log = logging.getLogger(__name__)

# attempts to draw a nonce that has not been used before within the same upload
MAX_IV_ATTEMPTS = 8


def _log_progress(event: ProgressEvent):
    log.debug(f"{event['file_name']}: {event['progress']:.1%}")


def _log_success(event: SuccessEvent):
    log.info(f"Committed {len(event['block_ids'])} block(s)")


def _log_error(error: Exception):
    log.error(f"Upload failed: {error}")


@dataclass
class Callbacks:
    """
    Notifications about an upload.

    Callbacks are invoked from worker threads. ``on_progress`` is called while
    the upload state is locked, so it must not block. It may call
    :meth:`UploadCoordinator.cancel`; the lock is reentrant.
    """

    on_progress: Callable[[ProgressEvent], object] = _log_progress
    on_success: Callable[[SuccessEvent], object] = _log_success
    on_error: Callable[[Exception], object] = _log_error


@dataclass
class UploadState:
    """
    Mutable state shared by all block jobs of one upload.

    Every read-modify-write must hold ``lock``.
    """

    total_remaining_bytes: int
    block_ids: list[str] = field(default_factory=list)
    completed_blocks: int = 0
    # submitted jobs that have not returned yet
    pending_jobs: int = 0
    settled: bool = False
    phase: UploadPhase = UploadPhase.PLANNING
    error: Exception | None = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)


@contextlib.contextmanager
def _failing_as(error_cls: type[BlockUploadError], message: str):
    """Re-raise foreign exceptions as ``error_cls``, keeping the original as cause."""
    try:
        yield
    except BlockUploadError:
        raise
    except Exception as e:
        raise error_cls(f"{message}: {e}") from e


class TransferMode(metaclass=abc.ABCMeta):
    """How block contents are turned into the bytes sent to the storage service."""

    @abc.abstractmethod
    def prepare(self, block: BlockRange, data: bytes) -> bytes:
        """
        Turn the plaintext of ``block`` into its payload.

        Called concurrently for different blocks; must only touch state belonging to ``block.index``.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def artifacts(self) -> EncryptionArtifacts | None:
        """Artifacts to hand out once every block was transferred."""
        raise NotImplementedError()


class PlainTransfer(TransferMode):
    """Blocks are uploaded as they are."""

    @override
    def prepare(self, block: BlockRange, data: bytes) -> bytes:
        return data

    @override
    def artifacts(self) -> None:
        return None


class EncryptedTransfer(TransferMode):
    """Every block is encrypted on its own with a fresh nonce."""

    __log = log.getChild("EncryptedTransfer")

    def __init__(
        self,
        key: bytes,
        total_blocks: int,
        cipher: BlockCipher | None = None,
        random_bytes: Callable[[int], bytes] | None = None,
    ):
        """
        :param key: Symmetric key shared by all blocks
        :param total_blocks: Number of blocks of the upload
        :param cipher: Cipher to use; by default one drawing nonces that are unique within this upload
        :param random_bytes: Source of random nonces for the default cipher
        """
        self._key = key
        self._iv: list[str | None] = [None] * total_blocks
        self._at: list[str | None] = [None] * total_blocks
        self._range: list[str | None] = [None] * total_blocks

        self._used_ivs: set[bytes] = set()
        self._iv_lock = threading.Lock()
        self._random_bytes = random_bytes or nacl.utils.random
        self._cipher = cipher or BlockCipher(random_bytes=self._unique_iv)

    def _unique_iv(self, length: int) -> bytes:
        with self._iv_lock:
            for _ in range(MAX_IV_ATTEMPTS):
                iv = self._random_bytes(length)
                if iv not in self._used_ivs:
                    self._used_ivs.add(iv)
                    return iv
                self.__log.warning("Random source repeated a nonce, drawing a new one")
        raise EncryptionFailure(f"Unable to draw an unused nonce after {MAX_IV_ATTEMPTS} attempts")

    @override
    def prepare(self, block: BlockRange, data: bytes) -> bytes:
        with _failing_as(EncryptionFailure, f"Unable to encrypt block {block.index}"):
            encrypted = self._cipher.encrypt_block(self._key, data)

        self._iv[block.index] = base64.b64encode(encrypted.iv).decode("ascii")
        self._at[block.index] = base64.b64encode(encrypted.auth_tag).decode("ascii")
        self._range[block.index] = str(block)
        return encrypted.ciphertext

    @override
    def artifacts(self) -> EncryptionArtifacts:
        missing = [index for index, iv in enumerate(self._iv) if iv is None]
        if missing:
            raise EncryptionFailure(f"No encryption artifacts recorded for block(s) {missing}")
        return EncryptionArtifacts(iv=self._iv, at=self._at, range=self._range)


class UploadCoordinator:
    """
    Uploads one file as a sequence of blocks.

    Blocks are read, optionally encrypted and staged by a :class:`BoundedExecutor`;
    the block that completes the upload commits the block list. The outcome is
    settled exactly once, either with an :class:`UploadResult` or with the first
    error raised by any block.
    """

    __log = log.getChild("UploadCoordinator")

    def __init__(
        self,
        url: str,
        file: BlockSource | str | PathLike,
        storage: BlockStorage,
        options: UploadOptions | dict | None = None,
        callbacks: Callbacks | None = None,
    ):
        """
        :param url: Where to send the file
        :param file: The file to upload, as a path or a :class:`BlockSource`
        :param storage: Storage service to stage and commit blocks with
        :param options: Block size, block ID prefix, number of simultaneous uploads and content type
        :param callbacks: Progress, success and error notifications
        :raises InvalidConfiguration: on invalid arguments, before any block is read
        """
        if not isinstance(url, str) or not url:
            raise InvalidConfiguration("url must be a non-empty string")
        self.url = url

        if isinstance(file, (str, PathLike)):
            try:
                file = FileSource(file)
            except ReadFailure as e:
                raise InvalidConfiguration(f"file {file} cannot be accessed") from e
        if not isinstance(file, BlockSource):
            raise InvalidConfiguration("file must be a path or a BlockSource")
        self.file = file

        if not isinstance(storage, BlockStorage):
            raise InvalidConfiguration("storage must be a BlockStorage")
        self.storage = storage

        try:
            self.options = options if isinstance(options, UploadOptions) else UploadOptions(**(options or {}))
        except (ValidationError, TypeError) as e:
            raise InvalidConfiguration(f"Invalid upload options: {e}") from e

        if callbacks is not None and not isinstance(callbacks, Callbacks):
            raise InvalidConfiguration("callbacks must be a Callbacks instance")
        self.callbacks = callbacks or Callbacks()

        self.plan = plan(self.file.size, self.options.block_size)
        self.content_type = self.options.content_type or self.file.content_type

        self._state = UploadState(total_remaining_bytes=self.plan.file_size)
        self._mode: TransferMode = PlainTransfer()
        self._future: Future[UploadResult] = Future()
        self._cancelled = threading.Event()
        self._started = False
        self._failure_resolved = False

    @property
    def phase(self) -> UploadPhase:
        return self._state.phase

    def start(self, encryption_key: bytes | None = None) -> Future[UploadResult]:
        """
        Start uploading.

        :param encryption_key: If given, every block is encrypted with this key before it is transferred
        :returns: future resolving to the :class:`UploadResult` or failing with the first error;
            On failure it resolves once every running job has returned and the staged blocks were discarded.
        :raises RuntimeError: if the upload has already been started
        """
        with self._state.lock:
            if self._started:
                raise RuntimeError("upload has already been started")
            self._started = True
            if self._state.settled:
                # cancelled before it started
                return self._future
            self._state.phase = UploadPhase.UPLOADING

        if encryption_key is None:
            self._mode = PlainTransfer()
        else:
            self._mode = EncryptedTransfer(encryption_key, self.plan.total_blocks)

        self._future.set_running_or_notify_cancel()
        self.__log.info(
            f"Uploading {self.file.name} ({self.plan.file_size} bytes) in {self.plan.total_blocks} block(s) "
            f"of {self.plan.block_size} bytes, {self.options.simultaneous_uploads} at a time"
            + (", encrypted" if encryption_key is not None else "")
        )

        with self._state.lock:
            self._state.pending_jobs = self.plan.total_blocks

        executor = BoundedExecutor(self.options.simultaneous_uploads, thread_name_prefix="block-upload")
        try:
            for block in self.plan.block_ranges():
                # IDs are recorded in submission order, which is the order of the committed blob
                block_id = make_block_id(self.options.block_id_prefix, block.index)
                self._state.block_ids.append(block_id)
                executor.submit(self._run_block, block, block_id)
        finally:
            executor.shutdown(wait=False)

        return self._future

    def run(self, encryption_key: bytes | None = None, timeout: float | None = None) -> UploadResult:
        """Start the upload and block until it is settled."""
        return self.start(encryption_key).result(timeout=timeout)

    def cancel(self):
        """
        Request cancellation.

        Blocks that are still queued are skipped and the upload fails with
        :class:`UploadCancelled`. Transfers already in flight are allowed to finish;
        their staged blocks are never committed and are discarded from the storage
        service once the last job has returned.
        """
        self.__log.info(f"Cancelling upload of {self.file.name}")
        self._cancelled.set()
        with self._state.lock:
            if not self._started:
                # settled right away, start() then hands out the failed future
                self._fail(UploadCancelled(f"Upload of {self.file.name} was cancelled before it started"))

    def _run_block(self, block: BlockRange, block_id: str):
        try:
            self._transfer_block(block, block_id)
        finally:
            with self._state.lock:
                self._state.pending_jobs -= 1
                idle = self._state.pending_jobs == 0
            if idle:
                self._resolve_failure()

    def _transfer_block(self, block: BlockRange, block_id: str):
        with self._state.lock:
            settled = self._state.settled
        if settled:
            self.__log.debug(f"Skipping block {block.index}, upload already settled")
            return
        if self._cancelled.is_set():
            self._fail(UploadCancelled(f"Upload of {self.file.name} was cancelled"))
            return

        try:
            with _failing_as(ReadFailure, f"Reading block {block.index} ({block}) of {self.file.name} has failed"):
                data = self.file.read_range(block.start, block.end)

            payload = self._mode.prepare(block, data)

            with _failing_as(TransferFailure, f"Failed to stage block {block.index} ({block_id})"):
                self.storage.put_block(self.url, payload, block_id)

            should_commit = self._complete_block(block)

            # also covers a cancel() issued from on_progress
            if self._cancelled.is_set():
                raise UploadCancelled(f"Upload of {self.file.name} was cancelled")
        except Exception as e:
            self._fail(e)
            return

        if should_commit:
            self._commit()

    def _complete_block(self, block: BlockRange) -> bool:
        """
        Record a transferred block.

        :returns: whether the caller has to commit the block list
        """
        state = self._state
        with state.lock:
            state.total_remaining_bytes = max(state.total_remaining_bytes - self.plan.block_size, 0)
            state.completed_blocks += 1
            if state.settled:
                return False

            # completed blocks rather than the block index, so progress never decreases
            progress = state.completed_blocks / self.plan.total_blocks
            self.callbacks.on_progress(ProgressEvent(progress=progress, file_name=self.file.name))
            self.__log.debug(f"Block {block.index} done, {state.total_remaining_bytes} bytes remaining")

            if (
                state.total_remaining_bytes == 0
                and state.phase == UploadPhase.UPLOADING
                and not self._cancelled.is_set()
            ):
                state.phase = UploadPhase.COMMITTING
                return True
        return False

    def _commit(self):
        block_ids = list(self._state.block_ids)
        try:
            with _failing_as(CommitFailure, f"Failed to commit {len(block_ids)} block(s)"):
                self.storage.put_block_list(self.url, block_ids, self.content_type)
            result = UploadResult(file_name=self.file.name, block_ids=block_ids, artifacts=self._mode.artifacts())
        except Exception as e:
            self._fail(e)
            return

        self._succeed(result)

    def _succeed(self, result: UploadResult):
        with self._state.lock:
            if self._state.settled:
                return
            self._state.settled = True
            self._state.phase = UploadPhase.SUCCEEDED

        self.__log.info(f"Upload of {self.file.name} finished successfully!")
        try:
            self.callbacks.on_success(SuccessEvent(artifacts=result.artifacts, block_ids=result.block_ids))
        except Exception:
            self.__log.exception("on_success callback raised")
        self._future.set_result(result)

    def _fail(self, error: Exception):
        with self._state.lock:
            if self._state.settled:
                self.__log.debug(f"Upload already settled, not reporting: {error}")
                return
            self._state.settled = True
            self._state.phase = UploadPhase.FAILED
            self._state.error = error
            idle = self._state.pending_jobs == 0

        self.__log.error(f"Upload of {self.file.name} failed: {error}")
        try:
            self.callbacks.on_error(error)
        except Exception:
            self.__log.exception("on_error callback raised")
        if idle:
            self._resolve_failure()

    def _resolve_failure(self):
        """
        Discard staged blocks and fail the future, once no job is running anymore.

        Waiting for the last job keeps in-flight transfers from staging blocks after they were discarded.
        """
        with self._state.lock:
            error = self._state.error
            if error is None or self._failure_resolved:
                return
            self._failure_resolved = True

        try:
            self.storage.discard(self.url)
        except Exception:
            self.__log.exception(f"Unable to discard the staged blocks of {self.file.name}")
        self._future.set_exception(error)
