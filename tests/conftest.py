import os
import threading
import time
from typing import override

import pytest
from block_uploader.exceptions import TransferFailure
from block_uploader.planner import block_index_from_id
from block_uploader.storage import BlockStorage


@pytest.fixture(scope="session", autouse=True)
def mock_home(tmp_path_factory):
    # keep the default config file out of the user's home directory
    temp_home = tmp_path_factory.mktemp("fake_home")

    os.environ["HOME"] = str(temp_home)
    os.environ["USERPROFILE"] = str(temp_home)  # For Windows compatibility
    os.environ["XDG_CONFIG_HOME"] = str(temp_home / ".config")

    return temp_home


class InMemoryStorage(BlockStorage):
    """
    Storage double recording staged blocks and commits.

    :param delays: seconds to sleep before staging the block with the given index
    :param fail_blocks: block indices whose transfer fails
    :param fail_commit: whether committing fails
    """

    def __init__(self, delays=None, fail_blocks=(), fail_commit=False):
        self.delays = delays or {}
        self.fail_blocks = set(fail_blocks)
        self.fail_commit = fail_commit

        self.lock = threading.Lock()
        self.blocks: dict[str, bytes] = {}
        self.staging_order: list[str] = []
        self.commits: list[tuple[str, list[str], str]] = []
        self.discarded: list[str] = []
        self.running = 0
        self.max_running = 0

    @override
    def put_block(self, url, data, block_id):
        index = block_index_from_id(block_id)
        with self.lock:
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        try:
            time.sleep(self.delays.get(index, 0.0))
            if index in self.fail_blocks:
                raise TransferFailure(f"simulated failure for block {index}")
            with self.lock:
                self.blocks[block_id] = bytes(data)
                self.staging_order.append(block_id)
        finally:
            with self.lock:
                self.running -= 1

    @override
    def put_block_list(self, url, block_ids, content_type):
        if self.fail_commit:
            raise RuntimeError("simulated commit failure")
        with self.lock:
            self.commits.append((url, list(block_ids), content_type))

    @override
    def discard(self, url):
        with self.lock:
            self.discarded.append(url)

    def committed_blob(self) -> bytes:
        _, block_ids, _ = self.commits[-1]
        return b"".join(self.blocks[block_id] for block_id in block_ids)


@pytest.fixture
def storage_factory():
    return InMemoryStorage


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "payload.bin"
    path.write_bytes(os.urandom(10_000))
    return path


@pytest.fixture
def encryption_key():
    return bytes(range(32))
