import threading
import time

import pytest
from block_uploader.exceptions import InvalidConfiguration
from block_uploader.executor import BoundedExecutor


class ConcurrencyProbe:
    """Task factory recording how many tasks run at the same time."""

    def __init__(self, duration: float = 0.05):
        self.duration = duration
        self.lock = threading.Lock()
        self.running = 0
        self.max_running = 0
        self.started: list[int] = []

    def task(self, n: int) -> int:
        with self.lock:
            self.running += 1
            self.max_running = max(self.max_running, self.running)
            self.started.append(n)
        time.sleep(self.duration)
        with self.lock:
            self.running -= 1
        return n * 2


@pytest.mark.parametrize("capacity", [1, 2, 3, 5])
def test_capacity_is_never_exceeded(capacity):
    probe = ConcurrencyProbe()

    with BoundedExecutor(capacity) as executor:
        futures = [executor.submit(probe.task, n) for n in range(12)]

    assert [f.result() for f in futures] == [n * 2 for n in range(12)]
    assert probe.max_running <= capacity
    assert probe.max_running == capacity


def test_single_worker_runs_in_submission_order():
    probe = ConcurrencyProbe(duration=0.001)

    with BoundedExecutor(1) as executor:
        for n in range(10):
            executor.submit(probe.task, n)

    assert probe.started == list(range(10))


def test_failing_task_does_not_affect_others():
    def fail():
        raise RuntimeError("boom")

    with BoundedExecutor(2) as executor:
        failing = executor.submit(fail)
        others = [executor.submit(lambda n=n: n) for n in range(5)]

    with pytest.raises(RuntimeError, match="boom"):
        failing.result()
    assert [f.result() for f in others] == list(range(5))


def test_shutdown_drains_queue():
    probe = ConcurrencyProbe(duration=0.005)
    executor = BoundedExecutor(2)
    futures = [executor.submit(probe.task, n) for n in range(8)]

    executor.shutdown(wait=True)

    assert all(f.done() for f in futures)
    assert sorted(probe.started) == list(range(8))


def test_submit_after_shutdown():
    executor = BoundedExecutor(1)
    executor.shutdown()

    with pytest.raises(RuntimeError):
        executor.submit(lambda: None)


def test_shutdown_is_idempotent():
    executor = BoundedExecutor(2)
    executor.shutdown(wait=False)
    executor.shutdown(wait=True)


@pytest.mark.parametrize("capacity", [0, -1, 1.5, "3", True])
def test_invalid_capacity(capacity):
    with pytest.raises(InvalidConfiguration):
        BoundedExecutor(capacity)
