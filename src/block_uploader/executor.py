"""
A fixed-capacity task runner: a set of worker threads pulling submitted tasks from a FIFO queue.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

from .exceptions import InvalidConfiguration

log = logging.getLogger(__name__)

_SHUTDOWN = None


class BoundedExecutor:
    """
    Runs submitted tasks on at most ``capacity`` worker threads.

    Tasks start in submission order as soon as a worker is free. A failing task
    only fails its own future; other queued or running tasks are unaffected.
    """

    __log = log.getChild("BoundedExecutor")

    def __init__(self, capacity: int, thread_name_prefix: str = "block-worker"):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise InvalidConfiguration(f"capacity must be a positive integer, got {capacity!r}")

        self.capacity = capacity
        self._queue: queue.Queue = queue.Queue()
        self._shutdown = False
        self._shutdown_lock = threading.Lock()
        self._workers = [
            threading.Thread(target=self._worker, name=f"{thread_name_prefix}-{n}", daemon=True)
            for n in range(capacity)
        ]
        for worker in self._workers:
            worker.start()

    def _worker(self):
        while True:
            item = self._queue.get()
            if item is _SHUTDOWN:  # Exit signal
                break

            future, fn, args, kwargs = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args, **kwargs)
            except BaseException as e:
                future.set_exception(e)
            else:
                future.set_result(result)

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """
        Enqueue a unit of work.

        :returns: a future resolving to the task's return value or failing with its exception
        :raises RuntimeError: if the executor has been shut down
        """
        with self._shutdown_lock:
            if self._shutdown:
                raise RuntimeError("cannot submit tasks after shutdown")

            future: Future = Future()
            self._queue.put((future, fn, args, kwargs))
            return future

    def shutdown(self, wait: bool = True):
        """
        Stop accepting new tasks. Already queued tasks still run before the workers exit.

        :param wait: block until every worker thread has exited
        """
        with self._shutdown_lock:
            if not self._shutdown:
                self._shutdown = True
                # Signal to workers that there's no more work
                for _ in self._workers:
                    self._queue.put(_SHUTDOWN)
                self.__log.debug("Shutdown requested, %d worker(s) draining the queue", len(self._workers))

        if wait:
            for worker in self._workers:
                worker.join()

    def __enter__(self) -> BoundedExecutor:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
