from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from subburn.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class WorkerPool:
    """
    Bounded pool for transcodes.

    At most `capacity` jobs run at once; the rest wait in submission order.
    """

    def __init__(self, capacity: int, *, name: str = "subburn-export") -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._executor = ThreadPoolExecutor(max_workers=capacity, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._active = 0
        self._queued = 0

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    @property
    def queued(self) -> int:
        with self._lock:
            return self._queued

    def submit(self, fn: Callable[..., T], *args: Any, label: str = "job") -> "Future[T]":
        with self._lock:
            self._queued += 1
            queued = self._queued
        log.debug("Queued %s (active=%s queued=%s)", label, self.active, queued)

        def run() -> T:
            with self._lock:
                self._queued -= 1
                self._active += 1
            try:
                return fn(*args)
            finally:
                with self._lock:
                    self._active -= 1

        try:
            return self._executor.submit(run)
        except RuntimeError:
            with self._lock:
                self._queued -= 1
            raise

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown(wait=True)
