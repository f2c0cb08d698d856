from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from subburn.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class EngineEvent:
    """Something the encode engine reports while it runs."""

    kind: str  # "start" | "progress"
    percent: float = 0.0
    time_remaining: float | None = None
    timemark: str | None = None
    command: str | None = None


class EventChannel(Generic[T]):
    """
    Minimal synchronous pub/sub.

    Handlers run on the publisher's thread. A failing handler is logged and
    does not stop delivery to the others, nor does it reach the publisher.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: list[Callable[[T], None]] = []

    def subscribe(self, handler: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: T) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                log.exception("Event handler %r failed", handler)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._handlers)
