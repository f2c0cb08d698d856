"""
Ephemeral key/value store for export progress and download handoffs.

Keys:
- `export:<token>`   job record, TTL = export_ttl_seconds
- `download:<token>` serialized ExportRequest, TTL = download_token_ttl_seconds

`delete` reports whether the key existed; callers use that as an
at-most-once gate.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Callable, Protocol

import redis

from subburn.exceptions import StoreError, StoreWriteError
from subburn.utils.logging import get_logger

if TYPE_CHECKING:
    from subburn.config.settings import Settings

log = get_logger(__name__)


def export_key(token: str) -> str:
    return f"export:{token}"


def download_key(token: str) -> str:
    return f"download:{token}"


class ProgressStore(Protocol):
    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def get(self, key: str) -> str | None: ...

    def delete(self, key: str) -> bool: ...


class MemoryStore:
    """In-process store; fine for a single worker and for tests."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, tuple[str, float]] = {}

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def delete(self, key: str) -> bool:
        with self._lock:
            entry = self._data.pop(key, None)
            return entry is not None and self._clock() < entry[1]

    def ping(self) -> bool:
        return True


class RedisStore:
    """Shared store backed by Redis; needed once more than one process serves exports."""

    def __init__(self, client: "redis.Redis") -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self.client.set(key, value, ex=ttl_seconds)
        except redis.RedisError as exc:
            raise StoreWriteError(f"Redis write failed for {key}: {exc}") from exc

    def get(self, key: str) -> str | None:
        try:
            return self.client.get(key)
        except redis.RedisError as exc:
            raise StoreError(f"Redis read failed for {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(key))
        except redis.RedisError as exc:
            raise StoreError(f"Redis delete failed for {key}: {exc}") from exc

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as exc:
            log.warning("Redis ping failed: %s", exc)
            return False


def create_store(settings: "Settings") -> ProgressStore:
    if settings.redis_url:
        log.info("Using Redis progress store")
        return RedisStore.from_url(settings.redis_url)
    log.info("Using in-memory progress store")
    return MemoryStore()
