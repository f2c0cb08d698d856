"""
Artifact delivery.

Responsibilities:
- Stream a finished export with download headers and byte accounting
- Schedule deletion of a fully delivered artifact exactly once, whether the
  transfer finished, failed, or the client went away
- Serve byte ranges and fixed-size chunks (416 beyond the end)
- Issue and redeem one-time download tokens

Does NOT:
- Cancel the encode when a client disconnects
- Delete artifacts served by range or chunk (the sweeper does)
"""

from __future__ import annotations

import threading
import uuid
from pathlib import Path
from typing import Callable, Iterator

from subburn.domain.job import ExportRequest
from subburn.domain.workspace import safe_stem
from subburn.exceptions import InvalidTokenError, RangeNotSatisfiableError
from subburn.utils.logging import get_logger, megabytes
from subburn.utils.store import ProgressStore, download_key

log = get_logger(__name__)

Scheduler = Callable[[float, Callable[[], None]], None]

MEDIA_TYPE = "video/mp4"
DOWNLOAD_SUFFIX = "_subtitled.mp4"


def timer_scheduler(delay: float, fn: Callable[[], None]) -> None:
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()


def download_filename(original_filename: str | None) -> str:
    return safe_stem(original_filename or "video") + DOWNLOAD_SUFFIX


def parse_range(range_header: str | None, size: int) -> tuple[int, int] | None:
    """
    `(start, end)` inclusive for a single `bytes=` range, None if the header
    is absent or unusable. A start at or past the end is not satisfiable.
    """
    if not range_header:
        return None
    try:
        unit, ranges = range_header.split("=", 1)
        if unit.strip().lower() != "bytes":
            return None
        byte_spec = ranges.split(",")[0].strip()
        if byte_spec.startswith("-"):
            suffix = int(byte_spec[1:])
            if suffix <= 0:
                return None
            return max(0, size - suffix), size - 1
        start_raw, _, end_raw = byte_spec.partition("-")
        start = int(start_raw)
        end = int(end_raw) if end_raw else size - 1
    except ValueError:
        return None
    if start < 0 or end < start:
        return None
    if start >= size:
        raise RangeNotSatisfiableError(start, size)
    return start, min(end, size - 1)


class DeliveryStream:
    """
    Iterable body for one delivery.

    `on_finish` runs exactly once when iteration ends for any reason,
    including `close()` on an iterator that was never fully consumed.
    """

    def __init__(
        self,
        path: Path,
        *,
        start: int = 0,
        length: int,
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        block_size: int = 1024 * 1024,
        on_finish: Callable[["DeliveryStream"], None] | None = None,
    ) -> None:
        self.path = path
        self.start = start
        self.length = length
        self.status_code = status_code
        self.headers = headers or {}
        self.block_size = block_size
        self.bytes_sent = 0
        self._on_finish = on_finish
        self._finished = False
        self._lock = threading.Lock()
        self._iterator: Iterator[bytes] | None = None

    @property
    def complete(self) -> bool:
        return self.bytes_sent >= self.length

    def __iter__(self) -> Iterator[bytes]:
        if self._iterator is None:
            self._iterator = self._blocks()
        return self._iterator

    def __next__(self) -> bytes:
        return next(iter(self))

    def _blocks(self) -> Iterator[bytes]:
        try:
            with self.path.open("rb") as fh:
                fh.seek(self.start)
                remaining = self.length
                while remaining > 0:
                    data = fh.read(min(self.block_size, remaining))
                    if not data:
                        break
                    remaining -= len(data)
                    self.bytes_sent += len(data)
                    yield data
        finally:
            self.finish()

    def close(self) -> None:
        if self._iterator is not None:
            self._iterator.close()
        self.finish()

    def finish(self) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
        if self._on_finish is not None:
            self._on_finish(self)


class DeliveryStreamer:
    def __init__(
        self,
        *,
        grace_seconds: float = 2.0,
        block_size: int = 1024 * 1024,
        chunk_size: int = 5 * 1024 * 1024,
        scheduler: Scheduler = timer_scheduler,
    ) -> None:
        self.grace_seconds = grace_seconds
        self.block_size = block_size
        self.chunk_size = chunk_size
        self.scheduler = scheduler

    def stream(
        self,
        path: Path,
        filename: str | None = None,
        *,
        on_complete: Callable[[], None] | None = None,
    ) -> DeliveryStream:
        """Full delivery; the artifact is deleted after the grace period however it ends."""
        size = path.stat().st_size
        headers = {
            "Content-Type": MEDIA_TYPE,
            "Content-Length": str(size),
            "Content-Disposition": f'attachment; filename="{download_filename(filename or path.name)}"',
            "Cache-Control": "no-store",
        }

        def finished(stream: DeliveryStream) -> None:
            outcome = "SUCCESS" if stream.complete else "PARTIAL"
            log.info(
                "Delivery %s %s: %s of %s",
                outcome,
                path.name,
                megabytes(stream.bytes_sent),
                megabytes(size),
            )
            self.scheduler(self.grace_seconds, lambda: self._cleanup(path, on_complete))

        return DeliveryStream(
            path,
            length=size,
            headers=headers,
            block_size=self.block_size,
            on_finish=finished,
        )

    def stream_range(self, path: Path, range_header: str | None) -> DeliveryStream:
        size = path.stat().st_size
        byte_range = parse_range(range_header, size)
        if byte_range is None:
            return DeliveryStream(
                path,
                length=size,
                headers={
                    "Content-Type": MEDIA_TYPE,
                    "Content-Length": str(size),
                    "Accept-Ranges": "bytes",
                },
                block_size=self.block_size,
            )
        return self._partial(path, *byte_range, size=size)

    def stream_chunk(self, path: Path, index: int) -> DeliveryStream:
        size = path.stat().st_size
        start = index * self.chunk_size
        if index < 0 or start >= size:
            raise RangeNotSatisfiableError(start, size)
        end = min(start + self.chunk_size, size) - 1
        stream = self._partial(path, start, end, size=size)
        stream.headers["X-Total-Chunks"] = str(-(-size // self.chunk_size))
        log.debug("Serving chunk %s (%s-%s) of %s", index, start, end, path.name)
        return stream

    def _partial(self, path: Path, start: int, end: int, *, size: int) -> DeliveryStream:
        length = end - start + 1
        return DeliveryStream(
            path,
            start=start,
            length=length,
            status_code=206,
            headers={
                "Content-Type": MEDIA_TYPE,
                "Content-Length": str(length),
                "Content-Range": f"bytes {start}-{end}/{size}",
                "Accept-Ranges": "bytes",
            },
            block_size=self.block_size,
        )

    @staticmethod
    def _cleanup(path: Path, on_complete: Callable[[], None] | None) -> None:
        try:
            path.unlink(missing_ok=True)
            log.debug("Removed delivered artifact %s", path)
        except OSError as exc:
            log.warning("Could not remove delivered artifact %s: %s", path, exc)
        if on_complete is not None:
            try:
                on_complete()
            except Exception as exc:
                log.warning("Post-delivery hook for %s failed: %s", path.name, exc)


class DownloadTokens:
    """Short-lived tokens that map to a serialized export request and redeem at most once."""

    def __init__(self, store: ProgressStore, *, ttl_seconds: int = 300) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    def issue(self, request: ExportRequest) -> str:
        token = uuid.uuid4().hex
        self.store.set(download_key(token), request.to_json(), self.ttl_seconds)
        return token

    def redeem(self, token: str) -> ExportRequest:
        key = download_key(token)
        raw = self.store.get(key)
        # Whoever deletes the key owns the redemption.
        if raw is None or not self.store.delete(key):
            raise InvalidTokenError()
        return ExportRequest.from_json(raw)
