"""
ffmpeg driver.

Runs one transcode, turns `-progress pipe:1` output into EngineEvents on an
EventChannel, and blocks until ffmpeg exits. Success or failure is the return
value or the raised EncodeEngineError; the channel only carries start and
progress.
"""

from __future__ import annotations

import collections
import shlex
import subprocess
import threading
from pathlib import Path
from typing import IO, Callable, Protocol

from subburn.exceptions import EncodeEngineError
from subburn.utils.events import EngineEvent, EventChannel
from subburn.utils.ffmpeg import ProgressParser
from subburn.utils.logging import get_logger

log = get_logger(__name__)

STDERR_TAIL_LINES = 20

PopenFactory = Callable[..., subprocess.Popen]


class EncodeEngine(Protocol):
    def encode(
        self,
        cmd: list[str],
        *,
        duration: float | None,
        events: EventChannel[EngineEvent],
        stderr_path: Path | None = None,
    ) -> None: ...


def _drain(stream: IO[str], sink: collections.deque, log_file: IO[str] | None) -> None:
    for line in stream:
        sink.append(line.rstrip("\n"))
        if log_file is not None:
            log_file.write(line)


class FfmpegEngine:
    def __init__(self, *, popen: PopenFactory = subprocess.Popen) -> None:
        self._popen = popen

    def encode(
        self,
        cmd: list[str],
        *,
        duration: float | None,
        events: EventChannel[EngineEvent],
        stderr_path: Path | None = None,
    ) -> None:
        log.debug("ffmpeg: %s", shlex.join(cmd))
        try:
            proc = self._popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            raise EncodeEngineError(f"ffmpeg could not start: {exc}") from exc

        events.publish(EngineEvent(kind="start", command=shlex.join(cmd)))

        tail: collections.deque[str] = collections.deque(maxlen=STDERR_TAIL_LINES)
        log_file = stderr_path.open("w", encoding="utf-8") if stderr_path else None
        reader = threading.Thread(
            target=_drain, args=(proc.stderr, tail, log_file), daemon=True
        )
        reader.start()
        try:
            parser = ProgressParser(duration)
            for line in proc.stdout:
                sample = parser.feed(line)
                if sample is None:
                    continue
                events.publish(
                    EngineEvent(
                        kind="progress",
                        percent=sample.percent,
                        time_remaining=sample.time_remaining,
                        timemark=sample.timemark,
                    )
                )
            returncode = proc.wait()
            reader.join()
        finally:
            if log_file is not None:
                log_file.close()

        if returncode != 0:
            stderr_tail = "\n".join(tail)
            last = tail[-1] if tail else f"exit code {returncode}"
            raise EncodeEngineError(f"ffmpeg failed: {last}", stderr_tail=stderr_tail)
