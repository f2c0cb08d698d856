from __future__ import annotations

import io
from pathlib import Path

import pytest

from subburn.exceptions import EncodeEngineError
from subburn.services.encoder import FfmpegEngine
from subburn.utils.events import EngineEvent, EventChannel

PROGRESS = """\
out_time_us=2500000
speed=1.0x
progress=continue
out_time_us=2000000
progress=continue
out_time_us=7500000
speed=1.0x
progress=continue
out_time_us=10000000
progress=end
"""


class FakeProc:
    def __init__(self, stdout: str, stderr: str, returncode: int) -> None:
        self.stdout = io.StringIO(stdout)
        self.stderr = io.StringIO(stderr)
        self.returncode = returncode

    def wait(self) -> int:
        return self.returncode


def _popen(stdout: str = PROGRESS, stderr: str = "", returncode: int = 0):
    calls = []

    def factory(cmd, **kwargs):  # noqa: ANN001, ANN003
        calls.append((cmd, kwargs))
        return FakeProc(stdout, stderr, returncode)

    factory.calls = calls
    return factory


def _collect() -> tuple[EventChannel[EngineEvent], list[EngineEvent]]:
    channel: EventChannel[EngineEvent] = EventChannel()
    events: list[EngineEvent] = []
    channel.subscribe(events.append)
    return channel, events


def test_publishes_start_then_progress(tmp_path: Path) -> None:
    popen = _popen()
    channel, events = _collect()
    FfmpegEngine(popen=popen).encode(
        ["ffmpeg", "-i", "in.mp4", "out.mp4"], duration=10.0, events=channel
    )
    assert events[0].kind == "start"
    assert events[0].command == "ffmpeg -i in.mp4 out.mp4"
    percents = [e.percent for e in events[1:]]
    assert percents == [25.0, 20.0, 75.0, 100.0]
    assert events[-1].time_remaining == 0.0
    assert popen.calls[0][1]["text"] is True


def test_nonzero_exit_raises_with_stderr_tail(tmp_path: Path) -> None:
    stderr = "".join(f"line {i}\n" for i in range(30)) + "Conversion failed!\n"
    stderr_path = tmp_path / "ffmpeg.stderr.txt"
    channel, _ = _collect()
    with pytest.raises(EncodeEngineError) as info:
        FfmpegEngine(popen=_popen(stdout="", stderr=stderr, returncode=1)).encode(
            ["ffmpeg"], duration=10.0, events=channel, stderr_path=stderr_path
        )
    assert info.value.message == "ffmpeg failed: Conversion failed!"
    tail = info.value.stderr_tail.splitlines()
    assert len(tail) == 20
    assert tail[-1] == "Conversion failed!"
    assert "line 0" in stderr_path.read_text(encoding="utf-8")


def test_start_failure_is_engine_error() -> None:
    def broken(cmd, **kwargs):  # noqa: ANN001, ANN003
        raise FileNotFoundError("ffmpeg")

    channel, events = _collect()
    with pytest.raises(EncodeEngineError, match="could not start"):
        FfmpegEngine(popen=broken).encode(["ffmpeg"], duration=None, events=channel)
    assert events == []
