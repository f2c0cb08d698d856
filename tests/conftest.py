from __future__ import annotations

import inspect
from pathlib import Path

import pytest
import typer.testing

from subburn.config.settings import Settings
from subburn.domain.media import VideoMetadata
from subburn.exceptions import EncodeEngineError
from subburn.runtime import build_runtime
from subburn.utils.events import EngineEvent
from subburn.utils.store import MemoryStore


def _patch_clirunner() -> None:
    if "mix_stderr" in inspect.signature(typer.testing.CliRunner).parameters:
        return

    class PatchedCliRunner(typer.testing.CliRunner):
        def __init__(self, *args, **kwargs):  # noqa: ANN002, ANN003
            kwargs.pop("mix_stderr", None)
            super().__init__(*args, **kwargs)

    typer.testing.CliRunner = PatchedCliRunner


_patch_clirunner()


CAPTIONS = "0:01.0 - 0:03.5\nHallo Welt\n\n0:04.0 - 0:06.0 [HIGHLIGHT]\nZweite Zeile"


class FakeEngine:
    """Replays scripted progress and writes the output file named last in the command."""

    def __init__(
        self,
        *,
        progress: tuple[float, ...] = (25.0, 50.0, 90.0),
        fail: str | None = None,
        payload: bytes = b"FAKE_MP4_BYTES" * 64,
    ) -> None:
        self.progress = progress
        self.fail = fail
        self.payload = payload
        self.calls: list[list[str]] = []
        self.seen_temp_files: list[list[Path]] = []

    def encode(self, cmd, *, duration, events, stderr_path=None):  # noqa: ANN001
        self.calls.append(list(cmd))
        vf = cmd[cmd.index("-vf") + 1]
        ass = Path(vf.split("subtitles=", 1)[1].split(":fontsdir=", 1)[0].replace("\\", ""))
        self.seen_temp_files.append([p for p in ass.parent.rglob("*") if p.is_file()])
        events.publish(EngineEvent(kind="start", command=" ".join(cmd)))
        out = Path(cmd[-1])
        out.write_bytes(b"partial")
        for percent in self.progress:
            events.publish(EngineEvent(kind="progress", percent=percent, time_remaining=1.0))
        if self.fail:
            raise EncodeEngineError(self.fail, stderr_tail="Conversion failed!")
        out.write_bytes(self.payload)


class RecordingScheduler:
    def __init__(self) -> None:
        self.calls: list[tuple[float, object]] = []

    def __call__(self, delay, fn) -> None:  # noqa: ANN001
        self.calls.append((delay, fn))

    def run_all(self) -> None:
        for _, fn in self.calls:
            fn()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        workdir=str(tmp_path / ".subburn"),
        uploads_dir=str(tmp_path / "uploads"),
        hwaccel="off",
        redis_url=None,
        font_path=None,
    )


@pytest.fixture
def upload(settings: Settings) -> str:
    uploads = Path(settings.uploads_dir)
    uploads.mkdir(parents=True, exist_ok=True)
    (uploads / "abc123.mp4").write_bytes(b"\x00" * 1024)
    (uploads / "abc123.name").write_text("Mein Video.mp4", encoding="utf-8")
    return "abc123"


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def runtime_factory(settings: Settings, scheduler: RecordingScheduler):
    built = []

    def factory(engine: FakeEngine | None = None, **kwargs):  # noqa: ANN003
        kwargs.setdefault("store", MemoryStore())
        kwargs.setdefault(
            "probe_metadata", lambda _path: VideoMetadata(width=1920, height=1080, duration=10.0)
        )
        runtime = build_runtime(
            settings,
            engine=engine or FakeEngine(),
            scheduler=scheduler,
            **kwargs,
        )
        built.append(runtime)
        return runtime

    yield factory
    for runtime in built:
        runtime.close()
