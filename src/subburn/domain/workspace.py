from __future__ import annotations

import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path

_UNSAFE_NAME = re.compile(r"[^a-zA-Z0-9_-]")


def safe_stem(filename: str, fallback: str = "video") -> str:
    stem = Path(filename).stem if filename else ""
    cleaned = _UNSAFE_NAME.sub("_", stem)
    return cleaned or fallback


@dataclass(frozen=True)
class ExportWorkspace:
    """Filesystem layout for one export token: a private temp dir plus the output file."""

    root: Path
    token: str
    output_path: Path

    @classmethod
    def create(
        cls,
        workdir: str | Path,
        *,
        original_filename: str = "video.mp4",
        token: str | None = None,
    ) -> "ExportWorkspace":
        tok = token or uuid.uuid4().hex
        root = Path(workdir).expanduser().resolve()
        (root / "temp" / tok).mkdir(parents=True, exist_ok=True)
        exports = root / "exports"
        exports.mkdir(parents=True, exist_ok=True)
        output = exports / f"{safe_stem(original_filename)}_{tok}.mp4"
        return cls(root=root, token=tok, output_path=output)

    @property
    def temp_dir(self) -> Path:
        return self.root / "temp" / self.token

    def path(self, name: str) -> Path:
        p = self.temp_dir / name
        p.parent.mkdir(parents=True, exist_ok=True)
        return p

    @property
    def subtitles_ass(self) -> Path:
        return self.path("subtitles.ass")

    @property
    def ffmpeg_stderr(self) -> Path:
        return self.path("ffmpeg.stderr.txt")

    def remove_temp(self) -> None:
        shutil.rmtree(self.temp_dir, ignore_errors=True)
