from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

from subburn.utils.logging import get_logger

log = get_logger(__name__)

_UPLOAD_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class UploadResolver(Protocol):
    def resolve(self, upload_id: str) -> tuple[Path, bool]: ...

    def original_filename(self, upload_id: str) -> str | None: ...


class ProjectSaver(Protocol):
    def save(self, user_id: str, output_path: Path, project_id: str | None) -> None: ...


class LocalUploadResolver:
    """
    Uploads stored as `<uploads_dir>/<upload_id>` (any extension).

    An optional `<upload_id>.name` sidecar holds the user's original filename.
    """

    def __init__(self, uploads_dir: str | Path) -> None:
        self.root = Path(uploads_dir).expanduser().resolve()

    def _candidate(self, upload_id: str) -> Path | None:
        if not _UPLOAD_ID.match(upload_id or ""):
            log.warning("Rejected malformed upload id: %r", upload_id)
            return None
        direct = (self.root / upload_id).resolve()
        if direct.parent != self.root:
            log.warning("Rejected upload id outside uploads dir: %r", upload_id)
            return None
        if direct.is_file():
            return direct
        for match in sorted(self.root.glob(f"{upload_id}.*")):
            if match.suffix != ".name" and match.is_file():
                return match
        return direct

    def resolve(self, upload_id: str) -> tuple[Path, bool]:
        path = self._candidate(upload_id)
        if path is None:
            return self.root / "invalid", False
        return path, path.is_file()

    def original_filename(self, upload_id: str) -> str | None:
        path = self._candidate(upload_id)
        if path is None:
            return None
        sidecar = self.root / f"{upload_id}.name"
        if sidecar.is_file():
            name = sidecar.read_text(encoding="utf-8").strip()
            if name:
                return name
        return path.name if path.is_file() else None


class DirectFileResolver:
    """Resolves every upload id to one local file; used by the CLI."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser().resolve()

    def resolve(self, upload_id: str) -> tuple[Path, bool]:
        return self.path, self.path.is_file()

    def original_filename(self, upload_id: str) -> str | None:
        return self.path.name
