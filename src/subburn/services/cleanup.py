from __future__ import annotations

import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from subburn.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class SweepReport:
    removed_exports: list[Path] = field(default_factory=list)
    removed_temp_dirs: list[Path] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.removed_exports) + len(self.removed_temp_dirs)


def sweep_stale(
    workdir: str | Path,
    *,
    max_age_seconds: float,
    now: Callable[[], float] = time.time,
    dry_run: bool = False,
) -> SweepReport:
    """
    Remove exports and per-job temp dirs older than `max_age_seconds`.

    Artifacts served by range or chunk are never deleted on delivery, and
    a crashed worker can leave temp dirs behind; this catches both.
    """
    root = Path(workdir).expanduser().resolve()
    cutoff = now() - max_age_seconds
    report = SweepReport()

    exports = root / "exports"
    if exports.is_dir():
        for path in sorted(exports.iterdir()):
            if path.is_file() and path.stat().st_mtime < cutoff:
                if not dry_run:
                    path.unlink(missing_ok=True)
                report.removed_exports.append(path)

    temp = root / "temp"
    if temp.is_dir():
        for path in sorted(temp.iterdir()):
            if path.is_dir() and path.stat().st_mtime < cutoff:
                if not dry_run:
                    shutil.rmtree(path, ignore_errors=True)
                report.removed_temp_dirs.append(path)

    if report.total:
        log.info(
            "Swept %s stale exports and %s temp dirs under %s%s",
            len(report.removed_exports),
            len(report.removed_temp_dirs),
            root,
            " (dry run)" if dry_run else "",
        )
    return report
