from __future__ import annotations

import importlib
import subprocess
import sys
import tempfile
from pathlib import Path

from subburn.config.settings import Settings
from subburn.services.hardware import HardwareProber
from subburn.utils.store import RedisStore


def _run_cmd(cmd: list[str]) -> tuple[int, str]:
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError:
        return 1, ""
    return proc.returncode, proc.stdout.strip() or proc.stderr.strip()


def _module_available(name: str) -> bool:
    try:
        importlib.import_module(name)
    except ImportError:
        return False
    return True


def _check_writable(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=path, delete=True):
            return True
    except OSError:
        return False


def _get_version() -> str:
    try:
        import importlib.metadata

        return importlib.metadata.version("subburn")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _ffmpeg_hint() -> str:
    if sys.platform.startswith("darwin"):
        return "Install ffmpeg: brew install ffmpeg"
    if sys.platform.startswith("win"):
        return "Install ffmpeg: winget install ffmpeg"
    return "Install ffmpeg: sudo apt install ffmpeg"


def _check_hardware(settings: Settings) -> tuple[bool, str]:
    prober = HardwareProber(
        settings.vaapi_device,
        timeout=settings.hw_probe_timeout_seconds,
        enabled=settings.hwaccel == "auto",
    )
    capability = prober.capability()
    if capability.available:
        return True, f"{capability.encoder} on {settings.vaapi_device}"
    return False, capability.reason or "unavailable"


def _check_redis(url: str) -> bool:
    return RedisStore.from_url(url).ping()


def _status_line(ok: bool, label: str, detail: str = "") -> str:
    icon = "✅" if ok else "❌"
    return f"{icon} {label}{detail}"


def _warn_line(label: str, detail: str = "") -> str:
    return f"⚠️ {label}{detail}"


def run_doctor(settings: Settings) -> int:
    required_ok = True
    lines: list[str] = []

    lines.append("subburn doctor")
    lines.append("")

    python_version = sys.version.split()[0]
    lines.append(_status_line(True, "Python", f": {python_version}"))
    lines.append(_status_line(True, "subburn version", f": {_get_version()}"))

    workdir = Path(settings.workdir).expanduser().resolve()
    writable = _check_writable(workdir)
    if not writable:
        required_ok = False
    lines.append(_status_line(writable, "Workdir writable", f": {workdir}"))

    ffmpeg_ok = True
    for binary in ("ffmpeg", "ffprobe"):
        code, out = _run_cmd([binary, "-version"])
        if code != 0:
            required_ok = False
            ffmpeg_ok = False
            lines.append(_status_line(False, binary, " (not found)"))
        else:
            first_line = out.splitlines()[0] if out else "available"
            lines.append(_status_line(True, binary, f": {first_line}"))
    if not ffmpeg_ok:
        lines.append(_ffmpeg_hint())

    if settings.hwaccel == "off":
        lines.append(_warn_line("Hardware encoding", ": disabled (SUBBURN_HWACCEL=off)"))
    else:
        hw_ok, detail = _check_hardware(settings)
        if hw_ok:
            lines.append(_status_line(True, "Hardware encoding", f": {detail}"))
        else:
            lines.append(_warn_line("Hardware encoding", f": {detail} (software fallback)"))

    if settings.redis_url:
        redis_ok = _check_redis(settings.redis_url)
        if not redis_ok:
            required_ok = False
        lines.append(_status_line(redis_ok, "Redis", ": reachable" if redis_ok else ": unreachable"))
    else:
        lines.append(_warn_line("Redis", ": not configured (in-memory store, single process only)"))

    if _module_available("uvicorn"):
        lines.append(_status_line(True, "uvicorn", " (available)"))
    else:
        lines.append(_warn_line("uvicorn", " (not installed; `serve` unavailable)"))

    font = settings.font_path
    if font and not Path(font).expanduser().is_file():
        lines.append(_warn_line("Font", f": {font} not found (system fonts used)"))
    else:
        lines.append(_status_line(True, "Font", f": {font or 'system default'}"))

    print("\n".join(lines))
    return 0 if required_ok else 1
