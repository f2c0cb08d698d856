from __future__ import annotations

import functools
import json
from pathlib import Path
from typing import Callable, TypeVar

import typer

from subburn.config.settings import Settings, load_settings
from subburn.domain.job import ExportRequest, JobStatus
from subburn.exceptions import EncodeEngineError, SubburnError
from subburn.runtime import build_runtime
from subburn.services.cleanup import sweep_stale
from subburn.services.uploads import DirectFileResolver
from subburn.utils.doctor import run_doctor
from subburn.utils.ffmpeg import ensure_ffmpeg
from subburn.utils.logging import configure_logging, get_logger

app = typer.Typer(add_completion=False)
log = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., None])


def reports_errors(fn: F) -> F:
    """Turn SubburnError into `<label>: <message>` on stderr and its exit code."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):  # noqa: ANN002, ANN003
        try:
            return fn(*args, **kwargs)
        except SubburnError as exc:
            typer.echo(f"{exc.label()}: {exc.message}", err=True)
            raise typer.Exit(code=exc.exit_code) from exc

    return wrapper  # type: ignore[return-value]


def _settings(workdir: str | None = None, log_level: str | None = None) -> Settings:
    overrides = {}
    if workdir is not None:
        overrides["workdir"] = workdir
    if log_level is not None:
        overrides["log_level"] = log_level
    settings = load_settings(**overrides)
    configure_logging(settings.log_level)
    return settings


@app.command()
@reports_errors
def config() -> None:
    """Print resolved config."""
    s = load_settings()
    typer.echo(json.dumps(s.to_public_dict(), indent=2))


@app.command()
@reports_errors
def doctor() -> None:
    """Run environment diagnostics."""
    settings = load_settings()
    code = run_doctor(settings)
    raise typer.Exit(code=code)


@app.command()
@reports_errors
def export(
    video: Path = typer.Argument(..., help="Source video file."),
    subtitles: Path = typer.Argument(..., help="Caption text file (`M:SS.f - M:SS.f` blocks)."),
    mode: str = typer.Option("manual", help="Subtitle mode: manual or word."),
    style: str = typer.Option("standard", help="Style preset: standard, clean, shadow."),
    height: str = typer.Option("standard", help="Vertical placement: standard or low."),
    max_resolution: int = typer.Option(None, help="Downscale so the short side fits this."),
    workdir: str = typer.Option(None, help="Workdir for outputs (overrides config)."),
    log_level: str = typer.Option(None, help="Log level (overrides config)."),
) -> None:
    """Burn captions into a local video and wait for the result."""
    settings = _settings(workdir, log_level)
    ensure_ffmpeg()
    if not subtitles.is_file():
        raise typer.BadParameter(f"Subtitle file not found: {subtitles}")

    request = ExportRequest(
        upload_id=video.stem or "video",
        subtitles=subtitles.read_text(encoding="utf-8"),
        subtitle_preference=mode,
        style_preference=style,
        height_preference=height,
        max_resolution=max_resolution,
    )
    runtime = build_runtime(settings, resolver=DirectFileResolver(video))
    try:
        job = runtime.orchestrator.run(request)
    finally:
        runtime.close()

    if job.status is not JobStatus.COMPLETE:
        raise EncodeEngineError(job.error or "Export failed")
    typer.echo(f"✅ Done. token={job.token}")
    typer.echo(f"📦 Output: {job.output_path}")


@app.command()
@reports_errors
def status(token: str = typer.Argument(..., help="Export token.")) -> None:
    """Show an export's progress record (needs a shared Redis store)."""
    settings = _settings()
    runtime = build_runtime(settings)
    try:
        record = runtime.orchestrator.status(token)
    finally:
        runtime.close()
    typer.echo(json.dumps(record, indent=2, ensure_ascii=False))
    if record["status"] == "not_found":
        raise typer.Exit(code=1)


@app.command()
@reports_errors
def sweep(
    max_age: int = typer.Option(None, help="Age in seconds (default: export TTL)."),
    dry_run: bool = typer.Option(False, help="List what would be removed."),
    workdir: str = typer.Option(None, help="Workdir (overrides config)."),
) -> None:
    """Remove stale exports and temp dirs."""
    settings = _settings(workdir)
    report = sweep_stale(
        settings.workdir,
        max_age_seconds=max_age if max_age is not None else settings.export_ttl_seconds,
        dry_run=dry_run,
    )
    for path in [*report.removed_exports, *report.removed_temp_dirs]:
        typer.echo(str(path))
    typer.echo(f"{'Would remove' if dry_run else 'Removed'} {report.total} item(s).")


@app.command()
@reports_errors
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from subburn.web.app import create_app

    settings = _settings()
    runtime = build_runtime(settings)
    uvicorn.run(create_app(runtime), host=host, port=port, log_level=settings.log_level.lower())
    runtime.close(wait=False)


def _main() -> None:
    app()


if __name__ == "__main__":
    _main()
