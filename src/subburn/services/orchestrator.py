"""
Export orchestration.

Responsibilities:
- Validate the request and resolve the source before any job exists
- Derive style, encode path and quality, render the subtitle asset
- Record the job and hand exactly one encode to the bounded worker pool
- Mirror engine progress into the store (best effort) and finish the job
- Remove per-job temp files on every terminal path

Does NOT:
- Retry failed encodes
- Cancel a running encode when the client goes away
- Stream the artifact (see services.delivery)
"""

from __future__ import annotations

import json
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from subburn.domain.job import ExportJob, ExportRequest, JobStatus
from subburn.domain.media import VideoMetadata
from subburn.domain.workspace import ExportWorkspace
from subburn.exceptions import (
    DeliveryError,
    EncodeEngineError,
    InvalidTokenError,
    SourceNotFoundError,
    StoreError,
    StoreWriteError,
    SubburnError,
)
from subburn.services.encoder import EncodeEngine
from subburn.services.hardware import HardwareProber
from subburn.services.quality import select_quality
from subburn.services.segments import parse_segments
from subburn.services.styling import StyleCalculator
from subburn.services.subtitles import SubtitleAsset, SubtitleRenderer
from subburn.services.uploads import ProjectSaver, UploadResolver
from subburn.utils.events import EngineEvent, EventChannel
from subburn.utils.ffmpeg import build_export_cmd, probe_video_metadata
from subburn.utils.logging import get_logger, megabytes
from subburn.utils.pool import WorkerPool
from subburn.utils.store import ProgressStore, export_key
from subburn.utils.timing import StepTimer

log = get_logger(__name__)

MetadataProbe = Callable[[Path], VideoMetadata]


@dataclass(frozen=True)
class ExportHandle:
    token: str
    future: "Future[ExportJob]"

    def wait(self, timeout: float | None = None) -> ExportJob:
        return self.future.result(timeout=timeout)


@dataclass(frozen=True)
class _PreparedExport:
    job: ExportJob
    request: ExportRequest
    workspace: ExportWorkspace
    asset: SubtitleAsset
    metadata: VideoMetadata
    cmd: list[str]


class ExportOrchestrator:
    def __init__(
        self,
        *,
        store: ProgressStore,
        pool: WorkerPool,
        resolver: UploadResolver,
        renderer: SubtitleRenderer,
        engine: EncodeEngine,
        prober: HardwareProber,
        workdir: str | Path,
        export_ttl_seconds: int = 3600,
        large_file_mb: int = 200,
        vaapi_device: str | None = None,
        styler: StyleCalculator | None = None,
        probe_metadata: MetadataProbe = probe_video_metadata,
        project_saver: ProjectSaver | None = None,
    ) -> None:
        self.store = store
        self.pool = pool
        self.resolver = resolver
        self.renderer = renderer
        self.engine = engine
        self.prober = prober
        self.workdir = Path(workdir)
        self.export_ttl_seconds = export_ttl_seconds
        self.large_file_mb = large_file_mb
        self.vaapi_device = vaapi_device
        self.styler = styler or StyleCalculator()
        self.probe_metadata = probe_metadata
        self.project_saver = project_saver
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def start(self, request: ExportRequest) -> ExportHandle:
        """
        Prepare an export and queue its encode.

        Input problems raise before any job exists. Once the initial record
        is written the job is owned by the worker pool; the returned handle
        resolves to the terminal ExportJob.
        """
        prepared = self._prepare(request)
        job = prepared.job
        log.info(
            "Export %s queued: upload=%s codec=%s (active=%s queued=%s)",
            job.token,
            request.upload_id,
            prepared.cmd[prepared.cmd.index("-c:v") + 1],
            self.pool.active,
            self.pool.queued,
        )
        try:
            future = self.pool.submit(self._run, prepared, label=f"export {job.token}")
        except Exception:
            self._remove_temp(prepared)
            try:
                self.store.delete(export_key(job.token))
            except StoreError as exc:
                log.warning("Could not drop record of unqueued export %s: %s", job.token, exc.message)
            raise
        return ExportHandle(token=job.token, future=future)

    def run(self, request: ExportRequest, timeout: float | None = None) -> ExportJob:
        return self.start(request).wait(timeout)

    def status(self, token: str) -> dict[str, Any]:
        """User-visible state: processing, complete, error or not_found."""
        raw = self.store.get(export_key(token))
        if raw is None:
            return {"status": "not_found"}
        record = json.loads(raw)
        if record.get("status") in {JobStatus.CREATED.value, JobStatus.EXPORTING.value}:
            record["status"] = "processing"
        return record

    def artifact(self, token: str, *, consume: bool = False) -> tuple[Path, str]:
        """
        Path and download name of a completed export.

        With `consume`, the progress record is deleted first so only one
        caller ever gets a full (deleting) delivery.
        """
        raw = self.store.get(export_key(token))
        if raw is None:
            raise InvalidTokenError("Export not found or expired")
        record = json.loads(raw)
        if record.get("status") != JobStatus.COMPLETE.value:
            raise DeliveryError(f"Export {token} is not complete")
        path = Path(record["outputPath"])
        if not path.is_file():
            raise InvalidTokenError("Export artifact no longer available")
        if consume and not self.store.delete(export_key(token)):
            raise InvalidTokenError("Export already delivered")
        return path, record.get("originalFilename") or path.name

    # ------------------------------------------------------------------
    # Preparation (caller thread)
    # ------------------------------------------------------------------
    def _prepare(self, request: ExportRequest) -> _PreparedExport:
        source, exists = self.resolver.resolve(request.upload_id)
        if not exists:
            raise SourceNotFoundError(request.upload_id)
        segments = parse_segments(request.subtitles)

        metadata = request.metadata or self.probe_metadata(source)
        style = self.styler.calculate(metadata, segments, request)
        capability = self.prober.capability()
        size = source.stat().st_size
        quality = select_quality(
            metadata,
            file_size_bytes=size,
            hardware_available=capability.available,
            large_file_mb=self.large_file_mb,
        )
        log.debug(
            "Source %s: %sx%s %.1fs %s, font=%spx",
            source.name,
            metadata.width,
            metadata.height,
            metadata.duration,
            megabytes(size),
            style.font_size,
        )

        original_filename = self.resolver.original_filename(request.upload_id) or source.name
        workspace = ExportWorkspace.create(self.workdir, original_filename=original_filename)
        job = ExportJob(
            token=workspace.token,
            upload_id=request.upload_id,
            original_filename=original_filename,
            project_id=request.project_id,
            duration_seconds=metadata.duration or None,
        )
        try:
            asset = self.renderer.render(segments, style, metadata, request, workspace.temp_dir)
            cmd = build_export_cmd(
                source,
                workspace.output_path,
                subtitles_path=asset.path,
                fonts_dir=asset.font_dir,
                quality=quality,
                metadata=metadata,
                max_resolution=request.max_resolution,
                vaapi_device=self.vaapi_device,
            )
            self._write(job, fatal=True)
        except Exception:
            workspace.remove_temp()
            raise
        return _PreparedExport(
            job=job,
            request=request,
            workspace=workspace,
            asset=asset,
            metadata=metadata,
            cmd=cmd,
        )

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _run(self, prepared: _PreparedExport) -> ExportJob:
        job = prepared.job
        timer = StepTimer()
        events: EventChannel[EngineEvent] = EventChannel()
        unsubscribe = events.subscribe(lambda event: self._on_event(job, event))
        try:
            with self._lock:
                job.transition(JobStatus.EXPORTING)
                job.message = "Export started"
            self._write(job)
            with timer.step("encode"):
                self.engine.encode(
                    prepared.cmd,
                    duration=prepared.metadata.duration or None,
                    events=events,
                    stderr_path=prepared.workspace.ffmpeg_stderr,
                )
            if not prepared.workspace.output_path.is_file():
                raise EncodeEngineError("Encoder exited without writing an output file")
        except Exception as exc:
            self._fail(job, prepared.workspace, exc)
        else:
            self._complete(job, prepared, timer)
        finally:
            unsubscribe()
            self._remove_temp(prepared)
        return job

    def _on_event(self, job: ExportJob, event: EngineEvent) -> None:
        if event.kind == "start":
            log.debug("Export %s engine started", job.token)
            return
        with self._lock:
            if not job.advance(event.percent):
                return
            job.message = f"Processing: {job.progress}%"
            job.time_remaining = (
                round(event.time_remaining, 1) if event.time_remaining is not None else None
            )
            job.timemark = event.timemark
        log.debug("Export %s progress %s%%", job.token, job.progress)
        self._write(job)

    def _complete(self, job: ExportJob, prepared: _PreparedExport, timer: StepTimer) -> None:
        output = prepared.workspace.output_path
        with self._lock:
            job.transition(JobStatus.COMPLETE)
            job.progress = 100
            job.output_path = str(output)
            job.elapsed_seconds = timer.duration_of("encode")
        self._write(job)
        log.info(
            "Export %s complete: %s (%s, %s)",
            job.token,
            output.name,
            megabytes(output.stat().st_size) if output.exists() else "missing",
            timer.summary(),
        )
        self._save_project(job, prepared.request, output)

    def _fail(self, job: ExportJob, workspace: ExportWorkspace, exc: Exception) -> None:
        message = exc.message if isinstance(exc, SubburnError) else str(exc)
        with self._lock:
            if not job.status.terminal:
                job.transition(JobStatus.ERROR)
            job.error = message
        workspace.output_path.unlink(missing_ok=True)
        self._write(job)
        tail = getattr(exc, "stderr_tail", "")
        log.error("Export %s failed: %s%s", job.token, message, f"\n{tail}" if tail else "")

    def _save_project(self, job: ExportJob, request: ExportRequest, output: Path) -> None:
        if self.project_saver is None or not request.user_id:
            return
        try:
            self.project_saver.save(request.user_id, output, request.project_id)
        except Exception as exc:
            log.warning("Project save for export %s failed: %s", job.token, exc)

    def _remove_temp(self, prepared: _PreparedExport) -> None:
        for path in prepared.asset.temp_files:
            path.unlink(missing_ok=True)
        prepared.workspace.remove_temp()

    def _write(self, job: ExportJob, *, fatal: bool = False) -> None:
        try:
            self.store.set(export_key(job.token), job.to_json(), self.export_ttl_seconds)
        except StoreError as exc:
            if fatal:
                raise StoreWriteError(f"Could not record export {job.token}: {exc.message}") from exc
            log.warning("Progress write for export %s dropped: %s", job.token, exc.message)
