"""
Runtime wiring for subburn.

Builds the long-lived collaborators (store, worker pool, hardware prober,
orchestrator, delivery) from Settings once per process. Everything is
injectable so tests can swap the engine, prober or store.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from subburn.config.settings import Settings
from subburn.services.delivery import DeliveryStreamer, DownloadTokens, Scheduler, timer_scheduler
from subburn.services.encoder import EncodeEngine, FfmpegEngine
from subburn.services.hardware import HardwareProber
from subburn.services.orchestrator import ExportOrchestrator, MetadataProbe
from subburn.services.subtitles import AssSubtitleRenderer, SubtitleRenderer
from subburn.services.uploads import LocalUploadResolver, ProjectSaver, UploadResolver
from subburn.utils.ffmpeg import probe_video_metadata
from subburn.utils.logging import get_logger
from subburn.utils.pool import WorkerPool
from subburn.utils.store import ProgressStore, create_store

log = get_logger(__name__)


@dataclass
class Runtime:
    settings: Settings
    store: ProgressStore
    pool: WorkerPool
    prober: HardwareProber
    orchestrator: ExportOrchestrator
    streamer: DeliveryStreamer
    tokens: DownloadTokens

    def close(self, wait: bool = True) -> None:
        self.pool.shutdown(wait=wait)


def build_runtime(
    settings: Settings | None = None,
    *,
    store: ProgressStore | None = None,
    engine: EncodeEngine | None = None,
    prober: HardwareProber | None = None,
    resolver: UploadResolver | None = None,
    renderer: SubtitleRenderer | None = None,
    probe_metadata: MetadataProbe | None = None,
    project_saver: ProjectSaver | None = None,
    scheduler: Scheduler | None = None,
) -> Runtime:
    settings = settings or Settings()
    Path(settings.workdir).expanduser().mkdir(parents=True, exist_ok=True)

    store = store if store is not None else create_store(settings)
    pool = WorkerPool(settings.max_concurrent_exports)
    prober = prober or HardwareProber(
        settings.vaapi_device,
        timeout=settings.hw_probe_timeout_seconds,
        enabled=settings.hwaccel == "auto",
    )
    orchestrator = ExportOrchestrator(
        store=store,
        pool=pool,
        resolver=resolver or LocalUploadResolver(settings.uploads_dir),
        renderer=renderer or AssSubtitleRenderer(font_path=settings.font_path),
        engine=engine or FfmpegEngine(),
        prober=prober,
        workdir=settings.workdir,
        export_ttl_seconds=settings.export_ttl_seconds,
        large_file_mb=settings.large_file_mb,
        vaapi_device=settings.vaapi_device,
        probe_metadata=probe_metadata or probe_video_metadata,
        project_saver=project_saver,
    )
    streamer = DeliveryStreamer(
        grace_seconds=settings.cleanup_grace_seconds,
        block_size=settings.stream_block_bytes,
        chunk_size=settings.chunk_size_bytes,
        scheduler=scheduler or timer_scheduler,
    )
    tokens = DownloadTokens(store, ttl_seconds=settings.download_token_ttl_seconds)
    log.debug("Runtime ready: %s", settings.to_public_dict())
    return Runtime(
        settings=settings,
        store=store,
        pool=pool,
        prober=prober,
        orchestrator=orchestrator,
        streamer=streamer,
        tokens=tokens,
    )
