"""
HTTP surface for exports.

Thin adapter: every route translates a request into one orchestrator,
delivery or token call. Domain errors are mapped to status codes in
`subburn.web.app`.
"""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.background import BackgroundTask
from starlette.concurrency import iterate_in_threadpool

from subburn.domain.job import ExportRequest, JobStatus
from subburn.domain.media import VideoMetadata
from subburn.exceptions import EncodeEngineError
from subburn.runtime import Runtime
from subburn.services.delivery import DeliveryStream
from subburn.utils.logging import get_logger
from subburn.utils.store import export_key

router = APIRouter()
log = get_logger(__name__)


class MetadataBody(BaseModel):
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    rotation: Optional[int] = None
    source_codec: Optional[str] = Field(default=None, alias="sourceCodec")
    source_audio_codec: Optional[str] = Field(default=None, alias="sourceAudioCodec")
    source_audio_bitrate: Optional[int] = Field(default=None, alias="sourceAudioBitrate")

    model_config = ConfigDict(populate_by_name=True)


class ExportBody(BaseModel):
    upload_id: str = Field(alias="uploadId")
    subtitles: str
    subtitle_preference: str = Field(default="manual", alias="subtitlePreference")
    style_preference: str = Field(default="standard", alias="stylePreference")
    height_preference: str = Field(default="standard", alias="heightPreference")
    locale: str = "de-DE"
    max_resolution: Optional[int] = Field(default=None, alias="maxResolution")
    metadata: Optional[MetadataBody] = None
    project_id: Optional[str] = Field(default=None, alias="projectId")
    user_id: Optional[str] = Field(default=None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)

    def to_request(self) -> ExportRequest:
        metadata = None
        if self.metadata is not None:
            metadata = VideoMetadata.from_mapping(self.metadata.model_dump())
        return ExportRequest(
            upload_id=self.upload_id,
            subtitles=self.subtitles,
            subtitle_preference=self.subtitle_preference,
            style_preference=self.style_preference,
            height_preference=self.height_preference,
            locale=self.locale,
            max_resolution=self.max_resolution,
            metadata=metadata,
            project_id=self.project_id,
            user_id=self.user_id,
        )


def _runtime(request: Request) -> Runtime:
    return request.app.state.runtime


async def stream_body(stream: DeliveryStream) -> AsyncIterator[bytes]:
    """Yield the delivery and close it however the response ends, disconnects included."""
    try:
        async for block in iterate_in_threadpool(stream):
            yield block
    finally:
        stream.close()


def _respond(stream: DeliveryStream) -> StreamingResponse:
    return StreamingResponse(
        stream_body(stream),
        status_code=stream.status_code,
        headers=stream.headers,
        background=BackgroundTask(stream.close),
    )


@router.post("/export", status_code=202)
def start_export(body: ExportBody, request: Request) -> dict:
    runtime = _runtime(request)
    handle = runtime.orchestrator.start(body.to_request())
    return {"status": JobStatus.EXPORTING.value, "exportToken": handle.token}


@router.get("/export-progress/{token}")
def export_progress(token: str, request: Request):
    record = _runtime(request).orchestrator.status(token)
    if record["status"] == "not_found":
        return JSONResponse(status_code=404, content=record)
    return record


@router.get("/export-download/{token}")
def export_download(
    token: str,
    request: Request,
    range_header: Optional[str] = Header(default=None, alias="range"),
) -> StreamingResponse:
    runtime = _runtime(request)
    if range_header:
        path, _ = runtime.orchestrator.artifact(token)
        return _respond(runtime.streamer.stream_range(path, range_header))
    path, filename = runtime.orchestrator.artifact(token, consume=True)
    return _respond(runtime.streamer.stream(path, filename))


@router.get("/download-chunk/{token}/{index}")
def download_chunk(token: str, index: int, request: Request) -> StreamingResponse:
    runtime = _runtime(request)
    path, _ = runtime.orchestrator.artifact(token)
    return _respond(runtime.streamer.stream_chunk(path, index))


@router.post("/export-token")
def issue_download_token(body: ExportBody, request: Request) -> dict:
    runtime = _runtime(request)
    token = runtime.tokens.issue(body.to_request())
    return {"token": token, "expiresIn": runtime.tokens.ttl_seconds}


@router.get("/download/{token}")
def download_with_token(token: str, request: Request) -> StreamingResponse:
    """Redeem a one-time token, run the export it carries and stream the result."""
    runtime = _runtime(request)
    export_request = runtime.tokens.redeem(token)
    job = runtime.orchestrator.run(export_request)
    if job.status is not JobStatus.COMPLETE or not job.output_path:
        raise EncodeEngineError(job.error or "Export failed")
    export_token = job.token
    return _respond(
        runtime.streamer.stream(
            Path(job.output_path),
            job.original_filename,
            on_complete=lambda: runtime.store.delete(export_key(export_token)),
        )
    )
