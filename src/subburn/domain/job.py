from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from subburn.domain.media import VideoMetadata
from subburn.exceptions import InputError, InvalidTransitionError

SUBTITLE_MODES = {"manual", "word"}
HEIGHT_PREFERENCES = {"standard", "low"}


class JobStatus(str, Enum):
    CREATED = "created"
    EXPORTING = "exporting"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in {JobStatus.COMPLETE, JobStatus.ERROR}


ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.CREATED: {JobStatus.EXPORTING, JobStatus.ERROR},
    JobStatus.EXPORTING: {JobStatus.COMPLETE, JobStatus.ERROR},
    JobStatus.COMPLETE: set(),
    JobStatus.ERROR: set(),
}


@dataclass
class ExportRequest:
    upload_id: str
    subtitles: str
    subtitle_preference: str = "manual"
    style_preference: str = "standard"
    height_preference: str = "standard"
    locale: str = "de-DE"
    max_resolution: int | None = None
    metadata: VideoMetadata | None = None
    project_id: str | None = None
    user_id: str | None = None

    def __post_init__(self) -> None:
        if not self.upload_id:
            raise InputError("Upload id is required")
        if not self.subtitles or not self.subtitles.strip():
            raise InputError("Subtitles are required")
        if self.subtitle_preference not in SUBTITLE_MODES:
            raise InputError(f"Unknown subtitle mode '{self.subtitle_preference}'")
        if self.height_preference not in HEIGHT_PREFERENCES:
            raise InputError(f"Unknown height preference '{self.height_preference}'")
        if self.max_resolution is not None and self.max_resolution <= 0:
            raise InputError("max_resolution must be positive")

    @property
    def word_mode(self) -> bool:
        return self.subtitle_preference == "word"

    def to_dict(self) -> dict[str, Any]:
        return {
            "upload_id": self.upload_id,
            "subtitles": self.subtitles,
            "subtitle_preference": self.subtitle_preference,
            "style_preference": self.style_preference,
            "height_preference": self.height_preference,
            "locale": self.locale,
            "max_resolution": self.max_resolution,
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "project_id": self.project_id,
            "user_id": self.user_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExportRequest":
        metadata = data.get("metadata")
        return cls(
            upload_id=data.get("upload_id", ""),
            subtitles=data.get("subtitles", ""),
            subtitle_preference=data.get("subtitle_preference") or "manual",
            style_preference=data.get("style_preference") or "standard",
            height_preference=data.get("height_preference") or "standard",
            locale=data.get("locale") or "de-DE",
            max_resolution=data.get("max_resolution"),
            metadata=VideoMetadata.from_mapping(metadata) if metadata else None,
            project_id=data.get("project_id"),
            user_id=data.get("user_id"),
        )

    @classmethod
    def from_json(cls, raw: str) -> "ExportRequest":
        return cls.from_dict(json.loads(raw))


@dataclass
class ExportJob:
    """
    One export's lifecycle record.

    Only the orchestrator mutates a job. Progress never moves backwards and a
    terminal job never changes state again.
    """

    token: str
    upload_id: str
    status: JobStatus = JobStatus.CREATED
    progress: int = 0
    message: str | None = None
    output_path: str | None = None
    error: str | None = None
    time_remaining: float | None = None
    timemark: str | None = None
    duration_seconds: float | None = None
    elapsed_seconds: float | None = None
    original_filename: str | None = None
    project_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def transition(self, target: JobStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status.value, target.value)
        self.status = target

    def advance(self, percent: float) -> bool:
        """Raise progress to `percent` (clamped to 0..100). Returns True if it moved."""
        if self.status.terminal:
            return False
        value = max(0, min(100, int(round(percent))))
        if value <= self.progress:
            return False
        self.progress = value
        return True

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "status": self.status.value,
            "progress": self.progress,
        }
        if self.status is JobStatus.COMPLETE:
            record.update(
                {
                    "outputPath": self.output_path,
                    "duration": self.duration_seconds,
                    "elapsed": self.elapsed_seconds,
                    "originalFilename": self.original_filename,
                    "projectId": self.project_id,
                }
            )
        elif self.status is JobStatus.ERROR:
            record["error"] = self.error
        else:
            if self.message:
                record["message"] = self.message
            if self.time_remaining is not None:
                record["timeRemaining"] = self.time_remaining
            if self.timemark:
                record["timemark"] = self.timemark
        return record

    def to_json(self) -> str:
        return json.dumps(self.to_record(), ensure_ascii=False)
