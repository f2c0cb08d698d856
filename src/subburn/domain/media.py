from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080


def _int_or(value: Any, default: int) -> int:
    try:
        parsed = int(float(value))
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _float_or_none(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class VideoMetadata:
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    duration: float = 0.0
    rotation: int = 0
    source_codec: str | None = None
    source_audio_codec: str | None = None
    source_audio_bitrate: int | None = None  # kbps

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "VideoMetadata":
        """Build metadata from a loosely-typed mapping, defaulting missing fields."""
        data = data or {}
        bitrate = _float_or_none(data.get("source_audio_bitrate"))
        return cls(
            width=_int_or(data.get("width"), DEFAULT_WIDTH),
            height=_int_or(data.get("height"), DEFAULT_HEIGHT),
            duration=_float_or_none(data.get("duration")) or 0.0,
            rotation=int(_float_or_none(data.get("rotation")) or 0),
            source_codec=data.get("source_codec") or None,
            source_audio_codec=data.get("source_audio_codec") or None,
            source_audio_bitrate=int(bitrate) if bitrate is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "duration": self.duration,
            "rotation": self.rotation,
            "source_codec": self.source_codec,
            "source_audio_codec": self.source_audio_codec,
            "source_audio_bitrate": self.source_audio_bitrate,
        }

    @property
    def is_vertical(self) -> bool:
        return self.width < self.height

    @property
    def reference_dimension(self) -> int:
        return self.width if self.is_vertical else self.height

    @property
    def total_pixels(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class StyleParams:
    font_size: int
    spacing: int
    margin_left: int
    margin_right: int
    margin_vertical: int
    alignment: int
    min_font_size: int
    max_font_size: int
    scale_factor: float


@dataclass(frozen=True)
class QualitySettings:
    crf: int
    preset: str
    tune: str
    video_codec: str
    audio_codec: str
    audio_bitrate: str | None
    qp: int | None = None
    hardware: bool = False

    @property
    def crf_or_qp(self) -> int:
        return self.qp if self.hardware and self.qp is not None else self.crf


@dataclass(frozen=True)
class HardwareCapability:
    available: bool
    probed_at: datetime
    encoder: str | None = None
    reason: str | None = None
