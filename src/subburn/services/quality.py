"""
Encoder and quality selection.

Responsibilities:
- Map the source resolution to a CRF/preset/audio-bitrate tier
- Trade quality for speed on very large sources
- Choose VAAPI or software encoders and translate CRF to QP
- Copy the audio stream when it is already good enough

Does NOT:
- Probe hardware (see services.hardware)
- Build the ffmpeg command (see utils.ffmpeg)
"""

from __future__ import annotations

from dataclasses import dataclass

from subburn.domain.media import QualitySettings, VideoMetadata
from subburn.utils.logging import get_logger

log = get_logger(__name__)

TUNE = "film"
LARGE_FILE_PRESET = "veryfast"
LARGE_FILE_CRF_PENALTY = 2
AUDIO_COPY_MIN_KBPS = 128


@dataclass(frozen=True)
class QualityTier:
    threshold: int
    crf: int
    preset: str
    audio_bitrate: str


QUALITY_TIERS: tuple[QualityTier, ...] = (
    QualityTier(2160, 18, "slow", "256k"),
    QualityTier(1440, 19, "slow", "256k"),
    QualityTier(1080, 20, "medium", "192k"),
    QualityTier(720, 21, "medium", "128k"),
    QualityTier(0, 22, "slower", "128k"),
)


def quality_tier(reference_dimension: int) -> QualityTier:
    for tier in QUALITY_TIERS:
        if reference_dimension >= tier.threshold:
            return tier
    return QUALITY_TIERS[-1]


def crf_to_qp(crf: int) -> int:
    """VAAPI has no CRF; QP two steps above CRF lands at a similar bitrate."""
    return max(0, min(51, crf + 2))


def _is_4k_hevc(metadata: VideoMetadata) -> bool:
    return metadata.reference_dimension >= 2160 and (metadata.source_codec or "").lower() in {
        "hevc",
        "h265",
    }


def vaapi_encoder(metadata: VideoMetadata) -> str:
    return "hevc_vaapi" if _is_4k_hevc(metadata) else "h264_vaapi"


def software_encoder(metadata: VideoMetadata) -> str:
    return "libx265" if _is_4k_hevc(metadata) else "libx264"


def can_copy_audio(metadata: VideoMetadata) -> bool:
    codec = (metadata.source_audio_codec or "").lower()
    bitrate = metadata.source_audio_bitrate or 0
    return codec == "aac" and bitrate >= AUDIO_COPY_MIN_KBPS


def select_quality(
    metadata: VideoMetadata,
    *,
    file_size_bytes: int = 0,
    hardware_available: bool = False,
    large_file_mb: int = 200,
) -> QualitySettings:
    tier = quality_tier(metadata.reference_dimension)
    large_file = file_size_bytes > large_file_mb * 1024 * 1024

    crf = tier.crf
    preset = tier.preset
    if large_file:
        crf += LARGE_FILE_CRF_PENALTY
        preset = LARGE_FILE_PRESET

    copy_audio = can_copy_audio(metadata)
    audio_codec = "copy" if copy_audio else "aac"
    audio_bitrate = None if copy_audio else tier.audio_bitrate

    if hardware_available:
        settings = QualitySettings(
            crf=crf,
            preset=preset,
            tune=TUNE,
            video_codec=vaapi_encoder(metadata),
            audio_codec=audio_codec,
            audio_bitrate=audio_bitrate,
            qp=crf_to_qp(crf),
            hardware=True,
        )
    else:
        settings = QualitySettings(
            crf=crf,
            preset=preset,
            tune=TUNE,
            video_codec=software_encoder(metadata),
            audio_codec=audio_codec,
            audio_bitrate=audio_bitrate,
        )

    log.debug(
        "Quality for %sp (large=%s hw=%s): %s crf=%s preset=%s audio=%s",
        metadata.reference_dimension,
        large_file,
        hardware_available,
        settings.video_codec,
        settings.crf_or_qp,
        settings.preset,
        audio_bitrate or "copy",
    )
    return settings
