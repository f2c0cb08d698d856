from __future__ import annotations

import json
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from subburn.domain.media import QualitySettings, VideoMetadata
from subburn.exceptions import ConfigurationError
from subburn.utils.checks import require_binary


def ensure_ffmpeg() -> None:
    require_binary("ffmpeg")


def _escape_filter_path(value: str) -> str:
    return (
        value.replace("\\", r"\\")
        .replace(":", r"\:")
        .replace(",", r"\,")
        .replace("'", r"\'")
    )


def build_subtitles_filter(subtitles_path: str | Path, *, fonts_dir: str | Path | None = None) -> str:
    value = f"subtitles={_escape_filter_path(str(subtitles_path))}"
    if fonts_dir is not None:
        value += f":fontsdir={_escape_filter_path(str(fonts_dir))}"
    return value


def _even(value: float) -> int:
    return max(2, int(round(value / 2)) * 2)


def scale_filter(metadata: VideoMetadata, max_resolution: int | None) -> str | None:
    """Downscale so the reference dimension fits `max_resolution`; dimensions stay even."""
    if not max_resolution or metadata.reference_dimension <= max_resolution:
        return None
    ratio = max_resolution / metadata.reference_dimension
    return f"scale={_even(metadata.width * ratio)}:{_even(metadata.height * ratio)}"


def build_video_filters(
    subtitles_path: str | Path,
    *,
    fonts_dir: str | Path | None = None,
    scale: str | None = None,
    hardware: bool = False,
) -> str:
    filters: list[str] = []
    if hardware:
        # Frames arrive as VAAPI surfaces; libass draws on system memory.
        filters += ["hwdownload", "format=nv12"]
    if scale:
        filters.append(scale)
    filters.append(build_subtitles_filter(subtitles_path, fonts_dir=fonts_dir))
    if hardware:
        filters += ["format=nv12", "hwupload"]
    return ",".join(filters)


def vaapi_input_options(device: str) -> list[str]:
    return [
        "-init_hw_device",
        f"vaapi=va:{device}",
        "-filter_hw_device",
        "va",
        "-hwaccel",
        "vaapi",
        "-hwaccel_device",
        "va",
        "-hwaccel_output_format",
        "vaapi",
    ]


def video_codec_options(quality: QualitySettings, metadata: VideoMetadata) -> list[str]:
    if quality.hardware:
        return ["-c:v", quality.video_codec, "-qp", str(quality.crf_or_qp)]

    high_res = metadata.reference_dimension >= 1440
    options = [
        "-c:v",
        quality.video_codec,
        "-preset",
        quality.preset,
        "-crf",
        str(quality.crf),
        "-tune",
        quality.tune,
    ]
    if quality.video_codec == "libx264":
        options += [
            "-profile:v",
            "high" if high_res else "main",
            "-level",
            "4.1" if high_res else "4.0",
            "-x264-params",
            "aq-mode=3",
        ]
    options += ["-pix_fmt", "yuv420p"]
    return options


def audio_codec_options(quality: QualitySettings) -> list[str]:
    options = ["-c:a", quality.audio_codec]
    if quality.audio_codec != "copy" and quality.audio_bitrate:
        options += ["-b:a", quality.audio_bitrate]
    return options


def build_export_cmd(
    source: str | Path,
    out: str | Path,
    *,
    subtitles_path: str | Path,
    quality: QualitySettings,
    metadata: VideoMetadata,
    fonts_dir: str | Path | None = None,
    max_resolution: int | None = None,
    vaapi_device: str | None = None,
) -> list[str]:
    """Full burn-in command. Progress goes to stdout as key=value lines."""
    cmd: list[str] = [
        "ffmpeg",
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-nostats",
        "-progress",
        "pipe:1",
    ]
    if quality.hardware:
        if not vaapi_device:
            raise ConfigurationError("A VAAPI device is required for hardware encoding")
        cmd += vaapi_input_options(vaapi_device)
    cmd += ["-i", str(source)]

    cmd += [
        "-vf",
        build_video_filters(
            subtitles_path,
            fonts_dir=fonts_dir,
            scale=scale_filter(metadata, max_resolution),
            hardware=quality.hardware,
        ),
    ]
    cmd += video_codec_options(quality, metadata)
    cmd += audio_codec_options(quality)
    cmd += ["-movflags", "+faststart", "-avoid_negative_ts", "make_zero"]
    if metadata.rotation:
        cmd += ["-metadata:s:v:0", f"rotate={metadata.rotation}"]
    cmd.append(str(out))
    return cmd


def build_hw_probe_cmd(device: str, encoder: str = "h264_vaapi") -> list[str]:
    """One synthetic frame through the VAAPI encoder, discarded."""
    return [
        "ffmpeg",
        "-hide_banner",
        "-loglevel",
        "error",
        "-vaapi_device",
        device,
        "-f",
        "lavfi",
        "-i",
        "color=black:size=256x256:rate=30",
        "-frames:v",
        "1",
        "-vf",
        "format=nv12,hwupload",
        "-c:v",
        encoder,
        "-f",
        "null",
        "-",
    ]


@dataclass(frozen=True)
class ProgressSample:
    out_time: float
    percent: float
    speed: float | None
    time_remaining: float | None
    timemark: str | None
    finished: bool = False


def parse_timemark(value: str) -> float | None:
    """`HH:MM:SS.micro` as printed in `out_time`."""
    try:
        hours, minutes, seconds = value.strip().split(":")
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    except ValueError:
        return None


def _parse_speed(value: str) -> float | None:
    value = value.strip().rstrip("x")
    try:
        speed = float(value)
    except ValueError:
        return None
    return speed if speed > 0 else None


class ProgressParser:
    """
    Folds `-progress pipe:1` key=value lines into samples.

    ffmpeg prints one block per update terminated by `progress=continue` or
    `progress=end`; a sample is emitted at each terminator.
    """

    def __init__(self, duration: float | None) -> None:
        self.duration = duration if duration and duration > 0 else None
        self._fields: dict[str, str] = {}

    def feed(self, line: str) -> ProgressSample | None:
        line = line.strip()
        if "=" not in line:
            return None
        key, value = line.split("=", 1)
        if key != "progress":
            self._fields[key] = value
            return None
        sample = self._sample(finished=value == "end")
        self._fields = {}
        return sample

    def _sample(self, *, finished: bool) -> ProgressSample | None:
        out_time = self._out_time()
        if out_time is None and not finished:
            return None
        out_time = out_time or 0.0
        speed = _parse_speed(self._fields.get("speed", ""))
        percent = 0.0
        remaining = None
        if self.duration:
            percent = min(100.0, out_time / self.duration * 100)
            if speed:
                remaining = max(0.0, (self.duration - out_time) / speed)
        if finished:
            percent = 100.0
            remaining = 0.0
        return ProgressSample(
            out_time=out_time,
            percent=percent,
            speed=speed,
            time_remaining=remaining,
            timemark=self._fields.get("out_time"),
            finished=finished,
        )

    def _out_time(self) -> float | None:
        # out_time_ms is microseconds too, despite the name.
        for key in ("out_time_us", "out_time_ms"):
            raw = self._fields.get(key)
            if raw and raw.lstrip("-").isdigit():
                return max(0.0, int(raw) / 1_000_000)
        raw = self._fields.get("out_time")
        if raw:
            return parse_timemark(raw)
        return None


def _parse_int(value) -> int | None:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _rotation(stream: dict) -> int:
    tags = stream.get("tags") or {}
    rotation = _parse_int(tags.get("rotate"))
    if rotation is not None:
        return rotation % 360
    for side in stream.get("side_data_list") or []:
        rotation = _parse_int(side.get("rotation"))
        if rotation is not None:
            return rotation % 360
    return 0


def probe_media(path: str | Path) -> dict | None:
    ffprobe = shutil.which("ffprobe")
    if not ffprobe:
        return None
    proc = subprocess.run(
        [
            ffprobe,
            "-v",
            "error",
            "-show_format",
            "-show_streams",
            "-of",
            "json",
            str(path),
        ],
        capture_output=True,
        text=True,
    )
    if proc.returncode != 0:
        return None
    try:
        return json.loads(proc.stdout)
    except json.JSONDecodeError:
        return None


def probe_video_metadata(path: str | Path) -> VideoMetadata:
    """Metadata for the export; unknown fields fall back to VideoMetadata defaults."""
    data = probe_media(path) or {}
    fields: dict = {"duration": data.get("format", {}).get("duration")}
    for stream in data.get("streams", []):
        if stream.get("codec_type") == "video" and "width" not in fields:
            fields.update(
                width=stream.get("width"),
                height=stream.get("height"),
                rotation=_rotation(stream),
                source_codec=stream.get("codec_name"),
            )
        elif stream.get("codec_type") == "audio" and "source_audio_codec" not in fields:
            bitrate = _parse_int(stream.get("bit_rate"))
            fields.update(
                source_audio_codec=stream.get("codec_name"),
                source_audio_bitrate=bitrate // 1000 if bitrate else None,
            )
    return VideoMetadata.from_mapping(fields)
