"""
Subtitle asset rendering (ASS).

Responsibilities:
- Write an ASS file sized to the source frame (PlayResX/PlayResY)
- Apply a named style preset plus the computed font size and margins
- Balance long manual captions over two lines
- Stage the caption font next to the asset so libass finds it

Does NOT:
- Decide font size or placement (see services.styling)
- Burn anything in (see utils.ffmpeg / services.encoder)
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol, Sequence

from subburn.domain.job import ExportRequest
from subburn.domain.media import StyleParams, VideoMetadata
from subburn.domain.segments import SubtitleSegment
from subburn.services.styling import asset_style
from subburn.utils.logging import get_logger

log = get_logger(__name__)

UTF8_BOM = "\ufeff"
DEFAULT_FONT_NAME = "Arial"
THIN_SPACE = "\u2009"


@dataclass(frozen=True)
class SubtitleAsset:
    path: Path
    font_dir: Path | None
    temp_files: tuple[Path, ...] = field(default_factory=tuple)


class SubtitleRenderer(Protocol):
    def render(
        self,
        segments: Sequence[SubtitleSegment],
        style: StyleParams,
        metadata: VideoMetadata,
        request: ExportRequest,
        temp_dir: Path,
    ) -> SubtitleAsset: ...


@dataclass(frozen=True)
class AssStylePreset:
    primary_colour: str = "&H00FFFFFF"
    secondary_colour: str = "&H00FFFFFF"
    outline_colour: str = "&H00000000"
    back_colour: str = "&H80000000"
    border_style: int = 3
    outline: int = 2
    shadow: int = 0
    spacing: int = 0
    bold: int = 0
    padded: bool = False


STYLE_PRESETS: dict[str, AssStylePreset] = {
    # Opaque box behind the text.
    "standard": AssStylePreset(back_colour="&HCC000000", outline=1, spacing=1, padded=True),
    "clean": AssStylePreset(
        back_colour="&H00000000", outline_colour="&H00000000", border_style=0, outline=0
    ),
    "shadow": AssStylePreset(
        back_colour="&H00000000", outline_colour="&H80000000", border_style=0, outline=0, shadow=3
    ),
}


def style_preset(name: str | None) -> AssStylePreset:
    return STYLE_PRESETS.get(name or "standard", STYLE_PRESETS["standard"])


def format_ass_time(seconds: float) -> str:
    total_cs = int(seconds * 100 + 0.5)
    cs = total_cs % 100
    total_s = total_cs // 100
    s = total_s % 60
    total_m = total_s // 60
    m = total_m % 60
    h = total_m // 60
    return f"{h}:{m:02d}:{s:02d}.{cs:02d}"


def escape_ass_text(text: str) -> str:
    return (
        text.replace("\\", r"\\")
        .replace("{", r"\{")
        .replace("}", r"\}")
        .replace("\n", r"\N")
    )


def balance_lines(text: str, *, max_chars: int = 30, max_words: int = 3) -> str:
    """
    Split a long caption into two lines of similar length.

    Captions of more than `max_chars` characters or more than `max_words`
    words break at the word boundary closest to the middle. Splits that
    would leave a line under three characters are skipped.
    """
    words = text.split(" ")
    if len(text) <= max_chars and len(words) <= max_words:
        return text
    if len(words) <= 2:
        return text

    target = len(text) / 2
    best_index, best_distance = -1, float("inf")
    chars = 0
    for i, word in enumerate(words[:-1]):
        chars += len(word) + 1
        distance = abs(chars - target)
        if distance < best_distance:
            best_index, best_distance = i + 1, distance

    first = " ".join(words[:best_index])
    second = " ".join(words[best_index:])
    if len(first) < 3 or len(second) < 3:
        return text
    return f"{first}\n{second}"


def build_ass_document(
    segments: Sequence[SubtitleSegment],
    style: StyleParams,
    metadata: VideoMetadata,
    *,
    preset: AssStylePreset,
    font_name: str = DEFAULT_FONT_NAME,
    word_mode: bool = False,
) -> str:
    fields = asset_style(style)
    lines = [
        "[Script Info]",
        "ScriptType: v4.00+",
        "WrapStyle: 0",
        "ScaledBorderAndShadow: yes",
        f"PlayResX: {metadata.width}",
        f"PlayResY: {metadata.height}",
        "",
        "[V4+ Styles]",
        "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, "
        "OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, "
        "ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, "
        "Alignment, MarginL, MarginR, MarginV, Encoding",
        (
            "Style: Default,"
            f"{font_name},{fields['font_size']},"
            f"{preset.primary_colour},{preset.secondary_colour},"
            f"{preset.outline_colour},{preset.back_colour},"
            f"{preset.bold},0,0,0,100,100,{preset.spacing},0,"
            f"{preset.border_style},{preset.outline},{preset.shadow},"
            f"{fields['alignment']},{fields['margin_l']},{fields['margin_r']},{fields['margin_v']},1"
        ),
        "",
        "[Events]",
        "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text",
    ]
    for seg in segments:
        text = seg.text if word_mode else balance_lines(seg.text)
        if preset.padded:
            text = f"{THIN_SPACE}{text}{THIN_SPACE}"
        lines.append(
            f"Dialogue: 0,{format_ass_time(seg.start_time)},{format_ass_time(seg.end_time)},"
            f"Default,,0,0,0,,{escape_ass_text(text)}"
        )
    return "\n".join(lines) + "\n"


class AssSubtitleRenderer:
    """Writes `subtitles.ass` (UTF-8 with BOM) and stages the font into the job's temp dir."""

    def __init__(self, *, font_path: str | Path | None = None, font_name: str | None = None) -> None:
        self.font_path = Path(font_path).expanduser() if font_path else None
        self.font_name = font_name or (self.font_path.stem if self.font_path else DEFAULT_FONT_NAME)

    def render(
        self,
        segments: Sequence[SubtitleSegment],
        style: StyleParams,
        metadata: VideoMetadata,
        request: ExportRequest,
        temp_dir: Path,
    ) -> SubtitleAsset:
        temp_dir.mkdir(parents=True, exist_ok=True)
        document = build_ass_document(
            segments,
            style,
            metadata,
            preset=style_preset(request.style_preference),
            font_name=self.font_name,
            word_mode=request.word_mode,
        )
        ass_path = temp_dir / "subtitles.ass"
        ass_path.write_text(UTF8_BOM + document, encoding="utf-8")
        asset = SubtitleAsset(path=ass_path, font_dir=None, temp_files=(ass_path,))

        if self.font_path is not None and self.font_path.is_file():
            font_dir = temp_dir / "fonts"
            font_dir.mkdir(exist_ok=True)
            staged = Path(shutil.copy2(self.font_path, font_dir / self.font_path.name))
            asset = replace(asset, font_dir=font_dir, temp_files=(ass_path, staged))
        elif self.font_path is not None:
            log.warning("Font %s not found; falling back to system fonts", self.font_path)

        log.debug("Rendered %d subtitle events to %s", len(segments), ass_path)
        return asset
