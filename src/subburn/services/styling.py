"""
Resolution- and density-aware subtitle styling.

Font size starts from a per-resolution tier, gets nudged by total pixel
count, then scaled by how dense the captions are: short captions get bigger
type, long captions get smaller type so they do not overflow the frame.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from subburn.domain.job import ExportRequest
from subburn.domain.media import StyleParams, VideoMetadata
from subburn.domain.segments import SubtitleSegment
from subburn.utils.logging import get_logger

log = get_logger(__name__)

REFERENCE_AREA = 1920 * 1080
PIXEL_FACTOR_CAP = 1.4

MIN_SPACING = 40
SPACING_CAP_RATIO = 1.25

SHORT_CHARS, LONG_CHARS = 20, 40
SHORT_WORDS, LONG_WORDS = 3, 7
CHAR_BOOST, CHAR_SHRINK = 1.35, 0.95
WORD_BOOST, WORD_SHRINK = 1.25, 0.95
CHAR_WEIGHT, WORD_WEIGHT = 0.7, 0.3

DEFAULT_AVG_CHARS = 30.0
DEFAULT_AVG_WORDS = 5.0

ASS_SIDE_MARGIN = 10


@dataclass(frozen=True)
class FontTier:
    threshold: int
    min_font_size: int
    max_font_size: int
    vertical_percentage: float
    horizontal_percentage: float

    def base_percentage(self, vertical: bool) -> float:
        return self.vertical_percentage if vertical else self.horizontal_percentage


FONT_TIERS: tuple[FontTier, ...] = (
    FontTier(2160, 80, 180, 0.070, 0.065),
    FontTier(1440, 60, 140, 0.065, 0.060),
    FontTier(1080, 45, 100, 0.060, 0.055),
    FontTier(720, 35, 70, 0.055, 0.050),
    FontTier(0, 32, 65, 0.065, 0.060),
)


def font_tier(reference_dimension: int) -> FontTier:
    for tier in FONT_TIERS:
        if reference_dimension >= tier.threshold:
            return tier
    return FONT_TIERS[-1]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _interpolate(value: float, short: float, long: float, boost: float, shrink: float) -> float:
    if value <= short:
        return boost
    if value >= long:
        return shrink
    position = (value - short) / (long - short)
    return boost - (boost - shrink) * position


def scale_factor(avg_chars: float, avg_words: float) -> float:
    """Blend of the char-length and word-count factors (70/30)."""
    char_factor = _interpolate(avg_chars, SHORT_CHARS, LONG_CHARS, CHAR_BOOST, CHAR_SHRINK)
    word_factor = _interpolate(avg_words, SHORT_WORDS, LONG_WORDS, WORD_BOOST, WORD_SHRINK)
    return char_factor * CHAR_WEIGHT + word_factor * WORD_WEIGHT


def text_density(segments: Sequence[SubtitleSegment]) -> tuple[float, float]:
    if not segments:
        return DEFAULT_AVG_CHARS, DEFAULT_AVG_WORDS
    total_chars = sum(len(seg.text) for seg in segments)
    total_words = sum(seg.word_count for seg in segments)
    return total_chars / len(segments), total_words / len(segments)


class StyleCalculator:
    """Derives font size, spacing and margins for one export. Pure and idempotent."""

    def base_font_size(self, metadata: VideoMetadata) -> tuple[int, FontTier]:
        reference = metadata.reference_dimension
        tier = font_tier(reference)
        pixel_factor = math.log10(metadata.total_pixels / REFERENCE_AREA) * 0.15 + 1
        adjusted = tier.base_percentage(metadata.is_vertical) * min(pixel_factor, PIXEL_FACTOR_CAP)
        size = int(_clamp(math.floor(reference * adjusted), tier.min_font_size, tier.max_font_size))
        return size, tier

    def calculate(
        self,
        metadata: VideoMetadata,
        segments: Sequence[SubtitleSegment],
        request: ExportRequest | None = None,
    ) -> StyleParams:
        font_size, tier = self.base_font_size(metadata)

        max_spacing = font_size * SPACING_CAP_RATIO
        spacing = _clamp(font_size * (1.5 + (1 - font_size / 48)), MIN_SPACING, max_spacing)

        avg_chars, avg_words = text_density(segments)
        factor = scale_factor(avg_chars, avg_words)

        final_font = int(
            _clamp(math.floor(font_size * factor), tier.min_font_size, tier.max_font_size)
        )
        scaled_max_spacing = max_spacing * (factor if factor > 1 else 1)
        final_spacing = int(_clamp(math.floor(spacing * factor), MIN_SPACING, scaled_max_spacing))

        margin_vertical, alignment = self._placement(metadata, request)

        log.debug(
            "Style for %sx%s: avg_chars=%.1f scale=%.2f font=%spx spacing=%spx",
            metadata.width,
            metadata.height,
            avg_chars,
            factor,
            final_font,
            final_spacing,
        )
        return StyleParams(
            font_size=final_font,
            spacing=final_spacing,
            margin_left=ASS_SIDE_MARGIN,
            margin_right=ASS_SIDE_MARGIN,
            margin_vertical=margin_vertical,
            alignment=alignment,
            min_font_size=tier.min_font_size,
            max_font_size=tier.max_font_size,
            scale_factor=factor,
        )

    @staticmethod
    def _placement(metadata: VideoMetadata, request: ExportRequest | None) -> tuple[int, int]:
        if request is not None and request.word_mode:
            return math.floor(metadata.height * 0.50), 5
        if request is not None and request.height_preference == "low":
            return math.floor(metadata.height * 0.20), 2
        return math.floor(metadata.height * 0.33), 2


def asset_style(style: StyleParams) -> dict[str, int]:
    """
    Style fields for the subtitle asset.

    libass renders larger than the pixel sizes above, so the font size is
    halved for visual parity with the editor preview.
    """
    return {
        "font_size": style.font_size // 2,
        "margin_l": style.margin_left,
        "margin_r": style.margin_right,
        "margin_v": style.margin_vertical,
        "alignment": style.alignment,
    }
