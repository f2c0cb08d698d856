from __future__ import annotations

from subburn.domain.job import ExportRequest
from subburn.domain.media import VideoMetadata
from subburn.domain.segments import SubtitleSegment
from subburn.services.segments import parse_segments
from subburn.services.styling import (
    StyleCalculator,
    asset_style,
    font_tier,
    scale_factor,
    text_density,
)

HD = VideoMetadata(width=1920, height=1080)


def _segments(text: str, count: int = 3) -> list[SubtitleSegment]:
    return [SubtitleSegment(float(i), float(i) + 1, text) for i in range(count)]


def _request(**kwargs) -> ExportRequest:  # noqa: ANN003
    return ExportRequest(upload_id="u1", subtitles="0:01.0 - 0:02.0\nx", **kwargs)


def test_hallo_welt_at_1080p() -> None:
    style = StyleCalculator().calculate(HD, parse_segments("0:01.0 - 0:03.5\nHallo Welt"))
    assert (style.min_font_size, style.max_font_size) == (45, 100)
    assert round(style.scale_factor, 2) == 1.32
    # base 59px scaled up by the short-text factor
    assert style.font_size == 77
    assert 45 <= style.font_size <= 100
    assert style.spacing == 97


def test_calculation_is_idempotent() -> None:
    segments = _segments("Ein etwas längerer Untertitel")
    calc = StyleCalculator()
    assert calc.calculate(HD, segments) == calc.calculate(HD, segments)


def test_font_size_non_increasing_as_text_grows() -> None:
    calc = StyleCalculator()
    sizes = []
    for words in range(1, 16):
        text = " ".join(["wort"] * words)
        sizes.append(calc.calculate(HD, _segments(text)).font_size)
    assert sizes == sorted(sizes, reverse=True)
    long_sizes = [
        calc.calculate(HD, _segments("x" * length)).font_size for length in range(40, 120, 10)
    ]
    assert len(set(long_sizes)) == 1


def test_long_text_shrinks_below_base() -> None:
    calc = StyleCalculator()
    base, _ = calc.base_font_size(HD)
    style = calc.calculate(HD, _segments(" ".join(["langeswort"] * 8)))
    assert style.font_size < base
    assert style.font_size >= 45


def test_vertical_video_uses_width_as_reference() -> None:
    vertical = VideoMetadata(width=2160, height=3840)
    style = StyleCalculator().calculate(vertical, _segments("Hallo"))
    assert (style.min_font_size, style.max_font_size) == (80, 180)
    assert 80 <= style.font_size <= 180


def test_small_video_clamps_to_tier_minimum() -> None:
    small = VideoMetadata(width=640, height=360)
    calc = StyleCalculator()
    base, tier = calc.base_font_size(small)
    assert base == tier.min_font_size == 32
    style = calc.calculate(small, _segments("x" * 60))
    assert style.font_size >= 32
    assert style.spacing >= 40


def test_empty_segments_use_default_density() -> None:
    assert text_density([]) == (30.0, 5.0)
    assert StyleCalculator().calculate(HD, []).scale_factor == scale_factor(30.0, 5.0)


def test_tiers_by_reference_dimension() -> None:
    assert font_tier(2160).min_font_size == 80
    assert font_tier(1439).min_font_size == 45
    assert font_tier(719).max_font_size == 65


def test_placement_by_mode_and_height_preference() -> None:
    calc = StyleCalculator()
    segments = _segments("Hallo")
    word = calc.calculate(HD, segments, _request(subtitle_preference="word"))
    low = calc.calculate(HD, segments, _request(height_preference="low"))
    standard = calc.calculate(HD, segments, _request())
    assert (word.margin_vertical, word.alignment) == (540, 5)
    assert (low.margin_vertical, low.alignment) == (216, 2)
    assert (standard.margin_vertical, standard.alignment) == (356, 2)
    assert standard.margin_left == standard.margin_right == 10


def test_asset_style_halves_font_size() -> None:
    style = StyleCalculator().calculate(HD, parse_segments("0:01.0 - 0:03.5\nHallo Welt"))
    fields = asset_style(style)
    assert fields["font_size"] == 38
    assert fields["margin_v"] == style.margin_vertical
    assert fields["alignment"] == 2
