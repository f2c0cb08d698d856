from __future__ import annotations

import pytest

from subburn.domain.segments import SubtitleSegment
from subburn.exceptions import InputError, NoValidSegmentsError
from subburn.services.segments import parse_segments, resolve_highlight_overlaps


def test_parses_single_block() -> None:
    segments = parse_segments("0:01.0 - 0:03.5\nHallo Welt")
    assert segments == [SubtitleSegment(start_time=1.0, end_time=3.5, text="Hallo Welt")]


def test_multiline_body_is_joined_with_spaces() -> None:
    segments = parse_segments("0:01.0 - 0:03.5\nHallo\nWelt\n")
    assert segments[0].text == "Hallo Welt"


def test_minute_overflow_matches_normalized_interval() -> None:
    overflow = parse_segments("1:75.0 - 1:80.0\nText")
    normal = parse_segments("2:15.0 - 2:20.0\nText")
    assert (overflow[0].start_time, overflow[0].end_time) == (135.0, 140.0)
    assert (overflow[0].start_time, overflow[0].end_time) == (
        normal[0].start_time,
        normal[0].end_time,
    )


def test_output_sorted_and_intervals_positive() -> None:
    raw = "\n\n".join(
        [
            "0:09.0 - 0:10.0\nlast",
            "0:01.0 - 0:02.0\nfirst",
            "0:05.0 - 0:04.0\nbackwards",
            "0:05.0 - 0:06.0\nmiddle",
            "0:07.0 - 0:07.0\nzero length",
        ]
    )
    segments = parse_segments(raw)
    assert [s.text for s in segments] == ["first", "middle", "last"]
    assert all(s.start_time < s.end_time for s in segments)
    starts = [s.start_time for s in segments]
    assert starts == sorted(starts)


def test_malformed_headers_and_empty_bodies_are_dropped() -> None:
    raw = "\n\n".join(
        [
            "0:1.0 - 0:02.0\nbad seconds",
            "00:01 - 00:02\nno tenths",
            "0:03.0 - 0:04.0\n   ",
            "0:05.0 - 0:06.0\nkept",
        ]
    )
    assert [s.text for s in parse_segments(raw)] == ["kept"]


def test_markers_set_flags() -> None:
    raw = "0:01.0 - 0:02.0 [HIGHLIGHT]\nwow\n\n0:03.0 - 0:04.0 [STATIC]\nstill"
    highlight, static = parse_segments(raw)
    assert highlight.is_highlight and not highlight.is_static
    assert highlight.word_index == 0
    assert static.is_static and not static.is_highlight
    assert static.word_index is None


def test_windows_line_endings() -> None:
    segments = parse_segments("0:01.0 - 0:02.0\r\nHallo\r\n\r\n0:03.0 - 0:04.0\r\nWelt")
    assert [s.text for s in segments] == ["Hallo", "Welt"]


def test_empty_result_raises_input_error() -> None:
    with pytest.raises(NoValidSegmentsError) as info:
        parse_segments("no timestamps here")
    assert isinstance(info.value, InputError)
    assert info.value.message == "No valid subtitle segments found"


def test_overlapping_highlights_are_clipped() -> None:
    raw = "0:01.0 - 0:03.0 [HIGHLIGHT]\none\n\n0:02.0 - 0:04.0 [HIGHLIGHT]\ntwo"
    first, second = parse_segments(raw)
    assert first.end_time == 2.0
    assert second.start_time == 2.0
    assert (first.word_index, second.word_index) == (0, 1)


def test_highlight_clipped_to_nothing_is_dropped() -> None:
    segments = resolve_highlight_overlaps(
        [
            SubtitleSegment(1.0, 3.0, "a", is_highlight=True),
            SubtitleSegment(1.0, 2.0, "b", is_highlight=True),
            SubtitleSegment(5.0, 6.0, "c", is_highlight=True),
        ]
    )
    assert [s.text for s in segments] == ["b", "c"]
    assert [s.word_index for s in segments] == [0, 1]
    highlights = [s for s in segments if s.is_highlight]
    for a, b in zip(highlights, highlights[1:]):
        assert not a.overlaps(b)


def test_plain_segments_may_overlap() -> None:
    raw = "0:01.0 - 0:03.0\none\n\n0:02.0 - 0:04.0\ntwo"
    first, second = parse_segments(raw)
    assert first.end_time == 3.0
    assert second.start_time == 2.0
