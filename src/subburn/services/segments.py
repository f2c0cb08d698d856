"""
Caption segment parsing for subburn.

The editor hands us one text block per caption:

    0:01.0 - 0:03.5 [HIGHLIGHT]
    Hallo Welt

Responsibilities:
- Parse `M:SS.f - M:SS.f` headers with a strict pattern
- Carry seconds >= 60 into minutes without losing time
- Drop blocks with an empty body or a non-positive interval
- Tag highlight/static markers and index highlighted words

Does NOT:
- Re-time or split captions (the editor owns timing)
- Render anything (see services.subtitles)
"""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Iterable

from subburn.domain.segments import SubtitleSegment
from subburn.exceptions import NoValidSegmentsError
from subburn.utils.logging import get_logger

log = get_logger(__name__)

HEADER_RE = re.compile(
    r"^(\d{1,2}):(\d{2})\.(\d)\s*-\s*(\d{1,2}):(\d{2})\.(\d)"
    r"(?:\s*\[(HIGHLIGHT|STATIC)\])?$"
)
BLOCK_SPLIT_RE = re.compile(r"\n\s*\n")


def _to_seconds(minutes: str, seconds: str, tenths: str) -> float:
    mins = int(minutes)
    secs = int(seconds)
    if secs >= 60:
        mins += secs // 60
        secs %= 60
    # Tenths are kept integral until the end so 1:75.0 and 2:15.0 compare equal.
    return (mins * 600 + secs * 10 + int(tenths)) / 10


def _parse_block(block: str) -> SubtitleSegment | None:
    lines = [line.strip() for line in block.strip().split("\n")]
    if len(lines) < 2:
        return None
    match = HEADER_RE.match(lines[0])
    if not match:
        return None
    start = _to_seconds(match.group(1), match.group(2), match.group(3))
    end = _to_seconds(match.group(4), match.group(5), match.group(6))
    if start >= end:
        return None
    text = " ".join(line for line in lines[1:] if line).strip()
    if not text:
        return None
    marker = match.group(7)
    return SubtitleSegment(
        start_time=start,
        end_time=end,
        text=text,
        is_highlight=marker == "HIGHLIGHT",
        is_static=marker == "STATIC",
    )


def resolve_highlight_overlaps(segments: Iterable[SubtitleSegment]) -> list[SubtitleSegment]:
    """
    Clip overlapping highlighted segments and number the survivors.

    Expects segments sorted by start. An earlier highlight that overlaps the
    next one ends where the next one starts; if that leaves nothing, it is
    dropped. Non-highlighted segments pass through untouched.
    """
    ordered = list(segments)
    highlight_positions = [i for i, seg in enumerate(ordered) if seg.is_highlight]
    dropped: set[int] = set()
    for current, following in zip(highlight_positions, highlight_positions[1:]):
        seg = ordered[current]
        nxt = ordered[following]
        if seg.end_time > nxt.start_time:
            if nxt.start_time <= seg.start_time:
                dropped.add(current)
                continue
            ordered[current] = replace(seg, end_time=nxt.start_time)

    result: list[SubtitleSegment] = []
    word_index = 0
    for i, seg in enumerate(ordered):
        if i in dropped:
            continue
        if seg.is_highlight:
            seg = replace(seg, word_index=word_index)
            word_index += 1
        result.append(seg)
    return result


def parse_segments(raw: str) -> list[SubtitleSegment]:
    """Parse a caption text block into ordered, validated segments."""
    normalized = (raw or "").replace("\r\n", "\n").replace("\r", "\n")
    parsed = [
        seg
        for seg in (_parse_block(block) for block in BLOCK_SPLIT_RE.split(normalized))
        if seg is not None
    ]
    parsed.sort(key=lambda seg: seg.start_time)
    segments = resolve_highlight_overlaps(parsed)
    if not segments:
        raise NoValidSegmentsError()
    log.debug("Parsed %d subtitle segments", len(segments))
    return segments
