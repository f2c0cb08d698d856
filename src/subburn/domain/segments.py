from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SubtitleSegment:
    start_time: float
    end_time: float
    text: str
    is_highlight: bool = False
    is_static: bool = False
    word_index: int | None = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def word_count(self) -> int:
        return len(self.text.split(" "))

    def overlaps(self, other: "SubtitleSegment") -> bool:
        return self.start_time < other.end_time and other.start_time < self.end_time
