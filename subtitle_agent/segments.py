"""
segments.py - Ordered store of indexed source segments and their translations.

The orchestrator is the only writer during a run; user edits (remove,
glossary rename propagation) go through the same methods so the
index -> segment contract stays in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator

MISSING_SENTINEL = "[translation missing]"
ERROR_SENTINEL = "[translation error]"


@dataclass
class Segment:
    index: int
    source_text: str
    translated_text: str = MISSING_SENTINEL
    missing: bool = True

    def to_record(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "source_text": self.source_text,
            "translated_text": self.translated_text,
            "missing": self.missing,
        }


class SegmentStore:
    def __init__(self, segments: Iterable[Segment] = ()):
        self._segments: list[Segment] = []
        self._by_index: dict[int, Segment] = {}
        for segment in segments:
            self.add(segment)

    @classmethod
    def from_texts(cls, texts: Iterable[str], start: int = 1) -> "SegmentStore":
        return cls(Segment(index=i, source_text=text) for i, text in enumerate(texts, start=start))

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "SegmentStore":
        segments = []
        for record in records:
            translated = record.get("translated_text")
            missing = translated is None or bool(record.get("missing", False))
            if translated is None:
                translated = MISSING_SENTINEL
            segments.append(
                Segment(
                    index=int(record["index"]),
                    source_text=str(record.get("source_text", "")),
                    translated_text=translated,
                    missing=missing,
                )
            )
        return cls(segments)

    def to_records(self) -> list[dict[str, Any]]:
        return [segment.to_record() for segment in self._segments]

    def add(self, segment: Segment) -> None:
        if segment.index in self._by_index:
            raise ValueError(f"Duplicate segment index: {segment.index}")
        self._segments.append(segment)
        self._by_index[segment.index] = segment

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __contains__(self, index: object) -> bool:
        return index in self._by_index

    def get(self, index: int) -> Segment:
        try:
            return self._by_index[index]
        except KeyError:
            raise KeyError(f"No segment with index {index}") from None

    def indices(self) -> list[int]:
        return [segment.index for segment in self._segments]

    def neighbours(self, index: int) -> tuple[Segment | None, Segment | None]:
        """Return the segments immediately before and after ``index``."""
        position = self._segments.index(self.get(index))
        previous = self._segments[position - 1] if position > 0 else None
        following = self._segments[position + 1] if position + 1 < len(self._segments) else None
        return previous, following

    def set_translation(self, index: int, text: str) -> None:
        segment = self.get(index)
        segment.translated_text = text
        segment.missing = False

    def mark_missing(self, index: int, sentinel: str = MISSING_SENTINEL) -> None:
        segment = self.get(index)
        segment.translated_text = sentinel
        segment.missing = True

    def missing_segments(self) -> list[Segment]:
        return [segment for segment in self._segments if segment.missing]

    def missing_count(self) -> int:
        return sum(1 for segment in self._segments if segment.missing)

    def is_complete(self) -> bool:
        return bool(self._segments) and self.missing_count() == 0

    def replace_in_translations(self, old: str, new: str) -> int:
        """Literal substitution across accepted translations; returns segments changed."""
        if not old or old == new:
            return 0
        changed = 0
        for segment in self._segments:
            if segment.missing or not segment.translated_text:
                continue
            if old in segment.translated_text:
                segment.translated_text = segment.translated_text.replace(old, new)
                changed += 1
        return changed

    def remove(self, index: int) -> Segment:
        """Delete a segment and renumber the remainder 1..n in order."""
        segment = self.get(index)
        self._segments.remove(segment)
        for position, remaining in enumerate(self._segments, start=1):
            remaining.index = position
        self._by_index = {remaining.index: remaining for remaining in self._segments}
        return segment

    def clean_text(self) -> str:
        """Accepted translations joined by blank lines; missing segments are left out."""
        parts = [
            segment.translated_text.strip()
            for segment in self._segments
            if not segment.missing and segment.translated_text
        ]
        return "\n\n".join(part for part in parts if part)
