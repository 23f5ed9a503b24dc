"""
batching.py - Split an ordered segment sequence into bounded request windows.

Each window carries up to ``context_size`` neighbouring segments on either
side. Context segments are shown to the model for coherence only and are
never part of the window's translated items.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from subtitle_agent.segments import Segment


@dataclass
class Batch:
    items: list[Segment]
    pre_context: list[Segment] = field(default_factory=list)
    post_context: list[Segment] = field(default_factory=list)
    number: int = 1  # 1-based
    total: int = 1

    def indices(self) -> list[int]:
        return [segment.index for segment in self.items]

    def texts(self) -> list[str]:
        """Source texts of items and context, used for glossary relevance."""
        return [segment.source_text for segment in (*self.pre_context, *self.items, *self.post_context)]


def plan_batches(
    segments: Sequence[Segment],
    batch_size: int,
    context_size: int,
    context_source: Sequence[Segment] | None = None,
) -> list[Batch]:
    """
    Windows are cut from ``segments``. Context is read from ``context_source``
    (the full ordered sequence) when given, so a subset such as the missing
    segments still sees its real neighbours.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    if context_size < 0:
        raise ValueError("context_size must be >= 0")

    segments = list(segments)
    source = list(context_source) if context_source is not None else segments
    positions = {segment.index: position for position, segment in enumerate(source)}
    total = (len(segments) + batch_size - 1) // batch_size
    batches: list[Batch] = []

    for start in range(0, len(segments), batch_size):
        items = segments[start:start + batch_size]
        first = positions.get(items[0].index)
        last = positions.get(items[-1].index)
        if first is None or last is None:
            # Not part of the context source; fall back to the window's own sequence.
            source_seq, first, last = segments, start, start + len(items) - 1
        else:
            source_seq = source
        pre_context = source_seq[max(0, first - context_size):first] if context_size else []
        post_context = source_seq[last + 1:last + 1 + context_size] if context_size else []
        batches.append(
            Batch(
                items=items,
                pre_context=pre_context,
                post_context=post_context,
                number=len(batches) + 1,
                total=total,
            )
        )

    return batches
