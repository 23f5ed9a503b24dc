"""
parser.py - Turn free-text model output back into a strict index -> text map.

Output grammar:
    [12] translated text, possibly continuing
    on following lines until the next marker
    ### Proper Nouns:
    {"Rome": "罗马"}

Markers are located with a position-agnostic scan. A marker that starts a
line (only whitespace, or an echoed context sentinel, before it) opens a new
segment. A marker found in the middle of a line stays part of the current
segment, which is reported as an embedded-marker anomaly, and its index is
also captured from the text that follows it when no line-anchored marker
supplies that index. Echoed prompt section headers are dropped first.
Nothing here raises on malformed text: structural defects come back as ``Anomaly`` records.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Iterable

from subtitle_agent.agents.prompts import (
    CONTEXT_SENTINEL,
    POST_CONTEXT_HEADER,
    PRE_CONTEXT_HEADER,
    TERMINOLOGY_SENTINEL,
    TRANSLATE_HEADER,
)

MISSING_INDEX = "missing-index"
DUPLICATE_INDEX = "duplicate-index"
EXTRA_INDEX = "extra-index"
EMBEDDED_MARKER = "embedded-marker"

MARKER_RE = re.compile(r"\[(\d+)\]")
_JSON_PAIR_RE = re.compile(r'"((?:[^"\\\n]|\\.)*)"\s*:\s*"((?:[^"\\\n]|\\.)*)"')
_ECHOED_HEADER_RE = re.compile(
    r"^[ \t]*(?:"
    + "|".join(
        [
            re.escape(PRE_CONTEXT_HEADER),
            re.escape(POST_CONTEXT_HEADER),
            re.escape(TRANSLATE_HEADER).replace(re.escape("{count}"), r"\d+"),
        ]
    )
    + r")[ \t]*(?:\n|$)",
    re.MULTILINE,
)


@dataclass
class Anomaly:
    kind: str
    index: int | None = None
    content: str | None = None

    def describe(self) -> str:
        label = f"{self.kind} [{self.index}]" if self.index is not None else self.kind
        if self.content:
            preview = self.content if len(self.content) <= 60 else self.content[:57] + "..."
            return f"{label}: {preview!r}"
        return label


@dataclass
class ParseResult:
    translations: dict[int, str] = field(default_factory=dict)
    glossary_delta: dict[str, str] = field(default_factory=dict)
    anomalies: list[Anomaly] = field(default_factory=list)


def split_regions(raw: str) -> tuple[str, str]:
    """Split output into (translation region, terminology region)."""
    position = raw.find(TERMINOLOGY_SENTINEL)
    if position == -1:
        return raw, ""
    return raw[:position], raw[position + len(TERMINOLOGY_SENTINEL):]


def _anchor_boundary(text: str, position: int) -> int | None:
    """Line start offset if the marker at ``position`` opens a line, else None."""
    line_start = text.rfind("\n", 0, position) + 1
    prefix = text[line_start:position].strip()
    if prefix == "" or prefix == CONTEXT_SENTINEL:
        return line_start
    return None


def _strip_marker(text: str) -> str:
    """Drop the leading marker token and at most one following space."""
    match = MARKER_RE.match(text)
    content = text[match.end():] if match else text
    if content.startswith(" "):
        content = content[1:]
    return content.strip()


def _drop_echoed_headers(region: str) -> str:
    """Remove prompt section headers the model repeated back."""
    return _ECHOED_HEADER_RE.sub("", region)


def _inline_markers(segment_text: str) -> list[tuple[int, str]]:
    """(index, content) for each marker after the leading one in a captured segment."""
    matches = list(MARKER_RE.finditer(segment_text))[1:]
    found = []
    for position, match in enumerate(matches):
        end = matches[position + 1].start() if position + 1 < len(matches) else len(segment_text)
        found.append((int(match.group(1)), _strip_marker(segment_text[match.start():end])))
    return found


def parse_translations(region: str) -> tuple[dict[int, str], list[Anomaly]]:
    region = _drop_echoed_headers(region)
    anchors: list[tuple[int, int, int]] = []  # (boundary, marker start, index)
    for match in MARKER_RE.finditer(region):
        boundary = _anchor_boundary(region, match.start())
        if boundary is not None:
            anchors.append((boundary, match.start(), int(match.group(1))))

    translations: dict[int, str] = {}
    anomalies: list[Anomaly] = []
    inline: list[tuple[int, str]] = []
    for position, (_, marker_start, index) in enumerate(anchors):
        end = anchors[position + 1][0] if position + 1 < len(anchors) else len(region)
        segment_text = region[marker_start:end]
        content = _strip_marker(segment_text)

        if MARKER_RE.search(content):
            anomalies.append(Anomaly(EMBEDDED_MARKER, index, content))
            inline.extend(_inline_markers(segment_text))
        if index in translations:
            anomalies.append(Anomaly(DUPLICATE_INDEX, index, content))
        translations[index] = content

    # Two markers on one line: the trailing index is also captured unless a
    # line-anchored marker already supplied it.
    for index, content in inline:
        if index not in translations and content:
            translations[index] = content

    return translations, anomalies


def parse_terminology(region: str) -> dict[str, str]:
    """Parse the JSON object after the terminology sentinel; bad entries are skipped."""
    if not region or not region.strip():
        return {}

    start = region.find("{")
    end = region.rfind("}")
    if start != -1 and end > start:
        try:
            loaded = json.loads(region[start:end + 1])
        except json.JSONDecodeError:
            loaded = None
        if isinstance(loaded, dict):
            return {
                key.strip(): value.strip()
                for key, value in loaded.items()
                if isinstance(value, str) and key.strip() and value.strip()
            }

    # Damaged object: salvage the well-formed "key": "value" entries.
    terms: dict[str, str] = {}
    for match in _JSON_PAIR_RE.finditer(region):
        try:
            key = json.loads(f'"{match.group(1)}"').strip()
            value = json.loads(f'"{match.group(2)}"').strip()
        except json.JSONDecodeError:
            continue
        if key and value:
            terms[key] = value
    return terms


def parse_response(raw) -> ParseResult:
    text = "" if raw is None else str(raw)
    translation_region, terminology_region = split_regions(text)
    translations, anomalies = parse_translations(translation_region)
    return ParseResult(
        translations=translations,
        glossary_delta=parse_terminology(terminology_region),
        anomalies=anomalies,
    )


def reconcile_indices(expected: Iterable[int], translations: dict[int, str]) -> list[Anomaly]:
    """Compare requested indices with parsed ones; blank content counts as missing."""
    expected = list(expected)
    expected_set = set(expected)
    anomalies = [
        Anomaly(MISSING_INDEX, index)
        for index in expected
        if not (translations.get(index) or "").strip()
    ]
    anomalies.extend(
        Anomaly(EXTRA_INDEX, index, translations[index])
        for index in translations
        if index not in expected_set
    )
    return anomalies
