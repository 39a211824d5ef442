"""Finds required vocabulary/grammar items in text and marks them.

Items are matched literally and case-insensitively. A grammar structure
written with an ellipsis gap, e.g. ``因为...所以...``, matches its
fixed parts in order with any text between them on the same line.

Highlighting collects every match as a ``(start, end)`` span over the
original text, merges overlapping or touching spans, and renders once,
so repeated or overlapping items never produce nested markers.
"""

from __future__ import annotations

import html
import re
from typing import Iterable, Sequence

MARK_OPEN = "<mark>"
MARK_CLOSE = "</mark>"

# "...", "…", "……" (optionally surrounded by spaces) separate fixed parts.
_GAP_RE = re.compile(r"\s*(?:\.{3,}|…+)\s*")
_GAP_PATTERN = r"[^\n]*?"

Span = tuple[int, int]


def compile_item(item: str) -> re.Pattern[str] | None:
    """Build the case-insensitive pattern for one required item.

    Returns None for items with no fixed text (e.g. a bare ``...``).
    """
    parts = [part for part in _GAP_RE.split(item.strip()) if part]
    if not parts:
        return None
    return re.compile(_GAP_PATTERN.join(re.escape(part) for part in parts), re.IGNORECASE)


def compile_items(items: Iterable[str]) -> list[tuple[str, re.Pattern[str]]]:
    compiled = []
    for item in items:
        pattern = compile_item(item)
        if pattern is not None:
            compiled.append((item, pattern))
    return compiled


def find_spans(text: str, patterns: Iterable[re.Pattern[str]]) -> list[Span]:
    """Every non-empty match of every pattern, unsorted and unmerged."""
    spans: list[Span] = []
    for pattern in patterns:
        for match in pattern.finditer(text):
            if match.end() > match.start():
                spans.append((match.start(), match.end()))
    return spans


def merge_spans(spans: Iterable[Span]) -> list[Span]:
    """Sort spans and merge any that overlap or touch."""
    merged: list[Span] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            last_start, last_end = merged[-1]
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def _marked_regions(text: str) -> list[Span]:
    """Spans of text already wrapped in MARK_OPEN … MARK_CLOSE."""
    regions: list[Span] = []
    pos = 0
    while True:
        start = text.find(MARK_OPEN, pos)
        if start < 0:
            return regions
        end = text.find(MARK_CLOSE, start + len(MARK_OPEN))
        if end < 0:
            return regions
        end += len(MARK_CLOSE)
        regions.append((start, end))
        pos = end


def _overlaps(span: Span, regions: Sequence[Span]) -> bool:
    return any(span[0] < r_end and r_start < span[1] for r_start, r_end in regions)


def render_spans(
    text: str,
    spans: Sequence[Span],
    *,
    escape: bool = False,
    keep: Sequence[Span] = (),
) -> str:
    """Wrap each (merged, sorted) span in markers; optionally HTML-escape the rest.

    Regions in *keep* (existing markup, sorted and disjoint from *spans*)
    are copied verbatim even when escaping.
    """

    def _text(start: int, end: int) -> str:
        if not escape:
            return text[start:end]
        out: list[str] = []
        pos = start
        for k_start, k_end in keep:
            if k_start >= pos and k_end <= end:
                out.append(html.escape(text[pos:k_start]))
                out.append(text[k_start:k_end])
                pos = k_end
        out.append(html.escape(text[pos:end]))
        return "".join(out)

    out: list[str] = []
    pos = 0
    for start, end in spans:
        out.append(_text(pos, start))
        out.append(MARK_OPEN + _text(start, end) + MARK_CLOSE)
        pos = end
    out.append(_text(pos, len(text)))
    return "".join(out)


def highlight(text: str, items: Iterable[str], *, escape: bool = False) -> str:
    """Mark every occurrence of every item in *text*.

    Regions already inside markers are left untouched, so highlighting an
    already-highlighted string adds markers only around new matches. With
    *escape*, everything outside the markers is HTML-escaped.
    """
    protected = _marked_regions(text)
    spans = find_spans(text, (pattern for _, pattern in compile_items(items)))
    spans = [span for span in spans if not _overlaps(span, protected)]
    return render_spans(text, merge_spans(spans), escape=escape, keep=protected)


def used_items(text: str, items: Iterable[str]) -> list[str]:
    """Items that match *text* at least once, in the order given."""
    return [item for item, pattern in compile_items(items) if pattern.search(text)]
