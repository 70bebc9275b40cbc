"""
Normalization of model-proposed highlight spans.

Models return character offsets that may be out of range, cut words in half
or overlap each other. ``normalize_highlights`` turns them into a sorted list
of word-aligned, non-overlapping spans inside the text.
"""
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Union

from ai.schemas import HighlightSpan, RawHighlight

DEFAULT_LABEL = "Highlight"

# Latin letters incl. Latin-1 Supplement and Latin Extended-A/B, plus digits
_WORD_CHAR = re.compile(r"[A-Za-z0-9\u00C0-\u024F]")


def _is_word_char(ch: str) -> bool:
    return bool(_WORD_CHAR.fullmatch(ch))


@dataclass
class _Span:
    start: int
    end: int
    label: str
    description: str


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def _normalize_span(text: str, raw: RawHighlight) -> _Span:
    n = len(text)
    start = _clamp(int(raw.char_start_position), 0, n)
    end = _clamp(int(raw.char_end_position), 0, n)
    if end <= start:
        # Minimal one-character span, kept inside the text
        if start >= n:
            start = max(n - 1, 0)
        end = min(start + 1, n)

    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1

    if start < end:
        while start > 0 and _is_word_char(text[start - 1]) and _is_word_char(text[start]):
            start -= 1
        while end < n and _is_word_char(text[end - 1]) and _is_word_char(text[end]):
            end += 1

    return _Span(
        start=start,
        end=end,
        label=raw.label or DEFAULT_LABEL,
        description=raw.description or "",
    )


def _merge(spans: List[_Span]) -> List[_Span]:
    merged: List[_Span] = []
    for span in spans:
        current = merged[-1] if merged else None
        # Only true overlaps merge; touching spans stay separate
        if current is not None and span.start < current.end:
            current.end = max(current.end, span.end)
            if not current.description and span.description:
                current.description = span.description
        else:
            merged.append(_Span(span.start, span.end, span.label, span.description))
    return merged


def normalize_highlights(
    text: str,
    spans: Iterable[Union[RawHighlight, HighlightSpan, Mapping[str, Any]]],
) -> List[HighlightSpan]:
    """
    Clamp, trim, word-snap, sort and merge highlight spans.

    The result satisfies ``0 <= start < end <= len(text)`` for every span, no
    two spans overlap, and running the function on its own output returns it
    unchanged.
    """
    normalized = []
    for raw in spans:
        if not isinstance(raw, RawHighlight):
            raw = RawHighlight.model_validate(raw if isinstance(raw, Mapping) else raw.model_dump())
        span = _normalize_span(text, raw)
        if span.end > span.start:
            normalized.append(span)

    normalized.sort(key=lambda s: s.start)
    return [
        HighlightSpan(
            char_start_position=s.start,
            char_end_position=s.end,
            label=s.label,
            description=s.description,
        )
        for s in _merge(normalized)
    ]
