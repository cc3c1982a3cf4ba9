from __future__ import annotations

import html
import re
import sys
from dataclasses import dataclass
from typing import Iterable, Iterator, Literal, Mapping

from bs4 import BeautifulSoup, Comment, Doctype, NavigableString, Tag

from .dictionary import ReadingTable, default_kunyomi_table

__all__ = [
    "AnnotatedSpan",
    "BreakSegment",
    "Match",
    "Override",
    "annotate",
    "annotate_japanese",
    "build_ruby_map",
    "convert_to_hiragana",
    "index_overrides",
    "iter_matches",
    "lookup",
    "match_dictionary",
    "match_override",
    "parse_inline_overrides",
    "parse_ruby_html",
    "render_ruby_html",
    "set_debug_logging",
    "split_into_segments",
]

_DEBUG_LOG = False

# One ideograph followed by a hiragana reading in full-width parentheses: 為（た）
_INLINE_OVERRIDE_RE = re.compile(r"([一-龥])（([ぁ-ん]+)）")

_PUNCTUATION_BREAKS = ("。", "、")

BreakPriority = Literal["punctuation", "space", "none"]


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def _debug_log(message: str) -> None:
    if _DEBUG_LOG:
        print(f"[kanbun debug] {message}", file=sys.stderr)


@dataclass(frozen=True)
class Override:
    """Explicit reading for ``text`` at ``position``, honored only if the text still matches."""

    position: int
    text: str
    reading: str


@dataclass(frozen=True)
class Match:
    length: int
    reading: str
    source: str


@dataclass(frozen=True)
class AnnotatedSpan:
    start: int
    length: int
    text: str
    reading: str = ""

    @property
    def end(self) -> int:
        return self.start + self.length

    @property
    def has_reading(self) -> bool:
        return bool(self.reading)


@dataclass(frozen=True)
class BreakSegment:
    text: str
    start: int
    break_after: BreakPriority


def index_overrides(overrides: Iterable[Override] | Mapping[int, Override] | None) -> dict[int, Override]:
    if not overrides:
        return {}
    if isinstance(overrides, Mapping):
        items = overrides.items()
    else:
        items = ((override.position, override) for override in overrides)
    indexed: dict[int, Override] = {}
    for position, override in items:
        # Zero-length overrides would stall the scan.
        if not override.text or not override.reading:
            continue
        indexed[position] = override
    return indexed


def match_override(text: str, pos: int, overrides: Mapping[int, Override]) -> Match | None:
    override = overrides.get(pos)
    if override is None or not override.text:
        return None
    target = text[pos : pos + len(override.text)]
    if target != override.text:
        _debug_log(
            f"override at {pos} expects {override.text!r} but text has {target!r}; using dictionary"
        )
        return None
    return Match(length=len(override.text), reading=override.reading, source="override")


def match_dictionary(text: str, pos: int, dictionary: ReadingTable) -> Match | None:
    found = dictionary.longest_match(text, pos)
    if found is None:
        return None
    key, reading = found
    return Match(length=len(key), reading=reading, source="dictionary")


def lookup(
    text: str,
    pos: int,
    overrides: Mapping[int, Override],
    dictionary: ReadingTable,
) -> Match | None:
    """Override first, then the longest dictionary entry; ``None`` means pass-through."""
    return match_override(text, pos, overrides) or match_dictionary(text, pos, dictionary)


def iter_matches(
    text: str,
    overrides: Iterable[Override] | Mapping[int, Override] | None = None,
    dictionary: ReadingTable | None = None,
) -> Iterator[tuple[int, int, Match | None]]:
    """
    Scan ``text`` left to right and yield ``(start, length, match)`` triples.

    Every offset of ``text`` is covered by exactly one triple. ``match`` is
    ``None`` for single-character pass-through positions.
    """
    table = dictionary if dictionary is not None else default_kunyomi_table()
    indexed = index_overrides(overrides)
    pos = 0
    length = len(text)
    while pos < length:
        match = lookup(text, pos, indexed, table)
        if match is not None and match.length > 0:
            yield pos, match.length, match
            pos += match.length
        else:
            yield pos, 1, None
            pos += 1


def annotate(
    text: str,
    overrides: Iterable[Override] | Mapping[int, Override] | None = None,
    dictionary: ReadingTable | None = None,
) -> list[AnnotatedSpan]:
    return [
        AnnotatedSpan(
            start=start,
            length=length,
            text=text[start : start + length],
            reading=match.reading if match is not None else "",
        )
        for start, length, match in iter_matches(text, overrides, dictionary)
    ]


def build_ruby_map(
    text: str,
    overrides: Iterable[Override] | Mapping[int, Override] | None = None,
    dictionary: ReadingTable | None = None,
) -> dict[int, Match]:
    return {
        start: match
        for start, _, match in iter_matches(text, overrides, dictionary)
        if match is not None
    }


def convert_to_hiragana(text: str, dictionary: ReadingTable | None = None) -> str:
    parts: list[str] = []
    for start, length, match in iter_matches(text, None, dictionary):
        parts.append(match.reading if match is not None else text[start : start + length])
    return "".join(parts)


def parse_inline_overrides(text: str) -> tuple[str, list[Override]]:
    """
    Strip ``漢（かな）`` notation from ``text``.

    Returns the clean text and one override per occurrence, positioned
    against the clean text.
    """
    overrides: list[Override] = []
    parts: list[str] = []
    clean_length = 0
    last = 0
    for match in _INLINE_OVERRIDE_RE.finditer(text):
        before = text[last : match.start()]
        parts.append(before)
        clean_length += len(before)
        kanji, reading = match.group(1), match.group(2)
        overrides.append(Override(position=clean_length, text=kanji, reading=reading))
        parts.append(kanji)
        clean_length += len(kanji)
        last = match.end()
    parts.append(text[last:])
    return "".join(parts), overrides


def annotate_japanese(
    text: str,
    ruby_data: Iterable[Override] | None = None,
    dictionary: ReadingTable | None = None,
) -> list[AnnotatedSpan]:
    clean_text, inline = parse_inline_overrides(text)
    # Inline notation is listed last so it wins on a shared position.
    merged = [*(ruby_data or ()), *inline]
    return annotate(clean_text, merged, dictionary)


def split_into_segments(text: str) -> list[BreakSegment]:
    """Group Japanese text into line-break units: after 。/、 first, then at spaces."""
    segments: list[BreakSegment] = []
    current: list[str] = []
    start = 0
    for idx, ch in enumerate(text):
        if ch in _PUNCTUATION_BREAKS:
            current.append(ch)
            segments.append(BreakSegment(text="".join(current), start=start, break_after="punctuation"))
            current = []
            start = idx + 1
        elif ch == " ":
            if current:
                segments.append(BreakSegment(text="".join(current), start=start, break_after="space"))
            current = []
            start = idx + 1
        else:
            current.append(ch)
    if current:
        segments.append(BreakSegment(text="".join(current), start=start, break_after="none"))
    return segments


def render_ruby_html(spans: Iterable[AnnotatedSpan]) -> str:
    parts: list[str] = []
    for span in spans:
        if span.has_reading:
            parts.append(
                f"<ruby>{html.escape(span.text)}<rt>{html.escape(span.reading)}</rt></ruby>"
            )
        else:
            parts.append(html.escape(span.text))
    return "".join(parts)


def _ruby_base_text(ruby: Tag) -> str:
    """
    Base text of a <ruby> element, ignoring <rt>/<rp>. Handles both <rb> and bare text.
    """
    # Segmented <rb> first
    rbs = ruby.find_all("rb", recursive=False)
    if rbs:
        return "".join("".join(rb.stripped_strings) for rb in rbs)
    parts = []
    for child in ruby.children:
        if isinstance(child, (Comment, Doctype)):
            continue
        if isinstance(child, NavigableString):
            parts.append(str(child))
        elif isinstance(child, Tag) and child.name not in ("rt", "rp"):
            parts.append("".join(child.stripped_strings))
    return "".join(parts).strip()


def _ruby_reading_text(ruby: Tag) -> str:
    """
    Concatenate the direct <rt> readings. An element without <rt> has no reading.
    """
    rts = ruby.find_all("rt", recursive=False)
    return "".join("".join(rt.stripped_strings) for rt in rts)


class _RubyCollector:
    def __init__(self) -> None:
        self.parts: list[str] = []
        self.length = 0
        self.overrides: list[Override] = []

    def _append(self, text: str) -> None:
        self.parts.append(text)
        self.length += len(text)

    def feed(self, node: Tag) -> None:
        for child in node.children:
            if isinstance(child, (Comment, Doctype)):
                continue
            if isinstance(child, NavigableString):
                self._append(str(child))
                continue
            if not isinstance(child, Tag):
                continue
            if child.name == "ruby":
                base = _ruby_base_text(child)
                reading = _ruby_reading_text(child)
                if base and reading:
                    self.overrides.append(Override(position=self.length, text=base, reading=reading))
                self._append(base)
            elif child.name in ("rt", "rp"):
                continue
            else:
                self.feed(child)


def parse_ruby_html(markup: str) -> tuple[str, list[Override]]:
    """Return the base text of ``markup`` and an override for every ``<ruby>`` with a reading."""
    soup = BeautifulSoup(markup, "html.parser")
    collector = _RubyCollector()
    collector.feed(soup)
    return "".join(collector.parts), collector.overrides
