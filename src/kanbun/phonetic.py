from __future__ import annotations

from typing import Iterable, Mapping

from .dictionary import ReadingTable, default_onyomi_table, default_pinyin_table
from .ruby import Override, iter_matches

__all__ = [
    "BOUNDARY",
    "CONNECTOR",
    "PAUSE_PLACEHOLDER",
    "convert_to_onyomi",
    "convert_to_pinyin",
    "strip_markers",
]

PAUSE_PLACEHOLDER = "{{PAUSE}}"
# Joins characters that belong to one tone-sandhi group: 不-亦
CONNECTOR = "-"
# Clause boundary inside a segment; read as a comma plus a pause.
BOUNDARY = ";"
_BOUNDARY_READING = "、"


def convert_to_onyomi(
    text: str,
    dictionary: ReadingTable | None = None,
    overrides: Iterable[Override] | Mapping[int, Override] | None = None,
) -> str:
    """
    Read ``text`` as katakana on'yomi.

    Connectors are dropped, boundaries become ``、`` plus a pause and any
    whitespace becomes a pause. Characters without a reading are kept.
    """
    table = dictionary if dictionary is not None else default_onyomi_table()
    parts: list[str] = []
    for start, length, match in iter_matches(text, overrides, table):
        if match is not None:
            parts.append(match.reading)
            continue
        ch = text[start]
        if ch == CONNECTOR:
            continue
        if ch == BOUNDARY:
            parts.append(_BOUNDARY_READING + PAUSE_PLACEHOLDER)
        elif ch.isspace():
            parts.append(PAUSE_PLACEHOLDER)
        else:
            parts.append(text[start : start + length])
    return "".join(parts)


def convert_to_pinyin(
    text: str,
    dictionary: ReadingTable | None = None,
    overrides: Iterable[Override] | Mapping[int, Override] | None = None,
) -> str:
    """Like :func:`convert_to_onyomi`, with syllables of one phrase separated by spaces."""
    table = dictionary if dictionary is not None else default_pinyin_table()
    parts: list[str] = []
    word: list[str] = []

    def _flush() -> None:
        if word:
            parts.append(" ".join(word))
            word.clear()

    for start, length, match in iter_matches(text, overrides, table):
        if match is not None:
            word.append(match.reading)
            continue
        ch = text[start]
        if ch == CONNECTOR:
            continue
        if ch == BOUNDARY:
            _flush()
            parts.append(_BOUNDARY_READING + PAUSE_PLACEHOLDER)
        elif ch.isspace():
            _flush()
            parts.append(PAUSE_PLACEHOLDER)
        else:
            word.append(text[start : start + length])
    _flush()
    return "".join(parts)


def strip_markers(text: str) -> str:
    return text.replace(CONNECTOR, "").replace(BOUNDARY, "")
