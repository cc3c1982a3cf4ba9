from .dictionary import ReadingTable, default_kunyomi_table, default_onyomi_table, default_pinyin_table
from .phonetic import PAUSE_PLACEHOLDER, convert_to_onyomi, convert_to_pinyin
from .ruby import (
    AnnotatedSpan,
    Override,
    annotate,
    annotate_japanese,
    convert_to_hiragana,
    parse_inline_overrides,
)
from .sandhi import parse_tone_sandhi

__all__ = [
    "AnnotatedSpan",
    "Override",
    "ReadingTable",
    "annotate",
    "annotate_japanese",
    "parse_inline_overrides",
    "convert_to_hiragana",
    "convert_to_onyomi",
    "convert_to_pinyin",
    "PAUSE_PLACEHOLDER",
    "parse_tone_sandhi",
    "default_kunyomi_table",
    "default_onyomi_table",
    "default_pinyin_table",
]
