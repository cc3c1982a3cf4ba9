from __future__ import annotations

import json
import os
import tempfile
from dataclasses import replace
from pathlib import Path

from .dictionary import (
    ONYOMI_PLACEHOLDER,
    HanziEntry,
    HanziMeaning,
    KunyomiEntry,
    KunyomiReading,
    clear_default_caches,
    hanzi_path,
    kunyomi_path,
    load_hanzi_entries,
    load_kunyomi_entries,
    serialize_hanzi_entries,
    serialize_kunyomi_entries,
)

__all__ = [
    "DictionaryEditError",
    "DuplicateEntryError",
    "MissingEntryError",
    "add_hanzi_entry",
    "add_kunyomi_entry",
    "add_tone_mark",
    "derive_onyomi",
    "update_hanzi_onyomi",
]


class DictionaryEditError(ValueError):
    """Raised when a dictionary edit cannot be applied."""


class DuplicateEntryError(DictionaryEditError):
    """Raised when the entry to add is already present."""


class MissingEntryError(DictionaryEditError):
    """Raised when the entry to update does not exist."""


_TONE_MARKS = {
    "a": "āáǎàa",
    "e": "ēéěèe",
    "i": "īíǐìi",
    "o": "ōóǒòo",
    "u": "ūúǔùu",
    "ü": "ǖǘǚǜü",
}

# Rough pinyin -> on'yomi guesses for newly added characters.
_ONYOMI_BY_PINYIN = {
    "zi": "シ",
    "yue": "エツ",
    "xue": "ガク",
    "er": "ジ",
    "shi": "ジ",
    "xi": "シュウ",
    "zhi": "シ",
    "bu": "フ",
    "yi": "イ",
    "hu": "コ",
    "you": "ユウ",
    "peng": "ホウ",
    "yuan": "エン",
    "fang": "ホウ",
    "lai": "ライ",
    "le": "ラク",
    "ren": "ジン",
    "yun": "ウン",
    "jun": "クン",
    "qi": "キ",
    "wei": "イ",
    "ye": "ヤ",
    "xiao": "コウ",
    "di": "テイ",
    "ti": "テイ",
    "hao": "コウ",
    "fan": "ハン",
    "shang": "ジョウ",
    "zhe": "シャ",
    "xian": "セン",
    "zuo": "サク",
    "luan": "ラン",
    "wu": "ム",
    "ben": "ホン",
    "li": "リツ",
    "dao": "ドウ",
    "sheng": "セイ",
    "qian": "セン",
    "guo": "コク",
    "jing": "ケイ",
    "xin": "シン",
    "jie": "セツ",
    "yong": "ヨウ",
    "ai": "アイ",
    "min": "ミン",
    "qiao": "コウ",
    "yan": "ゲン",
    "ling": "レイ",
    "se": "ショク",
    "zeng": "ソウ",
    "san": "サン",
    "xing": "セイ",
    "shen": "シン",
    "mou": "ボウ",
    "zhong": "チュウ",
    "jiao": "コウ",
    "chuan": "デン",
    "ri": "ニチ",
}


def add_tone_mark(pinyin: str, tone: int) -> str:
    """
    Put the tone mark for ``tone`` (1-4, 5 for neutral) on the right vowel of ``pinyin``.

    ``a`` or ``e`` take the mark when present, ``ou`` marks the ``o``,
    otherwise the last vowel is marked.
    """
    if tone not in (1, 2, 3, 4, 5):
        raise DictionaryEditError(f"Tone must be between 1 and 5, got {tone}")
    lower = pinyin.lower().replace("v", "ü")
    idx = -1
    for vowel in ("a", "e"):
        if vowel in lower:
            idx = lower.index(vowel)
            break
    if idx < 0 and "ou" in lower:
        idx = lower.index("ou")
    if idx < 0:
        for pos in range(len(lower) - 1, -1, -1):
            if lower[pos] in _TONE_MARKS:
                idx = pos
                break
    if idx < 0:
        return pinyin
    marked = _TONE_MARKS[lower[idx]][tone - 1]
    if pinyin[idx].isupper():
        marked = marked.upper()
    return pinyin[:idx] + marked + pinyin[idx + 1 :]


def derive_onyomi(pinyin: str) -> str:
    return _ONYOMI_BY_PINYIN.get(pinyin.lower(), ONYOMI_PLACEHOLDER)


def _write_json(path: Path, payload: object) -> None:
    """Replace ``path`` in one step so readers never see a partial file."""
    data = json.dumps(payload, ensure_ascii=False, indent=2) + "\n"
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    ) as tmp:
        tmp.write(data)
        tmp_path = Path(tmp.name)
    try:
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def add_hanzi_entry(
    character: str,
    pinyin: str,
    tone: int,
    meaning: str,
    path: Path | None = None,
) -> HanziEntry:
    character = character.strip()
    if len(character) != 1:
        raise DictionaryEditError(f"Expected a single character, got {character!r}")
    target = path or hanzi_path()
    entries = load_hanzi_entries(target)
    if any(entry.id == character for entry in entries):
        raise DuplicateEntryError(f'Hanzi entry "{character}" already exists')
    marked = add_tone_mark(pinyin, tone)
    entry = HanziEntry(
        id=character,
        meanings=(
            HanziMeaning(
                id=f"{character}-{marked}",
                onyomi=derive_onyomi(pinyin),
                pinyin=marked,
                tone=tone,
                meaning_ja=meaning,
                is_default=True,
            ),
        ),
        is_common=True,
    )
    entries.append(entry)
    _write_json(target, serialize_hanzi_entries(entries))
    clear_default_caches()
    return entry


def add_kunyomi_entry(character: str, ruby: str, path: Path | None = None) -> KunyomiEntry:
    character = character.strip()
    ruby = ruby.strip()
    if not character or not ruby:
        raise DictionaryEditError("Both the text and its ruby are required")
    target = path or kunyomi_path()
    entries = load_kunyomi_entries(target)
    if any(entry.text == character for entry in entries):
        raise DuplicateEntryError(f'Kunyomi entry "{character}" already exists')
    entry = KunyomiEntry(
        id=character,
        text=character,
        readings=(KunyomiReading(id=f"{character}-{ruby}", ruby=ruby, is_default=True),),
    )
    entries.append(entry)
    _write_json(target, serialize_kunyomi_entries(entries))
    clear_default_caches()
    return entry


def update_hanzi_onyomi(
    character: str,
    pinyin: str,
    onyomi: str,
    path: Path | None = None,
) -> HanziMeaning:
    """Fill in the on'yomi of a meaning that is still marked ``TODO``."""
    target = path or hanzi_path()
    entries = load_hanzi_entries(target)
    meaning_id = f"{character}-{pinyin}"
    for idx, entry in enumerate(entries):
        if entry.id != character:
            continue
        meanings = list(entry.meanings)
        for pos, meaning in enumerate(meanings):
            if meaning.id != meaning_id or meaning.onyomi != ONYOMI_PLACEHOLDER:
                continue
            updated = replace(meaning, onyomi=onyomi)
            meanings[pos] = updated
            entries[idx] = replace(entry, meanings=tuple(meanings))
            _write_json(target, serialize_hanzi_entries(entries))
            clear_default_caches()
            return updated
    raise MissingEntryError(
        f'Entry not found for character "{character}" with pinyin "{pinyin}" and onyomi "{ONYOMI_PLACEHOLDER}"'
    )
