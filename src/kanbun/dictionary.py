from __future__ import annotations

import json
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Iterator, Mapping

try:
    from importlib import resources
except ImportError:  # pragma: no cover
    import importlib_resources as resources  # type: ignore

__all__ = [
    "DATA_DIR_ENV",
    "HANZI_FILENAME",
    "KUNYOMI_FILENAME",
    "ONYOMI_PLACEHOLDER",
    "DictionaryIssue",
    "HanziEntry",
    "HanziMeaning",
    "KunyomiEntry",
    "KunyomiReading",
    "ReadingTable",
    "clear_default_caches",
    "default_hanzi_index",
    "default_kunyomi_index",
    "default_kunyomi_table",
    "default_onyomi_table",
    "default_pinyin_table",
    "default_tone_table",
    "deserialize_hanzi_entries",
    "deserialize_kunyomi_entries",
    "hanzi_path",
    "kunyomi_path",
    "kunyomi_table",
    "load_hanzi_entries",
    "load_kunyomi_entries",
    "onyomi_table",
    "pinyin_table",
    "resolve_data_dir",
    "serialize_hanzi_entries",
    "serialize_kunyomi_entries",
    "tone_table",
    "validate_hanzi_dictionary",
    "validate_hanzi_entry",
]

DATA_DIR_ENV = "KANBUN_DATA_DIR"
HANZI_FILENAME = "hanzi.json"
KUNYOMI_FILENAME = "kunyomi.json"
# Marks an on'yomi that still has to be registered; never emitted as a reading.
ONYOMI_PLACEHOLDER = "TODO"

_END = object()


class ReadingTable:
    """
    Read-only longest-prefix lookup from source spans to readings.

    Entries are stored in a character trie so that a single walk from an
    offset finds every key starting there; the deepest terminal wins. The
    table exposes no mutation API, so one instance can be shared freely.
    """

    __slots__ = ("_root", "_size", "_max_length")

    def __init__(self, entries: Mapping[str, str] | Iterable[tuple[str, str]] = ()) -> None:
        root: dict[object, object] = {}
        size = 0
        max_length = 0
        items = entries.items() if isinstance(entries, Mapping) else entries
        for key, reading in items:
            if not key or not reading:
                continue
            node = root
            for ch in key:
                node = node.setdefault(ch, {})  # type: ignore[assignment]
            if _END not in node:
                size += 1
            node[_END] = reading
            max_length = max(max_length, len(key))
        self._root = root
        self._size = size
        self._max_length = max_length

    def __len__(self) -> int:
        return self._size

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __iter__(self) -> Iterator[str]:
        for key, _ in self.items():
            yield key

    def __repr__(self) -> str:
        return f"ReadingTable(size={self._size}, max_length={self._max_length})"

    @property
    def max_length(self) -> int:
        return self._max_length

    def get(self, key: str) -> str | None:
        node = self._root
        for ch in key:
            child = node.get(ch)
            if child is None:
                return None
            node = child  # type: ignore[assignment]
        reading = node.get(_END)
        return reading if isinstance(reading, str) else None

    def items(self) -> Iterator[tuple[str, str]]:
        stack: list[tuple[str, dict[object, object]]] = [("", self._root)]
        while stack:
            prefix, node = stack.pop()
            reading = node.get(_END)
            if isinstance(reading, str):
                yield prefix, reading
            for ch, child in node.items():
                if ch is _END:
                    continue
                stack.append((prefix + ch, child))  # type: ignore[operator, arg-type]

    def longest_match(self, text: str, pos: int) -> tuple[str, str] | None:
        """Return ``(key, reading)`` for the longest entry matching at ``pos``."""
        if pos < 0:
            return None
        node = self._root
        best: tuple[str, str] | None = None
        idx = pos
        length = len(text)
        while idx < length:
            child = node.get(text[idx])
            if child is None:
                break
            node = child  # type: ignore[assignment]
            idx += 1
            reading = node.get(_END)
            if isinstance(reading, str):
                best = (text[pos:idx], reading)
        return best


@dataclass(frozen=True)
class KunyomiReading:
    id: str
    ruby: str
    is_default: bool = False
    okurigana: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class KunyomiEntry:
    id: str
    text: str
    readings: tuple[KunyomiReading, ...]

    @property
    def default_reading(self) -> KunyomiReading | None:
        for reading in self.readings:
            if reading.is_default:
                return reading
        return None


@dataclass(frozen=True)
class HanziMeaning:
    id: str
    onyomi: str
    pinyin: str
    tone: int
    meaning_ja: str
    is_default: bool = False


@dataclass(frozen=True)
class HanziEntry:
    id: str
    meanings: tuple[HanziMeaning, ...]
    is_common: bool = False

    @property
    def default_meaning(self) -> HanziMeaning | None:
        for meaning in self.meanings:
            if meaning.is_default:
                return meaning
        return None

    def meaning_by_id(self, meaning_id: str) -> HanziMeaning | None:
        for meaning in self.meanings:
            if meaning.id == meaning_id:
                return meaning
        return None


@dataclass(frozen=True)
class DictionaryIssue:
    field: str
    message: str
    expected: str | None = None
    actual: str | None = None


def resolve_data_dir() -> Path:
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path(str(resources.files("kanbun").joinpath("data")))


def hanzi_path(data_dir: Path | None = None) -> Path:
    return (data_dir or resolve_data_dir()) / HANZI_FILENAME


def kunyomi_path(data_dir: Path | None = None) -> Path:
    return (data_dir or resolve_data_dir()) / KUNYOMI_FILENAME


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) and value else None


def deserialize_kunyomi_entries(data: Iterable[Mapping[str, object]]) -> list[KunyomiEntry]:
    entries: list[KunyomiEntry] = []
    for raw in data:
        if not isinstance(raw, Mapping):
            continue
        text = raw.get("text")
        if not isinstance(text, str) or not text:
            continue
        entry_id = raw.get("id")
        if not isinstance(entry_id, str) or not entry_id:
            entry_id = text
        readings: list[KunyomiReading] = []
        raw_readings = raw.get("readings")
        if isinstance(raw_readings, list):
            for item in raw_readings:
                if not isinstance(item, Mapping):
                    continue
                ruby = item.get("ruby")
                if not isinstance(ruby, str) or not ruby:
                    continue
                reading_id = item.get("id")
                readings.append(
                    KunyomiReading(
                        id=reading_id if isinstance(reading_id, str) else f"{text}-{ruby}",
                        ruby=ruby,
                        is_default=item.get("is_default") is True,
                        okurigana=_optional_str(item.get("okurigana")),
                        note=_optional_str(item.get("note")),
                    )
                )
        entries.append(KunyomiEntry(id=entry_id, text=text, readings=tuple(readings)))
    return entries


def serialize_kunyomi_entries(entries: Iterable[KunyomiEntry]) -> list[dict[str, object]]:
    payload: list[dict[str, object]] = []
    for entry in entries:
        readings: list[dict[str, object]] = []
        for reading in entry.readings:
            item: dict[str, object] = {"id": reading.id, "ruby": reading.ruby}
            if reading.okurigana:
                item["okurigana"] = reading.okurigana
            item["is_default"] = reading.is_default
            if reading.note:
                item["note"] = reading.note
            readings.append(item)
        payload.append({"id": entry.id, "text": entry.text, "readings": readings})
    return payload


def deserialize_hanzi_entries(data: Iterable[Mapping[str, object]]) -> list[HanziEntry]:
    entries: list[HanziEntry] = []
    for raw in data:
        if not isinstance(raw, Mapping):
            continue
        entry_id = raw.get("id")
        if not isinstance(entry_id, str) or not entry_id:
            continue
        meanings: list[HanziMeaning] = []
        raw_meanings = raw.get("meanings")
        if isinstance(raw_meanings, list):
            for item in raw_meanings:
                if not isinstance(item, Mapping):
                    continue
                meaning_id = item.get("id")
                pinyin = item.get("pinyin")
                tone = item.get("tone")
                if not isinstance(meaning_id, str) or not isinstance(pinyin, str):
                    continue
                if isinstance(tone, bool) or not isinstance(tone, int):
                    continue
                onyomi = item.get("onyomi")
                meaning_ja = item.get("meaning_ja")
                meanings.append(
                    HanziMeaning(
                        id=meaning_id,
                        onyomi=onyomi if isinstance(onyomi, str) else ONYOMI_PLACEHOLDER,
                        pinyin=pinyin,
                        tone=tone,
                        meaning_ja=meaning_ja if isinstance(meaning_ja, str) else "",
                        is_default=item.get("is_default") is True,
                    )
                )
        entries.append(
            HanziEntry(
                id=entry_id,
                meanings=tuple(meanings),
                is_common=raw.get("is_common") is True,
            )
        )
    return entries


def serialize_hanzi_entries(entries: Iterable[HanziEntry]) -> list[dict[str, object]]:
    payload: list[dict[str, object]] = []
    for entry in entries:
        payload.append(
            {
                "id": entry.id,
                "meanings": [
                    {
                        "id": meaning.id,
                        "onyomi": meaning.onyomi,
                        "pinyin": meaning.pinyin,
                        "tone": meaning.tone,
                        "meaning_ja": meaning.meaning_ja,
                        "is_default": meaning.is_default,
                    }
                    for meaning in entry.meanings
                ],
                "is_common": entry.is_common,
            }
        )
    return payload


def _read_json_list(path: Path) -> list[Mapping[str, object]]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"Expected a JSON array in {path}")
    return raw


def load_kunyomi_entries(path: Path | None = None) -> list[KunyomiEntry]:
    return deserialize_kunyomi_entries(_read_json_list(path or kunyomi_path()))


def load_hanzi_entries(path: Path | None = None) -> list[HanziEntry]:
    return deserialize_hanzi_entries(_read_json_list(path or hanzi_path()))


def kunyomi_table(entries: Iterable[KunyomiEntry]) -> ReadingTable:
    mapping: dict[str, str] = {}
    for entry in entries:
        # First entry for a text wins, matching a linear find over the list.
        if entry.text in mapping:
            continue
        reading = entry.default_reading
        if reading is not None:
            mapping[entry.text] = reading.ruby
    return ReadingTable(mapping)


def _hanzi_mapping(entries: Iterable[HanziEntry], attr: str) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for entry in entries:
        if entry.id in mapping:
            continue
        meaning = entry.default_meaning
        if meaning is None:
            continue
        value = getattr(meaning, attr)
        if not value or value == ONYOMI_PLACEHOLDER:
            continue
        mapping[entry.id] = value
    return mapping


def onyomi_table(entries: Iterable[HanziEntry]) -> ReadingTable:
    return ReadingTable(_hanzi_mapping(entries, "onyomi"))


def pinyin_table(entries: Iterable[HanziEntry]) -> ReadingTable:
    return ReadingTable(_hanzi_mapping(entries, "pinyin"))


def tone_table(entries: Iterable[HanziEntry]) -> dict[str, int]:
    tones: dict[str, int] = {}
    for entry in entries:
        meaning = entry.default_meaning
        if meaning is not None and entry.id not in tones:
            tones[entry.id] = meaning.tone
    return tones


@lru_cache(maxsize=1)
def _default_kunyomi_entries() -> tuple[KunyomiEntry, ...]:
    return tuple(load_kunyomi_entries())


@lru_cache(maxsize=1)
def _default_hanzi_entries() -> tuple[HanziEntry, ...]:
    return tuple(load_hanzi_entries())


@lru_cache(maxsize=1)
def default_kunyomi_table() -> ReadingTable:
    return kunyomi_table(_default_kunyomi_entries())


@lru_cache(maxsize=1)
def default_onyomi_table() -> ReadingTable:
    return onyomi_table(_default_hanzi_entries())


@lru_cache(maxsize=1)
def default_pinyin_table() -> ReadingTable:
    return pinyin_table(_default_hanzi_entries())


@lru_cache(maxsize=1)
def default_tone_table() -> Mapping[str, int]:
    return tone_table(_default_hanzi_entries())


@lru_cache(maxsize=1)
def default_hanzi_index() -> Mapping[str, HanziEntry]:
    index: dict[str, HanziEntry] = {}
    for entry in _default_hanzi_entries():
        index.setdefault(entry.id, entry)
    return index


@lru_cache(maxsize=1)
def default_kunyomi_index() -> Mapping[str, KunyomiEntry]:
    index: dict[str, KunyomiEntry] = {}
    for entry in _default_kunyomi_entries():
        index.setdefault(entry.text, entry)
    return index


def clear_default_caches() -> None:
    """Drop the process-wide tables so the next lookup reloads the data files."""
    for cached in (
        _default_kunyomi_entries,
        _default_hanzi_entries,
        default_kunyomi_table,
        default_onyomi_table,
        default_pinyin_table,
        default_tone_table,
        default_hanzi_index,
        default_kunyomi_index,
    ):
        cached.cache_clear()


def validate_hanzi_entry(entry: HanziEntry) -> list[DictionaryIssue]:
    issues: list[DictionaryIssue] = []
    for meaning in entry.meanings:
        expected_id = f"{entry.id}-{meaning.pinyin}"
        if meaning.id != expected_id:
            issues.append(
                DictionaryIssue(
                    field="id",
                    message="HanziMeaning id does not match expected format",
                    expected=expected_id,
                    actual=meaning.id,
                )
            )
    defaults = [meaning for meaning in entry.meanings if meaning.is_default]
    if not defaults:
        issues.append(DictionaryIssue(field="meanings", message=f'HanziEntry "{entry.id}" has no default meaning'))
    elif len(defaults) > 1:
        issues.append(
            DictionaryIssue(
                field="meanings",
                message=f'HanziEntry "{entry.id}" has multiple default meanings',
                expected="1",
                actual=str(len(defaults)),
            )
        )
    return issues


def validate_hanzi_dictionary(entries: Iterable[HanziEntry]) -> dict[str, list[DictionaryIssue]]:
    entries = list(entries)
    issues: dict[str, list[DictionaryIssue]] = {}
    seen: dict[str, int] = {}
    for idx, entry in enumerate(entries):
        if entry.id in seen:
            issues.setdefault(entry.id, []).append(
                DictionaryIssue(
                    field="id",
                    message=(
                        f'Duplicate entry: Character "{entry.id}" appears multiple times in dictionary '
                        f"(first at index {seen[entry.id]}, again at index {idx})"
                    ),
                    expected="unique",
                    actual=f"duplicate at index {idx}",
                )
            )
        else:
            seen[entry.id] = idx
    for entry in entries:
        entry_issues = validate_hanzi_entry(entry)
        if entry_issues:
            issues.setdefault(entry.id, []).extend(entry_issues)
    return issues
