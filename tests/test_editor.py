from __future__ import annotations

import json
from pathlib import Path

import pytest

from kanbun.dictionary import (
    DATA_DIR_ENV,
    default_kunyomi_table,
    default_onyomi_table,
    load_hanzi_entries,
    load_kunyomi_entries,
)
from kanbun.editor import (
    DictionaryEditError,
    DuplicateEntryError,
    MissingEntryError,
    add_hanzi_entry,
    add_kunyomi_entry,
    add_tone_mark,
    derive_onyomi,
    update_hanzi_onyomi,
)


@pytest.mark.parametrize(
    ("pinyin", "tone", "expected"),
    [
        ("xue", 2, "xué"),
        ("hao", 3, "hǎo"),
        ("you", 2, "yóu"),
        ("gui", 4, "guì"),
        ("liu", 2, "liú"),
        ("lv", 4, "lǜ"),
        ("de", 5, "de"),
        ("XUE", 2, "XUÉ"),
        ("m", 1, "m"),
    ],
)
def test_add_tone_mark(pinyin: str, tone: int, expected: str) -> None:
    assert add_tone_mark(pinyin, tone) == expected


def test_add_tone_mark_rejects_bad_tone() -> None:
    with pytest.raises(DictionaryEditError):
        add_tone_mark("xue", 6)


def test_derive_onyomi() -> None:
    assert derive_onyomi("ren") == "ジン"
    assert derive_onyomi("zai") == "TODO"


def test_add_hanzi_entry_writes_file(data_dir: Path, monkeypatch) -> None:
    monkeypatch.setenv(DATA_DIR_ENV, str(data_dir))
    assert "仁" not in default_onyomi_table()

    entry = add_hanzi_entry("仁", "ren", 2, "思いやり")
    assert entry.meanings[0].id == "仁-rén"
    assert entry.meanings[0].onyomi == "ジン"
    assert entry.is_common

    stored = load_hanzi_entries(data_dir / "hanzi.json")
    assert stored[-1] == entry
    assert default_onyomi_table().get("仁") == "ジン"
    raw = (data_dir / "hanzi.json").read_text(encoding="utf-8")
    assert "思いやり" in raw
    assert isinstance(json.loads(raw), list)


def test_add_hanzi_entry_rejects_duplicates_and_words(data_dir: Path) -> None:
    path = data_dir / "hanzi.json"
    with pytest.raises(DuplicateEntryError):
        add_hanzi_entry("子", "zi", 3, "", path=path)
    with pytest.raises(DictionaryEditError):
        add_hanzi_entry("君子", "junzi", 1, "", path=path)
    assert len(load_hanzi_entries(path)) == 22


def test_update_hanzi_onyomi_fills_placeholder(data_dir: Path) -> None:
    path = data_dir / "hanzi.json"
    added = add_hanzi_entry("哉", "zai", 1, "感嘆", path=path)
    assert added.meanings[0].onyomi == "TODO"

    updated = update_hanzi_onyomi("哉", "zāi", "サイ", path=path)
    assert updated.onyomi == "サイ"
    entry = next(item for item in load_hanzi_entries(path) if item.id == "哉")
    assert entry.meanings[0].onyomi == "サイ"

    with pytest.raises(MissingEntryError):
        update_hanzi_onyomi("哉", "zāi", "ザイ", path=path)


def test_update_hanzi_onyomi_unknown_character(data_dir: Path) -> None:
    with pytest.raises(MissingEntryError):
        update_hanzi_onyomi("哉", "zāi", "サイ", path=data_dir / "hanzi.json")


def test_add_kunyomi_entry(data_dir: Path, monkeypatch) -> None:
    monkeypatch.setenv(DATA_DIR_ENV, str(data_dir))
    entry = add_kunyomi_entry(" 哉 ", "かな")
    assert entry.text == "哉"
    assert entry.readings[0].id == "哉-かな"
    assert load_kunyomi_entries()[-1] == entry
    assert default_kunyomi_table().get("哉") == "かな"

    with pytest.raises(DuplicateEntryError):
        add_kunyomi_entry("子", "こ")
    with pytest.raises(DictionaryEditError):
        add_kunyomi_entry("矣", " ")


def test_edits_replace_file_without_leftovers(data_dir: Path) -> None:
    path = data_dir / "kunyomi.json"
    before = len(load_kunyomi_entries(path))
    add_kunyomi_entry("哉", "かな", path=path)
    add_kunyomi_entry("矣", "い", path=path)
    assert len(load_kunyomi_entries(path)) == before + 2
    assert sorted(item.name for item in data_dir.iterdir()) == ["contents", "hanzi.json", "kunyomi.json"]
