from __future__ import annotations

from kanbun.dictionary import HanziEntry, HanziMeaning, onyomi_table
from kanbun.phonetic import PAUSE_PLACEHOLDER, convert_to_onyomi, convert_to_pinyin, strip_markers
from kanbun.ruby import Override


def test_onyomi_drops_connectors() -> None:
    assert convert_to_onyomi("不-亦") == "フエキ"


def test_onyomi_whitespace_becomes_pause() -> None:
    assert convert_to_onyomi("學而 時習") == f"ガクジ{PAUSE_PLACEHOLDER}ジシュウ"
    assert convert_to_onyomi("學而時習之 不-亦說乎") == "ガクジジシュウシ{{PAUSE}}フエキエツコ"


def test_onyomi_boundary_reads_as_comma_and_pause() -> None:
    assert convert_to_onyomi("學而;時習") == "ガクジ、{{PAUSE}}ジシュウ"


def test_onyomi_keeps_unknown_characters() -> None:
    assert convert_to_onyomi("學A") == "ガクA"


def test_onyomi_placeholder_is_not_a_reading() -> None:
    table = onyomi_table(
        [
            HanziEntry(
                id="乎",
                meanings=(HanziMeaning(id="乎-hū", onyomi="TODO", pinyin="hū", tone=1, meaning_ja="", is_default=True),),
            )
        ]
    )
    assert convert_to_onyomi("乎", dictionary=table) == "乎"


def test_onyomi_honours_overrides() -> None:
    overrides = [Override(position=0, text="說", reading="セツ")]
    assert convert_to_onyomi("說乎", overrides=overrides) == "セツコ"


def test_pinyin_separates_syllables_within_a_phrase() -> None:
    assert convert_to_pinyin("學而 時習") == "xué ér{{PAUSE}}shí xí"
    assert convert_to_pinyin("不-亦說乎") == "bù yì yuè hū"


def test_pinyin_boundary_and_unknown_characters() -> None:
    assert convert_to_pinyin("學而;時習") == "xué ér、{{PAUSE}}shí xí"
    assert convert_to_pinyin("學X") == "xué X"
    assert convert_to_pinyin("") == ""


def test_strip_markers() -> None:
    assert strip_markers("不-亦說乎;有朋") == "不亦說乎有朋"
    assert strip_markers("學而 時習") == "學而 時習"
