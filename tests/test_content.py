from __future__ import annotations

import json
from pathlib import Path

from kanbun.content import (
    content_japanese_spans,
    find_content,
    load_contents,
    parse_content,
    serialize_content,
    validate_content,
)


def _record(**overrides: object) -> dict[str, object]:
    record: dict[str, object] = {
        "content_id": "test/1",
        "book_id": "test",
        "section": "s",
        "chapter": "1",
        "text": "子曰 學而-時習",
        "segments": [
            {"text": "子曰", "start_pos": 0, "end_pos": 2, "speaker": None},
            {"text": "學而-時習", "start_pos": 3, "end_pos": 8, "speaker": "kongzi"},
        ],
        "characters": {"speakers": ["kongzi"], "mentioned": []},
    }
    record.update(overrides)
    return record


def _messages(record: dict[str, object]) -> list[str]:
    return [error.message for error in validate_content(parse_content(record)).errors]


def test_bundled_contents_are_valid() -> None:
    contents = load_contents()
    assert [content.content_id for content in contents] == ["lunyu/1/1", "lunyu/1/2"]
    for content in contents:
        result = validate_content(content)
        assert result.valid, result.errors
        assert result.errors == []


def test_parse_content_reads_nested_records() -> None:
    content = find_content("lunyu/1/1")
    assert content is not None
    assert content.segments[1].speaker == "kongzi"
    assert content.characters is not None and content.characters.speakers == ("kongzi",)
    negation, said = content.content_hanzi
    assert negation.tone_change is not None
    assert negation.tone_change.changed_tone == 2
    assert said.meaning_id == "說-yuè"
    assert content.text[said.position] == "說"


def test_parse_content_skips_malformed_entries() -> None:
    content = parse_content(
        _record(
            segments=[{"text": "子曰", "start_pos": "0", "end_pos": 2}, "junk"],
            japanese_ruby=[{"position": 0, "text": "子"}, {"position": 1, "text": "曰", "ruby": "いわ"}],
            content_hanzi=[{"hanzi_id": "子"}, {"hanzi_id": "曰", "position": 1, "tone_change": {"original_tone": 1}}],
        )
    )
    assert content.segments == []
    assert [override.text for override in content.japanese_ruby] == ["曰"]
    assert len(content.content_hanzi) == 1
    assert content.content_hanzi[0].tone_change is None


def test_serialize_content_round_trips() -> None:
    content = find_content("lunyu/1/2")
    assert content is not None
    assert parse_content(serialize_content(content)) == content


def test_find_content_missing() -> None:
    assert find_content("lunyu/99/1") is None


def test_load_contents_from_single_file(tmp_path: Path) -> None:
    path = tmp_path / "one.json"
    path.write_text(json.dumps(_record(), ensure_ascii=False), encoding="utf-8")
    contents = load_contents(path)
    assert len(contents) == 1
    assert validate_content(contents[0]).valid


def test_missing_required_fields_stop_validation() -> None:
    result = validate_content(parse_content({"content_id": "x", "segments": []}))
    assert not result.valid
    assert [error.path for error in result.errors] == ["book_id", "section", "chapter", "text", "characters"]


def test_empty_segments() -> None:
    assert _messages(_record(segments=[]))[0] == "segments must not be empty"


def test_segment_bounds_and_text() -> None:
    messages = _messages(
        _record(
            segments=[
                {"text": "子曰", "start_pos": 0, "end_pos": 2},
                {"text": "學而-時習之", "start_pos": 3, "end_pos": 9, "speaker": "kongzi"},
            ]
        )
    )
    assert "end_pos (9) exceeds text length (8)" in messages
    assert "segment text does not match text slice" in messages


def test_overlapping_segments() -> None:
    messages = _messages(
        _record(
            segments=[
                {"text": "子曰 學", "start_pos": 0, "end_pos": 4},
                {"text": "學而-時習", "start_pos": 3, "end_pos": 8, "speaker": "kongzi"},
            ]
        )
    )
    assert "segment overlaps with previous segment" in messages


def test_forbidden_punctuation() -> None:
    record = _record(
        text="子曰。學而",
        segments=[{"text": "子曰。學而", "start_pos": 0, "end_pos": 5, "speaker": "kongzi"}],
    )
    assert _messages(record) == ["segment text contains forbidden punctuation: 。"]


def test_uncovered_text() -> None:
    record = _record(segments=[{"text": "學而-時", "start_pos": 3, "end_pos": 7, "speaker": "kongzi"}])
    messages = _messages(record)
    assert 'text before first segment is not covered: "子曰 "' in messages
    assert 'text after last segment is not covered: "習"' in messages


def test_gap_between_segments() -> None:
    record = _record(
        segments=[
            {"text": "子", "start_pos": 0, "end_pos": 1},
            {"text": "學而-時習", "start_pos": 3, "end_pos": 8, "speaker": "kongzi"},
        ]
    )
    assert _messages(record) == ['gap between segments contains non-whitespace: "曰 "']


def test_connector_placement() -> None:
    text = "子曰 -學而--時習-"
    record = _record(text=text, segments=[{"text": text, "start_pos": 0, "end_pos": len(text), "speaker": "kongzi"}])
    messages = _messages(record)
    assert "consecutive connection markers (--) are not allowed" in messages
    assert "connection marker at position 3 has no valid character before it" in messages
    assert "connection marker at position 6 has no valid character after it" in messages
    assert "connection marker at position 7 has no valid character before it" in messages
    assert "connection marker at position 10 has no valid character after it" in messages


def test_speakers() -> None:
    record = _record(characters={"speakers": ["kongzi", "youzi"], "mentioned": []})
    result = validate_content(parse_content(record))
    assert result.valid
    assert [warning.message for warning in result.warnings] == [
        '"youzi" is listed in characters.speakers but not used in any segment'
    ]

    record = _record(characters={"speakers": [], "mentioned": []})
    result = validate_content(parse_content(record))
    assert not result.valid
    assert result.errors[0].path == "characters.speakers"


def test_content_japanese_spans() -> None:
    content = find_content("lunyu/1/2")
    assert content is not None
    spans = content_japanese_spans(content)
    assert "".join(span.text for span in spans) == content.japanese
    assert [(span.text, span.reading) for span in spans[:3]] == [("有子", "ゆうし"), ("曰", "いわ"), ("く", "")]
    assert any(span.start == 9 and span.reading == "な" for span in spans)

    content.japanese = None
    assert content_japanese_spans(content) == []
