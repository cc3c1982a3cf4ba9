from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Literal, Mapping

from .dictionary import ReadingTable, resolve_data_dir
from .phonetic import CONNECTOR
from .ruby import AnnotatedSpan, Override, annotate_japanese
from .sandhi import ToneChange

__all__ = [
    "CONTENTS_DIRNAME",
    "FORBIDDEN_PUNCTUATION",
    "Content",
    "ContentCharacters",
    "ContentHanzi",
    "Segment",
    "ValidationError",
    "ValidationResult",
    "content_japanese_spans",
    "find_content",
    "load_contents",
    "parse_content",
    "serialize_content",
    "validate_content",
]

CONTENTS_DIRNAME = "contents"

# Segment text carries only ideographs, spaces and markers; punctuation lives in the Japanese reading.
FORBIDDEN_PUNCTUATION = "。、，；：！？「」『』（）【】…・．"

_REQUIRED_FIELDS = ("content_id", "book_id", "section", "chapter", "text")

Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class Segment:
    text: str
    start_pos: int
    end_pos: int
    speaker: str | None = None


@dataclass(frozen=True)
class ContentCharacters:
    speakers: tuple[str, ...] = ()
    mentioned: tuple[str, ...] = ()


@dataclass(frozen=True)
class ContentHanzi:
    hanzi_id: str
    position: int
    meaning_id: str | None = None
    tone_change: ToneChange | None = None


@dataclass
class Content:
    content_id: str
    book_id: str
    section: str
    chapter: str
    text: str
    segments: list[Segment] = field(default_factory=list)
    characters: ContentCharacters | None = None
    japanese: str | None = None
    japanese_ruby: list[Override] = field(default_factory=list)
    content_hanzi: list[ContentHanzi] = field(default_factory=list)


@dataclass(frozen=True)
class ValidationError:
    path: str
    message: str
    severity: Severity = "error"


@dataclass
class ValidationResult:
    valid: bool
    errors: list[ValidationError]

    @property
    def warnings(self) -> list[ValidationError]:
        return [error for error in self.errors if error.severity == "warning"]


def _str(value: object) -> str:
    return value if isinstance(value, str) else ""


def _int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    return value if isinstance(value, int) else None


def _str_tuple(value: object) -> tuple[str, ...] | None:
    if not isinstance(value, list):
        return None
    return tuple(item for item in value if isinstance(item, str))


def _parse_tone_change(value: object) -> ToneChange | None:
    if not isinstance(value, Mapping):
        return None
    original = _int(value.get("original_tone"))
    changed = _int(value.get("changed_tone"))
    if original is None or changed is None:
        return None
    return ToneChange(original_tone=original, changed_tone=changed, reason=_str(value.get("reason")))


def parse_content(data: Mapping[str, object]) -> Content:
    """Build a :class:`Content` from its JSON form; malformed nested records are skipped."""
    segments: list[Segment] = []
    raw_segments = data.get("segments")
    if isinstance(raw_segments, list):
        for item in raw_segments:
            if not isinstance(item, Mapping):
                continue
            start = _int(item.get("start_pos"))
            end = _int(item.get("end_pos"))
            if start is None or end is None:
                continue
            speaker = item.get("speaker")
            segments.append(
                Segment(
                    text=_str(item.get("text")),
                    start_pos=start,
                    end_pos=end,
                    speaker=speaker if isinstance(speaker, str) else None,
                )
            )

    characters: ContentCharacters | None = None
    raw_characters = data.get("characters")
    if isinstance(raw_characters, Mapping):
        speakers = _str_tuple(raw_characters.get("speakers"))
        mentioned = _str_tuple(raw_characters.get("mentioned"))
        if speakers is not None and mentioned is not None:
            characters = ContentCharacters(speakers=speakers, mentioned=mentioned)

    japanese_ruby: list[Override] = []
    raw_ruby = data.get("japanese_ruby")
    if isinstance(raw_ruby, list):
        for item in raw_ruby:
            if not isinstance(item, Mapping):
                continue
            position = _int(item.get("position"))
            text = item.get("text")
            ruby = item.get("ruby")
            if position is None or not isinstance(text, str) or not isinstance(ruby, str):
                continue
            japanese_ruby.append(Override(position=position, text=text, reading=ruby))

    content_hanzi: list[ContentHanzi] = []
    raw_hanzi = data.get("content_hanzi")
    if isinstance(raw_hanzi, list):
        for item in raw_hanzi:
            if not isinstance(item, Mapping):
                continue
            hanzi_id = item.get("hanzi_id")
            position = _int(item.get("position"))
            if not isinstance(hanzi_id, str) or position is None:
                continue
            meaning_id = item.get("meaning_id")
            content_hanzi.append(
                ContentHanzi(
                    hanzi_id=hanzi_id,
                    position=position,
                    meaning_id=meaning_id if isinstance(meaning_id, str) else None,
                    tone_change=_parse_tone_change(item.get("tone_change")),
                )
            )

    japanese = data.get("japanese")
    return Content(
        content_id=_str(data.get("content_id")),
        book_id=_str(data.get("book_id")),
        section=_str(data.get("section")),
        chapter=_str(data.get("chapter")),
        text=_str(data.get("text")),
        segments=segments,
        characters=characters,
        japanese=japanese if isinstance(japanese, str) else None,
        japanese_ruby=japanese_ruby,
        content_hanzi=content_hanzi,
    )


def serialize_content(content: Content) -> dict[str, object]:
    payload: dict[str, object] = {
        "content_id": content.content_id,
        "book_id": content.book_id,
        "section": content.section,
        "chapter": content.chapter,
        "text": content.text,
        "segments": [
            {
                "text": segment.text,
                "start_pos": segment.start_pos,
                "end_pos": segment.end_pos,
                "speaker": segment.speaker,
            }
            for segment in content.segments
        ],
        "characters": (
            {
                "speakers": list(content.characters.speakers),
                "mentioned": list(content.characters.mentioned),
            }
            if content.characters is not None
            else None
        ),
        "japanese": content.japanese,
        "japanese_ruby": [
            {"position": item.position, "text": item.text, "ruby": item.reading}
            for item in content.japanese_ruby
        ],
    }
    hanzi: list[dict[str, object]] = []
    for item in content.content_hanzi:
        entry: dict[str, object] = {"hanzi_id": item.hanzi_id, "position": item.position}
        if item.meaning_id:
            entry["meaning_id"] = item.meaning_id
        if item.tone_change is not None:
            entry["tone_change"] = {
                "original_tone": item.tone_change.original_tone,
                "changed_tone": item.tone_change.changed_tone,
                "reason": item.tone_change.reason,
            }
        hanzi.append(entry)
    payload["content_hanzi"] = hanzi
    return payload


def load_contents(path: Path | None = None) -> list[Content]:
    """Load content records from a JSON file or every ``*.json`` file in a directory."""
    target = path or (resolve_data_dir() / CONTENTS_DIRNAME)
    files = sorted(target.glob("*.json")) if target.is_dir() else [target]
    contents: list[Content] = []
    for file in files:
        raw = json.loads(file.read_text(encoding="utf-8"))
        if isinstance(raw, Mapping):
            raw = [raw]
        if not isinstance(raw, list):
            raise ValueError(f"Expected a JSON array or object in {file}")
        contents.extend(parse_content(item) for item in raw if isinstance(item, Mapping))
    return contents


def find_content(content_id: str, contents: Iterable[Content] | None = None) -> Content | None:
    for content in contents if contents is not None else load_contents():
        if content.content_id == content_id:
            return content
    return None


def _validate_required_fields(content: Content) -> list[ValidationError]:
    errors: list[ValidationError] = []
    for name in _REQUIRED_FIELDS:
        if not getattr(content, name):
            errors.append(ValidationError(path=name, message=f"{name} is required and must be a non-empty string"))
    if content.characters is None:
        errors.append(ValidationError(path="characters", message="characters is required"))
    return errors


def _validate_segments(segments: list[Segment], text: str) -> list[ValidationError]:
    errors: list[ValidationError] = []
    if not segments:
        return [ValidationError(path="segments", message="segments must not be empty")]

    ordered = sorted(enumerate(segments), key=lambda item: item[1].start_pos)
    previous: Segment | None = None
    for index, segment in ordered:
        prefix = f"segments[{index}]"
        if segment.start_pos < 0:
            errors.append(ValidationError(path=f"{prefix}.start_pos", message="start_pos must be >= 0"))
        if segment.end_pos > len(text):
            errors.append(
                ValidationError(
                    path=f"{prefix}.end_pos",
                    message=f"end_pos ({segment.end_pos}) exceeds text length ({len(text)})",
                )
            )
        if segment.start_pos >= segment.end_pos:
            errors.append(
                ValidationError(
                    path=prefix,
                    message=(
                        f"start_pos ({segment.start_pos}) must be less than end_pos ({segment.end_pos})"
                    ),
                )
            )
        if segment.text != text[segment.start_pos : segment.end_pos]:
            errors.append(ValidationError(path=f"{prefix}.text", message="segment text does not match text slice"))
        if previous is not None and segment.start_pos < previous.end_pos:
            errors.append(ValidationError(path=prefix, message="segment overlaps with previous segment"))
        forbidden = sorted({ch for ch in segment.text if ch in FORBIDDEN_PUNCTUATION})
        if forbidden:
            errors.append(
                ValidationError(
                    path=f"{prefix}.text",
                    message=f"segment text contains forbidden punctuation: {''.join(forbidden)}",
                )
            )
        previous = segment

    first = ordered[0][1]
    last = ordered[-1][1]
    leading = text[: max(first.start_pos, 0)]
    if leading.strip():
        errors.append(ValidationError(path="segments", message=f'text before first segment is not covered: "{leading}"'))
    trailing = text[last.end_pos :]
    if trailing.strip():
        errors.append(ValidationError(path="segments", message=f'text after last segment is not covered: "{trailing}"'))
    for (_, before), (_, after) in zip(ordered, ordered[1:]):
        gap = text[before.end_pos : after.start_pos]
        if gap.strip():
            errors.append(
                ValidationError(path="segments", message=f'gap between segments contains non-whitespace: "{gap}"')
            )
    return errors


def _validate_connectors(text: str) -> list[ValidationError]:
    errors: list[ValidationError] = []
    doubled = CONNECTOR * 2
    if doubled in text:
        errors.append(
            ValidationError(path="text", message=f"consecutive connection markers ({doubled}) are not allowed")
        )
    for idx, ch in enumerate(text):
        if ch != CONNECTOR:
            continue
        before = text[idx - 1] if idx > 0 else ""
        after = text[idx + 1] if idx + 1 < len(text) else ""
        if not before or before.isspace() or before == CONNECTOR:
            errors.append(
                ValidationError(path="text", message=f"connection marker at position {idx} has no valid character before it")
            )
        if not after or after.isspace() or after == CONNECTOR:
            errors.append(
                ValidationError(path="text", message=f"connection marker at position {idx} has no valid character after it")
            )
    return errors


def _validate_speakers(content: Content) -> list[ValidationError]:
    errors: list[ValidationError] = []
    listed = content.characters.speakers if content.characters is not None else ()
    used: list[str] = []
    for segment in content.segments:
        if segment.speaker is not None and segment.speaker not in used:
            used.append(segment.speaker)
    for speaker in used:
        if speaker not in listed:
            errors.append(
                ValidationError(
                    path="characters.speakers",
                    message=f'segment speaker "{speaker}" is not listed in characters.speakers',
                )
            )
    for speaker in listed:
        if speaker not in used:
            errors.append(
                ValidationError(
                    path="characters.speakers",
                    message=f'"{speaker}" is listed in characters.speakers but not used in any segment',
                    severity="warning",
                )
            )
    return errors


def validate_content(content: Content) -> ValidationResult:
    errors = _validate_required_fields(content)
    if errors:
        return ValidationResult(valid=False, errors=errors)
    errors.extend(_validate_segments(content.segments, content.text))
    errors.extend(_validate_connectors(content.text))
    errors.extend(_validate_speakers(content))
    valid = not any(error.severity == "error" for error in errors)
    return ValidationResult(valid=valid, errors=errors)


def content_japanese_spans(content: Content, dictionary: ReadingTable | None = None) -> list[AnnotatedSpan]:
    if not content.japanese:
        return []
    return annotate_japanese(content.japanese, content.japanese_ruby, dictionary)
