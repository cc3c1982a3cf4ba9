from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Literal, Mapping

from .dictionary import ONYOMI_PLACEHOLDER, HanziEntry, HanziMeaning, default_hanzi_index, default_tone_table
from .phonetic import CONNECTOR

if TYPE_CHECKING:
    from .content import ContentHanzi

__all__ = [
    "HanziGlyph",
    "SandhiResult",
    "ToneChange",
    "annotate_hanzi",
    "parse_tone_sandhi",
    "tone_changes",
]

DisplayMode = Literal["onyomi", "pinyin"]

_NEGATION = "不"


@dataclass(frozen=True)
class ToneChange:
    original_tone: int
    changed_tone: int
    reason: str


@dataclass
class SandhiResult:
    chars: list[str]
    original_tones: list[int | None]
    effective_tones: list[int | None]
    # True where a connector joins the character to the one before it.
    connected: list[bool]


@dataclass(frozen=True)
class HanziGlyph:
    char: str
    position: int
    group: int
    ruby: str | None = None
    original_tone: int | None = None
    effective_tone: int | None = None


def _split_connected(text: str) -> tuple[list[str], list[int], list[bool]]:
    chars: list[str] = []
    positions: list[int] = []
    connected: list[bool] = []
    pending = False
    for idx, ch in enumerate(text):
        if ch == CONNECTOR:
            pending = True
            continue
        connected.append(pending and bool(chars))
        chars.append(ch)
        positions.append(idx)
        pending = False
    return chars, positions, connected


def _sandhi_target(current: int | None, following: int | None) -> int | None:
    if current == 4 and following == 4:
        return 2
    if current == 3 and following == 3:
        return 2
    return None


def _apply_sandhi(original: list[int | None], connected: list[bool]) -> list[int | None]:
    effective = list(original)
    for idx in range(1, len(original)):
        if not connected[idx]:
            continue
        changed = _sandhi_target(original[idx - 1], original[idx])
        if changed is not None:
            effective[idx - 1] = changed
    return effective


def parse_tone_sandhi(text: str, tones: Mapping[str, int] | None = None) -> SandhiResult:
    """
    Drop connector markers from ``text`` and resolve tone sandhi inside connected groups.

    Original tones come from ``tones`` (the default hanzi dictionary when
    omitted). Inside a group, 4+4 reads as 2+4 and 3+3 as 2+3; both rules
    look at original tones only.
    """
    table = tones if tones is not None else default_tone_table()
    chars, _, connected = _split_connected(text)
    original = [table.get(ch) for ch in chars]
    return SandhiResult(
        chars=chars,
        original_tones=original,
        effective_tones=_apply_sandhi(original, connected),
        connected=connected,
    )


def tone_changes(result: SandhiResult) -> list[tuple[int, ToneChange]]:
    changes: list[tuple[int, ToneChange]] = []
    for idx, (original, effective) in enumerate(zip(result.original_tones, result.effective_tones)):
        if original is None or effective is None or original == effective:
            continue
        following = result.original_tones[idx + 1] if idx + 1 < len(result.chars) else None
        if result.chars[idx] == _NEGATION:
            reason = f"不+{following}声→{effective}声"
        else:
            reason = f"{original}声+{following}声→{effective}声+{following}声"
        changes.append((idx, ToneChange(original_tone=original, changed_tone=effective, reason=reason)))
    return changes


def _select_meaning(entry: HanziEntry | None, meaning_id: str | None) -> HanziMeaning | None:
    if entry is None:
        return None
    if meaning_id:
        chosen = entry.meaning_by_id(meaning_id)
        if chosen is not None:
            return chosen
    return entry.default_meaning


def annotate_hanzi(
    text: str,
    mode: DisplayMode,
    content_hanzi: Iterable["ContentHanzi"] | None = None,
    hanzi_index: Mapping[str, HanziEntry] | None = None,
) -> list[HanziGlyph]:
    """
    Per-character ruby for the on'yomi and pinyin display modes.

    ``content_hanzi`` entries are keyed by their position in ``text``
    (connectors included) and may pick a non-default meaning or pin a tone
    change. Tones are only reported in pinyin mode; whitespace starts a new
    display group and produces no glyph.
    """
    if mode not in ("onyomi", "pinyin"):
        raise ValueError(f"Unsupported display mode: {mode}")
    index = hanzi_index if hanzi_index is not None else default_hanzi_index()
    by_position = {item.position: item for item in (content_hanzi or ())}
    chars, positions, connected = _split_connected(text)

    meanings: list[HanziMeaning | None] = []
    for ch, position in zip(chars, positions):
        pinned = by_position.get(position)
        meaning_id = pinned.meaning_id if pinned is not None and pinned.hanzi_id == ch else None
        meanings.append(_select_meaning(index.get(ch), meaning_id))

    original = [meaning.tone if meaning is not None else None for meaning in meanings]
    effective = _apply_sandhi(original, connected)
    for idx, position in enumerate(positions):
        pinned = by_position.get(position)
        if pinned is not None and pinned.hanzi_id == chars[idx] and pinned.tone_change is not None:
            effective[idx] = pinned.tone_change.changed_tone

    glyphs: list[HanziGlyph] = []
    group = 0
    for idx, ch in enumerate(chars):
        if ch.isspace():
            group += 1
            continue
        meaning = meanings[idx]
        ruby: str | None = None
        if meaning is not None:
            ruby = meaning.onyomi if mode == "onyomi" else meaning.pinyin
            if ruby == ONYOMI_PLACEHOLDER:
                ruby = None
        show_tones = mode == "pinyin"
        glyphs.append(
            HanziGlyph(
                char=ch,
                position=positions[idx],
                group=group,
                ruby=ruby,
                original_tone=original[idx] if show_tones else None,
                effective_tone=effective[idx] if show_tones else None,
            )
        )
    return glyphs
