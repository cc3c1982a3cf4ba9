from __future__ import annotations

import html
import threading
from dataclasses import dataclass
from pathlib import Path

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse

from .content import (
    CONTENTS_DIRNAME,
    Content,
    content_japanese_spans,
    find_content,
    load_contents,
    serialize_content,
    validate_content,
)
from .dictionary import (
    HanziEntry,
    KunyomiEntry,
    ReadingTable,
    hanzi_path,
    kunyomi_path,
    kunyomi_table,
    load_hanzi_entries,
    load_kunyomi_entries,
    onyomi_table,
    pinyin_table,
    resolve_data_dir,
    serialize_hanzi_entries,
    serialize_kunyomi_entries,
)
from .editor import (
    DictionaryEditError,
    DuplicateEntryError,
    MissingEntryError,
    add_hanzi_entry,
    add_kunyomi_entry,
    update_hanzi_onyomi,
)
from .phonetic import convert_to_onyomi, convert_to_pinyin, strip_markers
from .ruby import AnnotatedSpan, Override, annotate, convert_to_hiragana, render_ruby_html
from .sandhi import annotate_hanzi

CONVERT_MODES = ("hiragana", "onyomi", "pinyin")
MAX_TEXT_LENGTH = 10_000


@dataclass(slots=True)
class WebConfig:
    data_dir: Path | None = None
    allow_edits: bool = False
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class _Snapshot:
    hanzi: list[HanziEntry]
    kunyomi: list[KunyomiEntry]
    hanzi_index: dict[str, HanziEntry]
    kunyomi_index: dict[str, KunyomiEntry]
    kunyomi_table: ReadingTable
    onyomi_table: ReadingTable
    pinyin_table: ReadingTable
    contents: list[Content]


def _load_snapshot(data_dir: Path) -> _Snapshot:
    hanzi = load_hanzi_entries(hanzi_path(data_dir))
    kunyomi = load_kunyomi_entries(kunyomi_path(data_dir))
    hanzi_index: dict[str, HanziEntry] = {}
    for entry in hanzi:
        hanzi_index.setdefault(entry.id, entry)
    kunyomi_index: dict[str, KunyomiEntry] = {}
    for entry in kunyomi:
        kunyomi_index.setdefault(entry.text, entry)
    contents_dir = data_dir / CONTENTS_DIRNAME
    contents = load_contents(contents_dir) if contents_dir.is_dir() else []
    return _Snapshot(
        hanzi=hanzi,
        kunyomi=kunyomi,
        hanzi_index=hanzi_index,
        kunyomi_index=kunyomi_index,
        kunyomi_table=kunyomi_table(kunyomi),
        onyomi_table=onyomi_table(hanzi),
        pinyin_table=pinyin_table(hanzi),
        contents=contents,
    )


def _span_payload(span: AnnotatedSpan) -> dict[str, object]:
    return {
        "start": span.start,
        "length": span.length,
        "text": span.text,
        "reading": span.reading,
    }


def _require_text(payload: dict[str, object], key: str = "text") -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f"{key} must be a string.")
    if len(value) > MAX_TEXT_LENGTH:
        raise HTTPException(status_code=413, detail=f"{key} exceeds {MAX_TEXT_LENGTH} characters.")
    return value


def _parse_overrides(raw: object) -> list[Override]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise HTTPException(status_code=400, detail="overrides must be a list.")
    overrides: list[Override] = []
    for item in raw:
        if not isinstance(item, dict):
            raise HTTPException(status_code=400, detail="Each override must be an object.")
        position = item.get("position")
        text = item.get("text")
        reading = item.get("reading", item.get("ruby"))
        if isinstance(position, bool) or not isinstance(position, int):
            raise HTTPException(status_code=400, detail="override position must be an integer.")
        if not isinstance(text, str) or not isinstance(reading, str):
            raise HTTPException(status_code=400, detail="override text and reading must be strings.")
        overrides.append(Override(position=position, text=text, reading=reading))
    return overrides


def _edit_error(exc: DictionaryEditError) -> HTTPException:
    if isinstance(exc, DuplicateEntryError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, MissingEntryError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def create_app(config: WebConfig) -> FastAPI:
    data_dir = config.data_dir or resolve_data_dir()
    app = FastAPI(title="kanbun")
    state_lock = threading.Lock()
    # Serializes read-modify-write of the dictionary files and the reload that follows.
    edit_lock = threading.Lock()
    state: dict[str, _Snapshot] = {"snapshot": _load_snapshot(data_dir)}

    def _snapshot() -> _Snapshot:
        with state_lock:
            return state["snapshot"]

    def _reload() -> None:
        fresh = _load_snapshot(data_dir)
        with state_lock:
            state["snapshot"] = fresh

    def _require_edits() -> None:
        if not config.allow_edits:
            raise HTTPException(status_code=403, detail="Dictionary editing is disabled.")

    def _content_or_404(content_id: str) -> Content:
        content = find_content(content_id, _snapshot().contents)
        if content is None:
            raise HTTPException(status_code=404, detail="Content not found")
        return content

    @app.get("/api/dictionary/hanzi")
    def api_hanzi() -> JSONResponse:
        return JSONResponse({"entries": serialize_hanzi_entries(_snapshot().hanzi)})

    @app.get("/api/dictionary/hanzi/{char}")
    def api_hanzi_entry(char: str) -> JSONResponse:
        entry = _snapshot().hanzi_index.get(char)
        if entry is None:
            raise HTTPException(status_code=404, detail="Hanzi entry not found")
        return JSONResponse(serialize_hanzi_entries([entry])[0])

    @app.get("/api/dictionary/kunyomi")
    def api_kunyomi() -> JSONResponse:
        return JSONResponse({"entries": serialize_kunyomi_entries(_snapshot().kunyomi)})

    @app.get("/api/dictionary/kunyomi/{text}")
    def api_kunyomi_entry(text: str) -> JSONResponse:
        entry = _snapshot().kunyomi_index.get(text)
        if entry is None:
            raise HTTPException(status_code=404, detail="Kunyomi entry not found")
        return JSONResponse(serialize_kunyomi_entries([entry])[0])

    @app.post("/api/dictionary/hanzi")
    def api_add_hanzi(payload: dict[str, object] = Body(...)) -> JSONResponse:
        _require_edits()
        character = payload.get("character")
        pinyin = payload.get("pinyin")
        tone = payload.get("tone")
        meaning = payload.get("meaning")
        if not isinstance(character, str) or not isinstance(pinyin, str) or not isinstance(meaning, str):
            raise HTTPException(status_code=400, detail="character, pinyin and meaning are required.")
        if isinstance(tone, bool) or not isinstance(tone, int):
            raise HTTPException(status_code=400, detail="tone must be an integer.")
        with edit_lock:
            try:
                entry = add_hanzi_entry(character, pinyin, tone, meaning, path=hanzi_path(data_dir))
            except DictionaryEditError as exc:
                raise _edit_error(exc) from exc
            _reload()
        return JSONResponse(serialize_hanzi_entries([entry])[0], status_code=201)

    @app.post("/api/dictionary/kunyomi")
    def api_add_kunyomi(payload: dict[str, object] = Body(...)) -> JSONResponse:
        _require_edits()
        character = payload.get("character")
        ruby = payload.get("ruby")
        if not isinstance(character, str) or not isinstance(ruby, str):
            raise HTTPException(status_code=400, detail="character and ruby are required.")
        with edit_lock:
            try:
                entry = add_kunyomi_entry(character, ruby, path=kunyomi_path(data_dir))
            except DictionaryEditError as exc:
                raise _edit_error(exc) from exc
            _reload()
        return JSONResponse(serialize_kunyomi_entries([entry])[0], status_code=201)

    @app.patch("/api/dictionary/hanzi/{char}/onyomi")
    def api_update_onyomi(char: str, payload: dict[str, object] = Body(...)) -> JSONResponse:
        _require_edits()
        pinyin = payload.get("pinyin")
        onyomi = payload.get("onyomi")
        if not isinstance(pinyin, str) or not isinstance(onyomi, str) or not onyomi.strip():
            raise HTTPException(status_code=400, detail="pinyin and onyomi are required.")
        with edit_lock:
            try:
                meaning = update_hanzi_onyomi(char, pinyin, onyomi.strip(), path=hanzi_path(data_dir))
            except DictionaryEditError as exc:
                raise _edit_error(exc) from exc
            _reload()
        return JSONResponse({"id": meaning.id, "onyomi": meaning.onyomi, "pinyin": meaning.pinyin})

    @app.post("/api/annotate")
    def api_annotate(payload: dict[str, object] = Body(...)) -> JSONResponse:
        text = _require_text(payload)
        overrides = _parse_overrides(payload.get("overrides"))
        spans = annotate(text, overrides, _snapshot().kunyomi_table)
        return JSONResponse(
            {
                "text": text,
                "spans": [_span_payload(span) for span in spans],
                "html": render_ruby_html(spans),
            }
        )

    @app.post("/api/convert")
    def api_convert(payload: dict[str, object] = Body(...)) -> JSONResponse:
        text = _require_text(payload)
        mode = payload.get("mode", "hiragana")
        snapshot = _snapshot()
        if mode == "hiragana":
            result = convert_to_hiragana(text, snapshot.kunyomi_table)
        elif mode == "onyomi":
            result = convert_to_onyomi(text, snapshot.onyomi_table)
        elif mode == "pinyin":
            result = convert_to_pinyin(text, snapshot.pinyin_table)
        else:
            raise HTTPException(status_code=400, detail=f"mode must be one of {', '.join(CONVERT_MODES)}.")
        return JSONResponse({"text": text, "mode": mode, "result": result})

    @app.post("/api/hanzi")
    def api_hanzi_glyphs(payload: dict[str, object] = Body(...)) -> JSONResponse:
        text = _require_text(payload)
        mode = payload.get("mode", "pinyin")
        if mode not in ("onyomi", "pinyin"):
            raise HTTPException(status_code=400, detail="mode must be onyomi or pinyin.")
        glyphs = annotate_hanzi(text, mode, hanzi_index=_snapshot().hanzi_index)
        return JSONResponse(
            {
                "mode": mode,
                "glyphs": [
                    {
                        "char": glyph.char,
                        "position": glyph.position,
                        "group": glyph.group,
                        "ruby": glyph.ruby,
                        "original_tone": glyph.original_tone,
                        "effective_tone": glyph.effective_tone,
                    }
                    for glyph in glyphs
                ],
            }
        )

    @app.get("/api/contents")
    def api_contents() -> JSONResponse:
        return JSONResponse(
            {
                "contents": [
                    {
                        "content_id": content.content_id,
                        "book_id": content.book_id,
                        "section": content.section,
                        "chapter": content.chapter,
                        "text": strip_markers(content.text),
                    }
                    for content in _snapshot().contents
                ]
            }
        )

    @app.get("/api/contents/{content_id:path}/validate")
    def api_validate_content(content_id: str) -> JSONResponse:
        result = validate_content(_content_or_404(content_id))
        return JSONResponse(
            {
                "valid": result.valid,
                "errors": [
                    {"path": error.path, "message": error.message, "severity": error.severity}
                    for error in result.errors
                ],
            }
        )

    @app.get("/api/contents/{content_id:path}")
    def api_content(content_id: str) -> JSONResponse:
        content = _content_or_404(content_id)
        payload = serialize_content(content)
        snapshot = _snapshot()
        payload["japanese_spans"] = [
            _span_payload(span) for span in content_japanese_spans(content, snapshot.kunyomi_table)
        ]
        payload["onyomi"] = convert_to_onyomi(content.text, snapshot.onyomi_table)
        return JSONResponse(payload)

    @app.get("/contents/{content_id:path}", response_class=HTMLResponse)
    def content_page(content_id: str) -> str:
        content = _content_or_404(content_id)
        spans = content_japanese_spans(content, _snapshot().kunyomi_table)
        title = html.escape(content.content_id)
        return (
            '<!DOCTYPE html>\n<html lang="ja">\n<head><meta charset="utf-8">'
            f"<title>{title}</title></head>\n<body>\n"
            f"<h1>{title}</h1>\n"
            f"<p class=\"hakubun\">{html.escape(strip_markers(content.text))}</p>\n"
            f"<p class=\"japanese\">{render_ruby_html(spans)}</p>\n"
            "</body>\n</html>\n"
        )

    return app
