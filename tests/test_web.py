from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from kanbun.dictionary import load_kunyomi_entries
from kanbun.web import MAX_TEXT_LENGTH, WebConfig, create_app


@pytest.fixture
def client(data_dir: Path) -> TestClient:
    return TestClient(create_app(WebConfig(data_dir=data_dir)))


@pytest.fixture
def editor_client(data_dir: Path) -> TestClient:
    return TestClient(create_app(WebConfig(data_dir=data_dir, allow_edits=True)))


def test_dictionary_listing_and_lookup(client: TestClient) -> None:
    response = client.get("/api/dictionary/hanzi")
    assert response.status_code == 200
    assert len(response.json()["entries"]) == 22

    entry = client.get("/api/dictionary/hanzi/說").json()
    assert [meaning["pinyin"] for meaning in entry["meanings"]] == ["yuè", "shuō", "shuì"]

    reading = client.get("/api/dictionary/kunyomi/有子").json()
    assert reading["readings"][0]["ruby"] == "ゆうし"

    assert client.get("/api/dictionary/hanzi/哉").status_code == 404
    assert client.get("/api/dictionary/kunyomi/哉").status_code == 404


def test_annotate_endpoint(client: TestClient) -> None:
    response = client.post(
        "/api/annotate",
        json={"text": "有子曰く", "overrides": [{"position": 2, "text": "曰", "reading": "のたま"}]},
    )
    assert response.status_code == 200
    payload = response.json()
    assert [(span["text"], span["reading"]) for span in payload["spans"]] == [
        ("有子", "ゆうし"),
        ("曰", "のたま"),
        ("く", ""),
    ]
    assert payload["html"].startswith("<ruby>有子<rt>ゆうし</rt></ruby>")


def test_annotate_rejects_bad_payloads(client: TestClient) -> None:
    assert client.post("/api/annotate", json={"text": 1}).status_code == 400
    assert client.post("/api/annotate", json={"text": "子", "overrides": {}}).status_code == 400
    bad_override = {"text": "子", "overrides": [{"position": "0", "text": "子", "reading": "こ"}]}
    assert client.post("/api/annotate", json=bad_override).status_code == 400
    too_long = {"text": "子" * (MAX_TEXT_LENGTH + 1)}
    assert client.post("/api/annotate", json=too_long).status_code == 413


@pytest.mark.parametrize(
    ("mode", "text", "expected"),
    [
        ("hiragana", "子曰く", "しいわく"),
        ("onyomi", "不-亦說乎", "フエキエツコ"),
        ("pinyin", "學而 時習", "xué ér{{PAUSE}}shí xí"),
    ],
)
def test_convert_endpoint(client: TestClient, mode: str, text: str, expected: str) -> None:
    response = client.post("/api/convert", json={"text": text, "mode": mode})
    assert response.status_code == 200
    assert response.json() == {"text": text, "mode": mode, "result": expected}


def test_convert_rejects_unknown_mode(client: TestClient) -> None:
    assert client.post("/api/convert", json={"text": "子", "mode": "romaji"}).status_code == 400


def test_hanzi_glyph_endpoint(client: TestClient) -> None:
    response = client.post("/api/hanzi", json={"text": "不-亦", "mode": "pinyin"})
    glyphs = response.json()["glyphs"]
    assert [(glyph["char"], glyph["position"], glyph["effective_tone"]) for glyph in glyphs] == [
        ("不", 0, 2),
        ("亦", 2, 4),
    ]
    assert client.post("/api/hanzi", json={"text": "不", "mode": "hiragana"}).status_code == 400


def test_contents_endpoints(client: TestClient) -> None:
    listing = client.get("/api/contents").json()["contents"]
    assert [item["content_id"] for item in listing] == ["lunyu/1/1", "lunyu/1/2"]
    assert "-" not in listing[0]["text"]

    detail = client.get("/api/contents/lunyu/1/2").json()
    assert detail["content_id"] == "lunyu/1/2"
    assert detail["japanese_spans"][0] == {"start": 0, "length": 2, "text": "有子", "reading": "ゆうし"}
    assert detail["onyomi"].startswith("ユウシエツ{{PAUSE}}")

    validation = client.get("/api/contents/lunyu/1/1/validate").json()
    assert validation == {"valid": True, "errors": []}

    assert client.get("/api/contents/lunyu/9/9").status_code == 404
    assert client.get("/api/contents/lunyu/9/9/validate").status_code == 404


def test_content_page_renders_ruby(client: TestClient) -> None:
    response = client.get("/contents/lunyu/1/1")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "<ruby>子<rt>し</rt></ruby>" in response.text
    assert "不亦說乎" in response.text


def test_edits_are_disabled_by_default(client: TestClient) -> None:
    response = client.post("/api/dictionary/kunyomi", json={"character": "哉", "ruby": "かな"})
    assert response.status_code == 403


def test_add_entries_and_reload(editor_client: TestClient, data_dir: Path) -> None:
    response = editor_client.post("/api/dictionary/kunyomi", json={"character": "哉", "ruby": "かな"})
    assert response.status_code == 201
    assert editor_client.get("/api/dictionary/kunyomi/哉").status_code == 200
    converted = editor_client.post("/api/convert", json={"text": "哉", "mode": "hiragana"}).json()
    assert converted["result"] == "かな"

    response = editor_client.post(
        "/api/dictionary/hanzi",
        json={"character": "哉", "pinyin": "zai", "tone": 1, "meaning": "感嘆"},
    )
    assert response.status_code == 201
    assert response.json()["meanings"][0]["onyomi"] == "TODO"
    assert "哉" in (data_dir / "hanzi.json").read_text(encoding="utf-8")

    response = editor_client.patch("/api/dictionary/hanzi/哉/onyomi", json={"pinyin": "zāi", "onyomi": "サイ"})
    assert response.status_code == 200
    assert response.json() == {"id": "哉-zāi", "onyomi": "サイ", "pinyin": "zāi"}
    converted = editor_client.post("/api/convert", json={"text": "哉", "mode": "onyomi"}).json()
    assert converted["result"] == "サイ"


def test_edit_errors_map_to_status_codes(editor_client: TestClient) -> None:
    duplicate = editor_client.post("/api/dictionary/kunyomi", json={"character": "子", "ruby": "こ"})
    assert duplicate.status_code == 409
    missing = editor_client.patch("/api/dictionary/hanzi/哉/onyomi", json={"pinyin": "zāi", "onyomi": "サイ"})
    assert missing.status_code == 404
    invalid = editor_client.post(
        "/api/dictionary/hanzi",
        json={"character": "哉", "pinyin": "zai", "tone": 9, "meaning": ""},
    )
    assert invalid.status_code == 400
    assert editor_client.post("/api/dictionary/hanzi", json={"character": "哉"}).status_code == 400


def test_concurrent_edits_are_all_stored(editor_client: TestClient, data_dir: Path) -> None:
    characters = [chr(0x9F00 + offset) for offset in range(40)]

    def add(character: str) -> int:
        response = editor_client.post("/api/dictionary/kunyomi", json={"character": character, "ruby": "て"})
        return response.status_code

    with ThreadPoolExecutor(max_workers=16) as pool:
        statuses = list(pool.map(add, characters))

    assert statuses == [201] * len(characters)
    stored = {entry.text for entry in load_kunyomi_entries(data_dir / "kunyomi.json")}
    assert set(characters) <= stored
    for character in characters:
        assert editor_client.get(f"/api/dictionary/kunyomi/{character}").status_code == 200
    assert not list(data_dir.glob(".*.tmp"))
