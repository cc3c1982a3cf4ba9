from __future__ import annotations

import argparse
import os
import sys
from importlib import metadata
from pathlib import Path

import tomllib
import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .content import find_content, load_contents, validate_content
from .dictionary import (
    DATA_DIR_ENV,
    ONYOMI_PLACEHOLDER,
    default_hanzi_index,
    default_kunyomi_index,
    hanzi_path,
    load_hanzi_entries,
    validate_hanzi_dictionary,
)
from .editor import DictionaryEditError, add_hanzi_entry, add_kunyomi_entry, update_hanzi_onyomi
from .logging_utils import build_uvicorn_log_config
from .phonetic import convert_to_onyomi, convert_to_pinyin
from .ruby import Override, annotate, convert_to_hiragana, render_ruby_html, set_debug_logging
from .sandhi import parse_tone_sandhi, tone_changes
from .web import WebConfig, create_app

COMMANDS = ("annotate", "hiragana", "onyomi", "pinyin", "sandhi", "validate", "dict", "web")


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("kanbun")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"kanbun {__version__}",
    )


def _add_text_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "text",
        nargs="+",
        help="Text to process. Wrap the phrase in quotes to keep its spaces.",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="kanbun",
        description=(
            "Ruby annotation and reading conversion for classical Chinese texts. "
            f"Commands: {', '.join(COMMANDS)}."
        ),
    )
    _add_version_flag(ap)
    ap.add_argument("command", choices=COMMANDS, help="Command to run.")
    return ap


def build_annotate_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="kanbun annotate",
        description="Split text into ruby spans using the kun'yomi dictionary.",
    )
    _add_version_flag(ap)
    _add_text_argument(ap)
    ap.add_argument(
        "-O",
        "--override",
        action="append",
        default=[],
        metavar="POS:TEXT:READING",
        help="Force READING for TEXT at offset POS (repeatable).",
    )
    ap.add_argument(
        "--html",
        action="store_true",
        help="Print <ruby> markup instead of a span table.",
    )
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Report overrides that no longer match the text.",
    )
    return ap


def build_convert_parser(command: str) -> argparse.ArgumentParser:
    descriptions = {
        "hiragana": "Convert Japanese text to hiragana with the kun'yomi dictionary.",
        "onyomi": "Convert classical Chinese text to katakana on'yomi with pause markers.",
        "pinyin": "Convert classical Chinese text to pinyin with pause markers.",
    }
    ap = argparse.ArgumentParser(prog=f"kanbun {command}", description=descriptions[command])
    _add_version_flag(ap)
    _add_text_argument(ap)
    return ap


def build_sandhi_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="kanbun sandhi",
        description="Show original and effective tones; join characters with '-' to mark sandhi groups.",
    )
    _add_version_flag(ap)
    _add_text_argument(ap)
    return ap


def build_validate_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="kanbun validate",
        description="Validate content records (segments, connection markers, speakers).",
    )
    _add_version_flag(ap)
    ap.add_argument(
        "path",
        nargs="?",
        help=f"Content JSON file or directory (default: contents under ${DATA_DIR_ENV} or the bundled data).",
    )
    ap.add_argument("--content-id", help="Only validate this content id.")
    return ap


def build_dict_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="kanbun dict",
        description="Inspect and edit the hanzi and kun'yomi dictionaries.",
    )
    _add_version_flag(ap)
    subparsers = ap.add_subparsers(dest="dict_cmd")

    show = subparsers.add_parser("show", help="Show dictionary entries for a character or word.")
    show.add_argument("text")

    add_hanzi = subparsers.add_parser("add-hanzi", help="Add a hanzi entry.")
    add_hanzi.add_argument("character")
    add_hanzi.add_argument("pinyin", help="Pinyin without tone mark, e.g. xue.")
    add_hanzi.add_argument("tone", type=int, help="Tone number 1-4, or 5 for neutral.")
    add_hanzi.add_argument("meaning", help="Japanese meaning.")

    add_kunyomi = subparsers.add_parser("add-kunyomi", help="Add a kun'yomi entry.")
    add_kunyomi.add_argument("character", help="Kanji or compound.")
    add_kunyomi.add_argument("ruby", help="Reading in hiragana.")

    set_onyomi = subparsers.add_parser("set-onyomi", help="Fill in an on'yomi still marked TODO.")
    set_onyomi.add_argument("character")
    set_onyomi.add_argument("pinyin", help="Pinyin with tone mark, e.g. tiān.")
    set_onyomi.add_argument("onyomi", help="On'yomi in katakana.")

    subparsers.add_parser("check", help="Validate the hanzi dictionary.")
    return ap


def build_web_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="kanbun web",
        description="Serve the dictionary and annotation API over HTTP.",
    )
    _add_version_flag(ap)
    ap.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1).")
    ap.add_argument("--port", type=int, default=8000, help="Port (default: 8000).")
    ap.add_argument(
        "--data-dir",
        help=f"Directory holding hanzi.json, kunyomi.json and contents/ (default: ${DATA_DIR_ENV} or bundled data).",
    )
    ap.add_argument(
        "--allow-edits",
        action="store_true",
        help="Enable the dictionary editing endpoints.",
    )
    ap.add_argument("--debug", action="store_true", help="Verbose server logging.")
    return ap


def _parse_override(raw: str) -> Override:
    parts = raw.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise SystemExit(f"Invalid override {raw!r}; expected POS:TEXT:READING.")
    try:
        position = int(parts[0])
    except ValueError as exc:
        raise SystemExit(f"Invalid override position in {raw!r}.") from exc
    return Override(position=position, text=parts[1], reading=parts[2])


def _joined_text(args: argparse.Namespace) -> str:
    text = " ".join(args.text)
    if not text.strip():
        raise SystemExit("No text provided.")
    return text


def _run_annotate(args: argparse.Namespace) -> int:
    set_debug_logging(bool(getattr(args, "debug", False)))
    text = _joined_text(args)
    overrides = [_parse_override(raw) for raw in args.override]
    spans = annotate(text, overrides)
    if args.html:
        print(render_ruby_html(spans))
        return 0
    table = Table(show_header=True, header_style="bold")
    table.add_column("start", justify="right")
    table.add_column("text")
    table.add_column("reading")
    for span in spans:
        table.add_row(str(span.start), span.text, span.reading or "-")
    Console().print(table)
    return 0


def _run_convert(command: str, args: argparse.Namespace) -> int:
    text = _joined_text(args)
    if command == "hiragana":
        print(convert_to_hiragana(text))
    elif command == "onyomi":
        print(convert_to_onyomi(text))
    else:
        print(convert_to_pinyin(text))
    return 0


def _run_sandhi(args: argparse.Namespace) -> int:
    text = _joined_text(args)
    result = parse_tone_sandhi(text)
    table = Table(show_header=True, header_style="bold")
    table.add_column("char")
    table.add_column("tone", justify="right")
    table.add_column("reads as", justify="right")
    for ch, original, effective in zip(result.chars, result.original_tones, result.effective_tones):
        if ch.isspace():
            continue
        table.add_row(
            ch,
            str(original) if original is not None else "-",
            str(effective) if effective is not None else "-",
        )
    console = Console()
    console.print(table)
    for idx, change in tone_changes(result):
        console.print(f"{result.chars[idx]}: {change.reason}")
    return 0


def _run_validate(args: argparse.Namespace) -> int:
    path = Path(args.path).expanduser() if args.path else None
    if path is not None and not path.exists():
        raise SystemExit(f"Content path not found: {path}")
    try:
        contents = load_contents(path)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    if args.content_id:
        selected = find_content(args.content_id, contents)
        if selected is None:
            raise SystemExit(f"Content not found: {args.content_id}")
        contents = [selected]
    if not contents:
        raise SystemExit("No content records found.")

    console = Console()
    failures = 0
    for content in contents:
        result = validate_content(content)
        status = "[green]ok[/green]" if result.valid else "[red]invalid[/red]"
        console.print(f"{content.content_id or '(no id)'}: {status}")
        for error in result.errors:
            style = "red" if error.severity == "error" else "yellow"
            console.print(f"  [{style}]{error.severity}[/{style}] {escape(error.path)}: {escape(error.message)}")
        if not result.valid:
            failures += 1
    return 1 if failures else 0


def _run_dict(args: argparse.Namespace) -> int:
    if not args.dict_cmd:
        raise SystemExit("A dict subcommand is required. Use --help for options.")

    if args.dict_cmd == "show":
        found = False
        hanzi = default_hanzi_index().get(args.text)
        if hanzi is not None:
            found = True
            for meaning in hanzi.meanings:
                marker = "*" if meaning.is_default else " "
                print(f"{marker} {meaning.id}\t{meaning.onyomi}\t{meaning.pinyin}\t{meaning.tone}\t{meaning.meaning_ja}")
        kunyomi = default_kunyomi_index().get(args.text)
        if kunyomi is not None:
            found = True
            for reading in kunyomi.readings:
                marker = "*" if reading.is_default else " "
                suffix = f"（{reading.okurigana}）" if reading.okurigana else ""
                note = f"\t{reading.note}" if reading.note else ""
                print(f"{marker} {reading.id}\t{reading.ruby}{suffix}{note}")
        if not found:
            raise SystemExit(f"No dictionary entry for {args.text!r}.")
        return 0

    try:
        if args.dict_cmd == "add-hanzi":
            entry = add_hanzi_entry(args.character, args.pinyin, args.tone, args.meaning)
            meaning = entry.meanings[0]
            print(f"Added hanzi entry: {entry.id} -> {meaning.pinyin} ({meaning.meaning_ja})")
            if meaning.onyomi == ONYOMI_PLACEHOLDER:
                print(f"On'yomi unknown; run 'kanbun dict set-onyomi {entry.id} {meaning.pinyin} <onyomi>'.")
            return 0
        if args.dict_cmd == "add-kunyomi":
            entry = add_kunyomi_entry(args.character, args.ruby)
            print(f"Added kunyomi entry: {entry.text} -> {entry.readings[0].ruby}")
            return 0
        if args.dict_cmd == "set-onyomi":
            meaning = update_hanzi_onyomi(args.character, args.pinyin, args.onyomi)
            print(f"Updated {meaning.id}: onyomi {meaning.onyomi}")
            return 0
    except DictionaryEditError as exc:
        raise SystemExit(str(exc)) from exc

    if args.dict_cmd == "check":
        issues = validate_hanzi_dictionary(load_hanzi_entries(hanzi_path()))
        if not issues:
            print("Hanzi dictionary OK.")
            return 0
        for entry_id, entry_issues in issues.items():
            for issue in entry_issues:
                detail = ""
                if issue.expected is not None or issue.actual is not None:
                    detail = f" (expected {issue.expected}, got {issue.actual})"
                print(f"{entry_id}: {issue.field}: {issue.message}{detail}")
        return 1

    raise SystemExit(f"Unknown dict subcommand: {args.dict_cmd}")


def _run_web(args: argparse.Namespace) -> None:
    data_dir = Path(args.data_dir).expanduser().resolve() if args.data_dir else None
    if data_dir is not None and not data_dir.is_dir():
        raise SystemExit(f"Data directory not found: {data_dir}")
    config = WebConfig(
        data_dir=data_dir,
        allow_edits=args.allow_edits,
        host=args.host,
        port=args.port,
    )
    app = create_app(config)
    print(f"Serving kanbun dictionary API on http://{config.host}:{config.port}/")
    if data_dir is not None or os.environ.get(DATA_DIR_ENV):
        print(f"Data directory: {data_dir or os.environ.get(DATA_DIR_ENV)}")
    if config.allow_edits:
        print("Dictionary editing is enabled.")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level="debug" if args.debug else "info",
        log_config=build_uvicorn_log_config(debug=args.debug),
    )


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "annotate":
        return _run_annotate(build_annotate_parser().parse_args(argv[1:]))
    if argv and argv[0] in {"hiragana", "onyomi", "pinyin"}:
        command = argv[0]
        return _run_convert(command, build_convert_parser(command).parse_args(argv[1:]))
    if argv and argv[0] == "sandhi":
        return _run_sandhi(build_sandhi_parser().parse_args(argv[1:]))
    if argv and argv[0] == "validate":
        return _run_validate(build_validate_parser().parse_args(argv[1:]))
    if argv and argv[0] == "dict":
        return _run_dict(build_dict_parser().parse_args(argv[1:]))
    if argv and argv[0] == "web":
        _run_web(build_web_parser().parse_args(argv[1:]))
        return 0

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv[:1])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
