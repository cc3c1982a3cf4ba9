from __future__ import annotations

from copy import copy, deepcopy
from typing import Any
from urllib.parse import unquote

from uvicorn.config import LOGGING_CONFIG
from uvicorn.logging import AccessFormatter as UvicornAccessFormatter

__all__ = ["Utf8AccessFormatter", "build_uvicorn_log_config", "decode_request_path"]


def decode_request_path(value: str) -> str:
    """Turn ``/api/dictionary/hanzi/%E5%AD%B8`` into ``/api/dictionary/hanzi/學``."""
    try:
        return unquote(value, encoding="utf-8", errors="replace")
    except (TypeError, ValueError):
        return value


class Utf8AccessFormatter(UvicornAccessFormatter):
    """Access log formatter that prints dictionary paths as readable characters."""

    def formatMessage(self, record):  # type: ignore[override]
        args = record.args
        if not isinstance(args, tuple) or len(args) != 5:
            return super().formatMessage(record)
        client_addr, method, full_path, http_version, status_code = args
        if not isinstance(full_path, str):
            return super().formatMessage(record)
        decoded = copy(record)
        decoded.args = (client_addr, method, decode_request_path(full_path), http_version, status_code)
        return super().formatMessage(decoded)


def build_uvicorn_log_config(debug: bool = False) -> dict[str, Any]:
    config = deepcopy(LOGGING_CONFIG)
    formatter = config.get("formatters", {}).get("access")
    if isinstance(formatter, dict):
        formatter["()"] = "kanbun.logging_utils.Utf8AccessFormatter"
    if debug:
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            logger = config.get("loggers", {}).get(name)
            if isinstance(logger, dict):
                logger["level"] = "DEBUG"
    return config
