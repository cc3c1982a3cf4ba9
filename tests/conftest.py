from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from kanbun import ruby
from kanbun.dictionary import DATA_DIR_ENV, clear_default_caches, resolve_data_dir


@pytest.fixture(autouse=True)
def _fresh_dictionaries(monkeypatch):
    monkeypatch.delenv(DATA_DIR_ENV, raising=False)
    clear_default_caches()
    yield
    ruby.set_debug_logging(False)
    clear_default_caches()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Writable copy of the bundled dictionaries and contents."""
    target = tmp_path / "data"
    shutil.copytree(resolve_data_dir(), target)
    return target
