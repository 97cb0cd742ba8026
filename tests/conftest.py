"""
Shared fixtures for histvault tests.

Every test gets its own SQLite file under pytest's tmp_path; nothing
touches ~/.histvault.
"""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from histvault.services.database import HistoryStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "histvault.db"


@pytest.fixture
def store(db_path):
    with HistoryStore(db_path) as history_store:
        yield history_store


@pytest.fixture
def write_history(tmp_path):
    """Write a history file and return its path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write
