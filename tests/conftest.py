import sqlite3

import pytest

from division_tracker.core.config import settings
from division_tracker.core.storage import OverlayStore
from division_tracker.repo.schema import create_tables


@pytest.fixture
def tmp_settings(tmp_path, monkeypatch):
    """Point the database, storage dir and overlay file into `tmp_path`."""
    monkeypatch.setattr(settings, "DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setattr(settings, "STORAGE_PATH", str(tmp_path / "storage"))
    monkeypatch.setattr(settings, "OVERLAY_FILE", str(tmp_path / "storage" / "edits.json"))
    return settings


@pytest.fixture
def conn():
    c = sqlite3.connect(":memory:")
    c.execute("PRAGMA foreign_keys = ON")
    create_tables(c)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def store(tmp_path):
    return OverlayStore(tmp_path / "edits.json")
