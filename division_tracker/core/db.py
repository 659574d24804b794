"""Database helpers.

Provides `get_connection`, `init_db` and a `transaction` context manager
used where several statements must land (or fail) together.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .config import settings

LOG = logging.getLogger(__name__)


def get_connection() -> sqlite3.Connection:
    """Return a new sqlite3 connection using configured DB path.

    Foreign keys are enabled so program/payee rows cascade with their
    division.
    """
    conn = sqlite3.connect(str(settings.DB_PATH))
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db() -> None:
    """Ensure the database file exists by creating parent directories
    and opening/closing a connection if the file is missing.

    Tables are created by `repo.schema.create_tables`.
    """
    db_path = Path(settings.DB_PATH)
    db_dir = db_path.parent
    if not db_dir.exists():
        db_dir.mkdir(parents=True, exist_ok=True)

    if not db_path.exists():
        # Connecting will create the sqlite file on disk.
        conn = sqlite3.connect(str(db_path))
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Cursor]:
    """Run the enclosed statements as one unit.

    Takes the write lock up front (`BEGIN IMMEDIATE`) so no other
    connection can observe an intermediate state. Commits on success,
    rolls back and re-raises on any error.
    """
    if conn.in_transaction:
        conn.commit()
    cur = conn.cursor()
    cur.execute("BEGIN IMMEDIATE")
    try:
        yield cur
    except Exception:
        LOG.debug("Rolling back transaction", exc_info=True)
        conn.rollback()
        raise
    else:
        conn.commit()


__all__ = ["get_connection", "init_db", "transaction"]
