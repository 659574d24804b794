"""Database schema for repository layer.

Defines SQL for divisions/programs/payees, the snapshot history
(`submissions`), academic years and the per-year program schedule.
"""
from __future__ import annotations

from typing import Any
import sqlite3


DIVISIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS divisions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    division_name TEXT NOT NULL,
    dean_name TEXT DEFAULT '',
    chair_name TEXT DEFAULT '',
    pen_contact TEXT DEFAULT '',
    loc_rep TEXT DEFAULT '',
    notes TEXT DEFAULT ''
);
"""


PROGRAMS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS programs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    division_id INTEGER NOT NULL REFERENCES divisions(id) ON DELETE CASCADE,
    program_name TEXT NOT NULL,
    notes TEXT DEFAULT '',
    has_been_paid INTEGER DEFAULT 0,
    report_submitted INTEGER DEFAULT 0,
    position INTEGER DEFAULT 0
);
"""


PAYEES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS payees (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    program_id INTEGER NOT NULL REFERENCES programs(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    amount REAL DEFAULT 0
);
"""


SUBMISSIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS submissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    division_id INTEGER,
    division_name TEXT,
    dean TEXT,
    chair TEXT,
    pen TEXT,
    loc TEXT,
    notes TEXT,
    programs_json TEXT,
    program_count INTEGER,
    payee_count INTEGER,
    total_amount REAL,
    created_at TEXT
);
"""


ACADEMIC_YEARS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS academic_years (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label TEXT NOT NULL UNIQUE,
    is_current INTEGER NOT NULL DEFAULT 0
);
"""


# at most one current year, enforced by the store itself
ONE_CURRENT_YEAR_INDEX_SQL = """
CREATE UNIQUE INDEX IF NOT EXISTS ux_academic_years_current
ON academic_years (is_current) WHERE is_current = 1;
"""


PROGRAM_SCHEDULE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS program_schedule (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    academic_year_id INTEGER NOT NULL REFERENCES academic_years(id) ON DELETE CASCADE,
    program_id INTEGER NOT NULL,
    is_selected INTEGER NOT NULL DEFAULT 0,
    program_name TEXT,
    division_name TEXT,
    updated_at TEXT,
    UNIQUE(academic_year_id, program_id)
);
"""


def create_tables(conn: sqlite3.Connection | Any) -> None:
    """Create required tables on the given SQLite connection.

    The function will execute DDL statements and commit the transaction.
    """
    cur = conn.cursor()
    cur.execute(DIVISIONS_TABLE_SQL)
    cur.execute(PROGRAMS_TABLE_SQL)
    cur.execute(PAYEES_TABLE_SQL)
    cur.execute(SUBMISSIONS_TABLE_SQL)
    cur.execute(ACADEMIC_YEARS_TABLE_SQL)
    cur.execute(ONE_CURRENT_YEAR_INDEX_SQL)
    cur.execute(PROGRAM_SCHEDULE_TABLE_SQL)
    conn.commit()


__all__ = [
    "DIVISIONS_TABLE_SQL",
    "PROGRAMS_TABLE_SQL",
    "PAYEES_TABLE_SQL",
    "SUBMISSIONS_TABLE_SQL",
    "ACADEMIC_YEARS_TABLE_SQL",
    "ONE_CURRENT_YEAR_INDEX_SQL",
    "PROGRAM_SCHEDULE_TABLE_SQL",
    "create_tables",
]
