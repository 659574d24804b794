"""Repository helpers for the program assessment schedule.

One row per (academic year, program). Program and division names are
copied into the row when it is written so history survives renames and
deletions.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .divisions import get_program
from .years import get_year

SCHEDULE_COLUMNS = ("id", "academic_year_id", "program_id", "is_selected", "program_name", "division_name", "updated_at")


def _row_to_entry(row: tuple) -> Dict[str, Any]:
    entry = dict(zip(SCHEDULE_COLUMNS, row))
    entry["id"] = int(entry["id"])
    entry["academic_year_id"] = int(entry["academic_year_id"])
    entry["program_id"] = int(entry["program_id"])
    entry["is_selected"] = bool(entry["is_selected"])
    return entry


def list_schedule(conn: sqlite3.Connection, year_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """Return schedule rows, optionally only those of one academic year."""
    cur = conn.cursor()
    sql = f"SELECT {', '.join(SCHEDULE_COLUMNS)} FROM program_schedule"
    params: tuple = ()
    if year_id is not None:
        sql += " WHERE academic_year_id = ?"
        params = (int(year_id),)
    cur.execute(sql + " ORDER BY academic_year_id, program_id", params)
    return [_row_to_entry(r) for r in cur.fetchall()]


def get_entry(conn: sqlite3.Connection, year_id: int, program_id: int) -> Optional[Dict[str, Any]]:
    cur = conn.cursor()
    cur.execute(
        f"SELECT {', '.join(SCHEDULE_COLUMNS)} FROM program_schedule WHERE academic_year_id = ? AND program_id = ?",
        (int(year_id), int(program_id)),
    )
    row = cur.fetchone()
    return _row_to_entry(row) if row else None


def upsert_schedule_entry(conn: sqlite3.Connection, year_id: int, program_id: int, is_selected: bool) -> Dict[str, Any]:
    """Insert or update the (year, program) row and return it.

    Both paths refresh the denormalized names from the program's current
    state; a call that changes nothing leaves the row untouched. Raises
    NotFoundError for an unknown year or program.
    """
    get_year(conn, year_id)
    program = get_program(conn, program_id)
    now = datetime.now(timezone.utc).isoformat()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO program_schedule
        (academic_year_id, program_id, is_selected, program_name, division_name, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(academic_year_id, program_id) DO UPDATE SET
            is_selected = excluded.is_selected,
            program_name = excluded.program_name,
            division_name = excluded.division_name,
            updated_at = excluded.updated_at
        WHERE program_schedule.is_selected != excluded.is_selected
            OR program_schedule.program_name IS NOT excluded.program_name
            OR program_schedule.division_name IS NOT excluded.division_name
        """,
        (int(year_id), int(program_id), int(bool(is_selected)), program["program_name"], program["division_name"], now),
    )
    conn.commit()
    return get_entry(conn, year_id, program_id)


__all__ = ["list_schedule", "get_entry", "upsert_schedule_entry"]
