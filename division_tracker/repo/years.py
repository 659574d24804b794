"""Repository helpers for academic years.

Switching the current year and deleting a year are each one transaction,
so readers always see exactly one current year once any year has been
made current.
"""
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from ..core.db import transaction
from ..core.errors import ConflictError, NotFoundError


def _row_to_year(row: tuple) -> Dict[str, Any]:
    return {"id": int(row[0]), "label": row[1], "is_current": bool(row[2])}


def list_years(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    """Return all academic years ordered by id (creation order)."""
    cur = conn.cursor()
    cur.execute("SELECT id, label, is_current FROM academic_years ORDER BY id")
    return [_row_to_year(r) for r in cur.fetchall()]


def get_year(conn: sqlite3.Connection, year_id: int) -> Dict[str, Any]:
    cur = conn.cursor()
    cur.execute("SELECT id, label, is_current FROM academic_years WHERE id = ?", (int(year_id),))
    row = cur.fetchone()
    if not row:
        raise NotFoundError(f"Academic year not found: {year_id}")
    return _row_to_year(row)


def get_current_year(conn: sqlite3.Connection) -> Optional[Dict[str, Any]]:
    cur = conn.cursor()
    cur.execute("SELECT id, label, is_current FROM academic_years WHERE is_current = 1 LIMIT 1")
    row = cur.fetchone()
    return _row_to_year(row) if row else None


def create_year(conn: sqlite3.Connection, label: str) -> Dict[str, Any]:
    """Insert a (non-current) year. Raises ConflictError for a duplicate label."""
    label = (label or "").strip()
    if not label:
        raise ValueError("label is required")
    cur = conn.cursor()
    cur.execute("SELECT 1 FROM academic_years WHERE lower(label) = lower(?)", (label,))
    if cur.fetchone():
        raise ConflictError(f"Academic year already exists: {label}")
    cur.execute("INSERT INTO academic_years (label, is_current) VALUES (?, 0)", (label,))
    conn.commit()
    return get_year(conn, int(cur.lastrowid))


def set_current_year(conn: sqlite3.Connection, year_id: int) -> Dict[str, Any]:
    """Make `year_id` the only current year.

    Clears every flag then sets the target inside one transaction; an
    unknown id rolls everything back and raises NotFoundError.
    """
    with transaction(conn) as cur:
        cur.execute("UPDATE academic_years SET is_current = 0 WHERE is_current != 0")
        cur.execute("UPDATE academic_years SET is_current = 1 WHERE id = ?", (int(year_id),))
        if cur.rowcount != 1:
            raise NotFoundError(f"Academic year not found: {year_id}")
    return get_year(conn, year_id)


def delete_year(conn: sqlite3.Connection, year_id: int) -> None:
    """Delete a non-current year together with its schedule rows.

    Raises ConflictError for the current year and NotFoundError for an
    unknown id; neither changes any state.
    """
    with transaction(conn) as cur:
        cur.execute("SELECT is_current FROM academic_years WHERE id = ?", (int(year_id),))
        row = cur.fetchone()
        if not row:
            raise NotFoundError(f"Academic year not found: {year_id}")
        if row[0]:
            raise ConflictError("Cannot delete the current academic year")
        cur.execute("DELETE FROM program_schedule WHERE academic_year_id = ?", (int(year_id),))
        cur.execute("DELETE FROM academic_years WHERE id = ?", (int(year_id),))


__all__ = ["list_years", "get_year", "get_current_year", "create_year", "set_current_year", "delete_year"]
