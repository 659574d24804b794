"""Repository helpers for the append-only snapshot history.

Each committed draft becomes one `submissions` row holding the full
effective state plus derived counts used by the history and archive views.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import sqlite3

from ..core.errors import NotFoundError
from ..pipeline.payees import normalize_payees, payee_count, total_amount
from .divisions import apply_snapshot

LOG = logging.getLogger(__name__)

SUBMISSION_COLUMNS = (
    "id",
    "division_id",
    "division_name",
    "dean",
    "chair",
    "pen",
    "loc",
    "notes",
    "programs_json",
    "program_count",
    "payee_count",
    "total_amount",
    "created_at",
)


def _safe_json_load(text: Optional[str]) -> List[Dict[str, Any]]:
    if not text:
        return []
    try:
        data = json.loads(text)
    except ValueError:
        LOG.debug("Failed to parse programs JSON: %s", text, exc_info=True)
        return []
    return data if isinstance(data, list) else []


def _row_to_snapshot(row: tuple) -> Dict[str, Any]:
    rec = dict(zip(SUBMISSION_COLUMNS, row))
    rec["programs"] = _safe_json_load(rec.pop("programs_json"))
    rec["program_count"] = int(rec["program_count"] or 0)
    rec["payee_count"] = int(rec["payee_count"] or 0)
    rec["total_amount"] = float(rec["total_amount"] or 0)
    for k in ("division_name", "dean", "chair", "pen", "loc", "notes"):
        rec[k] = rec[k] or ""
    return rec


def clean_programs(programs: Any) -> List[Dict[str, Any]]:
    """Normalize a draft's program list for storage (finite payee amounts)."""
    out: List[Dict[str, Any]] = []
    for p in programs if isinstance(programs, list) else []:
        if not isinstance(p, dict):
            continue
        item = {
            "program_name": str(p.get("program_name") or "").strip(),
            "payees": normalize_payees(p.get("payees")),
            "has_been_paid": bool(p.get("has_been_paid")),
            "report_submitted": bool(p.get("report_submitted")),
            "notes": str(p.get("notes") or ""),
        }
        if p.get("id") is not None:
            item["id"] = p["id"]
        out.append(item)
    return out


def append_snapshot(
    conn: sqlite3.Connection,
    draft: Dict[str, Any],
    division_id: Optional[int] = None,
    created_at: Optional[str] = None,
) -> Dict[str, Any]:
    """Insert a snapshot of `draft` and return the stored record.

    Commits the transaction.
    """
    programs = clean_programs(draft.get("programs_data"))
    created_at = created_at or datetime.now(timezone.utc).isoformat()
    if division_id is None and draft.get("id") not in (None, ""):
        try:
            division_id = int(draft["id"])
        except (TypeError, ValueError):
            division_id = None

    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO submissions
        (division_id, division_name, dean, chair, pen, loc, notes, programs_json,
         program_count, payee_count, total_amount, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            division_id,
            str(draft.get("division_name") or "").strip(),
            str(draft.get("dean") or "").strip(),
            str(draft.get("chair") or "").strip(),
            str(draft.get("pen") or "").strip(),
            str(draft.get("loc") or "").strip(),
            str(draft.get("notes") or "").strip(),
            json.dumps(programs),
            len(programs),
            payee_count(programs),
            total_amount(programs),
            created_at,
        ),
    )
    conn.commit()
    return get_snapshot(conn, int(cur.lastrowid))


def record_submission(conn: sqlite3.Connection, draft: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a committed draft to the division tables and append its snapshot."""
    division_id = apply_snapshot(conn, draft)
    return append_snapshot(conn, draft, division_id=division_id)


def get_snapshot(conn: sqlite3.Connection, snapshot_id: int) -> Dict[str, Any]:
    cur = conn.cursor()
    cur.execute(f"SELECT {', '.join(SUBMISSION_COLUMNS)} FROM submissions WHERE id = ?", (int(snapshot_id),))
    row = cur.fetchone()
    if not row:
        raise NotFoundError(f"Snapshot not found: {snapshot_id}")
    return _row_to_snapshot(row)


def list_snapshots(conn: sqlite3.Connection, limit: int = 200) -> List[Dict[str, Any]]:
    """Return up to `limit` snapshots, newest first."""
    cur = conn.cursor()
    cur.execute(
        f"SELECT {', '.join(SUBMISSION_COLUMNS)} FROM submissions ORDER BY created_at DESC, id DESC LIMIT ?",
        (max(0, int(limit)),),
    )
    return [_row_to_snapshot(r) for r in cur.fetchall()]


__all__ = ["append_snapshot", "record_submission", "get_snapshot", "list_snapshots", "clean_programs"]
