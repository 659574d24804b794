"""API router for the snapshot history: list, archive view and XLSX export."""
from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List

from fastapi import APIRouter, Query
from fastapi.responses import FileResponse

from ..core.config import settings
from ..core.db import init_db, get_connection
from ..repo.schema import create_tables
from ..repo.submissions import list_snapshots
from ..pipeline.archive import export_history_xlsx, group_by_period, recent_changes

router = APIRouter(prefix="/api")

LOG = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _init_db_conn():
    init_db()
    conn = get_connection()
    create_tables(conn)
    cur = conn.cursor()
    return conn, cur


def _load(limit: int) -> List[Dict[str, Any]]:
    conn, cur = _init_db_conn()
    try:
        return list_snapshots(conn, limit)
    finally:
        conn.close()


@router.get("/submissions")
def get_submissions(limit: int = Query(200, ge=1, le=5000)) -> List[Dict[str, Any]]:
    """Newest snapshots first."""
    return _load(limit)


@router.get("/submissions/recent")
def get_recent_changes(limit: int = Query(30, ge=1, le=200)) -> List[Dict[str, Any]]:
    # diffs need the previous snapshot of each division, so read a wider window
    return recent_changes(_load(max(limit * 4, 120)), limit=limit)


@router.get("/submissions/archive")
def get_archive(limit: int = Query(5000, ge=1, le=50000)) -> List[Dict[str, Any]]:
    """Snapshots grouped by fiscal period and division, newest period first."""
    return [b.to_dict() for b in group_by_period(_load(limit))]


@router.get("/submissions/export")
def export_submissions(limit: int = Query(5000, ge=1, le=50000)):
    out_dir = Path(settings.STORAGE_PATH) / "exports"
    filename = f"history_{uuid.uuid4().hex}.xlsx"
    path = export_history_xlsx(_load(limit), out_dir / filename)
    return FileResponse(path, media_type=XLSX_MEDIA_TYPE, filename="division_history.xlsx")


__all__ = ["router"]
