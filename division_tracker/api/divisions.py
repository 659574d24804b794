"""API router for divisions and the snapshots that update them.

Divisions are read with their programs and payees nested. Editors never
write division rows directly; they post a draft to `/api/division-drafts`
which applies it to the tables and appends a history snapshot.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from ..core.db import init_db, get_connection
from ..core.errors import NotFoundError
from ..repo.schema import create_tables
from ..repo.divisions import (
    create_division,
    delete_division,
    find_division_by_name,
    get_division,
    list_divisions,
    rename_division,
)
from ..repo.submissions import record_submission

router = APIRouter(prefix="/api")

LOG = logging.getLogger(__name__)


def _init_db_conn():
    init_db()
    conn = get_connection()
    create_tables(conn)
    cur = conn.cursor()
    return conn, cur


class DivisionCreate(BaseModel):
    division_name: str
    dean_name: str = ""
    chair_name: str = ""
    pen_contact: str = ""
    loc_rep: str = ""
    notes: str = ""


class DivisionRename(BaseModel):
    division_name: str


class PayeeIn(BaseModel):
    name: str = ""
    amount: Any = 0


class ProgramDraft(BaseModel):
    id: Optional[int] = None
    program_name: str = ""
    payees: List[PayeeIn] = []
    has_been_paid: bool = False
    report_submitted: bool = False
    notes: str = ""


class DivisionDraft(BaseModel):
    id: Optional[int] = None
    division_name: str
    dean: str = ""
    chair: str = ""
    pen: str = ""
    loc: str = ""
    notes: str = ""
    programs_data: List[ProgramDraft] = []


def _require_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="division_name is required")
    return name


@router.get("/divisions")
def get_divisions() -> List[Dict[str, Any]]:
    conn, cur = _init_db_conn()
    try:
        return list_divisions(conn)
    finally:
        conn.close()


@router.get("/divisions/{division_id}")
def get_division_by_id(division_id: int) -> Dict[str, Any]:
    conn, cur = _init_db_conn()
    try:
        return get_division(conn, division_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    finally:
        conn.close()


@router.post("/divisions", status_code=status.HTTP_201_CREATED)
def post_division(payload: DivisionCreate) -> Dict[str, Any]:
    name = _require_name(payload.division_name)
    conn, cur = _init_db_conn()
    try:
        if find_division_by_name(conn, name):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Division already exists: {name}")
        fields = payload.model_dump(exclude={"division_name"})
        did = create_division(conn, name, **fields)
        return get_division(conn, did)
    finally:
        conn.close()


@router.patch("/divisions/{division_id}")
def patch_division(division_id: int, payload: DivisionRename) -> Dict[str, Any]:
    name = _require_name(payload.division_name)
    conn, cur = _init_db_conn()
    try:
        rename_division(conn, division_id, name)
        return get_division(conn, division_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    finally:
        conn.close()


@router.delete("/divisions/{division_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_division(division_id: int) -> None:
    """Delete a division with its programs and payees. Snapshots stay."""
    conn, cur = _init_db_conn()
    try:
        delete_division(conn, division_id)
        LOG.info("Deleted division %s", division_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    finally:
        conn.close()


@router.post("/division-drafts", status_code=status.HTTP_201_CREATED)
def post_division_draft(payload: DivisionDraft) -> Dict[str, Any]:
    """Apply a committed draft to the division tables and append its snapshot.

    Returns the stored snapshot. A draft id that no longer exists falls back
    to a name match, then to creating the division.
    """
    _require_name(payload.division_name)
    conn, cur = _init_db_conn()
    try:
        snapshot = record_submission(conn, payload.model_dump())
        LOG.info("Snapshot %s saved for division %r", snapshot["id"], snapshot["division_name"])
        return snapshot
    finally:
        conn.close()


__all__ = ["router"]
