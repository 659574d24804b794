"""API router for academic years and the program assessment schedule.

Only one year can be current at a time; switching happens in a single
transaction and the current year can never be deleted.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from ..core.db import init_db, get_connection
from ..core.errors import ConflictError, NotFoundError
from ..repo.schema import create_tables
from ..repo.schedule import list_schedule, upsert_schedule_entry
from ..repo.years import create_year, delete_year, list_years, set_current_year
from ..pipeline.scheduling import next_year_label

router = APIRouter(prefix="/api")

LOG = logging.getLogger(__name__)


def _init_db_conn():
    init_db()
    conn = get_connection()
    create_tables(conn)
    cur = conn.cursor()
    return conn, cur


class YearCreate(BaseModel):
    label: str


class ScheduleUpsert(BaseModel):
    academic_year_id: int
    program_id: int
    is_selected: bool


@router.get("/years")
def get_years() -> List[Dict[str, Any]]:
    conn, cur = _init_db_conn()
    try:
        return list_years(conn)
    finally:
        conn.close()


@router.post("/years", status_code=status.HTTP_201_CREATED)
def post_year(payload: YearCreate) -> Dict[str, Any]:
    conn, cur = _init_db_conn()
    try:
        return create_year(conn, payload.label)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    finally:
        conn.close()


@router.post("/years/next", status_code=status.HTTP_201_CREATED)
def post_next_year() -> Dict[str, Any]:
    """Add the year after the most recently created one."""
    conn, cur = _init_db_conn()
    try:
        years = list_years(conn)
        last = max(years, key=lambda y: y["id"]) if years else None
        return create_year(conn, next_year_label(last["label"] if last else None))
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    finally:
        conn.close()


@router.put("/years/{year_id}/current")
def put_current_year(year_id: int) -> Dict[str, Any]:
    conn, cur = _init_db_conn()
    try:
        year = set_current_year(conn, year_id)
        LOG.info("Current academic year is now %s", year["label"])
        return year
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    finally:
        conn.close()


@router.delete("/years/{year_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_year(year_id: int) -> None:
    conn, cur = _init_db_conn()
    try:
        delete_year(conn, year_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ConflictError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You cannot delete the current year")
    finally:
        conn.close()


@router.get("/schedule")
def get_schedule(year_id: Optional[int] = Query(None, alias="yearId")) -> List[Dict[str, Any]]:
    conn, cur = _init_db_conn()
    try:
        return list_schedule(conn, year_id)
    finally:
        conn.close()


@router.post("/schedule")
def post_schedule(payload: ScheduleUpsert) -> Dict[str, Any]:
    conn, cur = _init_db_conn()
    try:
        return upsert_schedule_entry(conn, payload.academic_year_id, payload.program_id, payload.is_selected)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    finally:
        conn.close()


__all__ = ["router"]
