"""Record clients: the editor's view of the system of record.

`RecordClient` is the async request/response surface the merge, commit
and scheduling components consume. `SqliteRecordClient` talks to the
repository layer directly; `HttpRecordClient` goes through the JSON API.
"""
from __future__ import annotations

import abc
import asyncio
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

import httpx

from ..core.config import settings
from ..core.db import get_connection, init_db
from ..core.errors import ConflictError, NotFoundError, TransientIOError
from ..repo import divisions as divisions_repo
from ..repo import schedule as schedule_repo
from ..repo import submissions as submissions_repo
from ..repo import years as years_repo
from ..repo.schema import create_tables

LOG = logging.getLogger(__name__)


class RecordClient(abc.ABC):
    """Async access to divisions, snapshots, academic years and the schedule."""

    @abc.abstractmethod
    async def fetch_all(self) -> List[Dict[str, Any]]: ...

    @abc.abstractmethod
    async def fetch_by_id(self, division_id: int) -> Dict[str, Any]: ...

    @abc.abstractmethod
    async def append_snapshot(self, draft: Dict[str, Any]) -> Dict[str, Any]: ...

    @abc.abstractmethod
    async def list_snapshots(self, limit: int = 200) -> List[Dict[str, Any]]: ...

    @abc.abstractmethod
    async def fetch_years(self) -> List[Dict[str, Any]]: ...

    @abc.abstractmethod
    async def create_year(self, label: str) -> Dict[str, Any]: ...

    @abc.abstractmethod
    async def set_current_year(self, year_id: int) -> Dict[str, Any]: ...

    @abc.abstractmethod
    async def delete_year(self, year_id: int) -> None: ...

    @abc.abstractmethod
    async def fetch_schedule(self, year_id: Optional[int] = None) -> List[Dict[str, Any]]: ...

    @abc.abstractmethod
    async def upsert_schedule_entry(self, year_id: int, program_id: int, selected: bool) -> Dict[str, Any]: ...


class SqliteRecordClient(RecordClient):
    """Record client backed by the configured sqlite database."""

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            init_db()
            conn = get_connection()
            create_tables(conn)
        except sqlite3.Error as exc:
            raise TransientIOError(f"Database unavailable: {exc}") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            raise TransientIOError(str(exc)) from exc
        finally:
            conn.close()

    def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        with self._conn() as conn:
            return fn(conn, *args)

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        # sqlite blocks (BEGIN IMMEDIATE may wait out the busy timeout); keep it off the loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._call, fn, *args)

    async def fetch_all(self) -> List[Dict[str, Any]]:
        return await self._run(divisions_repo.list_divisions)

    async def fetch_by_id(self, division_id: int) -> Dict[str, Any]:
        return await self._run(divisions_repo.get_division, division_id)

    async def append_snapshot(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run(submissions_repo.record_submission, draft)

    async def list_snapshots(self, limit: int = 200) -> List[Dict[str, Any]]:
        return await self._run(submissions_repo.list_snapshots, limit)

    async def fetch_years(self) -> List[Dict[str, Any]]:
        return await self._run(years_repo.list_years)

    async def create_year(self, label: str) -> Dict[str, Any]:
        return await self._run(years_repo.create_year, label)

    async def set_current_year(self, year_id: int) -> Dict[str, Any]:
        return await self._run(years_repo.set_current_year, year_id)

    async def delete_year(self, year_id: int) -> None:
        await self._run(years_repo.delete_year, year_id)

    async def fetch_schedule(self, year_id: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self._run(schedule_repo.list_schedule, year_id)

    async def upsert_schedule_entry(self, year_id: int, program_id: int, selected: bool) -> Dict[str, Any]:
        return await self._run(schedule_repo.upsert_schedule_entry, year_id, program_id, selected)


class HttpRecordClient(RecordClient):
    """Record client for the JSON API served by `division_tracker.api`."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "HttpRecordClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise TransientIOError(f"{method} {url} failed: {exc}") from exc

        if resp.status_code == 404:
            raise NotFoundError(_detail(resp))
        if resp.status_code == 409:
            raise ConflictError(_detail(resp))
        if resp.status_code >= 500:
            raise TransientIOError(f"{method} {url} -> {resp.status_code}: {_detail(resp)}")
        if resp.status_code >= 400:
            raise ValueError(f"{method} {url} -> {resp.status_code}: {_detail(resp)}")
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def fetch_all(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/divisions")

    async def fetch_by_id(self, division_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/api/divisions/{int(division_id)}")

    async def append_snapshot(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/division-drafts", json=draft)

    async def list_snapshots(self, limit: int = 200) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/submissions", params={"limit": int(limit)})

    async def fetch_years(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/years")

    async def create_year(self, label: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/years", json={"label": label})

    async def set_current_year(self, year_id: int) -> Dict[str, Any]:
        return await self._request("PUT", f"/api/years/{int(year_id)}/current")

    async def delete_year(self, year_id: int) -> None:
        await self._request("DELETE", f"/api/years/{int(year_id)}")

    async def fetch_schedule(self, year_id: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"yearId": int(year_id)} if year_id is not None else None
        return await self._request("GET", "/api/schedule", params=params)

    async def upsert_schedule_entry(self, year_id: int, program_id: int, selected: bool) -> Dict[str, Any]:
        payload = {"academic_year_id": int(year_id), "program_id": int(program_id), "is_selected": bool(selected)}
        return await self._request("POST", "/api/schedule", json=payload)


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)


__all__ = ["RecordClient", "SqliteRecordClient", "HttpRecordClient"]
