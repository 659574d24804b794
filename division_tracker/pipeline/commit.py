"""Editor sessions: local durability first, best-effort push second.

An `EditSession` owns the form for one division. Every mutation marks the
session dirty and (re)schedules a debounced write of the overlay to the
local `OverlayStore`. `commit_draft` writes the overlay synchronously and
then pushes a snapshot to the system of record in the background; a
failed push is logged and never undoes the local write.

Leaving a session goes through `guarded_exit`, which re-validates dirty
forms and asks the caller before saving placeholder values.
"""
from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

import httpx

from ..client.records import RecordClient
from ..core.config import settings
from ..core.errors import ConflictError, DivisionTrackerError, NotFoundError, TransientIOError
from ..core.storage import OverlayStore
from .merge import SCALAR_FIELDS, merge_division, overlay_from_form, to_form
from .scheduling import ScheduleManager, order_programs
from .validation import ValidationReport, validate

LOG = logging.getLogger(__name__)

Confirm = Callable[[List[str]], Union[bool, Awaitable[bool]]]
Action = Callable[[], Any]

PROGRAM_FIELDS = ("program_name", "payees_text", "has_been_paid", "report_submitted", "notes")


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class EditSession:
    def __init__(
        self,
        base: Dict[str, Any],
        store: OverlayStore,
        records: RecordClient,
        schedule: Optional[ScheduleManager] = None,
        selected_ids: Optional[Set[int]] = None,
        debounce_seconds: Optional[float] = None,
    ):
        self.base = base
        self.store = store
        self.records = records
        self.schedule = schedule
        self.selected_ids: Set[int] = set(selected_ids or ())
        self.debounce_seconds = settings.AUTOSAVE_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self.dirty = False
        self.closed = False
        self.last_snapshot: Optional[Dict[str, Any]] = None
        self.last_push_error: Optional[BaseException] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pushes: Set["asyncio.Task[Any]"] = set()
        self._deferred: List[Dict[str, Any]] = []
        self.form = self._build_form()

    # -- form ---------------------------------------------------------------
    def _build_form(self) -> Dict[str, Any]:
        overlay = self.store.get(self.base.get("id"), self.base.get("division_name"))
        form = to_form(merge_division(self.base, overlay))
        form["programs"] = order_programs(form["programs"], self.selected_ids)
        return form

    @property
    def effective(self) -> Dict[str, Any]:
        """The merged division as currently stored locally."""
        return merge_division(self.base, self.store.get(self.form.get("id"), self.form.get("division_name")))

    def set_field(self, key: str, value: Any) -> None:
        if key not in SCALAR_FIELDS:
            raise KeyError(key)
        self.form[key] = value
        self._touch()

    def set_program_field(self, index: int, key: str, value: Any) -> None:
        if key not in PROGRAM_FIELDS:
            raise KeyError(key)
        self.form["programs"][index][key] = value
        self._touch()

    def add_program(self) -> int:
        self.form["programs"].append(
            {
                "id": None,
                "program_name": settings.NEW_PROGRAM_NAME,
                "payees_text": "",
                "has_been_paid": False,
                "report_submitted": False,
                "notes": "",
            }
        )
        self._touch()
        return len(self.form["programs"]) - 1

    def remove_program(self, index: int) -> None:
        del self.form["programs"][index]
        self._touch()

    def validate(self) -> ValidationReport:
        return validate(self.form)

    # -- autosave -----------------------------------------------------------
    def _touch(self) -> None:
        self.dirty = True
        self._schedule_autosave()

    def _schedule_autosave(self) -> None:
        self.cancel_autosave()
        loop = _running_loop()
        if loop is None:
            self.save_local()
            return
        self._timer = loop.call_later(self.debounce_seconds, self._autosave)

    def _autosave(self) -> None:
        self._timer = None
        try:
            self.save_local()
        except OSError:
            LOG.exception("Autosave failed for division %r", self.form.get("division_name"))

    @property
    def autosave_pending(self) -> bool:
        return self._timer is not None

    def cancel_autosave(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def save_local(self) -> Optional[Dict[str, Any]]:
        """Write the form to the overlay store under both identity keys.

        Returns None when the form has neither an id nor a name to key it by.
        """
        division_id = self.form.get("id")
        name = str(self.form.get("division_name") or "").strip()
        draft = overlay_from_form(self.form, self.store.get(division_id, name))
        if not self.store.put(division_id, name, draft):
            LOG.warning("Draft not stored: division has no id or name")
            return None
        return draft

    # -- commit -------------------------------------------------------------
    def commit_draft(self, force: bool = False) -> Optional[Dict[str, Any]]:
        """Persist the overlay locally, clear the dirty flag, push in the background.

        Raises `ValidationError` for an invalid form unless `force` is set.
        Returns the draft once it is durable, or None (session stays dirty)
        when there was no key to store it under. The push never blocks the
        caller and its failure never rolls back the local write.
        """
        if not force:
            self.validate().raise_for_issues()
        draft = self.save_local()
        if draft is None:
            return None
        self.cancel_autosave()
        self.dirty = False
        self._start_push(copy.deepcopy(draft))
        return draft

    def _start_push(self, snapshot: Dict[str, Any]) -> None:
        loop = _running_loop()
        if loop is None:
            self._deferred.append(snapshot)
            return
        task = loop.create_task(self._push(snapshot))
        self._pushes.add(task)
        task.add_done_callback(self._pushes.discard)

    async def _push(self, snapshot: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            result = await self.records.append_snapshot(snapshot)
        except (DivisionTrackerError, httpx.HTTPError, ValueError) as exc:
            self.last_push_error = exc
            LOG.warning("Snapshot push failed for %r; local draft kept: %s", snapshot.get("division_name"), exc)
            return None
        self.last_snapshot = result
        self.last_push_error = None
        return result

    async def flush_push(self) -> Optional[Dict[str, Any]]:
        """Wait for outstanding pushes (starting any deferred ones) and return the last snapshot."""
        deferred, self._deferred = self._deferred, []
        for snapshot in deferred:
            await self._push(snapshot)
        if self._pushes:
            await asyncio.gather(*list(self._pushes))
        return self.last_snapshot

    async def save(self, confirm: Confirm) -> bool:
        """Manual save: validate, ask before remediating, then commit."""
        report = self.validate()
        if report.issues:
            if not await _maybe_await(confirm(list(report.issues))):
                return False
            report.remediate()
        return self.commit_draft(force=True) is not None

    # -- leaving ------------------------------------------------------------
    async def guarded_exit(self, confirm: Confirm, next_action: Optional[Action] = None) -> bool:
        """Run `next_action` unless unsaved, invalid edits make the user back out.

        Returns False (and keeps the session and its pending autosave alive)
        when the user declines remediation.
        """
        if self.dirty:
            report = self.validate()
            if report.issues:
                if not await _maybe_await(confirm(list(report.issues))):
                    return False
                report.remediate()
                if self.commit_draft(force=True) is None:
                    return False
            else:
                self.save_local()
        self.close()
        if next_action is not None:
            await _maybe_await(next_action())
        return True

    def close(self) -> None:
        self.cancel_autosave()
        self.closed = True

    def reset(self) -> None:
        """Drop local edits for this division and rebuild the form from the base record."""
        self.cancel_autosave()
        for name in {self.form.get("division_name"), self.base.get("division_name")}:
            self.store.delete(self.form.get("id") or self.base.get("id"), name)
        self.dirty = False
        self.form = self._build_form()

    # -- schedule -----------------------------------------------------------
    async def mark_for_improvement(self, index: int, selected: bool) -> Dict[str, Any]:
        """Toggle the current-year selection of one program.

        The program must already exist in the system of record and a
        current year must be set.
        """
        if self.schedule is None:
            raise ConflictError("No schedule available for this session")
        program = self.form["programs"][index]
        if not program.get("id"):
            raise ConflictError("Save this division/program to the database before marking it for improvement")
        current = await self.schedule.current_year()
        if not current:
            raise ConflictError("No current year is set yet")
        entry = await self.schedule.toggle_selection(current["id"], program["id"], selected)
        if entry.get("is_selected"):
            self.selected_ids.add(int(program["id"]))
        else:
            self.selected_ids.discard(int(program["id"]))
        return entry


async def open_session(
    records: RecordClient,
    store: OverlayStore,
    division_id: Any = None,
    name: Optional[str] = None,
    schedule: Optional[ScheduleManager] = None,
    **kwargs: Any,
) -> EditSession:
    """Open an editor for a division by id, falling back to a name lookup.

    An unknown division opens as a blank record so the user can start it.
    """
    base: Optional[Dict[str, Any]] = None
    try:
        n = int(str(division_id).strip()) if division_id not in (None, "") else 0
    except ValueError:
        n = 0
    if n > 0:
        try:
            base = await records.fetch_by_id(n)
        except NotFoundError:
            LOG.info("Division %s not found by id; trying name lookup", division_id)

    if base is None:
        key = str(name or division_id or "").strip().lower()
        divisions = await records.fetch_all()
        base = next((d for d in divisions if str(d.get("division_name") or "").strip().lower() == key), None)
        if base is None:
            base = {"division_name": str(name or division_id or "").strip(), "program_list": []}

    selected: Set[int] = set()
    if schedule is not None:
        try:
            selected = await schedule.selected_program_ids()
        except TransientIOError:
            LOG.warning("Could not load the current schedule", exc_info=True)
    return EditSession(base, store, records, schedule=schedule, selected_ids=selected, **kwargs)


class EditorRouter:
    """Single entry point for switching the division being edited.

    Every switch passes through the open session's guarded exit.
    """

    def __init__(
        self,
        records: RecordClient,
        store: OverlayStore,
        schedule: Optional[ScheduleManager] = None,
        **session_kwargs: Any,
    ):
        self.records = records
        self.store = store
        self.schedule = schedule
        self.session_kwargs = session_kwargs
        self.session: Optional[EditSession] = None

    async def select(self, division_id: Any = None, name: Optional[str] = None, confirm: Optional[Confirm] = None) -> Optional[EditSession]:
        """Open `division_id`/`name`; returns None when the user stays put."""
        if not division_id and not name:
            return None

        async def _open() -> None:
            self.session = await open_session(
                self.records, self.store, division_id, name, schedule=self.schedule, **self.session_kwargs
            )

        if self.session is None or self.session.closed:
            await _open()
            return self.session
        if not await self.session.guarded_exit(confirm or _decline, _open):
            return None
        return self.session

    async def leave(self, confirm: Optional[Confirm] = None) -> bool:
        if self.session is None:
            return True

        def _clear() -> None:
            self.session = None

        return await self.session.guarded_exit(confirm or _decline, _clear)


def _decline(_labels: List[str]) -> bool:
    return False


__all__ = ["EditSession", "open_session", "EditorRouter", "PROGRAM_FIELDS"]
