"""Academic-year scheduling.

`ScheduleManager` drives the program assessment schedule: which academic
year is current, which programs are selected for improvement in each
year, and the year list itself. The single-current-year rule lives in the
record store (one transaction per switch); the manager adds label
generation and the view-level lock on previous years.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Set

from ..client.records import RecordClient
from ..core.config import settings
from ..core.errors import ConflictError, TransientIOError

LOG = logging.getLogger(__name__)

LABEL_RE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")


def next_year_label(label: Optional[str]) -> str:
    """Increment both halves of a `YYYY-YYYY` (or `YYYY-YY`) label.

    The second half keeps its width. Anything that is not two integers
    joined by a hyphen yields the configured default label.
    """
    match = LABEL_RE.match(label or "")
    if not match:
        return settings.DEFAULT_YEAR_LABEL
    first, second = match.group(1), match.group(2)
    nxt = str(int(second) + 1)
    if len(second) < len(nxt):
        nxt = nxt[-len(second):]
    return f"{int(first) + 1}-{nxt.zfill(len(second))}"


def build_schedule_map(rows: Iterable[Dict[str, Any]]) -> Dict[int, Dict[int, bool]]:
    """Convert schedule rows to `{year_id: {program_id: is_selected}}`."""
    out: Dict[int, Dict[int, bool]] = {}
    for row in rows:
        y = row.get("academic_year_id")
        p = row.get("program_id")
        if not y or not p:
            continue
        out.setdefault(int(y), {})[int(p)] = bool(row.get("is_selected"))
    return out


def find_current_year(years: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return next((y for y in years if y.get("is_current")), None)


class ScheduleManager:
    def __init__(self, records: RecordClient, lock_previous: bool = True):
        self.records = records
        self.lock_previous = lock_previous

    async def years(self) -> List[Dict[str, Any]]:
        return await self.records.fetch_years()

    async def current_year(self) -> Optional[Dict[str, Any]]:
        return find_current_year(await self.records.fetch_years())

    async def set_current_year(self, year_id: int) -> Dict[str, Any]:
        """Make `year_id` the only current year (atomic in the record store)."""
        year = await self.records.set_current_year(year_id)
        LOG.info("Current academic year set to %s", year.get("label"))
        return year

    async def delete_year(self, year_id: int) -> None:
        """Delete a non-current year and its schedule rows; ConflictError for the current one."""
        await self.records.delete_year(year_id)
        LOG.info("Deleted academic year %s", year_id)

    async def add_next_year(self) -> Dict[str, Any]:
        """Create the year after the most recently added one.

        Falls back to the default label when there are no years or the last
        label cannot be parsed.
        """
        years = await self.records.fetch_years()
        last = max(years, key=lambda y: int(y["id"])) if years else None
        label = next_year_label(last["label"] if last else None)
        return await self.records.create_year(label)

    async def toggle_selection(self, year_id: int, program_id: int, selected: bool) -> Dict[str, Any]:
        """Upsert the (year, program) selection. Accepts any year."""
        try:
            return await self.records.upsert_schedule_entry(year_id, program_id, selected)
        except TransientIOError:
            LOG.warning("Schedule update failed for year=%s program=%s", year_id, program_id, exc_info=True)
            raise

    async def editable_years(self) -> List[Dict[str, Any]]:
        """Years whose checkboxes the schedule view enables."""
        years = await self.records.fetch_years()
        if not self.lock_previous:
            return years
        return [y for y in years if y.get("is_current")]

    async def toggle_from_view(self, year_id: int, program_id: int, selected: bool) -> Dict[str, Any]:
        """Schedule view entry point: honours the lock on previous years."""
        if self.lock_previous:
            current = await self.current_year()
            if not current or int(current["id"]) != int(year_id):
                raise ConflictError("Previous years are locked; unlock them to change selections")
        return await self.toggle_selection(year_id, program_id, selected)

    async def schedule_map(self, year_id: Optional[int] = None) -> Dict[int, Dict[int, bool]]:
        return build_schedule_map(await self.records.fetch_schedule(year_id))

    async def selected_program_ids(self) -> Set[int]:
        """Ids of programs selected in the current year (empty when no year is current)."""
        current = await self.current_year()
        if not current:
            return set()
        rows = await self.records.fetch_schedule(current["id"])
        return {int(r["program_id"]) for r in rows if r.get("is_selected")}


def order_programs(programs: List[Dict[str, Any]], selected_ids: Set[int]) -> List[Dict[str, Any]]:
    """Selected programs first, then A-Z by name (case-insensitive)."""

    def key(p: Dict[str, Any]) -> tuple:
        pid = p.get("id")
        chosen = pid is not None and int(pid) in selected_ids
        return (not chosen, str(p.get("program_name") or "").lower())

    return sorted(programs, key=key)


__all__ = [
    "ScheduleManager",
    "next_year_label",
    "build_schedule_map",
    "find_current_year",
    "order_programs",
]
