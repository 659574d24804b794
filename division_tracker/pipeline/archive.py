"""Snapshot history aggregation.

Turns the append-only snapshot list into readable change summaries, groups
it into fiscal periods for the archive view and builds the history table
that can be exported to XLSX.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from ..core.config import settings
from ..core.storage import export_to_excel
from .payees import payee_count, total_amount

LOG = logging.getLogger(__name__)

UNKNOWN_PERIOD = "Unknown"
FALLBACK_SUMMARY = "Changes saved (program details updated)"
SEPARATOR = " · "
BLANK = "—"
NOTES_LIMIT = 120
PREVIEW_LIMIT = 140

DIFF_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("dean", "Dean"),
    ("chair", "Chair"),
    ("pen", "Pen contact"),
    ("loc", "LOC rep"),
)

HISTORY_COLUMNS = [
    "Saved At",
    "Division",
    "Dean",
    "Chair",
    "PEN Contact",
    "LOC Rep",
    "Programs",
    "Payees",
    "Total",
    "Notes",
]

Timestamp = Union[str, datetime, None]


@dataclass
class ArchiveBucket:
    period: str
    division_name: str
    change_count: int = 0
    latest: Dict[str, Any] = field(default_factory=dict)
    summaries: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_timestamp(ts: Timestamp) -> Optional[datetime]:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if ts is None or ts == "":
        return None
    if isinstance(ts, datetime):
        dt = ts
    else:
        text = str(ts).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            LOG.debug("Unparsable timestamp: %r", ts)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def period_label(ts: Timestamp) -> str:
    """Fiscal period of `ts`, e.g. `2024-2025` for any date from July 2024 to June 2025."""
    dt = parse_timestamp(ts)
    if dt is None:
        return UNKNOWN_PERIOD
    start = dt.year if dt.month >= settings.FISCAL_BOUNDARY_MONTH else dt.year - 1
    return f"{start}-{start + 1}"


def dollar(amount: Any) -> str:
    """Whole-dollar currency text: 1200 -> `$1,200`. Empty for zero or non-numbers."""
    try:
        num = float(amount)
    except (TypeError, ValueError):
        return ""
    if not math.isfinite(num) or round(num) == 0:
        return ""
    sign = "-" if num < 0 else ""
    return f"{sign}${abs(num):,.0f}"


def _text(snapshot: Dict[str, Any], key: str) -> str:
    return str(snapshot.get(key) or "").strip()


def _counts(snapshot: Dict[str, Any]) -> Tuple[int, int, float]:
    programs = snapshot.get("programs")
    if programs is None:
        programs = snapshot.get("programs_data")
    programs = programs if isinstance(programs, list) else []
    progs = snapshot.get("program_count")
    payees = snapshot.get("payee_count")
    total = snapshot.get("total_amount")
    return (
        int(progs) if progs is not None else len(programs),
        int(payees) if payees is not None else payee_count(programs),
        float(total) if total is not None else total_amount(programs),
    )


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def _signed(n: int) -> str:
    return f"+{n}" if n > 0 else str(n)


def initial_summary(snapshot: Dict[str, Any]) -> str:
    progs, payees, total = _counts(snapshot)
    parts = []
    if progs > 0:
        parts.append(_plural(progs, "program"))
    if payees > 0:
        parts.append(_plural(payees, "payee"))
    money = dollar(total)
    if money:
        parts.append(money)
    if parts:
        return "Initial save" + SEPARATOR + SEPARATOR.join(parts)
    if _text(snapshot, "notes"):
        return "Initial save" + SEPARATOR + "Notes added"
    return "Initial save for this division"


def diff_summary(prev: Dict[str, Any], curr: Dict[str, Any]) -> str:
    """Describe what changed between two snapshots of the same division.

    Never returns an empty string.
    """
    pieces: List[str] = []

    changes = [
        (label, _text(prev, key), _text(curr, key))
        for key, label in DIFF_FIELDS
        if _text(prev, key) != _text(curr, key)
    ]
    if changes:
        bits = [f"{label}: {before or BLANK} → {after or BLANK}" for label, before, after in changes[:2]]
        extra = len(changes) - 2
        if extra > 0:
            bits.append(f"+{extra} more field{'' if extra == 1 else 's'}")
        pieces.append("Fields changed: " + SEPARATOR.join(bits))

    prev_progs, prev_payees, prev_total = _counts(prev)
    curr_progs, curr_payees, curr_total = _counts(curr)
    counts: List[str] = []
    if curr_progs != prev_progs:
        counts.append(f"Programs: {_signed(curr_progs - prev_progs)}")
    if curr_payees != prev_payees:
        counts.append(f"Payees: {_signed(curr_payees - prev_payees)}")
    delta = round(curr_total - prev_total, 2)
    if delta != 0:
        counts.append(f"Funding: {'+' if delta > 0 else '-'}{dollar(abs(delta)) or '$0'}")
    if counts:
        pieces.append(SEPARATOR.join(counts))

    notes = _text(curr, "notes")
    if notes and notes != _text(prev, "notes"):
        pieces.append("Notes updated")

    return SEPARATOR.join(pieces) if pieces else FALLBACK_SUMMARY


def division_key(snapshot: Dict[str, Any]) -> str:
    if snapshot.get("division_id"):
        return f"id:{snapshot['division_id']}"
    name = _text(snapshot, "division_name").lower()
    return f"name:{name}" if name else "unknown"


def _chronological(snapshots: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    epoch = datetime.min.replace(tzinfo=timezone.utc)

    def key(s: Dict[str, Any]) -> Tuple[datetime, int]:
        return (parse_timestamp(s.get("created_at")) or epoch, int(s.get("id") or 0))

    return sorted(snapshots, key=key)


def build_diff_summaries(snapshots: Iterable[Dict[str, Any]]) -> Dict[Any, str]:
    """Map snapshot id to its diff against the previous snapshot of the same division.

    First snapshots per division have no entry; callers use `initial_summary`.
    """
    out: Dict[Any, str] = {}
    previous: Dict[str, Dict[str, Any]] = {}
    for snap in _chronological(snapshots):
        key = division_key(snap)
        if key in previous:
            out[snap.get("id")] = diff_summary(previous[key], snap)
        previous[key] = snap
    return out


def group_by_period(snapshots: Iterable[Dict[str, Any]]) -> List[ArchiveBucket]:
    buckets: Dict[Tuple[str, str], ArchiveBucket] = {}
    previous: Dict[str, Dict[str, Any]] = {}
    for snap in _chronological(snapshots):
        div = division_key(snap)
        key = (period_label(snap.get("created_at")), div)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = ArchiveBucket(period=key[0], division_name=_text(snap, "division_name"))
        if div in previous:
            bucket.summaries.append(diff_summary(previous[div], snap))
        else:
            bucket.summaries.append(initial_summary(snap))
        previous[div] = snap
        bucket.change_count += 1
        bucket.division_name = _text(snap, "division_name") or bucket.division_name
        bucket.latest = {k: _text(snap, k) for k, _ in DIFF_FIELDS}
        bucket.latest["created_at"] = snap.get("created_at")

    ordered = sorted(buckets.values(), key=lambda b: b.division_name.lower())
    return sorted(ordered, key=lambda b: (b.period != UNKNOWN_PERIOD, b.period), reverse=True)


def time_ago(ts: Timestamp, now: Optional[datetime] = None) -> str:
    dt = parse_timestamp(ts)
    if dt is None:
        return ""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    def _round(x: float) -> int:
        return int(math.floor(x + 0.5))

    mins = _round((now - dt).total_seconds() / 60)
    if mins < 1:
        return "just now"
    if mins < 60:
        return f"{mins} min ago"
    hours = _round(mins / 60)
    if hours < 24:
        return f"{hours} h ago"
    days = _round(hours / 24)
    if days < 30:
        return f"{days} days ago"
    months = _round(days / 30)
    if months < 12:
        return f"{months} months ago"
    return f"{_round(months / 12)} years ago"


def _truncate(text: str, limit: int, ellipsis: str) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + ellipsis


def recent_changes(
    snapshots: Iterable[Dict[str, Any]],
    limit: int = 30,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Rows for the recent-changes panel, newest first."""
    snapshots = list(snapshots)
    summaries = build_diff_summaries(snapshots)
    rows = []
    for snap in reversed(_chronological(snapshots)):
        if len(rows) >= limit:
            break
        rows.append(
            {
                "id": snap.get("id"),
                "division_name": _text(snap, "division_name") or "Unknown division",
                "when": time_ago(snap.get("created_at"), now),
                "summary": summaries.get(snap.get("id")) or initial_summary(snap),
                "notes_preview": _truncate(_text(snap, "notes"), PREVIEW_LIMIT, "…"),
            }
        )
    return rows


def _saved_at(ts: Timestamp) -> str:
    dt = parse_timestamp(ts)
    return dt.strftime("%Y-%m-%d %H:%M") if dt else ""


def history_frame(snapshots: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    """History table, newest first, one row per snapshot."""
    rows = []
    for snap in reversed(_chronological(snapshots)):
        progs, payees, total = _counts(snap)
        rows.append(
            {
                "Saved At": _saved_at(snap.get("created_at")),
                "Division": _text(snap, "division_name"),
                "Dean": _text(snap, "dean"),
                "Chair": _text(snap, "chair"),
                "PEN Contact": _text(snap, "pen"),
                "LOC Rep": _text(snap, "loc"),
                "Programs": progs,
                "Payees": payees,
                "Total": dollar(total) or "$0",
                "Notes": _truncate(str(snap.get("notes") or ""), NOTES_LIMIT, "..."),
            }
        )
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)


def export_history_xlsx(snapshots: Iterable[Dict[str, Any]], path: Union[str, Path]) -> str:
    df = history_frame(snapshots)
    out = export_to_excel(df, path)
    LOG.info("Exported %d history rows to %s", len(df), out)
    return out


__all__ = [
    "ArchiveBucket",
    "parse_timestamp",
    "period_label",
    "dollar",
    "initial_summary",
    "diff_summary",
    "build_diff_summaries",
    "group_by_period",
    "time_ago",
    "recent_changes",
    "history_frame",
    "export_history_xlsx",
]
