"""Draft overlay merge.

`merge_division` layers a locally cached draft (the overlay) on top of a
division fetched from the system of record. `to_form` / `overlay_from_form`
convert between the merged record and the editor's form representation.
"""
from __future__ import annotations

import copy
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional

from ..core.config import settings
from .payees import payees_to_text, text_to_payees

# overlay key -> division key
SCALAR_FIELDS: Dict[str, str] = {
    "division_name": "division_name",
    "dean": "dean_name",
    "chair": "chair_name",
    "pen": "pen_contact",
    "loc": "loc_rep",
    "notes": "notes",
}


def normalize_name(name: Any) -> str:
    return str(name or "").strip().lower()


def _present(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def merge_programs(base_list: Any, overlay_list: List[Any]) -> List[Any]:
    """Merge an overlay program list into the base list.

    Overlay order comes first. A program whose normalized name matches an
    unconsumed base program takes the base fields overwritten by its own,
    but always keeps the base id. Unmatched overlay programs pass through;
    base programs nobody matched are appended in their original order.
    """
    base_list = base_list if isinstance(base_list, list) else []
    queues: Dict[str, Deque[int]] = defaultdict(deque)
    for idx, bp in enumerate(base_list):
        if isinstance(bp, dict):
            queues[normalize_name(bp.get("program_name"))].append(idx)

    consumed = set()
    merged: List[Any] = []
    for lp in overlay_list:
        if not isinstance(lp, dict):
            continue
        queue = queues.get(normalize_name(lp.get("program_name")))
        if not queue:
            merged.append(copy.deepcopy(lp))
            continue
        idx = queue.popleft()
        consumed.add(idx)
        bp = base_list[idx]
        item = copy.deepcopy({**bp, **lp})
        if "id" in bp:
            item["id"] = bp["id"]
        else:
            item.pop("id", None)
        merged.append(item)

    merged.extend(copy.deepcopy(bp) for idx, bp in enumerate(base_list) if idx not in consumed)
    return merged


def merge_division(base: Dict[str, Any], overlay: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return the effective division: `base` with `overlay` layered on top.

    Neither input is modified. Overlay scalars only win when non-blank, so a
    cleared field in the draft never hides a stored value.
    """
    merged = copy.deepcopy(base)
    if not overlay:
        return merged

    for key, target in SCALAR_FIELDS.items():
        if _present(overlay.get(key)):
            merged[target] = overlay[key]

    programs = overlay.get("programs_data")
    if isinstance(programs, list):
        merged["program_list"] = merge_programs(base.get("program_list"), programs)
    return merged


def to_form(division: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a (merged) division into the editable form.

    Payees become one `Name - Amount` text line each.
    """
    programs = division.get("program_list") if isinstance(division.get("program_list"), list) else []
    return {
        "id": division.get("id"),
        "division_name": str(division.get("division_name") or "").strip(),
        "dean": division.get("dean_name") or "",
        "chair": division.get("chair_name") or "",
        "pen": division.get("pen_contact") or "",
        "loc": division.get("loc_rep") or "",
        "notes": division.get("notes") or "",
        "programs": [
            {
                "id": p.get("id"),
                "program_name": p.get("program_name") or "",
                "payees_text": payees_to_text(p.get("payees")),
                "has_been_paid": bool(p.get("has_been_paid")),
                "report_submitted": bool(p.get("report_submitted")),
                "notes": p.get("notes") or "",
            }
            for p in programs
            if isinstance(p, dict)
        ],
    }


def overlay_from_form(form: Dict[str, Any], previous: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build the overlay record persisted for `form`.

    Starts from the previously stored overlay so keys the form does not
    know about survive. Program ids are never written; the merge takes them
    from the base record.
    """
    draft: Dict[str, Any] = dict(previous or {})
    if form.get("id") not in (None, ""):
        draft["id"] = form["id"]
    for key in SCALAR_FIELDS:
        draft[key] = str(form.get(key) or "").strip()
    draft["programs_data"] = [
        {
            "program_name": str(p.get("program_name") or "").strip(),
            "payees": text_to_payees(p.get("payees_text"), placeholder=settings.PLACEHOLDER_TEXT),
            "has_been_paid": bool(p.get("has_been_paid")),
            "report_submitted": bool(p.get("report_submitted")),
            "notes": p.get("notes") or "",
        }
        for p in form.get("programs") or []
    ]
    return draft


__all__ = ["SCALAR_FIELDS", "normalize_name", "merge_programs", "merge_division", "to_form", "overlay_from_form"]
