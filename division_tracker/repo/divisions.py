"""Repository helpers for divisions, their programs and payees.

Rows are returned as nested dicts in the shape the editor works with:
a division with `program_list`, each program with `payees`.
"""
from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional
import sqlite3

from ..core.errors import NotFoundError
from ..pipeline.payees import normalize_payees

DIVISION_COLUMNS = ("id", "division_name", "dean_name", "chair_name", "pen_contact", "loc_rep", "notes")

# snapshot key -> divisions column
SNAPSHOT_FIELDS = {
    "division_name": "division_name",
    "dean": "dean_name",
    "chair": "chair_name",
    "pen": "pen_contact",
    "loc": "loc_rep",
    "notes": "notes",
}


def _norm(name: Any) -> str:
    return str(name or "").strip().lower()


def _load_programs(conn: sqlite3.Connection, division_ids: List[int]) -> Dict[int, List[Dict[str, Any]]]:
    by_division: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
    if not division_ids:
        return by_division
    cur = conn.cursor()
    marks = ",".join("?" for _ in division_ids)
    cur.execute(
        f"""
        SELECT id, division_id, program_name, notes, has_been_paid, report_submitted
        FROM programs WHERE division_id IN ({marks})
        ORDER BY division_id, position, id
        """,
        tuple(division_ids),
    )
    programs: Dict[int, Dict[str, Any]] = {}
    for r in cur.fetchall():
        prog = {
            "id": int(r[0]),
            "program_name": r[2] or "",
            "payees": [],
            "has_been_paid": bool(r[4]),
            "report_submitted": bool(r[5]),
            "notes": r[3] or "",
        }
        programs[prog["id"]] = prog
        by_division[int(r[1])].append(prog)

    if programs:
        marks = ",".join("?" for _ in programs)
        cur.execute(
            f"SELECT program_id, name, amount FROM payees WHERE program_id IN ({marks}) ORDER BY id",
            tuple(programs),
        )
        for program_id, name, amount in cur.fetchall():
            programs[int(program_id)]["payees"].append({"name": name or "", "amount": float(amount or 0)})
    return by_division


def _row_to_division(row: tuple) -> Dict[str, Any]:
    div = dict(zip(DIVISION_COLUMNS, row))
    div["id"] = int(div["id"])
    for k in DIVISION_COLUMNS[1:]:
        div[k] = div[k] or ""
    div["program_list"] = []
    return div


def list_divisions(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    """Return all divisions ordered by name, with programs and payees."""
    cur = conn.cursor()
    cur.execute(f"SELECT {', '.join(DIVISION_COLUMNS)} FROM divisions ORDER BY division_name COLLATE NOCASE, id")
    divisions = [_row_to_division(r) for r in cur.fetchall()]
    programs = _load_programs(conn, [d["id"] for d in divisions])
    for d in divisions:
        d["program_list"] = programs.get(d["id"], [])
    return divisions


def get_division(conn: sqlite3.Connection, division_id: int) -> Dict[str, Any]:
    """Return one division by id. Raises NotFoundError for unknown ids."""
    cur = conn.cursor()
    cur.execute(f"SELECT {', '.join(DIVISION_COLUMNS)} FROM divisions WHERE id = ?", (int(division_id),))
    row = cur.fetchone()
    if not row:
        raise NotFoundError(f"Division not found: {division_id}")
    div = _row_to_division(row)
    div["program_list"] = _load_programs(conn, [div["id"]]).get(div["id"], [])
    return div


def find_division_by_name(conn: sqlite3.Connection, name: str) -> Optional[Dict[str, Any]]:
    """Case-insensitive lookup by trimmed name; None when there is no match."""
    key = _norm(name)
    if not key:
        return None
    cur = conn.cursor()
    cur.execute("SELECT id FROM divisions WHERE lower(trim(division_name)) = ? ORDER BY id LIMIT 1", (key,))
    row = cur.fetchone()
    return get_division(conn, int(row[0])) if row else None


def create_division(conn: sqlite3.Connection, division_name: str, **fields: Any) -> int:
    """Insert a new division and return its id. Commits the transaction."""
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO divisions (division_name, dean_name, chair_name, pen_contact, loc_rep, notes)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            division_name.strip(),
            fields.get("dean_name", ""),
            fields.get("chair_name", ""),
            fields.get("pen_contact", ""),
            fields.get("loc_rep", ""),
            fields.get("notes", ""),
        ),
    )
    conn.commit()
    return int(cur.lastrowid)


def rename_division(conn: sqlite3.Connection, division_id: int, division_name: str) -> None:
    cur = conn.cursor()
    cur.execute("UPDATE divisions SET division_name = ? WHERE id = ?", (division_name.strip(), int(division_id)))
    if cur.rowcount == 0:
        conn.rollback()
        raise NotFoundError(f"Division not found: {division_id}")
    conn.commit()


def delete_division(conn: sqlite3.Connection, division_id: int) -> None:
    """Delete a division; programs and payees cascade. Schedule history is kept."""
    cur = conn.cursor()
    cur.execute("DELETE FROM divisions WHERE id = ?", (int(division_id),))
    if cur.rowcount == 0:
        conn.rollback()
        raise NotFoundError(f"Division not found: {division_id}")
    conn.commit()


def get_program(conn: sqlite3.Connection, program_id: int) -> Dict[str, Any]:
    """Return `{id, program_name, division_id, division_name}` for one program."""
    cur = conn.cursor()
    cur.execute(
        """
        SELECT p.id, p.program_name, d.id, d.division_name
        FROM programs p JOIN divisions d ON d.id = p.division_id
        WHERE p.id = ?
        """,
        (int(program_id),),
    )
    row = cur.fetchone()
    if not row:
        raise NotFoundError(f"Program not found: {program_id}")
    return {"id": int(row[0]), "program_name": row[1] or "", "division_id": int(row[2]), "division_name": row[3] or ""}


def _resolve_division_id(conn: sqlite3.Connection, snapshot: Dict[str, Any]) -> Optional[int]:
    raw_id = snapshot.get("id")
    if raw_id not in (None, ""):
        try:
            return get_division(conn, int(raw_id))["id"]
        except (NotFoundError, TypeError, ValueError):
            pass
    match = find_division_by_name(conn, snapshot.get("division_name", ""))
    return match["id"] if match else None


def apply_snapshot(conn: sqlite3.Connection, snapshot: Dict[str, Any]) -> int:
    """Write a committed draft into the division tables and return the division id.

    Programs are matched by normalized name (first unconsumed match wins) so
    existing ids survive; unmatched ones are inserted. Programs missing from
    the snapshot are left in place. Commits the transaction.
    """
    cur = conn.cursor()
    division_id = _resolve_division_id(conn, snapshot)
    if division_id is None:
        cur.execute("INSERT INTO divisions (division_name) VALUES (?)", (str(snapshot.get("division_name") or "").strip(),))
        division_id = int(cur.lastrowid)

    sets = [(col, str(snapshot[key] or "").strip()) for key, col in SNAPSHOT_FIELDS.items() if key in snapshot]
    if sets:
        cur.execute(
            f"UPDATE divisions SET {', '.join(f'{c} = ?' for c, _ in sets)} WHERE id = ?",
            tuple(v for _, v in sets) + (division_id,),
        )

    programs = snapshot.get("programs_data")
    if isinstance(programs, list):
        cur.execute("SELECT id, program_name FROM programs WHERE division_id = ? ORDER BY position, id", (division_id,))
        existing = cur.fetchall()
        by_name: Dict[str, Deque[int]] = defaultdict(deque)
        for pid, pname in existing:
            by_name[_norm(pname)].append(int(pid))

        touched: List[int] = []
        for position, prog in enumerate(p for p in programs if isinstance(p, dict)):
            queue = by_name.get(_norm(prog.get("program_name")))
            values = (
                str(prog.get("program_name") or "").strip(),
                str(prog.get("notes") or ""),
                int(bool(prog.get("has_been_paid"))),
                int(bool(prog.get("report_submitted"))),
                position,
            )
            if queue:
                pid = queue.popleft()
                cur.execute(
                    """
                    UPDATE programs SET program_name = ?, notes = ?, has_been_paid = ?,
                        report_submitted = ?, position = ?
                    WHERE id = ?
                    """,
                    values + (pid,),
                )
                cur.execute("DELETE FROM payees WHERE program_id = ?", (pid,))
            else:
                cur.execute(
                    """
                    INSERT INTO programs (division_id, program_name, notes, has_been_paid, report_submitted, position)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (division_id,) + values,
                )
                pid = int(cur.lastrowid)
            touched.append(pid)
            cur.executemany(
                "INSERT INTO payees (program_id, name, amount) VALUES (?, ?, ?)",
                [(pid, p["name"], p["amount"]) for p in normalize_payees(prog.get("payees"))],
            )

        leftover = [int(pid) for pid, _ in existing if int(pid) not in touched]
        for offset, pid in enumerate(leftover):
            cur.execute("UPDATE programs SET position = ? WHERE id = ?", (len(touched) + offset, pid))

    conn.commit()
    return division_id


__all__ = [
    "list_divisions",
    "get_division",
    "find_division_by_name",
    "create_division",
    "rename_division",
    "delete_division",
    "get_program",
    "apply_snapshot",
]
