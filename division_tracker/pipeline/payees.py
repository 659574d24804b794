"""Payee line helpers.

The editor shows payees as text, one `Name - Amount` per line. These
helpers parse those lines, render them back and coerce amounts to finite
numbers.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

SEPARATOR = " - "
CURRENCY_SYMBOLS = ("US$", "USD", "$")


def _normalize_numeric_string(s: str) -> str:
    t = s.strip()
    neg = False
    if t.startswith("(") and t.endswith(")"):
        neg = True
        t = t[1:-1].strip()
    for sym in CURRENCY_SYMBOLS:
        t = t.replace(sym, "")
    t = t.replace(",", "").replace(" ", "")
    if neg:
        t = "-" + t
    return t


def parse_amount(raw: Any) -> Optional[float]:
    """Return `raw` as a finite float, or None when it cannot be read as one.

    Accepts numbers and strings like `1200`, `$1,200.50`, `(15)`.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = _normalize_numeric_string(str(raw))
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    return value if math.isfinite(value) else None


def coerce_amount(raw: Any, default: float = 0.0) -> float:
    """Like `parse_amount` but never fails: unreadable values become `default`."""
    value = parse_amount(raw)
    return default if value is None else value


def split_lines(text: Any) -> List[str]:
    """Split a payee text box into trimmed, non-empty lines."""
    return [ln.strip() for ln in str(text or "").splitlines() if ln.strip()]


def parse_payee_line(line: str) -> Tuple[str, Optional[float]]:
    """Split `"<name> - <amount>"` into its name and amount.

    The last ` - ` separates the amount so names may contain hyphens; a line
    without one falls back to the first bare hyphen. A missing or non-finite
    amount comes back as None.
    """
    line = line.strip()
    if SEPARATOR in line:
        name, _, amount = line.rpartition(SEPARATOR)
    elif "-" in line:
        name, _, amount = line.partition("-")
    else:
        return line, None
    return name.strip(), parse_amount(amount)


def is_valid_payee_line(line: str) -> bool:
    name, amount = parse_payee_line(line)
    return bool(name) and amount is not None


def format_amount(amount: Any) -> str:
    value = coerce_amount(amount)
    return str(int(value)) if value.is_integer() else repr(value)


def format_payee_line(name: Any, amount: Any) -> str:
    return f"{str(name or '').strip()}{SEPARATOR}{format_amount(amount)}"


def payees_to_text(payees: Optional[Iterable[Dict[str, Any]]]) -> str:
    return "\n".join(format_payee_line(p.get("name"), p.get("amount")) for p in (payees or []))


def text_to_payees(text: Any, placeholder: str = "TBD") -> List[Dict[str, Any]]:
    """Parse a payee text box into `{name, amount}` dicts.

    Lines without a name become the placeholder payee; unreadable amounts
    become 0. Nothing is dropped, so the line count is preserved.
    """
    out: List[Dict[str, Any]] = []
    for line in split_lines(text):
        name, amount = parse_payee_line(line)
        if not name:
            out.append({"name": placeholder, "amount": 0.0})
            continue
        out.append({"name": name, "amount": 0.0 if amount is None else amount})
    return out


def normalize_payees(payees: Any) -> List[Dict[str, Any]]:
    """Return a clean payee list with finite amounts from loosely-typed input."""
    out: List[Dict[str, Any]] = []
    if not isinstance(payees, list):
        return out
    for p in payees:
        if not isinstance(p, dict):
            continue
        out.append({"name": str(p.get("name") or "").strip(), "amount": coerce_amount(p.get("amount"))})
    return out


def total_amount(programs: Iterable[Dict[str, Any]]) -> float:
    return sum(coerce_amount(p.get("amount")) for prog in programs for p in (prog.get("payees") or []))


def payee_count(programs: Iterable[Dict[str, Any]]) -> int:
    return sum(len(prog.get("payees") or []) for prog in programs)


__all__ = [
    "parse_amount",
    "coerce_amount",
    "split_lines",
    "parse_payee_line",
    "is_valid_payee_line",
    "format_amount",
    "format_payee_line",
    "payees_to_text",
    "text_to_payees",
    "normalize_payees",
    "total_amount",
    "payee_count",
]
