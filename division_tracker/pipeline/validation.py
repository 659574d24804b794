"""Required-field checks for the division editor form.

`validate` returns the labels of every failing field in form order plus a
`remediate` callable that writes placeholder values over exactly those
fields. Remediation is only ever run after the user agrees to it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from ..core.config import settings
from ..core.errors import ValidationError
from .payees import format_payee_line, is_valid_payee_line, parse_payee_line, payees_to_text, split_lines

LOG = logging.getLogger(__name__)

DIVISION_NAME = ("division_name", "Division Name")
ROLE_FIELDS = (
    ("dean", "Dean"),
    ("chair", "Chair"),
    ("pen", "PEN Contact"),
    ("loc", "LOC Rep"),
)


@dataclass
class ValidationReport:
    issues: List[str] = field(default_factory=list)
    _fixes: List[Callable[[], None]] = field(default_factory=list, repr=False)

    @property
    def ok(self) -> bool:
        return not self.issues

    def remediate(self) -> None:
        """Write placeholder values into every failing field of the form."""
        for fix in self._fixes:
            fix()

    def raise_for_issues(self) -> None:
        if self.issues:
            raise ValidationError(self.issues)

    def _add(self, label: str, fix: Callable[[], None]) -> None:
        if label not in self.issues:
            self.issues.append(label)
        self._fixes.append(fix)


def _set(target: Dict[str, Any], key: str, value: Any) -> Callable[[], None]:
    def fix() -> None:
        target[key] = value

    return fix


def _payee_text(program: Dict[str, Any]) -> str:
    if "payees_text" in program:
        return str(program.get("payees_text") or "")
    return payees_to_text(program.get("payees") if isinstance(program.get("payees"), list) else [])


def _repaired_lines(lines: List[str]) -> str:
    placeholder = format_payee_line(settings.PLACEHOLDER_TEXT, 0)
    fixed = []
    for line in lines:
        if is_valid_payee_line(line):
            name, amount = parse_payee_line(line)
            fixed.append(format_payee_line(name, amount))
        else:
            fixed.append(placeholder)
    return "\n".join(fixed) or placeholder


def _check_program(report: ValidationReport, idx: int, program: Dict[str, Any]) -> None:
    n = idx + 1
    name = str(program.get("program_name") or "").strip()
    if not name or name.lower() == settings.NEW_PROGRAM_NAME.lower():
        report._add(f"Program {n} Name", _set(program, "program_name", settings.PLACEHOLDER_PROGRAM_NAME))

    lines = split_lines(_payee_text(program))
    if not lines:
        report._add(
            f"Program {n} Payees",
            _set(program, "payees_text", format_payee_line(settings.PLACEHOLDER_TEXT, 0)),
        )
    elif not all(is_valid_payee_line(line) for line in lines):
        report._add(f"Program {n} Payees (fix Name - Amount)", _set(program, "payees_text", _repaired_lines(lines)))


def validate(form: Dict[str, Any]) -> ValidationReport:
    """Check the editor form and return a fresh report.

    `Division Name` is always required; each role field is required when the
    form carries it. Every program needs a real name and at least one
    `Name - Amount` payee line with a finite amount.
    """
    report = ValidationReport()

    key, label = DIVISION_NAME
    if not str(form.get(key) or "").strip():
        report._add(label, _set(form, key, settings.PLACEHOLDER_TEXT))

    for key, label in ROLE_FIELDS:
        if key in form and not str(form.get(key) or "").strip():
            report._add(label, _set(form, key, settings.PLACEHOLDER_TEXT))

    programs = form.get("programs") or []
    for idx, program in enumerate(programs):
        if isinstance(program, dict):
            _check_program(report, idx, program)

    if report.issues:
        LOG.debug("Validation issues: %s", report.issues)
    return report


__all__ = ["ValidationReport", "validate", "ROLE_FIELDS"]
