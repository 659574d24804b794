"""Error taxonomy shared by the repo layer, the record clients and the editor."""
from __future__ import annotations

from typing import Iterable, List


class DivisionTrackerError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(DivisionTrackerError):
    """Required fields are missing or malformed; blocks a commit until
    remediated or explicitly overridden."""

    def __init__(self, issues: Iterable[str]):
        self.issues: List[str] = list(issues)
        super().__init__("Validation failed: " + ", ".join(self.issues))


class NotFoundError(DivisionTrackerError, LookupError):
    """Unknown id on a fetch/update."""


class ConflictError(DivisionTrackerError):
    """Operation would break a consistency rule (e.g. deleting the current year)."""


class TransientIOError(DivisionTrackerError):
    """Network or store failure; logged by callers, never retried automatically."""


__all__ = [
    "DivisionTrackerError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "TransientIOError",
]
