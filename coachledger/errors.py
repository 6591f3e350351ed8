"""
Exception hierarchy for the scheduling and billing core.

Store mutations raise ``NotFoundError`` for ids that are not present and
``ConflictError`` for natural-key collisions.  Windowed read operations never
raise ``InvalidRangeError``; they return empty results instead.  The error is
only raised by ``ensure_range`` for callers that want strict validation.
"""

from __future__ import annotations

from datetime import date
from typing import Any


class CoachLedgerError(Exception):
    """Base exception for all scheduling and billing errors."""
    pass


class NotFoundError(CoachLedgerError):
    """Raised when an operation references an id absent from the store."""

    def __init__(self, kind: str, identifier: Any):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier!r}")


class ConflictError(CoachLedgerError):
    """Raised when an insert collides with an occurrence already stored."""

    def __init__(self, key: str, message: str = ""):
        self.key = key
        super().__init__(message or f"Occurrence already exists: {key!r}")


class InvalidRangeError(CoachLedgerError):
    """Raised by strict range validation when ``end`` precedes ``start``."""

    def __init__(self, start: date, end: date):
        self.start = start
        self.end = end
        super().__init__(f"Invalid date range: {start} .. {end}")


def ensure_range(start: date, end: date) -> None:
    """Raise ``InvalidRangeError`` unless ``start <= end``."""
    if start is None or end is None or end < start:
        raise InvalidRangeError(start, end)
