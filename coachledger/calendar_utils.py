"""
Calendar arithmetic: pure date helpers for the scheduling core.

Weeks start on Monday.  Every helper is deterministic given its inputs and
never reads the wall clock.  Malformed windows (end before start) produce
empty sequences rather than errors so callers can iterate blindly.

Usage:
    from coachledger.calendar_utils import days_between, start_of_week

    for day in days_between(date(2026, 2, 1), date(2026, 2, 28)):
        ...
"""

from __future__ import annotations

import calendar
import unicodedata
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterator, List, Union

DateLike = Union[date, datetime, str]

DATE_FMT = "%Y-%m-%d"
TIME_FMT = "%H:%M"


# ---------------------------------------------------------------------------
# Weekdays
# ---------------------------------------------------------------------------


def _fold(value: str) -> str:
    """Lowercase and strip accents so 'Terça' matches 'terca'."""
    decomposed = unicodedata.normalize("NFKD", value.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


class Weekday(Enum):
    """Calendar weekday; values match ``date.weekday()`` (Monday == 0)."""
    MON = 0
    TUE = 1
    WED = 2
    THU = 3
    FRI = 4
    SAT = 5
    SUN = 6

    @classmethod
    def from_string(cls, value: str) -> Weekday:
        """Parse a loose weekday name: 'mon', 'Monday', 'Segunda', 'sábado', '0'."""
        normalized = _fold(str(value)).replace("-feira", "")
        if normalized.isdigit():
            return cls(int(normalized))
        for member in cls:
            if normalized in _WEEKDAY_ALIASES[member]:
                return member
        raise ValueError(f"Unknown weekday: {value!r}")

    @property
    def label(self) -> str:
        return calendar.day_name[self.value]


_WEEKDAY_ALIASES = {
    Weekday.MON: {"mon", "monday", "segunda", "seg"},
    Weekday.TUE: {"tue", "tues", "tuesday", "terca", "ter"},
    Weekday.WED: {"wed", "wednesday", "quarta", "qua"},
    Weekday.THU: {"thu", "thur", "thurs", "thursday", "quinta", "qui"},
    Weekday.FRI: {"fri", "friday", "sexta", "sex"},
    Weekday.SAT: {"sat", "saturday", "sabado", "sab"},
    Weekday.SUN: {"sun", "sunday", "domingo", "dom"},
}


def weekday_of(day: date) -> Weekday:
    return Weekday(day.weekday())


# ---------------------------------------------------------------------------
# Parsing / formatting at the ISO boundary
# ---------------------------------------------------------------------------


def parse_date(value: DateLike) -> date:
    """Accept a date, a datetime or an ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.strptime(value.strip()[:10], DATE_FMT).date()
    raise TypeError(f"Unsupported date-like value: {value!r}")


def parse_time(value: Union[time, str]) -> time:
    """Accept a time or a 24-hour 'HH:MM' (or 'HH:MM:SS') string."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if isinstance(value, str):
        return datetime.strptime(value.strip()[:5], TIME_FMT).time()
    raise TypeError(f"Unsupported time value: {value!r}")


def format_date(day: date) -> str:
    return day.strftime(DATE_FMT)


def format_time(value: time) -> str:
    return value.strftime(TIME_FMT)


def reference_instant(today: Union[date, datetime]) -> datetime:
    """
    Normalize a reference 'today' into a naive datetime.

    A plain date means the very start of that day; a datetime is kept as-is
    (timezone dropped, since occurrence times are wall-clock local).
    """
    if isinstance(today, datetime):
        return today.replace(tzinfo=None)
    return datetime.combine(today, time.min)


# ---------------------------------------------------------------------------
# Week / month boundaries
# ---------------------------------------------------------------------------


def start_of_week(day: date) -> date:
    return day - timedelta(days=day.weekday())


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def days_in_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


def end_of_month(day: date) -> date:
    return day.replace(day=days_in_month(day))


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, pulling ``day`` back to the month's last day when too large."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, max(1, min(day, last)))


class DateRange:
    """
    Inclusive, lazy, restartable run of calendar dates.

    Iterating twice yields the same dates.  An inverted range is simply empty.
    """

    __slots__ = ("start", "end")

    def __init__(self, start: date, end: date) -> None:
        self.start = start
        self.end = end

    def __iter__(self) -> Iterator[date]:
        if self.start is None or self.end is None:
            return
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def __len__(self) -> int:
        if self.start is None or self.end is None or self.end < self.start:
            return 0
        return (self.end - self.start).days + 1

    def __contains__(self, day: object) -> bool:
        if not isinstance(day, date) or len(self) == 0:
            return False
        if isinstance(day, datetime):
            day = day.date()
        return self.start <= day <= self.end

    def __repr__(self) -> str:
        return f"DateRange({self.start}, {self.end})"


def days_between(start: date, end: date) -> DateRange:
    return DateRange(start, end)


def week_dates(anchor: date) -> List[date]:
    """The seven dates (Monday..Sunday) of the week containing ``anchor``."""
    monday = start_of_week(anchor)
    return [monday + timedelta(days=i) for i in range(7)]


def month_days(anchor: date) -> DateRange:
    return DateRange(start_of_month(anchor), end_of_month(anchor))


def leading_blanks(anchor: date) -> int:
    """Empty cells before the 1st in a Monday-first month grid."""
    return start_of_month(anchor).weekday()


def hourly_slots(first_hour: int, last_hour: int) -> List[time]:
    """Whole-hour slot starts from ``first_hour`` to ``last_hour`` inclusive."""
    return [time(hour, 0) for hour in range(first_hour, last_hour + 1)]
