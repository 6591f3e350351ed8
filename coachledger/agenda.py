"""
Agenda projections over stored occurrences: the hourly day grid and the
Monday-first week view.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from typing import Dict, Iterable, List, Optional

from .calendar_utils import format_time, hourly_slots, week_dates
from .config import EngineConfig, get_config
from .models import Occurrence


def format_minutes(total_minutes: int) -> str:
    """Render booked time compactly: 90 -> '1h30m', 120 -> '2h', 0 -> '0h'."""
    hours, minutes = divmod(max(0, int(total_minutes)), 60)
    return f"{hours}h{minutes}m" if minutes else f"{hours}h"


@dataclass
class TimeSlot:
    time: time
    occurrences: List[Occurrence] = field(default_factory=list)

    @property
    def is_free(self) -> bool:
        return not self.occurrences

    @property
    def label(self) -> str:
        return format_time(self.time)


@dataclass
class DayAgenda:
    """One day's sessions laid over the hourly grid."""
    day: date
    occurrences: List[Occurrence] = field(default_factory=list)
    slots: List[TimeSlot] = field(default_factory=list)

    @property
    def client_count(self) -> int:
        return len(self.occurrences)

    @property
    def total_minutes(self) -> int:
        return sum(o.duration_minutes for o in self.occurrences)

    @property
    def booked_label(self) -> str:
        return format_minutes(self.total_minutes)

    @property
    def free_slot_count(self) -> int:
        return sum(1 for s in self.slots if s.is_free)


def day_agenda(
    occurrences: Iterable[Occurrence],
    day: date,
    config: Optional[EngineConfig] = None,
) -> DayAgenda:
    """
    Build the agenda for ``day``.

    Grid slots are whole hours between the configured first and last hour;
    an occurrence lands in the slot whose start equals its time.  Sessions at
    off-grid times still count toward the day totals.
    """
    cfg = config or get_config()
    todays = sorted((o for o in occurrences or () if o.date == day), key=lambda o: o.sort_key)
    slots = [
        TimeSlot(time=slot, occurrences=[o for o in todays if o.time == slot])
        for slot in hourly_slots(cfg.agenda_first_hour, cfg.agenda_last_hour)
    ]
    return DayAgenda(day=day, occurrences=todays, slots=slots)


def week_agenda(occurrences: Iterable[Occurrence], anchor: date) -> Dict[date, List[Occurrence]]:
    """Monday-first mapping of the anchor's week to each day's sessions."""
    days = week_dates(anchor)
    grid: Dict[date, List[Occurrence]] = {d: [] for d in days}
    for occ in occurrences or ():
        if occ.date in grid:
            grid[occ.date].append(occ)
    for day_occs in grid.values():
        day_occs.sort(key=lambda o: o.sort_key)
    return grid
