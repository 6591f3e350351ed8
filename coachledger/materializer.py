"""
Recurrence materializer: expands weekly templates into dated occurrences.

``materialize`` is a pure function from (clients, already-known keys, window)
to the occurrences that still need inserting.  It never returns a key the
caller already knows about, so applying its result is idempotent and a
manually moved or deleted session is never re-created.

Rules:
    - consulting-only clients never produce occurrences
    - inactive clients get nothing dated after ``today``
    - an empty template, or a window whose end precedes its start, yields []
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import AbstractSet, Iterable, List, Optional, Union

from .calendar_utils import days_between
from .config import EngineConfig, get_config
from .models import Client, Occurrence, natural_key

logger = logging.getLogger(__name__)


def _reference_day(today: Union[date, datetime]) -> date:
    return today.date() if isinstance(today, datetime) else today


def client_candidates(
    client: Client,
    window_start: date,
    window_end: date,
    today: Union[date, datetime],
    duration_minutes: int,
) -> List[Occurrence]:
    """All template occurrences of one client in the window, before dedup."""
    if client.is_consulting_only or not client.weekly_template:
        return []
    ref_day = _reference_day(today)
    candidates: List[Occurrence] = []
    # Group the template by weekday so the window is walked once.
    by_weekday: dict = {}
    for slot in client.weekly_template:
        by_weekday.setdefault(slot.weekday.value, []).append(slot.time)

    for day in days_between(window_start, window_end):
        times = by_weekday.get(day.weekday())
        if not times:
            continue
        if not client.is_active and ref_day < day:
            continue
        for at in times:
            candidates.append(
                Occurrence(
                    id=natural_key(client.id, day, at),
                    client_id=client.id,
                    client_name=client.name,
                    date=day,
                    time=at,
                    duration_minutes=duration_minutes,
                )
            )
    return candidates


def materialize(
    clients: Iterable[Client],
    window_start: date,
    window_end: date,
    today: Union[date, datetime],
    existing_keys: AbstractSet[str] = frozenset(),
    config: Optional[EngineConfig] = None,
) -> List[Occurrence]:
    """
    Return the occurrences that should be added for ``[window_start, window_end]``.

    Args:
        clients:       Client roster.
        window_start:  First day of the window (inclusive).
        window_end:    Last day of the window (inclusive).
        today:         Reference day for the inactive-client rule.
        existing_keys: Keys already stored or retired; never re-emitted.
        config:        Engine config (default duration).

    Returns:
        New occurrences ordered by date, time, then client.
    """
    cfg = config or get_config()
    if window_start is None or window_end is None or window_end < window_start:
        logger.debug("Empty materialization window %s..%s", window_start, window_end)
        return []

    emitted: set = set()
    created: List[Occurrence] = []
    skipped = 0
    for client in clients or ():
        for occ in client_candidates(
            client, window_start, window_end, today, cfg.default_duration_minutes
        ):
            if occ.id in existing_keys or occ.id in emitted:
                skipped += 1
                continue
            emitted.add(occ.id)
            created.append(occ)

    created.sort(key=lambda o: o.sort_key)
    logger.info(
        "Materialized %d new occurrence(s) for %s..%s (%d already known)",
        len(created), window_start, window_end, skipped,
    )
    return created
