"""
Occurrence store: the single owner of materialized and ad-hoc sessions.

Template-derived occurrences are keyed by the natural key of the slot the
template assigned, ``{client_id}-{YYYY-MM-DD}-{HH:MM}``.  The id never
changes: a moved session keeps its original key (and ``origin_date``), so the
destination slot stays free for the client's own template session there.
Removing an occurrence retires its key; a persisted ``cancelled`` record is
hydrated back into a retired key.  ``known_keys()`` (live + retired) is what
the materializer checks, so regenerating a window never resurrects a session
the trainer moved or deleted, in this process or after a restart.

Usage:
    store = OccurrenceStore()
    store.materialize(clients, date(2026, 3, 1), date(2026, 3, 31), today)
    moved = store.move(occ_id, date(2026, 3, 4), "09:00")
    store.mark_complete(moved.id, tags={"legs"})
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from .calendar_utils import parse_date, parse_time
from .config import EngineConfig
from .errors import ConflictError, NotFoundError
from .materializer import materialize as plan_materialization
from .models import Client, Occurrence

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"completed", "tags", "notes", "duration_minutes", "client_name", "date", "time"}
)


class OccurrenceStore:
    """In-memory, single-writer occurrence collection with idempotent identity."""

    def __init__(self, occurrences: Optional[Iterable[Occurrence]] = None) -> None:
        self._items: Dict[str, Occurrence] = {}
        self._retired: Set[str] = set()
        if occurrences:
            self.hydrate(occurrences)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, occurrence_id: object) -> bool:
        return occurrence_id in self._items

    def get(self, occurrence_id: str) -> Occurrence:
        try:
            return self._items[occurrence_id]
        except KeyError:
            raise NotFoundError("Occurrence", occurrence_id) from None

    def all(self) -> List[Occurrence]:
        return sorted(self._items.values(), key=lambda o: o.sort_key)

    def known_keys(self) -> frozenset:
        """Live ids plus keys retired by removals."""
        return frozenset(self._items) | frozenset(self._retired)

    @property
    def retired_keys(self) -> frozenset:
        return frozenset(self._retired)

    def _live_natural_keys(self) -> Set[str]:
        return {o.natural_key for o in self._items.values()}

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def list_by_client(self, client_id: str) -> List[Occurrence]:
        return sorted(
            (o for o in self._items.values() if o.client_id == client_id),
            key=lambda o: o.sort_key,
        )

    def list_by_date_range(self, start: date, end: date) -> List[Occurrence]:
        if start is None or end is None or end < start:
            return []
        return sorted(
            (o for o in self._items.values() if start <= o.date <= end),
            key=lambda o: o.sort_key,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, occurrence: Occurrence, force: bool = False) -> Occurrence:
        """
        Insert an occurrence.

        Without ``force`` the insert is rejected when another live occurrence
        already holds the same natural key.  ``force`` is for ad-hoc sessions
        with caller-chosen ids: it skips the natural-key check, but an exact
        id collision is still a conflict.
        """
        if occurrence.id in self._items:
            raise ConflictError(occurrence.id)
        if not force and occurrence.natural_key in self._live_natural_keys():
            raise ConflictError(
                occurrence.natural_key,
                f"A session already exists at {occurrence.natural_key!r}",
            )
        self._items[occurrence.id] = occurrence
        self._retired.discard(occurrence.id)
        logger.debug("Added occurrence %s (forced=%s)", occurrence.id, force)
        return occurrence

    def update(self, occurrence_id: str, **fields: Any) -> Occurrence:
        """
        Merge ``fields`` into an occurrence.

        Every field is parsed and validated before anything is written, so a
        bad value leaves the stored occurrence untouched.  ``date``/``time``
        changes reschedule the occurrence without changing its id.
        """
        current = self.get(occurrence_id)
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown occurrence field(s): {sorted(unknown)}")

        changes = dict(fields)
        if "date" in changes:
            changes["date"] = parse_date(changes["date"])
        if "time" in changes:
            changes["time"] = parse_time(changes["time"])
        if "tags" in changes:
            changes["tags"] = frozenset(changes["tags"] or ())
        if "notes" in changes and changes["notes"] is None:
            changes["notes"] = ""
        if not changes:
            return current

        updated = current.with_changes(**changes)
        self._items[updated.id] = updated
        if changes.get("completed"):
            logger.info("Occurrence %s marked complete", updated.id)
        if (updated.date, updated.time) != (current.date, current.time):
            logger.info("Moved occurrence %s -> %s %s", updated.id, updated.date, updated.time)
        return updated

    def mark_complete(
        self, occurrence_id: str, tags: Optional[Iterable[str]] = None
    ) -> Occurrence:
        """The 'session done' transition, optionally recording worked categories."""
        changes: Dict[str, Any] = {"completed": True}
        if tags is not None:
            changes["tags"] = tags
        return self.update(occurrence_id, **changes)

    def annotate(
        self,
        occurrence_id: str,
        notes: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Occurrence:
        changes: Dict[str, Any] = {}
        if notes is not None:
            changes["notes"] = notes
        if tags is not None:
            changes["tags"] = tags
        if not changes:
            return self.get(occurrence_id)
        return self.update(occurrence_id, **changes)

    def move(
        self,
        occurrence_id: str,
        new_date: Union[date, str],
        new_time: Union[time, str],
    ) -> Occurrence:
        """
        Reschedule an occurrence, keeping its id.

        Moving to the current (date, time) is a no-op.  Other occurrences at
        the destination are left alone; double-booking is allowed.
        """
        current = self.get(occurrence_id)
        target_date = parse_date(new_date)
        target_time = parse_time(new_time)
        if current.date == target_date and current.time == target_time:
            return current
        return self.update(occurrence_id, date=target_date, time=target_time)

    def remove(self, occurrence_id: str) -> Occurrence:
        """Delete an occurrence (template-derived or ad-hoc) and retire its key."""
        removed = self.get(occurrence_id)
        del self._items[occurrence_id]
        self._retired.add(occurrence_id)
        logger.info("Removed occurrence %s", occurrence_id)
        return removed

    def discard(self, occurrence_id: str) -> Optional[Occurrence]:
        """Drop an occurrence without retiring its key, so it can be regenerated."""
        return self._items.pop(occurrence_id, None)

    def restore(self, occurrence: Occurrence) -> None:
        """Put back a previous version of an occurrence whose persistence failed."""
        self._items[occurrence.id] = occurrence
        self._retired.discard(occurrence.id)
        logger.debug("Restored occurrence %s", occurrence.id)

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def hydrate(self, occurrences: Iterable[Occurrence]) -> int:
        """
        Load persisted occurrences without clobbering in-memory state.

        Ids already live or retired here are skipped.  A ``cancelled`` record
        retires its id instead of being inserted.
        Returns the number of occurrences inserted.
        """
        inserted = 0
        for occ in occurrences:
            if occ.id in self._items or occ.id in self._retired:
                continue
            if occ.cancelled:
                self._retired.add(occ.id)
                continue
            self._items[occ.id] = occ
            inserted += 1
        logger.debug("Hydrated %d occurrence(s)", inserted)
        return inserted

    def materialize(
        self,
        clients: Iterable[Client],
        window_start: date,
        window_end: date,
        today: Union[date, datetime],
        config: Optional[EngineConfig] = None,
    ) -> List[Occurrence]:
        """Apply a materialization pass; returns only the newly inserted occurrences."""
        delta = plan_materialization(
            clients, window_start, window_end, today,
            existing_keys=self.known_keys(), config=config,
        )
        for occ in delta:
            self._items[occ.id] = occ
        return delta
