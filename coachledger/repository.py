"""
Persistence boundary.

The hosted backend is an external collaborator; the core only sees the
``ScheduleRepository`` protocol below.  Every call is a suspension point.
Records cross as dicts (ISO dates, 'HH:MM' times, decimal strings), which is
also how ``InMemoryRepository`` keeps them, so the codec is exercised end to
end in tests.

``load_occurrences`` returns every record whose current date or
``origin_date`` falls in the window, including ``cancelled`` ones, so a
session moved out of its window still blocks regeneration of its slot.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import date
from typing import Dict, List, Protocol, runtime_checkable

from .calendar_utils import parse_date
from .errors import NotFoundError
from .models import Client, Occurrence

logger = logging.getLogger(__name__)


@runtime_checkable
class ScheduleRepository(Protocol):
    """Record CRUD offered by the backing store."""

    async def load_clients(self) -> List[Client]: ...

    async def save_client(self, client: Client) -> None: ...

    async def load_occurrences(self, start: date, end: date) -> List[Occurrence]: ...

    async def save_occurrence(self, occurrence: Occurrence) -> None: ...

    async def delete_occurrence(self, occurrence_id: str) -> None: ...


def _in_window(row: dict, start: date, end: date) -> bool:
    if start <= parse_date(row["date"]) <= end:
        return True
    origin = row.get("origin_date")
    return bool(origin) and start <= parse_date(origin) <= end


class InMemoryRepository:
    """Dict-backed repository; last write wins, like the hosted store."""

    def __init__(self) -> None:
        self._clients: Dict[str, dict] = {}
        self._occurrences: Dict[str, dict] = {}
        self._lock = asyncio.Lock()

    async def load_clients(self) -> List[Client]:
        async with self._lock:
            rows = [copy.deepcopy(r) for r in self._clients.values()]
        return [Client.from_dict(r) for r in rows]

    async def save_client(self, client: Client) -> None:
        async with self._lock:
            self._clients[client.id] = client.to_dict()

    async def load_occurrences(self, start: date, end: date) -> List[Occurrence]:
        if end < start:
            return []
        async with self._lock:
            rows = [
                copy.deepcopy(r) for r in self._occurrences.values()
                if _in_window(r, start, end)
            ]
        return [Occurrence.from_dict(r) for r in rows]

    async def save_occurrence(self, occurrence: Occurrence) -> None:
        async with self._lock:
            self._occurrences[occurrence.id] = occurrence.to_dict()

    async def delete_occurrence(self, occurrence_id: str) -> None:
        async with self._lock:
            if self._occurrences.pop(occurrence_id, None) is None:
                raise NotFoundError("Occurrence", occurrence_id)
        logger.debug("Deleted stored occurrence %s", occurrence_id)

    def stored_occurrence_ids(self) -> List[str]:
        return sorted(self._occurrences)

    def cancelled_occurrence_ids(self) -> List[str]:
        return sorted(k for k, r in self._occurrences.items() if r.get("cancelled"))
