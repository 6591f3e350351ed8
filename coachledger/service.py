"""
Schedule service: async orchestration over the persistence boundary.

The service is the only layer that awaits.  It loads clients and stored
occurrences, runs the synchronous core (materializer, store, reconciliation,
payment tracker) and writes changes back.  Each mutation is atomic-or-failed:
when the repository call raises, the in-memory store is rolled back and the
error propagates to the caller.

Concurrent writers are not coordinated here; the backing store's last write
wins.  ``today`` is captured once per call and held for the whole pass.

Usage:
    service = ScheduleService(InMemoryRepository())
    await service.load_window(date(2026, 3, 1), date(2026, 3, 31), today=date(2026, 3, 16))
    summary = await service.finance_summary(date(2026, 3, 1), today=date(2026, 3, 16))
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timezone
from typing import Iterable, List, Optional, Union

from .calendar_utils import end_of_month, parse_date, parse_time, start_of_month
from .config import EngineConfig, get_config
from .errors import NotFoundError
from .models import Client, Occurrence
from .occurrence_store import OccurrenceStore
from .payment_tracker import BillingPeriodStatus, PaymentStatusTracker
from .reconciliation import PeriodSummary, reconcile_period
from .repository import ScheduleRepository

logger = logging.getLogger(__name__)

Today = Union[date, datetime]


def _capture_today(today: Optional[Today]) -> Today:
    return today if today is not None else date.today()


class ScheduleService:
    """Wires the repository to the in-memory store and billing components."""

    def __init__(
        self,
        repository: ScheduleRepository,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.repository = repository
        self.config = config or get_config()
        self.store = OccurrenceStore()
        self.tracker = PaymentStatusTracker(self.config)
        self._clients: List[Client] = []
        self._tracker_fingerprint: Optional[tuple] = None

    @property
    def clients(self) -> List[Client]:
        return list(self._clients)

    def client(self, client_id: str) -> Client:
        for c in self._clients:
            if c.id == client_id:
                return c
        raise NotFoundError("Client", client_id)

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    async def refresh_clients(self) -> List[Client]:
        self._clients = await self.repository.load_clients()
        logger.info("Loaded %d client(s)", len(self._clients))
        return self.clients

    async def save_client(self, client: Client) -> Client:
        await self.repository.save_client(client)
        self._clients = [c for c in self._clients if c.id != client.id] + [client]
        return client

    # ------------------------------------------------------------------
    # Window loading + materialization
    # ------------------------------------------------------------------

    async def load_window(
        self, start: date, end: date, today: Optional[Today] = None
    ) -> List[Occurrence]:
        """
        Load stored occurrences for the window, materialize the templates over
        it and persist whatever is new.  Returns the newly created occurrences.
        """
        ref = _capture_today(today)
        if end < start:
            return []
        await self.refresh_clients()
        stored = await self.repository.load_occurrences(start, end)
        self.store.hydrate(stored)
        created = self.store.materialize(self._clients, start, end, ref, config=self.config)
        if not created:
            return []
        try:
            await asyncio.gather(*(self.repository.save_occurrence(o) for o in created))
        except Exception:
            for occ in created:
                self.store.discard(occ.id)
            logger.error("Persisting %d materialized occurrence(s) failed; rolled back", len(created))
            raise
        return created

    # ------------------------------------------------------------------
    # Occurrence mutations
    # ------------------------------------------------------------------

    async def add_session(
        self,
        client_id: str,
        day: Union[date, str],
        at: Union[time, str],
        duration_minutes: Optional[int] = None,
        display_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Occurrence:
        """
        Create an ad-hoc session (including trial sessions under a different
        display name).  Its id is the client id plus a creation timestamp.
        """
        client = self.client(client_id)
        stamp = int((now or datetime.now(timezone.utc)).timestamp() * 1000)
        occ = Occurrence(
            id=f"{client_id}-{stamp}",
            client_id=client_id,
            client_name=(display_name or "").strip() or client.name,
            date=parse_date(day),
            time=parse_time(at),
            duration_minutes=duration_minutes or self.config.default_duration_minutes,
            ad_hoc=True,
        )
        self.store.add(occ, force=True)
        try:
            await self.repository.save_occurrence(occ)
        except Exception:
            self.store.discard(occ.id)
            raise
        logger.info("Added ad-hoc session %s for %s", occ.id, client_id)
        return occ

    async def move_session(
        self,
        occurrence_id: str,
        new_date: Union[date, str],
        new_time: Union[time, str],
    ) -> Occurrence:
        """Reschedule a session in place; its id and ``origin_date`` are kept."""
        previous = self.store.get(occurrence_id)
        moved = self.store.move(occurrence_id, new_date, new_time)
        if moved is previous:
            return moved
        return await self._persist_update(previous, moved)

    async def complete_session(
        self, occurrence_id: str, tags: Optional[Iterable[str]] = None
    ) -> Occurrence:
        previous = self.store.get(occurrence_id)
        updated = self.store.mark_complete(occurrence_id, tags=tags)
        return await self._persist_update(previous, updated)

    async def annotate_session(
        self,
        occurrence_id: str,
        notes: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Occurrence:
        previous = self.store.get(occurrence_id)
        updated = self.store.annotate(occurrence_id, notes=notes, tags=tags)
        return await self._persist_update(previous, updated)

    async def reopen_session(self, occurrence_id: str) -> Occurrence:
        previous = self.store.get(occurrence_id)
        updated = self.store.update(occurrence_id, completed=False)
        return await self._persist_update(previous, updated)

    async def remove_session(self, occurrence_id: str) -> Occurrence:
        """
        Delete a session.  Template-derived sessions are persisted as a
        ``cancelled`` record so no later materialization re-creates them;
        ad-hoc sessions are deleted outright.
        """
        removed = self.store.remove(occurrence_id)
        try:
            if removed.ad_hoc:
                await self._delete_remote(occurrence_id)
            else:
                await self.repository.save_occurrence(removed.with_changes(cancelled=True))
        except Exception:
            self.store.restore(removed)
            raise
        return removed

    async def _persist_update(self, previous: Occurrence, updated: Occurrence) -> Occurrence:
        try:
            await self.repository.save_occurrence(updated)
        except Exception:
            self.store.restore(previous)
            raise
        return updated

    async def _delete_remote(self, occurrence_id: str) -> None:
        try:
            await self.repository.delete_occurrence(occurrence_id)
        except NotFoundError:
            # Last writer wins: someone else already deleted it.
            logger.debug("Occurrence %s already absent from the repository", occurrence_id)

    # ------------------------------------------------------------------
    # Finance
    # ------------------------------------------------------------------

    def _month_occurrences(self, month: date) -> List[Occurrence]:
        return self.store.list_by_date_range(start_of_month(month), end_of_month(month))

    def _sync_tracker(self, month: date, today: Today) -> None:
        fingerprint = (start_of_month(month), tuple(repr(c.to_dict()) for c in self._clients))
        if fingerprint != self._tracker_fingerprint:
            self.tracker.rebuild(
                self._clients, self._month_occurrences(month), today, reference_month=month
            )
            self._tracker_fingerprint = fingerprint

    async def finance_summary(
        self, month: date, today: Optional[Today] = None
    ) -> PeriodSummary:
        """Materialize ``month`` and reconcile every client against it."""
        ref = _capture_today(today)
        await self.load_window(start_of_month(month), end_of_month(month), ref)
        self._sync_tracker(month, ref)
        return reconcile_period(self._clients, self._month_occurrences(month), ref)

    def payment_status(self, client_id: str) -> BillingPeriodStatus:
        return self.tracker.status(client_id)

    async def toggle_paid(
        self,
        client_id: str,
        month: date,
        today: Optional[Today] = None,
        now: Optional[datetime] = None,
    ) -> BillingPeriodStatus:
        ref = _capture_today(today)
        if not self._clients:
            await self.refresh_clients()
        self._sync_tracker(month, ref)
        return self.tracker.toggle_paid(
            client_id, self._month_occurrences(month), ref, now=now
        )
