"""
Payment status tracker: one paid/unpaid status per client per open period.

Due dates:
    MONTHLY      billing day of the reference month, clamped to its length
                 (billing day 31 falls on Feb 28/29)
    PER_SESSION  date of the client's nearest pending occurrence, else today

Marking a per-session client paid rolls the due date forward to the next
pending occurrence; marking any client unpaid clears ``paid_at`` and
recomputes the due date from scratch.  Reminders fall on every third overdue
day (cadence configurable).

Usage:
    tracker = PaymentStatusTracker()
    tracker.rebuild(clients, store.all(), today)
    tracker.mark_paid("c1", store.all(), today)
    tracker.reminder_due("c2", today)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .calendar_utils import clamp_day, format_date, reference_instant, start_of_month
from .config import DEFAULT_REMINDER_CADENCE_DAYS, EngineConfig, get_config
from .errors import NotFoundError
from .models import BillingPlan, Client, Occurrence
from .reconciliation import is_done

logger = logging.getLogger(__name__)

Today = Union[date, datetime]


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _day(today: Today) -> date:
    return today.date() if isinstance(today, datetime) else today


# ===================================================================
# Status record
# ===================================================================


@dataclass(frozen=True)
class BillingPeriodStatus:
    """Paid/unpaid state of one client for the open billing period."""
    client_id: str
    due_date: date
    paid: bool = False
    paid_at: Optional[datetime] = None
    period: Optional[date] = None      # first day of the billing month

    def overdue_days(self, today: Today) -> int:
        ref = _day(today)
        if self.paid or not self.due_date < ref:
            return 0
        return (ref - self.due_date).days

    def is_overdue(self, today: Today) -> bool:
        return self.overdue_days(today) > 0

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "due_date": format_date(self.due_date),
            "paid": self.paid,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "period": format_date(self.period) if self.period else None,
        }


def reminder_eligible(
    overdue_days: int, cadence_days: int = DEFAULT_REMINDER_CADENCE_DAYS
) -> bool:
    """True on every ``cadence_days``-th overdue day (3, 6, 9, ...)."""
    return overdue_days > 0 and overdue_days % cadence_days == 0


# ===================================================================
# Due-date rules
# ===================================================================


def monthly_due_date(client: Client, reference_month: date) -> date:
    return clamp_day(reference_month.year, reference_month.month, client.billing_day or 1)


def next_pending_date(
    client_id: str, occurrences: Iterable[Occurrence], today: Today
) -> Optional[date]:
    """Date of the client's earliest occurrence that is not yet done."""
    now = reference_instant(today)
    pending = [
        o for o in occurrences or ()
        if o.client_id == client_id and not is_done(o, now)
    ]
    if not pending:
        return None
    return min(pending, key=lambda o: o.starts_at).date


def compute_due_date(
    client: Client,
    occurrences: Iterable[Occurrence],
    today: Today,
    reference_month: Optional[date] = None,
) -> date:
    if client.plan is BillingPlan.MONTHLY:
        return monthly_due_date(client, reference_month or _day(today))
    return next_pending_date(client.id, occurrences, today) or _day(today)


# ===================================================================
# Tracker
# ===================================================================


class PaymentStatusTracker:
    """Owns one ``BillingPeriodStatus`` per client id."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self._config = config or get_config()
        self._statuses: Dict[str, BillingPeriodStatus] = {}
        self._clients: Dict[str, Client] = {}
        self._reference_month: Optional[date] = None

    def __len__(self) -> int:
        return len(self._statuses)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._statuses

    # ------------------------------------------------------------------
    # Roster rebuild
    # ------------------------------------------------------------------

    def rebuild(
        self,
        clients: Sequence[Client],
        occurrences: Iterable[Occurrence],
        today: Today,
        reference_month: Optional[date] = None,
    ) -> Dict[str, BillingPeriodStatus]:
        """
        Recreate every status from the roster.

        A status marked paid survives only for a client still on the roster
        and only within the same billing month; a new month starts unpaid.
        Clients no longer on the roster are dropped.
        """
        occs = list(occurrences or ())
        self._reference_month = reference_month or _day(today)
        period = start_of_month(self._reference_month)
        fresh: Dict[str, BillingPeriodStatus] = {}
        for client in clients or ():
            previous = self._statuses.get(client.id)
            if previous is not None and previous.paid and previous.period == period:
                fresh[client.id] = previous
                continue
            fresh[client.id] = BillingPeriodStatus(
                client_id=client.id,
                due_date=compute_due_date(client, occs, today, self._reference_month),
                period=period,
            )
        self._statuses = fresh
        self._clients = {c.id: c for c in clients or ()}
        logger.info(
            "Rebuilt payment statuses for %d client(s) (%d paid)",
            len(fresh), sum(1 for s in fresh.values() if s.paid),
        )
        return dict(fresh)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def status(self, client_id: str) -> BillingPeriodStatus:
        try:
            return self._statuses[client_id]
        except KeyError:
            raise NotFoundError("Client", client_id) from None

    def statuses(self) -> List[BillingPeriodStatus]:
        return list(self._statuses.values())

    def overdue_days(self, client_id: str, today: Today) -> int:
        return self.status(client_id).overdue_days(today)

    def reminder_due(self, client_id: str, today: Today) -> bool:
        return reminder_eligible(
            self.overdue_days(client_id, today), self._config.reminder_cadence_days
        )

    def overdue_clients(self, today: Today) -> List[BillingPeriodStatus]:
        """Unpaid statuses past their due date, most overdue first."""
        overdue = [s for s in self._statuses.values() if s.is_overdue(today)]
        return sorted(overdue, key=lambda s: (-s.overdue_days(today), s.client_id))

    def reminders_due(self, today: Today) -> List[BillingPeriodStatus]:
        cadence = self._config.reminder_cadence_days
        return [
            s for s in self.overdue_clients(today)
            if reminder_eligible(s.overdue_days(today), cadence)
        ]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def mark_paid(
        self,
        client_id: str,
        occurrences: Iterable[Occurrence],
        today: Today,
        now: Optional[datetime] = None,
    ) -> BillingPeriodStatus:
        """
        Unpaid -> Paid.  Records ``paid_at``; per-session clients also roll
        their due date to the next pending occurrence.
        """
        current = self.status(client_id)
        client = self._clients[client_id]
        due = current.due_date
        if client.plan is BillingPlan.PER_SESSION:
            due = next_pending_date(client_id, occurrences, today) or _day(today)
        updated = replace(current, paid=True, paid_at=now or _now_utc(), due_date=due)
        self._statuses[client_id] = updated
        logger.info("Client %s marked paid (next due %s)", client_id, due)
        return updated

    def mark_unpaid(
        self,
        client_id: str,
        occurrences: Iterable[Occurrence],
        today: Today,
    ) -> BillingPeriodStatus:
        """Paid -> Unpaid.  Clears ``paid_at`` and recomputes the due date."""
        current = self.status(client_id)
        client = self._clients[client_id]
        updated = BillingPeriodStatus(
            client_id=client_id,
            due_date=compute_due_date(client, occurrences, today, self._reference_month),
            period=current.period,
        )
        self._statuses[client_id] = updated
        if current.paid:
            logger.info("Client %s payment reset (due %s)", client_id, updated.due_date)
        return updated

    def toggle_paid(
        self,
        client_id: str,
        occurrences: Iterable[Occurrence],
        today: Today,
        now: Optional[datetime] = None,
    ) -> BillingPeriodStatus:
        if self.status(client_id).paid:
            return self.mark_unpaid(client_id, occurrences, today)
        return self.mark_paid(client_id, occurrences, today, now=now)
