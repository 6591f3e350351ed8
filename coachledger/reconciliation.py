"""
Billing reconciliation: expected vs. earned revenue per client and period.

The billing plan is branched on in exactly one place (``_revenue``):

    MONTHLY      earned = expected = fee while active, else 0
    PER_SESSION  earned = done * fee
                 expected = total * fee while active, else earned

An occurrence counts as done when it is marked complete or starts strictly
before the reference instant; everything else is pending.  A plain ``date``
passed as ``today`` means midnight at the start of that day, so a session
later the same day is still pending.

Nothing here raises for data-shape reasons: missing occurrences reconcile to
zero counts and an empty roster to zero totals.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .calendar_utils import month_days, reference_instant
from .models import BillingPlan, Client, Occurrence

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

Today = Union[date, datetime]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def percent(part: Decimal, whole: Decimal) -> int:
    """``round(100 * part / whole)`` with half-up rounding; 0 when ``whole`` is 0."""
    if not whole:
        return 0
    ratio = Decimal(100) * Decimal(part) / Decimal(whole)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def is_done(occurrence: Occurrence, now: datetime) -> bool:
    return occurrence.completed or occurrence.starts_at < now


def partition(
    occurrences: Iterable[Occurrence], today: Today
) -> Tuple[List[Occurrence], List[Occurrence]]:
    """Split into (done, pending) against a single reference instant."""
    now = reference_instant(today)
    done: List[Occurrence] = []
    pending: List[Occurrence] = []
    for occ in occurrences or ():
        (done if is_done(occ, now) else pending).append(occ)
    return done, pending


def _revenue(client: Client, total: int, done: int) -> Tuple[Decimal, Decimal]:
    """Return (expected, earned) for one client."""
    fee = client.fee_amount
    if client.plan is BillingPlan.MONTHLY:
        flat = fee if client.is_active else ZERO
        return flat, flat
    earned = fee * done
    expected = fee * total if client.is_active else earned
    return expected, earned


# ===================================================================
# Data classes
# ===================================================================


@dataclass
class ClientReconciliation:
    """Revenue position of one client over one period."""
    client_id: str
    client_name: str
    plan: BillingPlan
    is_active: bool
    fee_amount: Decimal
    expected: Decimal = ZERO
    earned: Decimal = ZERO
    total_count: int = 0
    done_count: int = 0
    pending_count: int = 0

    @property
    def pending_amount(self) -> Decimal:
        """What is still owed: the flat fee, or unrealized session fees."""
        if self.plan is BillingPlan.MONTHLY:
            return self.fee_amount
        return max(ZERO, self.expected - self.earned)

    @property
    def completion_pct(self) -> int:
        if not self.expected:
            return 100 if self.plan is BillingPlan.MONTHLY else 0
        return percent(self.earned, self.expected)

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "client_name": self.client_name,
            "plan": self.plan.value,
            "is_active": self.is_active,
            "fee_amount": str(self.fee_amount),
            "expected": str(self.expected),
            "earned": str(self.earned),
            "total_count": self.total_count,
            "done_count": self.done_count,
            "pending_count": self.pending_count,
            "pending_amount": str(self.pending_amount),
            "completion_pct": self.completion_pct,
        }


@dataclass
class PlanTotals:
    """Subtotal for all clients on one billing plan."""
    plan: BillingPlan
    expected: Decimal = ZERO
    earned: Decimal = ZERO
    client_count: int = 0

    def to_dict(self) -> dict:
        return {
            "plan": self.plan.value,
            "expected": str(self.expected),
            "earned": str(self.earned),
            "client_count": self.client_count,
        }


@dataclass
class PeriodSummary:
    """Roster-wide reconciliation for one period."""
    rows: List[ClientReconciliation] = field(default_factory=list)
    total_expected: Decimal = ZERO
    total_earned: Decimal = ZERO
    by_plan: Dict[BillingPlan, PlanTotals] = field(default_factory=dict)
    active_count: int = 0
    active_monthly_count: int = 0
    active_per_session_count: int = 0
    inactive_count: int = 0

    @property
    def total_pending(self) -> Decimal:
        return self.total_expected - self.total_earned

    @property
    def completion_pct(self) -> int:
        return percent(self.total_earned, self.total_expected)

    def row_for(self, client_id: str) -> Optional[ClientReconciliation]:
        for row in self.rows:
            if row.client_id == client_id:
                return row
        return None

    def to_dict(self) -> dict:
        return {
            "rows": [r.to_dict() for r in self.rows],
            "total_expected": str(self.total_expected),
            "total_earned": str(self.total_earned),
            "total_pending": str(self.total_pending),
            "completion_pct": self.completion_pct,
            "by_plan": {p.value: t.to_dict() for p, t in self.by_plan.items()},
            "active_count": self.active_count,
            "active_monthly_count": self.active_monthly_count,
            "active_per_session_count": self.active_per_session_count,
            "inactive_count": self.inactive_count,
        }


@dataclass
class RevenueDay:
    """One cell of the month revenue calendar."""
    day: date
    occurrences: List[Occurrence] = field(default_factory=list)
    is_past: bool = False
    session_revenue: Decimal = ZERO

    @property
    def has_sessions(self) -> bool:
        return bool(self.occurrences)


# ===================================================================
# Reconciliation
# ===================================================================


def reconcile(
    client: Client, occurrences: Iterable[Occurrence], today: Today
) -> ClientReconciliation:
    """Reconcile one client's occurrences for a period.  Other clients' rows are ignored."""
    own = [o for o in occurrences or () if o.client_id == client.id]
    done, pending = partition(own, today)
    expected, earned = _revenue(client, len(own), len(done))
    return ClientReconciliation(
        client_id=client.id,
        client_name=client.name,
        plan=client.plan,
        is_active=client.is_active,
        fee_amount=client.fee_amount,
        expected=expected,
        earned=earned,
        total_count=len(own),
        done_count=len(done),
        pending_count=len(pending),
    )


def reconcile_period(
    clients: Sequence[Client], occurrences: Iterable[Occurrence], today: Today
) -> PeriodSummary:
    """
    Reconcile the whole roster in one pass.

    ``today`` is read once; every row is partitioned against the same instant.
    """
    by_client: Dict[str, List[Occurrence]] = defaultdict(list)
    for occ in occurrences or ():
        by_client[occ.client_id].append(occ)

    summary = PeriodSummary(by_plan={plan: PlanTotals(plan=plan) for plan in BillingPlan})
    for client in clients or ():
        row = reconcile(client, by_client.get(client.id, ()), today)
        summary.rows.append(row)
        summary.total_expected += row.expected
        summary.total_earned += row.earned

        totals = summary.by_plan[client.plan]
        totals.expected += row.expected
        totals.earned += row.earned
        totals.client_count += 1

        if client.is_active:
            summary.active_count += 1
            if client.plan is BillingPlan.MONTHLY:
                summary.active_monthly_count += 1
            else:
                summary.active_per_session_count += 1
        else:
            summary.inactive_count += 1

    logger.info(
        "Reconciled %d client(s): earned %s of expected %s (%d%%)",
        len(summary.rows), summary.total_earned, summary.total_expected,
        summary.completion_pct,
    )
    return summary


def revenue_calendar(
    clients: Sequence[Client],
    occurrences: Iterable[Occurrence],
    month: date,
    today: Today,
) -> List[RevenueDay]:
    """Per-day sessions of ``month`` with the per-session revenue each day carries."""
    ref_day = today.date() if isinstance(today, datetime) else today
    fees = {
        c.id: c.fee_amount for c in clients or () if c.plan is BillingPlan.PER_SESSION
    }
    by_day: Dict[date, List[Occurrence]] = defaultdict(list)
    for occ in occurrences or ():
        by_day[occ.date].append(occ)

    days: List[RevenueDay] = []
    for day in month_days(month):
        day_occs = sorted(by_day.get(day, ()), key=lambda o: o.sort_key)
        revenue = sum((fees.get(o.client_id, ZERO) for o in day_occs), ZERO)
        days.append(
            RevenueDay(day=day, occurrences=day_occs, is_past=day <= ref_day,
                       session_revenue=revenue)
        )
    return days
