"""
coachledger: recurring-session scheduling and billing reconciliation for
independent trainers.

Expands each client's weekly template into dated sessions, keeps manual
edits (moves, deletions, completions, notes) safe across regeneration, and
reconciles expected vs. earned revenue and payment status per billing period.

Usage:
    from coachledger import OccurrenceStore, reconcile_period

    store = OccurrenceStore()
    store.materialize(clients, date(2026, 3, 1), date(2026, 3, 31), today)
    summary = reconcile_period(clients, store.all(), today)
"""

from .errors import CoachLedgerError, ConflictError, InvalidRangeError, NotFoundError
from .materializer import materialize
from .models import BillingPlan, Client, Occurrence, WeeklySlot
from .occurrence_store import OccurrenceStore
from .payment_tracker import BillingPeriodStatus, PaymentStatusTracker
from .reconciliation import ClientReconciliation, PeriodSummary, reconcile, reconcile_period

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "BillingPeriodStatus",
    "BillingPlan",
    "Client",
    "ClientReconciliation",
    "CoachLedgerError",
    "ConflictError",
    "InvalidRangeError",
    "NotFoundError",
    "Occurrence",
    "OccurrenceStore",
    "PaymentStatusTracker",
    "PeriodSummary",
    "WeeklySlot",
    "materialize",
    "reconcile",
    "reconcile_period",
]
