"""
Domain records: clients, their weekly templates, and dated occurrences.

Records cross the persistence boundary as plain dicts with ISO dates
('YYYY-MM-DD'), 24-hour times ('HH:MM') and money as decimal strings.

Usage:
    from coachledger.models import BillingPlan, Client, WeeklySlot

    client = Client(
        id="c1", name="Ana Souza", phone="11 98888-7777",
        plan=BillingPlan.MONTHLY, fee_amount="150", billing_day=10,
        weekly_template=[WeeklySlot.parse("mon", "08:00")],
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, FrozenSet, Iterable, List, Optional, Union

from .calendar_utils import (
    Weekday,
    format_date,
    format_time,
    parse_date,
    parse_time,
)
from .config import DEFAULT_DURATION_MINUTES, DEFAULT_SLOT_TIME

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

MoneyLike = Union[Decimal, int, float, str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_money(value: Optional[MoneyLike]) -> Decimal:
    """Coerce to a cent-quantized Decimal; None or blank means zero."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return Decimal("0.00")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid money amount: {value!r}") from exc
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def natural_key(client_id: str, day: date, at: time) -> str:
    """Deterministic identity of a template-derived occurrence."""
    return f"{client_id}-{format_date(day)}-{format_time(at)}"


def _billing_day(value: Any, client_id: Any = None) -> int:
    """Clamp into 1..31; missing or malformed values fall back to 1."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return 1
    try:
        day = int(value)
    except (ValueError, TypeError):
        logger.warning("Invalid billing_day %r for client %s; using 1", value, client_id)
        return 1
    return max(1, min(day, 31))


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "t")
    return bool(value)


# ===================================================================
# Enums
# ===================================================================


class BillingPlan(str, Enum):
    """Billing model; the single discriminant branched on by reconciliation."""
    MONTHLY = "monthly"
    PER_SESSION = "per_session"

    @classmethod
    def from_string(cls, value: str) -> BillingPlan:
        """Parse a plan from a loose string ('session', 'per-session', 'Monthly')."""
        normalized = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        if normalized == "session":
            return cls.PER_SESSION
        for member in cls:
            if member.value == normalized or member.name.lower() == normalized:
                return member
        raise ValueError(f"Unknown billing plan: {value!r}")


# ===================================================================
# Weekly template
# ===================================================================


@dataclass(frozen=True)
class WeeklySlot:
    """One recurring (weekday, time-of-day) slot of a client's template."""
    weekday: Weekday
    time: time

    @classmethod
    def parse(cls, weekday: Union[Weekday, str, int], at: Union[time, str]) -> WeeklySlot:
        if isinstance(weekday, Weekday):
            day = weekday
        elif isinstance(weekday, int):
            day = Weekday(weekday)
        else:
            day = Weekday.from_string(weekday)
        return cls(weekday=day, time=parse_time(at))

    def to_dict(self) -> dict:
        return {"weekday": self.weekday.name.lower(), "time": format_time(self.time)}

    @classmethod
    def from_dict(cls, data: dict) -> WeeklySlot:
        return cls.parse(data["weekday"], data.get("time") or DEFAULT_SLOT_TIME)


def template_from_lists(
    days: Iterable[Any],
    times: Optional[Iterable[Any]] = None,
    default_time: str = DEFAULT_SLOT_TIME,
) -> List[WeeklySlot]:
    """
    Build a template from parallel weekday/time lists.

    A missing or blank time falls back to ``default_time``.  Unparseable
    entries are skipped with a warning so one bad row never hides a client.
    """
    time_list = list(times or [])
    slots: List[WeeklySlot] = []
    for idx, day in enumerate(days or []):
        raw_time = time_list[idx] if idx < len(time_list) and time_list[idx] else default_time
        try:
            slots.append(WeeklySlot.parse(day, raw_time))
        except (ValueError, TypeError) as exc:
            logger.warning("Skipping template entry %r @ %r: %s", day, raw_time, exc)
    return slots


# ===================================================================
# Client
# ===================================================================


@dataclass
class Client:
    """A trainer's client with a billing model and a weekly availability template."""
    id: str
    name: str = ""
    phone: str = ""
    plan: BillingPlan = BillingPlan.MONTHLY
    billing_day: Optional[int] = 1
    fee_amount: Decimal = Decimal("0.00")
    weekly_template: List[WeeklySlot] = field(default_factory=list)
    is_active: bool = True
    is_consulting_only: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.plan, str) and not isinstance(self.plan, BillingPlan):
            self.plan = BillingPlan.from_string(self.plan)
        self.fee_amount = to_money(self.fee_amount)
        if self.fee_amount < 0:
            raise ValueError(f"fee_amount must be non-negative, got {self.fee_amount}")
        self.billing_day = _billing_day(self.billing_day, self.id)

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0] if self.name else ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "plan": self.plan.value,
            "billing_day": self.billing_day,
            "fee_amount": str(self.fee_amount),
            "weekly_template": [slot.to_dict() for slot in self.weekly_template],
            "is_active": self.is_active,
            "is_consulting_only": self.is_consulting_only,
        }

    @classmethod
    def from_dict(cls, data: dict, default_time: str = DEFAULT_SLOT_TIME) -> Client:
        """
        Decode a client record.

        Accepts either ``weekly_template`` (list of {weekday, time}) or the
        backing store's parallel ``selected_days`` / ``selected_times`` lists.
        Unknown keys are ignored.
        """
        if data.get("weekly_template") is not None:
            template: List[WeeklySlot] = []
            for raw in data["weekly_template"]:
                try:
                    template.append(WeeklySlot.from_dict(raw))
                except (KeyError, ValueError, TypeError) as exc:
                    logger.warning("Skipping template entry %r for client %s: %s",
                                   raw, data.get("id"), exc)
        else:
            template = template_from_lists(
                data.get("selected_days") or [],
                data.get("selected_times") or [],
                default_time=default_time,
            )
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            phone=data.get("phone") or "",
            plan=BillingPlan.from_string(data.get("plan") or BillingPlan.MONTHLY.value),
            billing_day=data.get("billing_day"),
            fee_amount=to_money(data.get("fee_amount", data.get("value"))),
            weekly_template=template,
            is_active=_as_bool(data.get("is_active"), default=True),
            is_consulting_only=_as_bool(
                data.get("is_consulting_only", data.get("is_consulting")), default=False
            ),
        )


# ===================================================================
# Occurrence
# ===================================================================


@dataclass(frozen=True)
class Occurrence:
    """
    One concrete dated session.

    Instances are immutable; the occurrence store swaps in updated copies
    (``dataclasses.replace``) so callers never mutate stored state directly.

    ``origin_date`` is the date the weekly template assigned; it survives
    moves, so a template session keeps its original id wherever it goes.
    ``cancelled`` marks a persisted deletion: the record only retires its id.
    """
    id: str
    client_id: str
    date: date
    time: time
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    client_name: str = ""
    completed: bool = False
    tags: FrozenSet[str] = frozenset()
    notes: str = ""
    ad_hoc: bool = False
    origin_date: Optional[date] = None
    cancelled: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.tags, frozenset):
            object.__setattr__(self, "tags", frozenset(self.tags or ()))
        if self.origin_date is None and not self.ad_hoc:
            object.__setattr__(self, "origin_date", self.date)
        if self.duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive, got {self.duration_minutes}")

    @property
    def is_moved(self) -> bool:
        return self.origin_date is not None and self.origin_date != self.date

    @property
    def natural_key(self) -> str:
        return natural_key(self.client_id, self.date, self.time)

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.time)

    @property
    def sort_key(self) -> tuple:
        return (self.date, self.time, self.client_name, self.id)

    def with_changes(self, **changes: Any) -> Occurrence:
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "date": format_date(self.date),
            "time": format_time(self.time),
            "duration_minutes": self.duration_minutes,
            "completed": self.completed,
            "tags": sorted(self.tags),
            "notes": self.notes,
            "ad_hoc": self.ad_hoc,
            "origin_date": format_date(self.origin_date) if self.origin_date else None,
            "cancelled": self.cancelled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Occurrence:
        day = parse_date(data["date"])
        at = parse_time(data["time"])
        client_id = str(data["client_id"])
        origin = data.get("origin_date")
        return cls(
            id=str(data.get("id") or natural_key(client_id, day, at)),
            client_id=client_id,
            client_name=data.get("client_name") or "",
            date=day,
            time=at,
            duration_minutes=int(data.get("duration_minutes") or DEFAULT_DURATION_MINUTES),
            completed=_as_bool(data.get("completed")),
            tags=frozenset(data.get("tags") or ()),
            notes=data.get("notes") or "",
            ad_hoc=_as_bool(data.get("ad_hoc")),
            origin_date=parse_date(origin) if origin else None,
            cancelled=_as_bool(data.get("cancelled")),
        )
