"""
Shared fixtures for the coachledger test suite.

February 2026 is the reference month throughout: it starts on a Sunday and
has exactly four Mondays (2, 9, 16, 23).
"""

from datetime import date, time

import pytest

from coachledger.calendar_utils import Weekday
from coachledger.config import EngineConfig
from coachledger.models import BillingPlan, Client, Occurrence, WeeklySlot, natural_key


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

@pytest.fixture
def feb_start():
    return date(2026, 2, 1)


@pytest.fixture
def feb_end():
    return date(2026, 2, 28)


@pytest.fixture
def third_monday():
    return date(2026, 2, 16)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

@pytest.fixture
def config():
    """Default engine config, independent of the environment."""
    return EngineConfig()


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

@pytest.fixture
def monday_slot():
    return WeeklySlot(weekday=Weekday.MON, time=time(8, 0))


@pytest.fixture
def monthly_client(monday_slot):
    """Active monthly client, fee 100, Mondays at 08:00."""
    return Client(
        id="ana",
        name="Ana Souza",
        phone="(11) 98888-7777",
        plan=BillingPlan.MONTHLY,
        billing_day=10,
        fee_amount="100",
        weekly_template=[monday_slot],
    )


@pytest.fixture
def session_client():
    """Active per-session client, fee 50, Tuesdays and Thursdays at 18:00."""
    return Client(
        id="bruno",
        name="Bruno Lima",
        phone="21 97777-6666",
        plan=BillingPlan.PER_SESSION,
        fee_amount="50",
        weekly_template=[
            WeeklySlot.parse("tue", "18:00"),
            WeeklySlot.parse("thu", "18:00"),
        ],
    )


@pytest.fixture
def inactive_client(monday_slot):
    return Client(
        id="carla",
        name="Carla Dias",
        phone="31 96666-5555",
        plan=BillingPlan.PER_SESSION,
        fee_amount="60",
        weekly_template=[monday_slot],
        is_active=False,
    )


@pytest.fixture
def consulting_client(monday_slot):
    return Client(
        id="davi",
        name="Davi Rocha",
        plan=BillingPlan.MONTHLY,
        fee_amount="80",
        weekly_template=[monday_slot],
        is_consulting_only=True,
    )


@pytest.fixture
def roster(monthly_client, session_client, inactive_client, consulting_client):
    return [monthly_client, session_client, inactive_client, consulting_client]


# ---------------------------------------------------------------------------
# Occurrences
# ---------------------------------------------------------------------------

@pytest.fixture
def make_occurrence():
    """Factory for template-style occurrences keyed by their natural key."""

    def _make(client_id="ana", day=date(2026, 2, 2), at=time(8, 0), **kwargs):
        return Occurrence(
            id=kwargs.pop("id", natural_key(client_id, day, at)),
            client_id=client_id,
            date=day,
            time=at,
            **kwargs,
        )

    return _make
