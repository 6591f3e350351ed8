"""
Engine configuration.

Defaults live as module constants; each one can be overridden through a
``COACHLEDGER_*`` environment variable.  Use ``get_config()`` for the shared
instance, or build an ``EngineConfig`` directly in tests.

Usage:
    from coachledger.config import get_config
    cfg = get_config()
    cfg.reminder_cadence_days   # 3
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_DURATION_MINUTES = 60
DEFAULT_REMINDER_CADENCE_DAYS = 3
DEFAULT_AGENDA_FIRST_HOUR = 5
DEFAULT_AGENDA_LAST_HOUR = 22
DEFAULT_SLOT_TIME = "08:00"
DEFAULT_COUNTRY_CODE = "55"
DEFAULT_CURRENCY_SYMBOL = "R$"

ENV_PREFIX = "COACHLEDGER_"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s%s=%r", ENV_PREFIX, name, raw)
        return default


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(ENV_PREFIX + name, "")
    return raw.strip() or default


@dataclass(frozen=True)
class EngineConfig:
    """Tunable constants shared by the materializer, tracker and agenda."""
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES
    reminder_cadence_days: int = DEFAULT_REMINDER_CADENCE_DAYS
    agenda_first_hour: int = DEFAULT_AGENDA_FIRST_HOUR
    agenda_last_hour: int = DEFAULT_AGENDA_LAST_HOUR
    default_slot_time: str = DEFAULT_SLOT_TIME       # HH:MM
    country_code: str = DEFAULT_COUNTRY_CODE
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL

    def __post_init__(self) -> None:
        if self.default_duration_minutes <= 0:
            raise ValueError("default_duration_minutes must be positive")
        if self.reminder_cadence_days <= 0:
            raise ValueError("reminder_cadence_days must be positive")
        if not 0 <= self.agenda_first_hour <= self.agenda_last_hour <= 23:
            raise ValueError(
                f"Invalid agenda hours: {self.agenda_first_hour}..{self.agenda_last_hour}"
            )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build a config from ``COACHLEDGER_*`` environment variables."""
        return cls(
            default_duration_minutes=_env_int("DEFAULT_DURATION", DEFAULT_DURATION_MINUTES),
            reminder_cadence_days=_env_int("REMINDER_CADENCE_DAYS", DEFAULT_REMINDER_CADENCE_DAYS),
            agenda_first_hour=_env_int("AGENDA_FIRST_HOUR", DEFAULT_AGENDA_FIRST_HOUR),
            agenda_last_hour=_env_int("AGENDA_LAST_HOUR", DEFAULT_AGENDA_LAST_HOUR),
            default_slot_time=_env_str("DEFAULT_SLOT_TIME", DEFAULT_SLOT_TIME),
            country_code=_env_str("COUNTRY_CODE", DEFAULT_COUNTRY_CODE),
            currency_symbol=_env_str("CURRENCY_SYMBOL", DEFAULT_CURRENCY_SYMBOL),
        )


# ===================================================================
# SINGLETON
# ===================================================================

_config_instance: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Return the process-wide config, reading the environment on first call."""
    global _config_instance
    if _config_instance is None:
        _config_instance = EngineConfig.from_env()
        logger.debug("Loaded engine config: %s", _config_instance.to_dict())
    return _config_instance


def reset_config() -> None:
    """Drop the cached config so the next ``get_config()`` re-reads the environment."""
    global _config_instance
    _config_instance = None
