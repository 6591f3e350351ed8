"""
Reminder composition: message text and WhatsApp click-to-chat links.

Only the text and link are built here; delivery is the caller's business.

Usage:
    from coachledger.reminders import payment_reminder, whatsapp_link

    text = payment_reminder(client, row, overdue_days=6, month=date(2026, 3, 1))
    url = whatsapp_link(client.phone, text)
"""

from __future__ import annotations

import calendar
import re
from datetime import date
from decimal import Decimal
from typing import Optional
from urllib.parse import quote

from .calendar_utils import format_time
from .config import EngineConfig, get_config
from .models import Client, Occurrence
from .reconciliation import ClientReconciliation

WHATSAPP_BASE_URL = "https://wa.me/"
AUTOMATED_FOOTER = "_This is an automated message._"


def normalize_phone(phone: str, country_code: Optional[str] = None) -> str:
    """Keep digits only and prefix the country code unless already present."""
    code = country_code if country_code is not None else get_config().country_code
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        return ""
    return digits if digits.startswith(code) else f"{code}{digits}"


def format_money(amount: Decimal, symbol: Optional[str] = None) -> str:
    prefix = symbol if symbol is not None else get_config().currency_symbol
    return f"{prefix} {Decimal(amount):,.2f}"


def whatsapp_link(phone: str, message: str, config: Optional[EngineConfig] = None) -> str:
    cfg = config or get_config()
    return f"{WHATSAPP_BASE_URL}{normalize_phone(phone, cfg.country_code)}?text={quote(message, safe='')}"


def session_reminder(occurrence: Occurrence, client: Optional[Client] = None) -> str:
    """Same-day reminder for a scheduled session."""
    name = (client.first_name if client else "") or occurrence.client_name.split(" ")[0]
    when = f"{calendar.month_name[occurrence.date.month]} {occurrence.date.day}"
    return (
        f"Hi, {name}!\n\n"
        f"Just a reminder that your session is scheduled for today, {when}, "
        f"at {format_time(occurrence.time)}.\n\n"
        f"Any questions, let me know!\n\n"
        f"{AUTOMATED_FOOTER}"
    )


def payment_reminder(
    client: Client,
    reconciliation: ClientReconciliation,
    overdue_days: int,
    month: date,
    config: Optional[EngineConfig] = None,
) -> str:
    """Outstanding-balance notice for ``month``; mentions overdue days when any."""
    cfg = config or get_config()
    lines = [
        f"Hi, {client.first_name}! How are you?",
        "",
        f"We noticed an outstanding balance for {calendar.month_name[month.month]} {month.year}.",
        "",
        f"Amount: {format_money(reconciliation.pending_amount, cfg.currency_symbol)}",
    ]
    if overdue_days > 0:
        lines.append(f"Days overdue: {overdue_days}")
    lines += ["", "Please get in touch to settle it.", "", AUTOMATED_FOOTER]
    return "\n".join(lines)
