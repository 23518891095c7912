"""Time and rounding helpers shared by trip, alert and safe zone services."""

from __future__ import annotations

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def round_half_up(value: float) -> int:
    """Nearest integer, halves away from minus infinity (2.5 -> 3, unlike ``round``)."""
    return math.floor(value + 0.5)


def round_minutes(seconds: float) -> int:
    """Round a span of seconds to whole minutes, halves rounding up."""
    return round_half_up(seconds / 60)


def minutes_until(deadline: datetime | None, now: datetime) -> int | None:
    """Whole minutes left until ``deadline``, clamped at zero for display."""
    if deadline is None:
        return None
    remaining = round_minutes((as_utc(deadline) - now).total_seconds())
    return remaining if remaining > 0 else 0
