from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

__all__ = [
    "SystemClock",
    "add_billing_interval",
    "from_unix_timestamp",
    "to_unix_timestamp",
    "utc_now",
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SystemClock:
    """Wall clock returning aware UTC datetimes."""

    def now(self) -> datetime:
        return utc_now()


def to_unix_timestamp(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def from_unix_timestamp(value: Any) -> Optional[datetime]:
    """Parse a Stripe epoch timestamp into an aware datetime if possible."""

    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    # Clamp to the last day of the target month (Jan 31 + 1 month -> Feb 28/29).
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_billing_interval(value: datetime, interval: str, count: int = 1) -> datetime:
    """Advance ``value`` by ``count`` Stripe intervals (day, week, month, year)."""

    if interval == "day":
        return value + timedelta(days=count)
    if interval == "week":
        return value + timedelta(weeks=count)
    if interval == "month":
        return _add_months(value, count)
    if interval == "year":
        return _add_months(value, 12 * count)
    raise ValueError(f"Unsupported billing interval: {interval!r}")
