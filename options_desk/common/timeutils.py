"""
UTC time helpers.

Rules:
- Storage and API payloads use tz-aware UTC datetimes.
- Naive `datetime` (no tzinfo) is assumed to be **UTC**.
- ISO8601 strings ending with 'Z' are treated as UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

UTC = timezone.utc


def utc_now() -> datetime:
    """Return tz-aware current time in UTC."""

    return datetime.now(tz=UTC)


def ensure_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse ISO8601 strings or datetimes into a tz-aware UTC datetime.

    Alpaca returns nanosecond precision ('...T14:30:00.123456789Z'); the
    fraction is truncated to microseconds before parsing.
    """

    if isinstance(value, datetime):
        return ensure_aware_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"unparseable timestamp: {value!r}")

    s = value.strip()
    if s[-1] in "Zz":
        s = s[:-1] + "+00:00"
    head, dot, rest = s.partition(".")
    if dot:
        n = 0
        while n < len(rest) and rest[n].isdigit():
            n += 1
        digits, tail = rest[:n], rest[n:]
        s = f"{head}.{digits[:6]}{tail}"

    try:
        return ensure_aware_utc(datetime.fromisoformat(s))
    except ValueError as e:
        raise ValueError(f"unparseable timestamp: {value!r}") from e


def parse_day(value: str) -> date:
    """Parse a strict YYYY-MM-DD date string."""

    if len(value) != 10:
        raise ValueError(f"expected YYYY-MM-DD, got {value!r}")
    return date.fromisoformat(value)


def days_from_now(days: float) -> datetime:
    return utc_now() + timedelta(days=days)
