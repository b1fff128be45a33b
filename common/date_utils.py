"""
common/date_utils.py - Date and timestamp normalization utilities

Provides consistent handling of the ISO-8601 timestamps carried on scan,
signal and deal rows. No wall-clock reads: every "as of" is explicit.

Usage:
    from common.date_utils import parse_timestamp, normalize_date, days_between

    ts = parse_timestamp("2024-01-15T10:30:00Z")   # aware datetime (UTC)
    d = normalize_date("2024-01-15")               # date(2024, 1, 15)
    age = days_between(ts, as_of)                  # Decimal days
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Union

DateLike = Union[str, date]

_SECONDS_PER_DAY = Decimal("86400")


def normalize_date(value: DateLike) -> date:
    """
    Normalize a date-like value to a date object.

    Args:
        value: Either a date object or ISO format string (YYYY-MM-DD)

    Returns:
        date object

    Raises:
        ValueError: If string is not valid ISO format
        TypeError: If value is neither str nor date
    """
    if isinstance(value, datetime):
        return value.date()
    elif isinstance(value, date):
        return value
    elif isinstance(value, str):
        return date.fromisoformat(value[:10])
    else:
        raise TypeError(f"Expected str or date, got {type(value).__name__}")


def to_date_string(value: DateLike) -> str:
    """Convert a date-like value to an ISO format date string."""
    return normalize_date(value).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp (or date) into an aware UTC datetime.

    A trailing 'Z' is accepted; naive values are taken as UTC. Returns None
    for None, empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def days_between(earlier: datetime, later: datetime) -> Decimal:
    """Elapsed days from `earlier` to `later` (negative if reversed)."""
    delta = later - earlier
    seconds = Decimal(delta.days) * _SECONDS_PER_DAY + Decimal(delta.seconds) + Decimal(delta.microseconds) / Decimal(10**6)
    return seconds / _SECONDS_PER_DAY


def validate_as_of_date(value: Any) -> datetime:
    """
    Parse and validate an as-of timestamp.

    Raises:
        ValueError: If the value is not a valid date or timestamp
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"Invalid as_of date: {value!r}")
    return parsed
