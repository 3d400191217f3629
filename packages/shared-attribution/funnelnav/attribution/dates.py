"""``YYYY-MM-DD`` date-key helpers.

Date keys compare lexicographically in calendar order, so range checks are
plain string comparisons.

Examples:
    >>> parse_date_key("2025-01-07T23:30:00-08:00")
    '2025-01-08'
    >>> parse_date_key("not a date") is None
    True
    >>> add_days("2025-03-01", -1)
    '2025-02-28'
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd


def parse_date_key(value: Any) -> str | None:
    """Convert a timestamp-like value to a UTC ``YYYY-MM-DD`` key.

    Returns:
        The date key, or None for empty or unparseable input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()

    parsed = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.strftime("%Y-%m-%d")


def add_days(date_key: str, days: int) -> str:
    return (date.fromisoformat(date_key) + timedelta(days=days)).isoformat()


def days_between(start_key: str, end_key: str) -> int:
    """Whole days from ``start_key`` to ``end_key`` (negative if end is earlier)."""
    return (date.fromisoformat(end_key) - date.fromisoformat(start_key)).days


def date_in_range(date_key: str | None, start_key: str, end_key: str) -> bool:
    """Return True if ``start_key <= date_key <= end_key``."""
    return bool(date_key) and start_key <= date_key <= end_key


def iter_date_keys(start_key: str, end_key: str):
    """Yield every date key from ``start_key`` to ``end_key`` inclusive."""
    cursor = start_key
    while cursor <= end_key:
        yield cursor
        cursor = add_days(cursor, 1)
