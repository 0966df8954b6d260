# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the AI Interaction Gateway.

This module provides standardized datetime operations to ensure consistency
across the codebase, including the billing period keys that scope usage
counters.

Design Decisions:
-----------------
1. All timestamps are timezone-aware UTC
2. Billing periods are calendar months in UTC, keyed as "YYYYMM"
3. A period key sorts lexicographically in chronological order

Usage:
------
    from src.utils.datetime import utc_now, period_key

    key = period_key()          # "202610" during October 2026
    allocated_at = utc_now()
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def period_key(dt: datetime | None = None) -> str:
    """Build the billing period key for a moment in time.

    Args:
        dt: Moment to key. Defaults to now.

    Returns:
        Six-digit "YYYYMM" string.

    Example:
        >>> period_key(datetime(2026, 3, 9, tzinfo=timezone.utc))
        '202603'
    """
    moment = ensure_utc(dt) or utc_now()
    return f"{moment.year:04d}{moment.month:02d}"


def shift_period(key: str, months: int) -> str:
    """Move a period key forwards or backwards by whole months.

    Args:
        key: A "YYYYMM" period key.
        months: Number of months to move; negative moves back.

    Returns:
        The shifted period key.

    Raises:
        ValueError: If key is not a valid period key.
    """
    if len(key) != 6 or not key.isdigit():
        raise ValueError(f"Invalid period key: {key!r}")
    year, month = int(key[:4]), int(key[4:])
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid period key: {key!r}")

    index = year * 12 + (month - 1) + months
    return f"{index // 12:04d}{index % 12 + 1:02d}"


def period_bounds(dt: datetime | None = None) -> tuple[datetime, datetime]:
    """Get the start and end of the calendar month containing dt.

    Args:
        dt: Moment inside the period. Defaults to now.

    Returns:
        Tuple of (period_start, period_end); end is exclusive.
    """
    moment = ensure_utc(dt) or utc_now()
    start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    # day 28 + 4 days always lands in the following month
    next_month = (start.replace(day=28) + timedelta(days=4)).replace(day=1)
    return start, next_month
