"""Timestamp utilities for UTC handling and datetime parsing.

This module provides utilities for working with timestamps in UTC:
- Getting current UTC time
- Parsing ISO 8601 datetime strings
- Converting timezone-naive to timezone-aware UTC
- Formatting timestamps for payloads and logs
- Computing whole-second delays until a target time
"""

import math
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC time with timezone info

    Example:
        >>> now = utc_now()
        >>> now.tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    If the datetime is timezone-naive, it's treated as UTC.
    If the datetime has a different timezone, it's converted to UTC.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    # If timezone-naive, treat as UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 datetime string to UTC datetime.

    Supports:
    - 2026-11-04T12:00:00Z
    - 2026-11-04T12:00:00.123456Z
    - 2026-11-04T12:00:00+00:00
    - 2026-11-04T12:00:00

    Args:
        iso_string: ISO 8601 formatted datetime string

    Returns:
        Timezone-aware datetime in UTC, or None if parsing fails
    """
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    # fromisoformat does not accept the 'Z' suffix on older interpreters
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def format_timestamp(dt: Optional[datetime], include_microseconds: bool = False) -> str:
    """Format a datetime as ISO 8601 string in UTC.

    Args:
        dt: Datetime to format
        include_microseconds: Whether to include microseconds in output

    Returns:
        ISO 8601 formatted string with 'Z' suffix, or "" for None

    Example:
        >>> from datetime import datetime, timezone
        >>> format_timestamp(datetime(2026, 11, 4, 12, 0, 0, tzinfo=timezone.utc))
        '2026-11-04T12:00:00Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""

    if include_microseconds:
        return dt_utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def seconds_until(target: datetime, now: Optional[datetime] = None) -> int:
    """Whole seconds from ``now`` until ``target``, floored at zero.

    Args:
        target: Target time
        now: Reference time (defaults to current UTC time)

    Returns:
        Non-negative number of seconds; 0 when target is in the past
    """
    reference = ensure_utc(now) if now is not None else utc_now()
    delta = (ensure_utc(target) - reference).total_seconds()
    return max(0, math.floor(delta))
