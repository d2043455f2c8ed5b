"""Utility functions for time handling."""

from .timestamps import (
    ensure_utc,
    format_timestamp,
    parse_iso_datetime,
    seconds_until,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "parse_iso_datetime",
    "format_timestamp",
    "seconds_until",
]
