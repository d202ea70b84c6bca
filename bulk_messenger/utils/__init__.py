"""Shared utilities."""

from .timestamps import (
    ensure_utc,
    format_timestamp,
    parse_calendar_date,
    parse_timestamp,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "format_timestamp",
    "parse_timestamp",
    "parse_calendar_date",
]
