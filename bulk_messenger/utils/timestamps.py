"""Timestamp and calendar date helpers.

Timestamps are timezone-aware UTC everywhere in the service and are stored as
ISO 8601 strings with a 'Z' suffix. Customer expiration dates are plain
calendar dates.
"""

from datetime import date, datetime, timezone
from typing import Optional, Union

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Timezone-naive values are treated as UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime for storage (ISO 8601, UTC, microseconds, 'Z')."""
    if dt is None:
        return None
    return ensure_utc(dt).strftime(STORAGE_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into a UTC datetime.

    Accepts values with or without microseconds and with or without the 'Z'
    suffix.
    """
    if not value:
        return None

    value = value.rstrip("Z")
    try:
        dt = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def parse_calendar_date(value: Union[str, date, datetime, None]) -> date:
    """Parse an expiration date given as 'YYYY-MM-DD' or a full ISO timestamp.

    Only the calendar date is kept; time and offset are ignored.

    Raises:
        ValueError: If the value is empty or not an ISO date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not str(value).strip():
        raise ValueError("Expiration date is missing")

    return date.fromisoformat(str(value).strip()[:10])
