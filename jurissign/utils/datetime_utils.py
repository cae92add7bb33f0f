"""
Timezone-aware datetime utilities.

All datetime operations should use these helpers to ensure consistent
timezone handling across the codebase. Stored timestamps are UTC; printed
certificates use the practice's display timezone.
"""
from datetime import datetime, timezone, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

DEFAULT_DISPLAY_TIMEZONE = "America/Manaus"

MONTHS_PT = [
    "janeiro", "fevereiro", "marco", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def parse_db_timestamp(value: Optional[Union[str, datetime]]) -> Optional[datetime]:
    """
    Parse timestamp from database, ensuring timezone-aware UTC.

    Handles:
    - ISO format strings with Z suffix
    - ISO format strings with +00:00 offset
    - Naive datetimes (assumed UTC)
    - Already timezone-aware datetimes

    Args:
        value: Timestamp from database (string or datetime)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None/empty
    """
    if value is None:
        return None

    if isinstance(value, str):
        if not value:
            return None
        # Handle Z suffix (common in PostgreSQL/Supabase)
        value = value.replace("Z", "+00:00")
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            return None
    elif isinstance(value, datetime):
        dt = value
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt


def is_expired(timestamp: Optional[Union[str, datetime]], now: Optional[datetime] = None) -> bool:
    """
    Check whether an absolute expiry timestamp has passed.

    A missing expiry never expires.
    """
    expires_at = parse_db_timestamp(timestamp)
    if expires_at is None:
        return False
    return (now or utc_now()) > expires_at


def seconds_since(timestamp: Optional[Union[str, datetime]]) -> Optional[float]:
    """
    Get seconds elapsed since timestamp.

    Returns:
        Seconds since timestamp, or None if timestamp is invalid
    """
    dt = parse_db_timestamp(timestamp)
    if dt is None:
        return None

    return (utc_now() - dt).total_seconds()


def to_display_timezone(
    value: Optional[Union[str, datetime]],
    tz_name: str = DEFAULT_DISPLAY_TIMEZONE,
) -> Optional[datetime]:
    """Convert a stored timestamp into the display timezone."""
    dt = parse_db_timestamp(value)
    if dt is None:
        return None
    return dt.astimezone(ZoneInfo(tz_name))


def format_short(value: Optional[Union[str, datetime]], tz_name: str = DEFAULT_DISPLAY_TIMEZONE, seconds: bool = False) -> str:
    """Format as dd/mm/yyyy hh:mm[:ss] in the display timezone."""
    dt = to_display_timezone(value, tz_name)
    if dt is None:
        return "N/A"
    return dt.strftime("%d/%m/%Y %H:%M:%S" if seconds else "%d/%m/%Y %H:%M")


def format_long(value: Optional[Union[str, datetime]], tz_name: str = DEFAULT_DISPLAY_TIMEZONE) -> str:
    """Format as '05 de marco de 2025, 14:30:12' in the display timezone."""
    dt = to_display_timezone(value, tz_name)
    if dt is None:
        return "N/A"
    return f"{dt.day:02d} de {MONTHS_PT[dt.month - 1]} de {dt.year}, {dt.strftime('%H:%M:%S')}"


def utc_offset_label(tz_name: str = DEFAULT_DISPLAY_TIMEZONE, at: Optional[datetime] = None) -> str:
    """Return the UTC offset of a timezone as 'UTC-0400'."""
    dt = (at or utc_now()).astimezone(ZoneInfo(tz_name))
    offset = dt.strftime("%z") or "+0000"
    return f"UTC{offset}"


def add_days(value: datetime, days: int) -> datetime:
    """Shift a timestamp by whole days."""
    return value + timedelta(days=days)
