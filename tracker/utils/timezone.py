"""
Timezone utilities for consistent date handling.

The Problem:
- Entries are logged against UK calendar days
- The server may run in UTC (or anywhere else)
- "Yesterday" at 00:30 BST is not "yesterday" in UTC

The Solution:
- utc_now() returns consistent naive UTC time for database columns
- local_today() / local_yesterday() resolve calendar days in the reference zone
- to_calendar_date() collapses datetimes and ISO strings to a date
"""

from datetime import date, datetime, timedelta, timezone as tz
from typing import Optional, Union

from dateutil import tz as dateutil_tz

from config import Config
from exceptions import ConfigurationError


def utc_now() -> datetime:
    """
    Get current UTC time as a naive datetime.

    Returns a datetime without timezone info for database compatibility.

    Returns:
        Current UTC time without tzinfo
    """
    return datetime.now(tz.utc).replace(tzinfo=None)


def reference_zone(name: Optional[str] = None):
    """Return the tzinfo for the reference timezone (Europe/London by default)."""
    zone_name = name or Config.REFERENCE_TIMEZONE
    zone = dateutil_tz.gettz(zone_name)
    if zone is None:
        raise ConfigurationError(f"Unknown timezone: {zone_name}", config_key="REFERENCE_TIMEZONE")
    return zone


def local_today(now: Optional[datetime] = None, zone_name: Optional[str] = None) -> date:
    """
    Get today's calendar date in the reference timezone.

    Args:
        now: Moment to evaluate (naive values are treated as UTC). Defaults to now.
        zone_name: Override for the reference timezone

    Returns:
        The local calendar date

    Examples:
        >>> local_today(datetime(2024, 6, 30, 23, 30))  # 00:30 BST on 1 July
        datetime.date(2024, 7, 1)
    """
    if now is None:
        now = datetime.now(tz.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=tz.utc)
    return now.astimezone(reference_zone(zone_name)).date()


def local_yesterday(now: Optional[datetime] = None, zone_name: Optional[str] = None) -> date:
    """Get yesterday's calendar date in the reference timezone."""
    return local_today(now, zone_name) - timedelta(days=1)


def to_calendar_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """
    Collapse a date-like value to a calendar date.

    Datetimes keep their own wall-clock date; strings are parsed as ISO dates.

    Args:
        value: date, datetime, ISO string or None

    Returns:
        date or None
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)[:10]).date()
