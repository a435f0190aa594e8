"""
Date parsing utilities for the fuel tracker.

Provides consistent date parsing across all routes with:
- Multiple format support (ISO, YYYY-MM-DD, DD/MM/YYYY, Unix timestamp)
- Calendar-date collapse (entries are tracked per day)
- Query parameter parsing for optional date ranges
- Common range shortcuts (last_30_days, this_month, ...)
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from dateutil import parser as date_parser

from utils.timezone import local_today

logger = logging.getLogger(__name__)

# Formats tried after dateutil; UK day-first variants included
DATE_FORMATS = [
    "%Y-%m-%d",  # 2024-01-15
    "%d/%m/%Y",  # 15/01/2024
    "%d-%m-%Y",  # 15-01-2024
    "%Y/%m/%d",  # 2024/01/15
]


def parse_date(value: Any, default: Optional[date] = None) -> Optional[date]:
    """
    Parse a date-like value into a calendar date.

    Supports:
    - date / datetime objects (datetime keeps its own wall-clock date)
    - ISO 8601: "2024-01-15" or "2024-01-15T14:30:00Z"
    - UK day-first: "15/01/2024"
    - Unix timestamp: "1705329000"

    Args:
        value: The value to parse
        default: Value to return if parsing fails (default: None)

    Returns:
        date or default

    Example:
        >>> parse_date("15/01/2024")
        datetime.date(2024, 1, 15)
        >>> parse_date("not a date") is None
        True
    """
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()

    if text.isdigit() and len(text) > 8:
        try:
            return datetime.fromtimestamp(int(text), tz=timezone.utc).date()
        except (ValueError, OSError, OverflowError):
            pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    try:
        return date_parser.isoparse(text).date()
    except (ValueError, TypeError, OverflowError):
        pass

    try:
        return date_parser.parse(text, dayfirst=True).date()
    except (ValueError, TypeError, OverflowError):
        pass

    logger.warning(f"Failed to parse date string: {text}")
    return default


def _month_start(day: date) -> date:
    return day.replace(day=1)


# Range shortcuts resolved against today's date in the reference timezone
DATE_SHORTCUTS = {
    "last_7_days": lambda today: (today - timedelta(days=7), today),
    "last_30_days": lambda today: (today - timedelta(days=30), today),
    "last_90_days": lambda today: (today - timedelta(days=90), today),
    "last_365_days": lambda today: (today - timedelta(days=365), today),
    "this_month": lambda today: (_month_start(today), today),
    "last_month": lambda today: (
        _month_start(_month_start(today) - timedelta(days=1)),
        _month_start(today) - timedelta(days=1),
    ),
    "this_year": lambda today: (today.replace(month=1, day=1), today),
}


def parse_date_shortcut(shortcut: str, today: Optional[date] = None) -> Optional[Tuple[date, date]]:
    """
    Resolve a named range such as "last_30_days" into (start, end) dates.

    Returns:
        Tuple of (start, end) or None for an unknown shortcut
    """
    builder = DATE_SHORTCUTS.get((shortcut or "").lower())
    if builder is None:
        return None
    return builder(today or local_today())


def parse_query_date_range(
    args: Dict[str, Any],
    start_param: str = "start_date",
    end_param: str = "end_date",
) -> Tuple[Optional[date], Optional[date]]:
    """
    Parse an optional date range from Flask request.args or a dict.

    A ``range`` shortcut wins over explicit dates. Either bound may be None.
    Bounds given in the wrong order are swapped.

    Raises:
        ValueError: If a bound is present but cannot be parsed

    Example:
        >>> parse_query_date_range({"start_date": "2024-01-01"})
        (datetime.date(2024, 1, 1), None)
    """
    shortcut = args.get("range")
    if shortcut:
        resolved = parse_date_shortcut(shortcut)
        if resolved is None:
            raise ValueError(f"Unknown range: {shortcut}")
        return resolved

    start_raw = args.get(start_param)
    end_raw = args.get(end_param)
    start = parse_date(start_raw)
    end = parse_date(end_raw)

    if start_raw and start is None:
        raise ValueError(f"Invalid {start_param}: {start_raw}")
    if end_raw and end is None:
        raise ValueError(f"Invalid {end_param}: {end_raw}")

    if start and end and start > end:
        logger.warning(f"Start date after end date, swapped: {start} <-> {end}")
        start, end = end, start

    return start, end
