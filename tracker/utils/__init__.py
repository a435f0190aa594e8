"""Utility modules for the fuel tracker."""

from .timezone import (
    local_today,
    local_yesterday,
    to_calendar_date,
    utc_now,
)

__all__ = [
    'local_today',
    'local_yesterday',
    'to_calendar_date',
    'utc_now',
]
