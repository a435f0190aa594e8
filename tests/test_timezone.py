"""
Tests for timezone utilities.

Entries are tracked per UK calendar day, so "today" and "yesterday" must
follow Europe/London rather than the server clock.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from freezegun import freeze_time

from exceptions import ConfigurationError
from utils.timezone import (
    local_today,
    local_yesterday,
    reference_zone,
    to_calendar_date,
    utc_now,
)


class TestUtcNow:

    def test_naive(self):
        assert utc_now().tzinfo is None

    @freeze_time("2024-06-01 10:00:00")
    def test_value(self):
        assert utc_now() == datetime(2024, 6, 1, 10, 0)


class TestLocalToday:
    """Tests for local_today() and local_yesterday()."""

    def test_winter_matches_utc(self):
        assert local_today(datetime(2024, 1, 15, 23, 30)) == date(2024, 1, 15)

    def test_summer_rolls_over_at_midnight_bst(self):
        assert local_today(datetime(2024, 6, 30, 23, 30)) == date(2024, 7, 1)

    def test_aware_input(self):
        moment = datetime(2024, 6, 30, 22, 0, tzinfo=timezone(timedelta(hours=-2)))
        assert local_today(moment) == date(2024, 7, 1)

    def test_other_zone(self):
        assert local_today(datetime(2024, 1, 15, 23, 30), zone_name="Asia/Tokyo") == date(2024, 1, 16)

    @freeze_time("2024-03-31 23:30:00")
    def test_defaults_to_now(self):
        assert local_today() == date(2024, 4, 1)
        assert local_yesterday() == date(2024, 3, 31)

    def test_unknown_zone(self):
        with pytest.raises(ConfigurationError) as exc_info:
            reference_zone("Mars/Olympus_Mons")
        assert exc_info.value.config_key == "REFERENCE_TIMEZONE"


class TestCalendarDates:

    def test_to_calendar_date(self):
        assert to_calendar_date(None) is None
        assert to_calendar_date(date(2024, 1, 1)) == date(2024, 1, 1)
        assert to_calendar_date(datetime(2024, 1, 1, 23, 59)) == date(2024, 1, 1)
        assert to_calendar_date("2024-01-01T10:00:00") == date(2024, 1, 1)

    def test_to_calendar_date_bad_string(self):
        with pytest.raises(ValueError):
            to_calendar_date("yesterday")
