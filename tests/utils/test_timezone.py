"""Tests for utils/timezone.py - UTC handling and reminder calendar math."""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from utils.timezone import (
    add_years, as_date, day_offset, format_clock_time, format_us_date,
    local_today, now_utc, to_local,
)


class TestNowUtc:
    """Tests for now_utc()."""

    def test_returns_timezone_aware(self):
        """Result must have tzinfo set (not naive)."""
        result = now_utc()
        assert result.tzinfo is not None

    def test_is_utc(self):
        """Result timezone must be specifically UTC."""
        result = now_utc()
        assert result.tzinfo == timezone.utc


class TestToLocal:
    """Tests for to_local()."""

    def test_converts_correctly(self):
        """UTC 18:00 should become Denver 11:00 in January."""
        utc_time = datetime(2024, 1, 1, 18, 0, 0, tzinfo=timezone.utc)
        result = to_local(utc_time, "America/Denver")
        assert result.hour == 11

    def test_raises_on_naive(self):
        """Naive datetime must raise ValueError."""
        naive = datetime(2024, 1, 1, 12, 0, 0)
        with pytest.raises(ValueError, match="naive"):
            to_local(naive, "America/Denver")

    def test_raises_on_invalid_timezone(self):
        """Invalid timezone name must raise ValueError."""
        with pytest.raises(ValueError, match="Unknown timezone"):
            to_local(now_utc(), "Not/A/Timezone")


class TestLocalToday:
    """Tests for local_today() - what 'today' is for the reminder run."""

    def test_utc_early_morning_is_previous_day_in_denver(self):
        """03:00 UTC on Mar 10 is still the evening of Mar 9 in Denver."""
        now = datetime(2024, 3, 10, 3, 0, tzinfo=timezone.utc)
        assert local_today("America/Denver", now) == date(2024, 3, 9)

    def test_same_day_when_local_afternoon(self):
        now = datetime(2024, 3, 10, 20, 0, tzinfo=timezone.utc)
        assert local_today("America/Denver", now) == date(2024, 3, 10)


class TestAsDate:
    """Tests for as_date()."""

    def test_none_passes_through(self):
        assert as_date(None) is None

    def test_datetime_truncates(self):
        assert as_date(datetime(2024, 5, 1, 23, 59, tzinfo=ZoneInfo("UTC"))) == date(2024, 5, 1)

    def test_iso_string_parses(self):
        assert as_date("2024-05-01") == date(2024, 5, 1)


class TestDayOffset:
    """Tests for day_offset() - signed whole days from today to the anchor."""

    def test_future_anchor_is_positive(self):
        assert day_offset(date(2024, 3, 16), date(2024, 2, 1)) == 44

    def test_past_anchor_is_negative(self):
        assert day_offset(date(2024, 1, 1), date(2024, 1, 31)) == -30

    def test_same_day_is_zero(self):
        assert day_offset(date(2024, 1, 1), date(2024, 1, 1)) == 0

    def test_spans_dst_change_as_whole_days(self):
        """Midnight-to-midnight across the March DST switch is still whole days."""
        assert day_offset(date(2024, 3, 15), date(2024, 3, 5)) == 10


class TestAddYears:
    """Tests for add_years()."""

    def test_regular_date(self):
        assert add_years(date(2022, 6, 15), 2) == date(2024, 6, 15)

    def test_leap_day_rolls_to_march_first(self):
        """Feb 29 + 1 year has no Feb 29; it becomes Mar 1."""
        assert add_years(date(2024, 2, 29), 1) == date(2025, 3, 1)

    def test_leap_day_to_leap_year(self):
        assert add_years(date(2024, 2, 29), 4) == date(2028, 2, 29)


class TestFormatting:
    """Tests for display formatting used in template variables."""

    def test_us_date(self):
        assert format_us_date(date(2024, 1, 5)) == "01/05/2024"

    def test_us_date_none_is_empty(self):
        assert format_us_date(None) == ""

    def test_clock_time_afternoon(self):
        assert format_clock_time("14:05:00") == "2:05 PM"

    def test_clock_time_midnight(self):
        assert format_clock_time("00:30") == "12:30 AM"

    def test_clock_time_noon(self):
        assert format_clock_time("12:00") == "12:00 PM"

    def test_clock_time_from_time_object(self):
        assert format_clock_time(time(9, 0)) == "9:00 AM"

    def test_clock_time_unparseable_is_empty(self):
        assert format_clock_time("soon") == ""

    def test_clock_time_none_is_empty(self):
        assert format_clock_time(None) == ""
