"""Tests for timeframe resolution."""

from datetime import UTC, date, datetime, timedelta

import pytest

from bp_tracker.averages.models import (
    AllTimePeriod,
    DailyPeriod,
    MonthlyPeriod,
    Timeframe,
    WeeklyPeriod,
)
from bp_tracker.averages.timeframes import (
    InvalidReferenceDateError,
    InvalidTimeframeError,
    InvalidTimezoneError,
    long_date,
    resolve_timeframe,
)

LA = "America/Los_Angeles"


class TestDaily:
    def test_los_angeles_day_bounds(self):
        resolved = resolve_timeframe("daily", LA, "2024-01-15")

        assert resolved.timeframe == Timeframe.DAILY
        assert resolved.start_utc == datetime(2024, 1, 15, 8, 0, tzinfo=UTC)
        assert resolved.end_utc == datetime(2024, 1, 16, 7, 59, 59, 999999, tzinfo=UTC)
        assert resolved.period == DailyPeriod(date="2024-01-15", display_name="January 15, 2024")

    def test_aware_reference_is_converted_to_local_day(self):
        # 03:00 UTC on the 16th is still the 15th in Los Angeles
        resolved = resolve_timeframe("daily", LA, datetime(2024, 1, 16, 3, 0, tzinfo=UTC))

        assert resolved.period.date == "2024-01-15"

    def test_naive_reference_is_local_wall_time(self):
        resolved = resolve_timeframe("daily", LA, datetime(2024, 1, 15, 23, 30))

        assert resolved.period.date == "2024-01-15"

    def test_default_reference_uses_now(self):
        now = datetime(2024, 7, 4, 18, 0, tzinfo=UTC)
        resolved = resolve_timeframe("daily", LA, now=now)

        assert resolved.period.date == "2024-07-04"

    def test_dst_spring_forward_day_is_23_hours(self):
        resolved = resolve_timeframe("daily", LA, "2024-03-10")

        assert resolved.start_utc == datetime(2024, 3, 10, 8, 0, tzinfo=UTC)
        assert resolved.end_utc == datetime(2024, 3, 11, 6, 59, 59, 999999, tzinfo=UTC)
        span = resolved.end_utc - resolved.start_utc
        assert span == timedelta(hours=23) - timedelta(microseconds=1)

    def test_dst_fall_back_day_is_25_hours(self):
        resolved = resolve_timeframe("daily", LA, "2024-11-03")

        span = resolved.end_utc - resolved.start_utc
        assert span == timedelta(hours=25) - timedelta(microseconds=1)


class TestWeekly:
    def test_week_runs_monday_to_sunday(self):
        resolved = resolve_timeframe("weekly", LA, "2024-01-17")

        assert resolved.period == WeeklyPeriod(
            week_start="2024-01-15",
            week_end="2024-01-21",
            display_name="Week of January 15, 2024",
        )
        assert resolved.start_utc == datetime(2024, 1, 15, 8, 0, tzinfo=UTC)
        assert resolved.end_utc == datetime(2024, 1, 22, 7, 59, 59, 999999, tzinfo=UTC)

    def test_sunday_belongs_to_previous_monday(self):
        resolved = resolve_timeframe("weekly", "UTC", "2024-01-21")

        assert resolved.period.week_start == "2024-01-15"

    def test_week_spanning_year_end(self):
        resolved = resolve_timeframe("weekly", "UTC", "2025-01-01")

        assert resolved.period.week_start == "2024-12-30"
        assert resolved.period.week_end == "2025-01-05"


class TestMonthly:
    def test_leap_february(self):
        resolved = resolve_timeframe("monthly", "UTC", "2024-02-10")

        assert resolved.period == MonthlyPeriod(
            month_start="2024-02-01",
            month_end="2024-02-29",
            display_name="February 2024",
        )
        assert resolved.start_utc == datetime(2024, 2, 1, tzinfo=UTC)
        assert resolved.end_utc == datetime(2024, 2, 29, 23, 59, 59, 999999, tzinfo=UTC)

    def test_december(self):
        resolved = resolve_timeframe("monthly", LA, date(2023, 12, 25))

        assert resolved.period.month_end == "2023-12-31"
        assert resolved.end_utc == datetime(2024, 1, 1, 7, 59, 59, 999999, tzinfo=UTC)


class TestAllTime:
    def test_fixed_bounds(self):
        resolved = resolve_timeframe("all_time", "UTC", "2024-01-15")

        assert resolved.start_utc == datetime(1900, 1, 1, tzinfo=UTC)
        assert resolved.end_utc == datetime(2100, 12, 31, 23, 59, 59, 999999, tzinfo=UTC)
        assert resolved.period == AllTimePeriod()
        assert resolved.period.display_name == "All Time"

    def test_reference_date_does_not_matter(self):
        first = resolve_timeframe("all_time", LA, "2020-05-01")
        second = resolve_timeframe("all_time", LA, "2024-05-01")

        assert (first.start_utc, first.end_utc) == (second.start_utc, second.end_utc)


class TestValidation:
    def test_keywords_are_case_insensitive(self):
        assert resolve_timeframe("WEEKLY", "UTC", "2024-01-15").timeframe == Timeframe.WEEKLY
        assert resolve_timeframe(" Daily ", "UTC", "2024-01-15").timeframe == Timeframe.DAILY

    def test_unknown_keyword(self):
        with pytest.raises(InvalidTimeframeError, match="Invalid timeframe: yearly"):
            resolve_timeframe("yearly", "UTC", "2024-01-15")

    def test_unknown_keyword_is_value_error(self):
        with pytest.raises(ValueError):
            resolve_timeframe("", "UTC", "2024-01-15")

    def test_unknown_timezone(self):
        with pytest.raises(InvalidTimezoneError, match="Mars/Olympus"):
            resolve_timeframe("daily", "Mars/Olympus", "2024-01-15")

    def test_unparseable_reference_date(self):
        with pytest.raises(InvalidReferenceDateError, match="not-a-date"):
            resolve_timeframe("daily", "UTC", "not-a-date")

    def test_window_past_calendar_end(self):
        # Local end of day on 9999-12-31 in Los Angeles is already year 10000 in UTC
        with pytest.raises(InvalidReferenceDateError, match="outside the supported calendar"):
            resolve_timeframe("daily", LA, "9999-12-31")

    def test_week_past_calendar_end(self):
        with pytest.raises(InvalidReferenceDateError, match="9999-12-31"):
            resolve_timeframe("weekly", "UTC", date(9999, 12, 31))

    def test_last_representable_day_in_utc(self):
        resolved = resolve_timeframe("daily", "UTC", "9999-12-31")

        assert resolved.end_utc == datetime.max.replace(tzinfo=UTC)


@pytest.mark.parametrize("timeframe", ["daily", "weekly", "monthly", "all_time"])
def test_resolution_is_idempotent(timeframe):
    first = resolve_timeframe(timeframe, LA, "2024-03-10")
    again = resolve_timeframe(timeframe, LA, first.start_utc)

    assert again == first


@pytest.mark.parametrize("timeframe", ["daily", "weekly", "monthly"])
def test_start_precedes_end(timeframe):
    resolved = resolve_timeframe(timeframe, "Asia/Kolkata", "2024-06-30")

    assert resolved.start_utc < resolved.end_utc
    assert resolved.start_utc.tzinfo == UTC


def test_long_date_has_no_zero_padding():
    assert long_date(date(2024, 1, 5)) == "January 5, 2024"
