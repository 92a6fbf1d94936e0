"""Tests for the averages service."""

from datetime import UTC, date, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from bp_tracker.averages.models import Arm, DailyPeriod
from bp_tracker.averages.service import AveragesService
from bp_tracker.averages.timeframes import InvalidTimeframeError
from bp_tracker.storage import ReadingStore, StorageUnavailableError

LA = "America/Los_Angeles"

# 09:00 local on 2024-01-15 in Los Angeles (PST, UTC-8)
MORNING = datetime(2024, 1, 15, 17, 0, tzinfo=UTC)


async def _seed_day(store: ReadingStore) -> None:
    await store.add_reading("u1", Arm.LEFT, 118, 76, created_at=MORNING)
    await store.add_reading("u1", Arm.LEFT, 122, 80, created_at=MORNING + timedelta(hours=2))
    await store.add_reading("u1", Arm.RIGHT, 130, 85, created_at=MORNING + timedelta(hours=6))


class TestGetAverages:
    async def test_daily_end_to_end(self, store, service):
        await _seed_day(store)

        result = await service.get_averages("u1", "daily", LA, "2024-01-15")

        assert result.period == DailyPeriod(date="2024-01-15", display_name="January 15, 2024")
        assert result.averages.overall.avg_systolic == 123.33
        assert result.averages.overall.count == 3
        assert result.averages.left.avg_systolic == 120.0
        assert result.averages.left.avg_diastolic == 78.0
        assert result.averages.left.count == 2
        assert result.averages.right.avg_systolic == 130.0
        assert result.averages.right.count == 1

    async def test_reading_times_in_request_timezone(self, store, service):
        await _seed_day(store)

        result = await service.get_averages("u1", "daily", LA, "2024-01-15")

        assert result.first_reading_at == MORNING
        assert result.first_reading_at.utcoffset() == timedelta(hours=-8)
        assert result.last_reading_at == MORNING + timedelta(hours=6)
        assert result.period_start.isoformat() == "2024-01-15T00:00:00-08:00"
        assert result.period_end.isoformat() == "2024-01-15T23:59:59.999999-08:00"

    async def test_readings_outside_local_day_are_excluded(self, store, service):
        await _seed_day(store)
        # 23:30 local on the 14th is 07:30 UTC on the 15th
        await store.add_reading(
            "u1", Arm.LEFT, 200, 120, created_at=datetime(2024, 1, 15, 7, 30, tzinfo=UTC)
        )

        result = await service.get_averages("u1", "daily", LA, "2024-01-15")

        assert result.reading_count == 3

    async def test_empty_window(self, service):
        result = await service.get_averages("u1", "weekly", LA, "2024-01-15")

        assert result.reading_count == 0
        assert result.averages.overall.avg_systolic is None
        assert result.first_reading_at is None
        assert result.last_reading_at is None
        assert result.display_name == "Week of January 15, 2024"

    async def test_all_time_with_no_readings(self, service):
        result = await service.get_averages("nobody", "all_time", LA)

        assert result.reading_count == 0
        assert result.display_name == "All Time"
        data = result.to_dict()
        assert data["first_reading_at"] is None
        assert data["last_reading_at"] is None

    async def test_all_time_display_name_spans_readings(self, store, service):
        await store.add_reading(
            "u1", Arm.LEFT, 120, 80, created_at=datetime(2023, 3, 5, 18, 0, tzinfo=UTC)
        )
        await store.add_reading(
            "u1", Arm.RIGHT, 124, 82, created_at=datetime(2024, 1, 10, 18, 0, tzinfo=UTC)
        )

        result = await service.get_averages("u1", "all_time", LA)

        assert result.display_name == "All Time (Mar 2023 - Jan 2024)"
        assert result.reading_count == 2
        assert result.to_dict()["type"] == "all_time"

    async def test_invalid_timeframe(self, service):
        with pytest.raises(InvalidTimeframeError):
            await service.get_averages("u1", "fortnightly", LA)

    async def test_storage_failure_propagates(self):
        store = AsyncMock(spec=ReadingStore)
        store.fetch_readings_in_window.side_effect = StorageUnavailableError(
            "fetch_window", "database is locked"
        )
        service = AveragesService(store)

        with pytest.raises(StorageUnavailableError):
            await service.get_averages("u1", "daily", LA, "2024-01-15")

    async def test_to_dict_is_flat(self, store, service):
        await _seed_day(store)

        data = (await service.get_averages("u1", "monthly", LA, "2024-01-15")).to_dict()

        assert data["type"] == "monthly"
        assert data["month_start"] == "2024-01-01"
        assert data["month_end"] == "2024-01-31"
        assert data["display_name"] == "January 2024"
        assert data["reading_count"] == 3
        assert data["avg_right_systolic"] == 130.0
        assert data["first_reading_at"] == "2024-01-15T09:00:00-08:00"


class TestGetSummary:
    async def test_summary_covers_four_timeframes(self, store, service):
        await _seed_day(store)
        await store.add_reading(
            "u1", Arm.LEFT, 140, 90, created_at=datetime(2023, 12, 20, 18, 0, tzinfo=UTC)
        )

        summary = await service.get_summary("u1", LA, "2024-01-15")

        assert summary.today.reading_count == 3
        assert summary.this_week.reading_count == 3
        assert summary.this_month.reading_count == 3
        assert summary.all_time.reading_count == 4
        assert summary.all_time.display_name == "All Time (Dec 2023 - Jan 2024)"
        assert set(summary.to_dict()) == {"today", "this_week", "this_month", "all_time"}

    async def test_summary_fails_when_any_part_fails(self):
        store = AsyncMock(spec=ReadingStore)
        store.fetch_readings_in_window.return_value = []
        store.fetch_all_readings.side_effect = StorageUnavailableError("fetch_all", "boom")

        with pytest.raises(StorageUnavailableError):
            await AveragesService(store).get_summary("u1", LA, "2024-01-15")


class TestRanges:
    async def test_daily_range_three_buckets(self, store, service):
        await store.add_reading(
            "u1", Arm.LEFT, 120, 80, created_at=datetime(2024, 1, 2, 18, 0, tzinfo=UTC)
        )

        results = await service.get_daily_range("u1", LA, "2024-01-01", "2024-01-03")

        assert [r.period.date for r in results] == ["2024-01-01", "2024-01-02", "2024-01-03"]
        assert [r.reading_count for r in results] == [0, 1, 0]

    async def test_weekly_range(self, service):
        results = await service.get_weekly_range("u1", LA, date(2024, 1, 31), date(2024, 2, 12))

        assert [r.period.week_start for r in results] == [
            "2024-01-29",
            "2024-02-05",
            "2024-02-12",
        ]

    async def test_monthly_range_over_year_end(self, service):
        results = await service.get_monthly_range("u1", LA, "2023-12-15", "2024-01-15")

        assert [r.display_name for r in results] == ["December 2023", "January 2024"]

    async def test_reversed_range_is_empty(self, service):
        assert await service.get_range("daily", "u1", LA, "2024-01-05", "2024-01-01") == []

    async def test_invalid_granularity(self, service):
        with pytest.raises(ValueError, match="Invalid granularity"):
            await service.get_range("hourly", "u1", LA, "2024-01-01", "2024-01-02")
