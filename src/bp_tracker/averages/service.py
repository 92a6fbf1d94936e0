"""Averages orchestration: resolve window, fetch, extract, aggregate."""

import asyncio
from dataclasses import replace
from datetime import UTC, date, datetime
from time import perf_counter

import structlog
from opentelemetry import trace

from ..metrics import AVERAGES_COMPUTED, AVERAGES_DURATION
from ..storage import ReadingStore, StorageUnavailableError
from .aggregator import calculate_averages
from .extractor import extract_reading
from .models import (
    AllTimePeriod,
    AveragesResult,
    Granularity,
    SummaryResult,
    Timeframe,
)
from .ranges import bucket_dates, local_date, parse_granularity
from .timeframes import get_zone, resolve_timeframe

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

_GRANULARITY_TIMEFRAMES = {
    Granularity.DAILY: Timeframe.DAILY,
    Granularity.WEEKLY: Timeframe.WEEKLY,
    Granularity.MONTHLY: Timeframe.MONTHLY,
}


class AveragesService:
    """Computes blood-pressure averages for users over named timeframes."""

    def __init__(self, store: ReadingStore) -> None:
        self._store = store

    async def get_averages(
        self,
        user_id: str,
        timeframe: str | Timeframe,
        timezone: str,
        reference_date: str | date | datetime | None = None,
    ) -> AveragesResult:
        """Get blood pressure averages for a timeframe.

        Args:
            user_id: User whose readings are averaged.
            timeframe: daily, weekly, monthly or all_time.
            timezone: IANA timezone for window boundaries and display.
            reference_date: Day inside the wanted period. Defaults to now.

        Returns:
            AveragesResult; zero readings yield zero counts and None means.

        Raises:
            InvalidTimeframeError: If the timeframe keyword is unknown.
            StorageUnavailableError: If the readings cannot be fetched.
        """
        resolved = resolve_timeframe(timeframe, timezone, reference_date)
        tz = get_zone(timezone)
        started = perf_counter()

        with tracer.start_as_current_span("averages.compute") as span:
            span.set_attribute("bp.timeframe", resolved.timeframe.value)
            span.set_attribute("bp.user_id", str(user_id))
            try:
                if resolved.timeframe == Timeframe.ALL_TIME:
                    rows = await self._store.fetch_all_readings(user_id)
                else:
                    rows = await self._store.fetch_readings_in_window(
                        user_id, resolved.start_utc, resolved.end_utc
                    )
            except StorageUnavailableError as e:
                logger.error(
                    "averages_fetch_failed",
                    user_id=user_id,
                    timeframe=resolved.timeframe.value,
                    error=str(e),
                )
                raise

            readings = [r for r in (extract_reading(row) for row in rows) if r is not None]
            averages = calculate_averages(readings)
            span.set_attribute("bp.reading_count", averages.overall.count)

        period = resolved.period
        first_reading_at = last_reading_at = None
        if rows:
            first_reading_at = rows[0].created_at.astimezone(tz)
            last_reading_at = rows[-1].created_at.astimezone(tz)
            if isinstance(period, AllTimePeriod):
                period = replace(
                    period,
                    display_name=(
                        f"All Time ({first_reading_at:%b %Y} - {last_reading_at:%b %Y})"
                    ),
                )

        AVERAGES_COMPUTED.labels(timeframe=resolved.timeframe.value).inc()
        AVERAGES_DURATION.labels(timeframe=resolved.timeframe.value).observe(
            perf_counter() - started
        )
        logger.debug(
            "averages_computed",
            user_id=user_id,
            timeframe=resolved.timeframe.value,
            start=resolved.start_utc.isoformat(),
            end=resolved.end_utc.isoformat(),
            rows=len(rows),
            readings=averages.overall.count,
        )

        return AveragesResult(
            period=period,
            averages=averages,
            period_start=resolved.start_utc.astimezone(tz),
            period_end=resolved.end_utc.astimezone(tz),
            first_reading_at=first_reading_at,
            last_reading_at=last_reading_at,
        )

    async def get_summary(
        self,
        user_id: str,
        timezone: str,
        reference_date: str | date | datetime | None = None,
    ) -> SummaryResult:
        """Get averages for today, this week, this month and all time.

        The four computations run concurrently against the same reference
        instant; if any fails the summary fails.
        """
        reference = reference_date if reference_date is not None else datetime.now(UTC)
        today, this_week, this_month, all_time = await asyncio.gather(
            self.get_averages(user_id, Timeframe.DAILY, timezone, reference),
            self.get_averages(user_id, Timeframe.WEEKLY, timezone, reference),
            self.get_averages(user_id, Timeframe.MONTHLY, timezone, reference),
            self.get_averages(user_id, Timeframe.ALL_TIME, timezone, reference),
        )
        return SummaryResult(
            today=today,
            this_week=this_week,
            this_month=this_month,
            all_time=all_time,
        )

    async def get_range(
        self,
        granularity: str | Granularity,
        user_id: str,
        timezone: str,
        start_date: str | date | datetime,
        end_date: str | date | datetime,
    ) -> list[AveragesResult]:
        """Get one averages result per bucket between two dates, inclusive.

        Buckets are computed one after another in chronological order; each
        call reads storage afresh.
        """
        parsed = parse_granularity(granularity)
        timeframe = _GRANULARITY_TIMEFRAMES[parsed]
        start = local_date(start_date, timezone)
        end = local_date(end_date, timezone)

        results = []
        for bucket in bucket_dates(parsed, start, end):
            results.append(await self.get_averages(user_id, timeframe, timezone, bucket))

        logger.debug(
            "averages_range_computed",
            user_id=user_id,
            granularity=parsed.value,
            start=start.isoformat(),
            end=end.isoformat(),
            buckets=len(results),
        )
        return results

    async def get_daily_range(
        self,
        user_id: str,
        timezone: str,
        start_date: str | date | datetime,
        end_date: str | date | datetime,
    ) -> list[AveragesResult]:
        """Get averages for each day between two dates (for charts/trends)."""
        return await self.get_range(Granularity.DAILY, user_id, timezone, start_date, end_date)

    async def get_weekly_range(
        self,
        user_id: str,
        timezone: str,
        start_date: str | date | datetime,
        end_date: str | date | datetime,
    ) -> list[AveragesResult]:
        """Get averages for each week touching the date range."""
        return await self.get_range(Granularity.WEEKLY, user_id, timezone, start_date, end_date)

    async def get_monthly_range(
        self,
        user_id: str,
        timezone: str,
        start_date: str | date | datetime,
        end_date: str | date | datetime,
    ) -> list[AveragesResult]:
        """Get averages for each month touching the date range."""
        return await self.get_range(Granularity.MONTHLY, user_id, timezone, start_date, end_date)
