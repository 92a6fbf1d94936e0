"""Resolve named timeframes into inclusive UTC windows.

Windows are built from local wall-clock boundaries in the requested
timezone and converted to UTC afterwards, so a "day" in Los Angeles is the
local midnight-to-midnight span regardless of DST transitions.
"""

import calendar
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import (
    AllTimePeriod,
    DailyPeriod,
    MonthlyPeriod,
    PeriodInfo,
    Timeframe,
    WeeklyPeriod,
)

ALL_TIME_START = date(1900, 1, 1)
ALL_TIME_END = date(2100, 12, 31)


class InvalidTimeframeError(ValueError):
    """Raised for an unrecognized timeframe keyword."""

    def __init__(self, timeframe: str) -> None:
        valid = ", ".join(f"'{t.value}'" for t in Timeframe)
        super().__init__(f"Invalid timeframe: {timeframe}. Must be one of {valid}")
        self.timeframe = timeframe


class InvalidTimezoneError(ValueError):
    """Raised for an unknown IANA timezone name."""

    def __init__(self, timezone: str) -> None:
        super().__init__(f"Unknown timezone: {timezone}")
        self.timezone = timezone


class InvalidReferenceDateError(ValueError):
    """Raised when a reference date cannot be parsed or placed on the calendar."""

    def __init__(self, value: str, reason: str = "Expected an ISO-8601 date") -> None:
        super().__init__(f"Invalid reference date: {value}. {reason}")
        self.value = value


@dataclass(frozen=True)
class ResolvedTimeframe:
    """Inclusive UTC window for a timeframe plus its period descriptor."""

    timeframe: Timeframe
    start_utc: datetime
    end_utc: datetime
    period: PeriodInfo


def parse_timeframe(timeframe: str | Timeframe) -> Timeframe:
    """Parse a timeframe keyword case-insensitively."""
    if isinstance(timeframe, Timeframe):
        return timeframe
    try:
        return Timeframe(timeframe.strip().lower())
    except ValueError:
        raise InvalidTimeframeError(timeframe) from None


def get_zone(timezone: str) -> ZoneInfo:
    """Look up an IANA timezone."""
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidTimezoneError(timezone) from None


def to_local_datetime(value: str | date | datetime, tz: ZoneInfo) -> datetime:
    """Interpret a reference value in a timezone.

    Offset-aware values are converted into ``tz``; naive values and plain
    dates are taken as wall-clock time in ``tz``.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            raise InvalidReferenceDateError(value) from None

    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=tz)
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def start_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.max, tzinfo=tz)


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def long_date(day: date) -> str:
    """Format as e.g. 'January 5, 2024'."""
    return f"{day:%B} {day.day}, {day.year}"


def resolve_timeframe(
    timeframe: str | Timeframe,
    timezone: str,
    reference_date: str | date | datetime | None = None,
    *,
    now: datetime | None = None,
) -> ResolvedTimeframe:
    """Calculate the window for a timeframe around a reference date.

    Args:
        timeframe: daily, weekly, monthly or all_time (case-insensitive).
        timezone: IANA timezone the boundaries are computed in.
        reference_date: Day inside the wanted period. Defaults to now.
        now: Override for the current instant.

    Returns:
        ResolvedTimeframe with UTC boundaries, both inclusive.

    Raises:
        InvalidTimeframeError: If the keyword is not recognized.
        InvalidTimezoneError: If the timezone is unknown.
        InvalidReferenceDateError: If the reference date cannot be parsed or its
            window falls outside the representable calendar.
    """
    parsed = parse_timeframe(timeframe)
    tz = get_zone(timezone)

    if reference_date is None:
        reference_date = now or datetime.now(UTC)

    try:
        base = to_local_datetime(reference_date, tz)
        return _window(parsed, base.date(), tz)
    except OverflowError:
        # Windows at the calendar edge end past datetime.max once in UTC
        raise InvalidReferenceDateError(
            str(reference_date), "Date is outside the supported calendar range"
        ) from None


def _window(timeframe: Timeframe, day: date, tz: ZoneInfo) -> ResolvedTimeframe:
    period: PeriodInfo
    match timeframe:
        case Timeframe.DAILY:
            start, end = start_of_day(day, tz), end_of_day(day, tz)
            period = DailyPeriod(date=day.isoformat(), display_name=long_date(day))

        case Timeframe.WEEKLY:
            first = week_start(day)
            last = first + timedelta(days=6)
            start, end = start_of_day(first, tz), end_of_day(last, tz)
            period = WeeklyPeriod(
                week_start=first.isoformat(),
                week_end=last.isoformat(),
                display_name=f"Week of {long_date(first)}",
            )

        case Timeframe.MONTHLY:
            first, last = month_start(day), month_end(day)
            start, end = start_of_day(first, tz), end_of_day(last, tz)
            period = MonthlyPeriod(
                month_start=first.isoformat(),
                month_end=last.isoformat(),
                display_name=f"{first:%B %Y}",
            )

        case Timeframe.ALL_TIME:
            # Fixed wide bounds; actual first/last readings come from the rows
            start = start_of_day(ALL_TIME_START, tz)
            end = end_of_day(ALL_TIME_END, tz)
            period = AllTimePeriod()

    return ResolvedTimeframe(
        timeframe=timeframe,
        start_utc=start.astimezone(UTC),
        end_utc=end.astimezone(UTC),
        period=period,
    )
