"""Calendar walks for day/week/month trend buckets."""

from collections.abc import Iterator
from datetime import date, datetime, timedelta
from itertools import islice

from .models import Granularity
from .timeframes import get_zone, month_start, to_local_datetime, week_start

# Upper bound on buckets served per trend request
MAX_RANGE_BUCKETS = 400


def parse_granularity(granularity: str | Granularity) -> Granularity:
    if isinstance(granularity, Granularity):
        return granularity
    try:
        return Granularity(granularity.strip().lower())
    except ValueError:
        valid = ", ".join(g.value for g in Granularity)
        raise ValueError(f"Invalid granularity: {granularity}. Must be one of {valid}") from None


def add_months(day: date, months: int) -> date:
    """Shift a first-of-month date by whole months."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def bucket_dates(granularity: Granularity, start: date, end: date) -> Iterator[date]:
    """Yield bucket reference dates from ``start`` through ``end`` inclusive.

    Weekly and monthly walks snap both bounds to the start of their week
    (Monday) or month first, so a partial first or last bucket is included.
    """
    match granularity:
        case Granularity.DAILY:
            current, last = start, end
        case Granularity.WEEKLY:
            current, last = week_start(start), week_start(end)
        case Granularity.MONTHLY:
            current, last = month_start(start), month_start(end)

    while current <= last:
        yield current
        if current == last:
            break
        match granularity:
            case Granularity.DAILY:
                current += timedelta(days=1)
            case Granularity.WEEKLY:
                current += timedelta(weeks=1)
            case Granularity.MONTHLY:
                current = add_months(current, 1)


def local_date(value: str | date | datetime, timezone: str) -> date:
    """Calendar date of a range bound as seen in ``timezone``."""
    return to_local_datetime(value, get_zone(timezone)).date()


def count_buckets(granularity: Granularity, start: date, end: date, limit: int) -> int:
    """Count buckets in the walk, stopping once ``limit`` is exceeded."""
    return sum(1 for _ in islice(bucket_dates(granularity, start, end), limit + 1))
