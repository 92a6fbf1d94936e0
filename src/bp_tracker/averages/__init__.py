"""Blood-pressure averaging and date-windowing engine.

The orchestrating AveragesService lives in :mod:`bp_tracker.averages.service`.
"""

from .aggregator import calculate_averages
from .extractor import extract_reading
from .models import (
    AllTimePeriod,
    Arm,
    ArmAverages,
    AveragesResult,
    BPAverages,
    CanonicalReading,
    DailyPeriod,
    Granularity,
    MonthlyPeriod,
    PeriodInfo,
    RawReading,
    SummaryResult,
    Timeframe,
    WeeklyPeriod,
)
from .timeframes import (
    InvalidReferenceDateError,
    InvalidTimeframeError,
    InvalidTimezoneError,
    ResolvedTimeframe,
    resolve_timeframe,
)

__all__ = [
    "AllTimePeriod",
    "Arm",
    "ArmAverages",
    "AveragesResult",
    "BPAverages",
    "CanonicalReading",
    "DailyPeriod",
    "Granularity",
    "InvalidReferenceDateError",
    "InvalidTimeframeError",
    "InvalidTimezoneError",
    "MonthlyPeriod",
    "PeriodInfo",
    "RawReading",
    "ResolvedTimeframe",
    "SummaryResult",
    "Timeframe",
    "WeeklyPeriod",
    "calculate_averages",
    "extract_reading",
    "resolve_timeframe",
]
