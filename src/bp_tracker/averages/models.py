"""Data models for readings, periods and averages results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, TypeAlias


class Arm(str, Enum):
    """Which arm a measurement was taken on."""

    LEFT = "left"
    RIGHT = "right"


class Timeframe(str, Enum):
    """Named aggregation windows."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "all_time"


class Granularity(str, Enum):
    """Bucket size for range expansion."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class RawReading:
    """A reading row as stored.

    Each submission fills one arm pair; the other pair stays None.
    """

    id: int
    user_id: str
    created_at: datetime
    l_systolic: int | None = None
    l_diastolic: int | None = None
    r_systolic: int | None = None
    r_diastolic: int | None = None


@dataclass(frozen=True)
class CanonicalReading:
    """A validated, arm-tagged measurement used for aggregation."""

    arm: Arm
    systolic: int | float
    diastolic: int | float
    created_at: datetime


@dataclass(frozen=True)
class ArmAverages:
    """Mean systolic/diastolic over a subset of readings."""

    avg_systolic: float | None = None
    avg_diastolic: float | None = None
    count: int = 0


@dataclass(frozen=True)
class BPAverages:
    """Combined and per-arm averages."""

    overall: ArmAverages = field(default_factory=ArmAverages)
    left: ArmAverages = field(default_factory=ArmAverages)
    right: ArmAverages = field(default_factory=ArmAverages)

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the presentation field names."""
        return {
            "avg_systolic": self.overall.avg_systolic,
            "avg_diastolic": self.overall.avg_diastolic,
            "reading_count": self.overall.count,
            "avg_left_systolic": self.left.avg_systolic,
            "avg_left_diastolic": self.left.avg_diastolic,
            "left_reading_count": self.left.count,
            "avg_right_systolic": self.right.avg_systolic,
            "avg_right_diastolic": self.right.avg_diastolic,
            "right_reading_count": self.right.count,
        }


@dataclass(frozen=True)
class DailyPeriod:
    """A single calendar day."""

    date: str
    display_name: str
    type: Literal["daily"] = "daily"

    def fields(self) -> dict[str, str]:
        return {"date": self.date}


@dataclass(frozen=True)
class WeeklyPeriod:
    """A Monday-to-Sunday week."""

    week_start: str
    week_end: str
    display_name: str
    type: Literal["weekly"] = "weekly"

    def fields(self) -> dict[str, str]:
        return {"week_start": self.week_start, "week_end": self.week_end}


@dataclass(frozen=True)
class MonthlyPeriod:
    """A calendar month."""

    month_start: str
    month_end: str
    display_name: str
    type: Literal["monthly"] = "monthly"

    def fields(self) -> dict[str, str]:
        return {"month_start": self.month_start, "month_end": self.month_end}


@dataclass(frozen=True)
class AllTimePeriod:
    """Every stored reading."""

    display_name: str = "All Time"
    type: Literal["all_time"] = "all_time"

    def fields(self) -> dict[str, str]:
        return {}


PeriodInfo: TypeAlias = DailyPeriod | WeeklyPeriod | MonthlyPeriod | AllTimePeriod


@dataclass(frozen=True)
class AveragesResult:
    """Averages for one user over one resolved period.

    ``period_start``/``period_end`` are the window boundaries in the request
    timezone. ``first_reading_at``/``last_reading_at`` are set only when the
    window contained at least one stored row.
    """

    period: PeriodInfo
    averages: BPAverages
    period_start: datetime
    period_end: datetime
    first_reading_at: datetime | None = None
    last_reading_at: datetime | None = None

    @property
    def type(self) -> str:
        return self.period.type

    @property
    def display_name(self) -> str:
        return self.period.display_name

    @property
    def reading_count(self) -> int:
        return self.averages.overall.count

    def to_dict(self) -> dict[str, Any]:
        """Convert result to a flat, JSON-serializable dictionary."""
        data: dict[str, Any] = {"type": self.period.type}
        data.update(self.period.fields())
        data["display_name"] = self.period.display_name
        data.update(self.averages.to_dict())
        data["period_start"] = self.period_start.isoformat()
        data["period_end"] = self.period_end.isoformat()
        data["first_reading_at"] = (
            self.first_reading_at.isoformat() if self.first_reading_at else None
        )
        data["last_reading_at"] = (
            self.last_reading_at.isoformat() if self.last_reading_at else None
        )
        return data


@dataclass(frozen=True)
class SummaryResult:
    """Averages for all four timeframes at one instant."""

    today: AveragesResult
    this_week: AveragesResult
    this_month: AveragesResult
    all_time: AveragesResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "today": self.today.to_dict(),
            "this_week": self.this_week.to_dict(),
            "this_month": self.this_month.to_dict(),
            "all_time": self.all_time.to_dict(),
        }
