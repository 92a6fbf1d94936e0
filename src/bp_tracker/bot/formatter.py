"""Markdown formatters for bot command responses."""

from dataclasses import dataclass
from datetime import datetime

from ..averages.models import (
    AllTimePeriod,
    Arm,
    ArmAverages,
    AveragesResult,
    DailyPeriod,
    MonthlyPeriod,
    SummaryResult,
    WeeklyPeriod,
)
from .commands import COMMAND_DESCRIPTIONS

MAX_MESSAGE_LENGTH = 4000


@dataclass(frozen=True)
class BPCategory:
    """Clinical category for a systolic/diastolic pair."""

    category: str
    emoji: str
    color: int


NORMAL = BPCategory("Normal", "✅", 0x2ECC71)
ELEVATED = BPCategory("Elevated", "⚠️", 0xF39C12)
STAGE_1 = BPCategory("Stage 1 High", "🔶", 0xE67E22)
STAGE_2 = BPCategory("Stage 2 High", "🔴", 0xE74C3C)
UNKNOWN = BPCategory("Unknown", "❓", 0x95A5A6)


def get_bp_category(systolic: float | None, diastolic: float | None) -> BPCategory:
    """Classify a reading with the ACC/AHA adult thresholds.

    Checks run in order, so the first matching band wins.
    """
    if systolic is None or diastolic is None:
        return UNKNOWN
    if systolic < 120 and diastolic < 80:
        return NORMAL
    if systolic < 130 and diastolic < 80:
        return ELEVATED
    if 130 <= systolic < 140 or 80 <= diastolic < 90:
        return STAGE_1
    if systolic >= 140 or diastolic >= 90:
        return STAGE_2
    return UNKNOWN


def _truncate(text: str) -> str:
    """Truncate message to chat limit."""
    if len(text) <= MAX_MESSAGE_LENGTH:
        return text
    return text[: MAX_MESSAGE_LENGTH - 15] + "\n...truncated"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _pressure(value: float | None) -> str:
    """Render a mean without trailing zeros (120.0 -> 120)."""
    if value is None:
        return "—"
    return f"{value:g}"


def _pair(stats: ArmAverages) -> str:
    return f"{_pressure(stats.avg_systolic)}/{_pressure(stats.avg_diastolic)}"


def format_time_span(first: datetime, last: datetime) -> str:
    """Describe the span between two readings, e.g. '2d 3h 15m'."""
    total_minutes = int((last - first).total_seconds() // 60)
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    return " ".join(parts) if parts else "< 1m or only 1 reading"


def format_averages(result: AveragesResult) -> str:
    """Format /bpa response."""
    overall = result.averages.overall
    status = get_bp_category(overall.avg_systolic, overall.avg_diastolic)
    lines = [f"*{status.emoji} BP Averages - {result.display_name}*", ""]

    if overall.count == 0:
        lines.append("📭 No readings recorded for this period.")
        return "\n".join(lines)

    lines.append(f"📊 Average: *{_pair(overall)} mmHg*")
    lines.append(f"{status.emoji} _{status.category}_")
    lines.append(f"📈 {_plural(overall.count, 'measurement')}")

    left, right = result.averages.left, result.averages.right
    if left.count and right.count:
        lines.append("")
        lines.append("*🆚 Arm Comparison*")
        lines.append(f"👈 Left: {_pair(left)} ({_plural(left.count, 'reading')})")
        lines.append(f"👉 Right: {_pair(right)} ({_plural(right.count, 'reading')})")
    else:
        arm, stats, emoji = (
            ("Left", left, "👈") if left.count else ("Right", right, "👉")
        )
        lines.append("")
        lines.append(f"{emoji} {arm} arm only: {_pair(stats)} mmHg")

    if result.first_reading_at and result.last_reading_at:
        span = format_time_span(result.first_reading_at, result.last_reading_at)
        lines.append("")
        lines.append("*⏰ Measurement Window*")
        lines.append(f"Span: *{span}*")
        lines.append(f"Last: {result.last_reading_at:%Y-%m-%d %H:%M %Z}")

    return _truncate("\n".join(lines))


def format_recorded(arm: Arm, systolic: int, diastolic: int) -> str:
    """Format /bp confirmation."""
    return f"✅ Added blood pressure values {arm.value} - ({systolic}/{diastolic})"


def _summary_row(label: str, result: AveragesResult) -> str:
    overall = result.averages.overall
    if overall.count == 0:
        return f"{label}: —"
    status = get_bp_category(overall.avg_systolic, overall.avg_diastolic)
    return f"{label}: *{_pair(overall)}* ({overall.count}) {status.emoji} {status.category}"


def format_summary(summary: SummaryResult) -> str:
    """Format /bpsummary response."""
    lines = ["*📋 BP Summary*", ""]
    lines.append(_summary_row("Today", summary.today))
    lines.append(_summary_row("This week", summary.this_week))
    lines.append(_summary_row("This month", summary.this_month))
    lines.append(_summary_row(summary.all_time.display_name, summary.all_time))
    return _truncate("\n".join(lines))


def bucket_label(result: AveragesResult) -> str:
    """Short label identifying a trend bucket."""
    match result.period:
        case DailyPeriod(date=day):
            return day
        case WeeklyPeriod(week_start=start):
            return start
        case MonthlyPeriod(month_start=start):
            return start[:7]
        case AllTimePeriod():
            return "all"
    return result.display_name


def format_trend(results: list[AveragesResult], granularity: str) -> str:
    """Format /bptrend response."""
    lines = [f"*📈 BP Trend ({granularity})*", ""]

    if not any(r.reading_count for r in results):
        lines.append("No readings recorded in this range.")
        return "\n".join(lines)

    for result in results:
        overall = result.averages.overall
        if overall.count:
            status = get_bp_category(overall.avg_systolic, overall.avg_diastolic)
            row = f"{_pair(overall)} ({overall.count}) {status.emoji}"
        else:
            row = "—"
        lines.append(f"`{bucket_label(result)}` {row}")

    return _truncate("\n".join(lines))


def format_help() -> str:
    """Format /bphelp response."""
    lines = ["*🩺 Blood Pressure Bot Commands*", ""]
    for cmd, desc in COMMAND_DESCRIPTIONS.items():
        lines.append(f"/{cmd.value} - {desc}")
    return "\n".join(lines)


def format_error(message: str) -> str:
    """Format an error message."""
    return f"⚠️ {message}"
