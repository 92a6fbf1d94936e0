"""Bot command parsing and validation."""

from dataclasses import dataclass
from datetime import date
from enum import Enum

from ..averages.models import Arm, Granularity, Timeframe


class BotCommand(str, Enum):
    """Supported bot commands."""

    BP = "bp"
    BPA = "bpa"
    SUMMARY = "bpsummary"
    TREND = "bptrend"
    HELP = "bphelp"


COMMAND_DESCRIPTIONS: dict[BotCommand, str] = {
    BotCommand.BP: "Record a reading: /bp <left|right> <systolic> <diastolic>",
    BotCommand.BPA: "Averages: /bpa [daily|weekly|monthly|all_time]",
    BotCommand.SUMMARY: "Today, this week, this month and all time at a glance",
    BotCommand.TREND: "Trend: /bptrend [daily|weekly|monthly] [start] [end]",
    BotCommand.HELP: "List available commands",
}

ARM_ALIASES = {
    "left": Arm.LEFT,
    "l": Arm.LEFT,
    "right": Arm.RIGHT,
    "r": Arm.RIGHT,
}

TIMEFRAME_ALIASES = {
    "daily": Timeframe.DAILY,
    "today": Timeframe.DAILY,
    "weekly": Timeframe.WEEKLY,
    "week": Timeframe.WEEKLY,
    "monthly": Timeframe.MONTHLY,
    "month": Timeframe.MONTHLY,
    "all_time": Timeframe.ALL_TIME,
    "all": Timeframe.ALL_TIME,
}

DEFAULT_TIMEFRAME = Timeframe.DAILY
DEFAULT_GRANULARITY = Granularity.DAILY

# Plausible mmHg bounds for manual entry
MIN_PRESSURE = 20
MAX_PRESSURE = 300


@dataclass
class ParsedCommand:
    """Successfully parsed bot command."""

    command: BotCommand
    raw_text: str
    timeframe: Timeframe = DEFAULT_TIMEFRAME
    granularity: Granularity = DEFAULT_GRANULARITY
    arm: Arm | None = None
    systolic: int | None = None
    diastolic: int | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass
class ParseError:
    """Failed command parse result."""

    message: str
    raw_text: str


def _parse_pressure(value: str, label: str) -> int | str:
    """Parse a pressure value, returning an error message on failure."""
    try:
        number = int(value)
    except ValueError:
        return f"{label} must be a whole number, got '{value}'"
    if not MIN_PRESSURE <= number <= MAX_PRESSURE:
        return f"{label} must be between {MIN_PRESSURE} and {MAX_PRESSURE} mmHg"
    return number


def _parse_record(args: list[str], raw_text: str) -> ParsedCommand | ParseError:
    if len(args) != 3:
        return ParseError(
            message="Usage: /bp <left|right> <systolic> <diastolic>",
            raw_text=raw_text,
        )

    arm = ARM_ALIASES.get(args[0])
    if arm is None:
        return ParseError(message=f"Unknown arm '{args[0]}'. Use left or right.", raw_text=raw_text)

    systolic = _parse_pressure(args[1], "Systolic")
    if isinstance(systolic, str):
        return ParseError(message=systolic, raw_text=raw_text)
    diastolic = _parse_pressure(args[2], "Diastolic")
    if isinstance(diastolic, str):
        return ParseError(message=diastolic, raw_text=raw_text)

    return ParsedCommand(
        command=BotCommand.BP,
        raw_text=raw_text,
        arm=arm,
        systolic=systolic,
        diastolic=diastolic,
    )


def _parse_averages(args: list[str], raw_text: str) -> ParsedCommand | ParseError:
    timeframe = DEFAULT_TIMEFRAME
    if args:
        timeframe = TIMEFRAME_ALIASES.get(args[0])
        if timeframe is None:
            valid = ", ".join(t.value for t in Timeframe)
            return ParseError(
                message=f"Invalid period '{args[0]}'. Use one of: {valid}",
                raw_text=raw_text,
            )
    return ParsedCommand(command=BotCommand.BPA, raw_text=raw_text, timeframe=timeframe)


def _parse_trend(args: list[str], raw_text: str) -> ParsedCommand | ParseError:
    granularity = DEFAULT_GRANULARITY
    if args:
        try:
            granularity = Granularity(args[0])
        except ValueError:
            valid = ", ".join(g.value for g in Granularity)
            return ParseError(
                message=f"Invalid granularity '{args[0]}'. Use one of: {valid}",
                raw_text=raw_text,
            )

    dates: list[date] = []
    for arg in args[1:3]:
        try:
            dates.append(date.fromisoformat(arg))
        except ValueError:
            return ParseError(
                message=f"Invalid date '{arg}'. Use YYYY-MM-DD.",
                raw_text=raw_text,
            )

    start_date = dates[0] if dates else None
    end_date = dates[1] if len(dates) > 1 else None
    if start_date and end_date and start_date > end_date:
        return ParseError(message="Start date must be on or before end date.", raw_text=raw_text)

    return ParsedCommand(
        command=BotCommand.TREND,
        raw_text=raw_text,
        granularity=granularity,
        start_date=start_date,
        end_date=end_date,
    )


def parse_command(text: str) -> ParsedCommand | ParseError:
    """Parse a bot command string into a ParsedCommand or ParseError.

    Args:
        text: Raw message text, e.g. "/bp left 120 80" or "/bpa weekly".

    Returns:
        ParsedCommand on success, ParseError on failure.
    """
    raw_text = text
    text = text.strip()

    if not text.startswith("/"):
        return ParseError(
            message="Commands must start with /. Use /bphelp for available commands.",
            raw_text=raw_text,
        )

    parts = text[1:].lower().split()
    if not parts:
        return ParseError(
            message="Empty command. Use /bphelp for available commands.",
            raw_text=raw_text,
        )

    cmd_str, args = parts[0], parts[1:]

    try:
        command = BotCommand(cmd_str)
    except ValueError:
        return ParseError(
            message=f"Unknown command: /{cmd_str}. Use /bphelp for available commands.",
            raw_text=raw_text,
        )

    match command:
        case BotCommand.BP:
            return _parse_record(args, raw_text)
        case BotCommand.BPA:
            return _parse_averages(args, raw_text)
        case BotCommand.TREND:
            return _parse_trend(args, raw_text)
        case _:
            # Extra args are ignored for commands that take none
            return ParsedCommand(command=command, raw_text=raw_text)
