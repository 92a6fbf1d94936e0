"""CLI tools for recording readings and printing averages."""

import argparse
import asyncio
import json
import sys
from datetime import UTC, date, datetime
from pathlib import Path

from .averages.models import Arm, Granularity, Timeframe
from .averages.ranges import local_date
from .averages.service import AveragesService
from .bot import formatter as fmt
from .config import StorageSettings, get_settings
from .logging import setup_logging
from .storage import ReadingStore, StorageUnavailableError


def parse_date(date_str: str) -> date:
    """Parse date string in YYYY-MM-DD format."""
    return datetime.strptime(date_str, "%Y-%m-%d").date()


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant that carries an offset."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise argparse.ArgumentTypeError("timestamp must include a timezone offset")
    return parsed


def _store_for(db_path: Path | None) -> ReadingStore:
    settings = get_settings().storage
    if db_path is not None:
        settings = StorageSettings(**{**settings.model_dump(), "db_path": str(db_path)})
    return ReadingStore(settings)


async def _print_averages(args: argparse.Namespace) -> None:
    """Compute and print averages for the selected mode."""
    service = AveragesService(_store_for(args.db_path))

    if args.summary:
        summary = await service.get_summary(args.user, args.timezone, args.date)
        if args.format_json:
            print(json.dumps(summary.to_dict(), indent=2))
        else:
            print(fmt.format_summary(summary))
        return

    if args.range:
        start = args.start or args.end or local_date(datetime.now(UTC), args.timezone)
        end = args.end or start
        results = await service.get_range(args.range, args.user, args.timezone, start, end)
        if args.format_json:
            print(json.dumps([r.to_dict() for r in results], indent=2))
        else:
            print(fmt.format_trend(results, args.range))
        return

    result = await service.get_averages(args.user, args.timeframe, args.timezone, args.date)
    if args.format_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(fmt.format_averages(result))


def averages(argv: list[str] | None = None) -> None:
    """CLI entry point for averages.

    Usage:
        bp-averages --user 42 [--timeframe weekly] [--date 2024-01-15] [--json]
        bp-averages --user 42 --summary
        bp-averages --user 42 --range daily --start 2024-01-01 --end 2024-01-07
    """
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Print blood pressure averages")
    parser.add_argument("--user", required=True, help="User ID")
    parser.add_argument(
        "--timeframe",
        choices=[t.value for t in Timeframe],
        default=Timeframe.DAILY.value,
        help="Timeframe to average (default: daily)",
    )
    parser.add_argument(
        "--timezone",
        default=settings.bot.default_timezone,
        help=f"IANA timezone (default: {settings.bot.default_timezone})",
    )
    parser.add_argument("--date", help="Reference date (YYYY-MM-DD, default: today)")
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print today, this week, this month and all time",
    )
    parser.add_argument(
        "--range",
        choices=[g.value for g in Granularity],
        help="Print one bucket per day, week or month between --start and --end",
    )
    parser.add_argument("--start", type=parse_date, help="Range start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=parse_date, help="Range end date (YYYY-MM-DD)")
    parser.add_argument("--db-path", type=Path, help="Override the SQLite database path")
    parser.add_argument(
        "--json",
        action="store_true",
        dest="format_json",
        help="Output as JSON",
    )

    args = parser.parse_args(argv)
    setup_logging(settings.app)

    if args.start and args.end and args.start > args.end:
        print("Error: start date must be before or equal to end date", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(_print_averages(args))
    except (ValueError, StorageUnavailableError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


async def _record(args: argparse.Namespace) -> tuple[int, int]:
    """Store the reading and return its ID with the user's stored row count."""
    store = _store_for(args.db_path)
    reading_id = await store.add_reading(
        args.user,
        Arm(args.arm),
        args.systolic,
        args.diastolic,
        created_at=args.at,
    )
    return reading_id, await store.count_readings(args.user)


def record(argv: list[str] | None = None) -> None:
    """CLI entry point for recording a reading.

    Usage:
        bp-record --user 42 --arm left --systolic 120 --diastolic 80
    """
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Record a blood pressure reading")
    parser.add_argument("--user", required=True, help="User ID")
    parser.add_argument("--arm", choices=[a.value for a in Arm], required=True, help="Arm")
    parser.add_argument("--systolic", type=int, required=True, help="Systolic (mmHg)")
    parser.add_argument("--diastolic", type=int, required=True, help="Diastolic (mmHg)")
    parser.add_argument(
        "--at",
        type=parse_instant,
        help="Measurement instant with offset (default: now)",
    )
    parser.add_argument("--db-path", type=Path, help="Override the SQLite database path")

    args = parser.parse_args(argv)
    setup_logging(settings.app)

    try:
        reading_id, stored = asyncio.run(_record(args))
    except StorageUnavailableError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(fmt.format_recorded(Arm(args.arm), args.systolic, args.diastolic))
    print(f"Reading ID: {reading_id}")
    print(f"Readings stored for {args.user}: {stored}")
