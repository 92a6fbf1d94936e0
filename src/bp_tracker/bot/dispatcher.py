"""Bot command dispatcher: routes commands to storage and averages, then formats replies."""

import asyncio
from datetime import UTC, date, datetime, timedelta

import httpx
import structlog

from ..averages.models import Granularity
from ..averages.ranges import MAX_RANGE_BUCKETS, add_months, count_buckets, local_date
from ..averages.service import AveragesService
from ..config import BotSettings
from ..metrics import BOT_COMMANDS
from ..storage import ReadingStore
from . import commands as cmd
from . import formatter as fmt

logger = structlog.get_logger(__name__)


class BotDispatcher:
    """Parses bot commands, runs them against the store and delivers replies."""

    def __init__(
        self,
        bot_settings: BotSettings,
        store: ReadingStore,
        service: AveragesService | None = None,
    ) -> None:
        self._bot_settings = bot_settings
        self._store = store
        self._service = service or AveragesService(store)

    async def handle_webhook(self, message_text: str, user_id: str) -> dict:
        """Handle an incoming webhook message.

        Parses the command, executes it, formats the response, and delivers
        it to the chat gateway. Returns a status dict.
        """
        logger.info("bot_webhook_received", message=message_text, user_id=user_id)

        response_text = await self.process_command(message_text, user_id)
        await self._send_response(response_text, user_id)

        parsed = cmd.parse_command(message_text)
        if isinstance(parsed, cmd.ParseError):
            return {"status": "error", "message": parsed.message}
        return {"status": "ok", "command": parsed.command.value}

    async def process_command(
        self,
        message_text: str,
        user_id: str,
        now: datetime | None = None,
    ) -> str:
        """Process a command and return formatted response text.

        Always returns a string (error messages on failure).
        """
        parsed = cmd.parse_command(message_text)

        if isinstance(parsed, cmd.ParseError):
            BOT_COMMANDS.labels(command="invalid", status="parse_error").inc()
            return fmt.format_error(parsed.message)

        try:
            text = await asyncio.wait_for(
                self._execute_command(parsed, str(user_id), now or datetime.now(UTC)),
                timeout=self._bot_settings.response_timeout_seconds,
            )
        except TimeoutError:
            BOT_COMMANDS.labels(command=parsed.command.value, status="timeout").inc()
            logger.warning("bot_command_timeout", command=parsed.command.value, user_id=user_id)
            return fmt.format_error("Request timed out. Please try again.")
        except Exception as e:
            BOT_COMMANDS.labels(command=parsed.command.value, status="error").inc()
            logger.error(
                "bot_command_error",
                command=parsed.command.value,
                user_id=user_id,
                error=str(e),
            )
            return fmt.format_error("Something went wrong. Please try again later.")

        BOT_COMMANDS.labels(command=parsed.command.value, status="ok").inc()
        return text

    async def _execute_command(self, parsed: cmd.ParsedCommand, user_id: str, now: datetime) -> str:
        """Execute a parsed command and return formatted response text."""
        timezone = self._bot_settings.timezone_for(user_id)

        match parsed.command:
            case cmd.BotCommand.BP:
                return await self._record(parsed, user_id, timezone, now)

            case cmd.BotCommand.BPA:
                result = await self._service.get_averages(
                    user_id, parsed.timeframe, timezone, now
                )
                return fmt.format_averages(result)

            case cmd.BotCommand.SUMMARY:
                summary = await self._service.get_summary(user_id, timezone, now)
                return fmt.format_summary(summary)

            case cmd.BotCommand.TREND:
                start, end = self._trend_bounds(parsed, timezone, now)
                buckets = count_buckets(parsed.granularity, start, end, MAX_RANGE_BUCKETS)
                if buckets > MAX_RANGE_BUCKETS:
                    return fmt.format_error(
                        f"Range too large. At most {MAX_RANGE_BUCKETS} "
                        f"{parsed.granularity.value} buckets can be shown."
                    )
                results = await self._service.get_range(
                    parsed.granularity, user_id, timezone, start, end
                )
                return fmt.format_trend(results, parsed.granularity.value)

            case cmd.BotCommand.HELP:
                return fmt.format_help()

    async def _record(
        self,
        parsed: cmd.ParsedCommand,
        user_id: str,
        timezone: str,
        now: datetime,
    ) -> str:
        """Store a reading, then append today's averages when available."""
        await self._store.add_reading(
            user_id, parsed.arm, parsed.systolic, parsed.diastolic, created_at=now
        )
        confirmation = fmt.format_recorded(parsed.arm, parsed.systolic, parsed.diastolic)

        try:
            result = await self._service.get_averages(user_id, "daily", timezone, now)
        except Exception as e:
            logger.warning("bot_daily_averages_failed", user_id=user_id, error=str(e))
            return confirmation
        return f"{confirmation}\n\n{fmt.format_averages(result)}"

    def _trend_bounds(
        self,
        parsed: cmd.ParsedCommand,
        timezone: str,
        now: datetime,
    ) -> tuple[date, date]:
        """Fill in missing trend bounds from the configured defaults."""
        end = parsed.end_date or local_date(now, timezone)
        if parsed.start_date:
            return parsed.start_date, max(end, parsed.start_date)

        match parsed.granularity:
            case Granularity.DAILY:
                start = end - timedelta(days=self._bot_settings.trend_default_days - 1)
            case Granularity.WEEKLY:
                start = end - timedelta(weeks=self._bot_settings.trend_default_weeks - 1)
            case Granularity.MONTHLY:
                start = add_months(
                    end.replace(day=1), -(self._bot_settings.trend_default_months - 1)
                )
        return start, end

    async def _send_response(self, text: str, user_id: str) -> None:
        """Send response text to the user via the chat gateway."""
        if not self._bot_settings.reply_url:
            logger.warning("bot_no_reply_url")
            return

        headers = {"Content-Type": "application/json"}
        if self._bot_settings.reply_token:
            headers["Authorization"] = f"Bearer {self._bot_settings.reply_token}"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self._bot_settings.reply_url,
                    json={"to": str(user_id), "message": text},
                    headers=headers,
                    timeout=30.0,
                )
                if response.status_code in (200, 202):
                    logger.info("bot_response_delivered", user_id=user_id)
                else:
                    logger.warning(
                        "bot_response_delivery_failed",
                        status=response.status_code,
                        user_id=user_id,
                    )
        except httpx.HTTPError as e:
            logger.error("bot_response_delivery_error", error=str(e), user_id=user_id)
