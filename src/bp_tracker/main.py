"""Main entry point for the blood-pressure tracker service."""

import asyncio
import platform
import signal
import sys

import structlog
from prometheus_client import start_http_server as start_metrics_server

from . import __version__
from .averages.service import AveragesService
from .bot.dispatcher import BotDispatcher
from .config import get_settings
from .http_handler import HTTPHandler
from .logging import setup_logging
from .metrics import SERVICE_INFO
from .storage import ReadingStore
from .tracing import setup_tracing

logger = structlog.get_logger(__name__)


class BPTrackerService:
    """Owns the reading store and serves the HTTP API and bot."""

    def __init__(self) -> None:
        """Initialize the tracker service."""
        self._settings = get_settings()
        self._store: ReadingStore | None = None
        self._http_handler: HTTPHandler | None = None
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the tracker service."""
        setup_tracing(self._settings.tracing)
        logger.info("service_starting", version=__version__)
        SERVICE_INFO.info({"version": __version__, "python": platform.python_version()})

        self._store = ReadingStore(self._settings.storage)
        await self._store.initialize()
        logger.info("storage_ready", path=self._settings.storage.db_path)

        service = AveragesService(self._store)

        dispatcher: BotDispatcher | None = None
        if self._settings.bot.enabled:
            dispatcher = BotDispatcher(self._settings.bot, self._store, service)
            logger.info(
                "bot_enabled",
                default_timezone=self._settings.bot.default_timezone,
                user_overrides=len(self._settings.bot.user_timezones),
            )

        if self._settings.http.enabled:
            self._http_handler = HTTPHandler(
                settings=self._settings.http,
                store=self._store,
                service=service,
                default_timezone=self._settings.bot.default_timezone,
                bot_dispatcher=dispatcher,
                bot_webhook_token=self._settings.bot.webhook_token,
            )
            await self._http_handler.start()

        if self._settings.app.metrics_port:
            start_metrics_server(port=self._settings.app.metrics_port)
            logger.info("prometheus_metrics_started", port=self._settings.app.metrics_port)

        logger.info("service_started")

    async def stop(self) -> None:
        """Stop the tracker service gracefully."""
        logger.info("service_stopping")
        if self._http_handler:
            await self._http_handler.stop()
        logger.info("service_stopped")

    async def run_until_shutdown(self) -> None:
        """Run the service until shutdown signal received."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request service shutdown."""
        self._shutdown_event.set()


async def main() -> None:
    """Main entry point."""
    settings = get_settings()
    setup_logging(settings.app)

    service = BPTrackerService()

    # Set up signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        service.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await service.start()
        await service.run_until_shutdown()
    except Exception as e:
        logger.exception("service_error", error=str(e))
        raise
    finally:
        await service.stop()


def run() -> None:
    """Entry point for the CLI."""
    asyncio.run(main())


def health_check_cli() -> None:
    """Health check CLI for Docker HEALTHCHECK.

    Exits with code 0 when the reading store answers, 1 otherwise.
    """

    async def check() -> bool:
        store = ReadingStore(get_settings().storage)
        return await store.ping()

    success = asyncio.run(check())
    print("Health check passed" if success else "Health check failed: storage unavailable")
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    run()
