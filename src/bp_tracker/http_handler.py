"""HTTP API for recording readings and querying averages."""

from __future__ import annotations

import asyncio
import hmac
from datetime import date, datetime
from typing import TYPE_CHECKING

import structlog
import uvicorn
from fastapi import FastAPI, Query, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field, field_validator

from . import __version__
from .averages.models import Arm, Granularity
from .averages.ranges import (
    MAX_RANGE_BUCKETS,
    count_buckets,
    local_date,
    parse_granularity,
)
from .averages.service import AveragesService
from .config import HTTPSettings
from .metrics import HTTP_REQUESTS_TOTAL
from .storage import ReadingStore, StorageUnavailableError
from .types import JSONObject, JSONValue

if TYPE_CHECKING:
    from .bot.dispatcher import BotDispatcher

logger = structlog.get_logger(__name__)


def _log_task_exception(task: asyncio.Task) -> None:
    """Log exceptions from background tasks that would otherwise be silently lost."""
    if not task.cancelled() and task.exception():
        logger.error("background_task_failed", error=str(task.exception()))


class ReadingCreateRequest(BaseModel):
    """Request payload for recording a reading."""

    user_id: str = Field(min_length=1)
    arm: Arm
    systolic: int = Field(ge=20, le=300)
    diastolic: int = Field(ge=20, le=300)
    created_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def validate_created_at(cls, v: datetime | None) -> datetime | None:
        """Require an explicit offset so the instant is unambiguous."""
        if v is not None and v.tzinfo is None:
            raise ValueError("created_at must include a timezone offset")
        return v


class ReadingCreatedResponse(BaseModel):
    """Response for a stored reading."""

    id: int
    status: str = "created"


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str


class ReadyResponse(BaseModel):
    """Readiness response."""

    status: str
    components: dict[str, str] = Field(default_factory=dict)


class InfoResponse(BaseModel):
    """Service info response."""

    name: str
    version: str


class BotWebhookPayload(BaseModel):
    """Request payload for bot webhook."""

    message: str
    user_id: str


class BotCommandPayload(BaseModel):
    """Request payload for synchronous bot command."""

    message: str
    user_id: str


class BotCommandResponse(BaseModel):
    """Response for synchronous bot command."""

    text: str


class HTTPHandler:
    """Serves the reading and averages API.

    Query endpoints return the flat averages records produced by
    :meth:`AveragesResult.to_dict`.
    """

    def __init__(
        self,
        settings: HTTPSettings,
        store: ReadingStore,
        service: AveragesService | None = None,
        default_timezone: str = "UTC",
        bot_dispatcher: BotDispatcher | None = None,
        bot_webhook_token: str = "",
    ) -> None:
        self._settings = settings
        self._store = store
        self._service = service or AveragesService(store)
        self._default_timezone = default_timezone
        self._bot_dispatcher = bot_dispatcher
        self._bot_webhook_token = bot_webhook_token
        self._app: FastAPI | None = None
        self._server: uvicorn.Server | None = None
        self._server_task: asyncio.Task | None = None

    @staticmethod
    def _bearer_matches(request: Request, token: str) -> bool:
        if not token:
            return True  # No token configured = auth disabled
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return False
        return hmac.compare_digest(auth_header[7:], token)

    def _check_auth(self, request: Request) -> bool:
        """Validate Bearer token from Authorization header."""
        return self._bearer_matches(request, self._settings.auth_token)

    def _check_bot_auth(self, request: Request) -> bool:
        """Validate Bearer token for bot endpoints (separate from API auth)."""
        return self._bearer_matches(request, self._bot_webhook_token)

    def _build_app(self) -> FastAPI:
        app = FastAPI(
            title="Blood Pressure Tracker API",
            version=__version__,
            description="Record blood-pressure readings and query windowed averages.",
        )

        def error_response(status_code: int, error: str) -> JSONResponse:
            payload: dict[str, JSONValue] = {"error": error}
            return JSONResponse(status_code=status_code, content=payload)

        def failure_response(method: str, path: str, exc: Exception) -> JSONResponse:
            """Map core exceptions onto HTTP status codes."""
            if isinstance(exc, StorageUnavailableError):
                HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status="503").inc()
                return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Storage unavailable")
            HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status="400").inc()
            return error_response(status.HTTP_400_BAD_REQUEST, str(exc))

        def unauthorized(method: str, path: str) -> JSONResponse:
            HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status="401").inc()
            return error_response(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

        @app.get("/health", response_model=dict[str, str], summary="Health check")
        async def health() -> dict[str, str]:
            """Handle GET /health -- returns service liveness status."""
            HTTP_REQUESTS_TOTAL.labels(method="GET", path="/health", status="200").inc()
            return {"status": "ok"}

        @app.get(
            "/ready",
            response_model=ReadyResponse,
            responses={503: {"model": ErrorResponse}},
            summary="Readiness check",
        )
        async def ready():
            """Handle GET /ready -- returns readiness of the reading store."""
            storage_ok = await self._store.ping()
            components = {
                "storage": "ok" if storage_ok else "unavailable",
                "bot": "enabled" if self._bot_dispatcher else "disabled",
            }
            if not storage_ok:
                HTTP_REQUESTS_TOTAL.labels(method="GET", path="/ready", status="503").inc()
                return JSONResponse(
                    status_code=503,
                    content={"status": "degraded", "components": components},
                )
            HTTP_REQUESTS_TOTAL.labels(method="GET", path="/ready", status="200").inc()
            return ReadyResponse(status="ok", components=components)

        @app.get("/info", response_model=InfoResponse, summary="Service info")
        async def info() -> InfoResponse:
            """Handle GET /info -- returns service metadata."""
            HTTP_REQUESTS_TOTAL.labels(method="GET", path="/info", status="200").inc()
            return InfoResponse(name="bp-tracker", version=__version__)

        @app.get("/metrics", summary="Prometheus metrics")
        async def metrics() -> Response:
            """Handle GET /metrics -- returns Prometheus metrics."""
            HTTP_REQUESTS_TOTAL.labels(method="GET", path="/metrics", status="200").inc()
            return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

        @app.post(
            "/readings",
            status_code=status.HTTP_201_CREATED,
            response_model=ReadingCreatedResponse,
            responses={401: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
            summary="Record a reading",
        )
        async def create_reading(request: Request, payload: ReadingCreateRequest):
            """Handle POST /readings -- store one single-arm reading."""
            if not self._check_auth(request):
                return unauthorized("POST", "/readings")
            try:
                reading_id = await self._store.add_reading(
                    payload.user_id,
                    payload.arm,
                    payload.systolic,
                    payload.diastolic,
                    created_at=payload.created_at,
                )
            except StorageUnavailableError as exc:
                return failure_response("POST", "/readings", exc)
            HTTP_REQUESTS_TOTAL.labels(method="POST", path="/readings", status="201").inc()
            return ReadingCreatedResponse(id=reading_id)

        @app.get(
            "/users/{user_id}/averages",
            responses={
                400: {"model": ErrorResponse},
                401: {"model": ErrorResponse},
                503: {"model": ErrorResponse},
            },
            summary="Averages for one timeframe",
        )
        async def get_averages(
            request: Request,
            user_id: str,
            timeframe: str = Query(default="daily"),
            timezone: str | None = Query(default=None),
            reference_date: str | None = Query(default=None),
        ):
            """Handle GET /users/{user_id}/averages."""
            path = "/users/{user_id}/averages"
            if not self._check_auth(request):
                return unauthorized("GET", path)
            try:
                result = await self._service.get_averages(
                    user_id, timeframe, timezone or self._default_timezone, reference_date
                )
            except (ValueError, StorageUnavailableError) as exc:
                return failure_response("GET", path, exc)
            HTTP_REQUESTS_TOTAL.labels(method="GET", path=path, status="200").inc()
            return result.to_dict()

        @app.get(
            "/users/{user_id}/summary",
            responses={
                400: {"model": ErrorResponse},
                401: {"model": ErrorResponse},
                503: {"model": ErrorResponse},
            },
            summary="Averages for today, this week, this month and all time",
        )
        async def get_summary(
            request: Request,
            user_id: str,
            timezone: str | None = Query(default=None),
            reference_date: str | None = Query(default=None),
        ):
            """Handle GET /users/{user_id}/summary."""
            path = "/users/{user_id}/summary"
            if not self._check_auth(request):
                return unauthorized("GET", path)
            try:
                summary = await self._service.get_summary(
                    user_id, timezone or self._default_timezone, reference_date
                )
            except (ValueError, StorageUnavailableError) as exc:
                return failure_response("GET", path, exc)
            HTTP_REQUESTS_TOTAL.labels(method="GET", path=path, status="200").inc()
            return summary.to_dict()

        @app.get(
            "/users/{user_id}/averages/range",
            responses={
                400: {"model": ErrorResponse},
                401: {"model": ErrorResponse},
                503: {"model": ErrorResponse},
            },
            summary="Averages per day, week or month across a date range",
        )
        async def get_range(
            request: Request,
            user_id: str,
            start_date: date,
            end_date: date,
            granularity: str = Query(default=Granularity.DAILY.value),
            timezone: str | None = Query(default=None),
        ):
            """Handle GET /users/{user_id}/averages/range."""
            path = "/users/{user_id}/averages/range"
            if not self._check_auth(request):
                return unauthorized("GET", path)
            tz_name = timezone or self._default_timezone
            try:
                parsed = parse_granularity(granularity)
                start = local_date(start_date, tz_name)
                end = local_date(end_date, tz_name)
                if start > end:
                    raise ValueError("start_date must be on or before end_date")
                if count_buckets(parsed, start, end, MAX_RANGE_BUCKETS) > MAX_RANGE_BUCKETS:
                    raise ValueError(f"Range exceeds {MAX_RANGE_BUCKETS} buckets")
                results = await self._service.get_range(parsed, user_id, tz_name, start, end)
            except (ValueError, StorageUnavailableError) as exc:
                return failure_response("GET", path, exc)
            HTTP_REQUESTS_TOTAL.labels(method="GET", path=path, status="200").inc()
            items: list[JSONObject] = [r.to_dict() for r in results]
            return {"granularity": parsed.value, "items": items}

        @app.post(
            "/bot/webhook",
            status_code=status.HTTP_202_ACCEPTED,
            responses={401: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
            summary="Bot webhook for chat commands",
        )
        async def bot_webhook(request: Request, payload: BotWebhookPayload):
            """Handle POST /bot/webhook -- process a command and reply asynchronously."""
            if not self._check_bot_auth(request):
                return unauthorized("POST", "/bot/webhook")
            if not self._bot_dispatcher:
                HTTP_REQUESTS_TOTAL.labels(method="POST", path="/bot/webhook", status="503").inc()
                return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Bot unavailable")

            task = asyncio.create_task(
                self._bot_dispatcher.handle_webhook(payload.message, payload.user_id)
            )
            task.add_done_callback(_log_task_exception)

            HTTP_REQUESTS_TOTAL.labels(method="POST", path="/bot/webhook", status="202").inc()
            return {"status": "accepted", "message": payload.message}

        @app.post(
            "/bot/command",
            response_model=BotCommandResponse,
            responses={
                401: {"model": ErrorResponse},
                500: {"model": ErrorResponse},
                503: {"model": ErrorResponse},
            },
            summary="Synchronous bot command execution",
        )
        async def bot_command(request: Request, payload: BotCommandPayload):
            """Handle POST /bot/command -- execute a command and return the result."""
            if not self._check_bot_auth(request):
                return unauthorized("POST", "/bot/command")
            if not self._bot_dispatcher:
                HTTP_REQUESTS_TOTAL.labels(method="POST", path="/bot/command", status="503").inc()
                return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Bot unavailable")

            try:
                text = await self._bot_dispatcher.process_command(payload.message, payload.user_id)
            except Exception as exc:
                logger.error("bot_command_error", error=str(exc))
                HTTP_REQUESTS_TOTAL.labels(method="POST", path="/bot/command", status="500").inc()
                return error_response(
                    status.HTTP_500_INTERNAL_SERVER_ERROR, "Command execution failed"
                )

            HTTP_REQUESTS_TOTAL.labels(method="POST", path="/bot/command", status="200").inc()
            return BotCommandResponse(text=text)

        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self._build_app()
        config = uvicorn.Config(
            self._app,
            host=self._settings.host,
            port=self._settings.port,
            log_level="info",
        )
        self._server = uvicorn.Server(config)
        self._server_task = asyncio.create_task(self._server.serve())
        self._server_task.add_done_callback(_log_task_exception)
        logger.info(
            "http_server_started",
            host=self._settings.host,
            port=self._settings.port,
        )

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._server:
            self._server.should_exit = True
        if self._server_task:
            await self._server_task
            self._server_task = None
        logger.info("http_server_stopped")

    @property
    def app(self) -> FastAPI:
        """Expose the FastAPI app for testing."""
        if not self._app:
            self._app = self._build_app()
        return self._app
