"""Tests for HTTP handler."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from bp_tracker.averages.models import Arm
from bp_tracker.bot.dispatcher import BotDispatcher
from bp_tracker.config import HTTPSettings
from bp_tracker.http_handler import MAX_RANGE_BUCKETS, HTTPHandler
from bp_tracker.storage import ReadingStore, StorageUnavailableError

AUTH = {"Authorization": "Bearer test-token"}
BOT_AUTH = {"Authorization": "Bearer test-bot-token"}


def _make_settings(auth_token: str = "test-token") -> HTTPSettings:
    """Create HTTPSettings isolated from env vars."""
    return HTTPSettings(
        _env_file=None,
        enabled=True,
        host="127.0.0.1",
        port=8080,
        auth_token=auth_token,
    )


def _make_handler(
    store: ReadingStore,
    auth_token: str = "test-token",
    bot_dispatcher: BotDispatcher | None = None,
) -> HTTPHandler:
    return HTTPHandler(
        settings=_make_settings(auth_token=auth_token),
        store=store,
        default_timezone="America/Los_Angeles",
        bot_dispatcher=bot_dispatcher,
        bot_webhook_token="test-bot-token",
    )


@pytest.fixture
def handler(store) -> HTTPHandler:
    return _make_handler(store)


def _client_for(handler: HTTPHandler) -> AsyncClient:
    transport = ASGITransport(app=handler.app)
    return AsyncClient(transport=transport, base_url="http://test")


class TestServiceEndpoints:
    async def test_health(self, handler):
        async with _client_for(handler) as client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_ready(self, handler):
        async with _client_for(handler) as client:
            response = await client.get("/ready")

        assert response.status_code == 200
        assert response.json()["components"]["storage"] == "ok"

    async def test_ready_degraded(self):
        store = AsyncMock(spec=ReadingStore)
        store.ping.return_value = False

        async with _client_for(_make_handler(store)) as client:
            response = await client.get("/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    async def test_info(self, handler):
        async with _client_for(handler) as client:
            response = await client.get("/info")

        assert response.json()["name"] == "bp-tracker"

    async def test_metrics(self, handler):
        async with _client_for(handler) as client:
            response = await client.get("/metrics")

        assert response.status_code == 200
        assert "bp_tracker_http_requests_total" in response.text


class TestReadings:
    async def test_create_reading(self, handler, store):
        payload = {
            "user_id": "42",
            "arm": "left",
            "systolic": 120,
            "diastolic": 80,
            "created_at": "2024-01-15T09:00:00-08:00",
        }
        async with _client_for(handler) as client:
            response = await client.post("/readings", json=payload, headers=AUTH)

        assert response.status_code == 201
        assert response.json()["status"] == "created"
        rows = await store.fetch_all_readings("42")
        assert rows[0].created_at == datetime(2024, 1, 15, 17, 0, tzinfo=UTC)

    async def test_requires_auth(self, handler):
        payload = {"user_id": "42", "arm": "left", "systolic": 120, "diastolic": 80}
        async with _client_for(handler) as client:
            response = await client.post("/readings", json=payload)

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    async def test_rejects_naive_timestamp(self, handler):
        payload = {
            "user_id": "42",
            "arm": "left",
            "systolic": 120,
            "diastolic": 80,
            "created_at": "2024-01-15T09:00:00",
        }
        async with _client_for(handler) as client:
            response = await client.post("/readings", json=payload, headers=AUTH)

        assert response.status_code == 422

    async def test_rejects_out_of_range_values(self, handler):
        payload = {"user_id": "42", "arm": "left", "systolic": 500, "diastolic": 80}
        async with _client_for(handler) as client:
            response = await client.post("/readings", json=payload, headers=AUTH)

        assert response.status_code == 422


class TestAverages:
    async def test_daily_averages(self, handler, store):
        await store.add_reading(
            "42", Arm.LEFT, 118, 76, created_at=datetime(2024, 1, 15, 17, 0, tzinfo=UTC)
        )
        await store.add_reading(
            "42", Arm.RIGHT, 130, 85, created_at=datetime(2024, 1, 15, 20, 0, tzinfo=UTC)
        )

        async with _client_for(handler) as client:
            response = await client.get(
                "/users/42/averages",
                params={"timeframe": "daily", "reference_date": "2024-01-15"},
                headers=AUTH,
            )

        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "daily"
        assert data["date"] == "2024-01-15"
        assert data["avg_systolic"] == 124.0
        assert data["left_reading_count"] == 1
        assert data["period_start"] == "2024-01-15T00:00:00-08:00"

    async def test_invalid_timeframe_is_400(self, handler):
        async with _client_for(handler) as client:
            response = await client.get(
                "/users/42/averages", params={"timeframe": "yearly"}, headers=AUTH
            )

        assert response.status_code == 400
        assert "Invalid timeframe" in response.json()["error"]

    async def test_invalid_timezone_is_400(self, handler):
        async with _client_for(handler) as client:
            response = await client.get(
                "/users/42/averages", params={"timezone": "Mars/Base"}, headers=AUTH
            )

        assert response.status_code == 400

    async def test_storage_unavailable_is_503(self):
        store = AsyncMock(spec=ReadingStore)
        store.fetch_readings_in_window.side_effect = StorageUnavailableError("fetch_window", "x")

        async with _client_for(_make_handler(store)) as client:
            response = await client.get("/users/42/averages", headers=AUTH)

        assert response.status_code == 503
        assert response.json() == {"error": "Storage unavailable"}

    async def test_summary(self, handler):
        async with _client_for(handler) as client:
            response = await client.get(
                "/users/42/summary", params={"reference_date": "2024-01-15"}, headers=AUTH
            )

        assert response.status_code == 200
        data = response.json()
        assert data["all_time"]["display_name"] == "All Time"
        assert data["this_week"]["week_start"] == "2024-01-15"

    async def test_range(self, handler):
        async with _client_for(handler) as client:
            response = await client.get(
                "/users/42/averages/range",
                params={"start_date": "2024-01-01", "end_date": "2024-01-03"},
                headers=AUTH,
            )

        assert response.status_code == 200
        data = response.json()
        assert data["granularity"] == "daily"
        assert [item["date"] for item in data["items"]] == [
            "2024-01-01",
            "2024-01-02",
            "2024-01-03",
        ]

    async def test_range_rejects_reversed_dates(self, handler):
        async with _client_for(handler) as client:
            response = await client.get(
                "/users/42/averages/range",
                params={"start_date": "2024-02-01", "end_date": "2024-01-01"},
                headers=AUTH,
            )

        assert response.status_code == 400

    async def test_range_bucket_cap(self, handler):
        async with _client_for(handler) as client:
            response = await client.get(
                "/users/42/averages/range",
                params={"start_date": "2020-01-01", "end_date": "2024-01-01"},
                headers=AUTH,
            )

        assert response.status_code == 400
        assert str(MAX_RANGE_BUCKETS) in response.json()["error"]

    async def test_reference_date_past_calendar_end_is_400(self, handler):
        async with _client_for(handler) as client:
            response = await client.get(
                "/users/42/averages", params={"reference_date": "9999-12-31"}, headers=AUTH
            )

        assert response.status_code == 400
        assert "outside the supported calendar range" in response.json()["error"]

    async def test_range_through_last_calendar_day(self, handler):
        async with _client_for(handler) as client:
            response = await client.get(
                "/users/42/averages/range",
                params={
                    "start_date": "9999-12-30",
                    "end_date": "9999-12-31",
                    "timezone": "UTC",
                },
                headers=AUTH,
            )

        assert response.status_code == 200
        assert [item["date"] for item in response.json()["items"]] == [
            "9999-12-30",
            "9999-12-31",
        ]


class TestBotEndpoints:
    async def test_bot_unavailable(self, handler):
        async with _client_for(handler) as client:
            response = await client.post(
                "/bot/command", json={"message": "/bphelp", "user_id": "42"}, headers=BOT_AUTH
            )

        assert response.status_code == 503

    async def test_bot_requires_bot_token(self, store):
        dispatcher = MagicMock(spec=BotDispatcher)
        handler = _make_handler(store, bot_dispatcher=dispatcher)

        async with _client_for(handler) as client:
            response = await client.post(
                "/bot/command", json={"message": "/bphelp", "user_id": "42"}, headers=AUTH
            )

        assert response.status_code == 401

    async def test_bot_command(self, store):
        dispatcher = MagicMock(spec=BotDispatcher)
        dispatcher.process_command = AsyncMock(return_value="help text")
        handler = _make_handler(store, bot_dispatcher=dispatcher)

        async with _client_for(handler) as client:
            response = await client.post(
                "/bot/command", json={"message": "/bphelp", "user_id": "42"}, headers=BOT_AUTH
            )

        assert response.status_code == 200
        assert response.json() == {"text": "help text"}
        dispatcher.process_command.assert_awaited_once_with("/bphelp", "42")

    async def test_bot_webhook_accepted(self, store):
        dispatcher = MagicMock(spec=BotDispatcher)
        dispatcher.handle_webhook = AsyncMock(return_value={"status": "ok"})
        handler = _make_handler(store, bot_dispatcher=dispatcher)

        async with _client_for(handler) as client:
            response = await client.post(
                "/bot/webhook", json={"message": "/bpa", "user_id": "42"}, headers=BOT_AUTH
            )
            await asyncio.sleep(0.01)

        assert response.status_code == 202
        assert response.json()["status"] == "accepted"
        dispatcher.handle_webhook.assert_awaited_once_with("/bpa", "42")
