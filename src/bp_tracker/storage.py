"""SQLite-backed storage for blood-pressure readings."""

import asyncio
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from time import perf_counter
from typing import TypeVar

import structlog
from opentelemetry import trace
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .averages.models import Arm, RawReading
from .config import StorageSettings
from .metrics import READINGS_RECORDED, STORAGE_ERRORS, STORAGE_OPERATION_DURATION

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

# Fixed-width UTC text keeps lexical order equal to chronological order
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"

_COMPLETE_PAIR_FILTER = """
    (
        (l_systolic IS NOT NULL AND l_diastolic IS NOT NULL) OR
        (r_systolic IS NOT NULL AND r_diastolic IS NOT NULL)
    )
"""

_SELECT_COLUMNS = """
    SELECT id, user_id, created_at, l_systolic, l_diastolic, r_systolic, r_diastolic
    FROM blood_pressure_readings
"""


class StorageUnavailableError(Exception):
    """Raised when a storage operation fails after retries."""

    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(f"Storage operation '{operation}' failed: {detail}")
        self.operation = operation
        self.detail = detail


def to_db_timestamp(value: datetime) -> str:
    """Serialize an aware datetime as fixed-width UTC text."""
    if value.tzinfo is None:
        raise ValueError("Timestamps must be timezone-aware")
    return value.astimezone(UTC).strftime(_TIMESTAMP_FORMAT)


def _row_to_reading(row: sqlite3.Row) -> RawReading:
    return RawReading(
        id=row["id"],
        user_id=row["user_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        l_systolic=row["l_systolic"],
        l_diastolic=row["l_diastolic"],
        r_systolic=row["r_systolic"],
        r_diastolic=row["r_diastolic"],
    )


class ReadingStore:
    """Stores readings and serves the window queries used for averaging.

    Each operation opens its own short-lived connection on an executor
    thread, so the store can be shared by concurrent requests.
    """

    def __init__(self, settings: StorageSettings) -> None:
        """Initialize the store.

        Args:
            settings: Storage settings with database path and retry policy.
        """
        self._settings = settings
        self._db_path = Path(settings.db_path)
        self._initialized = False

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection scoped to one operation."""
        conn = sqlite3.connect(self._db_path, timeout=self._settings.timeout_seconds)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            with conn:
                yield conn
        finally:
            conn.close()

    async def _run(self, operation: str, func: Callable[[], T]) -> T:
        """Run a blocking operation with retries on transient errors.

        Raises:
            StorageUnavailableError: If the operation still fails after retries.
        """
        loop = asyncio.get_running_loop()
        started = perf_counter()
        with tracer.start_as_current_span(f"storage.{operation}") as span:
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self._settings.max_retries),
                    wait=wait_exponential(
                        multiplier=self._settings.retry_delay_seconds,
                        min=self._settings.retry_delay_seconds,
                        max=5,
                    ),
                    retry=retry_if_exception_type(sqlite3.OperationalError),
                    reraise=True,
                ):
                    with attempt:
                        if attempt.retry_state.attempt_number > 1:
                            logger.warning(
                                "storage_operation_retry",
                                operation=operation,
                                attempt=attempt.retry_state.attempt_number,
                            )
                        result = await loop.run_in_executor(None, func)
            except sqlite3.Error as e:
                STORAGE_ERRORS.labels(operation=operation).inc()
                span.set_attribute("bp.storage_error", str(e))
                logger.error("storage_operation_failed", operation=operation, error=str(e))
                raise StorageUnavailableError(operation, str(e)) from e
            finally:
                STORAGE_OPERATION_DURATION.labels(operation=operation).observe(
                    perf_counter() - started
                )
        return result

    async def initialize(self) -> None:
        """Create the readings table and index if missing."""
        if self._initialized:
            return

        def init_db() -> None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS blood_pressure_readings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        l_systolic INTEGER,
                        l_diastolic INTEGER,
                        r_systolic INTEGER,
                        r_diastolic INTEGER
                    )
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_readings_user_created
                    ON blood_pressure_readings(user_id, created_at)
                """)

        await self._run("initialize", init_db)
        self._initialized = True
        logger.debug("storage_initialized", path=str(self._db_path))

    async def add_reading(
        self,
        user_id: str,
        arm: Arm,
        systolic: int,
        diastolic: int,
        created_at: datetime | None = None,
    ) -> int:
        """Store a single-arm reading.

        Args:
            user_id: Owning user.
            arm: Arm the measurement was taken on.
            systolic: Systolic value in mmHg.
            diastolic: Diastolic value in mmHg.
            created_at: Submission instant. Defaults to now.

        Returns:
            ID of the stored row.
        """
        await self.initialize()
        created = to_db_timestamp(created_at or datetime.now(UTC))
        prefix = "l" if arm == Arm.LEFT else "r"

        def do_insert() -> int:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"""
                    INSERT INTO blood_pressure_readings
                        (user_id, created_at, {prefix}_systolic, {prefix}_diastolic)
                    VALUES (?, ?, ?, ?)
                    """,
                    (str(user_id), created, systolic, diastolic),
                )
                return int(cursor.lastrowid)

        reading_id = await self._run("add_reading", do_insert)
        READINGS_RECORDED.labels(arm=arm.value).inc()
        logger.info(
            "reading_recorded",
            reading_id=reading_id,
            user_id=user_id,
            arm=arm.value,
            created_at=created,
        )
        return reading_id

    async def fetch_readings_in_window(
        self,
        user_id: str,
        start_utc: datetime,
        end_utc: datetime,
    ) -> list[RawReading]:
        """Fetch complete readings with ``start <= created_at <= end``.

        Returns:
            Rows with at least one complete arm pair, oldest first.
        """
        await self.initialize()
        params = (str(user_id), to_db_timestamp(start_utc), to_db_timestamp(end_utc))

        def do_fetch() -> list[RawReading]:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"""
                    {_SELECT_COLUMNS}
                    WHERE user_id = ?
                      AND created_at >= ?
                      AND created_at <= ?
                      AND {_COMPLETE_PAIR_FILTER}
                    ORDER BY created_at ASC, id ASC
                    """,
                    params,
                )
                return [_row_to_reading(row) for row in cursor]

        return await self._run("fetch_window", do_fetch)

    async def fetch_all_readings(self, user_id: str) -> list[RawReading]:
        """Fetch every complete reading for a user, oldest first."""
        await self.initialize()

        def do_fetch() -> list[RawReading]:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"""
                    {_SELECT_COLUMNS}
                    WHERE user_id = ?
                      AND {_COMPLETE_PAIR_FILTER}
                    ORDER BY created_at ASC, id ASC
                    """,
                    (str(user_id),),
                )
                return [_row_to_reading(row) for row in cursor]

        return await self._run("fetch_all", do_fetch)

    async def count_readings(self, user_id: str) -> int:
        """Count all stored rows for a user, complete or not."""
        await self.initialize()

        def do_count() -> int:
            with self._connect() as conn:
                cursor = conn.execute(
                    "SELECT COUNT(*) FROM blood_pressure_readings WHERE user_id = ?",
                    (str(user_id),),
                )
                return int(cursor.fetchone()[0])

        return await self._run("count", do_count)

    async def ping(self) -> bool:
        """Check the database answers a trivial query."""
        try:
            await self._run("ping", self._select_one)
        except StorageUnavailableError:
            return False
        return True

    def _select_one(self) -> None:
        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()
