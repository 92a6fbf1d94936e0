"""Pytest configuration and fixtures."""

from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from bp_tracker.averages.service import AveragesService  # noqa: E402
from bp_tracker.config import StorageSettings  # noqa: E402
from bp_tracker.storage import ReadingStore  # noqa: E402

LA = "America/Los_Angeles"


@pytest.fixture
def storage_settings(tmp_path: Path) -> StorageSettings:
    """Storage settings pointing at a throwaway database."""
    return StorageSettings(
        _env_file=None,
        db_path=str(tmp_path / "readings.db"),
        max_retries=1,
        retry_delay_seconds=0,
    )


@pytest.fixture
def store(storage_settings: StorageSettings) -> ReadingStore:
    return ReadingStore(storage_settings)


@pytest.fixture
def service(store: ReadingStore) -> AveragesService:
    return AveragesService(store)
