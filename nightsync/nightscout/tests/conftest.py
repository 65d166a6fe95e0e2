"""Shared fixtures for the Nightscout sync engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from nightsync.nightscout.base import InMemoryReadingSource, Reading
from nightsync.nightscout.settings_store import InMemorySettingsStore, SettingKey

TEST_SITE_URL = "https://cgm.example.org"
TEST_API_KEY = "test-api-secret"
TEST_START = datetime(2026, 2, 23, 6, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0

    def __call__(self) -> float:
        return self.now


def make_readings(count: int, start: datetime = TEST_START) -> list[Reading]:
    """``count`` readings five minutes apart, oldest first."""
    return [
        Reading(
            timestamp=start + timedelta(minutes=5 * i),
            value_mgdl=100.0 + i,
            direction="Flat",
            device="nightsync-test",
            reading_id=f"reading-{i}",
            raw_value=150000.0 + i,
            filtered_value=149000.0 + i,
        )
        for i in range(count)
    ]


# ---------------------------------------------------------------------------
# Store / source fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def configured_store() -> InMemorySettingsStore:
    """Store with upload enabled, credentials set and primary role."""
    return InMemorySettingsStore(
        {
            SettingKey.ENABLED: True,
            SettingKey.URL: TEST_SITE_URL,
            SettingKey.API_KEY: TEST_API_KEY,
            SettingKey.PRIMARY_ROLE: True,
        }
    )


@pytest.fixture
def readings() -> list[Reading]:
    return make_readings(3)


@pytest.fixture
def reading_source(readings: list[Reading]) -> InMemoryReadingSource:
    return InMemoryReadingSource(readings)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Mock HTTP clients
# ---------------------------------------------------------------------------


def mock_client_returning(response: object) -> MagicMock:
    """Mock httpx.AsyncClient whose ``request`` returns ``response``."""
    client = MagicMock()
    client.request = AsyncMock(return_value=response)
    return client


@pytest.fixture
def ok_http_client() -> MagicMock:
    """Mock httpx.AsyncClient answering every request with HTTP 200."""
    return mock_client_returning(httpx.Response(200, json=[]))
