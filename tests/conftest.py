"""
Core pytest configuration and fixtures for farmadvisor testing.

This module provides shared test fixtures, configuration, and utilities
that support the pillar-based testing architecture.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest
from farmadvisor.config import Settings
from farmadvisor.models import ASSISTANT_ROLE, USER_ROLE, ChatMessage
from farmadvisor.telemetry import assemble_snapshot

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """A clock tests can move forward."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ===== TEST DATA FIXTURES =====


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_sensor(
    sensor_id: str, sensor_type: str, value: Any, unit: str = "", hours_ago: float = 1
) -> Dict[str, Any]:
    """Raw sensor record in the hosted platform's nested shape."""
    return {
        "id": sensor_id,
        "name": f"{sensor_type.title()} Sensor {sensor_id}",
        "type": sensor_type,
        "latestReading": {
            "value": value,
            "unit": unit,
            "observedAt": (NOW - timedelta(hours=hours_ago)).isoformat(),
        },
    }


@pytest.fixture
def sensor_record():
    """Factory for raw sensor records."""
    return make_sensor


@pytest.fixture
def farm_record() -> Dict[str, Any]:
    return {
        "name": "Green Valley",
        "location": "Da Lat",
        "notes": "Growing tomatoes and lettuce",
    }


@pytest.fixture
def healthy_sensors() -> List[Dict[str, Any]]:
    return [
        make_sensor("s1", "pH", 6.5),
        make_sensor("s2", "soil moisture", 55, "%"),
        make_sensor("s3", "temperature", 24, "°C"),
    ]


@pytest.fixture
def make_snapshot(farm_record):
    """Factory building a snapshot from raw sensor records."""

    def _make(sensors=(), weather=None, **farm):
        record = {"farm_id": "farm-1", **farm_record, **farm}
        return assemble_snapshot(record, sensors, weather, captured_at=NOW)

    return _make


@pytest.fixture
def snapshot(make_snapshot, healthy_sensors):
    return make_snapshot(healthy_sensors)


@pytest.fixture
def sample_messages() -> List[ChatMessage]:
    """Sample chat messages for testing."""
    return [
        ChatMessage(role=USER_ROLE, content="When should I plant corn?"),
        ChatMessage(role=ASSISTANT_ROLE, content="Plant corn when soil is above 10°C."),
        ChatMessage(role=USER_ROLE, content="Is my soil too dry?"),
        ChatMessage(role=ASSISTANT_ROLE, content="Moisture is at 55%, which is fine."),
    ]


# ===== MOCK FIXTURES =====


@pytest.fixture
def mock_llm():
    """Mock LLM provider whose single call returns a fixed completion."""
    mock = MagicMock()
    mock.generate_response = AsyncMock(return_value={"content": "Mock LLM response"})
    mock.extract_content.return_value = (
        "Here is my advice:\n1. Irrigate in the morning\n2. Mulch the beds"
    )
    mock.is_rate_limit_error.return_value = False
    return mock


@pytest.fixture
def settings() -> Settings:
    """Settings with an explicit key so the environment cannot leak in."""
    return Settings(api_key="test-key", quota_cooldown_seconds=300)


@pytest.fixture
def offline_settings() -> Settings:
    return Settings(api_key="")


# ===== APP FIXTURES =====


@pytest.fixture
def telemetry_source(farm_record, healthy_sensors):
    from farmadvisor.telemetry import InMemory

    return InMemory({"farm-1": {**farm_record, "sensors": healthy_sensors}})


@pytest.fixture
def test_app(settings, telemetry_source, clock):
    """
    Provides a FarmAdvisor with simple, predictable pillars.

    Uses the Echo LLM so no network calls are made.
    """
    from farmadvisor import FarmAdvisor
    from farmadvisor.llm import Echo

    return FarmAdvisor(
        settings=settings, telemetry=telemetry_source, llm=Echo(), clock=clock
    )


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests as slow-running")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
