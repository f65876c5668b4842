"""
Tests for the core Pydantic data models.

These models form the data contract between all pillars, so their validation
behavior is critical for the engine's reliability.
"""

from datetime import datetime, timedelta, timezone

import pytest
from farmadvisor.models import (
    ASSISTANT_ROLE,
    AVAILABLE,
    QUOTA_EXCEEDED,
    SYSTEM_ROLE,
    UNCONFIGURED,
    USER_ROLE,
    ChatMessage,
    ConversationState,
    ForecastDay,
    MessageMetadata,
    ProviderStatus,
    SensorReading,
    Suggestion,
    TelemetrySnapshot,
    WeatherSnapshot,
)
from pydantic import ValidationError


class TestChatMessage:
    """Test ChatMessage model validation and behavior."""

    def test_valid_message_creation(self):
        """Messages accept the three roles and get an id and timestamp."""
        for role in (USER_ROLE, ASSISTANT_ROLE, SYSTEM_ROLE):
            msg = ChatMessage(role=role, content="Hello!")
            assert msg.role == role
            assert msg.id
            assert msg.timestamp.tzinfo is not None

    def test_invalid_role_rejected(self):
        with pytest.raises(ValidationError):
            ChatMessage(role="tool", content="nope")

    def test_ids_are_unique(self):
        a = ChatMessage(role=USER_ROLE, content="a")
        b = ChatMessage(role=USER_ROLE, content="a")
        assert a.id != b.id

    def test_message_is_frozen(self):
        """Messages are never mutated after creation."""
        msg = ChatMessage(role=USER_ROLE, content="Original")
        with pytest.raises(ValidationError):
            msg.content = "Modified"

    def test_metadata_defaults(self):
        metadata = MessageMetadata()
        assert metadata.suggested_actions == []
        assert metadata.related_sensor_ids == []
        assert metadata.confidence is None
        assert metadata.offline is False

    def test_metadata_confidence_bounds(self):
        with pytest.raises(ValidationError):
            MessageMetadata(confidence=1.5)


class TestTelemetryModels:
    """Snapshots accept snake_case and camelCase keys."""

    def test_camel_case_snapshot(self):
        snapshot = TelemetrySnapshot.model_validate(
            {
                "farmId": "f1",
                "farmName": "North Field",
                "sensors": [
                    {"id": "s1", "name": "pH", "type": "pH", "value": 6.2,
                     "observedAt": "2025-06-01T10:00:00+00:00"}
                ],
            }
        )
        assert snapshot.farm_id == "f1"
        assert snapshot.sensors[0].observed_at == datetime(
            2025, 6, 1, 10, tzinfo=timezone.utc
        )

    def test_snake_case_snapshot(self):
        snapshot = TelemetrySnapshot(farm_id="f1", farm_name="North Field")
        assert snapshot.sensors == ()
        assert snapshot.weather is None

    def test_snapshot_is_frozen(self):
        snapshot = TelemetrySnapshot(farm_id="f1", farm_name="North Field")
        with pytest.raises(ValidationError):
            snapshot.farm_name = "South Field"

    def test_reading_value_optional(self):
        reading = SensorReading(id="s1", name="pH", type="pH")
        assert reading.value is None

    @pytest.mark.parametrize(
        "key",
        ["precipitation_probability", "precipitationProbability",
         "rain_probability", "rainProbability"],
    )
    def test_forecast_probability_aliases(self, key):
        """Both precipitation field names normalize to one attribute."""
        day = ForecastDay.model_validate({key: 80})
        assert day.precipitation_probability == 80

    def test_weather_accepts_daily_key(self):
        weather = WeatherSnapshot.model_validate(
            {"current": {"temperature": 31, "windSpeed": 20}, "daily": [{"rainProbability": 10}]}
        )
        assert weather.current.wind_speed == 20
        assert weather.forecast[0].precipitation_probability == 10

    @pytest.mark.parametrize("bad", ["n/a", "", float("nan"), True, {"v": 1}])
    def test_non_numeric_weather_fields_become_none(self, bad):
        weather = WeatherSnapshot.model_validate(
            {
                "current": {"temperature": 30, "humidity": bad, "windSpeed": bad},
                "forecast": [{"temperatureMax": bad, "rainProbability": bad}],
            }
        )
        assert weather.current.temperature == 30
        assert weather.current.humidity is None
        assert weather.current.wind_speed is None
        assert weather.forecast[0].temperature_max is None
        assert weather.forecast[0].precipitation_probability is None

    def test_numeric_strings_are_coerced(self):
        day = ForecastDay.model_validate({"precipitation": "2.5", "rainProbability": "80"})
        assert day.precipitation == 2.5
        assert day.precipitation_probability == 80

    def test_non_numeric_reading_value_becomes_none(self):
        reading = SensorReading.model_validate(
            {"id": "s1", "name": "pH", "type": "pH", "value": "n/a"}
        )
        assert reading.value is None


class TestSuggestion:
    def test_confidence_must_be_in_unit_interval(self):
        with pytest.raises(ValidationError):
            Suggestion(id="x", severity="info", title="t", message="m", confidence=2)

    def test_unknown_severity_rejected(self):
        with pytest.raises(ValidationError):
            Suggestion(id="x", severity="urgent", title="t", message="m", confidence=1)


class TestConversationState:
    def test_system_message_is_separate_from_history(self):
        system = ChatMessage(role=SYSTEM_ROLE, content="persona")
        state = ConversationState(user_id="u", farm_id="f", system_message=system)
        assert state.messages == ()
        assert state.system_message.content == "persona"


class TestProviderStatus:
    """The derived state and label of the provider status."""

    def test_unconfigured(self):
        status = ProviderStatus()
        assert status.state == UNCONFIGURED
        assert not status.available
        assert status.label == "No API Key - Offline Mode"

    def test_available(self):
        status = ProviderStatus(configured=True)
        assert status.state == AVAILABLE
        assert status.available
        assert status.label == "AI Online"

    def test_quota_exceeded(self):
        reset = datetime.now(timezone.utc) + timedelta(minutes=5)
        status = ProviderStatus(configured=True, quota_exceeded=True, quota_reset_at=reset)
        assert status.state == QUOTA_EXCEEDED
        assert not status.available
        assert status.label == "Quota Exceeded - Offline Mode"
