"""
Defines the core Pydantic data models for the advisory engine.

These models serve as the formal, validated data contract between all other pillars.
Telemetry models accept both snake_case and camelCase keys so that records coming
from the hosted data platform validate without a translation layer.
"""

import math
import uuid
from datetime import datetime, timezone
from typing import Any, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"
Role = Literal["user", "assistant", "system"]

CRITICAL = "critical"
WARNING = "warning"
INFO = "info"
SUCCESS = "success"
Severity = Literal["critical", "warning", "info", "success"]

UNCONFIGURED = "unconfigured"
AVAILABLE = "available"
QUOTA_EXCEEDED = "quota_exceeded"
ProviderState = Literal["unconfigured", "available", "quota_exceeded"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_float(value: Any) -> Optional[float]:
    """Coerce a raw telemetry number. Anything unusable becomes ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


class _Telemetry(BaseModel):
    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )


# --- Telemetry ---
class SensorReading(_Telemetry):
    """The latest reading of a single sensor."""

    id: str
    name: str
    type: str
    value: Optional[float] = None
    unit: str = ""
    observed_at: Optional[datetime] = None

    @field_validator("value", mode="before")
    @classmethod
    def _numeric_value(cls, v):
        return as_float(v)


class CurrentWeather(_Telemetry):
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    condition: Optional[str] = None

    @field_validator("temperature", "humidity", "wind_speed", mode="before")
    @classmethod
    def _numeric(cls, v):
        return as_float(v)


class ForecastDay(_Telemetry):
    date: Optional[str] = None
    temperature_max: Optional[float] = None
    temperature_min: Optional[float] = None
    precipitation: Optional[float] = None
    precipitation_probability: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices(
            "precipitation_probability",
            "precipitationProbability",
            "rain_probability",
            "rainProbability",
        ),
    )
    condition: Optional[str] = None

    @field_validator(
        "temperature_max",
        "temperature_min",
        "precipitation",
        "precipitation_probability",
        mode="before",
    )
    @classmethod
    def _numeric(cls, v):
        return as_float(v)


class WeatherSnapshot(_Telemetry):
    current: CurrentWeather = Field(default_factory=CurrentWeather)
    forecast: Tuple[ForecastDay, ...] = Field(
        default=(), validation_alias=AliasChoices("forecast", "daily")
    )


class TelemetrySnapshot(_Telemetry):
    """An immutable point-in-time bundle of sensor and weather data for one farm."""

    farm_id: str
    farm_name: str
    location: str = ""
    notes: Optional[str] = None
    sensors: Tuple[SensorReading, ...] = ()
    weather: Optional[WeatherSnapshot] = None
    captured_at: datetime = Field(default_factory=utcnow)


# --- Advisory output ---
class Suggestion(BaseModel):
    """A single prioritized advisory item derived from a snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    severity: Severity
    title: str
    message: str
    recommended_actions: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    sensor_id: Optional[str] = None


# --- Conversation ---
class MessageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    suggested_actions: List[str] = Field(default_factory=list)
    related_sensor_ids: List[str] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    offline: bool = False


class ChatMessage(BaseModel):
    """Represents a single message within a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: Optional[MessageMetadata] = None


class ConversationState(BaseModel):
    """One user's conversation about one farm.

    The pinned ``system_message`` lives outside ``messages`` so that trimming
    the history window can never drop it.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    farm_id: str
    system_message: ChatMessage
    messages: Tuple[ChatMessage, ...] = ()
    snapshot: Optional[TelemetrySnapshot] = None


# --- Provider ---
class ProviderStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    configured: bool = False
    quota_exceeded: bool = False
    quota_reset_at: Optional[datetime] = None

    @property
    def state(self) -> str:
        if not self.configured:
            return UNCONFIGURED
        if self.quota_exceeded:
            return QUOTA_EXCEEDED
        return AVAILABLE

    @property
    def available(self) -> bool:
        return self.state == AVAILABLE

    @property
    def label(self) -> str:
        """Short text for an online/offline indicator."""
        if self.available:
            return "AI Online"
        if self.quota_exceeded:
            return "Quota Exceeded - Offline Mode"
        return "No API Key - Offline Mode"
