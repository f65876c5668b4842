"""Telemetry sources and the snapshot assembler."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from pydantic import ValidationError

from .models import SensorReading, TelemetrySnapshot, WeatherSnapshot, as_float

logger = logging.getLogger(__name__)


class FarmNotFound(LookupError):
    """Raised when a telemetry source has no record for a farm id."""


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _first(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


def normalize_sensor(record: Mapping[str, Any]) -> SensorReading:
    """Flatten one raw sensor record into a :class:`SensorReading`.

    Accepts flat records and records with a nested ``latest_reading``
    (``latestReading``) block. Unusable values become ``None``.
    """
    if isinstance(record, SensorReading):
        return record
    latest = _first(record, "latest_reading", "latestReading", default={})
    if not isinstance(latest, Mapping):
        latest = {}
    raw_value = _first(latest, "value", default=_first(record, "value"))
    value = as_float(raw_value)
    if value is None and raw_value is not None:
        logger.debug("Ignoring non-numeric value %r for sensor %s", raw_value, record.get("id"))
    return SensorReading(
        id=str(_first(record, "id", "sensor_id", "sensorId", default="")),
        name=str(_first(record, "name", "sensor_name", "sensorName", default="Sensor")),
        type=str(_first(record, "type", "sensor_type", "sensorType", default="")),
        value=value,
        unit=str(_first(latest, "unit", default=_first(record, "unit", "units", default=""))),
        observed_at=_as_datetime(
            _first(
                latest,
                "timestamp",
                "observed_at",
                "observedAt",
                default=_first(
                    record, "observed_at", "observedAt", "timestamp", "created_at"
                ),
            )
        ),
    )


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _weather(weather: Any) -> Optional[WeatherSnapshot]:
    if not weather:
        return None
    if isinstance(weather, WeatherSnapshot):
        return weather
    try:
        return WeatherSnapshot.model_validate(weather)
    except ValidationError as e:
        logger.warning("Ignoring malformed weather block: %s", e)
        return None


def assemble_snapshot(
    farm: Mapping[str, Any],
    sensors: Iterable[Mapping[str, Any]] = (),
    weather: Optional[Mapping[str, Any]] = None,
    captured_at: Optional[datetime] = None,
) -> TelemetrySnapshot:
    """Build an immutable snapshot from raw farm, sensor and weather records.

    Sensor entries that are not records and weather blocks that do not
    validate are dropped with a warning, so the rules that depend on them are
    skipped instead of failing the whole snapshot.
    """
    weather_snapshot = _weather(weather)
    readings = []
    for sensor in sensors:
        if isinstance(sensor, (Mapping, SensorReading)):
            readings.append(normalize_sensor(sensor))
        else:
            logger.warning("Skipping malformed sensor record %r", sensor)
    return TelemetrySnapshot(
        farm_id=str(_first(farm, "farm_id", "farmId", "id", default="")),
        farm_name=str(_first(farm, "farm_name", "farmName", "name", default="")),
        location=str(_first(farm, "location", default="")),
        notes=_text(_first(farm, "notes")),
        sensors=tuple(readings),
        weather=weather_snapshot,
        captured_at=captured_at
        or _as_datetime(_first(farm, "captured_at", "capturedAt"))
        or datetime.now(timezone.utc),
    )


class TelemetrySource(ABC):
    """Interface for the collaborator that supplies current farm telemetry."""

    @abstractmethod
    def fetch(self, farm_id: str) -> Mapping[str, Any]:
        """Returns the raw record for a farm.

        The record carries the farm fields (``name``, ``location``, ``notes``),
        a ``sensors`` list and an optional ``weather`` mapping.

        Raises
        ------
        FarmNotFound
            If the source has no record for ``farm_id``.
        """
        pass

    def snapshot(self, farm_id: str) -> TelemetrySnapshot:
        """Fetches the farm and assembles a fresh snapshot."""
        record = self.fetch(farm_id)
        try:
            return assemble_snapshot(
                {"farm_id": farm_id, **dict(record)},
                sensors=record.get("sensors") or (),
                weather=record.get("weather"),
            )
        except ValidationError as e:
            raise ValueError(f"Malformed telemetry for farm {farm_id}: {e}") from e


class InMemory(TelemetrySource):
    """Serves telemetry records from an in-memory dictionary."""

    def __init__(self, farms: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._farms: Dict[str, Mapping[str, Any]] = dict(farms or {})

    def put(self, farm_id: str, record: Mapping[str, Any]) -> None:
        self._farms[farm_id] = record

    def fetch(self, farm_id: str) -> Mapping[str, Any]:
        try:
            return self._farms[farm_id]
        except KeyError:
            raise FarmNotFound(farm_id) from None
