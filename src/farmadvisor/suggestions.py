"""
Rule evaluation that turns a telemetry snapshot into advisory suggestions.

Rules run in a fixed sequence and the order in which they emit is the display
priority order: sensor problems first, then weather, then forecast. The
evaluator is pure apart from the staleness rule, which compares reading
timestamps with ``now``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError

from .models import (
    CRITICAL,
    INFO,
    WARNING,
    SensorReading,
    Suggestion,
    TelemetrySnapshot,
    WeatherSnapshot,
)
from .telemetry import assemble_snapshot
from .thresholds import (
    EXPLICIT_HEALTHY,
    GOOD,
    MOISTURE,
    PH,
    TEMPERATURE,
    categories_for,
    classify,
    format_value,
    is_number,
)

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(hours=48)
HOT_TEMPERATURE = 30.0
DRY_HUMIDITY = 50.0
WINDY_SPEED = 15.0
RAIN_PROBABILITY = 70.0

VISIBLE_SEVERITIES = frozenset({CRITICAL, WARNING})


class InvalidSnapshot(ValueError):
    """Raised when the evaluator is given something that is not a snapshot."""


def _coerce(snapshot: Any) -> TelemetrySnapshot:
    if isinstance(snapshot, TelemetrySnapshot):
        return snapshot
    if not isinstance(snapshot, Mapping):
        raise InvalidSnapshot(
            f"Expected a TelemetrySnapshot, got {type(snapshot).__name__}"
        )
    sensors = snapshot.get("sensors") or ()
    if not isinstance(sensors, (list, tuple)):
        raise InvalidSnapshot(
            f"Expected a list of sensors, got {type(sensors).__name__}"
        )
    try:
        return assemble_snapshot(snapshot, sensors, snapshot.get("weather"))
    except ValidationError as e:
        raise InvalidSnapshot(str(e)) from e


def _age(reading: SensorReading, now: datetime) -> Optional[timedelta]:
    if reading.observed_at is None:
        return None
    observed = reading.observed_at
    if observed.tzinfo is None:
        observed = observed.replace(tzinfo=timezone.utc)
    return now - observed


def is_stale(
    reading: SensorReading, now: datetime, stale_after: timedelta = STALE_AFTER
) -> bool:
    """Whether the reading is older than ``stale_after``. Undated readings never are."""
    age = _age(reading, now)
    return age is not None and age > stale_after


def _stale_suggestion(reading: SensorReading, age: timedelta) -> Suggestion:
    hours = int(age.total_seconds() // 3600)
    return Suggestion(
        id=f"stale-{reading.id}",
        severity=WARNING,
        title="Stale sensor data",
        message=(
            f"{reading.name} has not reported for {hours} hours. Its last "
            "reading may no longer reflect field conditions."
        ),
        recommended_actions=[
            "Check the sensor's power supply and connectivity",
            "Inspect the sensor in the field",
        ],
        confidence=0.9,
        sensor_id=reading.id,
    )


def _sensor_suggestions(reading: SensorReading) -> List[Suggestion]:
    suggestions = []
    for category in categories_for(reading.type):
        result = classify(category, reading.value)
        if result is None:
            continue
        if result.level == GOOD and category not in EXPLICIT_HEALTHY:
            continue
        advice = result.advice
        suggestions.append(
            Suggestion(
                id=f"{category}-{result.level}-{reading.id}",
                severity=advice.severity,
                title=advice.title,
                message=advice.message.format(
                    name=reading.name, value=format_value(reading.value)
                ),
                recommended_actions=list(advice.actions),
                confidence=advice.confidence,
                sensor_id=reading.id,
            )
        )
    return suggestions


def _weather_suggestions(weather: Optional[WeatherSnapshot]) -> List[Suggestion]:
    if weather is None:
        return []
    suggestions = []
    current = weather.current
    temperature, humidity = current.temperature, current.humidity
    if (
        is_number(temperature)
        and is_number(humidity)
        and temperature > HOT_TEMPERATURE
        and humidity < DRY_HUMIDITY
    ):
        suggestions.append(
            Suggestion(
                id="weather-hot-dry",
                severity=WARNING,
                title="Hot and dry conditions",
                message=(
                    f"It is {format_value(temperature)}°C with "
                    f"{format_value(humidity)}% humidity. Crops will lose water "
                    "quickly today."
                ),
                recommended_actions=[
                    "Water early in the morning or late in the evening",
                    "Mulch around plants to retain soil moisture",
                ],
                confidence=0.85,
            )
        )
    if is_number(current.wind_speed) and current.wind_speed > WINDY_SPEED:
        suggestions.append(
            Suggestion(
                id="weather-windy",
                severity=INFO,
                title="Windy conditions",
                message=(
                    f"Wind speed is {format_value(current.wind_speed)} km/h. "
                    "Spraying and overhead irrigation will drift."
                ),
                recommended_actions=[
                    "Postpone spraying until the wind drops",
                    "Stake or support tall plants",
                ],
                confidence=0.8,
            )
        )
    if weather.forecast:
        probability = weather.forecast[0].precipitation_probability
        if is_number(probability) and probability > RAIN_PROBABILITY:
            suggestions.append(
                Suggestion(
                    id="forecast-rain",
                    severity=INFO,
                    title="Rain expected",
                    message=(
                        f"There is a {format_value(probability)}% chance of rain. "
                        "Reduce irrigation to avoid waterlogging."
                    ),
                    recommended_actions=[
                        "Reduce or skip the next irrigation cycle",
                        "Clear drainage channels",
                    ],
                    confidence=0.8,
                )
            )
    return suggestions


def evaluate(
    snapshot: TelemetrySnapshot,
    now: Optional[datetime] = None,
    stale_after: timedelta = STALE_AFTER,
) -> List[Suggestion]:
    """Evaluate a snapshot and return suggestions in display priority order.

    Parameters
    ----------
    snapshot : TelemetrySnapshot
        The farm snapshot. A plain dict is validated into a snapshot first.
    now : datetime, optional
        Reference time for the staleness rule. Defaults to the current UTC time.
    stale_after : timedelta
        Readings older than this are reported as stale instead of evaluated.

    Raises
    ------
    InvalidSnapshot
        If ``snapshot`` is not a snapshot and cannot be validated as one.
    """
    snapshot = _coerce(snapshot)
    now = now or datetime.now(timezone.utc)

    if not snapshot.sensors:
        return [
            Suggestion(
                id="no-sensors",
                severity=INFO,
                title="No sensors installed",
                message=(
                    f"{snapshot.farm_name or 'This farm'} has no sensors yet. "
                    "Install soil and climate sensors to receive tailored advice."
                ),
                recommended_actions=["Request a sensor installation"],
                confidence=1.0,
            )
        ]

    suggestions: List[Suggestion] = []
    for reading in snapshot.sensors:
        age = _age(reading, now)
        if age is not None and age > stale_after:
            suggestions.append(_stale_suggestion(reading, age))
            continue
        suggestions.extend(_sensor_suggestions(reading))

    suggestions.extend(_weather_suggestions(snapshot.weather))

    if not suggestions:
        suggestions.append(
            Suggestion(
                id="all-normal",
                severity=INFO,
                title="All readings normal",
                message="Every sensor reading is within its healthy range.",
                recommended_actions=["Continue current management practices"],
                confidence=0.8,
            )
        )
    logger.debug(
        "Evaluated farm %s: %d suggestion(s)", snapshot.farm_id, len(suggestions)
    )
    return suggestions


def visible(suggestions: List[Suggestion], include_all: bool = False) -> List[Suggestion]:
    """Apply the default display policy: only critical and warning items."""
    if include_all:
        return list(suggestions)
    return [s for s in suggestions if s.severity in VISIBLE_SEVERITIES]


# --- Tips and follow-up questions ---

_GENERAL_TIPS = [
    "Monitor your crops daily for early problem detection",
    "Keep soil consistently moist but not waterlogged",
    "Rotate crops to maintain soil health",
    "Use organic mulch to retain moisture",
]

_SETUP_TIPS = [
    "Set up your farm profile for personalized tips",
    "Install sensors to monitor soil conditions",
    "Keep a farming journal to track progress",
    "Plan seasonal activities in advance",
]

_TIP_TEMPLATES = {
    (MOISTURE, "low"): "Your soil moisture is low ({value}%) - consider watering",
    (MOISTURE, "high"): "Your soil moisture is high ({value}%) - check drainage",
    (PH, "low"): "Soil pH is acidic ({value}) - consider adding lime",
    (PH, "high"): "Soil pH is alkaline ({value}) - consider adding sulfur",
    (TEMPERATURE, "low"): "Low temperature ({value}°C) - protect sensitive plants",
    (TEMPERATURE, "high"): "High temperature ({value}°C) - ensure adequate watering",
}


def quick_tips(snapshot: Optional[TelemetrySnapshot], limit: int = 4) -> List[str]:
    """Short, sensor-driven tips for a dashboard card."""
    if snapshot is None:
        return _SETUP_TIPS[:limit]
    tips = []
    for reading in snapshot.sensors:
        for category in categories_for(reading.type):
            result = classify(category, reading.value)
            template = result and _TIP_TEMPLATES.get((category, result.level))
            if template:
                tips.append(template.format(value=format_value(reading.value)))
    return (tips or _GENERAL_TIPS)[:limit]


_DEFAULT_QUESTIONS = [
    "What should I do about the current sensor readings?",
    "How can I improve soil moisture levels?",
    "What crops grow best in this location?",
    "When is the optimal harvest time?",
    "How can I prevent common plant diseases?",
    "What fertilization schedule do you recommend?",
    "How should I adjust for upcoming weather changes?",
    "What equipment maintenance is needed now?",
]

_QUESTION_RULES: List[tuple] = [
    (MOISTURE, lambda r: r.level == "low", "How can I improve soil moisture levels?"),
    (TEMPERATURE, lambda r: r.level == "high", "How should I protect crops from high temperatures?"),
    (PH, lambda r: r.level != GOOD, "How can I adjust soil pH levels?"),
]


def suggested_questions(
    snapshot: Optional[TelemetrySnapshot], limit: int = 6
) -> List[str]:
    """Follow-up questions to offer in the chat UI, biased toward problem sensors."""
    questions: List[str] = []
    for reading in snapshot.sensors if snapshot else ():
        categories = categories_for(reading.type)
        for category, predicate, question in _QUESTION_RULES:
            if category not in categories:
                continue
            result = classify(category, reading.value)
            if result and predicate(result) and question not in questions:
                questions.append(question)
    if not questions:
        return _DEFAULT_QUESTIONS[:limit]
    for question in _DEFAULT_QUESTIONS[:4]:
        if question not in questions:
            questions.append(question)
    return questions[:limit]
