"""Threshold bands shared by the suggestion evaluator and the fallback responder.

Both components classify readings through :func:`classify` so that a reading
flagged on the advisory panel is described the same way in chat.
"""

import math
import re
from typing import Dict, List, NamedTuple, Optional, Tuple

from .models import CRITICAL, INFO, SUCCESS, WARNING

PH = "ph"
MOISTURE = "moisture"
TEMPERATURE = "temperature"
EC = "ec"

LOW = "low"
HIGH = "high"
GOOD = "good"

# Farm-summary status of a single reading.
STATUS_GOOD = "good"
STATUS_CAUTION = "caution"
STATUS_CRITICAL = "critical"


class Band(NamedTuple):
    category: str
    label: str
    low: float
    high: float
    unit: str
    ideal: str


class Advice(NamedTuple):
    severity: str
    title: str
    message: str
    actions: Tuple[str, ...]
    confidence: float


class Classification(NamedTuple):
    band: Band
    level: str
    advice: Advice

    @property
    def status(self) -> str:
        if self.advice.severity == CRITICAL:
            return STATUS_CRITICAL
        if self.advice.severity == SUCCESS:
            return STATUS_GOOD
        return STATUS_CAUTION


BANDS: Dict[str, Band] = {
    PH: Band(PH, "Soil pH", 6.0, 8.0, "", "6.0-7.5"),
    MOISTURE: Band(MOISTURE, "Moisture", 30.0, 80.0, "%", "40-70%"),
    TEMPERATURE: Band(TEMPERATURE, "Temperature", 10.0, 35.0, "°C", "18-30°C"),
    EC: Band(EC, "Electrical conductivity", 0.8, 3.0, " mS/cm", "1.2-2.0 mS/cm"),
}

# Categories whose in-range state is reported as an explicit success
# suggestion. The others stay silent while healthy.
EXPLICIT_HEALTHY = frozenset({PH})

ADVICE: Dict[Tuple[str, str], Advice] = {
    (PH, LOW): Advice(
        WARNING,
        "Soil too acidic",
        "{name} reads pH {value}, below the 6.0 most crops tolerate. "
        "Nutrients such as phosphorus become locked up in acidic soil.",
        (
            "Add agricultural lime or wood ash to raise pH",
            "Re-test soil pH in 2-3 weeks",
        ),
        0.9,
    ),
    (PH, HIGH): Advice(
        WARNING,
        "Soil too alkaline",
        "{name} reads pH {value}, above 8.0. Most plants prefer slightly "
        "acidic to neutral soil and may show iron or manganese deficiency.",
        (
            "Work elemental sulfur or acidic organic matter into the soil",
            "Use ammonium-based fertilizers",
        ),
        0.9,
    ),
    (PH, GOOD): Advice(
        SUCCESS,
        "Optimal pH level",
        "{name} reads pH {value}, within the range most crops prefer.",
        ("Maintain current soil management practices",),
        0.85,
    ),
    (MOISTURE, LOW): Advice(
        CRITICAL,
        "Low moisture",
        "{name} is at {value}%, below 30%. Plants are likely water-stressed "
        "and need irrigation soon.",
        (
            "Irrigate now, preferably early morning or evening",
            "Check drip lines and emitters for blockages",
        ),
        0.9,
    ),
    (MOISTURE, HIGH): Advice(
        WARNING,
        "High moisture",
        "{name} is at {value}%, above 80%. Waterlogged soil raises the risk "
        "of root rot and fungal disease.",
        ("Reduce or pause irrigation", "Improve field drainage"),
        0.85,
    ),
    (MOISTURE, GOOD): Advice(
        SUCCESS,
        "Moisture in range",
        "{name} is at {value}%, a healthy level for most crops.",
        ("Keep the current irrigation schedule",),
        0.85,
    ),
    (TEMPERATURE, LOW): Advice(
        WARNING,
        "Low temperature",
        "{name} reads {value}°C, below 10°C. Growth slows and sensitive "
        "crops risk cold damage.",
        (
            "Cover sensitive plants with row covers or mulch",
            "Delay transplanting until temperatures rise",
        ),
        0.85,
    ),
    (TEMPERATURE, HIGH): Advice(
        WARNING,
        "High temperature",
        "{name} reads {value}°C, above 35°C. Heat stress can cause wilting "
        "and reduce yields.",
        (
            "Increase irrigation and water in the early morning",
            "Provide shade cloth for sensitive crops",
        ),
        0.85,
    ),
    (TEMPERATURE, GOOD): Advice(
        SUCCESS,
        "Temperature in range",
        "{name} reads {value}°C, comfortable for most crops.",
        ("No action needed",),
        0.85,
    ),
    (EC, LOW): Advice(
        INFO,
        "Low nutrient levels",
        "{name} reads {value} mS/cm, which points to a low nutrient "
        "concentration in the root zone.",
        ("Apply a balanced fertilizer or compost",),
        0.8,
    ),
    (EC, HIGH): Advice(
        WARNING,
        "High salt content",
        "{name} reads {value} mS/cm, above 3.0. Plants may suffer salt stress.",
        (
            "Flush the soil with clean water",
            "Reduce fertilizer application",
        ),
        0.85,
    ),
    (EC, GOOD): Advice(
        SUCCESS,
        "Nutrient balance in range",
        "{name} reads {value} mS/cm, a good nutrient balance.",
        ("Continue the current fertilization plan",),
        0.8,
    ),
}

_TYPE_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    (PH, re.compile(r"(?<![a-z])ph(?![a-z])")),
    (MOISTURE, re.compile(r"moisture|humidity")),
    (TEMPERATURE, re.compile(r"temp")),
    (EC, re.compile(r"conductivity|(?<![a-z])ec(?![a-z])")),
)


def categories_for(sensor_type: Optional[str]) -> List[str]:
    """Return the categories a sensor type belongs to, in rule order."""
    lowered = (sensor_type or "").lower()
    return [category for category, pattern in _TYPE_PATTERNS if pattern.search(lowered)]


def is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def classify(category: str, value) -> Optional[Classification]:
    """Place a reading in its band, or return None when no rule applies."""
    band = BANDS.get(category)
    if band is None or not is_number(value):
        return None
    if value < band.low:
        level = LOW
    elif value > band.high:
        level = HIGH
    else:
        level = GOOD
    return Classification(band, level, ADVICE[(category, level)])


def format_value(value: float) -> str:
    """Render a reading without a trailing ``.0``."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


_TEXT_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    (PH, re.compile(r"\b(?:ph|acid\w*|alkalin\w*)\b")),
    (MOISTURE, re.compile(r"\b(?:moisture|humidity|humid|soggy|waterlogged)\b")),
    (TEMPERATURE, re.compile(r"\b(?:temperature|temp|heat|frost|freezing)\b")),
    (EC, re.compile(r"\b(?:ec|conductivity|salinity|salty)\b")),
)


def mentioned_categories(text: str) -> List[str]:
    """Return the sensor categories a free-text message refers to."""
    lowered = (text or "").lower()
    return [category for category, pattern in _TEXT_PATTERNS if pattern.search(lowered)]
