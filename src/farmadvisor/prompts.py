"""Persona prompt and farm-context rendering for provider calls."""

import re
from datetime import datetime, timezone
from typing import List, Optional

from .models import TelemetrySnapshot
from .thresholds import categories_for, format_value, is_number, mentioned_categories

SYSTEM_PROMPT = """You are Dr. AgriBot, an agricultural specialist with decades of experience in farming, soil science, crop management and sustainable agriculture.

YOUR EXPERTISE:
- Soil chemistry and pH management
- Crop rotation and companion planting
- Pest and disease identification and treatment
- Water management and irrigation systems
- Fertilizer and nutrient management
- Climate adaptation and weather-based planning
- Organic and sustainable farming practices
- Precision agriculture and sensor data analysis

YOUR APPROACH:
- Give practical, actionable advice adapted to the farmer's situation
- Use the farm's live sensor data to ground every recommendation
- Prefer sustainable, cost-effective solutions
- Explain the reasoning behind recommendations in farmer-friendly language
- Ask a clarifying question when the request is ambiguous
- Always put farm safety and environmental protection first

Format recommended steps as a numbered or bulleted list."""

NO_FARM_CONTEXT = (
    "CURRENT USER CONTEXT: The user has no farm data yet. Encourage them to set "
    "up their farm profile and install sensors for personalized advice."
)


def time_ago(timestamp: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Render how long ago a reading was taken ("3 hours ago", "Recently")."""
    if timestamp is None:
        return "time unknown"
    now = now or datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    hours = int((now - timestamp).total_seconds() // 3600)
    days = hours // 24
    if days > 0:
        return f"{days} day{'s' if days > 1 else ''} ago"
    if hours > 0:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    return "Recently"


def build_farm_context(
    snapshot: Optional[TelemetrySnapshot], now: Optional[datetime] = None
) -> str:
    """Describe the farm, its readings and the weather for the provider."""
    if snapshot is None:
        return NO_FARM_CONTEXT

    lines = ["CURRENT FARM DATA:", f"Farm: {snapshot.farm_name}"]
    if snapshot.location:
        lines.append(f"- Location: {snapshot.location}")
    if snapshot.notes:
        lines.append(f'- Farmer notes: "{snapshot.notes}"')

    if snapshot.sensors:
        lines.append(f"- Active sensors ({len(snapshot.sensors)}):")
        for sensor in snapshot.sensors:
            if is_number(sensor.value):
                lines.append(
                    f"  - {sensor.name} ({sensor.type}): "
                    f"{format_value(sensor.value)}{sensor.unit} "
                    f"({time_ago(sensor.observed_at, now)})"
                )
            else:
                lines.append(f"  - {sensor.name} ({sensor.type}): No recent data")
    else:
        lines.append("- No sensors installed yet")

    weather = snapshot.weather
    if weather is not None:
        current = weather.current
        lines.append("WEATHER CONDITIONS:")
        if is_number(current.temperature):
            lines.append(f"- Temperature: {format_value(current.temperature)}°C")
        if is_number(current.humidity):
            lines.append(f"- Humidity: {format_value(current.humidity)}%")
        if is_number(current.wind_speed):
            lines.append(f"- Wind: {format_value(current.wind_speed)} km/h")
        if current.condition:
            lines.append(f"- Conditions: {current.condition}")
        if weather.forecast:
            tomorrow = weather.forecast[0]
            if is_number(tomorrow.precipitation_probability):
                lines.append(
                    "- Chance of rain (next forecast day): "
                    f"{format_value(tomorrow.precipitation_probability)}%"
                )

    lines.append(
        "IMPORTANT: Reference this farm data when relevant and tailor advice to "
        "the farmer's actual conditions and notes."
    )
    return "\n".join(lines)


_NUMBERED = re.compile(r"^\s*\d+[.)]\s+(.+?)\s*$", re.MULTILINE)
_BULLETED = re.compile(r"^\s*[-*•]\s+(.+?)\s*$", re.MULTILINE)


def extract_suggestions(content: str, limit: int = 5) -> List[str]:
    """Pull numbered and bulleted steps out of a completion."""
    suggestions = []
    for pattern in (_NUMBERED, _BULLETED):
        for match in pattern.finditer(content or ""):
            item = match.group(1).strip().strip("*").strip()
            if item and item not in suggestions:
                suggestions.append(item)
    return suggestions[:limit]


def related_sensor_ids(
    snapshot: Optional[TelemetrySnapshot], *texts: str
) -> List[str]:
    """Ids of the sensors whose category or name is mentioned in ``texts``."""
    if snapshot is None:
        return []
    categories = set()
    lowered = []
    for text in texts:
        categories.update(mentioned_categories(text))
        lowered.append((text or "").lower())
    related = []
    for sensor in snapshot.sensors:
        named = sensor.name and any(sensor.name.lower() in text for text in lowered)
        if named or categories.intersection(categories_for(sensor.type)):
            related.append(sensor.id)
    return related
