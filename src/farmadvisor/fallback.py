"""
Deterministic responder used whenever no live provider answer is available.

A message is matched against an ordered rule table; the first rule whose
predicate accepts the turn composes the reply. The last rule accepts every
non-empty message, so :meth:`Responder.respond` always returns content.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

from pydantic import BaseModel

from .knowledge import CropGuide, Topic, crop_advice, find_crop, find_topic
from .models import (
    QUOTA_EXCEEDED,
    UNCONFIGURED,
    USER_ROLE,
    ChatMessage,
    MessageMetadata,
    SensorReading,
    TelemetrySnapshot,
)
from .prompts import time_ago
from .suggestions import STALE_AFTER, is_stale
from .thresholds import (
    STATUS_CAUTION,
    STATUS_CRITICAL,
    STATUS_GOOD,
    EC,
    MOISTURE,
    PH,
    TEMPERATURE,
    Classification,
    categories_for,
    classify,
    format_value,
    is_number,
    mentioned_categories,
)

logger = logging.getLogger(__name__)

# Reasons the orchestrator falls back, used to pick the reply header.
REASON_QUOTA = QUOTA_EXCEEDED
REASON_UNCONFIGURED = UNCONFIGURED
REASON_ERROR = "error"
REASON_TIMEOUT = "timeout"
REASON_CANCELLED = "cancelled"

FOLLOW_UP_MAX_CHARS = 40

_QUOTA_HEADER = (
    "🤖 I'm currently experiencing high demand and my AI quota has been "
    "reached. However, I can still help with your farming question!"
)
_QUOTA_FOOTER = (
    "💡 **Tip**: My full AI capabilities will be restored soon. In the meantime, "
    "I'm providing guidance based on my agricultural knowledge base."
)
_ERROR_HEADER = (
    "🌱 I encountered a technical issue, but I'm still here to help with your "
    "farming needs!"
)
_ERROR_FOOTER = "🔧 If this issue persists, please try again in a few moments."
_OFFLINE_HEADER = "🌾 **Offline mode** - answering from my built-in farming knowledge."

_FRAMES = {
    REASON_QUOTA: (_QUOTA_HEADER, _QUOTA_FOOTER),
    REASON_ERROR: (_ERROR_HEADER, _ERROR_FOOTER),
    REASON_TIMEOUT: (_ERROR_HEADER, _ERROR_FOOTER),
    REASON_CANCELLED: (_ERROR_HEADER, _ERROR_FOOTER),
    REASON_UNCONFIGURED: (_OFFLINE_HEADER, None),
}

_FARM_STATUS = re.compile(
    r"\bhow(?:'s|\s+is|\s+are)\s+(?:my|the|our)\s+(?:farm|soil|crops?|plants?|fields?)\b"
    r"|\b(?:farm|field|crop)\s+(?:status|health|overview|summary|report)\b"
    r"|\bstatus\s+of\s+(?:my|the|our)\s+(?:farm|field|crops?)\b"
    r"|\bcheck\s+(?:on\s+)?(?:my|the|our)\s+(?:farm|field|crops?)\b"
)
_PROBLEM = re.compile(
    r"\b(?:problems?|issues?|help|wrong|dying|dead|fix|trouble|struggl\w*|"
    r"failing|damaged?|losing)\b"
)
_QUESTION = re.compile(r"^\s*(?:what|how|when|where|why|which|who|can|should|is|are|do|does)\b")

_STATUS_ICONS = {STATUS_GOOD: "✅", STATUS_CAUTION: "⚠️", STATUS_CRITICAL: "🚨"}
_STALE_ACTION = "Check the sensor's power supply and connectivity"

_CAPABILITIES = (
    "Interpreting your soil pH, moisture, temperature and EC readings",
    "Pest and disease management",
    "Fertilizer and nutrient planning",
    "Irrigation and water management",
    "Planting, crop selection and harvest timing",
    "Weather-based planning",
)

# Sensor categories worth citing alongside a topic.
_TOPIC_SENSORS = {
    "irrigation": (MOISTURE,),
    "soil": (PH, MOISTURE, EC),
    "fertilizer": (EC, PH),
    "weather": (TEMPERATURE,),
}

_DEFAULT_ACTIONS = [
    "Check current sensor readings",
    "Review the weather forecast",
    "Ask about a specific crop",
]


class FallbackReply(BaseModel):
    content: str
    metadata: MessageMetadata


class Turn(NamedTuple):
    """Everything a rule may look at for one incoming message."""

    message: str
    text: str
    snapshot: Optional[TelemetrySnapshot]
    history: Sequence[ChatMessage]
    now: datetime


class Composed(NamedTuple):
    body: str
    actions: List[str]
    sensor_ids: List[str]


class Rule(NamedTuple):
    name: str
    confidence: float
    predicate: Callable[[Turn], bool]
    composer: Callable[[Turn], Composed]


# --- Farm context helpers ---


def _reading_line(reading: SensorReading, now: datetime) -> str:
    if not is_number(reading.value):
        return f"{reading.name}: no recent data"
    return (
        f"{reading.name}: {format_value(reading.value)}{reading.unit} "
        f"({time_ago(reading.observed_at, now).lower()})"
    )


def _first_classification(reading: SensorReading) -> Optional[Classification]:
    for category in categories_for(reading.type):
        result = classify(category, reading.value)
        if result is not None:
            return result
    return None


def farm_context(snapshot: Optional[TelemetrySnapshot], now: datetime) -> str:
    """A short paragraph describing the farm, or a note that there is none."""
    if snapshot is None:
        return (
            "📋 I have no farm data yet. Set up your farm profile and install "
            "sensors so I can tailor this advice to your conditions."
        )
    where = f" in {snapshot.location}" if snapshot.location else ""
    lines = [f"📋 **For {snapshot.farm_name}{where}:**"]
    if snapshot.sensors:
        lines.extend(f"- {_reading_line(r, now)}" for r in snapshot.sensors)
    else:
        lines.append("- No sensors installed yet")
    if snapshot.notes:
        lines.append(f'- Your notes: "{snapshot.notes}"')
    return "\n".join(lines)


def _previous_user_message(history: Sequence[ChatMessage]) -> Optional[str]:
    for message in reversed(history):
        if message.role == USER_ROLE:
            return message.content
    return None


def _bullets(items: Sequence[str]) -> str:
    return "\n".join(f"• {item}" for item in items)


class Responder:
    """Composes farm-aware replies without a generative provider.

    Parameters
    ----------
    follow_up_max_chars : int
        Messages shorter than this, sent after an earlier user turn, may borrow
        their missing crop or topic from that turn.
    stale_after : timedelta
        Readings older than this are reported as stale and never quoted as
        the current value.
    """

    def __init__(
        self,
        follow_up_max_chars: int = FOLLOW_UP_MAX_CHARS,
        stale_after: timedelta = STALE_AFTER,
    ):
        self.follow_up_max_chars = follow_up_max_chars
        self.stale_after = stale_after
        self.rules: Tuple[Rule, ...] = (
            Rule("follow_up", 0.85, self._is_follow_up, self._compose_follow_up),
            Rule("farm_status", 0.95, self._is_farm_status, self._compose_farm_status),
            Rule("sensor_value", 0.98, self._names_live_sensor, self._compose_sensor_value),
            Rule("topic", 0.8, self._has_topic, self._compose_topic),
            Rule("universal", 0.5, lambda turn: True, self._compose_universal),
        )

    def respond(
        self,
        message: str,
        snapshot: Optional[TelemetrySnapshot] = None,
        history: Sequence[ChatMessage] = (),
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> FallbackReply:
        """Reply to ``message`` using the first matching rule."""
        now = now or datetime.now(timezone.utc)
        message = (message or "").strip()
        if not message:
            return self._frame(
                reason,
                Composed(
                    "🌱 Ask me anything about your farm: soil, water, pests, "
                    "crops or the weather.",
                    list(_DEFAULT_ACTIONS),
                    [],
                ),
                0.5,
            )

        turn = Turn(message, message.lower(), snapshot, tuple(history), now)
        rule = next(r for r in self.rules if r.predicate(turn))
        logger.debug("Fallback rule %r matched", rule.name)
        return self._frame(reason, rule.composer(turn), rule.confidence)

    def _frame(
        self, reason: Optional[str], composed: Composed, confidence: float
    ) -> FallbackReply:
        header, footer = _FRAMES.get(reason, (None, None))
        parts = [p for p in (header, composed.body, footer) if p]
        return FallbackReply(
            content="\n\n".join(parts),
            metadata=MessageMetadata(
                suggested_actions=composed.actions,
                related_sensor_ids=composed.sensor_ids,
                confidence=confidence,
                offline=True,
            ),
        )

    # --- Follow-up ---

    def _resolve_follow_up(
        self, turn: Turn
    ) -> Optional[Tuple[CropGuide, Optional[Topic]]]:
        if len(turn.message) >= self.follow_up_max_chars:
            return None
        previous = _previous_user_message(turn.history)
        if previous is None:
            return None
        crop, topic = find_crop(turn.text), find_topic(turn.text)
        if crop is not None and topic is None:
            topic = find_topic(previous)
            return (crop, topic) if topic is not None else None
        if topic is not None and crop is None:
            crop = find_crop(previous)
            return (crop, topic) if crop is not None else None
        return None

    def _is_follow_up(self, turn: Turn) -> bool:
        return self._resolve_follow_up(turn) is not None

    def _compose_follow_up(self, turn: Turn) -> Composed:
        crop, topic = self._resolve_follow_up(turn)
        body = "\n\n".join(
            [
                f"🌿 **{crop.name.title()} - {topic.title}**",
                crop_advice(crop, topic.aspect),
                _bullets(topic.guidance[:3]),
                farm_context(turn.snapshot, turn.now),
            ]
        )
        return Composed(body, list(topic.actions[:3]), [])

    # --- Farm status ---

    def _is_farm_status(self, turn: Turn) -> bool:
        return bool(_FARM_STATUS.search(turn.text))

    def _compose_farm_status(self, turn: Turn) -> Composed:
        snapshot = turn.snapshot
        if snapshot is None:
            return Composed(
                "📊 I have no farm data yet, so I can't assess your farm. "
                "Set up your farm profile and install sensors to get a live "
                "health summary.",
                ["Set up your farm profile", "Request a sensor installation"],
                [],
            )
        if not snapshot.sensors:
            return Composed(
                f"📊 {snapshot.farm_name} has no sensors installed yet, so I "
                "can't measure its health. Soil moisture and pH sensors are a "
                "good place to start.",
                ["Request a sensor installation"],
                [],
            )

        readings = []
        counts = {STATUS_GOOD: 0, STATUS_CAUTION: 0, STATUS_CRITICAL: 0}
        remediations: List[Tuple[int, str]] = []
        stale = 0
        for reading in snapshot.sensors:
            if is_stale(reading, turn.now, self.stale_after):
                stale += 1
                readings.append(
                    f"⏳ {reading.name}: stale, last reported "
                    f"{time_ago(reading.observed_at, turn.now).lower()}"
                )
                remediations.append((1, _STALE_ACTION))
                continue
            result = _first_classification(reading)
            if result is None:
                readings.append(f"❔ {_reading_line(reading, turn.now)}")
                continue
            status = result.status
            counts[status] += 1
            readings.append(
                f"{_STATUS_ICONS[status]} {reading.name}: "
                f"{format_value(reading.value)}{reading.unit} ({status})"
            )
            if status != STATUS_GOOD:
                rank = 0 if status == STATUS_CRITICAL else 1
                remediations.append((rank, result.advice.actions[0]))

        total = sum(counts.values())
        if total:
            health = round(
                100 * (counts[STATUS_GOOD] + 0.5 * counts[STATUS_CAUTION]) / total
            )
            summary = f"Overall health: **{health}%**"
        else:
            summary = "None of your sensors have a usable reading right now."
        if stale:
            summary += f" ({stale} stale sensor(s) not counted)"
        lines = [f"📊 **Farm status for {snapshot.farm_name}**", summary, "", *readings]

        remediations.sort(key=lambda item: item[0])
        top = []
        for _, action in remediations:
            if action not in top:
                top.append(action)
        top = top[:3]
        if top:
            lines += ["", "**Top priorities:**", *(f"{i}. {a}" for i, a in enumerate(top, 1))]
        elif total:
            lines += ["", "Everything is within healthy ranges. Keep it up!"]
        if snapshot.notes:
            lines += ["", f'📝 Your notes: "{snapshot.notes}"']
        return Composed(
            "\n".join(lines),
            top or ["Keep monitoring your sensors"],
            [r.id for r in snapshot.sensors],
        )

    # --- Sensor value ---

    def _live_matches(
        self, turn: Turn
    ) -> List[Tuple[SensorReading, Classification]]:
        if turn.snapshot is None:
            return []
        wanted = mentioned_categories(turn.text)
        matches = []
        for reading in turn.snapshot.sensors:
            if is_stale(reading, turn.now, self.stale_after):
                continue
            for category in categories_for(reading.type):
                if category not in wanted:
                    continue
                result = classify(category, reading.value)
                if result is not None:
                    matches.append((reading, result))
                    break
        return matches

    def _names_live_sensor(self, turn: Turn) -> bool:
        return bool(self._live_matches(turn))

    def _compose_sensor_value(self, turn: Turn) -> Composed:
        sections = []
        actions: List[str] = []
        matches = self._live_matches(turn)
        for reading, result in matches:
            band, advice = result.band, result.advice
            sections.append(
                "\n".join(
                    [
                        f"{_STATUS_ICONS[result.status]} **{advice.title}**",
                        f"Your {reading.name} reads {format_value(reading.value)}"
                        f"{reading.unit} ({time_ago(reading.observed_at, turn.now).lower()}).",
                        advice.message.format(
                            name=reading.name, value=format_value(reading.value)
                        ),
                        f"Ideal {band.label.lower()} range: {band.ideal}.",
                        _bullets(advice.actions),
                    ]
                )
            )
            actions.extend(a for a in advice.actions if a not in actions)
        return Composed(
            "\n\n".join(sections),
            actions,
            [reading.id for reading, _ in matches],
        )

    # --- Topic ---

    def _has_topic(self, turn: Turn) -> bool:
        return find_topic(turn.text) is not None or find_crop(turn.text) is not None

    def _compose_topic(self, turn: Turn) -> Composed:
        topic, crop = find_topic(turn.text), find_crop(turn.text)
        if topic is None:
            body = "\n\n".join(
                [
                    f"🌿 **Growing {crop.name}**",
                    _bullets(
                        [
                            crop_advice(crop, aspect)
                            for aspect in ("overview", "planting", "water", "harvest")
                        ]
                    ),
                    farm_context(turn.snapshot, turn.now),
                ]
            )
            return Composed(body, list(_DEFAULT_ACTIONS), [])

        sections = [f"🌱 **{topic.title}**"]
        if crop is not None:
            sections.append(crop_advice(crop, topic.aspect))
        sections += [_bullets(topic.guidance), farm_context(turn.snapshot, turn.now)]
        related = []
        if turn.snapshot is not None:
            categories = set(mentioned_categories(turn.text))
            categories.update(_TOPIC_SENSORS.get(topic.name, ()))
            related = [
                r.id
                for r in turn.snapshot.sensors
                if categories.intersection(categories_for(r.type))
            ]
        return Composed("\n\n".join(sections), list(topic.actions), related)

    # --- Universal ---

    def _compose_universal(self, turn: Turn) -> Composed:
        if _PROBLEM.search(turn.text):
            opener = (
                "🔧 Let's work through this together. Tell me which crop is "
                "affected and what you are seeing (leaf color, wilting, spots "
                "or pests) and I can narrow it down."
            )
        elif _QUESTION.search(turn.text) or turn.text.endswith("?"):
            opener = (
                "🤔 Good question! I don't have a specific answer for that, "
                "but here is what I can help you with."
            )
        else:
            opener = (
                "📚 Happy to share what I know about farming. Here are the "
                "areas I can help you with."
            )
        body = "\n\n".join(
            [
                opener,
                "**I can help with:**\n" + _bullets(_CAPABILITIES),
                farm_context(turn.snapshot, turn.now),
            ]
        )
        return Composed(body, list(_DEFAULT_ACTIONS), [])
