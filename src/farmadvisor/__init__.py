"""
The main entrypoint for the farmadvisor package.

This module contains the :class:`FarmAdvisor` façade, which wires the
extensible pillars together: a telemetry source, an LLM provider behind the
provider gateway, a conversation store, the offline fallback responder and
the engine that runs each conversational turn.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from . import engine, fallback, gateway, llm, store, suggestions, telemetry
from .config import Settings
from .models import ChatMessage, ProviderStatus, Suggestion, TelemetrySnapshot

__all__ = ["FarmAdvisor", "Settings"]

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FarmAdvisor:
    """
    Farm advisory engine: sensor-driven suggestions and an advisory chat.

    The constructor uses concrete default implementations, so
    ``FarmAdvisor(telemetry=...)`` is enough to get started, while every
    pillar can be swapped for a custom implementation.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        telemetry: Optional["telemetry.TelemetrySource"] = None,
        llm: Optional["llm.LLM"] = None,
        store: Optional["store.Store"] = None,
        responder: Optional["fallback.Responder"] = None,
        engine: Optional["engine.Engine"] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the advisor with configurable pillars.

        Parameters
        ----------
        settings : Settings, optional
            Process configuration. Defaults to ``Settings()``, which reads
            ``FARMADVISOR_*`` environment variables and ``.env``.
        telemetry : telemetry.TelemetrySource, optional
            Supplies farm snapshots. Defaults to an empty ``telemetry.InMemory()``.
        llm : llm.LLM, optional
            Generative provider. Defaults to the provider named in ``settings``
            when an API key is configured; without one the advisor runs in
            offline mode and every reply comes from the fallback responder.
        store : store.Store, optional
            Conversation store. Defaults to ``store.InMemory()`` bounded by
            ``settings.history_window``.
        responder : fallback.Responder, optional
            Offline responder. Defaults to ``fallback.Responder()``.
        engine : engine.Engine, optional
            Turn runner. Defaults to ``engine.Orchestrator()``.
        clock : callable, optional
            Returns the current aware ``datetime``; injectable for tests.

        Examples
        --------
        >>> advisor = FarmAdvisor(telemetry=telemetry.InMemory({"f1": {"name": "North"}}))
        >>> advisor.get_provider_status().label
        'No API Key - Offline Mode'
        """
        self.settings = settings if settings is not None else Settings()
        self.clock = clock or _utcnow

        llm_module = globals()["llm"]
        store_module = globals()["store"]
        telemetry_module = globals()["telemetry"]
        fallback_module = globals()["fallback"]
        engine_module = globals()["engine"]

        if llm is None:
            try:
                llm = llm_module.from_settings(self.settings)
            except ImportError:
                import warnings

                warnings.warn(
                    f"farmadvisor is running in offline mode because the SDK for "
                    f"'{self.settings.provider}' is not installed. Install it with: "
                    f'pip install "farmadvisor[{self.settings.provider}]"',
                    UserWarning,
                )
                llm = None
        self.llm = llm

        self.telemetry = (
            telemetry if telemetry is not None else telemetry_module.InMemory()
        )
        self.store = (
            store
            if store is not None
            else store_module.InMemory(max_messages=self.settings.history_window)
        )
        self.responder = (
            responder
            if responder is not None
            else fallback_module.Responder(
                follow_up_max_chars=self.settings.follow_up_max_chars,
                stale_after=self.settings.stale_after,
            )
        )
        self.gateway = gateway.Gateway(
            self.llm,
            cooldown=self.settings.quota_cooldown,
            prompt_history=self.settings.prompt_history,
            max_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
            clock=self.clock,
        )

        self.engine = engine if engine is not None else engine_module.Orchestrator()
        self.engine.app = self
        logger.info("FarmAdvisor ready (%s)", self.gateway.status.label)

    def evaluate_suggestions(
        self, snapshot: Any, include_all: bool = True
    ) -> List[Suggestion]:
        """Suggestions for ``snapshot`` in display priority order.

        With ``include_all=False`` only critical and warning items are returned.
        """
        found = suggestions.evaluate(
            snapshot, now=self.clock(), stale_after=self.settings.stale_after
        )
        return suggestions.visible(found, include_all=include_all)

    async def converse(
        self, user_id: str, farm_id: str, text: str, timeout: Optional[float] = None
    ) -> ChatMessage:
        """Answer ``text`` in the (user, farm) session. Never raises."""
        return await self.engine.converse(user_id, farm_id, text, timeout=timeout)

    def get_provider_status(self) -> ProviderStatus:
        return self.gateway.status

    def history(self, user_id: str, farm_id: str) -> List[ChatMessage]:
        """The session's user and assistant messages, oldest first."""
        return list(self.store.load_session(user_id, farm_id).messages)

    def clear_history(self, user_id: str, farm_id: str) -> None:
        self.store.clear(user_id, farm_id)

    def _snapshot_or_none(self, farm_id: Optional[str]) -> Optional[TelemetrySnapshot]:
        if farm_id is None:
            return None
        try:
            return self.telemetry.snapshot(farm_id)
        except telemetry.FarmNotFound:
            logger.info("No telemetry for farm %s", farm_id)
            return None

    def quick_tips(self, farm_id: Optional[str] = None) -> List[str]:
        return suggestions.quick_tips(self._snapshot_or_none(farm_id))

    def suggested_questions(self, farm_id: Optional[str] = None) -> List[str]:
        return suggestions.suggested_questions(self._snapshot_or_none(farm_id))
