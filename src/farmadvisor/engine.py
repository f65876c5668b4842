"""
The engine that runs one conversational turn.

An engine holds a reference to the :class:`~farmadvisor.FarmAdvisor` app and
reaches the other pillars through it (``app.telemetry``, ``app.store``,
``app.gateway``, ``app.responder``, ``app.clock``).
"""

import asyncio
import logging
import weakref
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional, Tuple

from .fallback import REASON_CANCELLED, REASON_ERROR, REASON_TIMEOUT
from .gateway import GatewayError, QuotaExceeded
from .models import (
    ASSISTANT_ROLE,
    QUOTA_EXCEEDED,
    USER_ROLE,
    ChatMessage,
    MessageMetadata,
)
from .prompts import build_farm_context, related_sensor_ids

if TYPE_CHECKING:
    from . import FarmAdvisor

logger = logging.getLogger(__name__)

APOLOGY = (
    "🤖 I apologize, but I encountered an error while processing your request. "
    "Please try again in a moment."
)


class Engine(ABC):
    """Interface for running a conversational turn."""

    def __init__(self, app: Optional["FarmAdvisor"] = None) -> None:
        self.app = app

    @abstractmethod
    async def converse(
        self, user_id: str, farm_id: str, text: str, timeout: Optional[float] = None
    ) -> ChatMessage:
        """Answers ``text`` for the session and returns the assistant message.

        Implementations never raise; failures turn into an assistant message.
        """
        pass


class Orchestrator(Engine):
    """Provider first, deterministic fallback on any failure.

    Turns of the same (user, farm) session are serialized so that a user
    message and its reply are always stored next to each other. A session's
    lock lives only while a turn holds or waits for it.
    """

    def __init__(self, app: Optional["FarmAdvisor"] = None) -> None:
        super().__init__(app)
        self._locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: str, farm_id: str) -> asyncio.Lock:
        return self._locks.setdefault((user_id, farm_id), asyncio.Lock())

    async def converse(
        self, user_id: str, farm_id: str, text: str, timeout: Optional[float] = None
    ) -> ChatMessage:
        try:
            if not (text or "").strip():
                reply = self.app.responder.respond("", now=self.app.clock())
                return ChatMessage(
                    role=ASSISTANT_ROLE, content=reply.content, metadata=reply.metadata
                )
            async with self._lock_for(user_id, farm_id):
                return await self._turn(user_id, farm_id, text.strip(), timeout)
        except Exception:
            logger.exception(
                "Conversation turn failed for user %s on farm %s", user_id, farm_id
            )
            return ChatMessage(
                role=ASSISTANT_ROLE,
                content=APOLOGY,
                metadata=MessageMetadata(offline=True),
            )

    async def _turn(
        self, user_id: str, farm_id: str, text: str, timeout: Optional[float]
    ) -> ChatMessage:
        app = self.app
        now = app.clock()
        snapshot = app.telemetry.snapshot(farm_id)

        history = app.store.window(user_id, farm_id)
        app.store.set_snapshot(user_id, farm_id, snapshot)
        app.store.append(user_id, farm_id, ChatMessage(role=USER_ROLE, content=text))

        reason = None
        status = app.gateway.status
        if status.available:
            try:
                response = await asyncio.wait_for(
                    app.gateway.ask(text, build_farm_context(snapshot, now), history),
                    timeout,
                )
            except QuotaExceeded:
                reason = QUOTA_EXCEEDED
            except GatewayError:
                reason = REASON_ERROR
            except asyncio.TimeoutError:
                logger.warning("Provider call timed out after %ss", timeout)
                reason = REASON_TIMEOUT
            except asyncio.CancelledError:
                # A cancelled turn propagates; only a provider call that
                # cancelled itself is answered offline.
                if asyncio.current_task().cancelling():
                    raise
                logger.warning("Provider call cancelled; answering offline")
                reason = REASON_CANCELLED
            else:
                reply = ChatMessage(
                    role=ASSISTANT_ROLE,
                    content=response.content,
                    metadata=MessageMetadata(
                        suggested_actions=response.suggested_actions,
                        related_sensor_ids=related_sensor_ids(
                            snapshot, text, response.content
                        ),
                        confidence=response.confidence,
                    ),
                )
                app.store.append(user_id, farm_id, reply)
                return reply
        else:
            reason = status.state

        fallback = app.responder.respond(
            text, snapshot=snapshot, history=history, reason=reason, now=now
        )
        reply = ChatMessage(
            role=ASSISTANT_ROLE, content=fallback.content, metadata=fallback.metadata
        )
        app.store.append(user_id, farm_id, reply)
        return reply
