"""
Provider gateway: one guarded attempt at a generative-language completion.

The gateway owns the :class:`~farmadvisor.models.ProviderStatus` state machine::

    unconfigured                      (no provider; never calls out)
    available --rate limit--> quota_exceeded --cool-down elapsed--> available

Status values are frozen and replaced wholesale, so concurrent callers only
ever observe a complete state.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel, Field

from .llm import LLM
from .models import ASSISTANT_ROLE, SYSTEM_ROLE, USER_ROLE, ChatMessage, ProviderStatus
from .prompts import SYSTEM_PROMPT, extract_suggestions

logger = logging.getLogger(__name__)

QUOTA_COOLDOWN = timedelta(minutes=5)
PROVIDER_CONFIDENCE = 0.9


class GatewayError(Exception):
    """Base class for gateway failures."""


class ProviderUnavailable(GatewayError):
    """The gateway short-circuited without contacting the provider."""


class QuotaExceeded(ProviderUnavailable):
    """The provider signalled rate limiting; calls are paused until ``reset_at``."""

    def __init__(self, reset_at: Optional[datetime]):
        self.reset_at = reset_at
        super().__init__(f"Provider quota exceeded; retry after {reset_at}")


class ProviderFailure(GatewayError):
    """A transient provider error (network, malformed or empty response)."""


class GatewayResponse(BaseModel):
    content: str
    suggested_actions: List[str] = Field(default_factory=list)
    confidence: float = PROVIDER_CONFIDENCE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Gateway:
    """Asks the configured provider for a reply and tracks its availability."""

    def __init__(
        self,
        llm: Optional[LLM],
        cooldown: timedelta = QUOTA_COOLDOWN,
        prompt_history: int = 10,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.llm = llm
        self.cooldown = cooldown
        self.prompt_history = prompt_history
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._clock = clock or _utcnow
        self._status = ProviderStatus(configured=llm is not None)

    @property
    def status(self) -> ProviderStatus:
        """The current status, lifting an expired quota cool-down first."""
        status = self._status
        if (
            status.quota_exceeded
            and status.quota_reset_at is not None
            and self._clock() >= status.quota_reset_at
        ):
            status = ProviderStatus(configured=status.configured)
            self._status = status
            logger.info("Provider quota cool-down elapsed; provider available again")
        return status

    def build_messages(
        self, message: str, context: str, history: Sequence[ChatMessage]
    ) -> List[dict]:
        """Assemble the provider request.

        The pinned system message from ``history`` (or the default persona) is
        merged with the farm context; the most recent user/assistant turns
        follow, then the new message.
        """
        system = next(
            (m.content for m in history if m.role == SYSTEM_ROLE), SYSTEM_PROMPT
        )
        if context:
            system = f"{system}\n\n{context}"
        turns = [m for m in history if m.role in (USER_ROLE, ASSISTANT_ROLE)]
        if self.prompt_history:
            turns = turns[-self.prompt_history :]
        else:
            turns = []
        return (
            [{"role": SYSTEM_ROLE, "content": system}]
            + [{"role": m.role, "content": m.content} for m in turns]
            + [{"role": USER_ROLE, "content": message}]
        )

    async def ask(
        self, message: str, context: str, history: Sequence[ChatMessage] = ()
    ) -> GatewayResponse:
        """Makes a single provider attempt.

        Raises
        ------
        ProviderUnavailable
            No provider is configured.
        QuotaExceeded
            The provider is cooling down, or has just reported rate limiting.
        ProviderFailure
            Any other provider error. Status is left unchanged.
        """
        status = self.status
        if not status.configured:
            raise ProviderUnavailable("No generative-language provider configured")
        if status.quota_exceeded:
            raise QuotaExceeded(status.quota_reset_at)

        kwargs = {}
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature

        messages = self.build_messages(message, context, history)
        try:
            raw = await self.llm.generate_response(messages, **kwargs)
        except Exception as e:
            if self.llm.is_rate_limit_error(e):
                reset_at = self._clock() + self.cooldown
                self._status = ProviderStatus(
                    configured=True, quota_exceeded=True, quota_reset_at=reset_at
                )
                logger.warning("Provider rate limit hit; pausing calls until %s", reset_at)
                raise QuotaExceeded(reset_at) from e
            logger.warning("Provider call failed: %s", e)
            raise ProviderFailure(str(e)) from e

        try:
            content = self.llm.extract_content(raw)
        except (AttributeError, IndexError, KeyError, TypeError) as e:
            logger.warning("Malformed provider response: %r", raw)
            raise ProviderFailure("Malformed provider response") from e
        if not isinstance(content, str) or not content.strip():
            raise ProviderFailure("Provider returned an empty completion")

        content = content.strip()
        return GatewayResponse(
            content=content, suggested_actions=extract_suggestions(content)
        )
