"""Concrete implementations for LLM providers."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)


class LLM(ABC):
    """Abstract Base Class for all LLM providers."""

    @abstractmethod
    async def generate_response(
        self, messages: List[Dict[str, Any]], model: Optional[str] = None, **kwargs: Any
    ) -> Any:
        """Generates a response from the LLM provider.

        Implementations make exactly one request; retrying is left to the caller.

        Parameters
        ----------
        messages : List[Dict[str, Any]]
            Ordered ``{"role", "content"}`` dictionaries. The first entry is the
            system message.
        model : str, optional
            The specific model to use. Defaults to the provider's default model.
        **kwargs : Any
            Provider-specific parameters (e.g., max_tokens, temperature) to be
            passed directly to the SDK.

        Returns
        -------
        Any
            The provider's native, rich response object.
        """
        pass

    @abstractmethod
    def extract_content(self, response: Any) -> str:
        """Extracts the text content from the provider's native response object."""
        pass

    def is_rate_limit_error(self, error: BaseException) -> bool:
        """Whether ``error`` is the provider's rate-limit / quota signal."""
        return getattr(error, "status_code", None) == 429


class OpenAI(LLM):
    """Chat completions through the OpenAI SDK.

    ``base_url`` points the client at any OpenAI-compatible endpoint.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
    ):
        from openai import AsyncOpenAI

        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        self.model = default_model

    async def generate_response(self, messages, model=None, **kwargs):
        return await self.client.chat.completions.create(
            messages=messages, model=model or self.model, **kwargs
        )

    def extract_content(self, response: Any) -> str:
        return response.choices[0].message.content

    def is_rate_limit_error(self, error: BaseException) -> bool:
        from openai import RateLimitError

        return isinstance(error, RateLimitError) or super().is_rate_limit_error(error)


class OpenRouter(OpenAI):
    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "openai/gpt-4o-mini",
        base_url: Optional[str] = None,
    ):
        super().__init__(
            api_key=api_key,
            default_model=default_model,
            base_url=base_url or "https://openrouter.ai/api/v1",
        )

    async def generate_response(self, messages, model=None, **kwargs):
        return await self.client.chat.completions.create(
            model=model or self.model,
            messages=messages,
            extra_headers={
                "HTTP-Referer": "https://github.com/farmadvisor",
                "X-Title": "farmadvisor",
            },
            **kwargs,
        )


class Anthropic(LLM):
    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "claude-3-5-haiku-latest",
        base_url: Optional[str] = None,
    ):
        from anthropic import AsyncAnthropic

        self.client = AsyncAnthropic(api_key=api_key, base_url=base_url, max_retries=0)
        self.model = default_model

    async def generate_response(self, messages, model=None, **kwargs):
        if "max_tokens" not in kwargs:
            kwargs["max_tokens"] = 1024
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        chat = [m for m in messages if m["role"] != "system"]
        if system:
            kwargs["system"] = system
        return await self.client.messages.create(
            model=model or self.model, messages=chat, **kwargs
        )

    def extract_content(self, response: Any) -> str:
        return response.content[0].text

    def is_rate_limit_error(self, error: BaseException) -> bool:
        from anthropic import RateLimitError

        return isinstance(error, RateLimitError) or super().is_rate_limit_error(error)


class Echo(LLM):
    """Offline provider that repeats the prompt back; useful for demos and tests."""

    def __init__(self, default_model: str = "echo-v1", delay: float = 0.0):
        self.model = default_model
        self.delay = delay

    async def generate_response(self, messages, model=None, **kwargs):
        if self.delay:
            await asyncio.sleep(self.delay)
        user_prompt = messages[-1]["content"] if messages else "No message provided"
        content = f"**Echo LLM - static response for testing**\n\n_Your prompt:_\n\n{user_prompt}"

        return {
            "content": content,
            "raw_response": "Echo LLM - static response for testing",
        }

    def extract_content(self, response: Any) -> str:
        if isinstance(response, dict) and "content" in response:
            return response["content"]
        return str(response)


PROVIDERS = {
    "openai": OpenAI,
    "openrouter": OpenRouter,
    "anthropic": Anthropic,
}


def from_settings(settings: "Settings") -> Optional[LLM]:
    """Builds the configured provider, or returns None when no key is set."""
    if not settings.has_api_key:
        logger.warning("No provider API key configured; advisory chat runs in offline mode")
        return None
    provider_cls = PROVIDERS[settings.provider]
    kwargs: Dict[str, Any] = {"api_key": settings.api_key, "base_url": settings.base_url}
    if settings.model:
        kwargs["default_model"] = settings.model
    return provider_cls(**kwargs)
