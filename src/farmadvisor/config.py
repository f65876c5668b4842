"""Settings for the advisory engine, loaded from the environment or a .env file."""

from datetime import timedelta
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide configuration.

    Create one instance at startup and pass it to :class:`farmadvisor.FarmAdvisor`.
    Instances are frozen; build a new one (``settings.model_copy(update=...)``)
    instead of mutating.
    """

    model_config = SettingsConfigDict(
        env_prefix="FARMADVISOR_",
        env_file=".env",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    provider: Literal["openai", "openrouter", "anthropic"] = "openai"
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("farmadvisor_api_key", "openai_api_key"),
    )
    model: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: int = 800
    temperature: float = 0.7

    # Non-system messages kept per session, and how many of those are
    # forwarded to the provider on each call.
    history_window: int = Field(default=20, ge=1)
    prompt_history: int = Field(default=10, ge=0)

    quota_cooldown_seconds: float = Field(default=300.0, gt=0)
    stale_after_hours: float = Field(default=48.0, gt=0)
    follow_up_max_chars: int = Field(default=40, ge=0)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @property
    def quota_cooldown(self) -> timedelta:
        return timedelta(seconds=self.quota_cooldown_seconds)

    @property
    def stale_after(self) -> timedelta:
        return timedelta(hours=self.stale_after_hours)
