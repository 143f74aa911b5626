"""Application configuration via Pydantic Settings.

All configuration is driven by environment variables.  Nothing is strictly
required: a deployment without ``OPENAI_API_KEY`` still runs, it simply skips
the classification stage for every message.

Usage::

    from intentguard.config import get_settings

    settings = get_settings()
    print(settings.classification_model)

The ``get_settings`` function is cached with ``functools.lru_cache``. To override
settings in tests, construct :class:`Settings` directly and inject it, or set
the relevant environment variables and call ``get_settings.cache_clear()``.
"""
from __future__ import annotations

import functools
import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_HINT_POLICIES = frozenset({"list", "aggregate"})


class Settings(BaseSettings):
    """IntentGuard settings.

    Environment variables are read case-insensitively. A ``.env`` file in the
    working directory is loaded automatically when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Classification service
    openai_api_key: str | None = Field(
        default=None,
        description="API key for the classification service; unset disables the LLM stage",
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible chat completions API",
    )
    classification_model: str = Field(
        default="gpt-4o-mini",
        description="Model name sent with each classification request",
    )
    classification_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Deadline for a single classification request",
    )
    classification_max_retries: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Extra attempts after a transient (429/5xx/network) failure",
    )
    classification_retry_base_delay: float = Field(
        default=1.0,
        ge=0,
        description="Base delay in seconds for exponential back-off between attempts",
    )

    # Messaging platform
    slack_bot_token: str | None = Field(
        default=None,
        description="Bot token for the default workspace",
    )
    slack_api_base_url: str = Field(
        default="https://slack.com/api",
        description="Base URL of the Slack Web API",
    )
    slack_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Deadline for metadata lookups and file downloads",
    )

    # Evidence limits
    extraction_timeout_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Hard wall-clock budget for extracting text from one file",
    )
    max_extracted_chars: int = Field(
        default=3000,
        ge=1,
        description="Extracted text is truncated to this many characters",
    )
    max_file_size_bytes: int = Field(
        default=20 * 1024 * 1024,
        ge=1,
        description="Files larger than this are never downloaded for extraction",
    )
    max_image_size_bytes: int = Field(
        default=20 * 1024 * 1024,
        ge=1,
        description="Images larger than this are analysed from metadata only",
    )
    max_vision_images: int = Field(
        default=5,
        ge=0,
        description="Maximum number of images sent for vision analysis per message",
    )
    extractor_max_workers: int = Field(
        default=4,
        ge=1,
        description="Thread pool size for CPU-bound document extraction",
    )

    # Assessment policy
    strict_audience_blocking: bool = Field(
        default=False,
        description="Treat sensitive content in public channels as a mismatch",
    )
    hint_policy: str = Field(
        default="list",
        description="How pre-scan hints are rendered: 'list' or 'aggregate'",
    )

    # Analytics
    analytics_endpoint: str | None = Field(
        default=None,
        description="Optional HTTP endpoint receiving privacy-safe assessment records",
    )
    analytics_token: str | None = Field(
        default=None,
        description="Bearer token for the analytics endpoint",
    )

    # Environment
    environment: str = Field(
        default="production",
        description="Deployment environment: development, staging, or production",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug logging (never set True in production)",
    )

    @field_validator("openai_base_url", "slack_api_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("base URLs must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("hint_policy")
    @classmethod
    def validate_hint_policy(cls, v: str) -> str:
        v = v.lower()
        if v not in _HINT_POLICIES:
            raise ValueError(f"hint_policy must be one of {sorted(_HINT_POLICIES)}")
        return v

    @property
    def classification_enabled(self) -> bool:
        return bool(self.openai_api_key)


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    The first call reads environment variables (and ``.env``). Subsequent calls
    return the cached instance. Clear the cache with ``get_settings.cache_clear()``
    between tests.
    """
    return Settings()


def configure_logging(debug: bool = False) -> None:
    """Install the basic root log format; DEBUG level when *debug* is set."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
