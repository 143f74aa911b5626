"""Unit tests for intentguard/config.py."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from intentguard.config import Settings, get_settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.classification_model == "gpt-4o-mini"
    assert settings.classification_max_retries == 1
    assert settings.max_extracted_chars == 3000
    assert settings.max_vision_images == 5
    assert settings.extraction_timeout_seconds == 3.0
    assert settings.hint_policy == "list"
    assert settings.strict_audience_blocking is False
    assert settings.classification_enabled is False


def test_api_key_enables_classification() -> None:
    assert Settings(_env_file=None, openai_api_key="sk-x").classification_enabled is True


def test_base_url_trailing_slash_stripped() -> None:
    assert Settings(_env_file=None, openai_base_url="https://llm.local/v1/").openai_base_url == "https://llm.local/v1"


def test_base_url_scheme_required() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, slack_api_base_url="slack.com/api")


def test_hint_policy_validated() -> None:
    assert Settings(_env_file=None, hint_policy="AGGREGATE").hint_policy == "aggregate"
    with pytest.raises(ValidationError):
        Settings(_env_file=None, hint_policy="weighted")


def test_environment_variables_read(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STRICT_AUDIENCE_BLOCKING", "true")
    monkeypatch.setenv("MAX_VISION_IMAGES", "2")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.strict_audience_blocking is True
        assert settings.max_vision_images == 2
        assert get_settings() is settings
    finally:
        get_settings.cache_clear()
