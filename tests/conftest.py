"""Shared pytest configuration and fixtures for IntentGuard tests.

Clears environment variables that would leak a developer's real credentials
into :class:`~intentguard.config.Settings` before any intentguard module
reads them.
"""
from __future__ import annotations

import os

import pytest

for _var in ("OPENAI_API_KEY", "SLACK_BOT_TOKEN", "ANALYTICS_ENDPOINT", "ANALYTICS_TOKEN"):
    os.environ.pop(_var, None)

from intentguard.config import Settings  # noqa: E402
from intentguard.core.document_extractor import DocumentExtractor  # noqa: E402
from intentguard.core.slack_client import DEFAULT_WORKSPACE, SlackClientRegistry  # noqa: E402
from tests.factories import make_fake_slack_client  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        classification_retry_base_delay=0.0,
    )


@pytest.fixture
def extractor():
    with DocumentExtractor(max_workers=2) as ext:
        yield ext


@pytest.fixture
def registry() -> SlackClientRegistry:
    reg = SlackClientRegistry()
    reg.register_client(DEFAULT_WORKSPACE, make_fake_slack_client())
    return reg
