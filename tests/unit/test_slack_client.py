"""Unit tests for intentguard/core/slack_client.py using httpx.MockTransport."""

from __future__ import annotations

import httpx
import pytest

from intentguard.core.slack_client import SlackAPIError, SlackClient, SlackClientRegistry


def _client(handler) -> SlackClient:
    return SlackClient(
        "xoxb-test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        base_url="https://slack.test/api",
    )


class TestConversationsInfo:
    @pytest.mark.asyncio
    async def test_returns_channel(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "channel": {"id": "C1", "name": "eng"}})

        channel = await _client(handler).conversations_info("C1")

        assert channel["name"] == "eng"
        assert seen[0].url.path == "/api/conversations.info"
        assert seen[0].url.params["channel"] == "C1"
        assert seen[0].headers["Authorization"] == "Bearer xoxb-test"

    @pytest.mark.asyncio
    async def test_not_ok_raises(self) -> None:
        handler = lambda request: httpx.Response(200, json={"ok": False, "error": "channel_not_found"})  # noqa: E731
        with pytest.raises(SlackAPIError, match="channel_not_found"):
            await _client(handler).conversations_info("C1")

    @pytest.mark.asyncio
    async def test_http_error_carries_status(self) -> None:
        handler = lambda request: httpx.Response(503)  # noqa: E731
        with pytest.raises(SlackAPIError) as exc_info:
            await _client(handler).conversations_info("C1")
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_missing_channel_object_raises(self) -> None:
        handler = lambda request: httpx.Response(200, json={"ok": True})  # noqa: E731
        with pytest.raises(SlackAPIError):
            await _client(handler).conversations_info("C1")


class TestDownload:
    @pytest.mark.asyncio
    async def test_returns_bytes(self) -> None:
        handler = lambda request: httpx.Response(200, content=b"\x89PNG")  # noqa: E731
        assert await _client(handler).download("https://files.slack.test/a.png") == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_network_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(SlackAPIError):
            await _client(handler).download("https://files.slack.test/a.png")

    @pytest.mark.asyncio
    async def test_network_error_message_has_no_url(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError(f"cannot reach {request.url}", request=request)

        with pytest.raises(SlackAPIError) as exc_info:
            await _client(handler).download("https://files.slack.test/a.png?token=x")
        assert "files.slack.test" not in str(exc_info.value)
        assert "ConnectError" in str(exc_info.value)


class TestRegistry:
    def test_unknown_workspace(self) -> None:
        assert SlackClientRegistry().get("T-missing") is None

    def test_token_builds_cached_client(self) -> None:
        registry = SlackClientRegistry()
        registry.register_token("T1", "xoxb-1")
        client = registry.get("T1")
        assert isinstance(client, SlackClient)
        assert registry.get("T1") is client

    def test_invalidate_rebuilds(self) -> None:
        registry = SlackClientRegistry()
        registry.register_token("T1", "xoxb-1")
        first = registry.get("T1")
        registry.invalidate("T1")
        assert registry.get("T1") is not first
