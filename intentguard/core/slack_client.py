"""Narrow Slack Web API client and per-workspace client registry.

Only the two calls the risk engine needs are implemented:

* :meth:`SlackClient.conversations_info` — channel metadata for the audience
  check.
* :meth:`SlackClient.download` — authenticated download of an attachment.

:class:`SlackClientRegistry` replaces module-level client singletons: it maps
a workspace id to a bot token and lazily builds one :class:`SlackClient` per
workspace.  The registry is injected into the components that need it, so
tests can register fakes without patching globals.

Usage::

    registry = SlackClientRegistry(http_client=httpx.AsyncClient())
    registry.register_token("T012345", "xoxb-...")
    client = registry.get("T012345")
    info = await client.conversations_info("C123")
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE = "default"

#: Seconds to wait for a single Slack API call or file download.
_HTTP_TIMEOUT = 10.0


class SlackAPIError(Exception):
    """Raised when a Slack call fails or returns ``ok: false``.

    Attributes:
        method: API method or ``"download"``.
        status_code: HTTP status, when the failure was an HTTP error.
    """

    def __init__(
        self,
        message: str,
        *,
        method: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.status_code = status_code


class SlackClient:
    """Minimal async Slack Web API client bound to one bot token.

    Args:
        token: Bot token used as the bearer credential.
        http_client: Shared :class:`httpx.AsyncClient`.  When ``None`` a new
            client is created per call.
        base_url: Slack Web API base URL.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        token: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = "https://slack.com/api",
        timeout: float = _HTTP_TIMEOUT,
    ) -> None:
        self._token = token
        self._http_client = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    async def _get(self, url: str, params: dict[str, str] | None = None) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.get(
                url, params=params, headers=self._headers, timeout=self._timeout
            )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.get(url, params=params, headers=self._headers)

    async def conversations_info(self, channel: str) -> dict[str, Any]:
        """Return the ``channel`` object from ``conversations.info``.

        Raises:
            SlackAPIError: On HTTP errors or an ``ok: false`` payload.
        """
        method = "conversations.info"
        try:
            response = await self._get(f"{self._base_url}/{method}", {"channel": channel})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise SlackAPIError(
                f"{method} failed with HTTP {exc.response.status_code}",
                method=method,
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.RequestError, ValueError) as exc:
            raise SlackAPIError(f"{method} failed: {type(exc).__name__}", method=method) from exc

        if not isinstance(payload, dict) or not payload.get("ok"):
            error = payload.get("error", "unknown_error") if isinstance(payload, dict) else "bad_payload"
            raise SlackAPIError(f"{method} returned error: {error}", method=method)

        channel_obj = payload.get("channel")
        if not isinstance(channel_obj, dict):
            raise SlackAPIError(f"{method} returned no channel object", method=method)
        return channel_obj

    async def download(self, url: str) -> bytes:
        """Download an attachment with the bot token as bearer credential.

        Raises:
            SlackAPIError: On HTTP or network errors.
        """
        try:
            response = await self._get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SlackAPIError(
                f"Download failed: HTTP {exc.response.status_code}",
                method="download",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise SlackAPIError(f"Download failed: {type(exc).__name__}", method="download") from exc
        return response.content


class SlackClientRegistry:
    """Per-workspace :class:`SlackClient` cache.

    Clients are built on first use from registered tokens and reused
    afterwards.  :meth:`invalidate` drops a cached client, e.g. after a token
    rotation.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = "https://slack.com/api",
        timeout: float = _HTTP_TIMEOUT,
    ) -> None:
        self._http_client = http_client
        self._base_url = base_url
        self._timeout = timeout
        self._tokens: dict[str, str] = {}
        self._clients: dict[str, SlackClient] = {}

    def register_token(self, workspace_id: str, token: str) -> None:
        self._tokens[workspace_id] = token
        self._clients.pop(workspace_id, None)

    def register_client(self, workspace_id: str, client: SlackClient) -> None:
        """Register a pre-built client (used by tests and custom transports)."""
        self._clients[workspace_id] = client

    def invalidate(self, workspace_id: str) -> None:
        self._clients.pop(workspace_id, None)

    def get(self, workspace_id: str = DEFAULT_WORKSPACE) -> SlackClient | None:
        """Return the client for *workspace_id*, or ``None`` when no token is known."""
        client = self._clients.get(workspace_id)
        if client is not None:
            return client
        token = self._tokens.get(workspace_id)
        if not token:
            logger.debug("No Slack token registered for workspace=%s", workspace_id)
            return None
        client = SlackClient(
            token,
            http_client=self._http_client,
            base_url=self._base_url,
            timeout=self._timeout,
        )
        self._clients[workspace_id] = client
        return client
