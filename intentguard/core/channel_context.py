"""Channel context resolution and audience risk scoring.

:class:`ChannelContextResolver` looks up audience metadata for the channel a
message was posted to.  It is a fail-soft boundary: any platform error is
logged at WARNING and replaced by :meth:`ChannelContext.minimal`, so a failed
lookup never aborts an assessment.

Context is fetched fresh for every assessment.  Membership and sharing
status change over time and a stale cache would under-report exposure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from intentguard.core.slack_client import DEFAULT_WORKSPACE, SlackClientRegistry

logger = logging.getLogger(__name__)

#: Channels with at least this many members count as a large audience.
LARGE_AUDIENCE_MEMBERS = 50


@dataclass(frozen=True)
class ChannelContext:
    """Audience metadata for one channel."""

    name: str
    is_private: bool = False
    is_shared: bool = False
    is_im: bool = False
    is_mpim: bool = False
    purpose: str = ""
    topic: str = ""
    num_members: int = 0
    has_external_members: bool = False

    @classmethod
    def minimal(cls, channel_id: str) -> "ChannelContext":
        """Degraded context used when the platform lookup fails."""
        return cls(name=channel_id or "unknown")

    @classmethod
    def from_api(cls, channel: dict[str, Any]) -> "ChannelContext":
        """Build a context from a ``conversations.info`` channel object."""
        is_shared = bool(
            channel.get("is_shared")
            or channel.get("is_ext_shared")
            or channel.get("is_org_shared")
        )
        purpose = channel.get("purpose") or {}
        topic = channel.get("topic") or {}
        num_members = channel.get("num_members") or 0
        return cls(
            name=channel.get("name") or channel.get("id") or "unknown",
            is_private=bool(channel.get("is_private")),
            is_shared=is_shared,
            is_im=bool(channel.get("is_im")),
            is_mpim=bool(channel.get("is_mpim")),
            purpose=purpose.get("value", "") if isinstance(purpose, dict) else "",
            topic=topic.get("value", "") if isinstance(topic, dict) else "",
            num_members=num_members if isinstance(num_members, int) else 0,
            has_external_members=is_shared,
        )

    @property
    def is_public(self) -> bool:
        return not (self.is_private or self.is_im or self.is_mpim)

    @property
    def channel_type(self) -> str:
        if self.is_im:
            return "dm"
        if self.is_mpim:
            return "group_dm"
        if self.is_private:
            return "private"
        if self.is_shared:
            return "shared"
        return "public"


def compute_context_risk(ctx: ChannelContext) -> str:
    """Audience exposure score, independent of content findings.

    ``high`` for shared/external channels and large public channels,
    ``medium`` for smaller public channels, ``low`` for private channels and
    direct messages.
    """
    if ctx.is_shared or ctx.has_external_members:
        return "high"
    if ctx.is_public:
        return "high" if ctx.num_members >= LARGE_AUDIENCE_MEMBERS else "medium"
    return "low"


def render_context_section(ctx: ChannelContext) -> str:
    """Render the channel context block of the classification prompt."""
    lines = [f"Channel: #{ctx.name}"]

    if ctx.is_im:
        lines.append("Type: DM")
    elif ctx.is_mpim:
        lines.append("Type: group DM")
    elif ctx.is_private:
        lines.append("Type: private")
    else:
        lines.append("Type: public")

    if ctx.is_shared or ctx.has_external_members:
        lines.append("WARNING: SHARED/EXTERNAL channel (members outside the organisation)")

    if ctx.num_members > 0:
        lines.append(f"Members: {ctx.num_members}")
        if ctx.num_members >= LARGE_AUDIENCE_MEMBERS:
            lines.append(f"WARNING: LARGE AUDIENCE ({LARGE_AUDIENCE_MEMBERS}+ members)")

    if ctx.purpose:
        lines.append(f"Purpose: {ctx.purpose}")
    if ctx.topic:
        lines.append(f"Topic: {ctx.topic}")

    return "\n".join(lines)


class ChannelContextResolver:
    """Resolve :class:`ChannelContext` through the injected client registry."""

    def __init__(self, registry: SlackClientRegistry) -> None:
        self._registry = registry

    async def resolve(
        self,
        channel_id: str,
        workspace_id: str = DEFAULT_WORKSPACE,
    ) -> ChannelContext:
        """Return the channel's context; never raises."""
        try:
            client = self._registry.get(workspace_id)
            if client is None:
                raise LookupError(f"No Slack client available for workspace {workspace_id}")
            channel = await client.conversations_info(channel_id)
            return ChannelContext.from_api(channel)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Failed to fetch channel context, using channel id only: "
                "channel=%s error_type=%s status=%s",
                channel_id,
                type(exc).__name__,
                getattr(exc, "status_code", None),
            )
            return ChannelContext.minimal(channel_id)
