"""Example Slack messaging plugin.

Demonstrates a plugin that is meant to be mounted more than once, one mount
per workspace, each under its own alias:

    compose("support_agent", [
        (SlackPlugin(), "support", {"channel": "#support"}),
        (SlackPlugin(), "sales", {"channel": "#sales"}),
    ])

It declares:
- A config schema with a required ``token``, read from host resource
  config under ``slack`` and overridable per mount
- Routes for posting and listing messages
- A cron job that refreshes the bot token every five minutes
- A state schema whose defaults seed every new agent
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel, Field

from agentmount.plugins.base import BasePlugin, Drop, Keep, PluginContext
from agentmount.plugins.manifest import Manifest, Requirement, RouteSpec, ScheduleSpec

log = structlog.get_logger(__name__)


class SlackConfig(BaseModel):
    """Per-mount Slack configuration."""

    token: str
    channel: str | None = None
    timeout: int = Field(default=5000, gt=0, description="API timeout in milliseconds")
    ephemeral: bool = Field(default=False, description="Leave the state slice out of checkpoints")


class SlackState(BaseModel):
    """Per-agent Slack state slice."""

    last_message_ts: str | None = None
    sent_count: int = 0
    cursors: dict[str, str] = Field(default_factory=dict)


# ------------------------------------------------------------------ #
# Actions
# ------------------------------------------------------------------ #


@dataclass
class PostMessage:
    """Post ``text`` to a channel (the mount's default channel when omitted)."""

    text: str
    channel: str | None = None


@dataclass
class ListMessages:
    """List recent messages of a channel."""

    channel: str | None = None
    limit: int = 20


@dataclass
class RefreshToken:
    """Rotate the bot token before it expires."""

    params: dict[str, Any] = field(default_factory=dict)


class SlackPlugin(BasePlugin):
    """Slack messaging for agents, aliasable per workspace.

    The state slice is checkpointed as-is unless ``ephemeral`` is set in the
    mount config, in which case it is dropped and a restored agent starts
    from the schema defaults.
    """

    def __init__(self) -> None:
        """Initialize Slack plugin."""
        self._manifest = Manifest(
            name="slack",
            base_state_key="slack",
            actions=(PostMessage, ListMessages, RefreshToken),
            description="Send and read Slack messages",
            category="messaging",
            tags=("slack", "messaging", "chat"),
            vsn="1.2.0",
            capabilities=("messaging",),
            routes=(
                RouteSpec("post", PostMessage),
                RouteSpec("list", ListMessages),
            ),
            schedules=(ScheduleSpec("*/5 * * * *", RefreshToken),),
            requirements=(Requirement.config("token"),),
            state_schema=SlackState,
            config_schema=SlackConfig,
            config_key="slack",
        )

    @property
    def manifest(self) -> Manifest:
        """Return plugin manifest."""
        return self._manifest

    def mount(self, state: Mapping[str, Any], config: Mapping[str, Any]) -> dict[str, Any]:
        if config.get("channel"):
            return {"cursors": {config["channel"]: ""}}
        return {}

    def on_checkpoint(self, state: Any, ctx: PluginContext) -> Keep | Drop:
        if ctx.config.get("ephemeral"):
            log.debug("slack.checkpoint_dropped", state_key=ctx.state_key)
            return Drop()
        return Keep()
