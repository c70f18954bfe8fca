"""Base plugin classes and interfaces.

Defines the plugin contract:
- BasePlugin: Abstract base class all plugins implement
- PluginContext: Context passed to mount, checkpoint and restore hooks
- Keep / Drop / Externalize: The three checkpoint hook results
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from agentmount.plugins.manifest import Manifest, RouteSpec


@dataclass(frozen=True)
class Keep:
    """Store the state slice verbatim in the checkpoint envelope."""


@dataclass(frozen=True)
class Drop:
    """Leave the state slice out of the envelope; restore falls back to defaults."""


@dataclass(frozen=True)
class Externalize:
    """Replace the state slice with a pointer stored at the envelope top level.

    Attributes:
        pointer_key: Top-level envelope key for the pointer
        pointer_value: Whatever on_restore needs to rebuild the slice
    """

    pointer_key: str
    pointer_value: Any

    def __post_init__(self) -> None:
        if not isinstance(self.pointer_key, str) or not self.pointer_key:
            raise ValueError("Externalize pointer_key must be a non-empty string")


CheckpointDecision = Keep | Drop | Externalize


@dataclass
class PluginContext:
    """Context passed to plugin hooks.

    Provides read-only access to the instance's resolved config and the
    agent the hook runs for.
    """

    state_key: str
    config: Mapping[str, Any] = field(default_factory=dict)
    agent_id: str | None = None
    agent_name: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    logger: structlog.BoundLogger | None = None

    def __post_init__(self) -> None:
        """Initialize logger if not provided."""
        if self.logger is None:
            self.logger = structlog.get_logger("plugin").bind(state_key=self.state_key)


class BasePlugin(ABC):
    """Abstract base class for all plugins.

    A plugin object is stateless: it carries the manifest for its type and
    the hook implementations. Per-agent data lives in the agent's state
    slice under the instance's state key.

    Subclasses must implement:
    - manifest: Property returning the plugin's Manifest

    Subclasses may override:
    - mount: Initial state for a new agent (pure)
    - signal_routes: Routes computed from config at mount time
    - on_checkpoint: Keep, drop or externalize the slice
    - on_restore: Rebuild an externalized slice from its pointer
    """

    @property
    @abstractmethod
    def manifest(self) -> Manifest:
        """Return the plugin manifest."""
        pass

    @property
    def name(self) -> str:
        return self.manifest.name

    def mount(self, state: Mapping[str, Any], config: Mapping[str, Any]) -> dict[str, Any] | None:
        """Return extra initial state for the slice, merged over schema defaults.

        Runs once per new agent. Must be pure.

        Args:
            state: Agent state built by the instances mounted before this one
            config: This instance's resolved config

        Returns:
            Mapping merged into the slice, or None for schema defaults only

        Raises:
            Exception: Aborts agent construction
        """
        return {}

    def signal_routes(self, config: Mapping[str, Any]) -> list[RouteSpec | tuple] | None:
        """Return routes computed from config, or None to use the manifest routes.

        A non-empty result makes static expansion yield nothing; the host
        mounts these routes itself.
        """
        return None

    def on_checkpoint(self, state: Any, ctx: PluginContext) -> CheckpointDecision:
        """Decide how the state slice is written to a checkpoint.

        Must be side-effect free. ``state`` is None when the agent has no
        slice under this instance's key.
        """
        return Keep()

    async def on_restore(self, pointer: Any, ctx: PluginContext) -> Any:
        """Rebuild an externalized slice from its pointer.

        The only hook allowed to do I/O. Return None to leave the key unset
        so schema defaults apply; raise to fail the whole restore.
        """
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.manifest.name!r}>"


class StaticPlugin(BasePlugin):
    """Plugin defined by a manifest alone, with every hook left at its default."""

    def __init__(self, manifest: Manifest) -> None:
        self._manifest = manifest

    @property
    def manifest(self) -> Manifest:
        return self._manifest


def has_dynamic_router(plugin: BasePlugin) -> bool:
    """True when the plugin class overrides signal_routes."""
    return type(plugin).signal_routes is not BasePlugin.signal_routes
