"""Plugin instances - one namespaced attachment of a plugin to a composition.

The same plugin can be mounted several times in one agent by giving each
mount an alias. The alias namespaces both the state key and the route
prefix so the mounts never collide:

    slack, no alias       -> state_key "slack",         route_prefix "slack"
    slack, alias support  -> state_key "slack_support", route_prefix "support.slack"
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

import structlog

from agentmount.plugins.base import BasePlugin
from agentmount.plugins.errors import ManifestError, SingletonError
from agentmount.plugins.manifest import Manifest

log = structlog.get_logger(__name__)

_ALIAS_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


def derive_state_key(base_state_key: str, alias: str | None) -> str:
    """Return the state key for a mount: ``base`` or ``base_alias``."""
    if alias is None:
        return base_state_key
    return f"{base_state_key}_{alias}"


def derive_route_prefix(name: str, alias: str | None) -> str:
    """Return the route prefix for a mount: ``name`` or ``alias.name``."""
    if alias is None:
        return name
    return f"{alias}.{name}"


@dataclass(frozen=True)
class MountSpec:
    """One entry of a composition: which plugin, under which alias, with what overrides."""

    plugin: BasePlugin
    alias: str | None = None
    config: Mapping[str, Any] = field(default_factory=dict)


PluginEntry = Union[
    BasePlugin,
    MountSpec,
    tuple[BasePlugin, Mapping[str, Any]],
    tuple[BasePlugin, str | None, Mapping[str, Any]],
]


@dataclass(frozen=True)
class Instance:
    """A concrete, namespaced attachment of a plugin.

    Built once per composition and shared read-only by every agent of the
    composed class. ``config`` holds the overrides given at mount time until
    composition replaces it with the resolved config.
    """

    plugin: BasePlugin
    alias: str | None
    config: Mapping[str, Any]
    state_key: str
    route_prefix: str

    @property
    def manifest(self) -> Manifest:
        return self.plugin.manifest

    @property
    def name(self) -> str:
        return self.plugin.manifest.name

    @classmethod
    def new(
        cls,
        plugin: BasePlugin,
        alias: str | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> Instance:
        """Create an instance, deriving its state key and route prefix.

        Raises:
            SingletonError: If a singleton plugin is given an alias
            ManifestError: If the alias is not a valid identifier
        """
        if not isinstance(plugin, BasePlugin):
            raise TypeError(f"Expected a BasePlugin, got {plugin!r}")

        manifest = plugin.manifest

        if alias is not None:
            if manifest.singleton:
                log.warning("instance.singleton_aliased", plugin_name=manifest.name, alias=alias)
                raise SingletonError(
                    f"Cannot alias singleton plugin '{manifest.name}' (alias {alias!r})"
                )
            if not isinstance(alias, str) or not _ALIAS_RE.match(alias):
                raise ManifestError(
                    f"Invalid alias {alias!r} for plugin '{manifest.name}': must start with "
                    "a letter and contain only letters, numbers and underscores"
                )

        return cls(
            plugin=plugin,
            alias=alias,
            config=MappingProxyType(dict(config or {})),
            state_key=derive_state_key(manifest.base_state_key, alias),
            route_prefix=derive_route_prefix(manifest.name, alias),
        )

    @classmethod
    def from_entry(cls, entry: PluginEntry) -> Instance:
        """Create an instance from any accepted composition entry form."""
        if isinstance(entry, BasePlugin):
            return cls.new(entry)
        if isinstance(entry, MountSpec):
            return cls.new(entry.plugin, entry.alias, entry.config)
        if isinstance(entry, tuple) and len(entry) == 2 and isinstance(entry[1], Mapping):
            return cls.new(entry[0], None, entry[1])
        if isinstance(entry, tuple) and len(entry) == 2:
            return cls.new(entry[0], entry[1])
        if isinstance(entry, tuple) and len(entry) == 3:
            return cls.new(*entry)
        raise TypeError(f"Invalid plugin entry: {entry!r}")

    def with_config(self, config: Mapping[str, Any]) -> Instance:
        """Return a copy carrying the resolved config."""
        return Instance(
            plugin=self.plugin,
            alias=self.alias,
            config=MappingProxyType(dict(config)),
            state_key=self.state_key,
            route_prefix=self.route_prefix,
        )


def check_singletons(instances: list[Instance]) -> list[str]:
    """Return one error per singleton manifest mounted more than once."""
    counts: dict[str, int] = {}
    for instance in instances:
        if instance.manifest.singleton:
            counts[instance.name] = counts.get(instance.name, 0) + 1
    return [
        f"Duplicate singleton plugin '{name}' mounted {count} times"
        for name, count in counts.items()
        if count > 1
    ]
