"""Plugin registry - catalog of plugin types by manifest name.

Hosts register plugin objects at program start and look them up by name,
capability or tag when building compositions. The registry only catalogs
plugin types; composing them into an agent is ``compose``'s job.
"""

from __future__ import annotations

import re

import structlog

from agentmount.plugins.base import BasePlugin
from agentmount.plugins.manifest import Manifest

log = structlog.get_logger(__name__)

_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+")
_LABEL_RE = re.compile(r"^[a-z0-9][a-z0-9_.\-]*$")


class PluginRegistry:
    """Registry for plugin discovery by name, capability and tag.

    The module-level instance is returned by get_registry().
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._plugins: dict[str, BasePlugin] = {}

    def register(self, plugin: BasePlugin) -> None:
        """Register a plugin type under its manifest name.

        Args:
            plugin: The plugin to register

        Raises:
            ValueError: If a plugin with this name is already registered, or
                the manifest fails validate_manifest
        """
        manifest = plugin.manifest

        if manifest.name in self._plugins:
            raise ValueError(
                f"Plugin '{manifest.name}' is already registered. "
                "Unregister it first or use a different name."
            )

        errors = self.validate_manifest(manifest)
        if errors:
            raise ValueError(
                f"Plugin '{manifest.name}' has an invalid manifest: " + "; ".join(errors)
            )

        self._plugins[manifest.name] = plugin
        log.info(
            "registry.plugin_registered",
            plugin_name=manifest.name,
            version=manifest.vsn,
            singleton=manifest.singleton,
        )

    def unregister(self, name: str) -> None:
        """Unregister a plugin; unknown names are ignored."""
        if self._plugins.pop(name, None) is not None:
            log.info("registry.plugin_unregistered", plugin_name=name)

    def get(self, name: str) -> BasePlugin | None:
        """Get a plugin by manifest name."""
        return self._plugins.get(name)

    def require(self, name: str) -> BasePlugin:
        """Get a plugin by manifest name.

        Raises:
            KeyError: If no plugin is registered under name
        """
        try:
            return self._plugins[name]
        except KeyError:
            raise KeyError(f"Plugin '{name}' is not registered") from None

    def list_manifests(self) -> list[Manifest]:
        """List manifests of all registered plugins, in registration order."""
        return [plugin.manifest for plugin in self._plugins.values()]

    def find_by_capability(self, capability: str) -> list[BasePlugin]:
        """Return plugins whose manifest declares the capability."""
        return [p for p in self._plugins.values() if capability in p.manifest.capabilities]

    def find_by_tag(self, tag: str) -> list[BasePlugin]:
        """Return plugins whose manifest carries the tag."""
        return [p for p in self._plugins.values() if tag in p.manifest.tags]

    def validate_manifest(self, manifest: Manifest) -> list[str]:
        """Validate catalog-level manifest rules.

        Checks (on top of what Manifest itself enforces):
        - Version format (semver)
        - Tag and capability format (lowercase labels)

        Args:
            manifest: Manifest to validate

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if manifest.vsn is not None and not _SEMVER_RE.match(manifest.vsn):
            errors.append(f"Plugin version '{manifest.vsn}' is not valid semver format (X.Y.Z)")

        for tag in manifest.tags:
            if not _LABEL_RE.match(tag):
                errors.append(f"Invalid tag: {tag!r}")

        for capability in manifest.capabilities:
            if not _LABEL_RE.match(capability):
                errors.append(f"Invalid capability: {capability!r}")

        return errors

    def __contains__(self, name: str) -> bool:
        return name in self._plugins

    def __len__(self) -> int:
        return len(self._plugins)

    def clear(self) -> None:
        """Clear all plugins. Used for testing."""
        self._plugins.clear()
        log.debug("registry.cleared")


# Module-level singleton instance
_registry = PluginRegistry()


def get_registry() -> PluginRegistry:
    """Get the global plugin registry instance."""
    return _registry
