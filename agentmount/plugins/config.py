"""Plugin configuration resolution.

Resolved config for one mount is built in three layers:

1. an empty base,
2. host resource configuration for the manifest's ``config_key`` (empty
   when the manifest declares none or the host has nothing for it),
3. the overrides given at mount time.

Layers are combined with ``deep_merge``. Its policy is narrow and easy to
get wrong, so it is spelled out here: nested mappings merge key by key,
recursively; everything else (lists, tuples, scalars, None) is replaced
wholesale by the later value. Lists are never concatenated.

When the manifest declares a ``config_schema`` the merged map is validated
and coerced by that pydantic model. Validation failures surface pydantic's
field-level errors unchanged; nothing is dropped or defaulted silently.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from agentmount.config import Settings, get_settings
from agentmount.plugins.errors import ConfigValidationError
from agentmount.plugins.manifest import Manifest

log = structlog.get_logger(__name__)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``.

    Nested mappings merge recursively; any other value in ``override``
    replaces the one in ``base``. Neither argument is modified.
    """
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_resource_config(settings: Settings | None = None) -> dict[str, dict[str, Any]]:
    """Return host resource configuration keyed by config_key.

    Values from ``plugin_config_file`` are overlaid by ``plugin_config``
    from the environment.
    """
    settings = settings or get_settings()
    resources: dict[str, Any] = {}

    if settings.plugin_config_file is not None:
        resources = _read_config_file(settings.plugin_config_file)

    return deep_merge(resources, settings.plugin_config)


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        log.warning("plugin_config.file_missing", path=str(path))
        return {}
    except json.JSONDecodeError as e:
        raise ValueError(f"Plugin config file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Plugin config file {path} must contain a JSON object")
    log.debug("plugin_config.file_loaded", path=str(path), keys=sorted(data))
    return data


def get_resource_config(
    manifest: Manifest,
    resources: Mapping[str, Mapping[str, Any]] | None = None,
) -> dict[str, Any]:
    """Return the host resource config for one manifest (empty if none)."""
    if manifest.config_key is None:
        return {}
    if resources is None:
        resources = load_resource_config()
    config = resources.get(manifest.config_key) or {}
    if not isinstance(config, Mapping):
        raise ValueError(
            f"Resource config for '{manifest.config_key}' must be a mapping, "
            f"got {type(config).__name__}"
        )
    return dict(config)


def resolve_config(
    manifest: Manifest,
    overrides: Mapping[str, Any] | None = None,
    resources: Mapping[str, Mapping[str, Any]] | None = None,
) -> dict[str, Any]:
    """Merge resource config and overrides, then validate against the schema.

    Args:
        manifest: Plugin manifest
        overrides: Mount-time overrides, which win on key collision
        resources: Host resource config; loaded from settings when omitted

    Returns:
        The merged (and, with a schema, validated and coerced) config

    Raises:
        ConfigValidationError: If the config schema rejects the merged map
    """
    merged = deep_merge({}, get_resource_config(manifest, resources))
    merged = deep_merge(merged, overrides or {})

    if manifest.config_schema is None:
        return merged

    try:
        validated = manifest.config_schema.model_validate(merged)
    except ValidationError as e:
        errors = e.errors(include_url=False)
        log.warning(
            "plugin_config.validation_failed",
            plugin_name=manifest.name,
            error_count=len(errors),
        )
        raise ConfigValidationError({manifest.name: errors}) from e

    return validated.model_dump()
