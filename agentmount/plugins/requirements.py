"""Plugin requirement validation.

Requirements are checked read-only against the rest of the composition.
Every unmet requirement is reported, for every instance, in one pass.
"""

from __future__ import annotations

import importlib.metadata
import importlib.util
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from agentmount.plugins.instance import Instance
from agentmount.plugins.manifest import Requirement, RequirementKind

log = structlog.get_logger(__name__)

AppChecker = Callable[[str], bool]


def default_app_checker(name: str) -> bool:
    """Report whether ``name`` is an installed distribution or importable module."""
    try:
        importlib.metadata.distribution(name)
        return True
    except importlib.metadata.PackageNotFoundError:
        pass
    try:
        return importlib.util.find_spec(name) is not None
    except (ImportError, ValueError):
        return False


@dataclass
class CompositionContext:
    """What a requirement check can see of the composition.

    Attributes:
        mounted: Instances in the composition
        resolved_config: Resolved config of the instance being checked; the
            instance's own config is used when None
        app_checker: Host lookup for available applications
    """

    mounted: Sequence[Instance] = field(default_factory=list)
    resolved_config: Mapping[str, Any] | None = None
    app_checker: AppChecker = default_app_checker


def _is_met(
    requirement: Requirement,
    instance: Instance,
    config: Mapping[str, Any],
    context: CompositionContext,
) -> bool:
    match requirement.kind:
        case RequirementKind.CONFIG:
            return config.get(requirement.name) is not None
        case RequirementKind.APP:
            return bool(context.app_checker(requirement.name))
        case RequirementKind.PLUGIN:
            return any(
                other is not instance and other.name == requirement.name
                for other in context.mounted
            )
        case _:
            raise ValueError(f"Unknown requirement kind: {requirement.kind!r}")


def validate_requirements(instance: Instance, context: CompositionContext) -> list[Requirement]:
    """Return every unmet requirement of one instance (empty if valid)."""
    config = context.resolved_config
    if config is None:
        config = instance.config

    return [
        requirement
        for requirement in instance.manifest.requirements
        if not _is_met(requirement, instance, config, context)
    ]


def validate_all_requirements(
    instances: Sequence[Instance],
    config_map: Mapping[str, Mapping[str, Any]] | None = None,
    app_checker: AppChecker = default_app_checker,
) -> dict[str, list[Requirement]]:
    """Validate every instance against the whole composition.

    Args:
        instances: All instances of the composition
        config_map: Resolved config per state key; an instance's own config
            is used when its key is absent
        app_checker: Host lookup for available applications

    Returns:
        Instance name -> unmet requirements; empty when all are satisfied.
        Aliased instances are reported as ``name(alias)``.
    """
    config_map = config_map or {}
    missing: dict[str, list[Requirement]] = {}

    for instance in instances:
        context = CompositionContext(
            mounted=instances,
            resolved_config=config_map.get(instance.state_key),
            app_checker=app_checker,
        )
        unmet = validate_requirements(instance, context)
        if unmet:
            label = instance.name if instance.alias is None else f"{instance.name}({instance.alias})"
            missing[label] = unmet
            log.warning(
                "requirements.unmet",
                plugin_name=instance.name,
                state_key=instance.state_key,
                missing=[str(req) for req in unmet],
            )

    return missing


def format_error(missing: Mapping[str, Sequence[Requirement]]) -> str:
    """Render unmet requirements as one readable multi-line message."""
    lines = ["Missing requirements for plugins:"]
    for plugin_name, requirements in missing.items():
        rendered = ", ".join(str(requirement) for requirement in requirements)
        lines.append(f"  - {plugin_name} requires {rendered}")
    return "\n".join(lines)
