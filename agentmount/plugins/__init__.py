"""Plugin system for composing agent capabilities.

A plugin declares routes, scheduled jobs, configuration requirements and a
checkpoint/restore contract. A host composes plugin instances into one agent
definition before any agent runs, and walks each instance's state slice
through the checkpoint hooks whenever an agent is serialized.

Core components:
- Manifest: Static metadata for one plugin type
- BasePlugin: Hook contract (mount, signal_routes, on_checkpoint, on_restore)
- Instance: A namespaced mount of a plugin (alias, state key, route prefix)
- compose: Builds a frozen AgentDefinition (configs, requirements, route table)
- checkpoint / restore: Keep, drop or externalize state slices
- PluginRegistry: Catalog of plugin types by name
"""

from agentmount.plugins.base import (
    BasePlugin,
    CheckpointDecision,
    Drop,
    Externalize,
    Keep,
    PluginContext,
    StaticPlugin,
)
from agentmount.plugins.checkpoint import checkpoint, restore
from agentmount.plugins.composition import AgentDefinition, compose, mount_state
from agentmount.plugins.config import deep_merge, resolve_config
from agentmount.plugins.errors import (
    CheckpointError,
    CompositionError,
    ConfigValidationError,
    ConflictError,
    ManifestError,
    MountError,
    PluginError,
    RequirementsError,
    RestoreError,
    SingletonError,
)
from agentmount.plugins.instance import (
    Instance,
    MountSpec,
    derive_route_prefix,
    derive_state_key,
)
from agentmount.plugins.manifest import (
    Manifest,
    OnConflict,
    Requirement,
    RequirementKind,
    RouteSpec,
    ScheduleSpec,
)
from agentmount.plugins.registry import PluginRegistry, get_registry
from agentmount.plugins.requirements import (
    CompositionContext,
    format_error,
    validate_all_requirements,
    validate_requirements,
)
from agentmount.plugins.routes import (
    DEFAULT_PRIORITY,
    HOST_ROUTE_PRIORITY,
    Route,
    detect_conflicts,
    expand_routes,
)
from agentmount.plugins.schedules import (
    SCHEDULE_ROUTE_PRIORITY,
    JobId,
    Schedule,
    expand_schedules,
    schedule_routes,
)

__all__ = [
    "AgentDefinition",
    "BasePlugin",
    "CheckpointDecision",
    "CheckpointError",
    "CompositionContext",
    "CompositionError",
    "ConfigValidationError",
    "ConflictError",
    "DEFAULT_PRIORITY",
    "Drop",
    "Externalize",
    "HOST_ROUTE_PRIORITY",
    "Instance",
    "JobId",
    "Keep",
    "Manifest",
    "ManifestError",
    "MountError",
    "MountSpec",
    "OnConflict",
    "PluginContext",
    "PluginError",
    "PluginRegistry",
    "Requirement",
    "RequirementKind",
    "RequirementsError",
    "RestoreError",
    "Route",
    "RouteSpec",
    "SCHEDULE_ROUTE_PRIORITY",
    "Schedule",
    "ScheduleSpec",
    "SingletonError",
    "StaticPlugin",
    "checkpoint",
    "compose",
    "deep_merge",
    "derive_route_prefix",
    "derive_state_key",
    "detect_conflicts",
    "expand_routes",
    "expand_schedules",
    "format_error",
    "get_registry",
    "mount_state",
    "resolve_config",
    "restore",
    "schedule_routes",
    "validate_all_requirements",
    "validate_requirements",
]
