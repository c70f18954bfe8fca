"""Plugin composition - turning a list of plugin mounts into an agent definition.

``compose`` runs once per agent class, synchronously, and either returns a
frozen ``AgentDefinition`` or raises a ``CompositionError``. Plugins are
never partially mounted. Passes, in order (each aborts on failure and
reports everything it found):

1. build instances (an aliased singleton fails here, immediately),
2. reject singletons mounted more than once,
3. resolve and validate each instance's config,
4. validate declared requirements against the whole composition,
5. build one route table from host routes, plugin routes and schedule
   routes, rejecting route conflicts, duplicate state keys and duplicate
   schedule job ids.

The definition is shared read-only by every running agent of its class;
only each agent's state varies.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import structlog

from agentmount.plugins.checkpoint import checkpoint as build_checkpoint
from agentmount.plugins.checkpoint import restore as restore_checkpoint
from agentmount.plugins.config import deep_merge, load_resource_config, resolve_config
from agentmount.plugins.errors import (
    ConfigValidationError,
    ConflictError,
    MountError,
    RequirementsError,
    SingletonError,
)
from agentmount.plugins.instance import Instance, PluginEntry, check_singletons
from agentmount.plugins.requirements import (
    AppChecker,
    default_app_checker,
    validate_all_requirements,
)
from agentmount.plugins.routes import (
    HOST_ROUTE_PRIORITY,
    ExpandedRoute,
    Route,
    expand_routes,
    merge_routes,
)
from agentmount.plugins.schedules import (
    Schedule,
    duplicate_job_ids,
    expand_schedules,
    schedule_routes,
)
from agentmount.telemetry.logging import agent_context, composition_context

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AgentDefinition:
    """The frozen result of composing plugins into one agent class.

    Attributes:
        name: Agent definition name
        instances: Plugin instances in mount order, carrying resolved config
        route_table: One winning route per path
        schedules: Cron jobs for the host scheduler
        resolved_configs: State key -> resolved config
    """

    name: str
    instances: tuple[Instance, ...]
    route_table: tuple[Route, ...]
    schedules: tuple[Schedule, ...]
    resolved_configs: Mapping[str, Mapping[str, Any]]

    def instance_for(self, state_key: str) -> Instance | None:
        for instance in self.instances:
            if instance.state_key == state_key:
                return instance
        return None

    def plugin_state_keys(self) -> list[str]:
        return [instance.state_key for instance in self.instances]

    def new_state(self, initial_state: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Build the initial state of a new agent of this class."""
        return mount_state(self, initial_state)

    def checkpoint(
        self,
        state: Mapping[str, Any],
        *,
        agent_id: str | None = None,
        extra: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build a checkpoint envelope for one agent of this class."""
        with agent_context(agent_id, self.name):
            return build_checkpoint(
                self.instances,
                state,
                agent_id=agent_id,
                agent_name=self.name,
                extra=extra,
            )

    async def restore(
        self,
        envelope: Mapping[str, Any],
        *,
        agent_defaults: Mapping[str, Any] | None = None,
        extra: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Rebuild one agent's state from a checkpoint envelope."""
        agent_id = envelope.get("id") if isinstance(envelope, Mapping) else None
        with agent_context(agent_id, self.name):
            return await restore_checkpoint(
                self.instances,
                envelope,
                agent_defaults=agent_defaults,
                agent_name=self.name,
                extra=extra,
            )


def _label(instance: Instance) -> str:
    return instance.name if instance.alias is None else f"{instance.name}({instance.alias})"


def _host_route(route: ExpandedRoute | tuple) -> ExpandedRoute:
    path, handler, *rest = route
    opts = dict(rest[0]) if rest else {}
    opts.setdefault("priority", HOST_ROUTE_PRIORITY)
    return ExpandedRoute(path, handler, opts)


def _duplicate_state_keys(instances: Sequence[Instance]) -> list[str]:
    owners: dict[str, list[str]] = {}
    for instance in instances:
        owners.setdefault(instance.state_key, []).append(_label(instance))
    return [
        f"State key conflict: '{key}' is used by {', '.join(labels)}"
        for key, labels in owners.items()
        if len(labels) > 1
    ]


def compose(
    name: str,
    plugins: Sequence[PluginEntry],
    *,
    agent_routes: Sequence[ExpandedRoute | tuple] = (),
    resources: Mapping[str, Mapping[str, Any]] | None = None,
    app_checker: AppChecker = default_app_checker,
    default_timezone: str | None = None,
) -> AgentDefinition:
    """Compose plugin mounts into a frozen agent definition.

    Args:
        name: Agent definition name
        plugins: Ordered mounts: a plugin, ``(plugin, config)``,
            ``(plugin, alias, config)`` or a MountSpec
        agent_routes: Host-declared routes, unprefixed, default priority 0
        resources: Host resource config; loaded from settings when omitted
        app_checker: Host lookup for ``app`` requirements
        default_timezone: Timezone for schedules that declare none

    Returns:
        The composed AgentDefinition

    Raises:
        SingletonError: Aliased or duplicated singleton
        ConfigValidationError: Config rejected by a config schema
        RequirementsError: Unmet requirements
        ConflictError: Route, state key or schedule job collisions
    """
    with composition_context(name):
        log.info("composition.started", plugin_count=len(plugins))

        instances = [Instance.from_entry(entry) for entry in plugins]

        singleton_errors = check_singletons(instances)
        if singleton_errors:
            log.warning("composition.singleton_conflict", errors=singleton_errors)
            raise SingletonError("; ".join(singleton_errors), singleton_errors)

        if resources is None and any(i.manifest.config_key for i in instances):
            resources = load_resource_config()

        field_errors: dict[str, list[dict[str, Any]]] = {}
        resolved: list[Instance] = []
        for instance in instances:
            try:
                config = resolve_config(instance.manifest, instance.config, resources or {})
            except ConfigValidationError as e:
                for errors in e.field_errors.values():
                    field_errors.setdefault(_label(instance), []).extend(errors)
                continue
            resolved.append(instance.with_config(config))
        if field_errors:
            raise ConfigValidationError(field_errors)
        instances = resolved

        resolved_configs = {instance.state_key: instance.config for instance in instances}

        missing = validate_all_requirements(instances, resolved_configs, app_checker)
        if missing:
            raise RequirementsError(missing)

        expanded: list[ExpandedRoute] = [_host_route(route) for route in agent_routes]
        schedules: list[Schedule] = []
        for instance in instances:
            expanded.extend(expand_routes(instance))
            expanded.extend(schedule_routes(instance, default_timezone))
            schedules.extend(expand_schedules(instance, default_timezone))

        route_table, route_conflicts = merge_routes(expanded)
        conflicts = _duplicate_state_keys(instances) + route_conflicts + duplicate_job_ids(schedules)
        if conflicts:
            raise ConflictError(conflicts)

        definition = AgentDefinition(
            name=name,
            instances=tuple(instances),
            route_table=tuple(route_table),
            schedules=tuple(schedules),
            resolved_configs=MappingProxyType(resolved_configs),
        )
        log.info(
            "composition.completed",
            instances=len(instances),
            routes=len(route_table),
            schedules=len(schedules),
        )
        return definition


def mount_state(
    definition: AgentDefinition,
    initial_state: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a new agent's state by mounting every instance in order.

    Each slice is the manifest's schema defaults, with the plugin's mount
    result merged on top, then any caller-supplied slice merged on top of
    that. A caller-supplied slice that is not a mapping replaces the slice.
    A mount hook sees the state built by the instances before it.

    Raises:
        MountError: If a plugin's mount hook raises or returns a non-mapping
    """
    initial_state = initial_state or {}
    plugin_keys = set(definition.plugin_state_keys())
    state: dict[str, Any] = {
        key: value for key, value in initial_state.items() if key not in plugin_keys
    }

    for instance in definition.instances:
        slice_ = instance.manifest.state_defaults()
        try:
            mounted = instance.plugin.mount(MappingProxyType(state), instance.config)
        except Exception as e:
            log.error("mount.failed", plugin_name=instance.name, state_key=instance.state_key)
            raise MountError(f"Plugin mount failed for '{_label(instance)}': {e}") from e

        if mounted is not None:
            if not isinstance(mounted, Mapping):
                raise MountError(
                    f"Plugin mount failed for '{_label(instance)}': "
                    f"mount returned {type(mounted).__name__}, expected a mapping or None"
                )
            slice_ = deep_merge(slice_, mounted)

        if instance.state_key in initial_state:
            custom = initial_state[instance.state_key]
            # A non-mapping slice replaces the defaults outright.
            slice_ = deep_merge(slice_, custom) if isinstance(custom, Mapping) else custom

        state[instance.state_key] = slice_

    return state
