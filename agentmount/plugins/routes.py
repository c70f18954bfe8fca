"""Route expansion and conflict detection.

Each instance's declared routes are namespaced under its route prefix, then
all routes of a composition are merged into one table:

- A route without an explicit priority gets ``DEFAULT_PRIORITY`` (-10), below
  host-declared agent routes (``HOST_ROUTE_PRIORITY``, 0), so a plugin never
  shadows an explicit agent route.
- Same path, different priority: not a conflict; the higher priority wins.
- Same path, same priority: a conflict, unless the later route declares
  ``on_conflict="replace"``, in which case the later route wins.

Conflicts are collected across the whole batch and reported together.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from types import MappingProxyType
from typing import Any, NamedTuple

import structlog

from agentmount.plugins.base import has_dynamic_router
from agentmount.plugins.errors import ConflictError
from agentmount.plugins.instance import Instance
from agentmount.plugins.manifest import ActionRef, OnConflict, RouteSpec, action_name

log = structlog.get_logger(__name__)

DEFAULT_PRIORITY = -10
HOST_ROUTE_PRIORITY = 0


class ExpandedRoute(NamedTuple):
    """A namespaced route with the options it was declared with."""

    path: str
    handler: ActionRef
    opts: Mapping[str, Any] = MappingProxyType({})


class Route(NamedTuple):
    """An entry of the merged route table."""

    path: str
    handler: ActionRef
    priority: int


def default_priority() -> int:
    return DEFAULT_PRIORITY


def expand_routes(instance: Instance) -> list[ExpandedRoute]:
    """Namespace an instance's routes under its route prefix.

    Resolution order:
    1. a dynamic router (``signal_routes`` override) with a non-empty result
       yields no static routes; the host mounts those routes itself,
    2. structured manifest routes,
    3. legacy patterns, crossed with every declared action.
    """
    manifest = instance.manifest
    prefix = instance.route_prefix

    if has_dynamic_router(instance.plugin):
        dynamic = instance.plugin.signal_routes(instance.config)
        if dynamic:
            log.debug(
                "routes.dynamic_router",
                plugin_name=manifest.name,
                state_key=instance.state_key,
                route_count=len(dynamic),
            )
            return []

    if manifest.routes:
        return [
            ExpandedRoute(f"{prefix}.{route.path}", route.handler, route.opts)
            for route in manifest.routes
        ]

    # Every pattern x every action, for plugins that only declare patterns.
    return [
        ExpandedRoute(f"{prefix}.{pattern}", action, {})
        for pattern in manifest.legacy_patterns
        for action in manifest.actions
    ]


def expand_dynamic_routes(instance: Instance) -> list[ExpandedRoute]:
    """Namespace the routes a dynamic router computes from the instance config.

    For hosts that mount dynamic routes themselves; empty when the plugin
    has no dynamic router.
    """
    if not has_dynamic_router(instance.plugin):
        return []
    dynamic = instance.plugin.signal_routes(instance.config) or []
    routes = (RouteSpec.parse(route) for route in dynamic)
    return [
        ExpandedRoute(f"{instance.route_prefix}.{route.path}", route.handler, route.opts)
        for route in routes
    ]


def _resolved(route: ExpandedRoute | tuple) -> tuple[str, ActionRef, int, OnConflict]:
    path, handler, *rest = route
    opts = rest[0] if rest else {}
    priority = opts.get("priority")
    on_conflict = opts.get("on_conflict")
    return (
        path,
        handler,
        DEFAULT_PRIORITY if priority is None else priority,
        OnConflict.ERROR if on_conflict is None else OnConflict(on_conflict),
    )


def merge_routes(routes: Iterable[ExpandedRoute | tuple]) -> tuple[list[Route], list[str]]:
    """Merge routes into one table, collecting every conflict.

    Args:
        routes: ``(path, handler, opts)`` entries in registration order

    Returns:
        (table, conflicts): one winning route per path, in order of first
        registration, and a message per conflicting pair
    """
    winners: dict[str, Route] = {}
    conflicts: list[str] = []

    for route in routes:
        path, handler, priority, on_conflict = _resolved(route)
        candidate = Route(path, handler, priority)
        current = winners.get(path)

        if current is None or priority > current.priority:
            winners[path] = candidate
        elif priority < current.priority:
            continue
        elif on_conflict is OnConflict.REPLACE:
            winners[path] = candidate
        else:
            conflicts.append(
                f"Route conflict: '{path}' is handled by both "
                f"{action_name(current.handler)} and {action_name(handler)} "
                f"at the same priority {priority}"
            )

    for conflict in conflicts:
        log.warning("routes.conflict", conflict=conflict)

    return list(winners.values()), conflicts


def detect_conflicts(routes: Sequence[ExpandedRoute | tuple]) -> list[Route]:
    """Merge routes into one table or fail with every conflict found.

    Raises:
        ConflictError: If any two routes tie on path and priority
    """
    table, conflicts = merge_routes(routes)
    if conflicts:
        raise ConflictError(conflicts)
    return table
