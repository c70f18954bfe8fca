"""Plugin manifests - static, declared metadata for one plugin type.

A manifest is built once per plugin type (normally at import time, in the
plugin class) and never mutated. Every check runs in ``__post_init__`` so a
bad declaration fails at program start, not when an agent is first composed.

Route, schedule and requirement declarations accept either the typed specs
below or the short tuple forms:

- routes: ``("post", SendMessage)`` or ``("post", SendMessage, {"priority": 5})``
- schedules: ``("*/5 * * * *", RefreshToken)`` or
  ``("0 9 * * 1-5", Digest, {"timezone": "America/New_York"})``
- requirements: ``("config", "token")``, ``("app", "httpx")``, ``("plugin", "http")``
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel

from agentmount.plugins.errors import ManifestError

ActionRef = Callable[..., Any]

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
_STATE_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_CRON_FIELD_RE = re.compile(r"^[0-9A-Za-z*/,\-?LW#]+$")
_CRON_MACROS = {"@yearly", "@annually", "@monthly", "@weekly", "@daily", "@midnight", "@hourly"}
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


class OnConflict(StrEnum):
    """What a route does when it ties with an earlier route on path and priority."""

    ERROR = "error"
    REPLACE = "replace"


class RequirementKind(StrEnum):
    """Kinds of dependency a plugin can declare."""

    CONFIG = "config"
    APP = "app"
    PLUGIN = "plugin"


def action_name(action: ActionRef) -> str:
    """Return the display name of an action (its class or function name)."""
    return getattr(action, "__name__", None) or type(action).__name__


def snake_case(name: str) -> str:
    """Convert ``RefreshTokenAction`` to ``refresh_token_action``."""
    return _CAMEL_BOUNDARY_RE.sub("_", name).replace("-", "_").lower()


def validate_cron(expression: str) -> None:
    """Raise ManifestError unless expression is a 5-field cron line or macro."""
    expression = expression.strip()
    if expression in _CRON_MACROS:
        return
    fields = expression.split()
    if len(fields) != 5 or not all(_CRON_FIELD_RE.match(part) for part in fields):
        raise ManifestError(
            f"Invalid cron expression {expression!r}: expected 5 fields "
            "(minute hour day-of-month month day-of-week)"
        )


def validate_timezone(timezone: str) -> None:
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ManifestError(f"Unknown timezone {timezone!r}") from exc


@dataclass(frozen=True)
class RouteSpec:
    """A declared route, relative to the owning instance's route prefix."""

    path: str
    handler: ActionRef
    priority: int | None = None
    on_conflict: OnConflict | None = None

    def __post_init__(self) -> None:
        if not self.path or not isinstance(self.path, str):
            raise ManifestError("Route path must be a non-empty string")
        if not callable(self.handler):
            raise ManifestError(f"Route {self.path!r} handler is not callable: {self.handler!r}")
        if self.priority is not None and not isinstance(self.priority, int):
            raise ManifestError(f"Route {self.path!r} priority must be an int")
        if self.on_conflict is not None:
            try:
                object.__setattr__(self, "on_conflict", OnConflict(self.on_conflict))
            except ValueError as exc:
                raise ManifestError(
                    f"Route {self.path!r} on_conflict must be 'error' or 'replace'"
                ) from exc

    @property
    def opts(self) -> dict[str, Any]:
        """Options that were set explicitly, as passed to conflict detection."""
        opts: dict[str, Any] = {}
        if self.priority is not None:
            opts["priority"] = self.priority
        if self.on_conflict is not None:
            opts["on_conflict"] = self.on_conflict
        return opts

    @classmethod
    def parse(cls, value: RouteSpec | tuple) -> RouteSpec:
        if isinstance(value, RouteSpec):
            return value
        if isinstance(value, tuple) and len(value) == 2:
            path, handler = value
            return cls(path, handler)
        if isinstance(value, tuple) and len(value) == 3 and isinstance(value[2], Mapping):
            path, handler, opts = value
            unknown = set(opts) - {"priority", "on_conflict"}
            if unknown:
                raise ManifestError(f"Unknown route options for {path!r}: {sorted(unknown)}")
            return cls(path, handler, opts.get("priority"), opts.get("on_conflict"))
        raise ManifestError(f"Invalid route declaration: {value!r}")


@dataclass(frozen=True)
class ScheduleSpec:
    """A declared cron job that triggers one of the plugin's actions."""

    cron: str
    action: ActionRef
    timezone: str | None = None
    signal: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.cron, str):
            raise ManifestError(f"Cron expression must be a string, got {self.cron!r}")
        validate_cron(self.cron)
        if not callable(self.action):
            raise ManifestError(f"Scheduled action is not callable: {self.action!r}")
        if self.timezone is not None:
            validate_timezone(self.timezone)
        if self.signal is not None and not self.signal:
            raise ManifestError("Schedule signal must be a non-empty string")

    @classmethod
    def parse(cls, value: ScheduleSpec | tuple) -> ScheduleSpec:
        if isinstance(value, ScheduleSpec):
            return value
        if isinstance(value, tuple) and len(value) == 2:
            cron, action = value
            return cls(cron, action)
        if isinstance(value, tuple) and len(value) == 3 and isinstance(value[2], Mapping):
            cron, action, opts = value
            unknown = set(opts) - {"timezone", "tz", "signal"}
            if unknown:
                raise ManifestError(f"Unknown schedule options for {cron!r}: {sorted(unknown)}")
            return cls(cron, action, opts.get("timezone", opts.get("tz")), opts.get("signal"))
        raise ManifestError(f"Invalid schedule declaration: {value!r}")


@dataclass(frozen=True)
class Requirement:
    """One declared dependency: a config key, a host app or a sibling plugin."""

    kind: RequirementKind
    name: str

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "kind", RequirementKind(self.kind))
        except ValueError as exc:
            raise ManifestError(
                f"Unknown requirement kind {self.kind!r} (expected config, app or plugin)"
            ) from exc
        if not self.name or not isinstance(self.name, str):
            raise ManifestError(f"Requirement {self.kind} needs a non-empty name")

    def __str__(self) -> str:
        return f"{{{self.kind}, {self.name}}}"

    @classmethod
    def config(cls, key: str) -> Requirement:
        return cls(RequirementKind.CONFIG, key)

    @classmethod
    def app(cls, name: str) -> Requirement:
        return cls(RequirementKind.APP, name)

    @classmethod
    def plugin(cls, name: str) -> Requirement:
        return cls(RequirementKind.PLUGIN, name)

    @classmethod
    def parse(cls, value: Requirement | tuple) -> Requirement:
        if isinstance(value, Requirement):
            return value
        if isinstance(value, tuple) and len(value) == 2:
            return cls(*value)
        raise ManifestError(f"Invalid requirement declaration: {value!r}")


@dataclass(frozen=True)
class Manifest:
    """Static metadata for one plugin type.

    Attributes:
        name: Plugin name (letters, numbers, underscores); base of the route prefix
        base_state_key: Key of the plugin's slice in agent state
        actions: Actions the plugin provides
        singleton: Mountable at most once per composition, never aliased
        routes: Structured routes, relative to the route prefix
        schedules: Cron jobs triggering plugin actions
        legacy_patterns: Signal patterns used only when there are no routes
        requirements: Declared dependencies
        state_schema: pydantic model describing the state slice (defaults)
        config_schema: pydantic model validating the resolved config
        config_key: Key into host resource configuration, if any
    """

    name: str
    base_state_key: str
    actions: tuple[ActionRef, ...] = ()
    description: str | None = None
    category: str | None = None
    tags: tuple[str, ...] = ()
    vsn: str | None = None
    capabilities: tuple[str, ...] = ()
    singleton: bool = False
    routes: tuple[RouteSpec, ...] = ()
    schedules: tuple[ScheduleSpec, ...] = ()
    legacy_patterns: tuple[str, ...] = ()
    requirements: tuple[Requirement, ...] = ()
    state_schema: type[BaseModel] | None = None
    config_schema: type[BaseModel] | None = None
    config_key: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not _NAME_RE.match(self.name):
            raise ManifestError(
                f"Invalid plugin name {self.name!r}: must start with a letter and "
                "contain only letters, numbers and underscores"
            )
        if not isinstance(self.base_state_key, str) or not _STATE_KEY_RE.match(
            self.base_state_key
        ):
            raise ManifestError(
                f"Plugin {self.name!r} has invalid state key {self.base_state_key!r}"
            )

        actions = tuple(self.actions)
        for action in actions:
            if not callable(action):
                raise ManifestError(
                    f"Plugin {self.name!r} declares a non-callable action: {action!r}"
                )

        for schema_field in ("state_schema", "config_schema"):
            schema = getattr(self, schema_field)
            if schema is not None and not (
                isinstance(schema, type) and issubclass(schema, BaseModel)
            ):
                raise ManifestError(
                    f"Plugin {self.name!r} {schema_field} must be a pydantic model class"
                )

        set_ = object.__setattr__
        set_(self, "actions", actions)
        set_(self, "tags", _string_tuple(self.name, "tags", self.tags))
        set_(self, "capabilities", _string_tuple(self.name, "capabilities", self.capabilities))
        set_(
            self,
            "legacy_patterns",
            _string_tuple(self.name, "legacy_patterns", self.legacy_patterns),
        )
        set_(self, "routes", tuple(RouteSpec.parse(route) for route in self.routes))
        set_(self, "schedules", tuple(ScheduleSpec.parse(spec) for spec in self.schedules))
        set_(self, "requirements", tuple(Requirement.parse(req) for req in self.requirements))

    def metadata(self) -> dict[str, Any]:
        """Return the discovery metadata used to index plugins."""
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
        }

    def state_defaults(self) -> dict[str, Any]:
        """Return schema defaults for the state slice (empty without a schema).

        Required fields with no default are left out rather than invented.
        """
        if self.state_schema is None:
            return {}
        defaults: dict[str, Any] = {}
        for field_name, model_field in self.state_schema.model_fields.items():
            if model_field.is_required():
                continue
            defaults[field_name] = model_field.get_default(call_default_factory=True)
        return defaults


def _string_tuple(plugin_name: str, attr: str, values: Iterable[str]) -> tuple[str, ...]:
    if isinstance(values, str):
        raise ManifestError(f"Plugin {plugin_name!r} {attr} must be a list of strings")
    result = tuple(values)
    for value in result:
        if not isinstance(value, str) or not value.strip():
            raise ManifestError(f"Plugin {plugin_name!r} has invalid {attr} entry {value!r}")
    return result
