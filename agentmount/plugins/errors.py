"""Plugin error taxonomy.

Composition-time failures (``CompositionError`` and subclasses) abort
construction of the whole agent definition. Restore-time failures
(``RestoreError``) abort a single restore. Hosts tell the two apart by type.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agentmount.plugins.manifest import Requirement


class PluginError(Exception):
    """Base class for every error raised by the plugin engine."""


class ManifestError(PluginError, ValueError):
    """Raised when a manifest declaration is malformed."""


class CompositionError(PluginError):
    """Raised when a set of plugin instances cannot be composed.

    Attributes:
        errors: Every problem found in the failing pass
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors: list[str] = list(errors) if errors else [message]


class SingletonError(CompositionError):
    """Raised for an aliased singleton or a singleton mounted twice."""


class ConfigValidationError(CompositionError):
    """Raised when merged plugin config fails its config schema.

    Attributes:
        field_errors: Plugin name -> pydantic error dicts (loc, msg, type, ...)
    """

    def __init__(self, field_errors: dict[str, list[dict[str, Any]]]) -> None:
        self.field_errors = field_errors
        lines = []
        for plugin_name, errors in field_errors.items():
            for error in errors:
                loc = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
                lines.append(f"{plugin_name}: {loc}: {error.get('msg', 'invalid')}")
        super().__init__(
            "Config validation failed:\n" + "\n".join(f"  - {line}" for line in lines),
            lines,
        )


class RequirementsError(CompositionError):
    """Raised when declared plugin requirements are not met.

    Attributes:
        missing: Plugin name -> unmet requirements
    """

    def __init__(self, missing: dict[str, list[Requirement]]) -> None:
        from agentmount.plugins.requirements import format_error

        self.missing = missing
        super().__init__(
            format_error(missing),
            [
                f"{name} requires {', '.join(str(req) for req in reqs)}"
                for name, reqs in missing.items()
            ],
        )


class ConflictError(CompositionError):
    """Raised for route, schedule or state key collisions in one composition."""

    def __init__(self, conflicts: list[str]) -> None:
        self.conflicts = conflicts
        super().__init__(
            "Plugin composition has conflicts:\n"
            + "\n".join(f"  - {conflict}" for conflict in conflicts),
            conflicts,
        )


class CheckpointError(PluginError):
    """Raised when a checkpoint hook result cannot be placed in the envelope."""


class RestoreError(PluginError):
    """Raised when a checkpoint envelope cannot be restored.

    The caller must discard any partially restored state.

    Attributes:
        pointer_key: Envelope pointer key being resolved, if any
        state_key: State key the pointer restores into, if any
        reason: Underlying failure
    """

    def __init__(
        self,
        message: str,
        *,
        pointer_key: str | None = None,
        state_key: str | None = None,
        reason: Any = None,
    ) -> None:
        super().__init__(message)
        self.pointer_key = pointer_key
        self.state_key = state_key
        self.reason = reason


class MountError(PluginError):
    """Raised when a plugin's mount hook fails while building a new agent's state."""
