"""Checkpoint and restore of plugin state slices.

Checkpoint walks every mounted instance through ``on_checkpoint``:

- ``Keep()``: the slice goes into ``envelope["state"]`` verbatim,
- ``Drop()``: the slice is left out; restore falls back to schema defaults,
- ``Externalize(key, value)``: the slice is left out of ``state``, ``value``
  is stored at ``envelope[key]`` and ``envelope["externalized_keys"][key]``
  records the state key it stands for.

A state key listed in ``externalized_keys`` never also appears in ``state``.

Envelope shape::

    {
        "version": 1,
        "agent": "support_agent",
        "id": "agent-1",
        "state": {...},
        "externalized_keys": {"thread": "__thread__"},   # only when non-empty
        "thread": {"id": "t1", "rev": 3},
    }

Restore resolves every externalized pointer through ``on_restore`` first
and fails fast on the first error; a partially restored state is never
returned. Plain ``state`` entries are merged next, then any plugin key
still missing gets its manifest's schema defaults. Envelopes written before
``externalized_keys`` existed restore with every non-reserved top-level key
treated as plain state.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from agentmount.plugins.base import Drop, Externalize, Keep, PluginContext
from agentmount.plugins.errors import CheckpointError, RestoreError
from agentmount.plugins.instance import Instance

log = structlog.get_logger(__name__)

CHECKPOINT_VERSION = 1
RESERVED_KEYS = frozenset({"version", "agent", "id", "state", "externalized_keys"})


def _context(
    instance: Instance,
    agent_id: str | None,
    agent_name: str | None,
    extra: Mapping[str, Any] | None,
) -> PluginContext:
    return PluginContext(
        state_key=instance.state_key,
        config=instance.config,
        agent_id=agent_id,
        agent_name=agent_name,
        extra=dict(extra or {}),
    )


def checkpoint(
    instances: Sequence[Instance],
    state: Mapping[str, Any],
    *,
    agent_id: str | None = None,
    agent_name: str | None = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a checkpoint envelope for one agent's state.

    State keys not owned by a plugin instance are carried in ``state``
    verbatim.

    Args:
        instances: Mounted plugin instances, in mount order
        state: The agent's full state
        agent_id: Agent identifier, recorded in the envelope
        agent_name: Agent definition name, recorded in the envelope
        extra: Extra values exposed to hooks through ``ctx.extra``

    Returns:
        The checkpoint envelope

    Raises:
        CheckpointError: If a hook raises or returns an unknown result, or a
            pointer key collides with a reserved key or another pointer key
    """
    plugin_keys = {instance.state_key for instance in instances}
    envelope_state = {key: value for key, value in state.items() if key not in plugin_keys}
    pointers: dict[str, Any] = {}
    externalized_keys: dict[str, str] = {}

    for instance in instances:
        key = instance.state_key
        present = key in state
        slice_ = state.get(key)
        try:
            decision = instance.plugin.on_checkpoint(
                slice_, _context(instance, agent_id, agent_name, extra)
            )
        except Exception as e:
            log.error(
                "checkpoint.failed",
                plugin_name=instance.name,
                state_key=key,
                error=str(e),
            )
            raise CheckpointError(
                f"Plugin '{instance.name}' failed to checkpoint '{key}': {e}"
            ) from e

        match decision:
            case Keep():
                if present:
                    envelope_state[key] = slice_
            case Drop():
                log.debug("checkpoint.dropped", plugin_name=instance.name, state_key=key)
            case Externalize(pointer_key=pointer_key, pointer_value=pointer_value):
                if pointer_key in RESERVED_KEYS:
                    raise CheckpointError(
                        f"Plugin '{instance.name}' cannot externalize under reserved "
                        f"envelope key '{pointer_key}'"
                    )
                if pointer_key in pointers:
                    raise CheckpointError(
                        f"Plugin '{instance.name}' externalizes under '{pointer_key}', "
                        f"already used for state key '{externalized_keys[pointer_key]}'"
                    )
                pointers[pointer_key] = pointer_value
                externalized_keys[pointer_key] = key
                log.debug(
                    "checkpoint.externalized",
                    plugin_name=instance.name,
                    state_key=key,
                    pointer_key=pointer_key,
                )
            case _:
                raise CheckpointError(
                    f"Plugin '{instance.name}' on_checkpoint returned {decision!r}; "
                    "expected Keep(), Drop() or Externalize(key, value)"
                )

    envelope: dict[str, Any] = {
        "version": CHECKPOINT_VERSION,
        "agent": agent_name,
        "id": agent_id,
        "state": envelope_state,
    }
    envelope.update(pointers)
    if externalized_keys:
        envelope["externalized_keys"] = externalized_keys

    log.info(
        "checkpoint.created",
        state_keys=len(envelope_state),
        externalized=len(externalized_keys),
    )
    return envelope


async def restore(
    instances: Sequence[Instance],
    envelope: Mapping[str, Any],
    *,
    agent_defaults: Mapping[str, Any] | None = None,
    agent_id: str | None = None,
    agent_name: str | None = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Rebuild an agent's state from a checkpoint envelope.

    Args:
        instances: Mounted plugin instances, in mount order
        envelope: Envelope produced by ``checkpoint``, or a legacy envelope
        agent_defaults: Defaults for non-plugin state keys
        agent_id: Agent identifier; the envelope's id when omitted
        agent_name: Agent definition name; the envelope's when omitted
        extra: Extra values exposed to hooks through ``ctx.extra``

    Returns:
        The restored agent state

    Raises:
        RestoreError: On the first failing on_restore hook or a malformed envelope
    """
    if not isinstance(envelope, Mapping):
        raise RestoreError(f"Checkpoint envelope must be a mapping, got {type(envelope).__name__}")

    agent_id = agent_id if agent_id is not None else envelope.get("id")
    agent_name = agent_name if agent_name is not None else envelope.get("agent")
    stored_state = envelope.get("state") or {}
    if not isinstance(stored_state, Mapping):
        raise RestoreError("Checkpoint envelope 'state' must be a mapping")

    externalized_keys = envelope.get("externalized_keys")
    if externalized_keys is not None and not (
        isinstance(externalized_keys, Mapping)
        and all(
            isinstance(pointer_key, str) and isinstance(state_key, str)
            for pointer_key, state_key in externalized_keys.items()
        )
    ):
        raise RestoreError(
            "Checkpoint envelope 'externalized_keys' must map pointer keys to state keys"
        )
    restored: dict[str, Any] = {}

    if externalized_keys is None:
        plain = dict(stored_state)
        for key, value in envelope.items():
            if key not in RESERVED_KEYS:
                plain.setdefault(key, value)
    else:
        by_state_key = {instance.state_key: instance for instance in instances}
        for pointer_key, state_key in externalized_keys.items():
            restored_slice = await _restore_pointer(
                by_state_key,
                envelope,
                stored_state,
                pointer_key,
                state_key,
                agent_id,
                agent_name,
                extra,
            )
            if restored_slice is not None:
                restored[state_key] = restored_slice
        plain = dict(stored_state)

    state: dict[str, Any] = dict(agent_defaults or {})
    state.update(restored)
    state.update(plain)
    for instance in instances:
        if instance.state_key not in state:
            state[instance.state_key] = instance.manifest.state_defaults()

    log.info(
        "restore.completed",
        agent_id=agent_id,
        restored=len(restored),
        state_keys=len(state),
    )
    return state


async def _restore_pointer(
    by_state_key: Mapping[str, Instance],
    envelope: Mapping[str, Any],
    stored_state: Mapping[str, Any],
    pointer_key: str,
    state_key: str,
    agent_id: str | None,
    agent_name: str | None,
    extra: Mapping[str, Any] | None,
) -> Any:
    if state_key in stored_state:
        raise RestoreError(
            f"State key '{state_key}' is both externalized (as '{pointer_key}') and stored in state",
            pointer_key=pointer_key,
            state_key=state_key,
        )
    if pointer_key not in envelope:
        raise RestoreError(
            f"Pointer '{pointer_key}' for state key '{state_key}' is missing from the envelope",
            pointer_key=pointer_key,
            state_key=state_key,
        )
    instance = by_state_key.get(state_key)
    if instance is None:
        raise RestoreError(
            f"No mounted plugin owns externalized state key '{state_key}'",
            pointer_key=pointer_key,
            state_key=state_key,
        )

    ctx = _context(instance, agent_id, agent_name, extra)
    try:
        return await instance.plugin.on_restore(envelope[pointer_key], ctx)
    except Exception as e:
        log.error(
            "restore.failed",
            plugin_name=instance.name,
            state_key=state_key,
            pointer_key=pointer_key,
            error=str(e),
        )
        raise RestoreError(
            f"Plugin '{instance.name}' failed to restore '{state_key}': {e}",
            pointer_key=pointer_key,
            state_key=state_key,
            reason=e,
        ) from e
