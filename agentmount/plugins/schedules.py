"""Schedule expansion.

Each declared cron job becomes a ``Schedule`` with:

- a ``JobId`` of ``("plugin_schedule", state_key, action)``, so two aliased
  mounts of one plugin never share a job in the host scheduler,
- a signal type of ``<route_prefix>.__schedule__.<snake(action)>``, or
  ``<route_prefix>.<signal>`` when the schedule names its own signal,
- a timezone, defaulting to the host setting (``Etc/UTC``).

Schedule signals are routed through the same table as ordinary routes, at
``SCHEDULE_ROUTE_PRIORITY``, one tier below ``DEFAULT_PRIORITY`` so a
scheduler tick never outranks a normal route on the same path.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import NamedTuple

from agentmount.config import get_settings
from agentmount.plugins.instance import Instance
from agentmount.plugins.manifest import ActionRef, action_name, snake_case
from agentmount.plugins.routes import DEFAULT_PRIORITY, ExpandedRoute

SCHEDULE_SCOPE = "plugin_schedule"
SCHEDULE_SEGMENT = "__schedule__"
SCHEDULE_ROUTE_PRIORITY = DEFAULT_PRIORITY - 10


class JobId(NamedTuple):
    """Key of a scheduled job in the host scheduler's job table."""

    scope: str
    state_key: str
    action: ActionRef


@dataclass(frozen=True)
class Schedule:
    """A fully namespaced cron job."""

    cron_expression: str
    action: ActionRef
    job_id: JobId
    signal_type: str
    timezone: str


def schedule_route_priority() -> int:
    return SCHEDULE_ROUTE_PRIORITY


def expand_schedules(instance: Instance, default_timezone: str | None = None) -> list[Schedule]:
    """Expand an instance's declared schedules.

    Args:
        instance: Plugin instance
        default_timezone: Timezone for schedules that declare none; the host
            setting when omitted
    """
    if not instance.manifest.schedules:
        return []

    timezone = default_timezone or get_settings().default_timezone
    schedules = []
    for spec in instance.manifest.schedules:
        if spec.signal is not None:
            signal_type = f"{instance.route_prefix}.{spec.signal}"
        else:
            signal_type = (
                f"{instance.route_prefix}.{SCHEDULE_SEGMENT}."
                f"{snake_case(action_name(spec.action))}"
            )
        schedules.append(
            Schedule(
                cron_expression=spec.cron,
                action=spec.action,
                job_id=JobId(SCHEDULE_SCOPE, instance.state_key, spec.action),
                signal_type=signal_type,
                timezone=spec.timezone or timezone,
            )
        )
    return schedules


def schedule_routes(instance: Instance, default_timezone: str | None = None) -> list[ExpandedRoute]:
    """Return routes that deliver each schedule's signal to its action."""
    return [
        ExpandedRoute(schedule.signal_type, schedule.action, {"priority": SCHEDULE_ROUTE_PRIORITY})
        for schedule in expand_schedules(instance, default_timezone)
    ]


def duplicate_job_ids(schedules: Sequence[Schedule]) -> list[str]:
    """Return one message per job id declared more than once."""
    seen: set[JobId] = set()
    duplicates = []
    for schedule in schedules:
        if schedule.job_id in seen:
            duplicates.append(
                f"Schedule conflict: job {schedule.job_id.scope}/{schedule.job_id.state_key}/"
                f"{action_name(schedule.action)} is declared more than once"
            )
        seen.add(schedule.job_id)
    return duplicates
