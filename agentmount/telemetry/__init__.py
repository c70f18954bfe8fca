"""Telemetry package for observability.

This package contains structured logging setup and the context binding
helpers used by composition and checkpoint code.
"""

from __future__ import annotations

from agentmount.telemetry.logging import (
    agent_context,
    clear_context,
    composition_context,
    configure_from_settings,
    configure_logging,
)

__all__ = [
    "agent_context",
    "clear_context",
    "composition_context",
    "configure_from_settings",
    "configure_logging",
]
