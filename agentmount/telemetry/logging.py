"""Structured logging configuration.

Configures structlog with JSON output in production and a readable console
renderer in dev. Composition and checkpoint code binds the agent it is
working on through context variables so every entry carries it.

Log format (production):
    {
        "timestamp": "2026-02-17T10:30:45.123456Z",
        "level": "info",
        "logger": "agentmount.plugins.composition",
        "event": "composition.completed",
        "agent_name": "support_agent",
        "instances": 3,
        "routes": 7
    }
"""

from __future__ import annotations

import logging
import sys
from contextlib import AbstractContextManager

import structlog
from structlog.types import Processor


def configure_logging(
    *,
    json_logs: bool = False,
    log_level: str = "INFO",
) -> None:
    """Configure structured logging for the host process.

    Args:
        json_logs: Use JSON format (True for production, False for dev)
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.RichTracebackFormatter(),
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_from_settings() -> None:
    """Configure logging from the cached host settings."""
    from agentmount.config import get_settings

    settings = get_settings()
    configure_logging(json_logs=settings.log_json, log_level=settings.log_level)


# ------------------------------------------------------------------ #
# Context Binding Helpers
# ------------------------------------------------------------------ #


def composition_context(agent_name: str) -> AbstractContextManager[None]:
    """Bind the agent class being composed to the log context.

    Args:
        agent_name: Agent definition name
    """
    return structlog.contextvars.bound_contextvars(agent_name=agent_name)


def agent_context(
    agent_id: str | None,
    agent_name: str | None = None,
) -> AbstractContextManager[None]:
    """Bind a running agent to the log context for a checkpoint or restore.

    Args:
        agent_id: Agent identifier
        agent_name: Agent definition name
    """
    return structlog.contextvars.bound_contextvars(
        agent_id=None if agent_id is None else str(agent_id),
        agent_name=agent_name,
    )


def clear_context() -> None:
    """Clear all context variables (useful for testing)."""
    structlog.contextvars.clear_contextvars()
