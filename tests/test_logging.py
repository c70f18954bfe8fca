"""Tests for structured logging setup and context binding."""

import pytest
import structlog

from agentmount.telemetry.logging import (
    agent_context,
    clear_context,
    composition_context,
    configure_from_settings,
    configure_logging,
)


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def test_structured_logging_configuration():
    """Test structured logging can be configured."""
    configure_logging(json_logs=False, log_level="DEBUG")

    log = structlog.get_logger(__name__)
    assert log is not None

    # Test logging doesn't crash
    log.info("test.message", test_key="test_value")


def test_json_logging_configuration():
    configure_logging(json_logs=True, log_level="WARNING")

    structlog.get_logger(__name__).warning("test.message", test_key="test_value")


def test_configure_from_settings(monkeypatch):
    monkeypatch.setenv("AGENTMOUNT_LOG_JSON", "true")

    configure_from_settings()

    structlog.get_logger(__name__).info("test.message")


def test_composition_context_binding():
    with composition_context("support_agent"):
        assert structlog.contextvars.get_contextvars() == {"agent_name": "support_agent"}

    assert structlog.contextvars.get_contextvars() == {}


def test_agent_context_binding():
    with agent_context(42, "support_agent"):
        assert structlog.contextvars.get_contextvars() == {
            "agent_id": "42",
            "agent_name": "support_agent",
        }

    assert structlog.contextvars.get_contextvars() == {}


def test_clear_context():
    structlog.contextvars.bind_contextvars(agent_id="a1")

    clear_context()

    assert structlog.contextvars.get_contextvars() == {}
