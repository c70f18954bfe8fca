"""Tests for requirement validation.

Tests cover:
- config, app and plugin requirement kinds
- Aggregation across every instance
- Error formatting
"""

from __future__ import annotations

import pytest

from agentmount.plugins.errors import RequirementsError
from agentmount.plugins.instance import Instance
from agentmount.plugins.manifest import Requirement
from agentmount.plugins.requirements import (
    CompositionContext,
    default_app_checker,
    format_error,
    validate_all_requirements,
    validate_requirements,
)


@pytest.fixture
def slack(make_plugin):
    return make_plugin(
        "slack",
        requirements=[("config", "token"), ("app", "slack_sdk"), ("plugin", "http")],
    )


@pytest.fixture
def http(make_plugin):
    return make_plugin("http")


# ------------------------------------------------------------------ #
# Single instance
# ------------------------------------------------------------------ #


def test_all_met(slack, http, app_available):
    instance = Instance.new(slack, config={"token": "xoxb"})
    context = CompositionContext(
        mounted=[instance, Instance.new(http)],
        app_checker=app_available,
    )

    assert validate_requirements(instance, context) == []


def test_all_missing(slack, app_missing):
    instance = Instance.new(slack)
    context = CompositionContext(mounted=[instance], app_checker=app_missing)

    assert validate_requirements(instance, context) == [
        Requirement.config("token"),
        Requirement.app("slack_sdk"),
        Requirement.plugin("http"),
    ]


def test_none_config_value_is_missing(slack, http, app_available):
    instance = Instance.new(slack, config={"token": None})
    context = CompositionContext(mounted=[instance, Instance.new(http)], app_checker=app_available)

    assert validate_requirements(instance, context) == [Requirement.config("token")]


def test_resolved_config_used_over_instance_config(slack, http, app_available):
    instance = Instance.new(slack)
    context = CompositionContext(
        mounted=[instance, Instance.new(http)],
        resolved_config={"token": "from-resources"},
        app_checker=app_available,
    )

    assert validate_requirements(instance, context) == []


def test_plugin_requirement_not_met_by_itself(make_plugin, app_available):
    needy = make_plugin("http", requirements=[("plugin", "http")])
    instance = Instance.new(needy, "a")
    context = CompositionContext(mounted=[instance], app_checker=app_available)

    assert validate_requirements(instance, context) == [Requirement.plugin("http")]


def test_plugin_requirement_met_by_aliased_sibling(make_plugin, app_available):
    needy = make_plugin("http", requirements=[("plugin", "http")])
    first = Instance.new(needy, "a")
    second = Instance.new(needy, "b")
    context = CompositionContext(mounted=[first, second], app_checker=app_available)

    assert validate_requirements(first, context) == []


# ------------------------------------------------------------------ #
# Whole composition
# ------------------------------------------------------------------ #


def test_validate_all_reports_every_instance(slack, make_plugin, app_missing):
    other = make_plugin("github", requirements=[("config", "api_key")])
    instances = [Instance.new(slack, "support"), Instance.new(other)]

    missing = validate_all_requirements(instances, app_checker=app_missing)

    assert set(missing) == {"slack(support)", "github"}
    assert missing["github"] == [Requirement.config("api_key")]
    assert len(missing["slack(support)"]) == 3


def test_validate_all_uses_config_map(slack, http, app_available):
    instances = [Instance.new(slack), Instance.new(http)]

    missing = validate_all_requirements(
        instances,
        {"slack": {"token": "xoxb"}},
        app_checker=app_available,
    )

    assert missing == {}


# ------------------------------------------------------------------ #
# Formatting
# ------------------------------------------------------------------ #


def test_format_error():
    message = format_error(
        {"slack": [Requirement.config("token"), Requirement.app("slack_sdk")]}
    )

    assert message == (
        "Missing requirements for plugins:\n"
        "  - slack requires {config, token}, {app, slack_sdk}"
    )


def test_requirements_error_carries_missing():
    missing = {"slack": [Requirement.config("token")]}
    error = RequirementsError(missing)

    assert error.missing == missing
    assert error.errors == ["slack requires {config, token}"]
    assert str(error).startswith("Missing requirements for plugins:")


# ------------------------------------------------------------------ #
# Default app checker
# ------------------------------------------------------------------ #


def test_default_app_checker_finds_installed_distribution():
    assert default_app_checker("pydantic") is True


def test_default_app_checker_finds_stdlib_module():
    assert default_app_checker("json") is True


def test_default_app_checker_unknown():
    assert default_app_checker("agentmount_no_such_app") is False
