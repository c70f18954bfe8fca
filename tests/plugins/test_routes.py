"""Tests for route expansion and conflict detection.

Tests cover:
- Prefixing routes with the instance route prefix
- Legacy pattern fallback
- Dynamic routers
- Priority resolution and on_conflict replace
- Conflict aggregation
"""

from __future__ import annotations

import pytest

from agentmount.plugins.base import BasePlugin
from agentmount.plugins.errors import ConflictError
from agentmount.plugins.instance import Instance
from agentmount.plugins.manifest import Manifest, OnConflict
from agentmount.plugins.routes import (
    DEFAULT_PRIORITY,
    ExpandedRoute,
    Route,
    default_priority,
    detect_conflicts,
    expand_dynamic_routes,
    expand_routes,
    merge_routes,
)


class SendMessage:
    pass


class ListMessages:
    pass


class Echo:
    pass


class Ping:
    pass


class DynamicPlugin(BasePlugin):
    """Routes come from config instead of the manifest."""

    def __init__(self, routes=None):
        self._manifest = Manifest(
            name="dynamic",
            base_state_key="dynamic",
            actions=(Echo,),
            routes=routes or (),
        )

    @property
    def manifest(self):
        return self._manifest

    def signal_routes(self, config):
        return [(path, Echo) for path in config.get("paths", [])]


@pytest.fixture
def slack(make_plugin):
    return make_plugin("slack", routes=[("post", SendMessage), ("list", ListMessages)])


# ------------------------------------------------------------------ #
# Expansion
# ------------------------------------------------------------------ #


def test_default_priority():
    assert default_priority() == DEFAULT_PRIORITY == -10


def test_routes_prefixed(slack):
    routes = expand_routes(Instance.new(slack))

    assert routes == [
        ExpandedRoute("slack.post", SendMessage, {}),
        ExpandedRoute("slack.list", ListMessages, {}),
    ]


def test_aliased_routes_prefixed(slack):
    routes = expand_routes(Instance.new(slack, "support"))

    assert [route.path for route in routes] == ["support.slack.post", "support.slack.list"]


def test_route_options_carried(make_plugin):
    plugin = make_plugin("slack", routes=[("post", SendMessage, {"priority": 5})])

    [route] = expand_routes(Instance.new(plugin))

    assert route.opts == {"priority": 5}


def test_legacy_patterns_crossed_with_actions(make_plugin):
    plugin = make_plugin("echo", actions=[Echo, Ping], legacy_patterns=["in", "out"])

    routes = expand_routes(Instance.new(plugin))

    assert [(route.path, route.handler) for route in routes] == [
        ("echo.in", Echo),
        ("echo.in", Ping),
        ("echo.out", Echo),
        ("echo.out", Ping),
    ]


def test_structured_routes_win_over_patterns(make_plugin):
    plugin = make_plugin(
        "echo",
        actions=[Echo],
        routes=[("say", Echo)],
        legacy_patterns=["in"],
    )

    assert [route.path for route in expand_routes(Instance.new(plugin))] == ["echo.say"]


def test_no_routes(make_plugin):
    assert expand_routes(Instance.new(make_plugin("quiet"))) == []


# ------------------------------------------------------------------ #
# Dynamic routers
# ------------------------------------------------------------------ #


def test_dynamic_router_suppresses_static_routes():
    plugin = DynamicPlugin(routes=[("static", Echo)])
    instance = Instance.new(plugin, config={"paths": ["a", "b"]})

    assert expand_routes(instance) == []
    assert [route.path for route in expand_dynamic_routes(instance)] == [
        "dynamic.a",
        "dynamic.b",
    ]


def test_empty_dynamic_router_falls_back_to_manifest():
    plugin = DynamicPlugin(routes=[("static", Echo)])
    instance = Instance.new(plugin, config={})

    assert [route.path for route in expand_routes(instance)] == ["dynamic.static"]
    assert expand_dynamic_routes(instance) == []


def test_static_plugin_has_no_dynamic_routes(slack):
    assert expand_dynamic_routes(Instance.new(slack)) == []


# ------------------------------------------------------------------ #
# Merging
# ------------------------------------------------------------------ #


def test_merge_without_conflicts():
    table, conflicts = merge_routes(
        [
            ("a", Echo, {}),
            ("b", Ping, {"priority": 3}),
        ]
    )

    assert table == [Route("a", Echo, DEFAULT_PRIORITY), Route("b", Ping, 3)]
    assert conflicts == []


def test_higher_priority_wins_regardless_of_order():
    first, _ = merge_routes([("a", Echo, {"priority": 0}), ("a", Ping, {})])
    second, _ = merge_routes([("a", Ping, {}), ("a", Echo, {"priority": 0})])

    assert first == second == [Route("a", Echo, 0)]


def test_same_priority_conflicts():
    table, conflicts = merge_routes([("a", Echo, {}), ("a", Ping, {})])

    assert table == [Route("a", Echo, DEFAULT_PRIORITY)]
    assert conflicts == [
        "Route conflict: 'a' is handled by both Echo and Ping at the same priority -10"
    ]


def test_replace_wins_tie():
    table, conflicts = merge_routes(
        [("a", Echo, {}), ("a", Ping, {"on_conflict": OnConflict.REPLACE})]
    )

    assert table == [Route("a", Ping, DEFAULT_PRIORITY)]
    assert conflicts == []


def test_replace_does_not_beat_higher_priority():
    table, conflicts = merge_routes(
        [("a", Echo, {"priority": 5}), ("a", Ping, {"on_conflict": "replace"})]
    )

    assert table == [Route("a", Echo, 5)]
    assert conflicts == []


def test_two_element_routes_accepted():
    table, _ = merge_routes([("a", Echo)])

    assert table == [Route("a", Echo, DEFAULT_PRIORITY)]


def test_detect_conflicts_reports_all():
    with pytest.raises(ConflictError) as exc_info:
        detect_conflicts(
            [
                ("a", Echo, {}),
                ("a", Ping, {}),
                ("b", Echo, {"priority": 1}),
                ("b", Ping, {"priority": 1}),
            ]
        )

    assert len(exc_info.value.conflicts) == 2
    assert "'a'" in exc_info.value.conflicts[0]
    assert "'b'" in exc_info.value.conflicts[1]


def test_detect_conflicts_returns_table():
    assert detect_conflicts([("a", Echo, {})]) == [Route("a", Echo, DEFAULT_PRIORITY)]


def test_default_opts_are_read_only():
    route = ExpandedRoute("a", Echo)

    with pytest.raises(TypeError):
        route.opts["priority"] = 5

    assert ExpandedRoute("b", Ping).opts == {}
