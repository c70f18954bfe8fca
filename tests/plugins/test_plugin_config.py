"""Tests for plugin config resolution.

Tests cover:
- deep_merge policy (mappings recurse, everything else replaces)
- Resource config lookup by config_key
- Loading resource config from settings (env and JSON file)
- Schema validation and coercion
"""

from __future__ import annotations

import json

import pytest
from pydantic import BaseModel

from agentmount.config import Settings
from agentmount.plugins.config import (
    deep_merge,
    get_resource_config,
    load_resource_config,
    resolve_config,
)
from agentmount.plugins.errors import ConfigValidationError
from agentmount.plugins.manifest import Manifest


class SlackConfig(BaseModel):
    token: str
    channel: str | None = None
    timeout: int = 5000


@pytest.fixture
def manifest():
    return Manifest(
        name="slack",
        base_state_key="slack",
        config_schema=SlackConfig,
        config_key="slack",
    )


# ------------------------------------------------------------------ #
# deep_merge
# ------------------------------------------------------------------ #


def test_deep_merge_nested_mappings():
    base = {"http": {"timeout": 5, "retries": 3}, "name": "a"}
    override = {"http": {"timeout": 10}}

    assert deep_merge(base, override) == {"http": {"timeout": 10, "retries": 3}, "name": "a"}


def test_deep_merge_replaces_lists():
    assert deep_merge({"scopes": ["read", "write"]}, {"scopes": ["admin"]}) == {
        "scopes": ["admin"]
    }


def test_deep_merge_scalar_replaces_mapping():
    assert deep_merge({"http": {"timeout": 5}}, {"http": None}) == {"http": None}


def test_deep_merge_does_not_mutate_inputs():
    base = {"http": {"timeout": 5}}
    override = {"http": {"retries": 1}}

    deep_merge(base, override)

    assert base == {"http": {"timeout": 5}}
    assert override == {"http": {"retries": 1}}


# ------------------------------------------------------------------ #
# Resource config
# ------------------------------------------------------------------ #


def test_resource_config_without_config_key():
    manifest = Manifest(name="echo", base_state_key="echo")

    assert get_resource_config(manifest, {"echo": {"a": 1}}) == {}


def test_resource_config_missing_entry(manifest):
    assert get_resource_config(manifest, {}) == {}


def test_resource_config_must_be_mapping(manifest):
    with pytest.raises(ValueError, match="must be a mapping"):
        get_resource_config(manifest, {"slack": "xoxb"})


def test_load_resource_config_from_env(monkeypatch):
    monkeypatch.setenv("AGENTMOUNT_PLUGIN_CONFIG", '{"slack": {"token": "env-token"}}')

    assert load_resource_config() == {"slack": {"token": "env-token"}}


def test_load_resource_config_env_wins_over_file(tmp_path):
    path = tmp_path / "plugins.json"
    path.write_text(json.dumps({"slack": {"token": "file-token", "channel": "#general"}}))
    settings = Settings(
        plugin_config_file=path,
        plugin_config={"slack": {"token": "env-token"}},
    )

    assert load_resource_config(settings) == {
        "slack": {"token": "env-token", "channel": "#general"}
    }


def test_load_resource_config_missing_file(tmp_path):
    settings = Settings(plugin_config_file=tmp_path / "missing.json")

    assert load_resource_config(settings) == {}


def test_load_resource_config_invalid_json(tmp_path):
    path = tmp_path / "plugins.json"
    path.write_text("{not json")

    with pytest.raises(ValueError, match="not valid JSON"):
        load_resource_config(Settings(plugin_config_file=path))


def test_load_resource_config_requires_object(tmp_path):
    path = tmp_path / "plugins.json"
    path.write_text("[1, 2]")

    with pytest.raises(ValueError, match="must contain a JSON object"):
        load_resource_config(Settings(plugin_config_file=path))


# ------------------------------------------------------------------ #
# resolve_config
# ------------------------------------------------------------------ #


def test_overrides_win_over_resources(manifest):
    config = resolve_config(
        manifest,
        {"channel": "#support"},
        {"slack": {"token": "xoxb", "channel": "#general"}},
    )

    assert config == {"token": "xoxb", "channel": "#support", "timeout": 5000}


def test_schema_coerces_values(manifest):
    config = resolve_config(manifest, {"token": "xoxb", "timeout": "250"}, {})

    assert config["timeout"] == 250


def test_schema_rejects_missing_field(manifest):
    with pytest.raises(ConfigValidationError) as exc_info:
        resolve_config(manifest, {}, {})

    errors = exc_info.value.field_errors["slack"]
    assert errors[0]["loc"] == ("token",)
    assert errors[0]["type"] == "missing"
    assert "slack: token: Field required" in str(exc_info.value)


def test_schema_rejects_bad_type(manifest):
    with pytest.raises(ConfigValidationError, match="timeout"):
        resolve_config(manifest, {"token": "xoxb", "timeout": "soon"}, {})


def test_without_schema_returns_merged_map():
    manifest = Manifest(name="echo", base_state_key="echo", config_key="echo")

    config = resolve_config(manifest, {"b": 2}, {"echo": {"a": 1, "b": 1}})

    assert config == {"a": 1, "b": 2}


def test_resources_loaded_from_settings(manifest, monkeypatch):
    monkeypatch.setenv("AGENTMOUNT_PLUGIN_CONFIG", '{"slack": {"token": "env-token"}}')

    assert resolve_config(manifest)["token"] == "env-token"
