"""
Tests for Configuration Management
==================================

Tests for todoforge/config.py
"""

import json

import pytest

from todoforge.config import (
    AutoContinueConfig,
    PatternSelection,
    config_path,
    deep_merge,
    load_config,
)
from todoforge.errors import ConfigurationError
from todoforge.patterns import SAFE_PATTERNS


def write_config(workspace, data):
    path = config_path(workspace)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestDefaults:
    """Tests for the built-in defaults."""

    def test_default_values(self, tmp_path):
        config = load_config(tmp_path, environ={})

        assert config.max_actions_per_session == 5
        assert config.session_timeout_minutes == 60
        assert config.safety_threshold == 0.7
        assert config.auto_approve_threshold == 0.7
        assert config.enable_backups
        assert not config.enable_git_integration
        assert config.implementation_strategy == "balanced"
        assert config.rate_limiting.max_actions_per_minute == 3
        assert config.rate_limiting.cooldown_seconds == 10.0

    def test_risky_patterns_disabled_by_default(self):
        selection = PatternSelection()

        assert selection.allows("add-comment")
        assert not selection.allows("rename-variable")
        assert not selection.allows("implement-function")

    def test_defaults_validate(self):
        AutoContinueConfig().validate(SAFE_PATTERNS.ids)

    def test_to_dict_round_trip(self):
        config = AutoContinueConfig(max_actions_per_session=9, implementation_strategy="creative")
        assert AutoContinueConfig.from_dict(config.to_dict()) == config


class TestLoadConfig:
    """Tests for load_config() precedence."""

    def test_file_is_deep_merged(self, tmp_path):
        write_config(tmp_path, {
            "maxActionsPerSession": 10,
            "rateLimiting": {"cooldownSeconds": 2},
        })
        config = load_config(tmp_path, environ={})

        assert config.max_actions_per_session == 10
        assert config.rate_limiting.cooldown_seconds == 2.0
        assert config.rate_limiting.max_actions_per_minute == 3
        assert config.safety_threshold == 0.7

    def test_env_overrides_file(self, tmp_path):
        write_config(tmp_path, {"safetyThreshold": 0.8})
        config = load_config(tmp_path, environ={
            "TODOFORGE_SAFETY_THRESHOLD": "0.9",
            "TODOFORGE_ENABLE_GIT": "yes",
            "TODOFORGE_ENABLED_PATTERNS": "add-comment, fix-formatting",
        })

        assert config.safety_threshold == 0.9
        assert config.enable_git_integration
        assert config.patterns.enabled == ["add-comment", "fix-formatting"]

    def test_empty_env_value_ignored(self, tmp_path):
        config = load_config(tmp_path, environ={"TODOFORGE_MAX_ACTIONS": ""})
        assert config.max_actions_per_session == 5

    def test_overrides_applied_last(self, tmp_path):
        write_config(tmp_path, {"maxActionsPerSession": 10})
        config = load_config(
            tmp_path,
            overrides={"maxActionsPerSession": 2},
            environ={"TODOFORGE_MAX_ACTIONS": "7"},
        )
        assert config.max_actions_per_session == 2

    def test_bad_env_value(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path, environ={"TODOFORGE_MAX_ACTIONS": "lots"})
        assert exc_info.value.key == "TODOFORGE_MAX_ACTIONS"

    def test_malformed_file(self, tmp_path):
        path = config_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_config(tmp_path, environ={})

    def test_file_must_be_object(self, tmp_path):
        write_config(tmp_path, [1, 2, 3])
        with pytest.raises(ConfigurationError):
            load_config(tmp_path, environ={})

    def test_deep_merge_does_not_mutate(self):
        base = {"a": {"b": 1, "c": 2}}
        merged = deep_merge(base, {"a": {"b": 5}})

        assert merged == {"a": {"b": 5, "c": 2}}
        assert base == {"a": {"b": 1, "c": 2}}


class TestValidate:
    """Tests for AutoContinueConfig.validate()"""

    @pytest.mark.parametrize("data", [
        {"safetyThreshold": 1.5},
        {"autoApproveThreshold": -0.1},
        {"maxActionsPerSession": 0},
        {"maxRetries": 0},
        {"implementationStrategy": "reckless"},
        {"rateLimiting": {"cooldownSeconds": -1}},
        {"rateLimiting": {"maxActionsPerMinute": 0}},
        {"patterns": {"confidence": {"add-comment": 2}}},
    ])
    def test_invalid_values(self, data):
        with pytest.raises(ConfigurationError):
            AutoContinueConfig.from_dict(data).validate()

    def test_unknown_pattern_id(self):
        config = AutoContinueConfig.from_dict({"patterns": {"enabled": ["add-comment", "make-coffee"]}})

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate(SAFE_PATTERNS.ids)
        assert "make-coffee" in str(exc_info.value)

    def test_pattern_ids_unchecked_without_table(self):
        config = AutoContinueConfig.from_dict({"patterns": {"enabled": ["make-coffee"]}})
        assert config.validate() is config

    def test_uncoercible_value(self):
        with pytest.raises(ConfigurationError):
            AutoContinueConfig.from_dict({"maxActionsPerSession": "many"})
