"""
Configuration Management
========================

Loads the auto-continue configuration from, in increasing precedence:

1. Built-in defaults
2. The workspace config file (``.todoforge/config.json``)
3. ``TODOFORGE_*`` environment variables

The config file uses the camelCase option names, for example::

    {
        "maxActionsPerSession": 10,
        "safetyThreshold": 0.8,
        "patterns": {"enabled": ["add-comment"], "disabled": []},
        "rateLimiting": {"maxActionsPerMinute": 3, "cooldownSeconds": 10}
    }

Nested sections are deep-merged into the defaults, so a file only needs the
keys it changes.
"""

import copy
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from todoforge.errors import ConfigurationError

CONFIG_DIRNAME = ".todoforge"
CONFIG_FILENAME = "config.json"

DEFAULT_ENABLED_PATTERNS = [
    "add-comment",
    "fix-formatting",
    "update-documentation",
    "add-import",
    "remove-unused-imports",
    "remove-unused-variables",
]
DEFAULT_DISABLED_PATTERNS = ["rename-variable", "implement-function"]

DEFAULT_FILE_PATTERNS = [".ts", ".tsx", ".js", ".jsx", ".py", ".java", ".cpp", ".c", ".h", ".md"]

STRATEGIES = ("conservative", "balanced", "creative")

DEFAULTS: Dict[str, Any] = {
    "maxActionsPerSession": 5,
    "sessionTimeoutMinutes": 60,
    "safetyThreshold": 0.7,
    "autoApproveThreshold": 0.7,
    "enableGitIntegration": False,
    "enableBackups": True,
    "enableReplay": False,
    "maxRetries": 3,
    "retryBackoffSeconds": 5.0,
    "implementationStrategy": "balanced",
    "honorPatternAutoApprove": False,
    "filePatterns": DEFAULT_FILE_PATTERNS,
    "patterns": {
        "enabled": DEFAULT_ENABLED_PATTERNS,
        "disabled": DEFAULT_DISABLED_PATTERNS,
        "confidence": {},
    },
    "rateLimiting": {
        "maxActionsPerMinute": 3,
        "cooldownSeconds": 10.0,
    },
    "git": {
        "branchPrefix": "todoforge-auto-",
        "commitPrefix": "[TodoForge Auto]",
    },
    "storage": {
        "sessionsDir": ".todoforge/sessions",
    },
}

# env var -> (config path, parser)
ENV_OVERRIDES = {
    "TODOFORGE_MAX_ACTIONS": (("maxActionsPerSession",), int),
    "TODOFORGE_SESSION_TIMEOUT": (("sessionTimeoutMinutes",), int),
    "TODOFORGE_SAFETY_THRESHOLD": (("safetyThreshold",), float),
    "TODOFORGE_AUTO_APPROVE_THRESHOLD": (("autoApproveThreshold",), float),
    "TODOFORGE_ENABLE_GIT": (("enableGitIntegration",), "bool"),
    "TODOFORGE_ENABLE_BACKUPS": (("enableBackups",), "bool"),
    "TODOFORGE_ENABLE_REPLAY": (("enableReplay",), "bool"),
    "TODOFORGE_MAX_RETRIES": (("maxRetries",), int),
    "TODOFORGE_STRATEGY": (("implementationStrategy",), str),
    "TODOFORGE_ENABLED_PATTERNS": (("patterns", "enabled"), "list"),
    "TODOFORGE_DISABLED_PATTERNS": (("patterns", "disabled"), "list"),
    "TODOFORGE_MAX_ACTIONS_PER_MINUTE": (("rateLimiting", "maxActionsPerMinute"), int),
    "TODOFORGE_COOLDOWN_SECONDS": (("rateLimiting", "cooldownSeconds"), float),
}


def deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Return ``base`` with ``override`` merged in; nested dicts merge, everything else replaces."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _parse_env_value(name: str, raw: str, kind: Any) -> Any:
    if kind == "bool":
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if kind == "list":
        return [item.strip() for item in raw.split(",") if item.strip()]
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name}={raw!r} is not a valid {kind.__name__}", key=name) from e


@dataclass
class RateLimitConfig:
    max_actions_per_minute: int = 3
    cooldown_seconds: float = 10.0


@dataclass
class PatternSelection:
    enabled: List[str] = field(default_factory=lambda: list(DEFAULT_ENABLED_PATTERNS))
    disabled: List[str] = field(default_factory=lambda: list(DEFAULT_DISABLED_PATTERNS))
    confidence: Dict[str, float] = field(default_factory=dict)

    def allows(self, pattern_id: str) -> bool:
        return pattern_id in self.enabled and pattern_id not in self.disabled


@dataclass
class GitConfig:
    branch_prefix: str = "todoforge-auto-"
    commit_prefix: str = "[TodoForge Auto]"


@dataclass
class AutoContinueConfig:
    """Options that govern one autonomous session."""
    max_actions_per_session: int = 5
    session_timeout_minutes: int = 60
    safety_threshold: float = 0.7
    auto_approve_threshold: float = 0.7
    enable_git_integration: bool = False
    enable_backups: bool = True
    enable_replay: bool = False
    max_retries: int = 3
    retry_backoff_seconds: float = 5.0
    implementation_strategy: str = "balanced"
    honor_pattern_auto_approve: bool = False
    file_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_FILE_PATTERNS))
    patterns: PatternSelection = field(default_factory=PatternSelection)
    rate_limiting: RateLimitConfig = field(default_factory=RateLimitConfig)
    git: GitConfig = field(default_factory=GitConfig)
    sessions_dir: str = ".todoforge/sessions"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AutoContinueConfig":
        """Build a config from a camelCase document (missing keys take defaults)."""
        merged = deep_merge(DEFAULTS, data)
        patterns = merged["patterns"]
        rate = merged["rateLimiting"]
        git = merged["git"]
        try:
            return cls(
                max_actions_per_session=int(merged["maxActionsPerSession"]),
                session_timeout_minutes=int(merged["sessionTimeoutMinutes"]),
                safety_threshold=float(merged["safetyThreshold"]),
                auto_approve_threshold=float(merged["autoApproveThreshold"]),
                enable_git_integration=bool(merged["enableGitIntegration"]),
                enable_backups=bool(merged["enableBackups"]),
                enable_replay=bool(merged["enableReplay"]),
                max_retries=int(merged["maxRetries"]),
                retry_backoff_seconds=float(merged["retryBackoffSeconds"]),
                implementation_strategy=str(merged["implementationStrategy"]),
                honor_pattern_auto_approve=bool(merged["honorPatternAutoApprove"]),
                file_patterns=[str(p) for p in merged["filePatterns"]],
                patterns=PatternSelection(
                    enabled=list(patterns.get("enabled", [])),
                    disabled=list(patterns.get("disabled", [])),
                    confidence={k: float(v) for k, v in (patterns.get("confidence") or {}).items()},
                ),
                rate_limiting=RateLimitConfig(
                    max_actions_per_minute=int(rate["maxActionsPerMinute"]),
                    cooldown_seconds=float(rate["cooldownSeconds"]),
                ),
                git=GitConfig(
                    branch_prefix=str(git["branchPrefix"]),
                    commit_prefix=str(git["commitPrefix"]),
                ),
                sessions_dir=str(merged["storage"]["sessionsDir"]),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxActionsPerSession": self.max_actions_per_session,
            "sessionTimeoutMinutes": self.session_timeout_minutes,
            "safetyThreshold": self.safety_threshold,
            "autoApproveThreshold": self.auto_approve_threshold,
            "enableGitIntegration": self.enable_git_integration,
            "enableBackups": self.enable_backups,
            "enableReplay": self.enable_replay,
            "maxRetries": self.max_retries,
            "retryBackoffSeconds": self.retry_backoff_seconds,
            "implementationStrategy": self.implementation_strategy,
            "honorPatternAutoApprove": self.honor_pattern_auto_approve,
            "filePatterns": list(self.file_patterns),
            "patterns": {
                "enabled": list(self.patterns.enabled),
                "disabled": list(self.patterns.disabled),
                "confidence": dict(self.patterns.confidence),
            },
            "rateLimiting": {
                "maxActionsPerMinute": self.rate_limiting.max_actions_per_minute,
                "cooldownSeconds": self.rate_limiting.cooldown_seconds,
            },
            "git": {
                "branchPrefix": self.git.branch_prefix,
                "commitPrefix": self.git.commit_prefix,
            },
            "storage": {"sessionsDir": self.sessions_dir},
        }

    def validate(self, known_pattern_ids: Optional[Iterable[str]] = None) -> "AutoContinueConfig":
        """
        Check value ranges and pattern references.

        Raises:
            ConfigurationError: on the first invalid option
        """
        for name in ("safety_threshold", "auto_approve_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be between 0 and 1, got {value}", key=name)
        for name in ("max_actions_per_session", "session_timeout_minutes", "max_retries"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1", key=name)
        if self.retry_backoff_seconds < 0 or self.rate_limiting.cooldown_seconds < 0:
            raise ConfigurationError("Delays cannot be negative", key="rateLimiting")
        if self.rate_limiting.max_actions_per_minute < 1:
            raise ConfigurationError("maxActionsPerMinute must be at least 1", key="rateLimiting")
        if self.implementation_strategy not in STRATEGIES:
            raise ConfigurationError(
                f"implementationStrategy must be one of {', '.join(STRATEGIES)}",
                key="implementationStrategy",
            )
        for pattern_id, value in self.patterns.confidence.items():
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"Confidence override for {pattern_id} must be between 0 and 1",
                                         key="patterns.confidence")

        if known_pattern_ids is not None:
            known = set(known_pattern_ids)
            referenced = (
                set(self.patterns.enabled)
                | set(self.patterns.disabled)
                | set(self.patterns.confidence)
            )
            unknown = sorted(referenced - known)
            if unknown:
                raise ConfigurationError(f"Unknown pattern id(s): {', '.join(unknown)}", key="patterns")
        return self


def config_path(workspace: Path) -> Path:
    return Path(workspace) / CONFIG_DIRNAME / CONFIG_FILENAME


def load_config(
    workspace: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AutoContinueConfig:
    """
    Load configuration for a workspace.

    Args:
        workspace: Workspace root; its ``.todoforge/config.json`` is read if present
        overrides: camelCase values applied last (e.g. CLI flags)
        environ: Environment mapping, defaults to ``os.environ``

    Raises:
        ConfigurationError: if the file is unreadable or a value is invalid
    """
    data: Dict[str, Any] = copy.deepcopy(DEFAULTS)

    if workspace is not None:
        path = config_path(workspace)
        if path.exists():
            try:
                file_config = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigurationError(f"Failed to load config file {path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"Config file {path} must contain a JSON object")
            data = deep_merge(data, file_config)

    env = os.environ if environ is None else environ
    for name, (path_keys, kind) in ENV_OVERRIDES.items():
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        target = data
        for key in path_keys[:-1]:
            target = target.setdefault(key, {})
        target[path_keys[-1]] = _parse_env_value(name, raw, kind)

    if overrides:
        data = deep_merge(data, overrides)

    return AutoContinueConfig.from_dict(data)
