"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from fileclaim.config.merge import merge_configs
from fileclaim.config.paths import get_config_paths
from fileclaim.config.schema import (
    AdvisorConfig,
    AgentProfileConfig,
    Config,
    CoordinationConfig,
    LoggingConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("fileclaim.config")

# Global cached config
_cached_config: Config | None = None

ENV_AGENT = "FILECLAIM_AGENT"
ENV_STATE_DIR = "FILECLAIM_STATE_DIR"
ENV_LOG = "FILECLAIM_LOG"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build config dict from environment variables (highest priority)."""
    overrides: dict[str, Any] = {}

    agent = os.environ.get(ENV_AGENT)
    if agent:
        overrides["agent"] = agent

    state_dir = os.environ.get(ENV_STATE_DIR)
    if state_dir:
        overrides.setdefault("coordination", {})["state_dir"] = state_dir

    log_path = os.environ.get(ENV_LOG)
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    return overrides


def _positive(data: dict[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        _log.warning("Ignoring invalid coordination.%s=%r, using %s", key, value, default)
        return default
    return float(value)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert merged dict to typed Config dataclass."""
    defaults = CoordinationConfig()
    coord_data = data.get("coordination") or {}
    retention = coord_data.get("handoff_retention", defaults.handoff_retention)
    if isinstance(retention, bool) or not isinstance(retention, int) or retention < 1:
        _log.warning("Ignoring invalid coordination.handoff_retention=%r", retention)
        retention = defaults.handoff_retention
    coordination = CoordinationConfig(
        state_dir=str(coord_data.get("state_dir") or defaults.state_dir),
        claim_stale_after=_positive(coord_data, "claim_stale_after", defaults.claim_stale_after),
        background_stale_after=_positive(
            coord_data, "background_stale_after", defaults.background_stale_after
        ),
        view_fresh_for=_positive(coord_data, "view_fresh_for", defaults.view_fresh_for),
        handoff_retention=retention,
    )

    # Advisor weights
    advisor_defaults = AdvisorConfig()
    advisor_data = data.get("advisor") or {}
    penalties = dict(advisor_defaults.workload_penalties)
    penalties.update(
        {
            str(k): float(v)
            for k, v in (advisor_data.get("workload_penalties") or {}).items()
            if isinstance(v, (int, float))
        }
    )
    advisor = AdvisorConfig(
        file_weight=float(advisor_data.get("file_weight", advisor_defaults.file_weight)),
        task_weight=float(advisor_data.get("task_weight", advisor_defaults.task_weight)),
        workload_weight=float(
            advisor_data.get("workload_weight", advisor_defaults.workload_weight)
        ),
        workload_penalties=penalties,
    )

    # Known agents (a list, so a project config replaces the whole set)
    agents = [
        AgentProfileConfig(
            id=str(a["id"]),
            name=a.get("name"),
            primary=_string_list(a.get("primary")),
            secondary=_string_list(a.get("secondary")),
            file_patterns=_string_list(a.get("file_patterns")),
            task_keywords=_string_list(a.get("task_keywords")),
        )
        for a in data.get("agents") or []
        if isinstance(a, dict) and a.get("id")
    ]

    log_data = data.get("logging") or {}
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    known_keys = {"agent", "coordination", "advisor", "agents", "logging"}
    extra = {k: v for k, v in data.items() if k not in known_keys}

    return Config(
        agent=data.get("agent"),
        coordination=coordination,
        advisor=advisor,
        agents=agents,
        logging=logging_config,
        extra=extra,
    )


def load_config(root: str | Path | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config (<root>/.fileclaim/config.yaml)
    3. User config
    4. System config

    Args:
        root: Project directory for project-level config.
        reload: Force reload even if cached.

    Returns:
        Merged Config object.
    """
    global _cached_config

    if _cached_config is not None and not reload and root is None:
        return _cached_config

    configs: list[dict[str, Any]] = []

    for path in get_config_paths(root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            configs.append(config_data)

    env_config = env_overrides()
    if env_config:
        configs.append(env_config)

    config = dict_to_config(merge_configs(*configs))

    # Cache only global config (no project root)
    if root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config (useful for testing)."""
    global _cached_config
    _cached_config = None
