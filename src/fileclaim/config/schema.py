"""Configuration schema dataclasses for fileclaim.

Defines the structure of configuration at all levels (system, user, project).
All fields have defaults so partial configs merge together.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_STATE_DIR = ".fileclaim/states"


@dataclass
class CoordinationConfig:
    """Claim protocol settings.

    Example config.yaml:
        coordination:
          state_dir: .fileclaim/states
          claim_stale_after: 30
          background_stale_after: 1800
          view_fresh_for: 60
          handoff_retention: 10
    """

    state_dir: str = DEFAULT_STATE_DIR  # Relative paths resolve against the project root
    claim_stale_after: float = 30.0  # Seconds; owner heartbeat age that allows reclaiming at start
    background_stale_after: float = 1800.0  # Seconds; heartbeat age marking an agent stale in the view
    view_fresh_for: float = 60.0  # Seconds a cached unified view is trusted before a rebuild
    handoff_retention: int = 10  # Handoff log entries kept


@dataclass
class AdvisorConfig:
    """Assignment advisor weights."""

    file_weight: float = 0.4
    task_weight: float = 0.4
    workload_weight: float = 0.2
    workload_penalties: dict[str, float] = field(
        default_factory=lambda: {"idle": 0.0, "active": 10.0, "stale": 5.0}
    )


@dataclass
class AgentProfileConfig:
    """A known agent as declared in config."""

    id: str
    name: str | None = None
    primary: list[str] = field(default_factory=list)
    secondary: list[str] = field(default_factory=list)
    file_patterns: list[str] = field(default_factory=list)
    task_keywords: list[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, takes precedence over level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object."""

    agent: str | None = None  # Identity of the invoking agent
    coordination: CoordinationConfig = field(default_factory=CoordinationConfig)
    advisor: AdvisorConfig = field(default_factory=AdvisorConfig)
    agents: list[AgentProfileConfig] = field(default_factory=list)  # Empty: built-in agents
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level keys, kept for forward compatibility
    extra: dict[str, Any] = field(default_factory=dict)
