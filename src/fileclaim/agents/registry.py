"""Registry of the known agents taking part in coordination."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from fileclaim.agents.schema import AgentProfile
from fileclaim.coordination.errors import UnknownAgent

if TYPE_CHECKING:
    from fileclaim.config.schema import AgentProfileConfig

_log = logging.getLogger("fileclaim.agents")

# Keys in the state directory that are not agents
RESERVED_IDS = frozenset({"unified-view", "handoffs"})

_VALID_ID = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")


class AgentRegistry:
    """Ordered set of known agents.

    Order matters: the unified view processes agents in registration
    order, so the first registered agent wins ownership ties.
    """

    def __init__(self, profiles: list[AgentProfile] | None = None) -> None:
        self._profiles: dict[str, AgentProfile] = {}
        if profiles is None:
            self._load_builtin_profiles()
        else:
            for profile in profiles:
                self.register(profile)

    def _load_builtin_profiles(self) -> None:
        """Load the default three-agent setup."""
        self.register(
            AgentProfile(
                id="claudeCode",
                name="Claude Code",
                primary=["architecture", "foundation", "refactoring", "documentation"],
                secondary=["tests", "config", "build"],
                file_patterns=[
                    r".*\.md$",
                    r".*architecture.*$",
                    r".*config.*$",
                    r".*\.config\.",
                    r"CLAUDE\.md$",
                    r"package\.json$",
                    r".*\.yml$",
                    r".*\.yaml$",
                ],
                task_keywords=[
                    "architect",
                    "foundation",
                    "refactor",
                    "document",
                    "structure",
                    "design",
                    "organize",
                ],
            )
        )
        self.register(
            AgentProfile(
                id="copilot",
                name="GitHub Copilot",
                primary=["ml", "algorithms", "data-processing", "optimization"],
                secondary=["tests", "config", "performance"],
                file_patterns=[
                    r".*/ml/.*$",
                    r".*machine.*learning.*$",
                    r".*neural.*$",
                    r".*algorithm.*$",
                    r".*probabilistic.*$",
                    r".*inference.*$",
                    r".*markov.*$",
                ],
                task_keywords=[
                    "ml",
                    "machine learning",
                    "neural",
                    "algorithm",
                    "inference",
                    "model",
                    "training",
                    "optimization",
                ],
            )
        )
        self.register(
            AgentProfile(
                id="cursor",
                name="Cursor",
                primary=["ui", "integration", "testing", "frontend"],
                secondary=["config", "api"],
                file_patterns=[
                    r".*/components/.*$",
                    r".*/ui/.*$",
                    r".*\.test\..*$",
                    r".*\.spec\..*$",
                    r".*integration.*$",
                    r".*\.tsx?$",
                    r".*hooks.*$",
                    r".*pages.*$",
                ],
                task_keywords=[
                    "ui",
                    "component",
                    "test",
                    "integration",
                    "frontend",
                    "interface",
                    "user",
                    "visual",
                    "react",
                ],
            )
        )

    @classmethod
    def from_config(cls, profiles: list[AgentProfileConfig]) -> AgentRegistry:
        """Build the registry from config, or the built-ins if none are configured.

        Profiles with an invalid id or file pattern are skipped with a warning.
        """
        if not profiles:
            return cls()
        registry = cls([])
        for p in profiles:
            try:
                registry.register(
                    AgentProfile(
                        id=p.id,
                        name=p.name or "",
                        primary=p.primary,
                        secondary=p.secondary,
                        file_patterns=p.file_patterns,
                        task_keywords=p.task_keywords,
                    )
                )
            except (ValueError, re.error) as e:
                _log.warning("Skipping configured agent %r: %s", p.id, e)
        return registry

    def register(self, profile: AgentProfile) -> None:
        """Add or replace an agent.

        Raises:
            ValueError: The id is reserved or not usable as a state key.
        """
        if profile.id in RESERVED_IDS or not _VALID_ID.match(profile.id):
            raise ValueError(f"invalid agent id: {profile.id!r}")
        self._profiles[profile.id] = profile

    def get(self, agent_id: str) -> AgentProfile | None:
        return self._profiles.get(agent_id)

    def require(self, agent_id: str) -> AgentProfile:
        """Get an agent, raising UnknownAgent if it is not registered."""
        profile = self._profiles.get(agent_id)
        if profile is None:
            raise UnknownAgent(agent_id, self.ids())
        return profile

    def ids(self) -> list[str]:
        return list(self._profiles)

    def list_profiles(self) -> list[AgentProfile]:
        return list(self._profiles.values())

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)

    def load_from_directory(self, directory: Path) -> int:
        """Load extra agent profiles from YAML files in a directory.

        Args:
            directory: Directory containing one .yaml profile per agent

        Returns:
            Number of profiles loaded
        """
        if not directory.exists():
            return 0

        loaded = 0
        for yaml_file in sorted(directory.glob("*.yaml")):
            try:
                with open(yaml_file, encoding="utf-8") as f:
                    data = yaml.safe_load(f)
                if data and isinstance(data, dict):
                    self.register(AgentProfile.from_dict(data))
                    loaded += 1
            except (OSError, yaml.YAMLError, KeyError, ValueError, re.error) as e:
                _log.warning("Skipping agent profile %s: %s", yaml_file, e)
                continue

        return loaded
