"""Data schemas for known agents."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any


@dataclass
class AgentProfile:
    """A known agent identity and what it is good at.

    The expertise fields only feed the assignment advisor; the claim
    protocol treats every agent the same.
    """

    id: str  # e.g., "claudeCode"
    name: str = ""  # Human-readable name
    primary: list[str] = field(default_factory=list)  # Primary areas, e.g. "refactoring"
    secondary: list[str] = field(default_factory=list)
    file_patterns: list[str] = field(default_factory=list)  # Regexes over file paths
    task_keywords: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.id
        self._compiled = [re.compile(p) for p in self.file_patterns]

    def matches_file(self, path: str) -> bool:
        return any(p.search(path) for p in self._compiled)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentProfile:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            primary=list(data.get("primary", [])),
            secondary=list(data.get("secondary", [])),
            file_patterns=list(data.get("file_patterns", [])),
            task_keywords=list(data.get("task_keywords", [])),
        )
