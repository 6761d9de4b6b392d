"""Exceptions raised by the claim protocol and its stores."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


class CoordinationError(Exception):
    """Base class for coordination failures."""


class CorruptState(CoordinationError):
    """A persisted record could not be parsed."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Corrupt state record '{key}': {reason}")
        self.key = key
        self.reason = reason


class PersistenceError(CoordinationError):
    """Writing a record failed; nothing was saved."""

    def __init__(self, key: str, cause: OSError) -> None:
        super().__init__(f"Could not save '{key}': {cause}")
        self.key = key
        self.cause = cause


class NoActiveWork(CoordinationError):
    """The operation needs an active claim but the agent is idle."""

    def __init__(self, agent: str, operation: str) -> None:
        super().__init__(f"{agent} has no active work to {operation}")
        self.agent = agent
        self.operation = operation


class UnknownAgent(CoordinationError):
    """The identity is not in the known-agent set."""

    def __init__(self, agent: str, known: list[str]) -> None:
        super().__init__(f"Unknown agent '{agent}' (known: {', '.join(known) or 'none'})")
        self.agent = agent
        self.known = known


@dataclass
class ClaimBlock:
    """A requested file held by another agent."""

    file: str
    owner: str
    owner_task: str
    since: datetime
    last_seen_seconds: int  # Owner heartbeat age
    held_minutes: int  # Time since the owner claimed it

    def describe(self) -> str:
        return (
            f"{self.file}: claimed by {self.owner} (last seen {self.last_seen_seconds}s ago, "
            f"held {self.held_minutes} min) for '{self.owner_task}'"
        )


class ClaimConflict(CoordinationError):
    """Requested files are held by live agents and force was not given."""

    def __init__(self, agent: str, blocks: list[ClaimBlock]) -> None:
        lines = [f"{agent} cannot claim {len(blocks)} file(s):"]
        lines.extend(f"  {b.describe()}" for b in blocks)
        lines.append("Use --force to override, or wait for them to finish.")
        super().__init__("\n".join(lines))
        self.agent = agent
        self.blocks = blocks
