"""Data schemas for file-claim coordination."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp (or pass a datetime through) as aware UTC."""
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"not a timestamp: {value!r}")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _string_list(value: Any, what: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{what} must be a list of strings")
    return list(value)


def normalize_files(files: list[str]) -> list[str]:
    """Strip blanks and duplicates from a file list, keeping first-seen order."""
    seen: dict[str, None] = {}
    for f in files:
        path = f.strip()
        if path:
            seen.setdefault(path, None)
    return list(seen)


class AgentStatus(Enum):
    """Status of an agent.

    Only IDLE and ACTIVE are ever persisted by an agent. STALE and ERROR
    are annotations applied by the unified view.
    """

    IDLE = "idle"
    ACTIVE = "active"
    STALE = "stale"  # Active, but heartbeat older than the threshold
    ERROR = "error"  # Record could not be read

    @property
    def persistable(self) -> bool:
        return self in (AgentStatus.IDLE, AgentStatus.ACTIVE)


@dataclass
class Progress:
    """Self-reported progress on the current work."""

    percentage: int
    message: str | None = None
    updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "percentage": self.percentage,
            "message": self.message,
            "updated": self.updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Progress:
        percentage = data["percentage"]
        if not isinstance(percentage, int) or not 0 <= percentage <= 100:
            raise ValueError(f"progress percentage out of range: {percentage!r}")
        return cls(
            percentage=percentage,
            message=data.get("message"),
            updated=parse_timestamp(data["updated"]),
        )


@dataclass
class CurrentWork:
    """An agent's active claim."""

    files: list[str]
    task: str
    started: datetime = field(default_factory=utcnow)
    progress: Progress | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": list(self.files),
            "task": self.task,
            "started": self.started.isoformat(),
            "progress": self.progress.to_dict() if self.progress else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CurrentWork:
        files = _string_list(data["files"], "current_work.files")
        if not files:
            raise ValueError("current_work.files must not be empty")
        progress = data.get("progress")
        return cls(
            files=files,
            task=str(data["task"]),
            started=parse_timestamp(data["started"]),
            progress=Progress.from_dict(progress) if progress else None,
        )


@dataclass
class WorkRecord:
    """A finished work episode (completed or released)."""

    files: list[str]
    task: str
    duration_minutes: int
    finished: datetime = field(default_factory=utcnow)
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": list(self.files),
            "task": self.task,
            "duration_minutes": self.duration_minutes,
            "finished": self.finished.isoformat(),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkRecord:
        return cls(
            files=_string_list(data.get("files", []), "record.files"),
            task=str(data.get("task", "")),
            duration_minutes=int(data.get("duration_minutes", 0)),
            finished=parse_timestamp(data["finished"]),
            reason=data.get("reason"),
        )


@dataclass
class AgentState:
    """One agent's activity record.

    `current_work` is present if and only if the agent is working, i.e. the
    status is ACTIVE (or STALE in a view).
    """

    agent: str
    status: AgentStatus = AgentStatus.IDLE
    current_work: CurrentWork | None = None
    last_heartbeat: datetime = field(default_factory=utcnow)
    last_completed: WorkRecord | None = None
    last_released: WorkRecord | None = None
    error: str | None = None  # Only on ERROR view entries

    @classmethod
    def idle(cls, agent: str, now: datetime | None = None) -> AgentState:
        return cls(agent=agent, last_heartbeat=now or utcnow())

    @property
    def is_working(self) -> bool:
        return self.status in (AgentStatus.ACTIVE, AgentStatus.STALE)

    def validate(self) -> None:
        """Raise ValueError if the current_work/status invariant is broken."""
        if self.is_working and self.current_work is None:
            raise ValueError(f"{self.status.value} agent has no current_work")
        if not self.is_working and self.current_work is not None:
            raise ValueError(f"{self.status.value} agent has current_work")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "agent": self.agent,
            "status": self.status.value,
            "current_work": self.current_work.to_dict() if self.current_work else None,
            "last_heartbeat": self.last_heartbeat.isoformat(),
        }
        if self.last_completed:
            data["last_completed"] = self.last_completed.to_dict()
        if self.last_released:
            data["last_released"] = self.last_released.to_dict()
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentState:
        current = data.get("current_work")
        completed = data.get("last_completed")
        released = data.get("last_released")
        state = cls(
            agent=str(data["agent"]),
            status=AgentStatus(data.get("status", "idle")),
            current_work=CurrentWork.from_dict(current) if current else None,
            last_heartbeat=parse_timestamp(data["last_heartbeat"]),
            last_completed=WorkRecord.from_dict(completed) if completed else None,
            last_released=WorkRecord.from_dict(released) if released else None,
            error=data.get("error"),
        )
        state.validate()
        return state


@dataclass
class FileOwnership:
    """Who holds a file in the unified view."""

    agent: str
    since: datetime
    task: str

    def to_dict(self) -> dict[str, Any]:
        return {"agent": self.agent, "since": self.since.isoformat(), "task": self.task}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileOwnership:
        return cls(
            agent=data["agent"],
            since=parse_timestamp(data["since"]),
            task=data.get("task", ""),
        )


@dataclass
class ConflictRecord:
    """Two active agents claiming the same file."""

    file: str
    agents: tuple[str, str]  # (current owner, later claimant)
    detected: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "agents": list(self.agents),
            "detected": self.detected.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConflictRecord:
        owner, claimant = data["agents"]
        return cls(
            file=data["file"],
            agents=(owner, claimant),
            detected=parse_timestamp(data["detected"]),
        )


@dataclass
class StaleAgent:
    """An active agent whose heartbeat has gone quiet."""

    agent: str
    last_seen: datetime
    minutes_ago: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent": self.agent,
            "last_seen": self.last_seen.isoformat(),
            "minutes_ago": self.minutes_ago,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StaleAgent:
        return cls(
            agent=data["agent"],
            last_seen=parse_timestamp(data["last_seen"]),
            minutes_ago=int(data["minutes_ago"]),
        )


@dataclass
class UnifiedView:
    """Reconciled snapshot of every known agent.

    Rebuilt from scratch on each pass; conflicts and stale agents are a
    snapshot of that pass, not a running history.
    """

    last_updated: datetime
    agents: dict[str, AgentState] = field(default_factory=dict)
    file_ownership: dict[str, FileOwnership] = field(default_factory=dict)
    conflicts: list[ConflictRecord] = field(default_factory=list)
    stale_agents: list[StaleAgent] = field(default_factory=list)

    def owner_of(self, path: str) -> FileOwnership | None:
        return self.file_ownership.get(path)

    def active_agents(self) -> list[AgentState]:
        return [s for s in self.agents.values() if s.status is AgentStatus.ACTIVE]

    def is_stale(self, agent: str) -> bool:
        return any(s.agent == agent for s in self.stale_agents)

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_updated": self.last_updated.isoformat(),
            "agents": {name: s.to_dict() for name, s in self.agents.items()},
            "file_ownership": {f: o.to_dict() for f, o in self.file_ownership.items()},
            "conflicts": [c.to_dict() for c in self.conflicts],
            "stale_agents": [s.to_dict() for s in self.stale_agents],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UnifiedView:
        return cls(
            last_updated=parse_timestamp(data["last_updated"]),
            agents={
                name: AgentState.from_dict(s) for name, s in (data.get("agents") or {}).items()
            },
            file_ownership={
                f: FileOwnership.from_dict(o)
                for f, o in (data.get("file_ownership") or {}).items()
            },
            conflicts=[ConflictRecord.from_dict(c) for c in data.get("conflicts") or []],
            stale_agents=[StaleAgent.from_dict(s) for s in data.get("stale_agents") or []],
        )


@dataclass
class HandoffEntry:
    """Notification that an agent let go of some files."""

    from_agent: str
    files: list[str]
    reason: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_agent,
            "files": list(self.files),
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HandoffEntry:
        return cls(
            from_agent=data["from"],
            files=_string_list(data.get("files", []), "handoff.files"),
            reason=data.get("reason", ""),
            timestamp=parse_timestamp(data["timestamp"]),
        )
