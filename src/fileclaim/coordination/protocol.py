"""Claim protocol: the operations one agent performs on its own claim.

Each operation is a short, synchronous read-modify-write of the agent's own
state record, checked against the unified view. No cross-process locks are
taken; an agent's record has a single writer, and collisions between agents
are resolved through heartbeat staleness.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from filelock import Timeout

from fileclaim.config.schema import CoordinationConfig
from fileclaim.coordination.errors import (
    ClaimBlock,
    ClaimConflict,
    CorruptState,
    NoActiveWork,
    PersistenceError,
)
from fileclaim.coordination.handoff import HandoffLog
from fileclaim.coordination.schema import (
    AgentState,
    AgentStatus,
    ConflictRecord,
    CurrentWork,
    FileOwnership,
    HandoffEntry,
    Progress,
    StaleAgent,
    UnifiedView,
    WorkRecord,
    normalize_files,
    utcnow,
)
from fileclaim.coordination.store import AgentStateStore, StateBackend, decode_agent_state
from fileclaim.coordination.view import UnifiedViewBuilder, heartbeat_age

if TYPE_CHECKING:
    from fileclaim.agents.registry import AgentRegistry
    from fileclaim.coordination.advisor import AssignmentAdvisor, Recommendation

_log = logging.getLogger("fileclaim.coordination.protocol")

COMPLETED_REASON = "completed"
DEFAULT_RELEASE_REASON = "manual"


def _minutes_between(start: datetime, end: datetime) -> int:
    return max(0, round((end - start).total_seconds() / 60))


@dataclass
class ClaimResult:
    """Outcome of a successful start()."""

    agent: str
    files: list[str]
    task: str
    started: datetime
    overridden: list[ClaimBlock] = field(default_factory=list)  # Taken with force
    reclaimed: list[ClaimBlock] = field(default_factory=list)  # Taken from stale owners
    replaced: CurrentWork | None = None  # Previous claim of this agent

    def summary(self) -> str:
        lines = [
            f"{self.agent} claimed {len(self.files)} file(s) for '{self.task}': "
            + ", ".join(self.files)
        ]
        for block in self.reclaimed:
            lines.append(
                f"Reclaimed {block.file} from stale {block.owner} "
                f"(last seen {block.last_seen_seconds}s ago)"
            )
        for block in self.overridden:
            lines.append(f"Forced {block.file} away from {block.owner} ('{block.owner_task}')")
        if self.replaced is not None:
            lines.append(f"Replaced previous claim '{self.replaced.task}'")
        return "\n".join(lines)


@dataclass
class ReleaseResult:
    """Outcome of release()."""

    record: WorkRecord
    remaining: list[str] = field(default_factory=list)  # Files still claimed
    suggestions: list[Recommendation] = field(default_factory=list)

    @property
    def suggested_agent(self) -> str | None:
        return self.suggestions[0].agent if self.suggestions else None


@dataclass
class StatusReport:
    """What check() reports."""

    agent: str
    state: AgentState
    others: list[AgentState]  # Other agents currently active
    file_ownership: dict[str, FileOwnership]
    conflicts: list[ConflictRecord]
    stale_agents: list[StaleAgent]
    view_updated: datetime


class ClaimProtocol:
    """start/progress/heartbeat/complete/release/check for one agent."""

    def __init__(
        self,
        agent: str,
        backend: StateBackend,
        registry: AgentRegistry,
        config: CoordinationConfig | None = None,
        advisor: AssignmentAdvisor | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the protocol.

        Args:
            agent: Identity of the agent running this process
            backend: Shared state storage
            registry: Known agents (fixes unified view order)
            config: Thresholds and retention
            advisor: Optional successor recommender used on release

        Raises:
            UnknownAgent: `agent` is not registered.
        """
        registry.require(agent)
        self._agent = agent
        self._backend = backend
        self._config = config or CoordinationConfig()
        self._advisor = advisor
        self._clock = clock
        self._store = AgentStateStore(backend, agent, clock)
        self._builder = UnifiedViewBuilder(
            backend, registry.ids(), self._config.background_stale_after, clock
        )
        self._handoffs = HandoffLog(backend, self._config.handoff_retention)

    @property
    def agent(self) -> str:
        return self._agent

    @property
    def store(self) -> AgentStateStore:
        return self._store

    @property
    def view_builder(self) -> UnifiedViewBuilder:
        return self._builder

    @property
    def handoffs(self) -> HandoffLog:
        return self._handoffs

    def _active_state(self, operation: str) -> AgentState:
        state = self._store.read_or_reset()
        if state.status is not AgentStatus.ACTIVE or state.current_work is None:
            raise NoActiveWork(self._agent, operation)
        return state

    # =========================================================================
    # Claiming
    # =========================================================================

    def _owner_is_live(self, owner: FileOwnership, path: str, now: datetime) -> float | None:
        """Heartbeat age of an owner that still holds `path`, None if it no longer does.

        Reads the owner's own record rather than trusting a cached view, so a
        heartbeat sent after the view was built still counts.
        """
        try:
            data = self._backend.load(owner.agent)
            state = decode_agent_state(owner.agent, data) if data is not None else None
        except CorruptState as e:
            _log.warning("Treating %s as gone: %s", owner.agent, e.reason)
            return None
        if state is None or state.status is not AgentStatus.ACTIVE or state.current_work is None:
            return None
        if path not in state.current_work.files:
            return None
        return heartbeat_age(state, now)

    def start(self, files: list[str], task: str, force: bool = False) -> ClaimResult:
        """Claim files for a task, all or nothing.

        Files held by another agent are taken over if that agent is stale
        (its heartbeat is older than the claim-time threshold, or the view
        already marked it stale). Files held by a live agent block the
        whole claim unless `force` is set.

        Raises:
            ValueError: No files or no task given.
            ClaimConflict: Live owners hold requested files and force is off.
            PersistenceError: The claim could not be saved.
        """
        files = normalize_files(files)
        if not files:
            raise ValueError("at least one file is required")
        task = task.strip()
        if not task:
            raise ValueError("a task description is required")

        view = self._builder.fresh_view(self._config.view_fresh_for)
        now = self._clock()

        blocked: list[ClaimBlock] = []
        reclaimed: list[ClaimBlock] = []
        for path in files:
            owner = view.owner_of(path)
            if owner is None or owner.agent == self._agent:
                continue
            age = self._owner_is_live(owner, path, now)
            if age is None:
                continue
            block = ClaimBlock(
                file=path,
                owner=owner.agent,
                owner_task=owner.task,
                since=owner.since,
                last_seen_seconds=round(age),
                held_minutes=_minutes_between(owner.since, now),
            )
            # Claim-time threshold wins over the view's background classification
            if view.is_stale(owner.agent) or age > self._config.claim_stale_after:
                _log.info(
                    "Owner %s of %s is stale (%ds), reclaiming", owner.agent, path, round(age)
                )
                reclaimed.append(block)
            else:
                blocked.append(block)

        if blocked and not force:
            raise ClaimConflict(self._agent, blocked)
        for block in blocked:
            _log.warning(
                "%s forcing %s away from %s ('%s')",
                self._agent,
                block.file,
                block.owner,
                block.owner_task,
            )

        current = self._store.read_or_reset()
        replaced = current.current_work if current.status is AgentStatus.ACTIVE else None
        if replaced is not None:
            _log.info("%s replacing claim '%s'", self._agent, replaced.task)

        state = AgentState(
            agent=self._agent,
            status=AgentStatus.ACTIVE,
            current_work=CurrentWork(files=files, task=task, started=now),
            last_completed=current.last_completed,
            last_released=current.last_released,
        )
        self._store.write(state)
        self._builder.refresh()
        _log.info("%s claimed %s for '%s'", self._agent, ", ".join(files), task)

        return ClaimResult(
            agent=self._agent,
            files=files,
            task=task,
            started=now,
            overridden=blocked,
            reclaimed=reclaimed,
            replaced=replaced,
        )

    # =========================================================================
    # Keeping a claim alive
    # =========================================================================

    def progress(self, percentage: int, message: str | None = None) -> Progress:
        """Record progress (clamped to 0-100) and refresh the heartbeat.

        Raises:
            NoActiveWork: The agent is idle.
        """
        state = self._active_state("update progress")
        assert state.current_work is not None
        progress = Progress(
            percentage=max(0, min(100, int(percentage))),
            message=message or None,
            updated=self._clock(),
        )
        state.current_work.progress = progress
        self._store.write(state)
        _log.debug("%s progress %d%%", self._agent, progress.percentage)
        return progress

    def heartbeat(self) -> bool:
        """Refresh the heartbeat of an active claim.

        Returns:
            True if a heartbeat was written, False if the agent is idle
            (nothing to keep alive, state untouched).
        """
        state = self._store.read_or_reset()
        if state.status is not AgentStatus.ACTIVE:
            _log.debug("%s is idle, no heartbeat needed", self._agent)
            return False
        self._store.write(state)
        return True

    # =========================================================================
    # Handing off
    # =========================================================================

    def _notify_handoff(self, files: list[str], reason: str) -> None:
        entry = HandoffEntry(
            from_agent=self._agent, files=list(files), reason=reason, timestamp=self._clock()
        )
        try:
            self._handoffs.append(entry)
        except (PersistenceError, Timeout) as e:
            # The claim itself is already released at this point
            _log.error("Could not record handoff notification: %s", e)

    def complete(self) -> WorkRecord:
        """Finish the current work and go idle.

        Raises:
            NoActiveWork: The agent is idle (state is left unchanged).
        """
        state = self._active_state("complete")
        work = state.current_work
        assert work is not None
        now = self._clock()
        record = WorkRecord(
            files=list(work.files),
            task=work.task,
            duration_minutes=_minutes_between(work.started, now),
            finished=now,
            reason=COMPLETED_REASON,
        )
        self._store.write(
            AgentState(
                agent=self._agent,
                status=AgentStatus.IDLE,
                last_completed=record,
                last_released=state.last_released,
            )
        )
        self._notify_handoff(record.files, COMPLETED_REASON)
        self._builder.refresh()
        _log.info("%s completed '%s' after %d min", self._agent, work.task, record.duration_minutes)
        return record

    def release(
        self, reason: str = DEFAULT_RELEASE_REASON, files: list[str] | None = None
    ) -> ReleaseResult:
        """Give up the claim (or some of its files) without completing.

        Args:
            reason: Why the files are handed off
            files: Subset of claimed files to release; None releases all

        Raises:
            NoActiveWork: The agent is idle.
            ValueError: `files` is empty or names files this agent does not hold.
        """
        reason = reason.strip() or DEFAULT_RELEASE_REASON
        state = self._active_state("release")
        work = state.current_work
        assert work is not None

        if files is not None:
            released = normalize_files(files)
            if not released:
                raise ValueError("no files to release")
            not_held = [f for f in released if f not in work.files]
            if not_held:
                raise ValueError(f"{self._agent} does not hold: {', '.join(not_held)}")
            remaining = [f for f in work.files if f not in released]
        else:
            released = list(work.files)
            remaining = []

        now = self._clock()
        record = WorkRecord(
            files=released,
            task=work.task,
            duration_minutes=_minutes_between(work.started, now),
            finished=now,
            reason=reason,
        )
        if remaining:
            new_state = AgentState(
                agent=self._agent,
                status=AgentStatus.ACTIVE,
                current_work=CurrentWork(
                    files=remaining, task=work.task, started=work.started, progress=work.progress
                ),
                last_completed=state.last_completed,
                last_released=record,
            )
        else:
            new_state = AgentState(
                agent=self._agent,
                status=AgentStatus.IDLE,
                last_completed=state.last_completed,
                last_released=record,
            )
        self._store.write(new_state)
        self._notify_handoff(released, reason)
        view = self._builder.refresh()
        _log.info("%s released %s (%s)", self._agent, ", ".join(released), reason)

        suggestions: list[Recommendation] = []
        if self._advisor is not None:
            suggestions = self._advisor.recommend(
                released, work.task, view, exclude={self._agent}
            )
            if suggestions:
                _log.info("Suggested next agent for %s: %s", ", ".join(released), suggestions[0].agent)

        return ReleaseResult(record=record, remaining=remaining, suggestions=suggestions)

    # =========================================================================
    # Reporting
    # =========================================================================

    def check(self) -> StatusReport:
        """This agent's state alongside everyone else's claims."""
        view: UnifiedView = self._builder.fresh_view(self._config.view_fresh_for)
        own = self._store.read_or_reset()
        others = [
            s
            for name, s in view.agents.items()
            if name != self._agent and s.status is AgentStatus.ACTIVE
        ]
        return StatusReport(
            agent=self._agent,
            state=own,
            others=others,
            file_ownership=dict(view.file_ownership),
            conflicts=list(view.conflicts),
            stale_agents=list(view.stale_agents),
            view_updated=view.last_updated,
        )
