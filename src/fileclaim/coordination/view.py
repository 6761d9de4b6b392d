"""Unified view reconciliation.

Folds every known agent's state into one snapshot: who owns which file,
which claims collide, and which active agents have gone quiet. The view is
derived data, rebuilt from scratch each pass, so concurrent rebuilds by
different agents are harmless (last writer wins).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from fileclaim.coordination.errors import CorruptState, PersistenceError
from fileclaim.coordination.schema import (
    AgentState,
    AgentStatus,
    ConflictRecord,
    FileOwnership,
    StaleAgent,
    UnifiedView,
    utcnow,
)
from fileclaim.coordination.store import StateBackend, decode_agent_state

_log = logging.getLogger("fileclaim.coordination.view")

VIEW_KEY = "unified-view"


def heartbeat_age(state: AgentState, now: datetime) -> float:
    """Seconds since the agent last wrote its state."""
    return (now - state.last_heartbeat).total_seconds()


def classify(state: AgentState, now: datetime, threshold: float) -> AgentStatus:
    """View-time status of an agent.

    An active agent whose heartbeat is older than `threshold` seconds is
    STALE; every other state keeps its own status. Never persisted.
    """
    if state.status is AgentStatus.ACTIVE and heartbeat_age(state, now) > threshold:
        return AgentStatus.STALE
    return state.status


class UnifiedViewBuilder:
    """Builds, publishes and loads the unified view."""

    def __init__(
        self,
        backend: StateBackend,
        agents: Iterable[str],
        stale_after: float,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the builder.

        Args:
            backend: Where agent states and the view live
            agents: Known agent ids, in processing order
            stale_after: Heartbeat age (seconds) that marks an active agent stale
            clock: Source of "now"
        """
        self._backend = backend
        self._agents = list(agents)
        self._stale_after = stale_after
        self._clock = clock

    @property
    def agents(self) -> list[str]:
        return list(self._agents)

    def _read_agent(self, agent: str, now: datetime) -> AgentState:
        data = self._backend.load(agent)
        if data is None:
            return AgentState.idle(agent, now)
        state = decode_agent_state(agent, data)
        if state.agent != agent:
            raise CorruptState(agent, f"record belongs to '{state.agent}'")
        return state

    def build(self) -> UnifiedView:
        """Reconcile all agent states into a new view (nothing is written)."""
        now = self._clock()
        view = UnifiedView(last_updated=now)

        for agent in self._agents:
            try:
                state = self._read_agent(agent, now)
            except CorruptState as e:
                _log.warning("Unreadable state for %s: %s", agent, e.reason)
                view.agents[agent] = AgentState(
                    agent=agent,
                    status=AgentStatus.ERROR,
                    last_heartbeat=now,
                    error=e.reason,
                )
                continue

            if classify(state, now, self._stale_after) is AgentStatus.STALE:
                view.stale_agents.append(
                    StaleAgent(
                        agent=agent,
                        last_seen=state.last_heartbeat,
                        minutes_ago=round(heartbeat_age(state, now) / 60),
                    )
                )
                state.status = AgentStatus.STALE

            view.agents[agent] = state

            if state.status is not AgentStatus.ACTIVE or state.current_work is None:
                continue
            work = state.current_work
            for path in work.files:
                owner = view.file_ownership.get(path)
                if owner is None:
                    view.file_ownership[path] = FileOwnership(
                        agent=agent, since=work.started, task=work.task
                    )
                elif owner.agent != agent:
                    view.conflicts.append(
                        ConflictRecord(file=path, agents=(owner.agent, agent), detected=now)
                    )

        return view

    def publish(self, view: UnifiedView) -> None:
        """Persist a view for other agents and tools.

        Raises:
            PersistenceError: The write failed.
        """
        self._backend.save(VIEW_KEY, view.to_dict())

    def rebuild(self) -> UnifiedView:
        """Build and publish a new view."""
        view = self.build()
        self.publish(view)
        _log.debug(
            "Unified view rebuilt: %d active, %d conflicts, %d stale",
            len(view.active_agents()),
            len(view.conflicts),
            len(view.stale_agents),
        )
        return view

    def refresh(self) -> UnifiedView:
        """Build and try to publish; a failed publish is logged, not raised."""
        view = self.build()
        try:
            self.publish(view)
        except PersistenceError as e:
            _log.warning("%s; continuing with an unpublished view", e)
        return view

    def load_cached(self) -> UnifiedView | None:
        """The last published view, or None if absent or unreadable."""
        try:
            data = self._backend.load(VIEW_KEY)
        except CorruptState as e:
            _log.warning("Ignoring cached view: %s", e.reason)
            return None
        if not isinstance(data, dict):
            return None
        try:
            return UnifiedView.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            _log.warning("Ignoring cached view: %s", e)
            return None

    def fresh_view(self, max_age: float) -> UnifiedView:
        """The cached view if younger than `max_age` seconds, else a rebuilt one."""
        cached = self.load_cached()
        if cached is not None:
            age = (self._clock() - cached.last_updated).total_seconds()
            if age <= max_age:
                return cached
            _log.info("Unified view is %ds old, rebuilding", round(age))
        return self.refresh()
