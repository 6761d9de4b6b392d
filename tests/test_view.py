"""Tests for unified view reconciliation."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from fileclaim.coordination import (
    AgentState,
    AgentStateStore,
    AgentStatus,
    CurrentWork,
    MemoryBackend,
    PersistenceError,
    UnifiedViewBuilder,
    YamlFileBackend,
    classify,
)
from fileclaim.coordination.view import VIEW_KEY
from tests.utils import T0, FakeClock

AGENTS = ["alpha", "beta", "gamma"]


def claim(backend: MemoryBackend, clock: FakeClock, agent: str, files: list[str], task: str) -> None:
    AgentStateStore(backend, agent, clock).write(
        AgentState(
            agent=agent,
            status=AgentStatus.ACTIVE,
            current_work=CurrentWork(files, task, clock()),
        )
    )


class TestClassify:
    def test_fresh_active_stays_active(self) -> None:
        state = AgentState(
            agent="alpha",
            status=AgentStatus.ACTIVE,
            current_work=CurrentWork(["a.ts"], "t", T0),
            last_heartbeat=T0,
        )
        assert classify(state, T0 + timedelta(seconds=30), 30) is AgentStatus.ACTIVE

    def test_old_active_is_stale(self) -> None:
        state = AgentState(
            agent="alpha",
            status=AgentStatus.ACTIVE,
            current_work=CurrentWork(["a.ts"], "t", T0),
            last_heartbeat=T0,
        )
        assert classify(state, T0 + timedelta(seconds=31), 30) is AgentStatus.STALE
        # Classification never touches the state itself
        assert state.status is AgentStatus.ACTIVE

    def test_old_idle_stays_idle(self) -> None:
        state = AgentState.idle("alpha", T0)
        assert classify(state, T0 + timedelta(days=1), 30) is AgentStatus.IDLE


class TestUnifiedViewBuilder:
    def test_empty_backend_all_idle(self, backend: MemoryBackend, clock: FakeClock) -> None:
        view = UnifiedViewBuilder(backend, AGENTS, 1800, clock).build()

        assert list(view.agents) == AGENTS
        assert all(s.status is AgentStatus.IDLE for s in view.agents.values())
        assert view.file_ownership == {}
        assert view.conflicts == []
        assert view.last_updated == T0
        # Idle defaults are not written back
        assert backend.documents == {}

    def test_ownership_since_is_claim_start(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        claim(backend, clock, "alpha", ["a.ts"], "refactor")
        clock.advance(10)

        view = UnifiedViewBuilder(backend, AGENTS, 1800, clock).build()

        owner = view.owner_of("a.ts")
        assert owner is not None
        assert owner.agent == "alpha"
        assert owner.since == T0
        assert owner.task == "refactor"

    def test_first_claimant_keeps_ownership(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        # beta writes first, but alpha comes first in processing order
        claim(backend, clock, "beta", ["a.ts", "x.ts"], "tests")
        clock.advance(5)
        claim(backend, clock, "alpha", ["a.ts"], "refactor")

        view = UnifiedViewBuilder(backend, AGENTS, 1800, clock).build()

        assert view.file_ownership["a.ts"].agent == "alpha"
        assert view.file_ownership["x.ts"].agent == "beta"
        assert len(view.conflicts) == 1
        conflict = view.conflicts[0]
        assert conflict.file == "a.ts"
        assert conflict.agents == ("alpha", "beta")
        assert conflict.detected == clock.now

    def test_stale_agent_marked_and_loses_ownership(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        claim(backend, clock, "alpha", ["a.ts"], "refactor")
        clock.advance(1801)

        view = UnifiedViewBuilder(backend, AGENTS, 1800, clock).build()

        assert view.agents["alpha"].status is AgentStatus.STALE
        assert view.is_stale("alpha")
        assert view.stale_agents[0].minutes_ago == 30
        assert view.stale_agents[0].last_seen == T0
        assert "a.ts" not in view.file_ownership
        # Persisted record is untouched
        assert backend.documents["alpha"]["status"] == "active"

    def test_corrupt_record_isolated(
        self, backend: MemoryBackend, clock: FakeClock, caplog: pytest.LogCaptureFixture
    ) -> None:
        backend.documents["alpha"] = {"agent": "alpha", "status": "bogus"}
        claim(backend, clock, "beta", ["b.ts"], "tests")

        with caplog.at_level("WARNING", logger="fileclaim"):
            view = UnifiedViewBuilder(backend, AGENTS, 1800, clock).build()

        assert view.agents["alpha"].status is AgentStatus.ERROR
        assert view.agents["alpha"].error
        assert view.file_ownership["b.ts"].agent == "beta"
        assert "Unreadable state for alpha" in caplog.text

    def test_record_under_wrong_key_is_error(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        backend.documents["alpha"] = AgentState.idle("beta", T0).to_dict()
        view = UnifiedViewBuilder(backend, AGENTS, 1800, clock).build()
        assert view.agents["alpha"].status is AgentStatus.ERROR

    def test_rebuild_is_idempotent(self, backend: MemoryBackend, clock: FakeClock) -> None:
        claim(backend, clock, "alpha", ["a.ts", "b.ts"], "refactor")
        claim(backend, clock, "beta", ["b.ts"], "tests")
        builder = UnifiedViewBuilder(backend, AGENTS, 1800, clock)

        first = builder.rebuild()
        clock.advance(1)
        second = builder.rebuild()

        assert first.file_ownership == second.file_ownership
        assert [(c.file, c.agents) for c in first.conflicts] == [
            (c.file, c.agents) for c in second.conflicts
        ]
        assert second.last_updated > first.last_updated

    def test_rebuild_publishes(self, backend: MemoryBackend, clock: FakeClock) -> None:
        claim(backend, clock, "alpha", ["a.ts"], "refactor")
        builder = UnifiedViewBuilder(backend, AGENTS, 1800, clock)

        view = builder.rebuild()

        assert VIEW_KEY in backend.documents
        cached = builder.load_cached()
        assert cached is not None
        assert cached.file_ownership == view.file_ownership

    def test_load_cached_ignores_garbage(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        backend.documents[VIEW_KEY] = {"agents": {}}
        assert UnifiedViewBuilder(backend, AGENTS, 1800, clock).load_cached() is None

    def test_fresh_view_uses_cache_until_expired(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        builder = UnifiedViewBuilder(backend, AGENTS, 1800, clock)
        builder.rebuild()

        # A claim the cached view does not know about yet
        claim(backend, clock, "alpha", ["a.ts"], "refactor")
        clock.advance(30)
        assert builder.fresh_view(60).owner_of("a.ts") is None

        clock.advance(31)
        view = builder.fresh_view(60)
        assert view.owner_of("a.ts") is not None
        assert view.last_updated == clock.now

    def test_refresh_survives_publish_failure(
        self, backend: MemoryBackend, clock: FakeClock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        builder = UnifiedViewBuilder(backend, AGENTS, 1800, clock)

        def fail(key: str, data: object) -> None:
            raise PersistenceError(key, OSError("read-only"))

        monkeypatch.setattr(backend, "save", fail)

        view = builder.refresh()
        assert list(view.agents) == AGENTS
        with pytest.raises(PersistenceError):
            builder.rebuild()

    def test_view_file_on_disk(self, tmp_path: Path, clock: FakeClock) -> None:
        backend = YamlFileBackend(tmp_path)
        builder = UnifiedViewBuilder(backend, AGENTS, 1800, clock)
        builder.rebuild()
        assert (tmp_path / "unified-view.yaml").exists()
        cached = builder.load_cached()
        assert cached is not None
        assert cached.last_updated == T0
