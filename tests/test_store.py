"""Tests for state backends and the agent state store."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from fileclaim.coordination import (
    AgentState,
    AgentStateStore,
    AgentStatus,
    CorruptState,
    CurrentWork,
    MemoryBackend,
    PersistenceError,
    YamlFileBackend,
)
from tests.utils import T0, FakeClock


class TestYamlFileBackend:
    def test_missing_key_loads_none(self, tmp_path: Path) -> None:
        backend = YamlFileBackend(tmp_path / "states")
        assert backend.load("alpha") is None
        assert not backend.exists("alpha")

    def test_save_creates_directory_and_file(self, tmp_path: Path) -> None:
        backend = YamlFileBackend(tmp_path / "states")
        backend.save("alpha", {"agent": "alpha", "status": "idle"})

        path = tmp_path / "states" / "alpha.yaml"
        assert path.exists()
        assert yaml.safe_load(path.read_text()) == {"agent": "alpha", "status": "idle"}
        assert backend.load("alpha") == {"agent": "alpha", "status": "idle"}

    def test_save_leaves_no_temp_files(self, tmp_path: Path) -> None:
        backend = YamlFileBackend(tmp_path)
        backend.save("alpha", {"a": 1})
        backend.save("alpha", {"a": 2})
        assert sorted(p.name for p in tmp_path.iterdir()) == ["alpha.yaml"]

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_saved_documents_are_world_readable(self, tmp_path: Path) -> None:
        backend = YamlFileBackend(tmp_path)
        backend.save("alpha", {"a": 1})
        assert (tmp_path / "alpha.yaml").stat().st_mode & 0o777 == 0o644

    def test_invalid_yaml_is_corrupt(self, tmp_path: Path) -> None:
        (tmp_path / "alpha.yaml").write_text("agent: [unclosed\n")
        with pytest.raises(CorruptState) as exc_info:
            YamlFileBackend(tmp_path).load("alpha")
        assert exc_info.value.key == "alpha"

    def test_empty_document_is_corrupt(self, tmp_path: Path) -> None:
        (tmp_path / "alpha.yaml").write_text("")
        with pytest.raises(CorruptState, match="empty"):
            YamlFileBackend(tmp_path).load("alpha")

    def test_scalar_document_is_corrupt(self, tmp_path: Path) -> None:
        (tmp_path / "alpha.yaml").write_text("just a string\n")
        with pytest.raises(CorruptState):
            YamlFileBackend(tmp_path).load("alpha")

    def test_failed_replace_raises_and_keeps_old_document(self, tmp_path: Path) -> None:
        backend = YamlFileBackend(tmp_path)
        backend.save("alpha", {"version": 1})

        with patch("fileclaim.coordination.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError) as exc_info:
                backend.save("alpha", {"version": 2})

        assert exc_info.value.key == "alpha"
        assert backend.load("alpha") == {"version": 1}
        assert [p.name for p in tmp_path.iterdir()] == ["alpha.yaml"]

    def test_lock_path(self, tmp_path: Path) -> None:
        assert YamlFileBackend(tmp_path).lock_path("handoffs") == tmp_path / "handoffs.lock"


class TestMemoryBackend:
    def test_documents_are_copied(self) -> None:
        backend = MemoryBackend()
        doc = {"files": ["a.ts"]}
        backend.save("alpha", doc)
        doc["files"].append("b.ts")

        loaded = backend.load("alpha")
        assert loaded == {"files": ["a.ts"]}
        assert isinstance(loaded, dict)
        loaded["files"].append("c.ts")
        assert backend.load("alpha") == {"files": ["a.ts"]}

    def test_no_lock_path(self) -> None:
        assert MemoryBackend().lock_path("handoffs") is None


class TestAgentStateStore:
    def test_read_absent_is_idle(self, backend: MemoryBackend, clock: FakeClock) -> None:
        store = AgentStateStore(backend, "alpha", clock)
        state = store.read()
        assert state.status is AgentStatus.IDLE
        assert state.last_heartbeat == T0
        assert not store.exists()

    def test_write_stamps_identity_and_heartbeat(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        store = AgentStateStore(backend, "alpha", clock)
        clock.advance(90)
        state = AgentState(
            agent="someone-else",
            status=AgentStatus.ACTIVE,
            current_work=CurrentWork(["a.ts"], "task", T0),
            last_heartbeat=T0,
        )
        store.write(state)

        saved = store.read()
        assert saved.agent == "alpha"
        assert saved.last_heartbeat == clock.now
        assert saved.current_work is not None
        assert saved.current_work.files == ["a.ts"]

    def test_write_rejects_view_only_status(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        store = AgentStateStore(backend, "alpha", clock)
        state = AgentState(
            agent="alpha",
            status=AgentStatus.STALE,
            current_work=CurrentWork(["a.ts"], "task", T0),
        )
        with pytest.raises(ValueError, match="view-only"):
            store.write(state)
        assert not store.exists()

    def test_write_rejects_active_without_work(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        store = AgentStateStore(backend, "alpha", clock)
        with pytest.raises(ValueError):
            store.write(AgentState(agent="alpha", status=AgentStatus.ACTIVE))

    def test_persisted_stale_status_is_corrupt(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        backend.documents["alpha"] = {
            "agent": "alpha",
            "status": "stale",
            "current_work": {"files": ["a.ts"], "task": "t", "started": T0.isoformat()},
            "last_heartbeat": T0.isoformat(),
        }
        with pytest.raises(CorruptState, match="never persisted"):
            AgentStateStore(backend, "alpha", clock).read()

    def test_record_for_other_agent_is_corrupt(
        self, backend: MemoryBackend, clock: FakeClock
    ) -> None:
        backend.documents["alpha"] = AgentState.idle("beta", T0).to_dict()
        with pytest.raises(CorruptState, match="belongs to 'beta'"):
            AgentStateStore(backend, "alpha", clock).read()

    def test_read_or_reset_recovers(
        self,
        backend: MemoryBackend,
        clock: FakeClock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        backend.documents["alpha"] = {"agent": "alpha", "status": "active"}
        store = AgentStateStore(backend, "alpha", clock)

        with caplog.at_level("WARNING", logger="fileclaim"):
            state = store.read_or_reset()

        assert state.status is AgentStatus.IDLE
        assert "fresh idle state" in caplog.text

    def test_yaml_round_trip(self, tmp_path: Path, clock: FakeClock) -> None:
        store = AgentStateStore(YamlFileBackend(tmp_path), "alpha", clock)
        store.write(
            AgentState(
                agent="alpha",
                status=AgentStatus.ACTIVE,
                current_work=CurrentWork(["src/a.py", "src/b.py"], "refactor", T0),
            )
        )
        assert os.path.exists(tmp_path / "alpha.yaml")
        state = store.read()
        assert state.status is AgentStatus.ACTIVE
        assert state.current_work is not None
        assert state.current_work.started == T0
