"""Tests for the unified view watcher."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from fileclaim.coordination import (
    AgentState,
    AgentStateStore,
    AgentStatus,
    CurrentWork,
    PersistenceError,
    UnifiedView,
    UnifiedViewBuilder,
    YamlFileBackend,
)
from fileclaim.coordination.watcher import ViewWatcher

AGENTS = ["alpha", "beta"]


@pytest.fixture
def backend(tmp_path: Path) -> YamlFileBackend:
    return YamlFileBackend(tmp_path / "states")


@pytest.fixture
def builder(backend: YamlFileBackend) -> UnifiedViewBuilder:
    return UnifiedViewBuilder(backend, AGENTS, 1800)


def claim(backend: YamlFileBackend, agent: str, files: list[str]) -> None:
    AgentStateStore(backend, agent).write(
        AgentState(
            agent=agent,
            status=AgentStatus.ACTIVE,
            current_work=CurrentWork(files, "work"),
        )
    )


def bump_mtime(path: Path) -> None:
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 5))


class TestViewWatcher:
    @pytest.mark.asyncio
    async def test_start_stop(
        self, builder: UnifiedViewBuilder, backend: YamlFileBackend
    ) -> None:
        watcher = ViewWatcher(builder, backend, poll_interval=0.02)
        watcher.start()
        watcher.start()  # Idempotent
        await asyncio.sleep(0.05)

        assert watcher.rebuilds == 1  # Initial rebuild
        assert backend.exists("unified-view")

        watcher.stop()
        watcher.stop()

    @pytest.mark.asyncio
    async def test_rebuilds_on_new_state(
        self, builder: UnifiedViewBuilder, backend: YamlFileBackend
    ) -> None:
        views: list[UnifiedView] = []

        async with ViewWatcher(builder, backend, poll_interval=0.02, on_rebuild=views.append):
            await asyncio.sleep(0.05)
            claim(backend, "alpha", ["a.ts"])
            await asyncio.sleep(0.1)

        assert len(views) >= 2
        assert views[-1].owner_of("a.ts") is not None

    @pytest.mark.asyncio
    async def test_rebuilds_on_modification_and_deletion(
        self, builder: UnifiedViewBuilder, backend: YamlFileBackend
    ) -> None:
        claim(backend, "beta", ["b.ts"])
        watcher = ViewWatcher(builder, backend, poll_interval=0.02)

        async with watcher:
            await asyncio.sleep(0.05)
            assert watcher.rebuilds == 1

            bump_mtime(backend.path_for("beta"))
            await asyncio.sleep(0.1)
            assert watcher.rebuilds == 2

            backend.path_for("beta").unlink()
            await asyncio.sleep(0.1)
            assert watcher.rebuilds == 3

        cached = builder.load_cached()
        assert cached is not None
        assert cached.file_ownership == {}

    @pytest.mark.asyncio
    async def test_unrelated_files_ignored(
        self, builder: UnifiedViewBuilder, backend: YamlFileBackend
    ) -> None:
        watcher = ViewWatcher(builder, backend, poll_interval=0.02)
        async with watcher:
            await asyncio.sleep(0.05)
            claim(backend, "gamma", ["g.ts"])  # Not a watched agent
            await asyncio.sleep(0.1)

        assert watcher.rebuilds == 1

    @pytest.mark.asyncio
    async def test_rebuild_error_keeps_polling(
        self,
        builder: UnifiedViewBuilder,
        backend: YamlFileBackend,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def fail() -> UnifiedView:
            raise PersistenceError("unified-view", OSError("read-only"))

        monkeypatch.setattr(builder, "rebuild", fail)
        watcher = ViewWatcher(builder, backend, poll_interval=0.02)

        async with watcher:
            await asyncio.sleep(0.05)
            claim(backend, "alpha", ["a.ts"])
            await asyncio.sleep(0.1)

        assert watcher.rebuilds == 0

    @pytest.mark.asyncio
    async def test_run_forever_cancel(
        self, builder: UnifiedViewBuilder, backend: YamlFileBackend
    ) -> None:
        watcher = ViewWatcher(builder, backend, poll_interval=0.02)
        task = asyncio.create_task(watcher.run_forever())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert watcher.rebuilds >= 1
