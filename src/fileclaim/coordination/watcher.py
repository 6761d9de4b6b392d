"""Agent state watcher that keeps the unified view current.

Polls modification times of the agent state documents and rebuilds the
unified view whenever one is created, modified or deleted. Polling keeps it
portable across filesystems where native change notification is unreliable
(network mounts, WSL).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from pathlib import Path

from fileclaim.coordination.errors import CoordinationError
from fileclaim.coordination.schema import UnifiedView
from fileclaim.coordination.store import YamlFileBackend
from fileclaim.coordination.view import UnifiedViewBuilder

_log = logging.getLogger("fileclaim.coordination.watcher")

DEFAULT_POLL_INTERVAL = 1.0


class ViewWatcher:
    """Rebuilds the unified view when agent states change on disk."""

    def __init__(
        self,
        builder: UnifiedViewBuilder,
        backend: YamlFileBackend,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_rebuild: Callable[[UnifiedView], None] | None = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            builder: Builder for the agents being watched
            backend: File backend holding their state documents
            poll_interval: How often to check for changes (seconds)
            on_rebuild: Called with each newly published view
        """
        self._builder = builder
        self._backend = backend
        self._poll_interval = poll_interval
        self._on_rebuild = on_rebuild
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._mtimes: dict[Path, float] = {}
        self.rebuilds = 0

    def _watched_paths(self) -> list[Path]:
        return [self._backend.path_for(agent) for agent in self._builder.agents]

    def _check_mtimes(self) -> dict[Path, float]:
        mtimes: dict[Path, float] = {}
        for path in self._watched_paths():
            if path.exists():
                with contextlib.suppress(OSError):
                    mtimes[path] = path.stat().st_mtime
        return mtimes

    def _detect_changes(self) -> list[Path]:
        """Paths created, modified or deleted since the last check."""
        current = self._check_mtimes()
        changed = [p for p, old in self._mtimes.items() if current.get(p) != old]
        changed.extend(p for p in current if p not in self._mtimes)
        self._mtimes = current
        return changed

    def _rebuild(self) -> None:
        try:
            view = self._builder.rebuild()
        except CoordinationError as e:
            _log.error("Error rebuilding unified view: %s", e)
            return
        self.rebuilds += 1
        _log.info(
            "Unified view updated: %d active, %d conflicts, %d stale",
            len(view.active_agents()),
            len(view.conflicts),
            len(view.stale_agents),
        )
        if self._on_rebuild is not None:
            self._on_rebuild(view)

    async def _poll_loop(self) -> None:
        self._mtimes = self._check_mtimes()
        self._rebuild()

        while self._running:
            await asyncio.sleep(self._poll_interval)

            if not self._running:
                break

            changed = self._detect_changes()
            if changed:
                _log.debug("Agent states changed: %s", [p.name for p in changed])
                self._rebuild()

    def start(self) -> None:
        """Start polling. Must be called from within a running event loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        _log.debug("View watcher started (interval=%.1fs)", self._poll_interval)

    def stop(self) -> None:
        """Stop polling."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        _log.debug("View watcher stopped")

    async def run_forever(self) -> None:
        """Start and block until cancelled."""
        self.start()
        try:
            while self._running:
                await asyncio.sleep(self._poll_interval)
        finally:
            self.stop()

    async def __aenter__(self) -> ViewWatcher:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        self.stop()
