"""Wiring of config, storage and agents for one project checkout."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from fileclaim.agents.registry import AgentRegistry
from fileclaim.config.loader import load_config
from fileclaim.config.paths import SHORT_NAME, resolve_state_dir
from fileclaim.config.schema import Config
from fileclaim.coordination.advisor import AssignmentAdvisor
from fileclaim.coordination.handoff import HandoffLog
from fileclaim.coordination.protocol import ClaimProtocol
from fileclaim.coordination.schema import utcnow
from fileclaim.coordination.store import YamlFileBackend
from fileclaim.coordination.view import UnifiedViewBuilder


class Workspace:
    """Everything an agent process needs to coordinate in one project."""

    def __init__(
        self,
        root: str | Path,
        config: Config | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.root = Path(root)
        self.config = config if config is not None else load_config(root=self.root)
        self.clock = clock
        self.registry = AgentRegistry.from_config(self.config.agents)
        self.registry.load_from_directory(self.root / SHORT_NAME / "agents")
        self.backend = YamlFileBackend(
            resolve_state_dir(self.root, self.config.coordination.state_dir)
        )
        self.advisor = AssignmentAdvisor(self.registry, self.config.advisor)

    @property
    def state_dir(self) -> Path:
        return self.backend.directory

    def protocol(self, agent: str) -> ClaimProtocol:
        """Claim protocol for `agent` (raises UnknownAgent if not registered)."""
        return ClaimProtocol(
            agent,
            self.backend,
            self.registry,
            config=self.config.coordination,
            advisor=self.advisor,
            clock=self.clock,
        )

    def view_builder(self) -> UnifiedViewBuilder:
        return UnifiedViewBuilder(
            self.backend,
            self.registry.ids(),
            self.config.coordination.background_stale_after,
            self.clock,
        )

    def handoff_log(self) -> HandoffLog:
        return HandoffLog(self.backend, self.config.coordination.handoff_retention)
