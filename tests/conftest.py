"""Root pytest configuration for all tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from fileclaim.agents import AgentProfile, AgentRegistry
from fileclaim.config.schema import CoordinationConfig
from fileclaim.coordination import ClaimProtocol, MemoryBackend
from tests.utils import FakeClock

pytest_plugins = ("pytest_asyncio",)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def registry() -> AgentRegistry:
    """Three plain agents, in alpha/beta/gamma order."""
    return AgentRegistry(
        [
            AgentProfile(id="alpha", primary=["refactoring"], task_keywords=["refactor"]),
            AgentProfile(
                id="beta",
                primary=["testing"],
                file_patterns=[r".*\.test\..*$"],
                task_keywords=["test"],
            ),
            AgentProfile(id="gamma"),
        ]
    )


@pytest.fixture
def coordination_config() -> CoordinationConfig:
    return CoordinationConfig(
        claim_stale_after=30.0,
        background_stale_after=1800.0,
        view_fresh_for=60.0,
        handoff_retention=3,
    )


@pytest.fixture
def make_protocol(
    backend: MemoryBackend,
    registry: AgentRegistry,
    coordination_config: CoordinationConfig,
    clock: FakeClock,
) -> Callable[..., ClaimProtocol]:
    """Factory for protocols that share one backend and clock."""

    def factory(agent: str, **kwargs: object) -> ClaimProtocol:
        kwargs.setdefault("config", coordination_config)
        kwargs.setdefault("clock", clock)
        return ClaimProtocol(agent, backend, registry, **kwargs)  # type: ignore[arg-type]

    return factory
