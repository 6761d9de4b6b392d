"""Key-value persistence for agent states and shared coordination records.

Each key maps to one YAML document. Agent state keys have a single writer
(the owning agent) and any number of readers, so writes only need to be
atomic, not locked: a document is written to a temp file in the same
directory and then moved over the target.
"""

from __future__ import annotations

import copy
import logging
import os
import tempfile
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import yaml

from fileclaim.coordination.errors import CorruptState, PersistenceError
from fileclaim.coordination.schema import AgentState, utcnow

_log = logging.getLogger("fileclaim.coordination.store")

DOCUMENT_SUFFIX = ".yaml"

# mkstemp creates owner-only files; other agents must be able to read them
DOCUMENT_MODE = 0o644


class StateBackend(Protocol):
    """Storage for structured documents keyed by name."""

    def load(self, key: str) -> dict[str, Any] | list[Any] | None:
        """Return the document, None if absent. Raise CorruptState if unparsable."""
        ...

    def save(self, key: str, data: dict[str, Any] | list[Any]) -> None:
        """Persist the document. Raise PersistenceError on failure."""
        ...

    def exists(self, key: str) -> bool: ...

    def lock_path(self, key: str) -> Path | None:
        """Path for a cross-process lock guarding key, or None if not needed."""
        ...


class YamlFileBackend:
    """Stores each key as `<directory>/<key>.yaml`."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, key: str) -> Path:
        return self._dir / f"{key}{DOCUMENT_SUFFIX}"

    def lock_path(self, key: str) -> Path | None:
        return self._dir / f"{key}.lock"

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()

    def load(self, key: str) -> dict[str, Any] | list[Any] | None:
        path = self.path_for(key)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            return None
        except yaml.YAMLError as e:
            raise CorruptState(key, f"invalid YAML: {e}") from e
        except OSError as e:
            raise CorruptState(key, f"unreadable: {e}") from e
        if data is None:
            raise CorruptState(key, "empty document")
        if not isinstance(data, (dict, list)):
            raise CorruptState(key, f"expected a mapping or list, got {type(data).__name__}")
        return data

    def save(self, key: str, data: dict[str, Any] | list[Any]) -> None:
        path = self.path_for(key)
        tmp_name: str | None = None
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._dir, prefix=f".{key}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, DOCUMENT_MODE)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise PersistenceError(key, e) from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    _log.debug("Could not remove temp file %s", tmp_name)


class MemoryBackend:
    """In-process backend; documents are deep-copied in and out."""

    def __init__(self) -> None:
        self.documents: dict[str, Any] = {}

    def lock_path(self, key: str) -> Path | None:
        return None

    def exists(self, key: str) -> bool:
        return key in self.documents

    def load(self, key: str) -> dict[str, Any] | list[Any] | None:
        data = self.documents.get(key)
        if data is None:
            return None
        if not isinstance(data, (dict, list)):
            raise CorruptState(key, f"expected a mapping or list, got {type(data).__name__}")
        return copy.deepcopy(data)

    def save(self, key: str, data: dict[str, Any] | list[Any]) -> None:
        self.documents[key] = copy.deepcopy(data)


def decode_agent_state(key: str, data: Any) -> AgentState:
    """Turn a raw document into an AgentState, raising CorruptState on any defect."""
    if not isinstance(data, dict):
        raise CorruptState(key, "agent state is not a mapping")
    try:
        state = AgentState.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise CorruptState(key, f"invalid agent state: {e}") from e
    if not state.status.persistable:
        raise CorruptState(key, f"status '{state.status.value}' is never persisted")
    return state


class AgentStateStore:
    """Durable record of one agent's activity.

    Only the owning agent's process writes through its store; everyone
    else reads.
    """

    def __init__(
        self,
        backend: StateBackend,
        agent: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backend = backend
        self._agent = agent
        self._clock = clock

    @property
    def agent(self) -> str:
        return self._agent

    def exists(self) -> bool:
        return self._backend.exists(self._agent)

    def read(self) -> AgentState:
        """Return the persisted state, or a fresh idle one on first touch.

        Raises:
            CorruptState: The record exists but cannot be parsed.
        """
        data = self._backend.load(self._agent)
        if data is None:
            return AgentState.idle(self._agent, self._clock())
        state = decode_agent_state(self._agent, data)
        if state.agent != self._agent:
            raise CorruptState(self._agent, f"record belongs to '{state.agent}'")
        return state

    def read_or_reset(self) -> AgentState:
        """Like read(), but recover from a corrupt record with a fresh idle state."""
        try:
            return self.read()
        except CorruptState as e:
            _log.warning("%s; starting from a fresh idle state", e)
            return AgentState.idle(self._agent, self._clock())

    def write(self, state: AgentState) -> AgentState:
        """Stamp identity and heartbeat, then persist.

        Raises:
            ValueError: The state is a view-only status or breaks the
                current_work invariant.
            PersistenceError: The write failed.
        """
        if not state.status.persistable:
            raise ValueError(f"refusing to persist view-only status '{state.status.value}'")
        state.agent = self._agent
        state.last_heartbeat = self._clock()
        state.error = None
        state.validate()
        self._backend.save(self._agent, state.to_dict())
        return state