"""Bounded log of handoff notifications.

Every agent appends here on complete and release, so unlike agent states
this document has many writers. Appends are serialized with a FileLock
when the backend provides a lock path.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator

from filelock import FileLock

from fileclaim.coordination.errors import CorruptState
from fileclaim.coordination.schema import HandoffEntry
from fileclaim.coordination.store import StateBackend

_log = logging.getLogger("fileclaim.coordination.handoff")

HANDOFF_KEY = "handoffs"
LOCK_TIMEOUT = 10.0


class HandoffLog:
    """Most-recent-N list of {from, files, reason, timestamp} entries."""

    def __init__(self, backend: StateBackend, retention: int = 10) -> None:
        if retention < 1:
            raise ValueError("retention must be at least 1")
        self._backend = backend
        self._retention = retention

    @property
    def retention(self) -> int:
        return self._retention

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        lock_path = self._backend.lock_path(HANDOFF_KEY)
        if lock_path is None:
            yield
            return
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(lock_path, timeout=LOCK_TIMEOUT):
            yield

    def _load(self) -> list[HandoffEntry]:
        try:
            data = self._backend.load(HANDOFF_KEY)
        except CorruptState as e:
            _log.warning("Handoff log unreadable, starting a new one: %s", e.reason)
            return []
        if data is None:
            return []
        if not isinstance(data, list):
            _log.warning("Handoff log is not a list, starting a new one")
            return []
        entries: list[HandoffEntry] = []
        for item in data:
            try:
                entries.append(HandoffEntry.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                _log.warning("Dropping malformed handoff entry: %s", e)
        return entries

    def entries(self) -> list[HandoffEntry]:
        """All retained entries, oldest first."""
        return self._load()

    def append(self, entry: HandoffEntry) -> list[HandoffEntry]:
        """Add an entry, evicting the oldest beyond the retention count.

        Raises:
            PersistenceError: The log could not be written.
            filelock.Timeout: Another process held the lock too long.
        """
        with self._locked():
            entries = self._load()
            entries.append(entry)
            entries = entries[-self._retention :]
            self._backend.save(HANDOFF_KEY, [e.to_dict() for e in entries])
        _log.info(
            "Handoff from %s (%s): %s", entry.from_agent, entry.reason, ", ".join(entry.files)
        )
        return entries
