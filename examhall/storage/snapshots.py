"""
Result snapshots for the results view.

A single list document, newest first, capped at a fixed number of entries.
Saving a snapshot for a session replaces any earlier one for the same key.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from examhall.core.errors import MalformedStateError
from examhall.core.models import ResultSnapshot, SessionKey
from examhall.core.timefmt import Clock, utcnow
from examhall.storage.keys import RESULT_SNAPSHOTS_KEY
from examhall.storage.kv_store import KeyValueStore

MAX_ENTRIES = 12


class ResultSnapshotStore:
    def __init__(self, store: KeyValueStore, max_entries: int = MAX_ENTRIES, now: Clock = utcnow):
        self.store = store
        self.max_entries = max_entries
        self.now = now

    def _read(self) -> list[ResultSnapshot]:
        data = self.store.get_json(RESULT_SNAPSHOTS_KEY)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("Result snapshots are not a list, discarding")
            self.store.delete(RESULT_SNAPSHOTS_KEY)
            return []
        snapshots = []
        for item in data:
            try:
                snapshots.append(ResultSnapshot.from_dict(item))
            except MalformedStateError as exc:
                logger.warning("Skipping malformed result snapshot: {}", exc)
        return snapshots

    def list(self) -> list[ResultSnapshot]:
        return self._read()

    def get(self, session_key: SessionKey) -> ResultSnapshot | None:
        return next((s for s in self._read() if s.session_key == session_key), None)

    def save(self, session_key: SessionKey, summary: dict[str, Any], pending: bool = False) -> ResultSnapshot:
        snapshot = ResultSnapshot(
            session_key=session_key,
            summary=summary,
            stored_at=self.now(),
            pending=pending,
        )
        snapshots = [s for s in self._read() if s.session_key != session_key]
        snapshots.append(snapshot)
        snapshots.sort(key=lambda s: s.stored_at, reverse=True)
        self.store.set_json(
            RESULT_SNAPSHOTS_KEY,
            [s.to_dict() for s in snapshots[: self.max_entries]],
        )
        return snapshot

    def mark_final(self, session_key: SessionKey) -> bool:
        """Clear the pending flag once the producer accepted the submission."""
        snapshot = self.get(session_key)
        if snapshot is None:
            return False
        self.save(session_key, snapshot.summary, pending=False)
        return True

    def remove(self, session_key: SessionKey) -> bool:
        snapshots = self._read()
        kept = [s for s in snapshots if s.session_key != session_key]
        if len(kept) == len(snapshots):
            return False
        self.store.set_json(RESULT_SNAPSHOTS_KEY, [s.to_dict() for s in kept])
        return True
