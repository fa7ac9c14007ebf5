"""One bundle of every local record store, sharing a single backend."""

from __future__ import annotations

from dataclasses import dataclass

from examhall.config import Settings
from examhall.core.models import SessionKey
from examhall.core.timefmt import Clock, utcnow
from examhall.storage.kv_store import JsonFileStore, KeyValueStore, MemoryStore
from examhall.storage.progress_store import ProgressStore
from examhall.storage.records import (
    DeadlineStore,
    OfflineAnswerQueue,
    PendingSubmissionStore,
    SessionCacheStore,
)
from examhall.storage.snapshots import MAX_ENTRIES, ResultSnapshotStore


@dataclass
class LocalRecords:
    backend: KeyValueStore
    progress: ProgressStore
    deadlines: DeadlineStore
    offline_answers: OfflineAnswerQueue
    pending_submissions: PendingSubmissionStore
    snapshots: ResultSnapshotStore
    session_cache: SessionCacheStore

    @classmethod
    def from_backend(
        cls,
        backend: KeyValueStore,
        max_snapshots: int = MAX_ENTRIES,
        now: Clock = utcnow,
    ) -> LocalRecords:
        return cls(
            backend=backend,
            progress=ProgressStore(backend, now=now),
            deadlines=DeadlineStore(backend),
            offline_answers=OfflineAnswerQueue(backend, now=now),
            pending_submissions=PendingSubmissionStore(backend),
            snapshots=ResultSnapshotStore(backend, max_entries=max_snapshots, now=now),
            session_cache=SessionCacheStore(backend, now=now),
        )

    @classmethod
    def open(cls, settings: Settings, now: Clock = utcnow) -> LocalRecords:
        """File-backed records under settings.store_path."""
        return cls.from_backend(
            JsonFileStore(settings.store_path),
            max_snapshots=settings.snapshot_max_entries,
            now=now,
        )

    @classmethod
    def in_memory(cls, now: Clock = utcnow) -> LocalRecords:
        return cls.from_backend(MemoryStore(), now=now)

    def reset_session(self, session_key: SessionKey) -> None:
        """Forget everything stored for one session except its result snapshot."""
        self.progress.clear(session_key)
        self.deadlines.clear(session_key)
        self.offline_answers.clear(session_key)
        self.pending_submissions.clear(session_key)
        self.session_cache.clear(session_key)
