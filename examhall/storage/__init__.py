"""
Durable local records for timed sessions.

Modules:
- kv_store: JSON-file and in-memory key-value backends
- progress_store: Answers and start time per session
- records: Deadline cache, offline answer queue, pending submissions, session cache
- snapshots: Result snapshots for the results view
- local: LocalRecords bundle wiring all of the above to one backend
"""

from examhall.storage.kv_store import JsonFileStore, KeyValueStore, MemoryStore
from examhall.storage.local import LocalRecords
from examhall.storage.progress_store import ProgressStore
from examhall.storage.records import (
    DeadlineStore,
    OfflineAnswerQueue,
    PendingSubmissionStore,
    SessionCacheStore,
)
from examhall.storage.snapshots import ResultSnapshotStore

__all__ = [
    "DeadlineStore",
    "JsonFileStore",
    "KeyValueStore",
    "LocalRecords",
    "MemoryStore",
    "OfflineAnswerQueue",
    "PendingSubmissionStore",
    "ProgressStore",
    "ResultSnapshotStore",
    "SessionCacheStore",
]
