"""
Deadline, offline-answer, pending-submission and session-cache records.

All of them are namespaced by SessionKey. A malformed document reads as
absent (or as an empty queue) and is logged, never raised.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from loguru import logger

from examhall.core.errors import MalformedStateError
from examhall.core.models import DeadlineRecord, PendingSubmission, QueuedAnswer, SessionKey
from examhall.core.timefmt import Clock, to_iso, utcnow
from examhall.storage.keys import RecordPrefix, record_key, session_key_from_record
from examhall.storage.kv_store import KeyValueStore


def _session_keys(store: KeyValueStore, prefix: RecordPrefix) -> list[SessionKey]:
    keys = []
    for key in store.keys(f"{prefix.value}:"):
        session_key = session_key_from_record(prefix, key)
        if session_key is not None:
            keys.append(session_key)
    return keys


class DeadlineStore:
    """Cached effective deadline, so a restart never extends it."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self, session_key: SessionKey) -> DeadlineRecord | None:
        key = record_key(RecordPrefix.DEADLINE, session_key)
        data = self.store.get_json(key)
        if data is None:
            return None
        try:
            return DeadlineRecord.from_dict(data)
        except MalformedStateError as exc:
            logger.warning("Deadline record {} is malformed: {}", key, exc)
            return None

    def save(self, record: DeadlineRecord) -> None:
        self.store.set_json(record_key(RecordPrefix.DEADLINE, record.session_key), record.to_dict())

    def clear(self, session_key: SessionKey) -> bool:
        return self.store.delete(record_key(RecordPrefix.DEADLINE, session_key))


class OfflineAnswerQueue:
    """
    FIFO of answers that failed remote sync.

    Items leave the queue only from the head and only after the producer
    confirmed them, so replay order equals enqueue order.
    """

    def __init__(self, store: KeyValueStore, now: Clock = utcnow):
        self.store = store
        self.now = now

    def _key(self, session_key: SessionKey) -> str:
        return record_key(RecordPrefix.OFFLINE_ANSWERS, session_key)

    def items(self, session_key: SessionKey) -> list[QueuedAnswer]:
        data = self.store.get_json(self._key(session_key))
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("Offline queue {} is not a list, ignoring", self._key(session_key))
            return []
        try:
            return [QueuedAnswer.from_dict(item) for item in data]
        except MalformedStateError as exc:
            logger.warning("Offline queue {} is malformed, ignoring: {}", self._key(session_key), exc)
            return []

    def _write(self, session_key: SessionKey, items: list[QueuedAnswer]) -> None:
        if items:
            self.store.set_json(self._key(session_key), [item.to_dict() for item in items])
        else:
            self.store.delete(self._key(session_key))

    def enqueue(self, session_key: SessionKey, entry_id: str, option_id: str) -> QueuedAnswer:
        item = QueuedAnswer(
            session_key=session_key,
            entry_id=entry_id,
            option_id=option_id,
            queued_at=self.now(),
        )
        items = self.items(session_key)
        items.append(item)
        self._write(session_key, items)
        logger.info("Queued answer {}={} for {} ({} waiting)", entry_id, option_id, session_key, len(items))
        return item

    def peek(self, session_key: SessionKey) -> QueuedAnswer | None:
        items = self.items(session_key)
        return items[0] if items else None

    def remove_head(self, session_key: SessionKey, expected: QueuedAnswer) -> bool:
        """Drop the head item if it is still `expected`."""
        items = self.items(session_key)
        if not items or items[0] != expected:
            return False
        self._write(session_key, items[1:])
        return True

    def mark_rejected(self, session_key: SessionKey, expected: QueuedAnswer, status_code: int) -> bool:
        """Flag the head item as refused by the producer. It stays queued."""
        items = self.items(session_key)
        if not items or items[0] != expected:
            return False
        items[0] = replace(items[0], rejected_status=status_code)
        self._write(session_key, items)
        return True

    def rejected(self, session_key: SessionKey) -> QueuedAnswer | None:
        head = self.peek(session_key)
        return head if head is not None and head.rejected_status is not None else None

    def total_size(self) -> int:
        return sum(len(self.items(key)) for key in self.session_keys())

    def size(self, session_key: SessionKey) -> int:
        return len(self.items(session_key))

    def clear(self, session_key: SessionKey) -> bool:
        return self.store.delete(self._key(session_key))

    def session_keys(self) -> list[SessionKey]:
        return _session_keys(self.store, RecordPrefix.OFFLINE_ANSWERS)


class PendingSubmissionStore:
    """At most one pending finalize per session."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self, session_key: SessionKey) -> PendingSubmission | None:
        key = record_key(RecordPrefix.PENDING_SUBMISSION, session_key)
        data = self.store.get_json(key)
        if data is None:
            return None
        try:
            return PendingSubmission.from_dict(data)
        except MalformedStateError as exc:
            logger.warning("Pending submission {} is malformed: {}", key, exc)
            return None

    def save(self, pending: PendingSubmission) -> None:
        self.store.set_json(
            record_key(RecordPrefix.PENDING_SUBMISSION, pending.session_key),
            pending.to_dict(),
        )
        logger.warning("Finalize for {} queued for replay", pending.session_key)

    def mark_rejected(self, session_key: SessionKey, status_code: int) -> bool:
        pending = self.load(session_key)
        if pending is None:
            return False
        self.store.set_json(
            record_key(RecordPrefix.PENDING_SUBMISSION, session_key),
            replace(pending, rejected_status=status_code).to_dict(),
        )
        return True

    def clear(self, session_key: SessionKey) -> bool:
        return self.store.delete(record_key(RecordPrefix.PENDING_SUBMISSION, session_key))

    def session_keys(self) -> list[SessionKey]:
        return _session_keys(self.store, RecordPrefix.PENDING_SUBMISSION)


class SessionCacheStore:
    """
    Last successfully loaded policy and pool rows of a session.

    Lets a reload rebuild the same delivered subset while the producer is
    unreachable. Stored raw, exactly as the producer returned them.
    """

    def __init__(self, store: KeyValueStore, now: Clock = utcnow):
        self.store = store
        self.now = now

    def load(self, session_key: SessionKey) -> tuple[dict[str, Any], list[dict[str, Any]]] | None:
        key = record_key(RecordPrefix.SESSION_CACHE, session_key)
        data = self.store.get_json(key)
        if data is None:
            return None
        policy = data.get("policy") if isinstance(data, dict) else None
        entries = data.get("entries") if isinstance(data, dict) else None
        if not isinstance(policy, dict) or not isinstance(entries, list):
            logger.warning("Session cache {} is malformed, ignoring", key)
            return None
        return policy, entries

    def save(self, session_key: SessionKey, policy: dict[str, Any], entries: list[dict[str, Any]]) -> None:
        self.store.set_json(
            record_key(RecordPrefix.SESSION_CACHE, session_key),
            {"policy": policy, "entries": entries, "stored_at": to_iso(self.now())},
        )

    def clear(self, session_key: SessionKey) -> bool:
        return self.store.delete(record_key(RecordPrefix.SESSION_CACHE, session_key))
