"""
Progress Store.

Durable per-session record of answers, start time and attempt id, so a
restart resumes where the learner left off. Updates merge: top-level fields
are replaced only when given, and the answers map is merged entry by entry
(a new answer for e1 replaces only e1).
"""

from __future__ import annotations

from datetime import datetime
from typing import Mapping

from loguru import logger

from examhall.core.errors import MalformedStateError
from examhall.core.models import AnswerRecord, ProgressRecord, SessionKey
from examhall.core.timefmt import Clock, utcnow
from examhall.storage.keys import RecordPrefix, record_key, session_key_from_record
from examhall.storage.kv_store import KeyValueStore


class ProgressStore:
    """load / merge / clear over ProgressRecords keyed by SessionKey."""

    def __init__(self, store: KeyValueStore, now: Clock = utcnow):
        self.store = store
        self.now = now

    def load(self, session_key: SessionKey) -> ProgressRecord | None:
        key = record_key(RecordPrefix.PROGRESS, session_key)
        data = self.store.get_json(key)
        if data is None:
            return None
        try:
            record = ProgressRecord.from_dict(data)
        except MalformedStateError as exc:
            logger.warning("Progress record {} is malformed, starting fresh: {}", key, exc)
            return None
        if record.session_key != session_key:
            logger.warning("Progress record {} names {}, ignoring", key, record.session_key)
            return None
        return record

    def merge(
        self,
        session_key: SessionKey,
        *,
        started_at: datetime | None = None,
        attempt_id: str | None = None,
        answers: Mapping[str, AnswerRecord] | None = None,
    ) -> ProgressRecord:
        """Merge a partial update into the stored record and persist it."""
        record = self.load(session_key) or ProgressRecord(session_key=session_key)

        if started_at is not None:
            record.started_at = started_at
        if attempt_id is not None:
            record.attempt_id = attempt_id
        if answers:
            record.answers.update(answers)
        record.last_updated_at = self.now()

        self.store.set_json(record_key(RecordPrefix.PROGRESS, session_key), record.to_dict())
        return record

    def record_answer(
        self,
        session_key: SessionKey,
        entry_id: str,
        option_id: str,
        recorded_at: datetime | None = None,
    ) -> ProgressRecord:
        return self.merge(
            session_key,
            answers={entry_id: AnswerRecord(option_id=option_id, recorded_at=recorded_at or self.now())},
        )

    def clear(self, session_key: SessionKey) -> bool:
        return self.store.delete(record_key(RecordPrefix.PROGRESS, session_key))

    def session_keys(self) -> list[SessionKey]:
        keys = []
        for key in self.store.keys(f"{RecordPrefix.PROGRESS.value}:"):
            session_key = session_key_from_record(RecordPrefix.PROGRESS, key)
            if session_key is not None:
                keys.append(session_key)
        return keys
