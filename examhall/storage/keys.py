"""Typed keys for durable records: one prefix per record kind, then the session key."""

from __future__ import annotations

from enum import Enum

from examhall.core.models import SessionKey


class RecordPrefix(str, Enum):
    PROGRESS = "progress"
    DEADLINE = "deadline"
    PENDING_SUBMISSION = "pending-submission"
    OFFLINE_ANSWERS = "offline-answers"
    SESSION_CACHE = "session-cache"


RESULT_SNAPSHOTS_KEY = "result-snapshots"


def record_key(prefix: RecordPrefix, session_key: SessionKey) -> str:
    """e.g. record_key(RecordPrefix.DEADLINE, key) -> 'deadline:proctored:att-7'"""
    return f"{prefix.value}:{session_key}"


def session_key_from_record(prefix: RecordPrefix, key: str) -> SessionKey | None:
    head = f"{prefix.value}:"
    if not key.startswith(head):
        return None
    try:
        return SessionKey.parse(key[len(head):])
    except ValueError:
        return None
