"""
Domain models for timed assessment sessions.

Durable records (ProgressRecord, PendingSubmission, DeadlineRecord,
QueuedAnswer, ResultSnapshot) round-trip through plain dicts so they can be
written to the structured-text store. Decoding problems surface as
MalformedStateError, which the storage layer turns into "absent".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from examhall.core.errors import MalformedStateError
from examhall.core.timefmt import parse_iso, to_iso

# =============================================================================
# Enums
# =============================================================================


class VariantKind(str, Enum):
    """Delivery mode of a session."""

    DAILY = "daily"  # Subscription-gated daily session
    PREVIEW = "preview"  # Unauthenticated preview
    PROCTORED = "proctored"  # Single-attempt exam
    PRACTICE = "practice"  # Bonus/extra practice set


class SessionStatus(str, Enum):
    """Lifecycle status. COMPLETED is terminal."""

    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AllocationMode(str, Enum):
    """How many questions of a pool are delivered."""

    FULL_SET = "full_set"
    FIXED_COUNT = "fixed_count"
    PERCENTAGE = "percentage"
    TIER_AUTO = "tier_auto"
    EQUAL_SPLIT = "equal_split"


# =============================================================================
# Keys
# =============================================================================


@dataclass(frozen=True)
class SessionKey:
    """Namespace of every durable record: (variant, session or attempt id)."""

    variant: VariantKind
    session_id: str

    def __str__(self) -> str:
        return f"{self.variant.value}:{self.session_id}"

    @classmethod
    def parse(cls, text: str) -> SessionKey:
        variant, sep, session_id = text.partition(":")
        if not sep or not session_id:
            raise ValueError(f"Invalid session key: {text!r}")
        return cls(VariantKind(variant), session_id)


# =============================================================================
# Questions
# =============================================================================


@dataclass
class Option:
    """One selectable answer."""

    id: str
    label: str = ""
    content: str = ""
    is_correct_hint: bool | None = None
    order_index: int | None = None


@dataclass
class QuestionEntry:
    """A delivered question and the learner's selection."""

    id: str
    stem: str
    options: list[Option] = field(default_factory=list)
    selected_option_id: str | None = None
    is_correct: bool | None = None
    answered_at: datetime | None = None

    # Correctness inputs, resolved lazily by the fallback chain
    correct_option_id: str | None = None
    raw_correct_hint: str | None = None

    @property
    def is_answered(self) -> bool:
        return self.selected_option_id is not None

    def find_option(self, option_id: str) -> Option | None:
        for option in self.options:
            if option.id == option_id:
                return option
        return None


# =============================================================================
# Allocation
# =============================================================================


@dataclass(frozen=True)
class AssignmentRule:
    """Pool-level allocation policy, with optional per-plan replacements."""

    mode: AllocationMode = AllocationMode.FULL_SET
    value: float | None = None
    tier_set: tuple[int, ...] | None = None
    overrides_by_plan: Mapping[str, AssignmentRule] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> AssignmentRule:
        if not data:
            return cls()
        overrides = {
            str(plan_id): cls.from_dict(rule)
            for plan_id, rule in (data.get("overrides_by_plan") or {}).items()
        }
        raw_value = data.get("value")
        raw_tiers = data.get("tier_set")
        return cls(
            mode=AllocationMode(data.get("mode", AllocationMode.FULL_SET.value)),
            value=float(raw_value) if raw_value is not None else None,
            tier_set=tuple(int(t) for t in raw_tiers) if raw_tiers else None,
            overrides_by_plan=overrides,
        )


@dataclass(frozen=True)
class AllocationContext:
    """Who the subset is carved for."""

    plan_tier: str | None = None
    selected_tier_set: tuple[int, ...] | None = None


# =============================================================================
# Session
# =============================================================================


@dataclass
class SessionPolicy:
    time_limit_seconds: int | None = None
    window_end: datetime | None = None


@dataclass
class SessionDescriptor:
    """The one active descriptor of an open session."""

    variant: VariantKind
    session_id: str
    policy: SessionPolicy = field(default_factory=SessionPolicy)
    status: SessionStatus = SessionStatus.ASSIGNED
    started_at: datetime | None = None
    completed_at: datetime | None = None
    user_id: str | None = None
    pool_ref: str | None = None
    assignment: AssignmentRule | None = None
    remote_id: str | None = None

    @property
    def key(self) -> SessionKey:
        return SessionKey(self.variant, self.session_id)

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED


@dataclass
class SessionSummary:
    """Score and timing computed at finalize."""

    correct: int
    total: int
    answered: int
    score: float
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: int | None = None

    @property
    def skipped(self) -> int:
        return self.total - self.answered

    def to_dict(self) -> dict[str, Any]:
        return {
            "correct": self.correct,
            "total": self.total,
            "answered": self.answered,
            "skipped": self.skipped,
            "score": self.score,
            "started_at": to_iso(self.started_at),
            "completed_at": to_iso(self.completed_at),
            "duration_seconds": self.duration_seconds,
        }


# =============================================================================
# Durable Records
# =============================================================================


def _require(data: Mapping[str, Any], name: str) -> Any:
    if not isinstance(data, Mapping) or name not in data:
        raise MalformedStateError(f"missing field {name!r}")
    return data[name]


def _parse_time(value: Any) -> datetime | None:
    try:
        return parse_iso(value)
    except (TypeError, ValueError) as exc:
        raise MalformedStateError(f"bad timestamp {value!r}") from exc


def _parse_key(value: Any) -> SessionKey:
    try:
        return SessionKey.parse(str(value))
    except ValueError as exc:
        raise MalformedStateError(str(exc)) from exc


def _optional_status(data: Mapping[str, Any]) -> int | None:
    value = data.get("rejected_status")
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedStateError(f"bad status {value!r}") from exc


@dataclass
class AnswerRecord:
    option_id: str
    recorded_at: datetime


@dataclass
class ProgressRecord:
    """Locally persisted answers and start time of one session."""

    session_key: SessionKey
    started_at: datetime | None = None
    attempt_id: str | None = None
    answers: dict[str, AnswerRecord] = field(default_factory=dict)
    last_updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_key": str(self.session_key),
            "started_at": to_iso(self.started_at),
            "attempt_id": self.attempt_id,
            "answers": {
                entry_id: {"option_id": a.option_id, "recorded_at": to_iso(a.recorded_at)}
                for entry_id, a in self.answers.items()
            },
            "last_updated_at": to_iso(self.last_updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProgressRecord:
        if not isinstance(data, Mapping):
            raise MalformedStateError("progress record is not an object")
        raw_answers = data.get("answers") or {}
        if not isinstance(raw_answers, Mapping):
            raise MalformedStateError("answers is not a mapping")
        answers = {
            str(entry_id): AnswerRecord(
                option_id=str(_require(raw, "option_id")),
                recorded_at=_parse_time(_require(raw, "recorded_at")),
            )
            for entry_id, raw in raw_answers.items()
        }
        return cls(
            session_key=_parse_key(_require(data, "session_key")),
            started_at=_parse_time(data.get("started_at")),
            attempt_id=data.get("attempt_id"),
            answers=answers,
            last_updated_at=_parse_time(data.get("last_updated_at")),
        )


@dataclass
class DeadlineRecord:
    session_key: SessionKey
    deadline_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"session_key": str(self.session_key), "deadline_at": to_iso(self.deadline_at)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeadlineRecord:
        deadline_at = _parse_time(_require(data, "deadline_at"))
        if deadline_at is None:
            raise MalformedStateError("deadline_at is empty")
        return cls(session_key=_parse_key(_require(data, "session_key")), deadline_at=deadline_at)


@dataclass
class PendingSubmission:
    """A finalize call that could not reach the producer."""

    session_key: SessionKey
    kind: VariantKind
    payload: dict[str, Any]
    queued_at: datetime
    rejected_status: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "session_key": str(self.session_key),
            "kind": self.kind.value,
            "payload": self.payload,
            "queued_at": to_iso(self.queued_at),
        }
        if self.rejected_status is not None:
            data["rejected_status"] = self.rejected_status
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PendingSubmission:
        payload = _require(data, "payload")
        if not isinstance(payload, dict):
            raise MalformedStateError("payload is not an object")
        try:
            kind = VariantKind(_require(data, "kind"))
        except ValueError as exc:
            raise MalformedStateError(str(exc)) from exc
        return cls(
            session_key=_parse_key(_require(data, "session_key")),
            kind=kind,
            payload=payload,
            queued_at=_parse_time(_require(data, "queued_at")),
            rejected_status=_optional_status(data),
        )


@dataclass
class QueuedAnswer:
    """An answer waiting for remote sync, in enqueue order."""

    session_key: SessionKey
    entry_id: str
    option_id: str
    queued_at: datetime
    rejected_status: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "session_key": str(self.session_key),
            "entry_id": self.entry_id,
            "option_id": self.option_id,
            "queued_at": to_iso(self.queued_at),
        }
        if self.rejected_status is not None:
            data["rejected_status"] = self.rejected_status
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QueuedAnswer:
        return cls(
            session_key=_parse_key(_require(data, "session_key")),
            entry_id=str(_require(data, "entry_id")),
            option_id=str(_require(data, "option_id")),
            queued_at=_parse_time(_require(data, "queued_at")),
            rejected_status=_optional_status(data),
        )


@dataclass
class ResultSnapshot:
    """Local copy of a finished session for the results view."""

    session_key: SessionKey
    summary: dict[str, Any]
    stored_at: datetime
    pending: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_key": str(self.session_key),
            "summary": self.summary,
            "stored_at": to_iso(self.stored_at),
            "pending": self.pending,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ResultSnapshot:
        summary = _require(data, "summary")
        if not isinstance(summary, dict):
            raise MalformedStateError("summary is not an object")
        return cls(
            session_key=_parse_key(_require(data, "session_key")),
            summary=summary,
            stored_at=_parse_time(_require(data, "stored_at")),
            pending=bool(data.get("pending", False)),
        )
