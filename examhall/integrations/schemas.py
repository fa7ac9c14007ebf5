"""
Wire payloads returned by the question-pool producer.

The four session variants come from different producer tables, so field names
drift (time_limit_seconds vs timeLimitSeconds, options vs a nested
question.question_options list). These models accept every known spelling and
normalize to the engine's SessionDescriptor / QuestionEntry.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from examhall.core.models import (
    AssignmentRule,
    Option,
    QuestionEntry,
    SessionDescriptor,
    SessionPolicy,
    SessionStatus,
    VariantKind,
)
from examhall.core.timefmt import ensure_aware


def _stringify(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


def _aware(value: datetime | None) -> datetime | None:
    return ensure_aware(value) if value is not None else None


class OptionPayload(BaseModel):
    """One answer option."""

    model_config = ConfigDict(extra="ignore")

    id: str
    label: str = ""
    content: str = Field(default="", validation_alias=AliasChoices("content", "text", "body"))
    is_correct: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("is_correct", "isCorrect", "is_correct_hint", "isCorrectHint"),
    )
    order_index: int | None = Field(default=None, validation_alias=AliasChoices("order_index", "orderIndex"))

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return _stringify(value)

    @field_validator("label", "content", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def sort_key(self) -> int:
        if self.order_index is not None:
            return self.order_index
        return ord(self.label[0]) if self.label else 0

    def to_option(self) -> Option:
        return Option(
            id=self.id,
            label=self.label,
            content=self.content,
            is_correct_hint=self.is_correct,
            order_index=self.order_index,
        )


class EntryPayload(BaseModel):
    """
    One delivered question.

    Accepts the flat shape {id, stem, options} and the daily shape
    {id, selected_option_id, question: {stem, question_options}}.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    stem: str = ""
    options: list[OptionPayload] = Field(default_factory=list)
    selected_option_id: str | None = None
    is_correct: bool | None = None
    answered_at: datetime | None = None
    correct_option_id: str | None = None
    correct_option: str | None = Field(
        default=None,
        validation_alias=AliasChoices("correct_option", "correct_answer", "correctAnswer", "answer"),
    )

    @field_validator("id", "selected_option_id", "correct_option_id", "correct_option", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return _stringify(value)

    @model_validator(mode="before")
    @classmethod
    def _flatten_nested_question(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = dict(data)
        question = flat.pop("question", None)
        if isinstance(question, dict):
            flat.setdefault("stem", question.get("stem") or question.get("text") or "")
            for name in ("question_options", "options"):
                if name in question and "options" not in flat:
                    flat["options"] = question[name]
            for name in ("correct_option_id", "correct_option", "correct_answer"):
                if name in question and name not in flat:
                    flat[name] = question[name]
        if "options" not in flat and "question_options" in flat:
            flat["options"] = flat.pop("question_options")
        if flat.get("stem") is None:
            flat["stem"] = ""
        return flat

    def to_entry(self) -> QuestionEntry:
        options = sorted(self.options, key=lambda o: o.sort_key())
        return QuestionEntry(
            id=self.id,
            stem=self.stem,
            options=[o.to_option() for o in options],
            selected_option_id=self.selected_option_id,
            is_correct=self.is_correct,
            answered_at=_aware(self.answered_at),
            correct_option_id=self.correct_option_id,
            raw_correct_hint=self.correct_option,
        )


class PolicyPayload(BaseModel):
    """Session descriptor and policy as the producer reports it."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "session_id", "attempt_id", "daily_quiz_id"))
    status: SessionStatus = SessionStatus.ASSIGNED
    time_limit_seconds: int | None = Field(
        default=None,
        validation_alias=AliasChoices("time_limit_seconds", "timeLimitSeconds"),
    )
    window_end: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("window_end", "windowEnd", "ends_at", "end_at"),
    )
    started_at: datetime | None = None
    completed_at: datetime | None = None
    user_id: str | None = None
    pool_ref: str | None = Field(default=None, validation_alias=AliasChoices("pool_ref", "poolRef", "pool_id"))
    assignment: dict[str, Any] | None = None

    @field_validator("id", "user_id", "pool_ref", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return _stringify(value)

    @field_validator("time_limit_seconds")
    @classmethod
    def _zero_means_unlimited(cls, value: int | None) -> int | None:
        if value is None or value <= 0:
            return None
        return value

    def to_descriptor(self, variant: VariantKind, session_id: str | None = None) -> SessionDescriptor:
        """
        Build the descriptor under `session_id`, the id the session was opened
        with. A preview slug or an attempt id may differ from the `id` the
        producer reports; local records are always keyed by the former.
        """
        return SessionDescriptor(
            variant=variant,
            session_id=session_id or self.id,
            remote_id=self.id,
            policy=SessionPolicy(
                time_limit_seconds=self.time_limit_seconds,
                window_end=_aware(self.window_end),
            ),
            status=self.status,
            started_at=_aware(self.started_at),
            completed_at=_aware(self.completed_at),
            user_id=self.user_id,
            pool_ref=self.pool_ref or self.id,
            assignment=AssignmentRule.from_dict(self.assignment) if self.assignment else None,
        )


def parse_entries(rows: list[dict[str, Any]]) -> list[QuestionEntry]:
    return [EntryPayload.model_validate(row).to_entry() for row in rows]
