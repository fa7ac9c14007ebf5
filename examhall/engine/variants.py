"""
Session variants.

Daily, preview, proctored and practice sessions share one engine but differ in
where their policy comes from, which entries they deliver, whether answers are
synced, and what finalize sends. Each difference lives on a variant class
instead of a mode flag checked throughout the engine.
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, ClassVar, Sequence

from loguru import logger

from examhall.core.allocation import DEFAULT_TIER_SET, select_questions
from examhall.core.errors import UnauthorizedSessionError
from examhall.core.models import (
    AllocationContext,
    QuestionEntry,
    SessionDescriptor,
    SessionKey,
    SessionSummary,
    VariantKind,
)
from examhall.core.timefmt import to_iso, utcnow
from examhall.integrations.producer_client import Producer

if TYPE_CHECKING:
    from examhall.engine.context import SessionContext


@dataclass
class EntryParams:
    """How the learner arrived: ids from the entry point plus identity."""

    attempt_id: str | None = None
    preview_slug: str | None = None
    practice_set_id: str | None = None
    daily_session_id: str | None = None
    user_id: str | None = None
    plan_id: str | None = None
    plan_tier: str | None = None
    selected_tier_set: tuple[int, ...] | None = None
    today: date | None = None

    def resolved_today(self) -> date:
        return self.today or utcnow().date()


class SessionVariant(ABC):
    """Common load / record / finalize capability set."""

    kind: ClassVar[VariantKind]
    syncs_answers: ClassVar[bool] = True
    keeps_result_snapshot: ClassVar[bool] = True

    def __init__(self, session_id: str | None):
        self.session_id = session_id

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.session_id!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SessionVariant):
            return NotImplemented
        return type(self) is type(other) and self.session_id == other.session_id

    def __hash__(self) -> int:
        return hash((self.kind, self.session_id))

    @property
    def session_key(self) -> SessionKey:
        if self.session_id is None:
            raise ValueError(f"{type(self).__name__} has no session id yet")
        return SessionKey(self.kind, self.session_id)

    # =========================================================================
    # Load
    # =========================================================================

    async def locate(self, producer: Producer, params: EntryParams) -> SessionVariant | None:
        """Resolve the concrete session id. None means there is nothing to take."""
        return self

    async def fetch_descriptor(self, producer: Producer) -> dict[str, Any] | None:
        return await producer.fetch_session_policy(self.kind, self.session_key.session_id)

    def check_access(self, descriptor: SessionDescriptor, params: EntryParams) -> None:
        """Raise UnauthorizedSessionError if the learner may not take this session."""

    def select_entries(
        self,
        entries: list[QuestionEntry],
        descriptor: SessionDescriptor,
        params: EntryParams,
        default_tiers: Sequence[int] = DEFAULT_TIER_SET,
    ) -> list[QuestionEntry]:
        return entries

    # =========================================================================
    # Record
    # =========================================================================

    async def sync_answer(self, producer: Producer, entry_id: str, option_id: str) -> None:
        await producer.record_answer(self.kind, self.session_key.session_id, entry_id, option_id)

    # =========================================================================
    # Finalize
    # =========================================================================

    def build_finalize_payload(self, ctx: SessionContext, summary: SessionSummary) -> dict[str, Any]:
        """Completion record: counts, score and timestamps."""
        return {
            "status": "completed",
            "correct_count": summary.correct,
            "total_count": summary.total,
            "answered_count": summary.answered,
            "score": summary.score,
            "started_at": to_iso(summary.started_at),
            "completed_at": to_iso(summary.completed_at),
            "duration_seconds": summary.duration_seconds,
        }

    async def finalize(self, producer: Producer, payload: dict[str, Any]) -> dict[str, Any]:
        return await producer.finalize_session(self.kind, self.session_key.session_id, payload)


class DailySession(SessionVariant):
    """Subscription-gated session assigned to one learner per day."""

    kind = VariantKind.DAILY

    async def locate(self, producer: Producer, params: EntryParams) -> SessionVariant | None:
        if self.session_id is not None:
            return self

        if not params.user_id:
            logger.info("No identity for daily lookup")
            return None

        today = params.resolved_today()
        found = await producer.find_daily_session(params.user_id, today)
        if not found or found.get("id") is None:
            logger.info("No daily session assigned to {} on {}", params.user_id, today)
            return None
        return DailySession(str(found["id"]))

    def check_access(self, descriptor: SessionDescriptor, params: EntryParams) -> None:
        owner = descriptor.user_id
        if owner is not None and params.user_id is not None and owner != params.user_id:
            raise UnauthorizedSessionError(
                f"Daily session {descriptor.session_id} belongs to another learner"
            )


class PreviewSession(SessionVariant):
    """Anonymous preview; answers never leave the device until finalize."""

    kind = VariantKind.PREVIEW
    syncs_answers = False

    async def sync_answer(self, producer: Producer, entry_id: str, option_id: str) -> None:
        return None


class ProctoredSession(SessionVariant):
    """Single-attempt exam keyed by attempt id."""

    kind = VariantKind.PROCTORED
    keeps_result_snapshot = False

    def build_finalize_payload(self, ctx: SessionContext, summary: SessionSummary) -> dict[str, Any]:
        payload = super().build_finalize_payload(ctx, summary)
        payload["answers"] = [
            {
                "entry_id": entry.id,
                "option_id": entry.selected_option_id,
                "is_correct": entry.is_correct,
                "answered_at": to_iso(entry.answered_at),
            }
            for entry in ctx.entries
            if entry.selected_option_id is not None
        ]
        return payload


class PracticeSession(SessionVariant):
    """Bonus practice set; delivers an allocated subset of the pool."""

    kind = VariantKind.PRACTICE

    def select_entries(
        self,
        entries: list[QuestionEntry],
        descriptor: SessionDescriptor,
        params: EntryParams,
        default_tiers: Sequence[int] = DEFAULT_TIER_SET,
    ) -> list[QuestionEntry]:
        context = AllocationContext(
            plan_tier=params.plan_tier,
            selected_tier_set=params.selected_tier_set,
        )
        return select_questions(
            entries,
            descriptor.assignment,
            context,
            plan_id=params.plan_id,
            default_tiers=default_tiers,
        )


VARIANTS: dict[VariantKind, type[SessionVariant]] = {
    VariantKind.DAILY: DailySession,
    VariantKind.PREVIEW: PreviewSession,
    VariantKind.PROCTORED: ProctoredSession,
    VariantKind.PRACTICE: PracticeSession,
}


def variant_for(session_key: SessionKey) -> SessionVariant:
    return VARIANTS[session_key.variant](session_key.session_id)


def resolve_variant(params: EntryParams) -> SessionVariant:
    """
    Pick the variant from entry parameters.

    Priority: proctored attempt id, then preview slug, then practice set id,
    then the daily session (explicit id or today's lookup).
    """
    if params.attempt_id:
        return ProctoredSession(params.attempt_id)
    if params.preview_slug:
        return PreviewSession(params.preview_slug)
    if params.practice_set_id:
        return PracticeSession(params.practice_set_id)
    return DailySession(params.daily_session_id)
