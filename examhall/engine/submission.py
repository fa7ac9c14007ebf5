"""
Submission Coordinator.

Finalizes a session at most once. The completed status is set before the
remote call, so a second finalize (user click racing the deadline watch)
sees a terminal session and returns already_completed.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Union

from loguru import logger

from examhall.core.errors import RemoteError
from examhall.core.models import PendingSubmission, SessionSummary
from examhall.core.timefmt import Clock, utcnow
from examhall.engine.context import ProgressSummary, SessionContext
from examhall.engine.deadline import DeadlineClock
from examhall.engine.offline_sync import OfflineSyncManager
from examhall.integrations.producer_client import Producer
from examhall.storage.local import LocalRecords

ConfirmCallback = Callable[[ProgressSummary], Union[bool, Awaitable[bool]]]


class FinalizeStatus(str, Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    CANCELLED = "cancelled"
    ALREADY_COMPLETED = "already_completed"


class Redirect(str, Enum):
    RESULT = "result"
    PENDING_RESULTS = "pending_results"


@dataclass
class FinalizeOutcome:
    status: FinalizeStatus
    summary: SessionSummary | None = None
    redirect: Redirect | None = None


class SubmissionCoordinator:
    def __init__(
        self,
        ctx: SessionContext,
        producer: Producer,
        records: LocalRecords,
        sync: OfflineSyncManager | None = None,
        confirm: ConfirmCallback | None = None,
        now: Clock = utcnow,
    ):
        self.ctx = ctx
        self.producer = producer
        self.records = records
        self.sync = sync
        self.confirm = confirm
        self.now = now
        self.clock: DeadlineClock | None = None
        self.outcome: FinalizeOutcome | None = None

    async def _confirmed(self) -> bool:
        if self.confirm is None:
            return True
        answer = self.confirm(self.ctx.progress())
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    async def finalize(self, forced: bool = False) -> FinalizeOutcome:
        """
        Finalize the session.

        Args:
            forced: Deadline expiry; skips confirmation

        Returns:
            FinalizeOutcome. A producer outage yields PENDING, never an error.
        """
        if self.ctx.is_completed:
            return FinalizeOutcome(FinalizeStatus.ALREADY_COMPLETED)

        if not forced and not await self._confirmed():
            logger.debug("Finalize of {} cancelled by learner", self.ctx.key)
            return FinalizeOutcome(FinalizeStatus.CANCELLED)

        # Deadline may have fired while the confirmation was open
        if not self.ctx.mark_completed(self.now()):
            return FinalizeOutcome(FinalizeStatus.ALREADY_COMPLETED)

        if self.clock is not None:
            self.clock.stop()

        key = self.ctx.key
        variant = self.ctx.variant
        summary = self.ctx.compute_summary()
        payload = variant.build_finalize_payload(self.ctx, summary)
        logger.info(
            "Finalizing {} ({}/{} correct, forced={})",
            key,
            summary.correct,
            summary.total,
            forced,
        )

        delivered = False
        if await self._answers_drained():
            try:
                await variant.finalize(self.producer, payload)
                delivered = True
            except RemoteError as exc:
                logger.warning("Finalize of {} deferred: {}", key, exc)
        else:
            logger.warning("Finalize of {} deferred behind queued answers", key)

        if not delivered:
            self.records.pending_submissions.save(
                PendingSubmission(session_key=key, kind=variant.kind, payload=payload, queued_at=self.now())
            )
            self.records.deadlines.clear(key)
            if variant.keeps_result_snapshot:
                self.records.snapshots.save(key, summary.to_dict(), pending=True)
            self.outcome = FinalizeOutcome(FinalizeStatus.PENDING, summary, Redirect.PENDING_RESULTS)
            return self.outcome

        self.records.progress.clear(key)
        self.records.deadlines.clear(key)
        self.records.session_cache.clear(key)
        if variant.keeps_result_snapshot:
            self.records.snapshots.save(key, summary.to_dict())
        self.outcome = FinalizeOutcome(FinalizeStatus.SUBMITTED, summary, Redirect.RESULT)
        return self.outcome

    async def _answers_drained(self) -> bool:
        """Queued answers must reach the producer before the finalize does."""
        key = self.ctx.key
        if self.records.offline_answers.size(key) == 0:
            return True
        if self.sync is None:
            return False
        return await self.sync.replay_answers(key)
