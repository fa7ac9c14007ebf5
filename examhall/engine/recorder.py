"""
Answer Recorder.

Each selection is applied in memory, persisted to the ProgressStore, then
synced to the producer. A failed sync queues the answer for replay instead of
failing the interaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from loguru import logger

from examhall.core.correctness import resolve_is_correct
from examhall.core.errors import RemoteError
from examhall.core.models import SessionKey
from examhall.core.timefmt import Clock, utcnow
from examhall.engine.context import SessionContext
from examhall.engine.deadline import DeadlineClock
from examhall.engine.variants import variant_for
from examhall.integrations.producer_client import Producer
from examhall.storage.local import LocalRecords


async def sync_answer(producer: Producer, session_key: SessionKey, entry_id: str, option_id: str) -> None:
    """Remote-sync path shared by live recording and offline replay."""
    await variant_for(session_key).sync_answer(producer, entry_id, option_id)


@dataclass
class RecordResult:
    accepted: bool
    synced: bool = False
    queued: bool = False
    is_correct: bool | None = None


IGNORED = RecordResult(accepted=False)


class AnswerRecorder:
    def __init__(
        self,
        ctx: SessionContext,
        producer: Producer,
        records: LocalRecords,
        clock: DeadlineClock,
        now: Clock = utcnow,
        on_remote_failure: Callable[[RemoteError], None] | None = None,
    ):
        self.ctx = ctx
        self.producer = producer
        self.records = records
        self.clock = clock
        self.now = now
        self.on_remote_failure = on_remote_failure

    async def record(self, entry_id: str, option_id: str) -> RecordResult:
        """
        Record one selection.

        Selections for unknown entries or options, or after completion, are
        ignored without touching any state.
        """
        if self.ctx.is_completed:
            logger.debug("Ignoring answer for completed session {}", self.ctx.key)
            return IGNORED

        entry = self.ctx.entry(entry_id)
        option = entry.find_option(option_id) if entry else None
        if entry is None or option is None:
            logger.debug("Ignoring answer {}={} not on the rendered entry", entry_id, option_id)
            return IGNORED

        await self.clock.ensure_started()

        answered_at = self.now()
        entry.selected_option_id = option.id
        entry.is_correct = resolve_is_correct(entry, option)
        entry.answered_at = answered_at

        key = self.ctx.key
        self.records.progress.record_answer(key, entry.id, option.id, recorded_at=answered_at)

        result = RecordResult(accepted=True, is_correct=entry.is_correct)
        if not self.ctx.variant.syncs_answers:
            return result

        # Earlier answers still queued go first
        if self.records.offline_answers.size(key) > 0:
            self.records.offline_answers.enqueue(key, entry.id, option.id)
            result.queued = True
            return result

        try:
            await sync_answer(self.producer, key, entry.id, option.id)
            result.synced = True
        except RemoteError as exc:
            if self.ctx.is_completed:
                # Finalized while the sync was in flight; the answer is in the completion record
                logger.info("Answer sync for {} failed after finalize, not queued: {}", key, exc)
                return result
            logger.warning("Answer sync for {} failed, queued for replay: {}", key, exc)
            self.records.offline_answers.enqueue(key, entry.id, option.id)
            result.queued = True
            if self.on_remote_failure is not None:
                self.on_remote_failure(exc)
        return result
