"""
Exam runtime.

Wires one loaded SessionContext to its clock, recorder, coordinator and the
offline sync machinery. Front ends (the CLI, tests) drive a session through
this object only.

Usage:
    outcome = await SessionLoader(producer, records).load(params)
    runtime = ExamRuntime(outcome.context, producer, records, settings)
    runtime.start()
    await runtime.answer("e1", "o2")
    result = await runtime.submit()
    runtime.close()
"""

from __future__ import annotations

from loguru import logger

from examhall.config import Settings
from examhall.core.timefmt import Clock, utcnow
from examhall.engine.context import ProgressSummary, SessionContext
from examhall.engine.deadline import DeadlineClock, TickCallback
from examhall.engine.offline_sync import ConnectivityMonitor, OfflineSyncManager, SyncReport
from examhall.engine.recorder import AnswerRecorder, RecordResult
from examhall.engine.submission import ConfirmCallback, FinalizeOutcome, SubmissionCoordinator
from examhall.integrations.producer_client import Producer
from examhall.storage.local import LocalRecords


class ExamRuntime:
    def __init__(
        self,
        ctx: SessionContext,
        producer: Producer,
        records: LocalRecords,
        settings: Settings,
        confirm: ConfirmCallback | None = None,
        on_tick: TickCallback | None = None,
        now: Clock = utcnow,
        watch_connectivity: bool = False,
    ):
        self.ctx = ctx
        self.records = records
        self.sync = OfflineSyncManager(producer, records)
        self.coordinator = SubmissionCoordinator(
            ctx,
            producer,
            records,
            sync=self.sync,
            confirm=confirm,
            now=now,
        )
        self.clock = DeadlineClock(
            ctx,
            records,
            on_expired=self._on_deadline,
            on_tick=on_tick,
            now=now,
            tick_seconds=settings.countdown_tick_seconds,
            check_seconds=settings.deadline_check_seconds,
        )
        self.coordinator.clock = self.clock

        self.monitor: ConnectivityMonitor | None = None
        if watch_connectivity:
            self.monitor = ConnectivityMonitor(
                producer,
                on_restored=self.sync.on_connectivity_restored,
                poll_seconds=settings.connectivity_poll_seconds,
            )

        self.recorder = AnswerRecorder(
            ctx,
            producer,
            records,
            self.clock,
            now=now,
            on_remote_failure=self.monitor.mark_offline if self.monitor else None,
        )

    async def _on_deadline(self) -> FinalizeOutcome:
        return await self.coordinator.finalize(forced=True)

    def start(self) -> None:
        self.clock.start()
        if self.monitor is not None:
            self.monitor.start()

    def close(self) -> None:
        """Stop timers. Persisted answers stay where they are."""
        self.clock.stop()
        if self.monitor is not None:
            self.monitor.stop()
        logger.debug("Closed runtime for {}", self.ctx.key)

    @property
    def outcome(self) -> FinalizeOutcome | None:
        return self.coordinator.outcome

    def progress(self) -> ProgressSummary:
        return self.ctx.progress()

    def countdown(self) -> str:
        return self.clock.display()

    async def begin(self) -> bool:
        """Start the session explicitly, before the first answer."""
        return await self.clock.ensure_started()

    async def answer(self, entry_id: str, option_id: str) -> RecordResult:
        if await self.clock.check_deadline():
            logger.info("Answer for {} arrived after the deadline", self.ctx.key)
        return await self.recorder.record(entry_id, option_id)

    async def submit(self, forced: bool = False) -> FinalizeOutcome:
        return await self.coordinator.finalize(forced=forced)

    async def sync_now(self) -> SyncReport:
        return await self.sync.on_connectivity_restored()
