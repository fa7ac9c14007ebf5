"""
Offline sync.

OfflineSyncManager replays work that could not reach the producer: queued
answers first, in enqueue order, then the pending submission of the same
session. Replay of a session stops at its first failure so nothing is
reordered or skipped. A refusal (4xx) is flagged on the stored item and
the session stays blocked until the learner resets it.

ConnectivityMonitor polls the producer health endpoint and triggers a replay
on each offline -> online transition.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger

from examhall.core.errors import RemoteError, RemoteRejectedError
from examhall.core.models import SessionKey
from examhall.engine.recorder import sync_answer
from examhall.integrations.producer_client import Producer
from examhall.storage.local import LocalRecords


@dataclass
class SyncReport:
    answers_replayed: int = 0
    submissions_replayed: int = 0
    blocked: list[SessionKey] = field(default_factory=list)
    rejected: list[SessionKey] = field(default_factory=list)
    skipped: bool = False

    @property
    def complete(self) -> bool:
        return not self.blocked and not self.skipped


class OfflineSyncManager:
    def __init__(self, producer: Producer, records: LocalRecords):
        self.producer = producer
        self.records = records
        self.is_syncing = False

    def pending_sessions(self) -> list[SessionKey]:
        keys = set(self.records.offline_answers.session_keys())
        keys.update(self.records.pending_submissions.session_keys())
        return sorted(keys, key=str)

    async def on_connectivity_restored(self) -> SyncReport:
        """Replay every session with queued work."""
        if self.is_syncing:
            logger.debug("Replay already running, skipping")
            return SyncReport(skipped=True)

        self.is_syncing = True
        report = SyncReport()
        try:
            for key in self.pending_sessions():
                await self._replay_session(key, report)
        finally:
            self.is_syncing = False

        if report.answers_replayed or report.submissions_replayed:
            logger.info(
                "Replayed {} answers and {} submissions",
                report.answers_replayed,
                report.submissions_replayed,
            )
        if report.blocked:
            logger.warning("Replay stopped for {} sessions", len(report.blocked))
        return report

    async def replay_session(self, session_key: SessionKey) -> SyncReport:
        report = SyncReport()
        await self._replay_session(session_key, report)
        return report

    async def _replay_session(self, session_key: SessionKey, report: SyncReport) -> None:
        drained = await self.replay_answers(session_key, report)
        if drained:
            drained = await self.replay_submission(session_key, report)
        if not drained:
            report.blocked.append(session_key)

    async def replay_answers(self, session_key: SessionKey, report: SyncReport | None = None) -> bool:
        """Replay queued answers head first. True once the queue is empty."""
        queue = self.records.offline_answers
        while True:
            head = queue.peek(session_key)
            if head is None:
                return True
            try:
                await sync_answer(self.producer, session_key, head.entry_id, head.option_id)
            except RemoteRejectedError as exc:
                logger.error(
                    "Producer refused {}={} for {} (HTTP {}), session blocked until reset",
                    head.entry_id,
                    head.option_id,
                    session_key,
                    exc.status_code,
                )
                queue.mark_rejected(session_key, head, exc.status_code)
                if report is not None:
                    report.rejected.append(session_key)
                return False
            except RemoteError as exc:
                logger.warning(
                    "Replay of {}={} for {} failed, {} still queued: {}",
                    head.entry_id,
                    head.option_id,
                    session_key,
                    queue.size(session_key),
                    exc,
                )
                return False
            queue.remove_head(session_key, head)
            if report is not None:
                report.answers_replayed += 1

    async def replay_submission(self, session_key: SessionKey, report: SyncReport | None = None) -> bool:
        """Send the pending finalize verbatim. True if none is left."""
        pending = self.records.pending_submissions.load(session_key)
        if pending is None:
            return True
        try:
            await self.producer.finalize_session(pending.kind, session_key.session_id, pending.payload)
        except RemoteRejectedError as exc:
            logger.error("Producer refused finalize for {} (HTTP {})", session_key, exc.status_code)
            self.records.pending_submissions.mark_rejected(session_key, exc.status_code)
            if report is not None:
                report.rejected.append(session_key)
            return False
        except RemoteError as exc:
            logger.warning("Replay of finalize for {} failed: {}", session_key, exc)
            return False

        self.records.pending_submissions.clear(session_key)
        self.records.progress.clear(session_key)
        self.records.deadlines.clear(session_key)
        self.records.session_cache.clear(session_key)
        self.records.snapshots.mark_final(session_key)
        logger.info("Pending submission for {} delivered", session_key)
        if report is not None:
            report.submissions_replayed += 1
        return True


class ConnectivityMonitor:
    """Poll producer health and fire `on_restored` when it comes back."""

    def __init__(
        self,
        producer: Producer,
        on_restored: Callable[[], Awaitable[Any]],
        poll_seconds: float = 10.0,
        online: bool = True,
    ):
        self.producer = producer
        self.on_restored = on_restored
        self.poll_seconds = poll_seconds
        self.online = online
        self._task: asyncio.Task | None = None

    def mark_offline(self, *_: Any) -> None:
        if self.online:
            logger.info("Producer marked offline")
        self.online = False

    async def poll_once(self) -> bool:
        healthy = await self.producer.health_check()
        if healthy and not self.online:
            self.online = True
            logger.info("Producer reachable again, replaying queued work")
            await self.on_restored()
        elif not healthy and self.online:
            self.online = False
            logger.warning("Producer unreachable")
        return healthy

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())

    def stop(self) -> None:
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception as exc:
                logger.error("Connectivity poll failed: {}", exc)
            await asyncio.sleep(self.poll_seconds)
