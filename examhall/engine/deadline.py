"""
Deadline Clock.

Owns the effective deadline of one session and the two timers around it:

- countdown: ticks every second and publishes a display label
- deadline watch: checks every few seconds and forces finalize once
  now >= deadline, whether or not the countdown ever ran

The deadline is computed once from the session start and stored as a
DeadlineRecord; later loads read the record instead of recomputing it.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from loguru import logger

from examhall.core.models import DeadlineRecord
from examhall.core.timefmt import Clock, format_countdown, utcnow
from examhall.engine.context import SessionContext
from examhall.storage.local import LocalRecords

ExpiredCallback = Callable[[], Awaitable[Any]]
TickCallback = Callable[[str], None]


def compute_effective_deadline(
    started_at: datetime | None,
    time_limit_seconds: int | None,
    window_end: datetime | None,
) -> datetime | None:
    """min(started_at + limit, window_end); whichever exists if only one does."""
    candidates = []
    if started_at is not None and time_limit_seconds:
        candidates.append(started_at + timedelta(seconds=time_limit_seconds))
    if window_end is not None:
        candidates.append(window_end)
    return min(candidates) if candidates else None


class DeadlineClock:
    def __init__(
        self,
        ctx: SessionContext,
        records: LocalRecords,
        on_expired: ExpiredCallback,
        on_tick: TickCallback | None = None,
        now: Clock = utcnow,
        tick_seconds: float = 1.0,
        check_seconds: float = 5.0,
    ):
        self.ctx = ctx
        self.records = records
        self.on_expired = on_expired
        self.on_tick = on_tick
        self.now = now
        self.tick_seconds = tick_seconds
        self.check_seconds = check_seconds

        self.label = ""
        self._deadline_at: datetime | None = None
        self._expired_fired = False
        self._countdown_task: asyncio.Task | None = None
        self._watch_task: asyncio.Task | None = None

    # =========================================================================
    # Deadline
    # =========================================================================

    @property
    def has_limit(self) -> bool:
        policy = self.ctx.descriptor.policy
        return bool(policy.time_limit_seconds) or policy.window_end is not None

    def deadline_at(self) -> datetime | None:
        """
        The effective deadline, from the stored record when one exists.

        Persisted once the session has started, or immediately when only a
        window end governs (it does not depend on the start time).
        """
        if self._deadline_at is not None:
            return self._deadline_at

        key = self.ctx.key
        stored = self.records.deadlines.load(key)
        if stored is not None:
            self._deadline_at = stored.deadline_at
            return self._deadline_at

        policy = self.ctx.descriptor.policy
        started_at = self.ctx.descriptor.started_at
        computed = compute_effective_deadline(started_at, policy.time_limit_seconds, policy.window_end)
        if computed is None:
            return None

        if started_at is not None or not policy.time_limit_seconds:
            self.records.deadlines.save(DeadlineRecord(session_key=key, deadline_at=computed))
            self._deadline_at = computed
            logger.debug("Deadline for {} fixed at {}", key, computed.isoformat())
        return computed

    def remaining_seconds(self) -> float | None:
        """Seconds left, None for an unlimited session."""
        policy = self.ctx.descriptor.policy
        deadline = self.deadline_at()

        if not self.ctx.is_started and policy.time_limit_seconds:
            remaining = float(policy.time_limit_seconds)
            if deadline is not None:
                remaining = min(remaining, (deadline - self.now()).total_seconds())
            return max(0.0, remaining)

        if deadline is None:
            return None
        return max(0.0, (deadline - self.now()).total_seconds())

    def display(self) -> str:
        return format_countdown(self.remaining_seconds())

    def is_expired(self) -> bool:
        deadline = self.deadline_at()
        return deadline is not None and self.now() >= deadline

    async def ensure_started(self) -> bool:
        """Move the session to in_progress and fix its deadline. True on transition."""
        now = self.now()
        if not self.ctx.mark_started(now):
            return False

        self.records.progress.merge(
            self.ctx.key,
            started_at=self.ctx.descriptor.started_at,
            attempt_id=self.ctx.attempt_id,
        )
        self._deadline_at = None
        self.deadline_at()
        logger.info("Session {} started at {}", self.ctx.key, now.isoformat())

        if self.has_limit and self._countdown_task is None:
            self.start_countdown()
        return True

    async def check_deadline(self) -> bool:
        """Force finalize if the deadline has passed. True if it fired now."""
        if self.ctx.is_completed or self._expired_fired:
            return False
        if not self.is_expired():
            return False

        self._expired_fired = True
        logger.warning("Deadline reached for {}, finalizing", self.ctx.key)
        self.stop()
        await self.on_expired()
        return True

    # =========================================================================
    # Timers
    # =========================================================================

    def start(self) -> None:
        """Start the deadline watch, plus the countdown once the session runs."""
        if self.has_limit and self._watch_task is None:
            self._watch_task = asyncio.create_task(self._watch_loop())
        if self.has_limit and self.ctx.is_started:
            self.start_countdown()
        self._publish()

    def start_countdown(self) -> None:
        if self._countdown_task is None:
            self._countdown_task = asyncio.create_task(self._countdown_loop())

    def stop(self) -> None:
        """Cancel both timers. Safe to call from inside either of them."""
        current = asyncio.current_task()
        for task in (self._countdown_task, self._watch_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._countdown_task = None
        self._watch_task = None

    @property
    def running(self) -> bool:
        return any(
            task is not None and not task.done()
            for task in (self._countdown_task, self._watch_task)
        )

    def _publish(self) -> None:
        self.label = self.display()
        if self.on_tick is not None:
            self.on_tick(self.label)

    async def _countdown_loop(self) -> None:
        while not self.ctx.is_completed:
            self._publish()
            if self.is_expired():
                await self._safe_check()
                return
            await asyncio.sleep(self.tick_seconds)

    async def _watch_loop(self) -> None:
        while not self.ctx.is_completed:
            if await self._safe_check():
                return
            await asyncio.sleep(self.check_seconds)

    async def _safe_check(self) -> bool:
        try:
            return await self.check_deadline()
        except Exception as exc:
            logger.error("Forced finalize for {} failed: {}", self.ctx.key, exc)
            return True
