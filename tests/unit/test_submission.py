"""
Unit tests for SubmissionCoordinator.
"""

from datetime import timedelta

import pytest

from examhall.core.models import SessionKey, SessionStatus, VariantKind
from examhall.engine.loader import SessionLoader
from examhall.engine.offline_sync import OfflineSyncManager
from examhall.engine.submission import FinalizeStatus, Redirect, SubmissionCoordinator
from examhall.engine.variants import EntryParams


async def _coordinator(producer, records, clock, params, confirm=None):
    ctx = (await SessionLoader(producer, records).load(params)).context
    return SubmissionCoordinator(
        ctx,
        producer,
        records,
        sync=OfflineSyncManager(producer, records),
        confirm=confirm,
        now=clock,
    )


def _answer(ctx, entry_id, option_id, clock):
    ctx.mark_started(clock())
    entry = ctx.entry(entry_id)
    entry.selected_option_id = option_id
    entry.is_correct = option_id.endswith("-b")


class TestSubmissionCoordinator:
    @pytest.mark.asyncio
    async def test_summary_and_snapshot(self, producer, records, clock, pool_rows):
        producer.add_session(VariantKind.PRACTICE, "set-1", pool_rows(4))
        coordinator = await _coordinator(producer, records, clock, EntryParams(practice_set_id="set-1"))
        ctx = coordinator.ctx
        _answer(ctx, "e1", "e1-b", clock)
        _answer(ctx, "e2", "e2-a", clock)
        clock.advance(95)

        outcome = await coordinator.finalize()

        assert outcome.status == FinalizeStatus.SUBMITTED
        assert outcome.redirect == Redirect.RESULT
        summary = outcome.summary
        assert (summary.correct, summary.total, summary.answered, summary.skipped) == (1, 4, 2, 2)
        assert summary.score == 0.25
        assert summary.duration_seconds == 95
        assert ctx.status == SessionStatus.COMPLETED

        kind, session_id, payload = producer.finalized[0]
        assert (kind, session_id) == (VariantKind.PRACTICE, "set-1")
        assert payload["correct_count"] == 1
        assert "answers" not in payload
        assert records.snapshots.get(ctx.key).pending is False

    @pytest.mark.asyncio
    async def test_proctored_sends_answer_map(self, producer, records, clock, pool_rows):
        producer.add_session(VariantKind.PROCTORED, "att-1", pool_rows(3))
        coordinator = await _coordinator(producer, records, clock, EntryParams(attempt_id="att-1"))
        _answer(coordinator.ctx, "e3", "e3-b", clock)

        await coordinator.finalize()

        payload = producer.finalized[0][2]
        assert [(a["entry_id"], a["option_id"]) for a in payload["answers"]] == [("e3", "e3-b")]
        assert records.snapshots.get(coordinator.ctx.key) is None

    @pytest.mark.asyncio
    async def test_confirmation_shows_counts(self, producer, records, clock, pool_rows):
        producer.add_session(VariantKind.DAILY, "dq-1", pool_rows(3))
        seen = []

        def confirm(progress):
            seen.append((progress.answered, progress.skipped, progress.total))
            return False

        coordinator = await _coordinator(producer, records, clock, EntryParams(daily_session_id="dq-1"), confirm)
        _answer(coordinator.ctx, "e1", "e1-b", clock)

        outcome = await coordinator.finalize()

        assert outcome.status == FinalizeStatus.CANCELLED
        assert seen == [(1, 2, 3)]
        assert coordinator.ctx.status == SessionStatus.IN_PROGRESS
        assert producer.finalized == []

    @pytest.mark.asyncio
    async def test_async_confirmation(self, producer, records, clock, pool_rows):
        producer.add_session(VariantKind.DAILY, "dq-1", pool_rows(1))

        async def confirm(progress):
            return True

        coordinator = await _coordinator(producer, records, clock, EntryParams(daily_session_id="dq-1"), confirm)

        assert (await coordinator.finalize()).status == FinalizeStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_forced_skips_confirmation(self, producer, records, clock, pool_rows):
        producer.add_session(VariantKind.DAILY, "dq-1", pool_rows(2))

        def confirm(progress):
            raise AssertionError("forced finalize must not ask")

        coordinator = await _coordinator(producer, records, clock, EntryParams(daily_session_id="dq-1"), confirm)

        outcome = await coordinator.finalize(forced=True)

        assert outcome.status == FinalizeStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_at_most_one_finalize(self, producer, records, clock, pool_rows):
        producer.add_session(VariantKind.DAILY, "dq-1", pool_rows(2))
        coordinator = await _coordinator(producer, records, clock, EntryParams(daily_session_id="dq-1"))

        first = await coordinator.finalize()
        second = await coordinator.finalize(forced=True)

        assert first.status == FinalizeStatus.SUBMITTED
        assert second.status == FinalizeStatus.ALREADY_COMPLETED
        assert len(producer.finalized) == 1

    @pytest.mark.asyncio
    async def test_unreachable_producer_leaves_pending(self, producer, records, clock, pool_rows):
        producer.add_session(VariantKind.DAILY, "dq-1", pool_rows(2))
        coordinator = await _coordinator(producer, records, clock, EntryParams(daily_session_id="dq-1"))
        _answer(coordinator.ctx, "e1", "e1-b", clock)
        producer.online = False

        outcome = await coordinator.finalize()

        key = SessionKey(VariantKind.DAILY, "dq-1")
        assert outcome.status == FinalizeStatus.PENDING
        assert outcome.redirect == Redirect.PENDING_RESULTS
        pending = records.pending_submissions.load(key)
        assert pending.kind == VariantKind.DAILY
        assert pending.payload["correct_count"] == 1
        assert records.snapshots.get(key).pending is True

    @pytest.mark.asyncio
    async def test_queued_answers_flushed_before_finalize(self, producer, records, clock, pool_rows):
        producer.add_session(VariantKind.DAILY, "dq-1", pool_rows(2))
        coordinator = await _coordinator(producer, records, clock, EntryParams(daily_session_id="dq-1"))
        key = coordinator.ctx.key
        records.offline_answers.enqueue(key, "e1", "e1-b")

        outcome = await coordinator.finalize()

        assert outcome.status == FinalizeStatus.SUBMITTED
        assert producer.calls.index("record_answer") < producer.calls.index("finalize_session")
        assert records.offline_answers.size(key) == 0

    @pytest.mark.asyncio
    async def test_stuck_queue_defers_finalize(self, producer, records, clock, pool_rows):
        producer.add_session(VariantKind.DAILY, "dq-1", pool_rows(2))
        coordinator = await _coordinator(producer, records, clock, EntryParams(daily_session_id="dq-1"))
        key = coordinator.ctx.key
        records.offline_answers.enqueue(key, "e1", "e1-b")
        producer.fail_next["record_answer"] = 1

        outcome = await coordinator.finalize()

        assert outcome.status == FinalizeStatus.PENDING
        assert "finalize_session" not in producer.calls
        assert records.pending_submissions.load(key) is not None

    @pytest.mark.asyncio
    async def test_duration_absent_without_start(self, producer, records, clock, pool_rows):
        producer.add_session(VariantKind.DAILY, "dq-1", pool_rows(1))
        coordinator = await _coordinator(producer, records, clock, EntryParams(daily_session_id="dq-1"))

        outcome = await coordinator.finalize()

        assert outcome.summary.duration_seconds is None
        assert outcome.summary.score == 0.0

    @pytest.mark.asyncio
    async def test_duration_never_negative(self, producer, records, clock, pool_rows):
        producer.add_session(
            VariantKind.DAILY,
            "dq-1",
            pool_rows(1),
            status="in_progress",
            started_at=(clock() + timedelta(minutes=5)).isoformat(),
        )
        coordinator = await _coordinator(producer, records, clock, EntryParams(daily_session_id="dq-1"))

        outcome = await coordinator.finalize()

        assert outcome.summary.duration_seconds == 0
