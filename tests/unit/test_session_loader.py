"""
Unit tests for SessionLoader and variant resolution.
"""

from datetime import date

import pytest

from examhall.core.errors import (
    RemoteUnreachableError,
    SessionNotFoundError,
    UnauthorizedSessionError,
)
from examhall.core.models import PendingSubmission, SessionKey, SessionStatus, VariantKind
from examhall.engine.loader import LoadStatus, SessionLoader
from examhall.engine.variants import (
    DailySession,
    EntryParams,
    PracticeSession,
    PreviewSession,
    ProctoredSession,
    resolve_variant,
)

TODAY = date(2026, 3, 2)


@pytest.fixture
def loader(producer, records):
    return SessionLoader(producer, records)


class TestResolveVariant:
    def test_priority_order(self):
        params = EntryParams(attempt_id="att", preview_slug="slug", practice_set_id="set", daily_session_id="dq")
        assert resolve_variant(params) == ProctoredSession("att")

        params.attempt_id = None
        assert resolve_variant(params) == PreviewSession("slug")

        params.preview_slug = None
        assert resolve_variant(params) == PracticeSession("set")

        params.practice_set_id = None
        assert resolve_variant(params) == DailySession("dq")

    def test_default_is_daily_lookup(self):
        assert resolve_variant(EntryParams()) == DailySession(None)


class TestSessionLoader:
    @pytest.mark.asyncio
    async def test_loads_ready_context(self, loader, producer, pool_rows):
        producer.add_session(VariantKind.PROCTORED, "att-1", pool_rows(3), time_limit_seconds=600)

        outcome = await loader.load(EntryParams(attempt_id="att-1"))

        assert outcome.status == LoadStatus.READY
        ctx = outcome.context
        assert ctx.key == SessionKey(VariantKind.PROCTORED, "att-1")
        assert [e.id for e in ctx.entries] == ["e1", "e2", "e3"]
        assert ctx.descriptor.policy.time_limit_seconds == 600
        assert ctx.attempt_id == "att-1"

    @pytest.mark.asyncio
    async def test_completed_attempt_redirects_to_result(self, loader, producer, pool_rows):
        producer.add_session(VariantKind.PROCTORED, "att-1", pool_rows(3), status="completed")

        outcome = await loader.load(EntryParams(attempt_id="att-1"))

        assert outcome.status == LoadStatus.REDIRECT_RESULT
        assert outcome.context is None
        assert "fetch_question_pool" not in producer.calls

    @pytest.mark.asyncio
    async def test_unknown_session(self, loader):
        with pytest.raises(SessionNotFoundError):
            await loader.load(EntryParams(attempt_id="missing"))

    @pytest.mark.asyncio
    async def test_daily_lookup_by_identity_and_date(self, loader, producer, pool_rows):
        producer.add_session(VariantKind.DAILY, "dq-5", pool_rows(2), user_id="u-1")
        producer.daily[("u-1", TODAY)] = {"id": "dq-5"}

        outcome = await loader.load(EntryParams(user_id="u-1", today=TODAY))

        assert outcome.is_ready
        assert outcome.session_key == SessionKey(VariantKind.DAILY, "dq-5")

    @pytest.mark.asyncio
    async def test_daily_without_session_redirects_to_dashboard(self, loader):
        outcome = await loader.load(EntryParams(user_id="u-1", today=TODAY))
        assert outcome.status == LoadStatus.REDIRECT_DASHBOARD

    @pytest.mark.asyncio
    async def test_daily_owned_by_someone_else(self, loader, producer, pool_rows):
        producer.add_session(VariantKind.DAILY, "dq-5", pool_rows(2), user_id="u-2")

        with pytest.raises(UnauthorizedSessionError):
            await loader.load(EntryParams(daily_session_id="dq-5", user_id="u-1"))

    @pytest.mark.asyncio
    async def test_pending_submission_routes_to_pending_results(self, loader, records, producer, clock):
        key = SessionKey(VariantKind.DAILY, "dq-5")
        records.pending_submissions.save(PendingSubmission(key, VariantKind.DAILY, {}, clock()))

        outcome = await loader.load(EntryParams(daily_session_id="dq-5"))

        assert outcome.status == LoadStatus.PENDING_RESULTS
        assert producer.calls == []

    @pytest.mark.asyncio
    async def test_practice_applies_allocation(self, loader, producer, pool_rows):
        producer.add_session(
            VariantKind.PRACTICE,
            "set-1",
            pool_rows(10),
            assignment={"mode": "equal_split"},
        )

        outcome = await loader.load(EntryParams(practice_set_id="set-1", plan_tier="100"))

        assert [e.id for e in outcome.context.entries] == ["e1", "e2", "e3", "e4"]

    @pytest.mark.asyncio
    async def test_restores_local_progress(self, loader, producer, records, pool_rows, clock):
        producer.add_session(VariantKind.PROCTORED, "att-1", pool_rows(2))
        key = SessionKey(VariantKind.PROCTORED, "att-1")
        records.progress.merge(key, started_at=clock())
        records.progress.record_answer(key, "e2", "e2-b")
        records.progress.record_answer(key, "e1", "no-such-option")

        ctx = (await loader.load(EntryParams(attempt_id="att-1"))).context

        assert ctx.status == SessionStatus.IN_PROGRESS
        assert ctx.descriptor.started_at == clock()
        assert ctx.entry("e2").selected_option_id == "e2-b"
        assert ctx.entry("e2").is_correct is True
        assert ctx.entry("e1").selected_option_id is None

    @pytest.mark.asyncio
    async def test_offline_reload_uses_cache(self, loader, producer, pool_rows):
        producer.add_session(
            VariantKind.PRACTICE,
            "set-1",
            pool_rows(10),
            assignment={"mode": "fixed_count", "value": 4},
        )
        params = EntryParams(practice_set_id="set-1")
        first = await loader.load(params)

        producer.online = False
        second = await loader.load(params)

        assert [e.id for e in second.context.entries] == [e.id for e in first.context.entries]

    @pytest.mark.asyncio
    async def test_offline_without_cache_raises(self, loader, producer):
        producer.online = False

        with pytest.raises(RemoteUnreachableError):
            await loader.load(EntryParams(attempt_id="att-1"))

    @pytest.mark.asyncio
    async def test_records_keyed_by_entry_id_not_producer_id(self, loader, producer, records, pool_rows, clock):
        producer.add_session(VariantKind.PREVIEW, "intro", pool_rows(2), id="quiz-uuid-1")
        key = SessionKey(VariantKind.PREVIEW, "intro")
        records.progress.record_answer(key, "e1", "e1-b")

        outcome = await loader.load(EntryParams(preview_slug="intro"))

        ctx = outcome.context
        assert ctx.key == key
        assert outcome.session_key == key
        assert ctx.descriptor.remote_id == "quiz-uuid-1"
        assert ctx.entry("e1").selected_option_id == "e1-b"
