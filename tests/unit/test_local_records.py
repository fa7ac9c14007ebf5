"""
Unit tests for durable local records.

Covers the key-value backends, ProgressStore merge semantics, the offline
answer queue, pending submissions, deadlines, the session cache and result
snapshots. Corrupt documents must read as absent, never raise.
"""

from datetime import timedelta

import pytest

from examhall.core.models import (
    AnswerRecord,
    DeadlineRecord,
    PendingSubmission,
    SessionKey,
    VariantKind,
)
from examhall.storage.keys import RecordPrefix, record_key
from examhall.storage.kv_store import JsonFileStore, MemoryStore
from examhall.storage.local import LocalRecords

KEY = SessionKey(VariantKind.DAILY, "dq-1")
OTHER = SessionKey(VariantKind.PROCTORED, "dq-1")


class TestKeys:
    def test_prefix_encodes_variant(self):
        assert record_key(RecordPrefix.PROGRESS, KEY) == "progress:daily:dq-1"
        assert record_key(RecordPrefix.PROGRESS, KEY) != record_key(RecordPrefix.PROGRESS, OTHER)

    def test_session_key_parse(self):
        assert SessionKey.parse("proctored:att-7") == SessionKey(VariantKind.PROCTORED, "att-7")
        with pytest.raises(ValueError):
            SessionKey.parse("no-separator")


class TestJsonFileStore:
    def test_round_trip(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.set_json("progress:daily:dq-1", {"a": 1})

        assert store.get_json("progress:daily:dq-1") == {"a": 1}
        assert store.keys("progress:") == ["progress:daily:dq-1"]

    def test_corrupt_file_reads_as_absent(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.set_raw("deadline:daily:dq-1", "{not json")

        assert store.get_json("deadline:daily:dq-1") is None

    def test_delete(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.set_json("k", [1])

        assert store.delete("k") is True
        assert store.delete("k") is False
        assert store.get_json("k") is None


class TestProgressStore:
    def test_merge_keeps_other_answers(self, records, clock):
        progress = records.progress
        progress.merge(KEY, answers={"e1": AnswerRecord("optA", clock())})
        progress.merge(KEY, answers={"e2": AnswerRecord("optB", clock())})

        record = progress.load(KEY)
        assert {k: a.option_id for k, a in record.answers.items()} == {"e1": "optA", "e2": "optB"}

    def test_merge_overwrites_only_same_entry(self, records, clock):
        progress = records.progress
        progress.merge(KEY, answers={"e1": AnswerRecord("optA", clock())})
        progress.merge(KEY, answers={"e2": AnswerRecord("optB", clock())})
        progress.merge(KEY, answers={"e1": AnswerRecord("optC", clock())})

        record = progress.load(KEY)
        assert record.answers["e1"].option_id == "optC"
        assert record.answers["e2"].option_id == "optB"

    def test_top_level_fields_merge_shallowly(self, records, clock):
        progress = records.progress
        progress.merge(KEY, started_at=clock(), attempt_id="att-1")
        progress.merge(KEY, answers={"e1": AnswerRecord("o", clock())})

        record = progress.load(KEY)
        assert record.started_at == clock()
        assert record.attempt_id == "att-1"
        assert record.last_updated_at == clock()

    def test_sessions_are_isolated(self, records, clock):
        records.progress.record_answer(KEY, "e1", "o1")
        assert records.progress.load(OTHER) is None

    def test_corrupt_record_is_absent(self, records):
        records.backend.set_raw(record_key(RecordPrefix.PROGRESS, KEY), '{"answers": 3}')
        assert records.progress.load(KEY) is None

    def test_merge_over_corrupt_record_starts_fresh(self, records):
        records.backend.set_raw(record_key(RecordPrefix.PROGRESS, KEY), "garbage")
        record = records.progress.record_answer(KEY, "e1", "o1")

        assert list(record.answers) == ["e1"]

    def test_clear(self, records):
        records.progress.record_answer(KEY, "e1", "o1")
        assert records.progress.clear(KEY) is True
        assert records.progress.load(KEY) is None


class TestOfflineAnswerQueue:
    def test_fifo_order(self, records):
        queue = records.offline_answers
        queue.enqueue(KEY, "e1", "o1")
        queue.enqueue(KEY, "e2", "o2")

        assert [item.entry_id for item in queue.items(KEY)] == ["e1", "e2"]
        assert queue.peek(KEY).entry_id == "e1"

    def test_remove_head_checks_expected(self, records):
        queue = records.offline_answers
        first = queue.enqueue(KEY, "e1", "o1")
        second = queue.enqueue(KEY, "e2", "o2")

        assert queue.remove_head(KEY, second) is False
        assert queue.remove_head(KEY, first) is True
        assert queue.size(KEY) == 1

    def test_total_size_across_sessions(self, records):
        records.offline_answers.enqueue(KEY, "e1", "o1")
        records.offline_answers.enqueue(OTHER, "e1", "o1")

        assert records.offline_answers.total_size() == 2
        assert set(records.offline_answers.session_keys()) == {KEY, OTHER}

    def test_malformed_queue_is_empty(self, records):
        records.backend.set_json(record_key(RecordPrefix.OFFLINE_ANSWERS, KEY), {"not": "a list"})
        assert records.offline_answers.items(KEY) == []


class TestPendingAndDeadline:
    def test_pending_round_trip(self, records, clock):
        pending = PendingSubmission(KEY, VariantKind.DAILY, {"score": 0.5}, clock())
        records.pending_submissions.save(pending)

        assert records.pending_submissions.load(KEY) == pending
        assert records.pending_submissions.session_keys() == [KEY]

    def test_malformed_pending_is_absent(self, records):
        records.backend.set_json(record_key(RecordPrefix.PENDING_SUBMISSION, KEY), {"kind": "daily"})
        assert records.pending_submissions.load(KEY) is None

    def test_deadline_round_trip(self, records, clock):
        record = DeadlineRecord(KEY, clock() + timedelta(minutes=10))
        records.deadlines.save(record)

        assert records.deadlines.load(KEY) == record

    def test_bad_deadline_timestamp_is_absent(self, records):
        records.backend.set_json(
            record_key(RecordPrefix.DEADLINE, KEY),
            {"session_key": str(KEY), "deadline_at": "yesterday"},
        )
        assert records.deadlines.load(KEY) is None

    def test_reset_session_keeps_snapshot(self, records, clock):
        records.progress.record_answer(KEY, "e1", "o1")
        records.offline_answers.enqueue(KEY, "e1", "o1")
        records.deadlines.save(DeadlineRecord(KEY, clock()))
        records.session_cache.save(KEY, {"id": "dq-1"}, [])
        records.snapshots.save(KEY, {"correct": 1})

        records.reset_session(KEY)

        assert records.progress.load(KEY) is None
        assert records.offline_answers.size(KEY) == 0
        assert records.deadlines.load(KEY) is None
        assert records.session_cache.load(KEY) is None
        assert records.snapshots.get(KEY) is not None


class TestSessionCache:
    def test_round_trip(self, records):
        records.session_cache.save(KEY, {"id": "dq-1"}, [{"id": "e1"}])
        assert records.session_cache.load(KEY) == ({"id": "dq-1"}, [{"id": "e1"}])

    def test_malformed_cache_is_absent(self, records):
        records.backend.set_json(record_key(RecordPrefix.SESSION_CACHE, KEY), {"policy": []})
        assert records.session_cache.load(KEY) is None


class TestResultSnapshots:
    def test_newest_first_and_capped(self, clock):
        records = LocalRecords.from_backend(MemoryStore(), max_snapshots=3, now=clock)
        for index in range(5):
            clock.advance(60)
            records.snapshots.save(SessionKey(VariantKind.PRACTICE, f"s{index}"), {"correct": index})

        ids = [s.session_key.session_id for s in records.snapshots.list()]
        assert ids == ["s4", "s3", "s2"]

    def test_same_session_replaced(self, records, clock):
        records.snapshots.save(KEY, {"correct": 1}, pending=True)
        clock.advance(5)
        records.snapshots.save(KEY, {"correct": 2})

        snapshots = records.snapshots.list()
        assert len(snapshots) == 1
        assert snapshots[0].summary == {"correct": 2}
        assert snapshots[0].pending is False

    def test_mark_final(self, records):
        records.snapshots.save(KEY, {"correct": 1}, pending=True)

        assert records.snapshots.mark_final(KEY) is True
        assert records.snapshots.get(KEY).pending is False
        assert records.snapshots.mark_final(OTHER) is False

    def test_malformed_list_is_empty(self, records):
        records.backend.set_json("result-snapshots", {"oops": True})
        assert records.snapshots.list() == []


class TestRejectedWork:
    def test_mark_rejected_keeps_head_queued(self, records):
        queue = records.offline_answers
        head = queue.enqueue(KEY, "e1", "o1")
        queue.enqueue(KEY, "e2", "o2")

        assert queue.mark_rejected(KEY, head, 422) is True

        assert queue.size(KEY) == 2
        assert queue.rejected(KEY).entry_id == "e1"
        assert queue.rejected(KEY).rejected_status == 422
        assert queue.remove_head(KEY, queue.peek(KEY)) is True
        assert queue.rejected(KEY) is None

    def test_pending_rejection_survives_reload(self, records, clock):
        records.pending_submissions.save(PendingSubmission(KEY, KEY.variant, {"score": 0.5}, clock()))

        assert records.pending_submissions.mark_rejected(KEY, 409) is True

        pending = records.pending_submissions.load(KEY)
        assert pending.rejected_status == 409
        assert pending.payload == {"score": 0.5}
        assert records.pending_submissions.mark_rejected(OTHER, 409) is False
