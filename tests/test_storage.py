"""
Tests for the job store and local id allocation.
"""

import threading
from datetime import datetime, timezone

import pytest

from announcer.allocator import IdAllocator
from announcer.schema import IntervalUnit, JobRecord
from announcer.storage import JobStore

CREATED = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_record(group_id="g1", local_job_id="1", remote_id=None, content="Hello"):
    return JobRecord(
        group_id=group_id,
        local_job_id=local_job_id,
        content=content,
        interval_count=10,
        interval_unit=IntervalUnit.MINUTES,
        created_at=CREATED,
        remote_id=remote_id,
    )


class TestJobStore:
    """Test in-memory job store operations."""

    def test_upsert_and_get(self, store):
        record = make_record()
        store.upsert(record)

        assert store.get("g1", "1") is record
        assert store.get("g1", "2") is None
        assert store.get("other", "1") is None
        assert ("g1", "1") in store
        assert len(store) == 1

    def test_list_preserves_insertion_order(self, store):
        for local_id in ["3", "1", "2"]:
            store.upsert(make_record(local_job_id=local_id))

        assert [r.local_job_id for r in store.list("g1")] == ["3", "1", "2"]

    def test_upsert_replaces_in_place(self, store):
        store.upsert(make_record(local_job_id="1"))
        store.upsert(make_record(local_job_id="2"))
        store.upsert(make_record(local_job_id="1", content="Updated"))

        records = store.list("g1")
        assert [r.local_job_id for r in records] == ["1", "2"]
        assert records[0].content == "Updated"

    def test_remove_drops_empty_group(self, store):
        store.upsert(make_record())
        removed = store.remove("g1", "1")

        assert removed.local_job_id == "1"
        assert store.groups() == []
        assert store.list("g1") == []

    def test_remove_missing_is_none(self, store):
        assert store.remove("g1", "1") is None

    def test_find_by_remote_id(self, store):
        store.upsert(make_record(local_job_id="1", remote_id="r1"))
        store.upsert(make_record(local_job_id="2"))

        assert store.find_by_remote_id("g1", "r1").local_job_id == "1"
        assert store.find_by_remote_id("g1", "r2") is None
        assert store.find_by_remote_id("g2", "r1") is None

    def test_all_and_keys(self, store):
        store.upsert(make_record("g1", "1"))
        store.upsert(make_record("g2", "1"))

        assert sorted(store.keys()) == [("g1", "1"), ("g2", "1")]
        assert len(store.all()) == 2

    def test_tombstones_expire_before_cutoff(self, store):
        later = datetime(2026, 1, 1, 0, 1, tzinfo=timezone.utc)
        store.bury("g1", "r1", CREATED)
        store.bury("g1", "r2", later)

        assert store.removed_at("g1", "r1") == CREATED
        assert store.expire_tombstones(later) == 1
        assert store.removed_at("g1", "r1") is None
        assert store.removed_at("g1", "r2") == later


class TestIdAllocator:
    """Test per-group monotonic id allocation."""

    def test_starts_at_one_per_group(self, allocator):
        assert allocator.next("g1") == "1"
        assert allocator.next("g1") == "2"
        assert allocator.next("g2") == "1"

    def test_observed_remote_id_raises_floor(self, allocator):
        assert [allocator.next("g1") for _ in range(3)] == ["1", "2", "3"]

        allocator.observe("g1", "10")

        assert allocator.next("g1") == "11"

    def test_observing_lower_id_does_not_lower_floor(self, allocator):
        allocator.observe("g1", "10")
        allocator.observe("g1", "4")

        assert allocator.next("g1") == "11"

    def test_non_numeric_ids_ignored(self, allocator, store):
        store.upsert(make_record(local_job_id="abc"))
        allocator.observe("g1", "abc")

        assert allocator.next("g1") == "1"

    def test_respects_ids_already_in_store(self, allocator, store):
        store.upsert(make_record(local_job_id="7"))

        assert allocator.next("g1") == "8"
        assert allocator.next("g1") == "9"

    def test_ids_not_reused_after_removal(self, allocator, store):
        store.upsert(make_record(local_job_id=allocator.next("g1")))
        store.remove("g1", "1")

        assert allocator.next("g1") == "2"

    def test_concurrent_allocation_is_unique(self):
        allocator = IdAllocator(JobStore())
        results = []
        lock = threading.Lock()
        start = threading.Barrier(8)

        def worker():
            start.wait()
            for _ in range(50):
                value = allocator.next("g1")
                with lock:
                    results.append(value)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 400
        assert len(set(results)) == 400
        assert allocator.peek("g1") == 401
