"""
Tests for per-job timers.
"""

import threading
import time
from datetime import datetime, timezone

import pytest

from announcer.scheduler import RecurringTimer, Scheduler, ThreadTimerFactory
from announcer.schema import IntervalUnit, JobRecord

CREATED = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_record(local_job_id="1", count=30, unit=IntervalUnit.MINUTES, content="Hello"):
    return JobRecord("g1", local_job_id, content, count, unit, CREATED, remote_id="r" + local_job_id)


class TestScheduler:
    """Test timer ownership per (group, job) pair."""

    def test_schedule_starts_timer_with_interval(self, scheduler, timers):
        assert scheduler.schedule(make_record()) is True

        assert len(timers.active()) == 1
        assert timers.active()[0].interval == 1800.0
        assert scheduler.interval_for("g1", "1") == 1_800_000
        assert scheduler.is_scheduled("g1", "1")

    def test_tick_delivers_snapshot(self, scheduler, timers, delivered):
        record = make_record()
        scheduler.schedule(record)

        timers.active()[0].fire()
        timers.active()[0].fire()

        assert delivered == [record, record]

    def test_reschedule_replaces_existing_timer(self, scheduler, timers, delivered):
        scheduler.schedule(make_record(content="old"))
        scheduler.schedule(make_record(content="new", count=2, unit=IntervalUnit.HOURS))

        assert len(timers.timers) == 2
        assert timers.timers[0].cancelled
        assert len(timers.active()) == 1
        assert len(scheduler) == 1
        assert scheduler.interval_for("g1", "1") == 7_200_000

        timers.active()[0].fire()
        assert delivered[0].content == "new"

    def test_non_positive_interval_not_scheduled(self, scheduler, timers):
        assert scheduler.schedule(make_record(count=0)) is False
        assert timers.active() == []
        assert not scheduler.is_scheduled("g1", "1")

    def test_cancel_is_idempotent(self, scheduler, timers):
        scheduler.schedule(make_record())

        assert scheduler.cancel("g1", "1") is True
        assert scheduler.cancel("g1", "1") is False
        assert timers.active() == []

    def test_cancel_unknown_pair(self, scheduler):
        assert scheduler.cancel("nope", "1") is False

    def test_cancel_all(self, scheduler, timers):
        scheduler.schedule(make_record("1"))
        scheduler.schedule(make_record("2"))

        assert scheduler.cancel_all() == 2
        assert timers.active() == []
        assert scheduler.scheduled_keys() == []


class TestRecurringTimer:
    """Test the thread-backed timer."""

    def test_fires_repeatedly_until_cancelled(self):
        ticks = []
        fired_twice = threading.Event()

        def tick():
            ticks.append(time.monotonic())
            if len(ticks) >= 2:
                fired_twice.set()

        timer = ThreadTimerFactory().start(0.01, tick, name="test-timer")
        assert fired_twice.wait(2.0)

        timer.cancel()
        timer.join(1.0)
        count = len(ticks)
        time.sleep(0.05)

        assert not timer.is_alive()
        assert timer.cancelled
        assert len(ticks) == count

    def test_callback_error_does_not_stop_timer(self):
        calls = []
        recovered = threading.Event()

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            recovered.set()

        timer = RecurringTimer(0.01, flaky)
        timer.start()
        try:
            assert recovered.wait(2.0)
        finally:
            timer.cancel()
            timer.join(1.0)

    @pytest.mark.parametrize("interval", [0, -1])
    def test_rejects_non_positive_interval(self, interval):
        with pytest.raises(ValueError, match="must be positive"):
            RecurringTimer(interval, lambda: None)

    def test_first_delay(self):
        timer = RecurringTimer(60, lambda: None, first_delay=0)
        assert timer.first_delay == 0
        assert RecurringTimer(60, lambda: None).first_delay == 60

    def test_ticks_do_not_overlap(self):
        spans = []
        done = threading.Event()

        def slow():
            started = time.monotonic()
            time.sleep(0.03)
            spans.append((started, time.monotonic()))
            if len(spans) >= 3:
                done.set()

        timer = RecurringTimer(0.005, slow)
        timer.start()
        try:
            assert done.wait(2.0)
        finally:
            timer.cancel()
            timer.join(1.0)

        for (_, previous_end), (next_start, _) in zip(spans, spans[1:]):
            assert next_start >= previous_end
