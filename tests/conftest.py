"""
Pytest configuration and shared fixtures.
"""

from concurrent.futures import Future
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from announcer.allocator import IdAllocator
from announcer.errors import RemoteRejected
from announcer.schema import RemoteJob
from announcer.scheduler import Scheduler
from announcer.service import AnnouncementService
from announcer.storage import JobStore


class FakeClock:
    """Controllable replacement for utcnow."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class ManualTimer:
    def __init__(self, interval, callback, first_delay=None, name=None):
        self.interval = interval
        self.callback = callback
        self.first_delay = interval if first_delay is None else first_delay
        self.name = name
        self.cancelled = False
        self.fired = 0

    def fire(self):
        self.fired += 1
        return self.callback()


class ManualTimerFactory:
    """Timer factory whose timers only tick when the test calls fire()."""

    def __init__(self):
        self.timers: List[ManualTimer] = []

    def start(self, interval, callback, first_delay=None, name=None):
        timer = ManualTimer(interval, callback, first_delay=first_delay, name=name)
        self.timers.append(timer)
        return timer

    def cancel(self, handle):
        handle.cancelled = True

    def active(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def active_named(self, name: str) -> List[ManualTimer]:
        return [t for t in self.active() if t.name == name]


class FakeRemote:
    """In-memory stand-in for RemoteAuthority."""

    def __init__(self):
        self.jobs: Dict[str, dict] = {}
        self.hidden = set()
        self.next_id = 100
        self.calls: List[tuple] = []
        self.fail_with: Optional[Exception] = None
        self.mark_sent_error: Optional[Exception] = None

    def seed(self, group_id, content="Hi", interval=10, unit="minutos", local_job_id=None, remote_id=None):
        remote_id = str(remote_id or self.next_id)
        self.next_id += 1
        self.jobs[remote_id] = {
            "id": remote_id,
            "group_id": group_id,
            "content": content,
            "interval": interval,
            "unit": unit,
            "local_job_id": local_job_id,
        }
        return remote_id

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def list_jobs(self, group_id=None):
        self.calls.append(("list_jobs", group_id))
        self._maybe_fail()
        return [
            RemoteJob.from_payload(payload)
            for rid, payload in self.jobs.items()
            if rid not in self.hidden and (group_id is None or payload["group_id"] == group_id)
        ]

    def create_job(self, group_id, content, interval_count, unit, local_job_id):
        self.calls.append(("create_job", group_id, local_job_id))
        self._maybe_fail()
        rid = self.seed(group_id, content, interval_count, unit.value, local_job_id)
        return RemoteJob.from_payload(self.jobs[rid])

    def delete_job(self, group_id, local_job_id):
        self.calls.append(("delete_job", group_id, local_job_id))
        self._maybe_fail()
        for rid, payload in list(self.jobs.items()):
            if payload["group_id"] == group_id and payload["local_job_id"] == local_job_id:
                del self.jobs[rid]
                return
        raise RemoteRejected("not found", status_code=404)

    def mark_sent(self, remote_id):
        self.calls.append(("mark_sent", remote_id))
        if self.mark_sent_error is not None:
            raise self.mark_sent_error


class FakeTransport:
    def __init__(self):
        self.ready = True
        self.fail = False
        self.raises: Optional[Exception] = None
        self.sent: List[tuple] = []

    def is_ready(self):
        return self.ready

    def send(self, destination, content):
        if self.raises is not None:
            raise self.raises
        if self.fail:
            return False
        self.sent.append((destination, content))
        return True


class InlineExecutor:
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True):
        pass


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store() -> JobStore:
    return JobStore()


@pytest.fixture
def allocator(store) -> IdAllocator:
    return IdAllocator(store)


@pytest.fixture
def delivered() -> list:
    return []


@pytest.fixture
def scheduler(timers, delivered) -> Scheduler:
    return Scheduler(delivered.append, timer_factory=timers)


@pytest.fixture
def service(remote, transport, timers, clock) -> AnnouncementService:
    svc = AnnouncementService(
        remote,
        transport,
        sync_interval=300,
        initial_sync_delay=5,
        grace_period=30,
        group_pause=0,
        timer_factory=timers,
        clock=clock,
        executor=InlineExecutor(),
    )
    yield svc
    svc.stop()
