"""
Reconciliation of the local job cache against the remote authority.

One cycle pulls the remote job set, schedules jobs missing locally, and
drops local jobs the remote side no longer lists. A job that is missing
remotely is only dropped once it is older than the grace period: a job
created moments ago may not be visible in the remote list yet
(read-after-write lag), so age is used as an approximation of "the remote
side has seen it".

Jobs removed locally leave a tombstone in the store. A remote list fetched
before such a removal is stale for that job and must not bring it back.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set, Tuple

from .allocator import IdAllocator
from .delivery import utcnow
from .logger import get_logger
from .scheduler import Scheduler
from .schema import JobRecord, RemoteJob
from .storage import JobStore

logger = get_logger()

GRACE_PERIOD = timedelta(seconds=30)

Key = Tuple[str, str]


@dataclass
class SyncReport:
    """Outcome of one reconciliation cycle."""

    added: List[Key] = field(default_factory=list)
    removed: List[Key] = field(default_factory=list)
    retained: List[Key] = field(default_factory=list)
    failed_groups: List[str] = field(default_factory=list)
    remote_count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed_groups


class ReconciliationEngine:
    """
    Single-flight sync between the remote job list and the local store.

    Args:
        api: Remote authority client; only ``list_jobs`` is used
        store: Local job cache
        allocator: Local id allocator shared with the mutation path
        scheduler: Timer owner
        grace_period: Minimum age before a job missing remotely is dropped
        group_pause: Seconds to wait between groups
        clock: Returns the current aware datetime
        sleep: Used for the pause between groups
    """

    def __init__(
        self,
        api,
        store: JobStore,
        allocator: IdAllocator,
        scheduler: Scheduler,
        grace_period: timedelta = GRACE_PERIOD,
        group_pause: float = 0.0,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api = api
        self.store = store
        self.allocator = allocator
        self.scheduler = scheduler
        self.grace_period = grace_period
        self.group_pause = group_pause
        self.clock = clock
        self.sleep = sleep
        self._in_flight = threading.Lock()
        self.last_report: Optional[SyncReport] = None

    @property
    def syncing(self) -> bool:
        return self._in_flight.locked()

    def sync(self, group_id: Optional[str] = None) -> Optional[SyncReport]:
        """
        Run one cycle, for every group or only ``group_id``.

        Never raises for remote or per-group failures; they are logged and
        reported. Returns None without doing anything if a cycle is already
        running.
        """
        if not self._in_flight.acquire(blocking=False):
            logger.record_sync_skipped()
            logger.info("Sync already in progress, skipping", group_id=group_id)
            return None

        try:
            report = self._run_cycle(group_id)
            self.last_report = report
            return report
        finally:
            self._in_flight.release()

    def _run_cycle(self, group_id: Optional[str]) -> SyncReport:
        report = SyncReport()
        logger.record_sync_started()
        logger.info("Sync started", group_id=group_id)

        fetched_at = self.clock()
        with self.store.lock:
            self.store.expire_tombstones(fetched_at - self.grace_period)

        try:
            remote_jobs = self.api.list_jobs(group_id)
        except Exception as e:
            logger.record_sync_failure(type(e).__name__)
            logger.error(
                "Sync failed to fetch remote jobs",
                error=str(e),
                status=getattr(e, "status_code", None),
            )
            report.error = str(e)
            return report

        report.remote_count = len(remote_jobs)
        by_group = self._group_remote(remote_jobs, group_id)
        logger.info(
            "Remote jobs received",
            jobs=len(remote_jobs),
            groups=len(by_group),
        )

        seen: Set[Tuple[str, str]] = {(job.group_id, job.remote_id) for job in remote_jobs}

        for index, (gid, jobs) in enumerate(by_group.items()):
            if index and self.group_pause:
                self.sleep(self.group_pause)
            try:
                self._merge_group(gid, jobs, fetched_at, report)
            except Exception as e:
                # One bad group must not block the others
                report.failed_groups.append(gid)
                logger.record_group_failure(type(e).__name__)
                logger.error("Sync failed for group", group_id=gid, error=str(e))

        if group_id is not None:
            local_groups = [group_id]
        else:
            with self.store.lock:
                local_groups = self.store.groups()

        for gid in local_groups:
            try:
                self._prune_group(gid, seen, report)
            except Exception as e:
                if gid not in report.failed_groups:
                    report.failed_groups.append(gid)
                logger.record_group_failure(type(e).__name__)
                logger.error("Prune failed for group", group_id=gid, error=str(e))

        if report.added:
            logger.record_jobs_added(len(report.added))
        if report.removed:
            logger.record_jobs_removed(len(report.removed))
        logger.info(
            "Sync finished",
            added=len(report.added),
            removed=len(report.removed),
            retained=len(report.retained),
            failed_groups=report.failed_groups,
        )
        return report

    @staticmethod
    def _group_remote(
        remote_jobs: List[RemoteJob], group_id: Optional[str]
    ) -> Dict[str, List[RemoteJob]]:
        by_group: Dict[str, List[RemoteJob]] = OrderedDict()
        for job in remote_jobs:
            if group_id is not None and job.group_id != group_id:
                continue
            by_group.setdefault(job.group_id, []).append(job)
        return by_group

    def _merge_group(
        self, group_id: str, jobs: List[RemoteJob], fetched_at: datetime, report: SyncReport
    ) -> None:
        with self.store.lock:
            for job in jobs:
                removed_at = self.store.removed_at(group_id, job.remote_id)
                if removed_at is not None and fetched_at <= removed_at:
                    # Listed before a local removal finished; the list is stale
                    logger.info(
                        "Skipping job removed during sync",
                        group_id=group_id,
                        remote_id=job.remote_id,
                    )
                    continue

                local_job_id = self._resolve_local_id(job)
                self.allocator.observe(group_id, local_job_id)

                if self.store.get(group_id, local_job_id) is not None:
                    continue

                record = JobRecord.from_remote(job, local_job_id, created_at=self.clock())
                self.scheduler.schedule(record)
                self.store.upsert(record)
                report.added.append(record.key)
                logger.info(
                    "New remote job cached",
                    group_id=group_id,
                    local_job_id=local_job_id,
                    remote_id=job.remote_id,
                )

    def _resolve_local_id(self, job: RemoteJob) -> str:
        if job.local_job_id is not None:
            return job.local_job_id
        # Without a remote-side local id, reuse the one given in an earlier cycle
        known = self.store.find_by_remote_id(job.group_id, job.remote_id)
        if known is not None:
            return known.local_job_id
        local_job_id = self.allocator.next(job.group_id)
        logger.debug(
            "Allocated local id for remote job",
            group_id=job.group_id,
            remote_id=job.remote_id,
            local_job_id=local_job_id,
        )
        return local_job_id

    def _prune_group(self, group_id: str, seen: Set[Tuple[str, str]], report: SyncReport) -> None:
        now = self.clock()
        with self.store.lock:
            for record in self.store.list(group_id):
                if (record.group_id, record.remote_id) in seen:
                    continue

                age = now - record.created_at
                if age > self.grace_period:
                    self.scheduler.cancel(record.group_id, record.local_job_id)
                    self.store.remove(record.group_id, record.local_job_id)
                    report.removed.append(record.key)
                    logger.info(
                        "Removed job missing from remote",
                        group_id=record.group_id,
                        local_job_id=record.local_job_id,
                        age_seconds=round(age.total_seconds()),
                    )
                else:
                    report.retained.append(record.key)
                    logger.info(
                        "Keeping recent job missing from remote",
                        group_id=record.group_id,
                        local_job_id=record.local_job_id,
                        age_seconds=round(age.total_seconds()),
                    )
