from datetime import datetime
from typing import Callable, Union

from .allocator import IdAllocator
from .delivery import utcnow
from .errors import NotFound, ValidationError
from .logger import get_logger
from .scheduler import Scheduler
from .schema import IntervalUnit, JobRecord, normalize_unit, validate_job
from .storage import JobStore

logger = get_logger()


class MutationService:
    """
    Explicit add/remove path. The remote authority is written first; local
    state is only touched once the remote write succeeded, so a failure
    leaves nothing behind.
    """

    def __init__(
        self,
        api,
        store: JobStore,
        allocator: IdAllocator,
        scheduler: Scheduler,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.api = api
        self.store = store
        self.allocator = allocator
        self.scheduler = scheduler
        self.clock = clock

    def add_job(
        self,
        group_id: str,
        content: str,
        interval_count: int,
        unit: Union[str, IntervalUnit],
    ) -> str:
        """
        Create a job remotely, then cache and schedule it.

        Returns:
            The allocated local job id

        Raises:
            ValidationError: Before any write, for bad content or interval
            RemoteError: If the remote write fails (the allocated id is burned)
        """
        errors = validate_job(content, interval_count, unit)
        if not group_id:
            errors.insert(0, "Group id is required")
        if errors:
            raise ValidationError(errors)

        resolved = normalize_unit(unit)
        content = content.strip()

        with self.store.lock:
            local_job_id = self.allocator.next(group_id)

        remote = self.api.create_job(group_id, content, interval_count, resolved, local_job_id)

        record = JobRecord(
            group_id=group_id,
            local_job_id=local_job_id,
            content=content,
            interval_count=interval_count,
            interval_unit=resolved,
            created_at=self.clock(),
            remote_id=remote.remote_id,
        )
        with self.store.lock:
            self.scheduler.schedule(record)
            self.store.upsert(record)

        logger.record_jobs_added()
        logger.info(
            "Job created",
            group_id=group_id,
            local_job_id=local_job_id,
            remote_id=remote.remote_id,
        )
        return local_job_id

    def remove_job(self, group_id: str, local_job_id: str) -> JobRecord:
        """
        Delete a job remotely, then stop its timer and drop it locally.

        Raises:
            NotFound: If the job is not in the local store
            RemoteError: If the remote delete fails (local state is kept)
        """
        local_job_id = str(local_job_id).strip()
        with self.store.lock:
            existing = self.store.get(group_id, local_job_id)
        if existing is None:
            raise NotFound(group_id, local_job_id)

        self.api.delete_job(group_id, local_job_id)

        with self.store.lock:
            self.scheduler.cancel(group_id, local_job_id)
            self.store.remove(group_id, local_job_id)
            if existing.remote_id is not None:
                self.store.bury(group_id, existing.remote_id, self.clock())

        logger.record_jobs_removed()
        logger.info("Job removed", group_id=group_id, local_job_id=local_job_id)
        return existing

    def mark_delivered(self, record: JobRecord, sent_at: datetime) -> None:
        """Record a successful send on the cached job, if it still exists."""
        with self.store.lock:
            current = self.store.get(record.group_id, record.local_job_id)
            if current is None or current.remote_id != record.remote_id:
                return
            self.store.upsert(current.with_last_sent(sent_at))
