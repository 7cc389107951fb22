"""
Top-level wiring of the announcer.

AnnouncementService owns the store, the timers and the background sync:
a first reconciliation runs after a short delay (so the chat transport can
finish connecting), then every ``sync_interval`` seconds, independently of
manual ``sync_now`` calls.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from .allocator import IdAllocator
from .config import Settings
from .delivery import DeliveryPipeline, Transport, utcnow
from .logger import get_logger
from .mutations import MutationService
from .reconcile import GRACE_PERIOD, ReconciliationEngine, SyncReport
from .scheduler import Scheduler, ThreadTimerFactory
from .schema import IntervalUnit, JobRecord
from .storage import JobStore

logger = get_logger()


class AnnouncementService:
    """
    Args:
        api: RemoteAuthority (or any object with the same methods)
        transport: Chat transport used for delivery
        sync_interval: Seconds between background reconciliation cycles
        initial_sync_delay: Seconds before the first background cycle
        grace_period: Seconds a job missing remotely is kept after creation
        group_pause: Seconds to pause between groups during a cycle
        timer_factory: Timer implementation shared by job and sync timers
        clock: Returns the current aware datetime
        executor: Executor for mark-sent acknowledgements
    """

    def __init__(
        self,
        api,
        transport: Transport,
        sync_interval: float = 300.0,
        initial_sync_delay: float = 5.0,
        grace_period: float = GRACE_PERIOD.total_seconds(),
        group_pause: float = 0.5,
        timer_factory=None,
        clock: Callable[[], datetime] = utcnow,
        executor=None,
    ):
        self.api = api
        self.transport = transport
        self.sync_interval = sync_interval
        self.initial_sync_delay = initial_sync_delay
        self.timer_factory = timer_factory or ThreadTimerFactory()

        self.store = JobStore()
        self.allocator = IdAllocator(self.store)
        self.delivery = DeliveryPipeline(transport, api, executor=executor, clock=clock)
        self.scheduler = Scheduler(self.delivery.deliver, timer_factory=self.timer_factory)
        self.mutations = MutationService(api, self.store, self.allocator, self.scheduler, clock=clock)
        self.engine = ReconciliationEngine(
            api,
            self.store,
            self.allocator,
            self.scheduler,
            grace_period=timedelta(seconds=grace_period),
            group_pause=group_pause,
            clock=clock,
        )
        self.delivery.on_sent = self.mutations.mark_delivered
        self._sync_timer = None

    @classmethod
    def from_settings(cls, settings: Settings, api, transport: Transport, **kwargs) -> "AnnouncementService":
        return cls(
            api,
            transport,
            sync_interval=settings.sync_interval,
            initial_sync_delay=settings.initial_sync_delay,
            grace_period=settings.grace_period,
            group_pause=settings.group_pause,
            **kwargs,
        )

    @property
    def running(self) -> bool:
        return self._sync_timer is not None

    def start(self) -> None:
        """Start background reconciliation. Idempotent."""
        if self._sync_timer is not None:
            return
        self._sync_timer = self.timer_factory.start(
            self.sync_interval,
            self.engine.sync,
            first_delay=self.initial_sync_delay,
            name="announcer-sync",
        )
        logger.info(
            "Announcer started",
            sync_interval=self.sync_interval,
            initial_sync_delay=self.initial_sync_delay,
        )

    def stop(self) -> None:
        """Stop background sync and every job timer. In-flight deliveries finish."""
        if self._sync_timer is not None:
            self.timer_factory.cancel(self._sync_timer)
            self._sync_timer = None
        stopped = self.scheduler.cancel_all()
        self.delivery.shutdown(wait=True)
        logger.info("Announcer stopped", timers_stopped=stopped)

    def sync_now(self, group_id: Optional[str] = None) -> Optional[SyncReport]:
        return self.engine.sync(group_id)

    def add_job(
        self,
        group_id: str,
        content: str,
        interval_count: int,
        unit: Union[str, IntervalUnit],
    ) -> str:
        return self.mutations.add_job(group_id, content, interval_count, unit)

    def remove_job(self, group_id: str, local_job_id: str) -> JobRecord:
        return self.mutations.remove_job(group_id, local_job_id)

    def list_jobs(self, group_id: str, refresh: bool = False) -> List[JobRecord]:
        """Jobs cached for a group, optionally after a sync of that group."""
        if refresh:
            self.engine.sync(group_id)
        with self.store.lock:
            return self.store.list(group_id)
