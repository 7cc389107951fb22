"""
Per-job recurring timers.

Each active job owns exactly one timer, indexed by (group_id, local_job_id).
The default timer is a daemon thread waiting on an Event: ticks of one job
run sequentially, a slow delivery stretches the period instead of causing
catch-up bursts, and cancel() stops future ticks without interrupting one
already running.
"""

import threading
from typing import Callable, Dict, List, Optional, Tuple

from .logger import get_logger
from .schema import JobRecord

logger = get_logger()

Key = Tuple[str, str]


class RecurringTimer(threading.Thread):
    """Calls ``callback`` every ``interval`` seconds until cancelled."""

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        first_delay: Optional[float] = None,
        name: Optional[str] = None,
    ):
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")
        super().__init__(name=name, daemon=True)
        self.interval = interval
        self.callback = callback
        self.first_delay = interval if first_delay is None else first_delay
        self._stopped = threading.Event()

    def run(self):
        delay = self.first_delay
        while not self._stopped.wait(delay):
            try:
                self.callback()
            except Exception as e:
                # A failing tick must not kill the timer
                logger.error(
                    "Timer callback failed",
                    timer=self.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            delay = self.interval

    def cancel(self):
        self._stopped.set()

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()


class ThreadTimerFactory:
    """Starts RecurringTimer threads."""

    def start(
        self,
        interval: float,
        callback: Callable[[], None],
        first_delay: Optional[float] = None,
        name: Optional[str] = None,
    ) -> RecurringTimer:
        timer = RecurringTimer(interval, callback, first_delay=first_delay, name=name)
        timer.start()
        return timer

    def cancel(self, handle: RecurringTimer) -> None:
        handle.cancel()


class Scheduler:
    """
    Owns one recurring timer per active job.

    Args:
        deliver: Called with the record snapshot on every tick
        timer_factory: Object with ``start(interval, callback, first_delay, name)``
            and ``cancel(handle)``; defaults to ThreadTimerFactory
    """

    def __init__(self, deliver: Callable[[JobRecord], object], timer_factory=None):
        self._deliver = deliver
        self._timer_factory = timer_factory or ThreadTimerFactory()
        self._timers: Dict[Key, object] = {}
        self._intervals: Dict[Key, int] = {}
        self._lock = threading.Lock()

    def schedule(self, record: JobRecord) -> bool:
        """
        (Re)start the timer for ``record``. Any existing timer for the same
        pair is cancelled first.

        Returns:
            True if a timer is running afterwards, False for a non-positive interval
        """
        key = record.key
        interval_ms = record.interval_millis

        with self._lock:
            self._cancel_unlocked(key)
            if interval_ms <= 0:
                logger.warning(
                    "Not scheduling job with non-positive interval",
                    group_id=record.group_id,
                    local_job_id=record.local_job_id,
                    interval_ms=interval_ms,
                )
                return False

            handle = self._timer_factory.start(
                interval_ms / 1000.0,
                lambda: self._deliver(record),
                name=f"job-{record.group_id}:{record.local_job_id}",
            )
            self._timers[key] = handle
            self._intervals[key] = interval_ms

        logger.info(
            "Schedule started",
            group_id=record.group_id,
            local_job_id=record.local_job_id,
            interval_ms=interval_ms,
        )
        return True

    def cancel(self, group_id: str, local_job_id: str) -> bool:
        """Stop and discard the timer for a pair. Returns False if none was active."""
        with self._lock:
            cancelled = self._cancel_unlocked((group_id, local_job_id))
        if cancelled:
            logger.info("Schedule stopped", group_id=group_id, local_job_id=local_job_id)
        return cancelled

    def _cancel_unlocked(self, key: Key) -> bool:
        handle = self._timers.pop(key, None)
        self._intervals.pop(key, None)
        if handle is None:
            return False
        self._timer_factory.cancel(handle)
        return True

    def cancel_all(self) -> int:
        with self._lock:
            keys = list(self._timers)
            for key in keys:
                self._cancel_unlocked(key)
        if keys:
            logger.info("All schedules stopped", count=len(keys))
        return len(keys)

    def is_scheduled(self, group_id: str, local_job_id: str) -> bool:
        with self._lock:
            return (group_id, local_job_id) in self._timers

    def interval_for(self, group_id: str, local_job_id: str) -> Optional[int]:
        """Active timer period in milliseconds, or None."""
        with self._lock:
            return self._intervals.get((group_id, local_job_id))

    def scheduled_keys(self) -> List[Key]:
        with self._lock:
            return list(self._timers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._timers)
