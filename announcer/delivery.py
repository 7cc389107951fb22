"""
Outbound delivery of announcements.

A tick sends the job content through the chat transport, then acknowledges
the send to the remote authority in the background. Neither step is retried
inline: the next scheduled tick is the retry.
"""

from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Optional

from .errors import RemoteError, TransportFailure
from .logger import get_logger
from .schema import JobRecord

logger = get_logger()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transport:
    """Interface of the chat transport. Implementations live outside this package."""

    def send(self, destination: str, content: str) -> bool:
        raise NotImplementedError

    def is_ready(self) -> bool:
        return True


class LogTransport(Transport):
    """Writes announcements to the log instead of a chat network."""

    def __init__(self):
        self.sent = 0

    def send(self, destination: str, content: str) -> bool:
        self.sent += 1
        logger.info(f"[SEND] {destination}: {content}")
        return True


class DeliveryPipeline:
    """
    Args:
        transport: Chat transport with ``send`` and ``is_ready``
        api: Remote authority client; only ``mark_sent`` is used
        on_sent: Optional hook called with (record, sent_at) after a successful send
        executor: Runs the mark-sent acknowledgement; defaults to a small thread pool
        clock: Returns the current aware datetime
    """

    def __init__(
        self,
        transport: Transport,
        api,
        on_sent: Optional[Callable[[JobRecord, datetime], None]] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.transport = transport
        self.api = api
        self.on_sent = on_sent
        self.clock = clock
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="mark-sent"
        )

    def deliver(self, record: JobRecord) -> bool:
        """Send one announcement. Returns True if the transport accepted it."""
        context = {"group_id": record.group_id, "local_job_id": record.local_job_id}

        if not self.transport.is_ready():
            logger.warning("Transport not ready, skipping tick", **context)
            return False

        logger.record_delivery_attempt()
        try:
            if not self.transport.send(record.group_id, record.content):
                raise TransportFailure(f"Transport refused message for {record.group_id}")
        except Exception as e:
            logger.record_delivery_failure(type(e).__name__)
            logger.error("Delivery failed", error=str(e), **context)
            return False

        sent_at = self.clock()
        logger.record_delivery_success()
        logger.info("Announcement sent", **context)

        if self.on_sent is not None:
            try:
                self.on_sent(record, sent_at)
            except Exception as e:
                logger.error("Post-send hook failed", error=str(e), **context)

        if record.remote_id is None:
            logger.warning("Job has no remote id, not marking as sent", **context)
        else:
            self._executor.submit(self._mark_sent, record)
        return True

    def _mark_sent(self, record: JobRecord) -> None:
        try:
            self.api.mark_sent(record.remote_id)
        except RemoteError as e:
            logger.record_mark_sent_failure(type(e).__name__)
            logger.error(
                "Failed to mark job as sent",
                remote_id=record.remote_id,
                status=e.status_code,
                error=str(e),
            )
        except Exception as e:
            # Nobody reads the future, so this is the only trace of the failure
            logger.record_mark_sent_failure(type(e).__name__)
            logger.error(
                "Failed to mark job as sent",
                remote_id=record.remote_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
