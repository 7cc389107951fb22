import threading
from typing import Dict, Optional

from .storage import JobStore


def _numeric(local_job_id: str) -> Optional[int]:
    try:
        return int(str(local_job_id).strip())
    except (TypeError, ValueError):
        return None


class IdAllocator:
    """
    Per-group monotonic local job IDs.

    ``next`` returns ``max(counter, highest numeric ID in the store + 1)`` and
    moves the counter past it. ``observe`` raises the floor for IDs that
    arrive from the remote authority, so a later local allocation never
    collides with one the remote side already assigned.
    """

    def __init__(self, store: JobStore):
        self._store = store
        self._counters: Dict[str, int] = {}
        self._lock = threading.Lock()

    def next(self, group_id: str) -> str:
        with self._lock:
            highest = 0
            for record in self._store.list(group_id):
                value = _numeric(record.local_job_id)
                if value is not None and value > highest:
                    highest = value

            next_id = max(self._counters.get(group_id, 1), highest + 1)
            self._counters[group_id] = next_id + 1
            return str(next_id)

    def observe(self, group_id: str, local_job_id: str) -> None:
        value = _numeric(local_job_id)
        if value is None:
            return
        with self._lock:
            if value >= self._counters.get(group_id, 1):
                self._counters[group_id] = value + 1

    def peek(self, group_id: str) -> int:
        """Counter floor for the next allocation (ignores store contents)."""
        with self._lock:
            return self._counters.get(group_id, 1)
