import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .schema import JobRecord


class JobStore:
    """
    In-memory cache of jobs: group_id -> (local_job_id -> JobRecord).

    The store does no locking of its own. Every writer holds ``lock`` for the
    whole read-modify-write sequence; it is the single serialization point
    shared by the mutation and reconciliation paths.
    """

    def __init__(self):
        self._groups: Dict[str, Dict[str, JobRecord]] = {}
        self._tombstones: Dict[Tuple[str, str], datetime] = {}
        self.lock = threading.RLock()

    def get(self, group_id: str, local_job_id: str) -> Optional[JobRecord]:
        return self._groups.get(group_id, {}).get(local_job_id)

    def upsert(self, record: JobRecord) -> None:
        # dict keeps the original insertion slot when a key is replaced
        self._groups.setdefault(record.group_id, {})[record.local_job_id] = record

    def remove(self, group_id: str, local_job_id: str) -> Optional[JobRecord]:
        jobs = self._groups.get(group_id)
        if not jobs:
            return None
        record = jobs.pop(local_job_id, None)
        if not jobs:
            del self._groups[group_id]
        return record

    def list(self, group_id: str) -> List[JobRecord]:
        return list(self._groups.get(group_id, {}).values())

    def groups(self) -> List[str]:
        return list(self._groups.keys())

    def all(self) -> List[JobRecord]:
        return [record for jobs in self._groups.values() for record in jobs.values()]

    def keys(self) -> List[Tuple[str, str]]:
        return [record.key for record in self.all()]

    def find_by_remote_id(self, group_id: str, remote_id: str) -> Optional[JobRecord]:
        for record in self._groups.get(group_id, {}).values():
            if record.remote_id is not None and record.remote_id == remote_id:
                return record
        return None

    def bury(self, group_id: str, remote_id: str, removed_at: datetime) -> None:
        """Remember that a job was removed locally, so stale remote lists skip it."""
        self._tombstones[(group_id, remote_id)] = removed_at

    def removed_at(self, group_id: str, remote_id: str) -> Optional[datetime]:
        return self._tombstones.get((group_id, remote_id))

    def expire_tombstones(self, cutoff: datetime) -> int:
        expired = [key for key, at in self._tombstones.items() if at < cutoff]
        for key in expired:
            del self._tombstones[key]
        return len(expired)

    def __len__(self) -> int:
        return sum(len(jobs) for jobs in self._groups.values())

    def __contains__(self, key: Tuple[str, str]) -> bool:
        group_id, local_job_id = key
        return self.get(group_id, local_job_id) is not None
