"""
Error types raised by the announcer core.

Mutation failures propagate to callers using these types; reconciliation
and delivery failures are logged with the same types and swallowed.
"""

from typing import List, Optional


class AnnouncerError(Exception):
    """Base class for announcer errors."""
    pass


class ConfigError(AnnouncerError):
    """Raised when settings are missing or malformed."""
    pass


class ValidationError(AnnouncerError):
    """Raised when a job is rejected before any remote write."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid job")


class NotFound(AnnouncerError):
    """Raised when a job is not present in the local store."""

    def __init__(self, group_id: str, local_job_id: str):
        self.group_id = group_id
        self.local_job_id = local_job_id
        super().__init__(f"Job {local_job_id} not found in group {group_id}")


class RemoteError(AnnouncerError):
    """Base class for failures talking to the remote authority."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RemoteUnavailable(RemoteError):
    """Network failure, timeout, or a retryable status from the remote authority."""
    pass


class RemoteRejected(RemoteError):
    """The remote authority refused the request (4xx)."""
    pass


class TransportFailure(AnnouncerError):
    """The chat transport failed to deliver a message."""
    pass
