"""Client for the remote authority that holds the canonical job list."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .errors import RemoteRejected, RemoteUnavailable
from .logger import get_logger
from .retry import linear_backoff, should_retry_http_status
from .schema import IntervalUnit, RemoteJob

logger = get_logger()

CONFIRM_ATTEMPTS = 3
CONFIRM_BACKOFF_SECONDS = 1.0


def _log_confirm_retry(attempt: int, error: Exception, delay: float):
    logger.warning(
        "Group confirmation failed, retrying",
        attempt=attempt,
        delay=delay,
        error=str(error),
    )


def _unwrap(body: Any) -> Any:
    """The panel wraps payloads as {"data": ...}; accept both shapes."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


class RemoteAuthority:
    """
    REST client for the remote job authority.

    Every call carries the bearer token and a fixed timeout. Transport-level
    failures and retryable statuses raise RemoteUnavailable; other non-2xx
    responses raise RemoteRejected.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_settings(cls, settings) -> "RemoteAuthority":
        return cls(settings.api_base_url, settings.api_token, settings.request_timeout)

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and return the decoded body.

        Raises:
            RemoteUnavailable: On timeout, connection error or a retryable status
            RemoteRejected: On any other non-2xx status
        """
        url = f"{self.base_url}{path}"
        logger.record_api_call()
        logger.debug(f"[API] {method} {path}", payload=kwargs.get("json"))
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            detail = _error_detail(e.response)
            logger.warning(f"[API] {method} {path} failed", status=status, detail=detail)
            message = f"{method} {path} failed ({status}): {detail or e}"
            if status is None or should_retry_http_status(status):
                raise RemoteUnavailable(message, status_code=status) from e
            raise RemoteRejected(message, status_code=status) from e
        except requests.exceptions.Timeout as e:
            logger.warning(f"[API] {method} {path} timed out", timeout=self.timeout)
            raise RemoteUnavailable(f"{method} {path} timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"[API] {method} {path} request error", error=str(e))
            raise RemoteUnavailable(f"{method} {path} request error: {e}") from e

        logger.debug(f"[API] {resp.status_code} {path}")
        if not resp.content:
            return None
        try:
            return _unwrap(resp.json())
        except ValueError as e:
            raise RemoteUnavailable(f"{method} {path} returned invalid JSON") from e

    def list_jobs(self, group_id: Optional[str] = None) -> List[RemoteJob]:
        """
        Fetch the remote job set, optionally only for one group.

        Malformed entries are logged and skipped.
        """
        params = {"group_id": group_id} if group_id else None
        body = self._request("GET", "/jobs", params=params)
        if body is None:
            return []
        if not isinstance(body, list):
            raise RemoteUnavailable(f"GET /jobs returned {type(body).__name__}, expected a list")

        jobs = []
        for entry in body:
            try:
                job = RemoteJob.from_payload(entry)
            except ValueError as e:
                logger.warning("Skipping malformed remote job", error=str(e))
                continue
            # Some panel versions ignore the filter
            if group_id and job.group_id != group_id:
                continue
            jobs.append(job)
        return jobs

    def create_job(
        self,
        group_id: str,
        content: str,
        interval_count: int,
        unit: IntervalUnit,
        local_job_id: str,
    ) -> RemoteJob:
        body = self._request("POST", "/jobs", json={
            "group_id": group_id,
            "content": content,
            "interval": interval_count,
            "unit": unit.value,
            "local_job_id": local_job_id,
        })
        try:
            return RemoteJob.from_payload(body)
        except ValueError as e:
            raise RemoteUnavailable(f"POST /jobs returned an unusable record: {e}") from e

    def delete_job(self, group_id: str, local_job_id: str) -> None:
        self._request("DELETE", f"/jobs/{local_job_id}", json={"group_id": group_id})

    def mark_sent(self, remote_id: str) -> None:
        self._request("PATCH", f"/jobs/{remote_id}/mark-sent")

    @linear_backoff(
        max_attempts=CONFIRM_ATTEMPTS,
        base_delay=CONFIRM_BACKOFF_SECONDS,
        exceptions=(RemoteUnavailable, RemoteRejected),
        on_retry=_log_confirm_retry,
    )
    def confirm_group(self, group: Dict[str, Any]) -> Any:
        """
        Confirm to the panel that the bot joined a group.

        Retried up to 3 times with ``attempt * 1s`` backoff; the final failure
        raises RetryError chained to the last remote error.
        """
        logger.info("Sending group confirmation", group_id=group.get("group_id"))
        return self._request("POST", "/groups/confirm", json=group)

    def notify_group_left(
        self,
        group_id: str,
        user_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """Tell the panel the bot left a group. Failures are logged only."""
        try:
            self._request("POST", "/groups/left", json={
                "group_id": group_id,
                "user_id": user_id,
                "reason": reason,
                "left_at": datetime.now(timezone.utc).isoformat(),
            })
        except (RemoteUnavailable, RemoteRejected) as e:
            logger.error("Failed to notify group left", group_id=group_id, error=str(e))
            return False
        return True


def _error_detail(response: Optional[requests.Response]) -> Optional[str]:
    if response is None:
        return None
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or None
    if isinstance(body, dict):
        return body.get("message") or body.get("error")
    return None
