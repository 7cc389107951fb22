"""
Bounded retry with linear backoff for one-off remote calls.

Reconciliation and delivery never retry inline (the next cycle or tick is
the retry); only calls that an external caller waits on, such as the group
confirmation, use this decorator.
"""

import time
import functools
from typing import Callable, Type, Tuple, Optional


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, attempts: int):
        self.attempts = attempts
        super().__init__(message)


def linear_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator for retrying functions with a linearly growing delay.

    The delay after attempt ``n`` (1-based) is ``n * base_delay``.

    Args:
        max_attempts: Total number of attempts, including the first one
        base_delay: Delay unit in seconds
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function(attempt, exception, delay)

    Example:
        @linear_backoff(max_attempts=3, base_delay=1.0)
        def confirm(payload):
            return session.post(url, json=payload)
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        raise RetryError(
                            f"Failed after {max_attempts} attempts: {e}",
                            attempts=max_attempts,
                        ) from e

                    delay = attempt * base_delay
                    if on_retry:
                        on_retry(attempt, e, delay)
                    time.sleep(delay)

        return wrapper
    return decorator


def should_retry_http_status(status_code: int) -> bool:
    """
    Check if HTTP status code indicates a transient, retryable error.

    Args:
        status_code: HTTP status code

    Returns:
        True if the remote side is temporarily unavailable
    """
    retryable_codes = {
        408,  # Request Timeout
        429,  # Too Many Requests
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }

    return status_code in retryable_codes
