"""
Retry configuration for token endpoint calls.

Centralized retry logic using tenacity for exponential backoff. Transient
failures (rate limits, server errors, network errors) are retried; auth
failures are raised as AuthError before tenacity sees an HTTP error, so they
fail fast.

Example:
    >>> @create_retry_decorator()
    ... async def get_session():
    ...     # Will retry on 429, 5xx with exponential backoff
    ...     pass
"""

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# ============================================================================
# RETRY CONSTANTS
# ============================================================================

# Total attempts = 1 initial + 2 retries
MAX_ATTEMPTS = 3

# Backoff bounds between attempts (seconds)
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 60

# 401: session token invalid or expired; 403: clearance missing or expired
NO_RETRY_STATUS_CODES = frozenset([401, 403])

# Per-request timeout in seconds
REQUEST_TIMEOUT = 30.0

# ============================================================================
# RETRY DECORATOR FACTORY
# ============================================================================


def create_retry_decorator():
    """
    Create a tenacity retry decorator for token endpoint calls.

    Returns a configured retry decorator with:
    - Exponential backoff (1s min, 60s max)
    - Max 3 attempts total
    - Retry on: httpx.HTTPStatusError, httpx.ConnectError, httpx.TimeoutException

    Note:
        The caller raises AuthError for NO_RETRY_STATUS_CODES before calling
        raise_for_status(), which keeps those statuses out of the retry loop.
    """
    return retry(
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=1,
            min=MIN_WAIT_SECONDS,
            max=MAX_WAIT_SECONDS,
        ),
        retry=retry_if_exception_type(
            (
                httpx.HTTPStatusError,
                httpx.ConnectError,
                httpx.TimeoutException,
            )
        ),
        reraise=True,
    )
