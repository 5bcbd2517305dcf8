"""Tenacity-based retry policy for GitHub API requests.

Listing calls and archive downloads are idempotent GETs, so transient failures
are retried here rather than in the resolver or loader:

- connection errors and timeouts,
- rate limiting (429, or 403 accompanied by ``Retry-After`` as GitHub does for
  secondary rate limits),
- server errors (500/502/503/504).

The wait strategy honours ``Retry-After`` before falling back to full-jitter
exponential backoff.  The final failure is re-raised unchanged.

Example:
    >>> policy = create_http_retry_policy(RetrySettings())
    >>> for attempt in policy:
    ...     with attempt:
    ...         response = client.get(url)
"""

from __future__ import annotations

import email.utils
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_random_exponential,
)
from tenacity.wait import wait_base

from .settings import RetrySettings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_TRANSIENT_ERRORS = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.PoolTimeout,
    httpx.RemoteProtocolError,
)


def _parse_retry_after_value(value: Optional[str]) -> Optional[float]:
    """Convert a Retry-After header value into a delay in seconds."""
    if not value:
        return None

    try:
        delay = float(int(value))
    except ValueError:
        try:
            dt = email.utils.parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delay = (dt - datetime.now(timezone.utc)).total_seconds()

    return max(0.0, delay)


def _retry_after_seconds(exc: Optional[BaseException]) -> Optional[float]:
    response = getattr(exc, "response", None)
    if not isinstance(response, httpx.Response):
        return None
    return _parse_retry_after_value(response.headers.get("Retry-After"))


def is_retryable_error(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` describes a transient failure worth retrying."""

    if isinstance(exc, _TRANSIENT_ERRORS):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status in RETRYABLE_STATUS_CODES:
            return True
        return status == 403 and "Retry-After" in exc.response.headers
    return False


class _RetryAfterOrBackoff(wait_base):
    """Wait strategy that honours Retry-After before falling back to backoff."""

    def __init__(self, fallback_wait: wait_base, max_delay_seconds: float) -> None:
        self._fallback_wait = fallback_wait
        self._max_delay_seconds = max_delay_seconds

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        delay = _retry_after_seconds(exc)
        if delay is not None:
            return min(delay, float(self._max_delay_seconds))
        return float(self._fallback_wait(retry_state))


def create_http_retry_policy(settings: Optional[RetrySettings] = None) -> Retrying:
    """Create the Tenacity retry loop used for idempotent GitHub requests.

    Args:
        settings: Attempt budget, deadline, and backoff cap. Defaults to
            :class:`RetrySettings` defaults.

    Returns:
        Configured Tenacity ``Retrying`` object for ``for attempt in policy`` loops.
    """

    cfg = settings or RetrySettings()
    return Retrying(
        stop=stop_after_attempt(cfg.max_attempts) | stop_after_delay(cfg.max_delay_seconds),
        wait=_RetryAfterOrBackoff(
            fallback_wait=wait_random_exponential(multiplier=0.5, max=cfg.backoff_max),
            max_delay_seconds=cfg.max_delay_seconds,
        ),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


__all__ = ["RETRYABLE_STATUS_CODES", "is_retryable_error", "create_http_retry_policy"]
