"""Exponential backoff with jitter for transient failures.

Only network errors, 429 and 5xx are retried by default. Cancellation is never
retried, and a cancel that arrives while we are sleeping between attempts
ends the loop immediately instead of waiting out the delay.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, TypeVar

import requests

from revlens_core.net.errors import ServiceError, cancelled_error, is_cancellation, is_retryable_status

if TYPE_CHECKING:
    from revlens_core.net.cancel import CancelToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_RETRIES = 2
_BASE_DELAY_MS = 1000
_MAX_DELAY_MS = 10000


@dataclass(frozen=True)
class RetryOptions:
    max_retries: int = _MAX_RETRIES
    base_delay_ms: int = _BASE_DELAY_MS
    max_delay_ms: int = _MAX_DELAY_MS
    should_retry: Callable[[BaseException], bool] | None = None


def calculate_delay_ms(attempt: int, base_delay_ms: int, max_delay_ms: int) -> float:
    exponential = base_delay_ms * (2**attempt)
    jitter = random.random() * base_delay_ms * 0.5
    return min(exponential + jitter, max_delay_ms)


def default_should_retry(error: BaseException) -> bool:
    if isinstance(error, ServiceError):
        return error.retryable
    # SDK errors (openai, anthropic) expose the HTTP status as status_code.
    for attr in ("status", "status_code"):
        status = getattr(error, attr, None)
        if isinstance(status, int):
            return is_retryable_status(status)
    return isinstance(error, (requests.ConnectionError, ConnectionError))


def with_retry(
    fn: Callable[[], T],
    max_retries: int = _MAX_RETRIES,
    base_delay_ms: int = _BASE_DELAY_MS,
    max_delay_ms: int = _MAX_DELAY_MS,
    should_retry: Callable[[BaseException], bool] | None = None,
    cancel: CancelToken | None = None,
) -> T:
    """Call ``fn`` until it succeeds, retrying transient failures.

    ``fn`` runs at most ``max_retries + 1`` times. The last error is re-raised
    unchanged once retries are exhausted or the error is not retryable.
    """
    check = should_retry or default_should_retry
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= max_retries or is_cancellation(e) or not check(e):
                raise
            if cancel is not None and cancel.cancelled:
                raise cancelled_error(getattr(e, "provider", "system")) from e

            delay_ms = calculate_delay_ms(attempt, base_delay_ms, max_delay_ms)
            logger.warning("Retry %d/%d in %dms after error: %s", attempt + 1, max_retries, round(delay_ms), e)
            if cancel is not None:
                if cancel.wait(delay_ms / 1000):
                    raise cancelled_error(getattr(e, "provider", "system")) from e
            else:
                time.sleep(delay_ms / 1000)
            attempt += 1


def retry_call(fn: Callable[[], T], options: RetryOptions | None = None, cancel: CancelToken | None = None) -> T:
    """with_retry driven by a RetryOptions bundle."""
    options = options or RetryOptions()
    return with_retry(
        fn,
        max_retries=options.max_retries,
        base_delay_ms=options.base_delay_ms,
        max_delay_ms=options.max_delay_ms,
        should_retry=options.should_retry,
        cancel=cancel,
    )
