"""Bounded retry policies built on tenacity.

Every retry-with-sleep loop in the pipeline (transition analysis, job
submission) goes through ``bounded_retry`` so attempt counts, backoff and the
retryable-vs-fatal decision are declared in one place.
"""

import logging
from typing import Callable, Optional

from google.genai.errors import ClientError, ServerError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    wait_random,
)

logger = logging.getLogger(__name__)


def is_transient(exc: BaseException) -> bool:
    """Return True only for transient errors worth retrying (429, 5xx, network)."""
    if isinstance(exc, ServerError):
        return True
    if isinstance(exc, ClientError):
        return getattr(exc, "code", 0) == 429
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return True
    return False


def _always(exc: BaseException) -> bool:
    return True


def bounded_retry(
    *,
    attempts: int,
    delay: float,
    retry_on: Optional[Callable[[BaseException], bool]] = None,
    exponential: bool = False,
    log: logging.Logger = logger,
):
    """Build a retry decorator for async callables.

    Args:
        attempts: Total number of attempts, including the first call.
        delay: Fixed wait between attempts in seconds, or the minimum wait
            when ``exponential`` is set.
        retry_on: Predicate deciding whether an exception is retryable.
            Defaults to retrying every exception.
        exponential: Use exponential backoff with jitter instead of a fixed
            delay (capped at 120s).
        log: Logger used to report each retry.

    The last exception is re-raised once attempts are exhausted or a
    non-retryable exception occurs.
    """
    if exponential:
        wait = wait_exponential(multiplier=2, min=delay, max=120) + wait_random(0, 1)
    else:
        wait = wait_fixed(delay)

    return retry(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait,
        retry=retry_if_exception(retry_on or _always),
        before_sleep=before_sleep_log(log, logging.WARNING),
        reraise=True,
    )
