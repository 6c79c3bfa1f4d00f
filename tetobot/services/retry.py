"""
tetobot.services.retry — Bounded Retry Helpers
===============================================

Two loops used across the services:

- :func:`call_with_retry` — exponential backoff + jitter around a call
  that may hit a transient :class:`~tetobot.errors.StoreError`.  Used by
  the bonus intake (webhook senders do not reliably retry on their own)
  and by the daily reset scheduler.
- :func:`retry_on_conflict` — immediate re-run of a compare-and-swap
  read-modify-write that lost to a concurrent writer.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

from tetobot.errors import StoreError, VersionConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.1   # seconds
DEFAULT_MAX_DELAY = 2.0    # seconds
CONFLICT_ATTEMPTS = 5


def backoff_delay(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    rng: Callable[[float, float], float] = random.uniform,
) -> float:
    """Delay before retry number *attempt* (1-based).

    ``min(base * 2**(attempt-1), max)`` plus up to 50 % jitter.
    """
    backoff = min(base_delay * (2 ** (attempt - 1)), max_delay)
    return backoff + rng(0, backoff * 0.5)


def call_with_retry(
    func: Callable[[], T],
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    retry_on: tuple[type[BaseException], ...] = (StoreError,),
    sleep: Callable[[float], None] = time.sleep,
    label: str = "operation",
) -> T:
    """Call *func* up to *attempts* times, sleeping between failures.

    Only exceptions in *retry_on* are retried; anything else propagates
    on the first occurrence.  The last retryable exception is re-raised
    once the attempts are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except retry_on:
            if attempt >= attempts:
                logger.error("%s failed after %d attempt(s)", label, attempt)
                raise
            wait = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "%s failed (attempt %d/%d). Retrying in %.2fs…",
                label, attempt, attempts, wait,
                exc_info=True,
            )
            sleep(wait)


def retry_on_conflict(func: Callable[[], T], *, attempts: int = CONFLICT_ATTEMPTS) -> T:
    """Re-run *func* while it raises :class:`VersionConflict`.

    *func* must re-read the row on every call so it compares against the
    latest version.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except VersionConflict:
            if attempt >= attempts:
                raise
            logger.debug("Version conflict, re-reading (attempt %d/%d)", attempt, attempts)
