from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from ..twitter_client import RateLimitedError


T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_MS = 5000
RESET_BUFFER_SECONDS = 1


def reset_wait_seconds(error: RateLimitedError, now: float) -> Optional[float]:
    """Seconds until the window reset plus a buffer, or None when backoff applies."""
    current = int(now)
    if error.reset_at is not None and error.reset_at > current:
        return float(error.reset_at - current + RESET_BUFFER_SECONDS)
    return None


def execute_with_rate_limit(
    call: Callable[[], T],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS,
    logger: Optional[logging.Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.time,
) -> T:
    """Run ``call``, waiting out HTTP 429s.

    A reset timestamp in the future is honoured exactly; otherwise the wait
    starts at ``initial_delay_ms`` and doubles per retry. After ``max_retries``
    retries the last RateLimitedError is re-raised. Any other exception
    propagates on the first failure.
    """
    logger = logger or logging.getLogger("mentionmint.agent")
    retries = 0
    delay_ms = initial_delay_ms

    while True:
        try:
            return call()
        except RateLimitedError as e:
            if retries >= max_retries:
                logger.error("Rate limit exceeded after retries=%s. Giving up.", retries)
                raise

            wait_seconds = reset_wait_seconds(e, clock())
            if wait_seconds is not None:
                logger.warning("Rate limit hit. Waiting for reset seconds=%s", wait_seconds)
            else:
                wait_seconds = delay_ms / 1000.0
                delay_ms *= 2
                logger.warning("Rate limit hit. Retrying in seconds=%s", wait_seconds)

            retries += 1
            sleep(wait_seconds)
