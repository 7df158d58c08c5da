"""
Bounded retry with exponential backoff.

Used for the one place a run waits instead of failing immediately:
service activation after a (re)start.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: float = 0.1) -> float:
    """Delay before retry ``attempt`` (1-based), exponential with jitter."""
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    return delay + random.uniform(0, delay * jitter)


def wait_until(
    predicate: Callable[[], bool],
    timeout: float,
    *,
    base_delay: float = 0.5,
    max_delay: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` seconds elapse.

    The predicate is always checked at least once, and once more at the
    deadline.

    Returns:
        True if the predicate held before the deadline.
    """
    deadline = clock() + timeout
    attempt = 0
    while True:
        if predicate():
            return True
        now = clock()
        if now >= deadline:
            return False
        attempt += 1
        delay = min(backoff_delay(attempt, base_delay, max_delay), deadline - now)
        logger.debug("Condition not met (attempt %d), retrying in %.1fs", attempt, delay)
        sleep(delay)
