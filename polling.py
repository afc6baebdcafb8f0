"""
Fixed-interval polling shared by every wait in the lab pipeline.
"""

import logging
import time
from typing import Callable

from errors import TimeoutError


def poll_until(predicate: Callable[[], bool], max_attempts: int, interval: float, description: str) -> int:
    """
    Check a condition until it holds or the attempts run out.

    The interval is fixed; there is no backoff. The predicate may raise to
    abort the wait early (for example when a resource reports a failed state).

    Args:
        predicate: Callable returning True once the wait is over
        max_attempts: Maximum number of times the predicate is evaluated
        interval: Seconds to sleep between two evaluations
        description: What is being waited for, used in logs and errors

    Returns:
        The attempt number (1-based) on which the predicate held

    Raises:
        TimeoutError: If the predicate never held within max_attempts
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        if predicate():
            logging.debug(f"{description}: done after {attempt} attempt(s)")
            return attempt
        if attempt < max_attempts:
            logging.debug(f"{description}: attempt {attempt}/{max_attempts} not ready, sleeping {interval}s")
            time.sleep(interval)

    raise TimeoutError(f"Timed out waiting for {description} after {max_attempts} attempts ({interval}s interval)")
