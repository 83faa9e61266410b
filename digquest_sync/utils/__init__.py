"""
Utility functions for digquest-sync.

    - retry_on_failure: exponential-backoff retry decorator
    - ensure_directory: create a directory if needed and return it

Usage:
    from digquest_sync.utils import retry_on_failure, ensure_directory
"""

import functools
import time
from pathlib import Path
from typing import Callable

from digquest_sync.core.logger import get_logger

logger = get_logger(__name__)


def retry_on_failure(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    should_retry: Callable[[Exception], bool] | None = None
):
    """
    Decorator for retrying functions on failure.

    Args:
        max_attempts: Maximum number of attempts (1 means no retry).
        delay: Initial delay between attempts in seconds.
        backoff: Delay multiplier for exponential backoff.
        should_retry: Predicate deciding whether an exception is worth
                      another attempt. Defaults to retrying every Exception.

    The last exception is re-raised once attempts are exhausted or the
    predicate rejects it.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 1
            current_delay = delay

            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    retryable = should_retry is None or should_retry(e)
                    if attempt >= max_attempts or not retryable:
                        raise
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}, "
                        f"retrying in {current_delay:.1f}s"
                    )
                    time.sleep(current_delay)
                    current_delay *= backoff
                    attempt += 1

        return wrapper
    return decorator


def ensure_directory(path: Path) -> Path:
    """Create path (and parents) if it doesn't exist, and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path
