#!/usr/bin/env python3
"""Retry helpers for ODMirror."""

import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional, Tuple, Type

import requests

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)


def retry_on_failure(max_retries: int = 3,
                     exceptions: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS):
    """Decorator to retry a function on transient failure with exponential backoff.

    Args:
        max_retries: Maximum number of attempts
        exceptions: Exception types that trigger a retry; others propagate at once
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt < max_retries - 1:
                        wait_time = 2 ** attempt  # Exponential backoff: 1s, 2s, 4s
                        logger.warning(f"{func.__name__} attempt {attempt + 1} failed, retrying in {wait_time}s: {e}")
                        time.sleep(wait_time)
                    else:
                        logger.error(f"{func.__name__} failed after {max_retries} attempts: {e}")
                        raise
        return wrapper
    return decorator


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a worker retries one failed upload.

    Attributes:
        max_attempts: Total attempts per job; None retries forever
        delay: Seconds to wait after the first failure
        backoff: Multiplier applied to the delay after each further failure
        max_delay: Upper bound for the delay
    """

    max_attempts: Optional[int] = 10
    delay: float = 5.0
    backoff: float = 1.0
    max_delay: float = 300.0

    @classmethod
    def forever(cls, delay: float = 5.0) -> 'RetryPolicy':
        """Retry the same job with a fixed delay until it succeeds."""
        return cls(max_attempts=None, delay=delay)

    def should_retry(self, attempt: int) -> bool:
        """Whether another attempt follows failed attempt number ``attempt`` (1-based)."""
        return self.max_attempts is None or attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Seconds to sleep after failed attempt number ``attempt`` (1-based)."""
        return min(self.delay * (self.backoff ** (attempt - 1)), self.max_delay)
