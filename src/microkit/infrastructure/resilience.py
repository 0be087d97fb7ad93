"""
Resilience Patterns

Retry policy with exponential backoff and jitter, used by the config watcher
to re-establish a dropped subscription before giving up.
"""

import random
import threading
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar
import logging

from .exceptions import MicrokitException

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry policy."""
    max_attempts: int = 3
    base_delay: float = 1.0  # Base delay in seconds
    max_delay: float = 60.0  # Maximum delay in seconds
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple = (Exception,)


class RetryPolicy:
    """
    Retry Policy with exponential backoff and jitter.

    Runs on the caller's thread. When a stop event is supplied the backoff
    sleep returns early once the event is set and the retry is aborted.
    """

    def __init__(self, config: Optional[RetryConfig] = None, stop_event: Optional[threading.Event] = None):
        self.config = config or RetryConfig()
        self._stop_event = stop_event or threading.Event()

    def execute(self, func: Callable[[], T], operation_name: str = "operation") -> T:
        """Execute function with retry policy."""
        last_exception = None

        for attempt in range(1, self.config.max_attempts + 1):
            try:
                result = func()
                if attempt > 1:
                    logger.info(f"Operation '{operation_name}' succeeded on attempt {attempt}")
                return result

            except Exception as e:
                last_exception = e

                if not isinstance(e, self.config.retryable_exceptions):
                    logger.debug(f"Non-retryable exception for '{operation_name}': {e}")
                    raise

                if attempt == self.config.max_attempts:
                    break

                delay = self._calculate_delay(attempt)
                logger.warning(
                    f"Operation '{operation_name}' failed on attempt {attempt}/{self.config.max_attempts}, "
                    f"retrying in {delay:.2f}s: {e}"
                )

                if self._stop_event.wait(delay):
                    raise MicrokitException(
                        f"Operation '{operation_name}' aborted during retry backoff",
                        error_code="RETRY_ABORTED",
                        context={"operation_name": operation_name, "attempt": attempt},
                        cause=e
                    ) from e

        raise MicrokitException(
            f"Operation '{operation_name}' failed after {self.config.max_attempts} attempts",
            error_code="RETRY_EXHAUSTED",
            context={
                "operation_name": operation_name,
                "max_attempts": self.config.max_attempts,
                "last_exception": str(last_exception)
            },
            cause=last_exception
        ) from last_exception

    def _calculate_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt with exponential backoff and jitter."""
        delay = self.config.base_delay * (self.config.exponential_base ** (attempt - 1))
        delay = min(delay, self.config.max_delay)

        if self.config.jitter:
            # Up to 25% extra
            delay += delay * 0.25 * random.random()

        return delay
