"""
Retry Logic with Exponential Backoff and Jitter

Retries transient storage failures (locked or unreachable database,
timed-out writes). Anything else propagates on the first attempt.
"""

import time
import random
import logging
from typing import Optional, Callable, Any, Tuple, Type
from dataclasses import dataclass

from .db import StorageUnavailableError, StorageTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior"""
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    exponential_base: float = 2.0
    jitter: str = "full"  # "full", "equal", "none"

    # Exceptions that should trigger retry
    retryable_exceptions: Tuple[Type[Exception], ...] = (
        StorageUnavailableError,
        StorageTimeoutError,
    )


class RetryExhausted(Exception):
    """Raised when all retry attempts are exhausted"""
    def __init__(self, last_exception: Exception, attempts: int):
        self.last_exception = last_exception
        self.attempts = attempts
        super().__init__(f"Retry exhausted after {attempts} attempts: {last_exception}")


def calculate_backoff(
    attempt: int,
    base_delay: float = 0.5,
    max_delay: float = 5.0,
    exponential_base: float = 2.0,
    jitter: str = "full"
) -> float:
    """
    Calculate delay with exponential backoff and jitter.

    Jitter strategies:
    - "full": Random between 0 and calculated delay
    - "equal": Half fixed, half random
    - "none": Pure exponential, no randomness
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)

    if jitter == "full":
        return random.uniform(0, delay)

    elif jitter == "equal":
        return delay / 2 + random.uniform(0, delay / 2)

    else:  # "none"
        return delay


class RetryHandler:
    """
    Handles retry logic for storage calls.
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if the call should be retried"""
        if attempt + 1 >= self.config.max_attempts:
            return False
        return isinstance(exception, self.config.retryable_exceptions)

    def get_delay(self, attempt: int) -> float:
        """Get delay for given attempt number"""
        return calculate_backoff(
            attempt=attempt,
            base_delay=self.config.base_delay,
            max_delay=self.config.max_delay,
            exponential_base=self.config.exponential_base,
            jitter=self.config.jitter
        )

    def execute(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute function with retry logic.

        Raises:
            RetryExhausted: when a retryable error persists past max_attempts
            Any non-retryable exception, unchanged
        """
        last_exception = None

        for attempt in range(self.config.max_attempts):
            try:
                return func(*args, **kwargs)

            except self.config.retryable_exceptions as e:
                last_exception = e

                if not self.should_retry(e, attempt):
                    break

                delay = self.get_delay(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{self.config.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.2f}s"
                )
                time.sleep(delay)

        raise RetryExhausted(last_exception, self.config.max_attempts)
