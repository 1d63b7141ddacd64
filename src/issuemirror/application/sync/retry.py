"""
Retry Policy - Bounded exponential backoff for transient page fetches.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from ...core.cancellation import CancellationToken
from ...core.exceptions import CancelledError, RateLimitError, TransientError


R = TypeVar("R")

logger = logging.getLogger("RetryPolicy")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry transient failures a fixed number of times.

    Only TransientError (and its RateLimitError subclass) is retried;
    authentication, not-found, storage and cancellation errors pass through
    on the first occurrence.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int, error: TransientError) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return min(error.retry_after, self.max_delay)
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))

    def call(
        self,
        fn: Callable[..., R],
        *args: Any,
        cancel_token: Optional[CancellationToken] = None,
        on_retry: Optional[Callable[[int, float, TransientError], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> R:
        """
        Call ``fn(*args)``, retrying transient failures.

        Args:
            fn: Operation to run
            cancel_token: Backoff waits end early when cancelled
            on_retry: Called with (attempt, delay, error) before each wait
            sleep: Used for waits when there is no cancel token

        Raises:
            The last TransientError once attempts are exhausted, any other
            error immediately, CancelledError if cancelled during a backoff
        """
        attempt = 1
        while True:
            try:
                return fn(*args)
            except TransientError as e:
                if attempt >= self.max_attempts:
                    logger.warning(f"Giving up after {attempt} attempts: {e}")
                    raise

                delay = self.delay_for(attempt, e)
                if on_retry is not None:
                    on_retry(attempt, delay, e)

                if cancel_token is not None:
                    if cancel_token.wait(delay):
                        raise CancelledError(cancel_token.reason or "Cancelled during backoff")
                elif delay > 0:
                    sleep(delay)

                attempt += 1
