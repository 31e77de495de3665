"""Client-side pacing for outbound callouts.

A token bucket the transport consults before every send, so a burst of work
items doesn't walk straight into a remote 429.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)

__all__ = ["RateLimiter"]


class RateLimiter:
    """Token-bucket rate limiter.

    Limits callouts to a sustained rate with a bounded burst. Thread-safe,
    so one limiter can be shared by every worker of a dispatcher.

    Example:
        limiter = RateLimiter(requests_per_second=10, burst_size=5)
        transport = HttpTransport(rate_limiter=limiter)
    """

    def __init__(
        self,
        requests_per_second: float,
        *,
        burst_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize rate limiter.

        Args:
            requests_per_second: Maximum sustained rate
            burst_size: Maximum burst capacity (defaults to 1)
        """
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.rate = requests_per_second
        self.burst_size = burst_size or 1
        self.tokens = float(self.burst_size)
        self._clock = clock
        self._sleep = sleep
        self.last_update = clock()
        self._lock = threading.Lock()

    def acquire(self, timeout: float | None = None) -> bool:
        """Acquire a token, blocking until available.

        Args:
            timeout: Maximum time to wait (None = wait forever)

        Returns:
            True if token acquired, False if timeout expired
        """
        start_time = self._clock()

        while True:
            with self._lock:
                self._refill_tokens()

                if self.tokens >= 1:
                    self.tokens -= 1
                    return True

                wait_time = (1 - self.tokens) / self.rate

            if timeout is not None:
                elapsed = self._clock() - start_time
                if elapsed + wait_time > timeout:
                    logger.debug("Rate limiter timed out after %.2fs", elapsed)
                    return False

            self._sleep(min(wait_time, 0.1))

    def _refill_tokens(self) -> None:
        now = self._clock()
        elapsed = now - self.last_update
        self.tokens = min(
            self.burst_size,
            self.tokens + elapsed * self.rate,
        )
        self.last_update = now

    def try_acquire(self) -> bool:
        """Acquire a token without blocking.

        Returns:
            True if a token was acquired, False if none is available
        """
        with self._lock:
            self._refill_tokens()
            if self.tokens >= 1:
                self.tokens -= 1
                return True
            return False
