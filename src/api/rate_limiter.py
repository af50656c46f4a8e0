"""
Rate limiting for market data HTTP clients.

Leaky-bucket limiter: each request adds its cost to a counter that drains
at a fixed rate. When the counter would exceed the budget the caller sleeps
until enough has drained. HTTP calls run in worker threads, so the limiter
is guarded by a threading.Lock.

Usage:
    limiter = RequestRateLimiter(max_counter=15, decay_rate=1.0)
    limiter.acquire()  # Blocks until budget available
    response = session.get(url)
"""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RequestRateLimiter:
    """
    Thread-safe leaky-bucket limiter for synchronous HTTP clients.

    The lock is held while sleeping so concurrent workers queue up
    rather than stampeding the API.
    """

    def __init__(
        self,
        max_counter: int = 15,
        decay_rate: float = 1.0,
        min_delay: float = 0.0,
        buffer: float = 0.8,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            max_counter: Request budget before waiting
            decay_rate: Budget recovered per second
            min_delay: Minimum delay after each call
            buffer: Use this fraction of capacity (0.8 = 80%)
            clock: Monotonic clock (injectable for tests)
            sleep: Sleep function (injectable for tests)
        """
        self._max_counter = max_counter * buffer
        self._decay_rate = decay_rate
        self._min_delay = min_delay
        self._clock = clock
        self._sleep = sleep

        self._counter = 0.0
        self._last_update = clock()
        self._lock = threading.Lock()

    def _decay(self) -> None:
        now = self._clock()
        elapsed = now - self._last_update
        self._counter = max(0.0, self._counter - elapsed * self._decay_rate)
        self._last_update = now

    def acquire(self, cost: int = 1) -> float:
        """
        Acquire budget for one request.

        Args:
            cost: Budget cost of the request

        Returns:
            Wait time in seconds (0 if no wait needed)
        """
        with self._lock:
            self._decay()

            wait_time = 0.0
            if self._counter + cost > self._max_counter:
                excess = (self._counter + cost) - self._max_counter
                wait_time = excess / self._decay_rate

                logger.debug(
                    f"Rate limiting: counter={self._counter:.2f}, "
                    f"cost={cost}, waiting {wait_time:.2f}s"
                )
                self._sleep(wait_time)
                self._decay()

            self._counter += cost

            if self._min_delay > 0:
                self._sleep(self._min_delay)

            return wait_time

    @property
    def current_counter(self) -> float:
        """Current counter value (for monitoring)."""
        with self._lock:
            elapsed = self._clock() - self._last_update
            return max(0.0, self._counter - elapsed * self._decay_rate)

    def reset(self) -> None:
        """Reset the limiter (e.g. after a long pause)."""
        with self._lock:
            self._counter = 0.0
            self._last_update = self._clock()
