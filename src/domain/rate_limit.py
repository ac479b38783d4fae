"""
Fixed-window rate limiting over a persisted counter store.

Counters live in the database (see RateLimitStore) so that limits hold
across restarts and across server instances.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from .exceptions import RateLimitedError
from .ports import RateLimitStore


@dataclass
class FixedWindowRateLimiter:
    """Allows `limit` hits per key in each aligned window of `window_seconds`."""

    store: RateLimitStore
    limit: int
    window_seconds: int
    scope: str
    clock: Callable[[], float] = time.time

    def check(self, subject: str) -> int:
        """
        Count one hit for the subject.

        Returns:
            Remaining hits in the current window

        Raises:
            RateLimitedError: If the window budget is exhausted
        """
        now = int(self.clock())
        window_start = now - now % self.window_seconds
        count = self.store.hit(f"{self.scope}:{subject}", window_start, self.window_seconds)

        if count > self.limit:
            retry_after = max(window_start + self.window_seconds - now, 1)
            raise RateLimitedError(f"Too many {self.scope} requests", retry_after=retry_after)
        return self.limit - count
