"""In-process fixed-window rate limiter for the HTTP API.

Key: <client address>:<window index>. Counters for past windows are dropped
on the next check, so memory stays bounded by the number of active clients.
"""

import logging
import threading
import time
from collections.abc import Callable

from tablegrid.core.config import settings
from tablegrid.core.metrics import rate_limit_checks_total

logger = logging.getLogger(__name__)


class RateLimitExceeded(Exception):
    """Raised when a rate limit is exceeded. Contains retry_after in seconds."""

    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Retry after {retry_after}s")


class RateLimiter:
    """Fixed-window request counter per client key."""

    def __init__(
        self,
        limit: int | None = None,
        window: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._limit = limit if limit is not None else settings.security.rate_limit_max
        self._window = window if window is not None else settings.security.rate_limit_window
        self._clock = clock
        self._counts: dict[tuple[str, int], int] = {}
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    def check(self, key: str) -> None:
        """Count one request for key.

        Raises:
            RateLimitExceeded: If key has used up the current window.
        """
        if self._limit <= 0:
            return
        now = self._clock()
        window_ts = int(now // self._window)

        with self._lock:
            stale = [k for k in self._counts if k[1] != window_ts]
            for k in stale:
                del self._counts[k]
            count = self._counts.get((key, window_ts), 0) + 1
            self._counts[(key, window_ts)] = count

        if count > self._limit:
            rate_limit_checks_total.labels(status="rejected").inc()
            # Time remaining in the current window
            retry_after = round(self._window - (now % self._window), 1)
            if retry_after <= 0:
                retry_after = 0.1
            logger.info("Rate limit exceeded for %s", key)
            raise RateLimitExceeded(retry_after=retry_after)

        rate_limit_checks_total.labels(status="allowed").inc()
