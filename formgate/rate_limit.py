"""Sliding-window rate limiting for public form endpoints.

The in-memory limiter keeps, per identity (a hashed client IP), the
timestamps of admitted requests inside the trailing window. Each call prunes,
counts and conditionally admits under one lock, so two concurrent requests
for the same identity cannot both slip through at the boundary.

The store is process-local. Deployments with several instances need a shared
backend; implement RateLimiter against it and hand it to the runtime.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Dict, Optional

from formgate.config import settings

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


class RateLimiter(ABC):
    """Interface for request rate limiters."""

    @abstractmethod
    def is_rate_limited(self, identity: str, max_requests: int, window_ms: int) -> bool:
        """Record a request for ``identity`` and report whether it is over the limit.

        A limited request is not recorded.
        """


class InMemoryRateLimiter(RateLimiter):
    """Process-local sliding-window limiter with lazy and periodic eviction.

    Attributes:
        clock: Returns the current time in milliseconds

    Examples:
        >>> limiter = InMemoryRateLimiter(clock=lambda: 0.0)
        >>> [limiter.is_rate_limited("ip", 3, 60000) for _ in range(4)]
        [False, False, False, True]
    """

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        stale_after_ms: Optional[int] = None,
    ) -> None:
        self.clock = clock or _now_ms
        self.stale_after_ms = stale_after_ms if stale_after_ms is not None else settings.rate_limit_stale_after_ms
        self._entries: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._sweep_interval: Optional[float] = None

    def is_rate_limited(self, identity: str, max_requests: int, window_ms: int) -> bool:
        now = self.clock()
        cutoff = now - window_ms

        with self._lock:
            timestamps = self._entries.get(identity)
            if timestamps is None:
                timestamps = deque()
                self._entries[identity] = timestamps

            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()

            if len(timestamps) >= max_requests:
                logger.info("Rate limit exceeded for %s", identity[:12])
                return True

            timestamps.append(now)
            return False

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop timestamps older than the stale window and remove empty entries.

        Returns:
            Number of identities removed
        """
        now = self.clock() if now is None else now
        cutoff = now - self.stale_after_ms
        removed = 0

        with self._lock:
            for identity in list(self._entries):
                timestamps = self._entries[identity]
                while timestamps and timestamps[0] <= cutoff:
                    timestamps.popleft()
                if not timestamps:
                    del self._entries[identity]
                    removed += 1

        if removed:
            logger.debug("Rate limit sweep removed %d idle identities", removed)
        return removed

    def start_sweeper(self, interval_seconds: Optional[float] = None) -> None:
        """Run sweep() periodically on a daemon timer until stop_sweeper()."""
        self.stop_sweeper()
        self._sweep_interval = (
            interval_seconds if interval_seconds is not None else settings.rate_limit_sweep_interval_seconds
        )
        self._schedule()

    def stop_sweeper(self) -> None:
        """Cancel the periodic sweep. Safe to call when no sweeper is running."""
        self._sweep_interval = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self) -> None:
        if self._sweep_interval is None:
            return
        timer = threading.Timer(self._sweep_interval, self._run_sweep)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _run_sweep(self) -> None:
        try:
            self.sweep()
        except Exception:
            logger.exception("Rate limit sweep failed")
        finally:
            self._schedule()

    def tracked_identities(self) -> int:
        """Return how many identities currently hold request timestamps."""
        with self._lock:
            return len(self._entries)

    def reset(self) -> None:
        """Forget every identity. Useful for testing."""
        with self._lock:
            self._entries.clear()


__all__ = [
    "RateLimiter",
    "InMemoryRateLimiter",
]
