"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- The window of a key opens at that key's first request (not on wall-clock
  boundaries) and lasts ``interval_ms``.
- Thread-safe: the check-then-increment sequence runs under a lock, so the
  window invariants hold even if the host calls it from OS threads.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Callable

from storefront.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from storefront.utils.timeutils import epoch_ms


@dataclass
class RateWindow:
    count: int
    window_start_ms: float


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    The first request for a key opens a window of ``interval_ms``; every
    request inside it increments the count (rejected ones included) and is
    allowed while the count stays within the limit. The first request after
    the window elapsed resets the count to 1.

    Important:
        This limiter is per-process only. If the edge runs with multiple
        workers (e.g., multiple Uvicorn/Gunicorn workers), each worker will
        enforce its own independent limits.
    """

    def __init__(
        self,
        *,
        limit: int,
        interval_ms: int,
        clock: Callable[[], float] = epoch_ms,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Default maximum number of requests per window.
            interval_ms: Size of the fixed window in milliseconds.
            clock: Time source returning UNIX time in milliseconds.

        Raises:
            ValueError: If limit or interval_ms are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if interval_ms < 1:
            raise ValueError("interval_ms must be >= 1")

        self._limit = limit
        self._interval_ms = interval_ms
        self._clock = clock
        self._lock = threading.RLock()
        self._windows: dict[str, RateWindow] = {}
        self._sweeping = False

    def __len__(self) -> int:
        return len(self._windows)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    def window(self, key: str) -> RateWindow | None:
        """Return a copy of the window currently tracked for key, if any."""
        with self._lock:
            state = self._windows.get(key)
            if state is None:
                return None
            return RateWindow(count=state.count, window_start_ms=state.window_start_ms)

    def consume(self, key: str, *, limit: int | None = None, cost: int = 1) -> RateLimitResult:
        """Count a request for key and decide whether it may proceed.

        Args:
            key: Unique identifier for rate limiting.
            limit: Limit for this call; defaults to the constructor limit.
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty, cost is invalid or limit is < 1.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")
        effective_limit = self._limit if limit is None else limit
        if effective_limit < 1:
            raise ValueError("limit must be >= 1")

        now = self._clock()

        with self._lock:
            state = self._windows.get(key)
            if state is None or now - state.window_start_ms >= self._interval_ms:
                state = RateWindow(count=cost, window_start_ms=now)
                self._windows[key] = state
            else:
                state.count += cost

            elapsed = now - state.window_start_ms
            if state.count <= effective_limit:
                return RateLimitResult(
                    allowed=True,
                    limit=effective_limit,
                    count=state.count,
                    remaining=effective_limit - state.count,
                    window_start_ms=state.window_start_ms,
                )

            return RateLimitResult(
                allowed=False,
                limit=effective_limit,
                count=state.count,
                remaining=0,
                window_start_ms=state.window_start_ms,
                retry_after_ms=max(0, math.ceil(self._interval_ms - elapsed)),
            )

    def sweep(self, now_ms: float | None = None) -> int:
        """Remove windows older than the interval.

        A call made while another sweep is in progress returns 0 immediately.
        """
        with self._lock:
            if self._sweeping:
                return 0
            self._sweeping = True
            try:
                now = self._clock() if now_ms is None else now_ms
                stale = [
                    key
                    for key, state in self._windows.items()
                    if now - state.window_start_ms > self._interval_ms
                ]
                for key in stale:
                    del self._windows[key]
                return len(stale)
            finally:
                self._sweeping = False

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()
