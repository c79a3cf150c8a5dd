"""Rate limiter interfaces.

The HTTP stages depend on this abstraction (not the concrete implementation)
so the window table can later move to a shared store, or be sharded by client
identity across worker processes, without touching the pipeline code.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check/consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window applied to this check.
        count: Requests observed in the current window, this one included.
        remaining: Remaining requests in the current window (0 when blocked).
        window_start_ms: Epoch milliseconds at which the current window began.
        retry_after_ms: Milliseconds until the window resets (0 when allowed).
    """

    allowed: bool
    limit: int
    count: int
    remaining: int
    window_start_ms: float
    retry_after_ms: int = 0

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds a rejected client should wait (Retry-After value)."""
        return math.ceil(self.retry_after_ms / 1000)


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def consume(self, key: str, *, limit: int | None = None, cost: int = 1) -> RateLimitResult:
        """Consume rate limit budget for a given key.

        Args:
            key: Unique identifier (e.g., tier-namespaced client address).
            limit: Per-call limit override (tiered limits); defaults to the
                limiter's own limit.
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep(self, now_ms: float | None = None) -> int:
        """Drop windows that can no longer affect a decision.

        Returns:
            Number of windows removed.
        """
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError
