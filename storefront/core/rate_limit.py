"""Rate limiting for the HTTP pipeline.

This module wires the rate limiting adapter into the HTTP layer in two ways:

- ``build_rate_limit_middleware``: a pipeline stage applying a tiered
  fixed-window limit to every request. The tier is picked by longest
  path-prefix match (admin area, API area, everything else) and each tier
  keeps its own windows, so exhausting one tier never affects another.
- ``enforce_contact_rate_limit``: a FastAPI dependency guarding the contact
  form with its own, much tighter limiter instance.

Limiter state is owned by the application (``app.state``) and injected here;
nothing is kept at module level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from storefront.adapters.rate_limit.base import AbstractRateLimiter
from storefront.core.config import RateLimitSettings
from storefront.core.errors import RateLimitAppError
from storefront.core.logging import hash_identifier
from storefront.core.sweeper import SweepPolicy

logger = logging.getLogger(__name__)


IdentifyFn = Callable[[Request], str]
CallNext = Callable[[Request], Awaitable[Response]]


def default_identify(request: Request) -> str:
    """Identify the client by its source address."""

    return request.client.host if request.client and request.client.host else "unknown"


@dataclass(frozen=True)
class RateLimitTier:
    name: str
    prefix: str
    limit: int


class RateLimitTiers:
    """Path-prefix tiers; the longest matching prefix wins."""

    def __init__(self, tiers: list[RateLimitTier], default: RateLimitTier) -> None:
        self._tiers = sorted(tiers, key=lambda tier: len(tier.prefix), reverse=True)
        self.default = default

    @classmethod
    def from_settings(cls, cfg: RateLimitSettings) -> "RateLimitTiers":
        return cls(
            [
                RateLimitTier(name="admin", prefix=cfg.admin_prefix, limit=cfg.admin_limit),
                RateLimitTier(name="api", prefix=cfg.api_prefix, limit=cfg.api_limit),
            ],
            default=RateLimitTier(name="default", prefix="", limit=cfg.default_limit),
        )

    def resolve(self, path: str) -> RateLimitTier:
        for tier in self._tiers:
            if path.startswith(tier.prefix):
                return tier
        return self.default


def rate_limit_response(message: str, retry_after_seconds: int, *, limit: int | None = None) -> JSONResponse:
    """Build the structured 429 answer shared by every limiter.

    Args:
        message: Human-readable rejection message.
        retry_after_seconds: Seconds until the client's window resets.
        limit: Optional limit to expose via X-RateLimit-Limit.

    Returns:
        JSONResponse with status 429 and a Retry-After header.
    """

    headers = {"Retry-After": str(retry_after_seconds)}
    if limit is not None:
        headers["X-RateLimit-Limit"] = str(limit)
        headers["X-RateLimit-Remaining"] = "0"
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Too Many Requests",
            "message": message,
            "retryAfter": retry_after_seconds,
        },
        headers=headers,
    )


def build_rate_limit_middleware(
    limiter: AbstractRateLimiter,
    tiers: RateLimitTiers,
    *,
    interval_ms: int,
    identify: IdentifyFn = default_identify,
    sweep_policy: SweepPolicy | None = None,
    enabled: bool = True,
) -> Callable[[Request, CallNext], Awaitable[Response]]:
    """Create the tiered rate limiting stage.

    Args:
        limiter: Window table shared by all tiers (keys are tier-namespaced).
        tiers: Path-prefix tiers and their limits.
        interval_ms: Window size, used in the rejection message.
        identify: Maps a request to its client identity.
        sweep_policy: Inline sweep cadence; periodic sweeps happen elsewhere.
        enabled: When False the stage is a pure pass-through.

    Returns:
        Middleware callable for ``app.middleware("http")``.
    """

    policy = sweep_policy or SweepPolicy()
    interval_label = f"{interval_ms / 1000:g}"

    async def rate_limit_middleware(request: Request, call_next: CallNext) -> Response:
        if not enabled:
            return await call_next(request)

        policy.maybe_sweep(limiter, name="rate_limit")

        tier = tiers.resolve(request.url.path)
        identity = identify(request)
        result = limiter.consume(f"{tier.name}:{identity}", limit=tier.limit)

        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "tier": tier.name,
                    "key_hash": hash_identifier(identity),
                    "limit": result.limit,
                    "count": result.count,
                },
            )
            return await call_next(request)

        logger.warning(
            "rate_limit.exceeded",
            extra={
                "tier": tier.name,
                "key_hash": hash_identifier(identity),
                "limit": result.limit,
                "count": result.count,
                "retry_after_ms": result.retry_after_ms,
                "path": request.url.path,
            },
        )
        return rate_limit_response(
            f"Rate limit exceeded. Max {tier.limit} requests per {interval_label} seconds.",
            result.retry_after_seconds,
            limit=result.limit,
        )

    return rate_limit_middleware


async def enforce_contact_rate_limit(request: Request) -> None:
    """FastAPI dependency limiting contact form submissions per client.

    Uses the application's dedicated contact limiter. When the client
    exceeded its budget, raises RateLimitAppError which the global handler
    turns into a 429.

    Raises:
        RateLimitAppError: When the contact limit is exceeded.
    """

    state = request.app.state
    identity = state.identify(request)
    result = state.contact_limiter.consume(f"contact:{identity}")

    if result.allowed:
        logger.debug(
            "contact_rate_limit.allowed",
            extra={
                "key_hash": hash_identifier(identity),
                "limit": result.limit,
                "count": result.count,
            },
        )
        return

    logger.warning(
        "contact_rate_limit.exceeded",
        extra={
            "key_hash": hash_identifier(identity),
            "limit": result.limit,
            "count": result.count,
            "retry_after_ms": result.retry_after_ms,
        },
    )
    raise RateLimitAppError(
        code="contact_rate_limited",
        message=state.settings.contact.rate_limit_message,
        limit=result.limit,
        retry_after_ms=result.retry_after_ms,
    )
