from __future__ import annotations

"""Application factory for the storefront edge.

Centralizes app construction (state, middleware, handlers, routers). All
process-lifetime tables (response cache, rate limit windows) are created
here, attached to ``app.state`` and injected into the stages that use them,
so every app instance (and every test) owns an isolated set.
"""

import random
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import httpx
from fastapi import FastAPI
from starlette.middleware.gzip import GZipMiddleware

from storefront.adapters.mail.base import AbstractMailer
from storefront.adapters.mail.factory import create_mailer
from storefront.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from storefront.adapters.upstream.cms_client import CmsClient
from storefront.api.routes import contact_router, health_router, proxy_router
from storefront.core.api_optimizer import build_api_optimizer_middleware
from storefront.core.config import Settings, settings as default_settings
from storefront.core.exception_handlers import setup_exception_handlers
from storefront.core.logging import configure_logging
from storefront.core.middleware import request_id_middleware
from storefront.core.rate_limit import (
    IdentifyFn,
    RateLimitTiers,
    build_rate_limit_middleware,
    default_identify,
)
from storefront.core.sweeper import PeriodicSweeper, SweepPolicy
from storefront.services.contact_service import ContactService
from storefront.utils.response_cache import ResponseCache
from storefront.utils.timeutils import epoch_ms


def create_app(
    settings: Settings | None = None,
    *,
    identify: IdentifyFn | None = None,
    clock: Callable[[], float] | None = None,
    mailer: AbstractMailer | None = None,
    upstream_transport: httpx.AsyncBaseTransport | None = None,
    sweep_rng: Callable[[], float] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Configuration; defaults to the environment-derived settings.
        identify: Client identity function for rate limiting (default: client address).
        clock: Epoch-milliseconds time source shared by the in-memory tables.
        mailer: Notification backend; defaults to the one MAIL_BACKEND selects.
        upstream_transport: httpx transport for the CMS client (tests use MockTransport).
        sweep_rng: Random source for probabilistic sweeps.

    Returns:
        Configured FastAPI app with state, middleware, handlers and routers.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    now = clock or epoch_ms
    identify_fn = identify or default_identify

    response_cache = ResponseCache(
        cfg.cache.ttl_ms,
        canonical_keys=cfg.cache.key_mode == "canonical",
        clock=now,
    )
    rate_limiter = InMemoryFixedWindowRateLimiter(
        limit=cfg.rate_limit.default_limit,
        interval_ms=cfg.rate_limit.interval_ms,
        clock=now,
    )
    contact_limiter = InMemoryFixedWindowRateLimiter(
        limit=cfg.contact.rate_limit_requests,
        interval_ms=cfg.contact.rate_limit_window_ms,
        clock=now,
    )
    sweep_policy = SweepPolicy(
        cfg.sweep.mode,
        cfg.sweep.probability,
        rng=sweep_rng or random.random,
    )
    sweeper = PeriodicSweeper(
        {
            "response_cache": response_cache,
            "rate_limit": rate_limiter,
            "contact_rate_limit": contact_limiter,
        },
        cfg.sweep.interval_seconds,
    )
    cms_client = CmsClient(
        cfg.upstream.base_url,
        timeout_seconds=cfg.upstream.timeout_seconds,
        api_token=cfg.upstream.api_token,
        transport=upstream_transport,
    )
    contact_service = ContactService(mailer or create_mailer(cfg.mail), cms_client, cfg.contact)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if cfg.sweep.mode == "periodic":
            await sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()
            await cms_client.aclose()

    app = FastAPI(
        title="Storefront Edge",
        description=(
            "Request pipeline in front of the garden equipment storefront CMS: "
            "tiered rate limiting, API response shaping and caching, and the "
            "contact form endpoint with e-mail notification."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.identify = identify_fn
    app.state.response_cache = response_cache
    app.state.rate_limiter = rate_limiter
    app.state.contact_limiter = contact_limiter
    app.state.sweeper = sweeper
    app.state.cms_client = cms_client
    app.state.contact_service = contact_service

    # Middleware: the last registered runs first, so the request order is
    # request id -> gzip -> rate limit -> api optimizer -> routes.
    app.middleware("http")(
        build_api_optimizer_middleware(response_cache, cfg.cache, sweep_policy=sweep_policy)
    )
    app.middleware("http")(
        build_rate_limit_middleware(
            rate_limiter,
            RateLimitTiers.from_settings(cfg.rate_limit),
            interval_ms=cfg.rate_limit.interval_ms,
            identify=identify_fn,
            sweep_policy=sweep_policy,
            enabled=cfg.rate_limit.enabled,
        )
    )
    if cfg.app.compression_enabled:
        app.add_middleware(
            GZipMiddleware,
            minimum_size=cfg.app.compression_minimum_size,
            compresslevel=cfg.app.compression_level,
        )
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers: local /api routes before the proxy catch-all
    app.include_router(health_router)
    app.include_router(contact_router)
    app.include_router(proxy_router)

    return app
