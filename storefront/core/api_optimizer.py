"""API optimizer stage: response shaping and read-through response caching.

Policy for requests under the API prefix:
- GET requests are answered from the cache while the stored entry is fresh;
  the downstream handler is not invoked and the response carries
  ``X-Cache: HIT``.
- Otherwise the request goes downstream. A 200 JSON response is shaped
  (empty fields pruned); a GET 200 is then stored and marked ``X-Cache: MISS``.
- Anything else (non-200, non-JSON, paths outside the prefix) passes through
  untouched and is never stored.

The stage cannot fail a request: if the body cannot be decoded or
re-serialized it logs a warning and returns the original bytes uncached.

Usage:
    app.middleware("http")(build_api_optimizer_middleware(cache, settings.cache))
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

from fastapi import Request, Response

from storefront.core.config import CacheSettings
from storefront.core.sweeper import SweepPolicy
from storefront.utils.response_cache import ResponseCache
from storefront.utils.shaping import shape_payload

logger = logging.getLogger(__name__)


CallNext = Callable[[Request], Awaitable[Response]]


def query_mapping(request: Request) -> dict[str, Any]:
    """Query parameters in arrival order; repeated keys collect into a list."""

    query: dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        if key not in query:
            query[key] = value
        elif isinstance(query[key], list):
            query[key].append(value)
        else:
            query[key] = [query[key], value]
    return query


def _is_json(response: Response) -> bool:
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    return content_type == "application/json" or content_type.endswith("+json")


async def _read_body(response: Response) -> bytes:
    if not hasattr(response, "body_iterator"):
        return bytes(response.body)
    chunks: list[bytes] = []
    async for chunk in response.body_iterator:  # type: ignore[attr-defined]
        chunks.append(chunk.encode("utf-8") if isinstance(chunk, str) else chunk)
    return b"".join(chunks)


def _rebuild(response: Response, body: bytes) -> Response:
    """Same status and headers as response, new body and Content-Length."""

    rebuilt = Response(
        content=body,
        status_code=response.status_code,
        background=response.background,
    )
    rebuilt.raw_headers.extend(
        (name, value)
        for name, value in response.raw_headers
        if name.lower() != b"content-length"
    )
    return rebuilt


def _serialize(value: Any) -> bytes:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def build_api_optimizer_middleware(
    cache: ResponseCache,
    cfg: CacheSettings,
    *,
    sweep_policy: SweepPolicy | None = None,
) -> Callable[[Request, CallNext], Awaitable[Response]]:
    """Create the shaping and caching stage.

    Args:
        cache: Response table owned by the application.
        cfg: Cache settings (prefix, ttl, shaping switches).
        sweep_policy: Inline sweep cadence; periodic sweeps happen elsewhere.

    Returns:
        Middleware callable for ``app.middleware("http")``.
    """

    policy = sweep_policy or SweepPolicy()
    cache_control = f"public, max-age={cfg.ttl_ms // 1000}"
    shaping = cfg.minify_response and cfg.remove_empty_fields

    async def api_optimizer_middleware(request: Request, call_next: CallNext) -> Response:
        path = request.url.path
        if not cfg.enabled or not path.startswith(cfg.api_prefix):
            return await call_next(request)

        cacheable = cfg.cache_enabled and request.method == "GET"
        query = query_mapping(request) if cacheable else {}

        if cacheable:
            entry = cache.lookup("GET", path, query)
            if entry is not None:
                return Response(
                    content=entry.payload,
                    status_code=200,
                    media_type=entry.media_type,
                    headers={"X-Cache": "HIT", "Cache-Control": cache_control},
                )

        policy.maybe_sweep(cache, name="response_cache")

        response = await call_next(request)
        if response.status_code != 200 or request.method == "HEAD" or not _is_json(response):
            return response

        body = await _read_body(response)
        payload = body
        if shaping:
            try:
                payload = _serialize(
                    shape_payload(
                        json.loads(body),
                        minify=cfg.minify_response,
                        remove_empty_fields=cfg.remove_empty_fields,
                    )
                )
            except (ValueError, TypeError, RecursionError) as exc:
                logger.warning(
                    "response_cache.shaping_failed",
                    extra={
                        "path": path,
                        "method": request.method,
                        "error_type": type(exc).__name__,
                        "body_bytes": len(body),
                    },
                )
                return _rebuild(response, body)

        shaped = _rebuild(response, payload)
        if request.method == "GET":
            if cacheable:
                cache.store(
                    "GET",
                    path,
                    query,
                    payload,
                    media_type=response.headers.get("content-type", "application/json"),
                )
                shaped.headers["X-Cache"] = "MISS"
            shaped.headers["Cache-Control"] = cache_control
        return shaped

    return api_optimizer_middleware
