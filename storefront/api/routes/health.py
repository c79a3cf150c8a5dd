from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Returns a status response plus table sizes of the in-memory stages.
    Used by load balancers and monitoring systems to determine service health.

    Returns:
        dict: ``status`` set to "ok", cache statistics and limiter window counts.
    """

    state = request.app.state
    return {
        "status": "ok",
        "cache": state.response_cache.stats(),
        "rate_limit": {
            "windows": len(state.rate_limiter),
            "contact_windows": len(state.contact_limiter),
        },
        "upstream_configured": state.cms_client.configured,
    }
