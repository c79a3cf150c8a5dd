from __future__ import annotations

from storefront.api.routes.contact import router as contact_router
from storefront.api.routes.health import router as health_router
from storefront.api.routes.proxy import router as proxy_router

__all__ = ["contact_router", "health_router", "proxy_router"]
