"""Pass-through routes forwarding API and admin traffic to the CMS.

These routes are the downstream handler the pipeline stages wrap. They must
be registered after every locally served ``/api`` route.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from storefront.adapters.upstream.cms_client import CmsClient

router = APIRouter(tags=["Proxy"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


async def forward_to_cms(request: Request) -> Response:
    """Forward the request to the CMS and relay its answer unchanged."""

    cms: CmsClient = request.app.state.cms_client
    headers = list(request.headers.items())
    if request.client and request.client.host:
        headers.append(("X-Forwarded-For", request.client.host))

    reply = await cms.forward(
        request.method,
        request.url.path,
        query=request.url.query,
        headers=headers,
        body=await request.body(),
    )

    response = Response(content=reply.content, status_code=reply.status_code)
    response.raw_headers.extend(
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in reply.headers
    )
    return response


for _prefix in ("/api", "/admin"):
    router.add_api_route(
        _prefix,
        forward_to_cms,
        methods=PROXY_METHODS,
        include_in_schema=False,
    )
    router.add_api_route(
        _prefix + "/{path:path}",
        forward_to_cms,
        methods=PROXY_METHODS,
        include_in_schema=False,
    )
