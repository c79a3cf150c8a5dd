"""HTTP client forwarding requests to the headless CMS."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from storefront.core.errors import UpstreamAppError

logger = logging.getLogger(__name__)


# Headers that describe a single connection hop and must not be forwarded.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
    }
)

# httpx decodes compressed bodies, so the original encoding no longer applies.
_DROPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-encoding"}


@dataclass
class UpstreamReply:
    status_code: int
    content: bytes
    headers: list[tuple[str, str]] = field(default_factory=list)


def _filter_headers(headers: httpx.Headers | list[tuple[str, str]], dropped: frozenset[str]) -> list[tuple[str, str]]:
    items = headers.multi_items() if isinstance(headers, httpx.Headers) else headers
    return [(name, value) for name, value in items if name.lower() not in dropped]


def _flatten_entity(data: Any) -> dict[str, Any]:
    """Entity from a CMS create reply: ``{"id", "attributes": {...}}`` or flat."""

    if not isinstance(data, dict):
        raise ValueError("entity is not an object")
    attributes = data.get("attributes")
    if isinstance(attributes, dict):
        return {"id": data.get("id"), **attributes}
    return dict(data)


class CmsClient:
    """Thin async wrapper around ``httpx.AsyncClient`` for the CMS.

    Transport failures become UpstreamAppError (502); a missing base URL
    becomes UpstreamAppError with http_status 503.
    """

    def __init__(
        self,
        base_url: str | None,
        *,
        timeout_seconds: float = 15.0,
        api_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self._api_token = api_token
        self._client = (
            httpx.AsyncClient(
                base_url=self.base_url,
                timeout=timeout_seconds,
                transport=transport,
                follow_redirects=False,
            )
            if self.base_url
            else None
        )

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            raise UpstreamAppError(
                code="upstream_not_configured",
                message="Content service is not configured",
                details={"http_status": 503, "hint": "Set UPSTREAM_BASE_URL"},
            )
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(
                "upstream.request_failed",
                extra={
                    "method": method,
                    "path": url.split("?", 1)[0],
                    "error_type": type(exc).__name__,
                },
            )
            raise UpstreamAppError(
                code="upstream_unavailable",
                message="Content service is unavailable. Please try again later.",
                details={"http_status": 502},
            ) from exc

    async def forward(
        self,
        method: str,
        path: str,
        *,
        query: str = "",
        headers: list[tuple[str, str]] | None = None,
        body: bytes = b"",
    ) -> UpstreamReply:
        """Send one request upstream and return the buffered reply.

        Args:
            method: HTTP method.
            path: Request path, forwarded unchanged.
            query: Raw query string (without '?').
            headers: Incoming request headers; hop-by-hop ones are dropped.
            body: Raw request body.

        Returns:
            UpstreamReply with status, decoded body and forwardable headers.

        Raises:
            UpstreamAppError: If no upstream is configured or it is unreachable.
        """
        response = await self._request(
            method,
            f"{path}?{query}" if query else path,
            headers=_filter_headers(headers or [], HOP_BY_HOP_HEADERS),
            content=body or None,
        )
        logger.debug(
            "upstream.response",
            extra={"method": method, "path": path, "status": response.status_code},
        )
        return UpstreamReply(
            status_code=response.status_code,
            content=response.content,
            headers=_filter_headers(response.headers, _DROPPED_RESPONSE_HEADERS),
        )

    async def create_entry(self, path: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create a collection entry through the CMS REST API.

        Sends ``{"data": data}`` and returns the created entity, flattened
        when the CMS nests fields under ``attributes``.

        Raises:
            UpstreamAppError: If the CMS is not configured, unreachable,
                rejects the entry or answers with an unusable body.
        """
        headers = {"Authorization": f"Bearer {self._api_token}"} if self._api_token else None
        response = await self._request("POST", path, json={"data": data}, headers=headers)

        if not response.is_success:
            logger.warning(
                "upstream.create_rejected",
                extra={"path": path, "status": response.status_code},
            )
            raise UpstreamAppError(
                code="upstream_rejected",
                message="Content service rejected the entry",
                details={"http_status": 502, "hint": f"upstream status {response.status_code}"},
            )

        try:
            entity = _flatten_entity(response.json().get("data"))
        except (ValueError, AttributeError) as exc:
            raise UpstreamAppError(
                code="upstream_invalid_reply",
                message="Content service returned an unexpected reply",
                details={"http_status": 502},
            ) from exc

        logger.debug("upstream.entry_created", extra={"path": path, "entity_id": entity.get("id")})
        return entity

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
