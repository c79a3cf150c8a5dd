"""Tests for the tiered rate limiting stage."""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from storefront.core.config import RateLimitSettings, Settings
from storefront.core.rate_limit import RateLimitTier, RateLimitTiers


def _cms(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"data": [], "path": request.url.path})


def _settings(**overrides) -> Settings:
    cfg = Settings()
    cfg.rate_limit = RateLimitSettings(
        **{"api_limit": 2, "admin_limit": 3, "default_limit": 4, **overrides}
    )
    return cfg


class TestTierResolution:
    def test_longest_prefix_wins(self) -> None:
        tiers = RateLimitTiers.from_settings(RateLimitSettings())

        assert tiers.resolve("/admin/content-manager").name == "admin"
        assert tiers.resolve("/api/products").name == "api"
        assert tiers.resolve("/").name == "default"
        assert tiers.resolve("/uploads/mower.jpg").name == "default"

    def test_prefix_match_is_plain_string_prefix(self) -> None:
        tiers = RateLimitTiers.from_settings(RateLimitSettings())

        assert tiers.resolve("/apiary").name == "api"

    def test_nested_prefixes_prefer_the_more_specific(self) -> None:
        tiers = RateLimitTiers(
            [
                RateLimitTier(name="api", prefix="/api", limit=100),
                RateLimitTier(name="api_admin", prefix="/api/admin", limit=5),
            ],
            default=RateLimitTier(name="default", prefix="", limit=1000),
        )

        assert tiers.resolve("/api/admin/users").name == "api_admin"
        assert tiers.resolve("/api/products").name == "api"


class TestRateLimitMiddleware:
    def test_rejects_over_limit_with_structured_429(self, make_app) -> None:
        client = TestClient(make_app(_settings(), handler=_cms))

        assert client.get("/api/products").status_code == 200
        assert client.get("/api/products").status_code == 200
        resp = client.get("/api/products")

        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "60"
        assert resp.headers["X-RateLimit-Limit"] == "2"
        assert resp.json() == {
            "error": "Too Many Requests",
            "message": "Rate limit exceeded. Max 2 requests per 60 seconds.",
            "retryAfter": 60,
        }

    def test_tiers_are_independent(self, make_app) -> None:
        client = TestClient(make_app(_settings(), handler=_cms))

        for _ in range(2):
            client.get("/api/products")
        assert client.get("/api/products").status_code == 429

        assert client.get("/admin/init").status_code == 200
        assert client.get("/health").status_code == 200

    def test_admin_tier_uses_admin_limit(self, make_app) -> None:
        client = TestClient(make_app(_settings(), handler=_cms))

        statuses = [client.get("/admin/init").status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]

    def test_window_resets_after_interval(self, make_app, clock) -> None:
        client = TestClient(make_app(_settings(), handler=_cms))

        for _ in range(2):
            client.get("/api/products")
        clock.advance(10)
        blocked = client.get("/api/products")
        assert blocked.status_code == 429
        assert blocked.json()["retryAfter"] == 60

        clock.advance(60_000)
        assert client.get("/api/products").status_code == 200

    def test_clients_are_identified_separately(self, make_app) -> None:
        app = make_app(
            _settings(),
            handler=_cms,
            identify=lambda request: request.headers.get("X-Client", "anonymous"),
        )
        client = TestClient(app)

        for _ in range(2):
            client.get("/api/products", headers={"X-Client": "a"})
        assert client.get("/api/products", headers={"X-Client": "a"}).status_code == 429
        assert client.get("/api/products", headers={"X-Client": "b"}).status_code == 200

    def test_rejection_carries_request_id(self, make_app) -> None:
        client = TestClient(make_app(_settings(api_limit=1), handler=_cms))

        client.get("/api/products")
        resp = client.get("/api/products", headers={"X-Request-ID": "rl-1"})

        assert resp.status_code == 429
        assert resp.headers["X-Request-ID"] == "rl-1"

    def test_disabled_limiter_never_rejects(self, make_app) -> None:
        client = TestClient(make_app(_settings(enabled=False, api_limit=1), handler=_cms))

        statuses = {client.get("/api/products").status_code for _ in range(5)}

        assert statuses == {200}


@pytest.mark.parametrize("prefix", ["api", "/api/", ""])
def test_invalid_prefixes_are_rejected_or_normalized(prefix: str) -> None:
    if prefix.startswith("/"):
        assert RateLimitSettings(api_prefix=prefix).api_prefix == "/api"
    else:
        with pytest.raises(ValueError):
            RateLimitSettings(api_prefix=prefix)
