"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from storefront.core.errors import (
    AppError,
    NotificationAppError,
    RateLimitAppError,
    UpstreamAppError,
    ValidationAppError,
)
from storefront.core.exception_handlers import (
    general_exception_handler,
    setup_exception_handlers,
)


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    """Create test client with handlers enabled."""
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify ValidationAppError returns HTTP 400."""
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise ValidationAppError(
                code="mail_missing_host",
                message="SMTP mail backend requires MAIL_HOST",
            )

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "mail_missing_host"
        assert data["error"]["message"] == "SMTP mail backend requires MAIL_HOST"
        assert "request_id" in data["error"]
        assert "details" not in data["error"]

    def test_upstream_error_defaults_to_502(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify UpstreamAppError without a status returns HTTP 502."""
        @app_with_handlers.get("/test-upstream")
        async def test_endpoint():
            raise UpstreamAppError(code="upstream_unavailable", message="Content service is unavailable")

        response = client.get("/test-upstream")

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "upstream_unavailable"

    def test_upstream_error_uses_status_from_details(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify UpstreamAppError honours details.http_status."""
        @app_with_handlers.get("/test-upstream-503")
        async def test_endpoint():
            raise UpstreamAppError(
                code="upstream_not_configured",
                message="Content service is not configured",
                details={"http_status": 503, "hint": "Set UPSTREAM_BASE_URL"},
            )

        response = client.get("/test-upstream-503")

        assert response.status_code == 503
        assert response.json()["error"]["details"]["hint"] == "Set UPSTREAM_BASE_URL"

    def test_notification_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify NotificationAppError returns HTTP 500."""
        @app_with_handlers.get("/test-mail")
        async def test_endpoint():
            raise NotificationAppError(code="mail_delivery_failed", message="Not delivered")

        response = client.get("/test-mail")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "mail_delivery_failed"


class TestRateLimitErrorHandler:
    def test_rate_limit_error_returns_structured_429(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify RateLimitAppError renders the 429 body, not the AppError envelope."""
        @app_with_handlers.get("/test-rate-limit")
        async def test_endpoint():
            raise RateLimitAppError(
                code="contact_rate_limited",
                message="Too many contact requests. Please try again in 15 minutes.",
                limit=3,
                retry_after_ms=899_001,
            )

        response = client.get("/test-rate-limit")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "900"
        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.json() == {
            "error": "Too Many Requests",
            "message": "Too many contact requests. Please try again in 15 minutes.",
            "retryAfter": 900,
        }


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_handler_registered(self, app_with_handlers: FastAPI):
        """Verify fallback exception handler is registered."""
        assert Exception in app_with_handlers.exception_handlers

    def test_general_exception_handler_logic(self):
        """Verify general_exception_handler returns correct structure."""
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Unexpected error: smtp password rejected")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        # Original error message should NOT be in response
        assert "smtp password" not in data["error"]["message"]
        assert "request_id" in data["error"]

    def test_general_exception_handler_never_leaks_stack_trace(self):
        """Verify stack traces are never included in response."""
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = ValueError("Test error with details")
        response = asyncio.run(general_exception_handler(request, exc))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "File \"" not in response_text
        assert "ValueError" not in response_text


class TestErrorHandlerIntegration:
    """Integration tests for exception handler setup."""

    def test_setup_exception_handlers_registers_handlers(self, app_with_handlers: FastAPI):
        assert RateLimitAppError in app_with_handlers.exception_handlers
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

    def test_multiple_handler_setups_does_not_fail(self):
        """Verify calling setup_exception_handlers multiple times is safe."""
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers
