"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins APP_ENV to "testing" so settings never pick up a developer's
.env.development file, and provides a deterministic clock plus an app
builder for pipeline-level tests.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

# Keep the suite hermetic regardless of the host environment
os.environ.setdefault("MAIL_BACKEND", "log")
os.environ.setdefault("SWEEP_MODE", "periodic")

import json
from typing import Any, Callable

import httpx
import pytest
from fastapi import FastAPI

from storefront.adapters.mail.base import AbstractMailer, MailMessage
from storefront.core.app_factory import create_app
from storefront.core.config import Settings


class FakeClock:
    """Deterministic epoch-milliseconds clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, ms: float) -> None:
        self.current += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class RecordingMailer(AbstractMailer):
    """Keeps every notification instead of delivering it."""

    def __init__(self) -> None:
        self.sent: list[MailMessage] = []

    async def send(self, message: MailMessage) -> None:
        self.sent.append(message)


class FakeCms:
    """httpx MockTransport handler standing in for the CMS.

    POST /api/contact-messages creates an entry (kept in ``entries``);
    every other request answers 200 with an empty collection.
    """

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST" and request.url.path == "/api/contact-messages":
            data = json.loads(request.content)["data"]
            entry = {"id": len(self.entries) + 1, **data, "createdAt": "2026-05-04T09:30:00.000Z"}
            self.entries.append(entry)
            return httpx.Response(200, json={"data": entry, "meta": {}})
        return httpx.Response(200, json={"data": [], "meta": {}})


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def cms() -> FakeCms:
    return FakeCms()


@pytest.fixture
def make_app(clock: FakeClock, mailer: RecordingMailer) -> Callable[..., FastAPI]:
    """Build an isolated app: own tables, fake clock, recording mailer."""

    def _make(
        settings: Settings | None = None,
        *,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
        base_url: str | None = "http://cms.test",
        **kwargs: Any,
    ) -> FastAPI:
        cfg = settings or Settings()
        if handler is not None:
            cfg.upstream.base_url = base_url
            kwargs.setdefault("upstream_transport", httpx.MockTransport(handler))
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("mailer", mailer)
        return create_app(cfg, **kwargs)

    return _make
