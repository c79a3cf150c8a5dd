"""Tests for expired-entry sweeping."""

from __future__ import annotations

import asyncio
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from storefront.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from storefront.core.config import Settings, SweepSettings
from storefront.core.sweeper import PeriodicSweeper, SweepPolicy
from storefront.utils.response_cache import ResponseCache


def _tables(clock: Mock) -> tuple[ResponseCache, InMemoryFixedWindowRateLimiter]:
    cache = ResponseCache(ttl_ms=1_000, clock=clock)
    limiter = InMemoryFixedWindowRateLimiter(limit=5, interval_ms=1_000, clock=clock)
    cache.store("GET", "/api/products", {}, b"{}")
    limiter.consume("api:1.2.3.4")
    return cache, limiter


class TestSweepPolicy:
    def test_periodic_mode_never_sweeps_inline(self) -> None:
        target = Mock()
        policy = SweepPolicy("periodic", probability=1.0, rng=lambda: 0.0)

        assert policy.maybe_sweep(target, name="t") == 0
        target.sweep.assert_not_called()

    def test_probabilistic_mode_sweeps_below_probability(self) -> None:
        target = Mock()
        target.sweep.return_value = 3
        policy = SweepPolicy("probabilistic", probability=0.01, rng=lambda: 0.005)

        assert policy.maybe_sweep(target, name="t") == 3
        target.sweep.assert_called_once_with()

    def test_probabilistic_mode_skips_at_or_above_probability(self) -> None:
        target = Mock()
        policy = SweepPolicy("probabilistic", probability=0.01, rng=lambda: 0.01)

        assert policy.maybe_sweep(target, name="t") == 0
        target.sweep.assert_not_called()

    @pytest.mark.parametrize("probability", [-0.1, 1.5])
    def test_rejects_invalid_probability(self, probability: float) -> None:
        with pytest.raises(ValueError):
            SweepPolicy("probabilistic", probability=probability)


class TestPeriodicSweeper:
    def test_run_once_sweeps_every_table(self) -> None:
        clock = Mock(return_value=0.0)
        cache, limiter = _tables(clock)
        sweeper = PeriodicSweeper({"response_cache": cache, "rate_limit": limiter}, 60)

        clock.return_value = 1_001.0
        result = sweeper.run_once()

        assert result == {"response_cache": 1, "rate_limit": 1}
        assert len(cache) == 0
        assert len(limiter) == 0

    def test_failing_table_does_not_stop_the_others(self) -> None:
        clock = Mock(return_value=0.0)
        cache, _ = _tables(clock)
        broken = Mock()
        broken.sweep.side_effect = RuntimeError("boom")
        sweeper = PeriodicSweeper({"broken": broken, "response_cache": cache}, 60)

        clock.return_value = 1_000.0
        result = sweeper.run_once()

        assert result == {"broken": 0, "response_cache": 1}

    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError):
            PeriodicSweeper({}, 0)

    def test_background_task_sweeps_until_stopped(self) -> None:
        target = Mock()
        target.sweep.return_value = 0
        sweeper = PeriodicSweeper({"t": target}, 0.01)

        async def _scenario() -> None:
            await sweeper.start()
            assert sweeper.running is True
            await asyncio.sleep(0.05)
            await sweeper.stop()

        asyncio.run(_scenario())

        assert sweeper.running is False
        assert target.sweep.call_count >= 1

    def test_stop_without_start_is_noop(self) -> None:
        sweeper = PeriodicSweeper({}, 1)

        asyncio.run(sweeper.stop())

        assert sweeper.running is False


def test_lifespan_starts_and_stops_sweeper(make_app) -> None:
    app = make_app()

    with TestClient(app) as client:
        assert app.state.sweeper.running is True
        assert client.get("/health").status_code == 200

    assert app.state.sweeper.running is False


def test_probabilistic_mode_sweeps_on_requests(make_app, clock) -> None:
    cfg = Settings()
    cfg.sweep = SweepSettings(mode="probabilistic", probability=0.5)
    app = make_app(cfg, sweep_rng=lambda: 0.0)
    client = TestClient(app)

    client.get("/health")
    client.get("/admin")
    assert len(app.state.rate_limiter) == 2

    clock.advance(60_001)
    client.get("/health")

    # The stale admin window is gone; the default one was reopened
    assert len(app.state.rate_limiter) == 1
