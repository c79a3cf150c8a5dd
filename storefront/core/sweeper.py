"""Expired-entry sweeping for the cache and rate limiter tables.

Two cadences are supported:
- periodic: one background asyncio task per application sweeps every table
  at a fixed interval (default).
- probabilistic: each request through a stage sweeps that stage's table with
  a small probability.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, Literal, Mapping, Protocol

logger = logging.getLogger(__name__)


class Sweepable(Protocol):
    def sweep(self, now_ms: float | None = None) -> int: ...


class SweepPolicy:
    """Decides whether a request should trigger an inline sweep."""

    def __init__(
        self,
        mode: Literal["periodic", "probabilistic"] = "periodic",
        probability: float = 0.01,
        rng: Callable[[], float] = random.random,
    ) -> None:
        if not 0 <= probability <= 1:
            raise ValueError("probability must be between 0 and 1")
        self.mode = mode
        self.probability = probability
        self._rng = rng

    def maybe_sweep(self, target: Sweepable, *, name: str) -> int:
        """Sweep target inline when running in probabilistic mode.

        Returns:
            Number of entries removed (0 when no sweep ran).
        """
        if self.mode != "probabilistic" or self._rng() >= self.probability:
            return 0
        removed = target.sweep()
        if removed:
            logger.debug("sweep.inline", extra={"table": name, "removed": removed})
        return removed


class PeriodicSweeper:
    """Background task sweeping a fixed set of tables at an interval."""

    def __init__(self, targets: Mapping[str, Sweepable], interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.targets = dict(targets)
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "sweeper.started",
            extra={"interval_s": self.interval_seconds, "tables": sorted(self.targets)},
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("sweeper.stopped")

    def run_once(self) -> dict[str, int]:
        """Sweep every table once; a failing table is logged and skipped."""
        results: dict[str, int] = {}
        for name, target in self.targets.items():
            try:
                results[name] = target.sweep()
            except Exception as exc:
                logger.warning(
                    "sweeper.table_failed",
                    extra={"table": name, "error_type": type(exc).__name__},
                )
                results[name] = 0
        if any(results.values()):
            logger.info("sweeper.completed", extra={"removed": results})
        return results

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.run_once()
