"""Clock helpers shared by the in-memory tables."""

from __future__ import annotations

import time


def epoch_ms() -> float:
    """Current UNIX time in milliseconds."""
    return time.time() * 1000
