"""In-memory TTL cache of serialized API responses.

Entries are keyed by method, path and serialized query parameters and hold
the exact bytes returned to the client. There is no size bound and no
invalidation on content writes: entries only leave the table when a read
finds them stale or a sweep removes them.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from storefront.core.logging import hash_identifier
from storefront.utils.timeutils import epoch_ms

logger = logging.getLogger(__name__)


QueryParams = Mapping[str, Any]


@dataclass(frozen=True)
class CacheEntry:
    """A stored response; replaced as a whole, never mutated."""

    key: str
    payload: bytes
    media_type: str
    stored_at_ms: float


def is_fresh(entry: CacheEntry, now_ms: float, ttl_ms: float) -> bool:
    """Return True while ``now_ms - stored_at_ms < ttl_ms``."""
    return now_ms - entry.stored_at_ms < ttl_ms


def serialize_query(query: QueryParams, *, canonical: bool = False) -> str:
    """Compact JSON of the query mapping.

    Insertion order is kept unless ``canonical`` is set, so two requests that
    send the same parameters in a different order map to different keys in
    the default mode.
    """
    return json.dumps(
        dict(query),
        separators=(",", ":"),
        sort_keys=canonical,
        ensure_ascii=False,
        default=str,
    )


def build_cache_key(
    method: str,
    path: str,
    query: QueryParams,
    *,
    canonical: bool = False,
) -> str:
    """Build the cache key ``METHOD:path:serialized-query``.

    Args:
        method: HTTP method, used as given (callers pass it upper-cased).
        path: Request path without the query string.
        query: Query parameters; repeated keys should map to a list.
        canonical: Sort query keys before serializing.

    Returns:
        Deterministic key string.
    """

    return f"{method}:{path}:{serialize_query(query, canonical=canonical)}"


class ResponseCache:
    """Thread-safe, in-memory TTL cache for response payloads.

    Attributes:
        ttl_ms: Time-to-live applied to all entries, in milliseconds.
        canonical_keys: Whether query keys are sorted when building keys.
    """

    def __init__(
        self,
        ttl_ms: int = 300_000,
        *,
        canonical_keys: bool = False,
        clock: Callable[[], float] = epoch_ms,
    ) -> None:
        if ttl_ms < 1:
            raise ValueError("ttl_ms must be >= 1")
        self.ttl_ms = ttl_ms
        self.canonical_keys = canonical_keys
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._sweeping = False
        self._hits = 0
        self._misses = 0
        self._stores = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"ResponseCache(ttl_ms={self.ttl_ms}, size={len(self._store)}, "
            f"hits={self._hits}, misses={self._misses}, evictions={self._evictions})"
        )

    def __len__(self) -> int:
        return len(self._store)

    def key_for(self, method: str, path: str, query: QueryParams) -> str:
        return build_cache_key(method, path, query, canonical=self.canonical_keys)

    def lookup(self, method: str, path: str, query: QueryParams) -> CacheEntry | None:
        """Return the fresh entry for the request, or None.

        A stale entry found here is removed.
        """

        key = self.key_for(method, path, query)
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                logger.debug(
                    "response_cache.miss",
                    extra={"cache_key": hash_identifier(key), "reason": "not_found"},
                )
                return None

            if not is_fresh(entry, now, self.ttl_ms):
                self._evict_single(key)
                self._misses += 1
                logger.debug(
                    "response_cache.miss",
                    extra={"cache_key": hash_identifier(key), "reason": "expired"},
                )
                return None

            self._hits += 1
            logger.debug("response_cache.hit", extra={"cache_key": hash_identifier(key)})
            return entry

    def store(
        self,
        method: str,
        path: str,
        query: QueryParams,
        payload: bytes,
        *,
        media_type: str = "application/json",
    ) -> CacheEntry:
        """Store payload for the request, replacing any existing entry."""

        key = self.key_for(method, path, query)
        entry = CacheEntry(
            key=key,
            payload=payload,
            media_type=media_type,
            stored_at_ms=self._clock(),
        )
        with self._lock:
            self._store[key] = entry
            self._stores += 1
            logger.debug(
                "response_cache.store",
                extra={
                    "cache_key": hash_identifier(key),
                    "size": len(self._store),
                    "ttl_ms": self.ttl_ms,
                },
            )
        return entry

    def sweep(self, now_ms: float | None = None) -> int:
        """Remove every stale entry and return how many were removed.

        Returns 0 without scanning if another sweep is already running.
        """

        with self._lock:
            if self._sweeping:
                return 0
            self._sweeping = True
            try:
                now = self._clock() if now_ms is None else now_ms
                expired = [
                    key
                    for key, entry in self._store.items()
                    if not is_fresh(entry, now, self.ttl_ms)
                ]
                for key in expired:
                    self._evict_single(key)
                return len(expired)
            finally:
                self._sweeping = False

    def clear(self) -> None:
        """Remove all cached entries and reset counters."""

        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._stores = 0
            self._evictions = 0

    def stats(self) -> dict[str, int]:
        """Return lightweight cache metrics without exposing values."""

        with self._lock:
            return {
                "ttl_ms": self.ttl_ms,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "stores": self._stores,
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if self._store.pop(key, None) is not None:
            self._evictions += 1
