"""TTL Cache: bounded in-memory cache with time-based expiration."""

import time
from typing import Any, Iterator

from ..utils.logging import get_logger

logger = get_logger("utils.cache")


class TTLCache:
    """In-memory cache with per-key TTL expiration and a size bound.

    Not synchronised: callers that share an instance across threads must
    hold their own lock around every call.
    """

    def __init__(self, default_ttl: float = 30.0, max_entries: int = 1000):
        self._default_ttl = default_ttl
        self._max_entries = max(1, max_entries)
        self._store: dict[str, tuple[Any, float]] = {}  # key -> (value, expires_at)

    def get(self, key: str) -> Any | None:
        """Get a cached value if it exists and hasn't expired."""
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() > expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Set a cached value with optional custom TTL."""
        if key not in self._store:
            self._evict_if_full()
        expires_at = time.monotonic() + (ttl if ttl is not None else self._default_ttl)
        self._store[key] = (value, expires_at)

    def invalidate(self, key: str) -> bool:
        """Remove a specific key from the cache."""
        return self._store.pop(key, None) is not None

    def clear(self) -> None:
        """Clear all cached entries."""
        self._store.clear()

    def items(self) -> Iterator[tuple[str, Any]]:
        """Iterate over live (non-expired) entries."""
        now = time.monotonic()
        for key, (value, expires_at) in list(self._store.items()):
            if now <= expires_at:
                yield key, value

    def __len__(self) -> int:
        return len(self._store)

    def _evict_if_full(self) -> None:
        """Evict expired entries first, then the soonest-expiring if still full."""
        if len(self._store) < self._max_entries:
            return

        now = time.monotonic()
        expired_keys = [k for k, (_, exp) in self._store.items() if now > exp]
        for k in expired_keys:
            del self._store[k]

        if len(self._store) >= self._max_entries:
            sorted_keys = sorted(self._store, key=lambda k: self._store[k][1])
            to_remove = len(self._store) - self._max_entries + 1
            for k in sorted_keys[:to_remove]:
                del self._store[k]
            logger.debug("cache_evicted", count=to_remove)
