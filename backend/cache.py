"""Bantay Backend: In-memory response cache with TTL

Descriptive analytics and the predictive summary are recomputed from the
full incident list, so their results are kept here until they expire or
the underlying data changes.
"""

import time
import logging
from typing import Any, Optional

logger = logging.getLogger("bantay.cache")


class TTLCache:
    """Per-key TTL with max-size eviction. Entries are also tagged with the
    store version they were computed from; a lookup at a newer version misses."""

    def __init__(self, default_ttl: int = 300, max_size: int = 200):
        self._store: dict[str, tuple[Any, float, int]] = {}
        self._default_ttl = default_ttl
        self._max_size = max_size

    def get(self, key: str, version: int = 0) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at, stored_version = entry
        if time.time() > expires_at or stored_version != version:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any, version: int = 0, ttl: Optional[int] = None):
        if len(self._store) >= self._max_size and key not in self._store:
            self.evict_expired()
            while len(self._store) >= self._max_size:
                oldest_key = min(self._store, key=lambda k: self._store[k][1])
                del self._store[oldest_key]
        expires_at = time.time() + (ttl or self._default_ttl)
        self._store[key] = (value, expires_at, version)

    def invalidate(self, prefix: str = ""):
        """Drop every key starting with `prefix` (all keys when empty)."""
        stale = [k for k in self._store if k.startswith(prefix)]
        for k in stale:
            del self._store[k]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached entries (prefix={prefix!r})")

    def clear(self):
        self._store.clear()

    def evict_expired(self):
        now = time.time()
        expired = [k for k, (_, exp, _) in self._store.items() if now > exp]
        for k in expired:
            del self._store[k]


# Shared caches
analytics_cache = TTLCache(default_ttl=300)   # 5 min, descriptive aggregates
summary_cache = TTLCache(default_ttl=60)      # 1 min, predictive dashboard summary
