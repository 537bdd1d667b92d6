"""
In-process TTL cache for pair routes.

A matrix over the same point set is often requested repeatedly (dispatch
dashboards poll it), so successful pair routes are kept for
OSRM_CACHE_TTL_SECONDS. Entries are evicted oldest-first once the cache is
full. `clear_all_caches` and `get_all_cache_stats` back the /dev cache
endpoints.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Hashable
from threading import Lock
from typing import Any

from .metrics import cache_hits_total, cache_misses_total, cache_size
from .settings import settings


class TTLCache:
    def __init__(self, name: str, ttl_seconds: float, max_entries: int) -> None:
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, max_entries)
        self._entries: OrderedDict[Hashable, tuple[Any, float]] = OrderedDict()
        self._lock = Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key: Hashable) -> Any | None:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and time.monotonic() - entry[1] > self.ttl_seconds:
                del self._entries[key]
                self.expirations += 1
                entry = None
            if entry is None:
                self.misses += 1
                cache_misses_total.labels(cache_name=self.name).inc()
                return None
            self._entries.move_to_end(key)
            self.hits += 1
        cache_hits_total.labels(cache_name=self.name).inc()
        return entry[0]

    def put(self, key: Hashable, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[key] = (value, time.monotonic())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evictions += 1
            size = len(self._entries)
        cache_size.labels(cache_name=self.name).set(size)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        cache_size.labels(cache_name=self.name).set(0)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "expirations": self.expirations,
            }

    def __len__(self) -> int:
        return len(self._entries)


route_cache = TTLCache(
    "osrm_route",
    ttl_seconds=settings.OSRM_CACHE_TTL_SECONDS,
    max_entries=settings.OSRM_CACHE_MAX_ENTRIES,
)


def clear_all_caches() -> None:
    """Purge all in-process caches."""
    from .health import health_checker

    route_cache.clear()
    health_checker.clear_cache()


def get_all_cache_stats() -> dict[str, dict]:
    """Return cache diagnostics (best-effort; safe for dev use)."""
    from .health import health_checker

    return {
        "routes": route_cache.stats(),
        "health": {
            "entries": len(health_checker._check_cache),  # type: ignore[attr-defined]
            "ttl_seconds": getattr(health_checker, "_cache_ttl", None),
        },
    }


__all__ = ["TTLCache", "clear_all_caches", "get_all_cache_stats", "route_cache"]
