"""Test the pair route cache."""

import time

from backend.matrix_service.cache import (
    TTLCache,
    clear_all_caches,
    get_all_cache_stats,
    route_cache,
)


class TestTTLCache:
    def test_get_put(self):
        cache = TTLCache("test", ttl_seconds=10, max_entries=10)
        cache.put("key1", "value1")

        assert cache.get("key1") == "value1"
        assert cache.get("missing") is None
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_entries_expire_after_ttl(self):
        cache = TTLCache("test", ttl_seconds=0.1, max_entries=10)
        cache.put("key1", "value1")
        assert cache.get("key1") == "value1"

        time.sleep(0.15)
        assert cache.get("key1") is None
        assert cache.stats()["expirations"] == 1
        assert len(cache) == 0

    def test_oldest_entry_is_evicted_when_full(self):
        cache = TTLCache("test", ttl_seconds=10, max_entries=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")  # refresh "a"
        cache.put("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.stats()["evictions"] == 1

    def test_zero_ttl_disables_cache(self):
        cache = TTLCache("test", ttl_seconds=0, max_entries=10)
        cache.put("key1", "value1")

        assert not cache.enabled
        assert cache.get("key1") is None
        assert len(cache) == 0

    def test_clear(self):
        cache = TTLCache("test", ttl_seconds=10, max_entries=10)
        cache.put("key1", "value1")
        cache.clear()
        assert cache.get("key1") is None


def test_clear_all_caches_purges_route_cache():
    route_cache.put(("probe",), "value")
    clear_all_caches()
    assert len(route_cache) == 0


def test_cache_stats_report_routes_and_health():
    stats = get_all_cache_stats()
    assert set(stats) == {"routes", "health"}
    assert stats["routes"]["ttl_seconds"] == route_cache.ttl_seconds
