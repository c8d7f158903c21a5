from __future__ import annotations

import pytest

from balloontrails.utils.cache import LruCache


def test_least_recently_used_entry_is_evicted() -> None:
    cache: LruCache[int] = LruCache(max_entries=2)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == 1
    cache.set("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    stats = cache.stats()
    assert stats.evictions == 1
    assert stats.size == 2


def test_disabled_cache_stores_nothing() -> None:
    cache: LruCache[int] = LruCache(max_entries=2, enabled=False)
    cache.set("a", 1)
    assert cache.get("a") is None
    assert len(cache) == 0


def test_ttl_expiry(monkeypatch) -> None:
    clock = {"now": 100.0}
    monkeypatch.setattr("balloontrails.utils.cache.time.monotonic", lambda: clock["now"])
    cache: LruCache[int] = LruCache(max_entries=4, ttl_seconds=10)
    cache.set("a", 1)
    clock["now"] = 105.0
    assert cache.get("a") == 1
    clock["now"] = 111.0
    assert cache.get("a") is None


def test_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        LruCache(max_entries=0)
