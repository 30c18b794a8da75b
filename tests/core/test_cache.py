"""
测试进程内 TTL 缓存
"""
import time

import pytest

from kappalib.core.cache import TTLCache


@pytest.fixture
def cache(clock):
    return TTLCache(clock=clock)


def test_set_and_get(cache):
    cache.set("novel:1", {"title": "A"}, ttl=60)

    value, found = cache.get("novel:1")

    assert found
    assert value == {"title": "A"}


def test_get_missing(cache):
    assert cache.get("missing") == (None, False)


def test_expired_entry_is_removed(cache, clock):
    cache.set("novel:1", "A", ttl=60)

    clock.advance(59)
    assert cache.get("novel:1") == ("A", True)

    clock.advance(1)
    assert cache.get("novel:1") == (None, False)
    assert len(cache) == 0


def test_get_or_fetch_caches_until_expiry(cache, clock):
    calls = []

    def fetch():
        calls.append(1)
        return len(calls)

    assert cache.get_or_fetch("k", 10, fetch) == 1
    assert cache.get_or_fetch("k", 10, fetch) == 1
    assert len(calls) == 1

    clock.advance(11)
    assert cache.get_or_fetch("k", 10, fetch) == 2
    assert len(calls) == 2


def test_get_or_fetch_does_not_cache_errors(cache):
    def broken():
        raise LookupError("not found")

    with pytest.raises(LookupError):
        cache.get_or_fetch("k", 10, broken)

    assert len(cache) == 0
    assert cache.get_or_fetch("k", 10, lambda: "ok") == "ok"


def test_cached_none_is_a_hit(cache):
    calls = []

    def fetch():
        calls.append(1)
        return None

    cache.get_or_fetch("k", 10, fetch)
    cache.get_or_fetch("k", 10, fetch)

    assert len(calls) == 1


def test_purge_expired(cache, clock):
    cache.set("short", 1, ttl=5)
    cache.set("long", 2, ttl=500)

    clock.advance(10)

    assert cache.purge_expired() == 1
    assert cache.get("long") == (2, True)


def test_should_cache_skips_rejected_values(cache):
    calls = []

    def fetch():
        calls.append(1)
        return []

    assert cache.get_or_fetch("k", 10, fetch, should_cache=bool) == []
    assert cache.get_or_fetch("k", 10, fetch, should_cache=bool) == []

    assert len(calls) == 2
    assert len(cache) == 0


def test_background_sweeper_purges_unread_entries(cache, clock):
    for i in range(50):
        cache.set(f"chapters:novel:nvl_{i}", [], ttl=5)
    clock.advance(10)

    cache.start(interval=0.01)
    cache.start(interval=0.01)
    try:
        deadline = time.monotonic() + 2
        while len(cache) and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        cache.stop()

    assert len(cache) == 0
    assert cache._sweeper is None
