# SPDX-License-Identifier: Apache-2.0
"""
In-memory key-value cache.

Asserts:
  • get/set round trip, missing keys return None
  • TTL expiry (explicit and default)
  • LRU eviction beyond max_entries
  • both bundled caches satisfy the KeyValueCache protocol
"""

import pytest

import gqlpipe.core.cache as cache_mod
from gqlpipe.core.cache import InMemoryTTLCache, KeyValueCache, NoopCache

pytestmark = pytest.mark.asyncio


class FakeClock:
    """Stands in for the `time` module inside the cache."""

    def __init__(self) -> None:
        self.now = 1000.0

    def monotonic(self) -> float:
        return self.now


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    c = FakeClock()
    monkeypatch.setattr(cache_mod, "time", c)
    return c


async def test_round_trip_and_miss():
    cache = InMemoryTTLCache()
    await cache.set("k", "v")
    assert await cache.get("k") == "v"
    assert await cache.get("missing") is None


async def test_explicit_ttl_expires(clock):
    cache = InMemoryTTLCache()
    await cache.set("k", "v", ttl_s=10)

    clock.now += 9
    assert await cache.get("k") == "v"
    clock.now += 1
    assert await cache.get("k") is None
    assert len(cache) == 0


async def test_default_ttl_applies_when_unspecified(clock):
    cache = InMemoryTTLCache(default_ttl_s=5)
    await cache.set("a", "1")
    await cache.set("b", "2", ttl_s=60)

    clock.now += 6
    assert await cache.get("a") is None
    assert await cache.get("b") == "2"


async def test_lru_eviction():
    cache = InMemoryTTLCache(max_entries=2)
    await cache.set("a", "1")
    await cache.set("b", "2")
    assert await cache.get("a") == "1"  # a is now most recent
    await cache.set("c", "3")

    assert await cache.get("b") is None
    assert await cache.get("a") == "1"
    assert await cache.get("c") == "3"
    assert len(cache) == 2


async def test_delete():
    cache = InMemoryTTLCache()
    await cache.set("k", "v")
    await cache.delete("k")
    await cache.delete("never-set")
    assert await cache.get("k") is None


async def test_noop_cache_never_stores():
    cache = NoopCache()
    await cache.set("k", "v")
    assert await cache.get("k") is None


async def test_protocol_conformance():
    assert isinstance(InMemoryTTLCache(), KeyValueCache)
    assert isinstance(NoopCache(), KeyValueCache)
