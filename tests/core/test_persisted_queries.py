# SPDX-License-Identifier: Apache-2.0
"""
Automatic persisted queries.

Asserts:
  • register then hash-only request -> same result, apq counters move
  • mismatching hash is rejected before touching the cache
  • hash miss or empty cached text -> PersistedQueryNotFound; no cache -> PersistedQueryNotSupported
  • an empty dedicated cache still enables persisted queries
  • unsupported versions are rejected
  • cache write failures are logged and never fail the request
  • registration writes never block the response
"""

import asyncio
import hashlib
import logging
from typing import Dict, List, Optional

import pytest

from gqlpipe.core.cache import InMemoryTTLCache
from gqlpipe.core.errors import InvalidRequest, PersistedQueryNotFound, PersistedQueryNotSupported
from gqlpipe.core.persisted_queries import (
    APQ_KEY_PREFIX,
    PersistedQueryOptions,
    compute_query_hash,
    flush_pending_writes,
    pending_write_count,
    persisted_query_key,
    resolve_query_text,
)
from gqlpipe.core.processor import RequestOptions, RequestProcessor
from gqlpipe.core.types import Request
from tests.mock.mock_schema import QUERY_HELLO

pytestmark = pytest.mark.asyncio


class SpyCache:
    """Dict-backed cache recording every call."""

    def __init__(self) -> None:
        self.store: Dict[str, str] = {}
        self.gets: List[str] = []
        self.sets: List[tuple] = []

    async def get(self, key: str) -> Optional[str]:
        self.gets.append(key)
        return self.store.get(key)

    async def set(self, key: str, value: str, ttl_s: Optional[int] = None) -> None:
        self.sets.append((key, value, ttl_s))
        self.store[key] = value


class FailingSetCache(SpyCache):
    async def set(self, key, value, ttl_s=None):
        raise ConnectionError("cache down")


class SyncFailingSetCache(SpyCache):
    def set(self, key, value, ttl_s=None):
        raise ConnectionError("cache refused")


class FailingGetCache(SpyCache):
    async def get(self, key):
        raise ConnectionError("cache down")


class SlowSetCache(SpyCache):
    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def set(self, key, value, ttl_s=None):
        await self.release.wait()
        await super().set(key, value, ttl_s)


def pq(query: str = QUERY_HELLO, **overrides) -> Dict[str, Dict]:
    body = {"version": 1, "sha256Hash": compute_query_hash(query)}
    body.update(overrides)
    return {"persistedQuery": body}


async def run(options: RequestOptions, **request):
    return await RequestProcessor(options).process_request(Request(**request))


async def test_hash_matches_hashlib():
    assert compute_query_hash(QUERY_HELLO) == hashlib.sha256(QUERY_HELLO.encode("utf-8")).hexdigest()
    assert persisted_query_key("abc") == APQ_KEY_PREFIX + "abc"


async def test_register_then_hit_round_trip(schema, metrics):
    cache = SpyCache()
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=cache), metrics=metrics)

    first = await run(options, query=QUERY_HELLO, extensions=pq())
    await flush_pending_writes()
    second = await run(options, extensions=pq())

    assert first.data == second.data == {"hello": "Hello, world!"}
    assert cache.store == {persisted_query_key(compute_query_hash(QUERY_HELLO)): QUERY_HELLO}
    assert metrics.counters == {"apq_registers": 1, "apq_hits": 1}


async def test_empty_in_memory_cache_round_trip(schema, metrics):
    cache = InMemoryTTLCache()
    assert len(cache) == 0
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=cache), metrics=metrics)

    first = await run(options, query=QUERY_HELLO, extensions=pq())
    await flush_pending_writes()
    second = await run(options, extensions=pq())

    assert first.errors is None and second.errors is None
    assert first.data == second.data == {"hello": "Hello, world!"}
    assert metrics.counters == {"apq_registers": 1, "apq_hits": 1}


async def test_dedicated_cache_wins_over_general_cache(schema):
    dedicated, general = InMemoryTTLCache(), InMemoryTTLCache()
    options = RequestOptions(
        schema=schema, cache=general, persisted_queries=PersistedQueryOptions(cache=dedicated)
    )

    await run(options, query=QUERY_HELLO, extensions=pq())
    await flush_pending_writes()

    assert len(dedicated) == 1
    assert len(general) == 0


async def test_mismatched_hash_never_touches_cache(schema, probe):
    cache = SpyCache()
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=cache))

    response = await run(options, query=QUERY_HELLO, extensions=pq("{ books { id } }"))
    await flush_pending_writes()

    assert len(response.errors) == 1
    assert isinstance(response.errors[0], InvalidRequest)
    assert response.errors[0].message == "provided sha does not match query"
    assert cache.gets == [] and cache.sets == []
    assert not probe.executed


async def test_hash_comparison_is_exact(schema):
    cache = SpyCache()
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=cache))
    upper = compute_query_hash(QUERY_HELLO).upper()

    response = await run(options, query=QUERY_HELLO, extensions=pq(sha256Hash=upper))
    assert isinstance(response.errors[0], InvalidRequest)


async def test_unknown_hash_is_not_found(schema, metrics, probe):
    options = RequestOptions(
        schema=schema, persisted_queries=PersistedQueryOptions(cache=SpyCache()), metrics=metrics
    )
    response = await run(options, extensions=pq())

    assert len(response.errors) == 1
    err = response.errors[0]
    assert isinstance(err, PersistedQueryNotFound)
    assert err.message == "PersistedQueryNotFound"
    assert err.code == "PERSISTED_QUERY_NOT_FOUND"
    assert metrics.counters == {"apq_misses": 1}
    assert not probe.executed


async def test_empty_cached_text_is_not_found(schema, probe):
    cache = SpyCache()
    cache.store[persisted_query_key(compute_query_hash(QUERY_HELLO))] = ""
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=cache))

    response = await run(options, extensions=pq())

    assert len(response.errors) == 1
    assert isinstance(response.errors[0], PersistedQueryNotFound)
    assert not probe.executed


@pytest.mark.parametrize("with_query", [True, False])
async def test_no_cache_is_not_supported(schema, with_query):
    options = RequestOptions(schema=schema)
    request = {"extensions": pq()}
    if with_query:
        request["query"] = QUERY_HELLO

    response = await run(options, **request)

    assert len(response.errors) == 1
    assert isinstance(response.errors[0], PersistedQueryNotSupported)
    assert response.errors[0].message == "PersistedQueryNotSupported"


async def test_general_cache_backs_persisted_queries(schema):
    cache = InMemoryTTLCache()
    options = RequestOptions(schema=schema, cache=cache, persisted_queries=PersistedQueryOptions())

    await run(options, query=QUERY_HELLO, extensions=pq())
    await flush_pending_writes()

    assert await cache.get(persisted_query_key(compute_query_hash(QUERY_HELLO))) == QUERY_HELLO


async def test_general_cache_alone_does_not_enable_persisted_queries(schema):
    options = RequestOptions(schema=schema, cache=InMemoryTTLCache())
    response = await run(options, query=QUERY_HELLO, extensions=pq())
    assert isinstance(response.errors[0], PersistedQueryNotSupported)


@pytest.mark.parametrize("version", [2, 0, True, "1", None])
async def test_unsupported_version_is_invalid(schema, version):
    cache = SpyCache()
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=cache))

    response = await run(options, query=QUERY_HELLO, extensions=pq(version=version))

    assert isinstance(response.errors[0], InvalidRequest)
    assert response.errors[0].message == "Unsupported persisted query version"
    assert cache.sets == []


@pytest.mark.parametrize("sha", ["", None, 42])
async def test_missing_hash_is_invalid(sha):
    with pytest.raises(InvalidRequest):
        await resolve_query_text(None, pq(sha256Hash=sha), SpyCache())


async def test_non_object_extension_is_invalid():
    with pytest.raises(InvalidRequest):
        await resolve_query_text(QUERY_HELLO, {"persistedQuery": "abc"}, SpyCache())


async def test_requests_without_extension_pass_through():
    resolved = await resolve_query_text(QUERY_HELLO, {}, None)
    assert resolved.query == QUERY_HELLO
    assert not resolved.persisted_query_hit
    assert not resolved.persisted_query_register


async def test_ttl_is_forwarded_to_cache(schema):
    cache = SpyCache()
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=cache, ttl_s=300))

    await run(options, query=QUERY_HELLO, extensions=pq())
    await flush_pending_writes()

    assert cache.sets[0][2] == 300


async def test_async_write_failure_is_logged_not_raised(schema, caplog):
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=FailingSetCache()))

    with caplog.at_level(logging.WARNING, logger="gqlpipe.core.persisted_queries"):
        response = await run(options, query=QUERY_HELLO, extensions=pq())
        await flush_pending_writes()
        await asyncio.sleep(0)

    assert response.errors is None
    assert response.data == {"hello": "Hello, world!"}
    assert any("persisted query write failed" in r.getMessage() for r in caplog.records)


async def test_sync_write_failure_is_logged_not_raised(schema, caplog):
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=SyncFailingSetCache()))

    with caplog.at_level(logging.WARNING, logger="gqlpipe.core.persisted_queries"):
        response = await run(options, query=QUERY_HELLO, extensions=pq())

    assert response.errors is None
    assert any("persisted query write for" in r.getMessage() for r in caplog.records)


async def test_lookup_failure_counts_as_miss(schema):
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=FailingGetCache()))
    response = await run(options, extensions=pq())
    assert isinstance(response.errors[0], PersistedQueryNotFound)


async def test_slow_write_does_not_block_response(schema):
    cache = SlowSetCache()
    options = RequestOptions(schema=schema, persisted_queries=PersistedQueryOptions(cache=cache))

    response = await asyncio.wait_for(run(options, query=QUERY_HELLO, extensions=pq()), timeout=2)

    assert response.data == {"hello": "Hello, world!"}
    assert pending_write_count() >= 1
    assert cache.store == {}

    cache.release.set()
    await flush_pending_writes()
    assert len(cache.store) == 1
