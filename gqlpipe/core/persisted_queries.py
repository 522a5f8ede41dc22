# gqlpipe/core/persisted_queries.py
# SPDX-License-Identifier: Apache-2.0
"""
Automatic persisted queries (APQ).

Clients may send a content hash instead of the full query text once the text
has been registered:

    {"extensions": {"persistedQuery": {"version": 1, "sha256Hash": "<hex>"}}}

Resolution rules, checked in order:

    1. No cache configured                -> PersistedQueryNotSupported
    2. version != 1                       -> InvalidRequest
    3. No query text: cache lookup        -> hit (text) | PersistedQueryNotFound
    4. Query text present: sha256(text)   -> mismatch InvalidRequest
                                             match: register (detached write)

Registration writes are started but never awaited by the request. A failing
or slow cache only produces a warning log. `flush_pending_writes()` awaits
whatever is still in flight (tests, graceful shutdown).
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Set

from gqlpipe.core.cache import KeyValueCache
from gqlpipe.core.errors import (
    InvalidRequest,
    PersistedQueryNotFound,
    PersistedQueryNotSupported,
)

LOG = logging.getLogger(__name__)

APQ_KEY_PREFIX = "apq:"
SUPPORTED_VERSION = 1

_PENDING_WRITES: Set["asyncio.Future[Any]"] = set()


@dataclass(frozen=True)
class PersistedQueryOptions:
    """
    Persisted-query configuration.

    Attributes:
        cache: Dedicated cache for query texts. When None the processor's
            general cache is used.
        ttl_s: Expiry passed to `cache.set` for registered queries (None = cache default).
    """
    cache: Optional[KeyValueCache] = None
    ttl_s: Optional[int] = None


@dataclass(frozen=True)
class ResolvedQuery:
    """Final query text plus the APQ path flags surfaced to instrumentation."""
    query: Optional[str]
    persisted_query_hit: bool = False
    persisted_query_register: bool = False


def compute_query_hash(query: str) -> str:
    """Lowercase hex sha256 of the UTF-8 query text. Hash comparison is exact."""
    return hashlib.sha256(query.encode("utf-8")).hexdigest()


def persisted_query_key(sha256_hash: str) -> str:
    return APQ_KEY_PREFIX + sha256_hash


async def resolve_query_text(
    query: Optional[str],
    extensions: Optional[Mapping[str, Any]],
    cache: Optional[KeyValueCache],
    *,
    ttl_s: Optional[int] = None,
) -> ResolvedQuery:
    """
    Determine the query text for a request.

    Requests without ``extensions.persistedQuery`` pass through unchanged.

    Raises:
        PersistedQueryNotSupported, PersistedQueryNotFound, InvalidRequest
    """
    pq = extensions.get("persistedQuery") if isinstance(extensions, Mapping) else None
    if pq is None:
        return ResolvedQuery(query=query)

    if cache is None:
        raise PersistedQueryNotSupported()

    if not isinstance(pq, Mapping):
        raise InvalidRequest("persistedQuery extension must be an object")

    version = pq.get("version")
    # bool is an int subclass; True must not pass as version 1
    if isinstance(version, bool) or version != SUPPORTED_VERSION:
        raise InvalidRequest("Unsupported persisted query version")

    sha = pq.get("sha256Hash")
    if not isinstance(sha, str) or not sha:
        raise InvalidRequest("persistedQuery.sha256Hash must be a non-empty string")

    key = persisted_query_key(sha)

    if query is None:
        try:
            cached = await cache.get(key)
        except Exception:
            LOG.warning("persisted query lookup failed; treating as miss", exc_info=True)
            cached = None
        if not cached:
            raise PersistedQueryNotFound()
        return ResolvedQuery(query=cached, persisted_query_hit=True)

    if compute_query_hash(query) != sha:
        raise InvalidRequest("provided sha does not match query")

    schedule_write(cache, key, query, ttl_s=ttl_s)
    return ResolvedQuery(query=query, persisted_query_register=True)


# =============================================================================
# Detached write-back
# =============================================================================

def schedule_write(
    cache: KeyValueCache,
    key: str,
    value: str,
    *,
    ttl_s: Optional[int] = None,
) -> Optional["asyncio.Future[Any]"]:
    """
    Start a best-effort cache write without awaiting it.

    Returns the scheduled future, or None when the cache failed synchronously.
    """
    try:
        if ttl_s is not None:
            fut = asyncio.ensure_future(cache.set(key, value, ttl_s=ttl_s))
        else:
            fut = asyncio.ensure_future(cache.set(key, value))
    except Exception:
        # cache.set may raise before returning an awaitable
        LOG.warning("persisted query write for %s failed", key, exc_info=True)
        return None

    _PENDING_WRITES.add(fut)
    fut.add_done_callback(_write_done)
    return fut


def _write_done(fut: "asyncio.Future[Any]") -> None:
    _PENDING_WRITES.discard(fut)
    if fut.cancelled():
        LOG.debug("persisted query write cancelled")
        return
    exc = fut.exception()
    if exc is not None:
        LOG.warning("persisted query write failed: %s", exc, exc_info=exc)


def pending_write_count() -> int:
    return len(_PENDING_WRITES)


async def flush_pending_writes() -> None:
    """Await all detached persisted-query writes started on this loop."""
    loop = asyncio.get_running_loop()
    while True:
        pending = [f for f in _PENDING_WRITES if f.get_loop() is loop and not f.done()]
        if not pending:
            return
        await asyncio.gather(*pending, return_exceptions=True)


__all__ = [
    "APQ_KEY_PREFIX",
    "PersistedQueryOptions",
    "ResolvedQuery",
    "compute_query_hash",
    "persisted_query_key",
    "resolve_query_text",
    "schedule_write",
    "pending_write_count",
    "flush_pending_writes",
]
