# gqlpipe/core/cache.py
# SPDX-License-Identifier: Apache-2.0
"""
Key-value cache contract used by persisted queries and data sources.

The pipeline only relies on two async operations:

    get(key) -> Optional[str]
    set(key, value, ttl_s=None) -> None

Implementations must tolerate concurrent reads and concurrent idempotent
writes of the same key; the pipeline adds no locking of its own.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Optional, Protocol, Tuple, runtime_checkable

LOG = logging.getLogger(__name__)


@runtime_checkable
class KeyValueCache(Protocol):
    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_s: Optional[int] = None) -> None:
        ...


class NoopCache:
    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl_s: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryTTLCache:
    """
    Small in-process cache with optional TTL and LRU bound.

    Not process-safe and not distributed. Intended for development, tests and
    single-process deployments (the wire handler's "standalone" mode).

    Args:
        max_entries: Evict least-recently-used keys beyond this size (None = unbounded).
        default_ttl_s: TTL applied when `set` is called without one (None = no expiry).
    """

    def __init__(
        self,
        *,
        max_entries: Optional[int] = None,
        default_ttl_s: Optional[int] = None,
    ) -> None:
        self._max_entries = max(1, int(max_entries)) if max_entries is not None else None
        self._default_ttl_s = default_ttl_s
        self._store: "OrderedDict[str, Tuple[Optional[float], str]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._store)

    async def get(self, key: str) -> Optional[str]:
        item = self._store.get(key)
        if item is None:
            return None
        exp, val = item
        if exp is not None and time.monotonic() >= exp:
            self._store.pop(key, None)
            return None
        self._store.move_to_end(key)
        return val

    async def set(self, key: str, value: str, ttl_s: Optional[int] = None) -> None:
        ttl = ttl_s if ttl_s is not None else self._default_ttl_s
        exp = time.monotonic() + max(1, int(ttl)) if ttl is not None else None
        self._store[key] = (exp, value)
        self._store.move_to_end(key)
        if self._max_entries is not None:
            while len(self._store) > self._max_entries:
                evicted, _ = self._store.popitem(last=False)
                LOG.debug("InMemoryTTLCache evicted %s", evicted)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)


__all__ = ["KeyValueCache", "NoopCache", "InMemoryTTLCache"]
