# gqlpipe/datasources/http_cache.py
# SPDX-License-Identifier: Apache-2.0
"""
Response cache for outbound HTTP GETs.

Only responses that explicitly allow shared caching are stored:

    - method GET and status 200
    - Cache-Control carries a positive s-maxage or max-age
    - no no-store / no-cache / private directive

Entries live in a `KeyValueCache` under ``"httpcache:" + url`` as a JSON
string ``{"status", "headers", "body", "expires_at"}``, with ``body`` holding the
raw response bytes base64-encoded so any charset or binary payload replays
unchanged. The entry also carries its own expiry so caches that ignore TTLs
still serve fresh data only.

Cache failures are logged and never surface to the caller.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any, Dict, Optional

import httpx

from gqlpipe.core.cache import KeyValueCache

LOG = logging.getLogger(__name__)

HTTP_CACHE_KEY_PREFIX = "httpcache:"

_UNCACHEABLE = frozenset({"no-store", "no-cache", "private"})
# the body is stored decoded, so these no longer describe it
_BODY_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


def http_cache_key(url: str) -> str:
    return HTTP_CACHE_KEY_PREFIX + url


def parse_cache_control(value: Optional[str]) -> Dict[str, Optional[str]]:
    """``"public, max-age=60"`` -> ``{"public": None, "max-age": "60"}``"""
    out: Dict[str, Optional[str]] = {}
    if not value:
        return out
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        name, sep, arg = part.partition("=")
        out[name.strip().lower()] = arg.strip().strip('"') if sep else None
    return out


def cacheable_ttl(response: httpx.Response) -> Optional[int]:
    """Seconds the response may be cached for, or None."""
    if response.status_code != 200:
        return None
    directives = parse_cache_control(response.headers.get("Cache-Control"))
    if _UNCACHEABLE & directives.keys():
        return None
    for name in ("s-maxage", "max-age"):
        raw = directives.get(name)
        if raw is None:
            continue
        try:
            ttl = int(raw)
        except ValueError:
            return None
        return ttl if ttl > 0 else None
    return None


class HTTPCache:
    """
    Fetches through an httpx client, serving cacheable GETs from `cache`.

    Args:
        cache: Backing key-value cache; None disables caching.
        client: Shared `httpx.AsyncClient`; left open by `aclose`.
        transport: Transport for the client created when `client` is omitted.

    Without a shared client, one is created on first use and owned by this
    cache until `aclose`.
    """

    def __init__(
        self,
        cache: Optional[KeyValueCache] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._cache = cache
        self._client = client
        self._owns_client = client is None
        self._transport = transport

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, timeout=None)
        return self._client

    @property
    def has_open_client(self) -> bool:
        """True while a client created by this cache is still open."""
        return self._owns_client and self._client is not None and not self._client.is_closed

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    async def fetch(self, request: httpx.Request) -> httpx.Response:
        if self._cache is None or request.method != "GET":
            return await self.client.send(request)

        key = http_cache_key(str(request.url))
        cached = await self._read(key, request)
        if cached is not None:
            return cached

        response = await self.client.send(request)
        ttl = cacheable_ttl(response)
        if ttl is not None:
            await self._write(key, response, ttl)
        return response

    async def _read(self, key: str, request: httpx.Request) -> Optional[httpx.Response]:
        try:
            raw = await self._cache.get(key)
        except Exception:
            LOG.warning("http cache read failed for %s", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
            if entry.get("expires_at", 0) <= time.time():
                return None
            return httpx.Response(
                status_code=int(entry["status"]),
                headers=entry.get("headers") or {},
                content=base64.b64decode(entry.get("body", ""), validate=True),
                request=request,
            )
        except (ValueError, KeyError, TypeError, AttributeError):
            LOG.warning("discarding malformed http cache entry %s", key)
            return None

    async def _write(self, key: str, response: httpx.Response, ttl: int) -> None:
        entry: Dict[str, Any] = {
            "status": response.status_code,
            "headers": {
                k: v for k, v in response.headers.items() if k.lower() not in _BODY_HEADERS
            },
            "body": base64.b64encode(response.content).decode("ascii"),
            "expires_at": time.time() + ttl,
        }
        try:
            await self._cache.set(key, json.dumps(entry), ttl_s=ttl)
        except Exception:
            LOG.warning("http cache write failed for %s", key, exc_info=True)


__all__ = [
    "HTTP_CACHE_KEY_PREFIX",
    "HTTPCache",
    "cacheable_ttl",
    "http_cache_key",
    "parse_cache_control",
]
