# gqlpipe/datasources/rest.py
# SPDX-License-Identifier: Apache-2.0
"""
REST data source over httpx.

Subclass, set `base_url`, and call the verb helpers from resolvers:

    class BooksAPI(RESTDataSource):
        base_url = "https://books.example.com/v1/"

        async def book(self, book_id):
            return await self.get(f"books/{book_id}")

        def will_send_request(self, request):
            request.headers["authorization"] = self.context.get("token")

GET responses go through `HTTPCache`, so upstream Cache-Control headers
decide what is reused across requests sharing the same cache.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import httpx

from gqlpipe.config import Settings
from gqlpipe.core.cache import KeyValueCache
from gqlpipe.datasources.base import DataSource
from gqlpipe.datasources.http_cache import HTTPCache

LOG = logging.getLogger(__name__)

Params = Union[Mapping[str, Any], Sequence[Tuple[str, Any]], None]


class HTTPRequestError(Exception):
    """Upstream answered with a non-2xx status."""

    def __init__(self, response: httpx.Response):
        self.response = response
        self.status_code = response.status_code
        super().__init__(f"{response.status_code} {response.reason_phrase}: {response.text}")


class RESTDataSource(DataSource):
    """
    Args:
        client: Optional shared `httpx.AsyncClient`; the caller closes it.
        transport: Transport for the per-request client used when no
            shared client is given. That client is closed by `close`.
        settings: Process settings; development mode logs request timings.
    """

    base_url: str = ""

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._client = client
        self._transport = transport
        self._settings = settings
        self.http_cache: Optional[HTTPCache] = None

    def initialize(self, *, context: Any, cache: Optional[KeyValueCache] = None) -> None:
        super().initialize(context=context, cache=cache)
        self.http_cache = HTTPCache(cache, client=self._client, transport=self._transport)

    async def close(self) -> None:
        if self.http_cache is not None:
            await self.http_cache.aclose()

    def will_send_request(self, request: httpx.Request) -> None:
        """Hook to decorate outgoing requests (auth headers, tracing, ...)."""

    # ---- verbs --------------------------------------------------------------

    async def get(self, path: str, params: Params = None, **options: Any) -> Any:
        return await self._fetch("GET", path, params, **options)

    async def post(self, path: str, params: Params = None, **options: Any) -> Any:
        return await self._fetch("POST", path, params, **options)

    async def patch(self, path: str, params: Params = None, **options: Any) -> Any:
        return await self._fetch("PATCH", path, params, **options)

    async def put(self, path: str, params: Params = None, **options: Any) -> Any:
        return await self._fetch("PUT", path, params, **options)

    async def delete(self, path: str, params: Params = None, **options: Any) -> Any:
        return await self._fetch("DELETE", path, params, **options)

    # ---- internals ----------------------------------------------------------

    def resolve_url(self, path: str, params: Params = None) -> httpx.URL:
        """Join `path` onto `base_url`, appending `params` to any existing query."""
        url = httpx.URL(self.base_url).join(path) if self.base_url else httpx.URL(path)
        if params:
            items = params.items() if isinstance(params, Mapping) else params
            for name, value in items:
                url = url.copy_add_param(name, value)
        return url

    async def _fetch(self, method: str, path: str, params: Params, **options: Any) -> Any:
        if self.http_cache is None:
            # Used without the pipeline: no shared cache.
            self.http_cache = HTTPCache(None, client=self._client, transport=self._transport)

        url = self.resolve_url(path, params)
        request = self.http_cache.client.build_request(method, url, **options)
        self.will_send_request(request)

        t0 = time.monotonic()
        try:
            response = await self.http_cache.fetch(request)
        finally:
            if self._development():
                LOG.info("%s %s (%dms)", method, url, int((time.monotonic() - t0) * 1000))

        if not response.is_success:
            raise HTTPRequestError(response)

        content_type = response.headers.get("Content-Type", "")
        if content_type.startswith("application/json"):
            return response.json()
        return response.text

    def _development(self) -> bool:
        if self._settings is None:
            self._settings = Settings.from_env()
        return self._settings.is_development


__all__ = ["HTTPRequestError", "RESTDataSource"]
