# SPDX-License-Identifier: Apache-2.0
"""
REST data source.

Asserts:
  • URLs are joined onto base_url and params appended
  • will_send_request can decorate outgoing requests
  • JSON / text decoding by content type
  • non-2xx -> HTTPRequestError carrying status and body
  • development mode logs request timings
  • resolvers reach the source through the pipeline, sharing the HTTP cache
  • per-request clients are closed when the request completes; shared clients stay open
"""

import json
import logging
from typing import List

import httpx
import pytest

from gqlpipe.config import Settings
from gqlpipe.core.cache import InMemoryTTLCache
from gqlpipe.core.context import RequestContext
from gqlpipe.core.processor import RequestOptions, RequestProcessor
from gqlpipe.core.types import Request
from gqlpipe.datasources.rest import HTTPRequestError, RESTDataSource


class Recorder:
    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/missing"):
            return httpx.Response(404, text="no such book")
        if path.endswith("/plain"):
            return httpx.Response(200, text="hello")
        if path.startswith("/v1/books/"):
            book_id = path.rsplit("/", 1)[-1]
            return httpx.Response(
                200,
                headers={"Cache-Control": "max-age=60"},
                json={"id": book_id, "title": f"Book {book_id}"},
            )
        return httpx.Response(200, json={"method": request.method, "body": request.content.decode() or None})


class BooksAPI(RESTDataSource):
    base_url = "https://books.example.com/v1/"

    def will_send_request(self, request: httpx.Request) -> None:
        token = self.context.get("token") if self.context is not None else None
        if token:
            request.headers["authorization"] = f"Bearer {token}"

    async def title(self, book_id: str) -> str:
        book = await self.get(f"books/{book_id}")
        return book["title"]


def make_source(recorder: Recorder, settings: Settings = None) -> BooksAPI:
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return BooksAPI(client=client, settings=settings or Settings())


def test_resolve_url_joins_and_appends_params():
    source = BooksAPI()
    url = source.resolve_url("books?sort=asc", {"limit": 5})
    assert str(url) == "https://books.example.com/v1/books?sort=asc&limit=5"

    url = source.resolve_url("books", [("tag", "a"), ("tag", "b")])
    assert url.params.get_list("tag") == ["a", "b"]


@pytest.mark.asyncio
async def test_get_decodes_json_and_decorates_request():
    recorder = Recorder()
    source = make_source(recorder)
    source.initialize(context=RequestContext(attrs={"token": "t0k"}))

    book = await source.get("books/1")

    assert book == {"id": "1", "title": "Book 1"}
    assert recorder.requests[0].headers["authorization"] == "Bearer t0k"
    assert str(recorder.requests[0].url) == "https://books.example.com/v1/books/1"


@pytest.mark.asyncio
async def test_text_responses_are_returned_as_text():
    source = make_source(Recorder())
    source.initialize(context=RequestContext())
    assert await source.get("plain") == "hello"


@pytest.mark.asyncio
@pytest.mark.parametrize("verb", ["post", "put", "patch", "delete"])
async def test_write_verbs(verb):
    recorder = Recorder()
    source = make_source(recorder)
    source.initialize(context=RequestContext())

    options = {"json": {"title": "Ubik"}} if verb != "delete" else {}
    result = await getattr(source, verb)("books", **options)

    assert result["method"] == verb.upper()
    if verb != "delete":
        assert json.loads(result["body"]) == {"title": "Ubik"}


@pytest.mark.asyncio
async def test_error_status_raises_with_details():
    source = make_source(Recorder())
    source.initialize(context=RequestContext())

    with pytest.raises(HTTPRequestError) as info:
        await source.get("missing")

    assert info.value.status_code == 404
    assert str(info.value) == "404 Not Found: no such book"


@pytest.mark.asyncio
async def test_development_mode_logs_timings(caplog):
    source = make_source(Recorder(), Settings(environment="development"))
    source.initialize(context=RequestContext())

    with caplog.at_level(logging.INFO, logger="gqlpipe.datasources.rest"):
        await source.get("books/2")

    assert any(r.getMessage().startswith("GET https://books.example.com/v1/books/2 (") for r in caplog.records)


@pytest.mark.asyncio
async def test_production_mode_is_quiet(caplog):
    source = make_source(Recorder(), Settings())
    source.initialize(context=RequestContext())

    with caplog.at_level(logging.INFO, logger="gqlpipe.datasources.rest"):
        await source.get("books/2")

    assert not [r for r in caplog.records if r.name == "gqlpipe.datasources.rest"]


@pytest.mark.asyncio
async def test_usable_without_initialize():
    source = make_source(Recorder())
    assert await source.get("plain") == "hello"


@pytest.mark.asyncio
async def test_pipeline_requests_share_http_cache(schema):
    recorder = Recorder()
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    options = RequestOptions(
        schema=schema,
        cache=InMemoryTTLCache(),
        data_sources=lambda: {"books": BooksAPI(client=client, settings=Settings())},
    )

    for _ in range(2):
        response = await RequestProcessor(options).process_request(Request(query='{ bookTitle(id: "7") }'))
        assert response.errors is None
        assert response.data == {"bookTitle": "Book 7"}

    assert len(recorder.requests) == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_pipeline_closes_per_request_clients(schema):
    recorder = Recorder()
    sources: List[BooksAPI] = []

    def factory():
        source = BooksAPI(transport=httpx.MockTransport(recorder), settings=Settings())
        sources.append(source)
        return {"books": source}

    options = RequestOptions(schema=schema, data_sources=factory)
    for i in range(5):
        response = await RequestProcessor(options).process_request(Request(query=f'{{ bookTitle(id: "{i}") }}'))
        assert response.data == {"bookTitle": f"Book {i}"}

    assert len(sources) == 5
    assert len(recorder.requests) == 5
    assert not any(s.http_cache.has_open_client for s in sources)


@pytest.mark.asyncio
async def test_pipeline_leaves_shared_client_open(schema):
    client = httpx.AsyncClient(transport=httpx.MockTransport(Recorder()))
    options = RequestOptions(
        schema=schema,
        data_sources=lambda: {"books": BooksAPI(client=client, settings=Settings())},
    )

    await RequestProcessor(options).process_request(Request(query='{ bookTitle(id: "1") }'))

    assert not client.is_closed
    await client.aclose()


@pytest.mark.asyncio
async def test_close_releases_client_created_without_initialize():
    source = BooksAPI(transport=httpx.MockTransport(Recorder()), settings=Settings())
    assert await source.get("plain") == "hello"
    assert source.http_cache.has_open_client

    await source.close()

    assert not source.http_cache.has_open_client
