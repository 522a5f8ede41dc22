# SPDX-License-Identifier: Apache-2.0
"""
Tracing participant (Apollo tracing format v1).
"""

from datetime import datetime

import pytest

from gqlpipe.core.processor import RequestOptions, RequestProcessor
from gqlpipe.core.types import Request
from gqlpipe.extensions.tracing import TRACING_VERSION, TracingParticipant


def parse_iso(value: str) -> datetime:
    assert value.endswith("Z")
    return datetime.fromisoformat(value[:-1] + "+00:00")


async def traced(schema, query: str):
    options = RequestOptions(schema=schema, tracing=True)
    return await RequestProcessor(options).process_request(Request(query=query))


@pytest.mark.asyncio
async def test_tracing_shape(schema):
    response = await traced(schema, "{ hello asyncHello }")
    tracing = response.extensions["tracing"]

    assert tracing["version"] == TRACING_VERSION == 1
    start, end = parse_iso(tracing["startTime"]), parse_iso(tracing["endTime"])
    assert end >= start
    assert tracing["duration"] >= 0

    for phase in ("parsing", "validation"):
        assert tracing[phase]["startOffset"] >= 0
        assert tracing[phase]["duration"] >= 0
    assert tracing["validation"]["startOffset"] >= tracing["parsing"]["startOffset"]


@pytest.mark.asyncio
async def test_resolver_entries(schema):
    response = await traced(schema, '{ hello book(id: "1") { title author { name } } }')
    resolvers = {tuple(r["path"]): r for r in response.extensions["tracing"]["execution"]["resolvers"]}

    assert set(resolvers) == {
        ("hello",),
        ("book",),
        ("book", "title"),
        ("book", "author"),
        ("book", "author", "name"),
    }
    hello = resolvers[("hello",)]
    assert hello["parentType"] == "Query"
    assert hello["fieldName"] == "hello"
    assert hello["returnType"] == "String"

    name = resolvers[("book", "author", "name")]
    assert name["parentType"] == "Author"
    assert name["returnType"] == "String!"
    assert all(r["startOffset"] >= 0 and r["duration"] >= 0 for r in resolvers.values())


@pytest.mark.asyncio
async def test_list_paths_include_indices(schema):
    response = await traced(schema, "{ books { id } }")
    paths = [r["path"] for r in response.extensions["tracing"]["execution"]["resolvers"]]
    assert ["books", 0, "id"] in paths
    assert ["books", 1, "id"] in paths


@pytest.mark.asyncio
async def test_tracing_disabled_by_default(options):
    response = await RequestProcessor(options).process_request(Request(query="{ hello }"))
    assert response.extensions is None


def test_unstarted_participant_formats_nothing():
    assert TracingParticipant().format() is None
