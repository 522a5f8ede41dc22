# SPDX-License-Identifier: Apache-2.0
"""
Request / Response wire models.
"""

from graphql import GraphQLError

from gqlpipe.core.errors import QuerySyntaxError
from gqlpipe.core.types import UNSET, Request, Response


def test_request_defaults():
    req = Request(query="{ a }")
    assert req.variables == {}
    assert req.extensions == {}
    assert req.persisted_query is None


def test_request_from_wire_uses_camel_case():
    req = Request.from_wire(
        {
            "query": "{ a }",
            "operationName": "Op",
            "variables": {"x": 1},
            "extensions": {"persistedQuery": {"version": 1, "sha256Hash": "abc"}},
            "unknown": True,
        },
        transport_metadata="meta",
    )
    assert req.operation_name == "Op"
    assert req.variables == {"x": 1}
    assert req.persisted_query == {"version": 1, "sha256Hash": "abc"}
    assert req.transport_metadata == "meta"


def test_request_from_wire_tolerates_nulls():
    req = Request.from_wire({"query": None, "variables": None, "extensions": None})
    assert req.query is None
    assert req.variables == {}
    assert req.extensions == {}


def test_response_without_data_omits_key():
    resp = Response(errors=[QuerySyntaxError("bad")])
    assert not resp.has_data
    assert resp.data is UNSET
    assert not UNSET
    wire = resp.to_dict()
    assert "data" not in wire
    assert wire["errors"][0]["category"] == "SyntaxError"


def test_response_with_null_data_keeps_key():
    resp = Response(data=None, errors=[GraphQLError("Must provide operation name")])
    assert resp.has_data
    assert resp.to_dict()["data"] is None


def test_empty_errors_normalize_to_none():
    resp = Response(data={"a": 1}, errors=[])
    assert resp.errors is None
    assert resp.to_dict() == {"data": {"a": 1}}


def test_custom_error_formatter():
    resp = Response(errors=[QuerySyntaxError("bad")])
    wire = resp.to_dict(format_error=lambda e: {"message": "redacted"})
    assert wire["errors"] == [{"message": "redacted"}]


def test_extensions_are_serialized():
    resp = Response(data={}, extensions={"tracing": {"version": 1}})
    assert resp.to_dict()["extensions"] == {"tracing": {"version": 1}}
