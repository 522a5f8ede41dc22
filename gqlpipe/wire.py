# gqlpipe/wire.py
# SPDX-License-Identifier: Apache-2.0
"""
Wire-level binding (transport agnostic).

Turns a decoded JSON payload into ``WireResponse(status, body, headers)`` so
any HTTP framework (or queue, or socket) can serve the pipeline:

    handler = WireRequestHandler(RequestOptions(schema=schema))
    resp = await handler.handle(json.loads(body))               # POST
    resp = await handler.handle_get(dict(request.query_params)) # GET

Status mapping
--------------
    SyntaxError, ValidationError, InvalidRequest          -> 400
    PersistedQueryNotSupported, PersistedQueryNotFound    -> 200
    ExecutionError                                        -> 500
    anything else (incl. field-level errors)              -> 200

Persisted-query errors answer 200 because APQ clients read the body and retry
with the full query text.

Batches (JSON arrays) run one processor per item, concurrently; the batch
answers 200 unless every item failed.

Modes
-----
    thin        wire nothing implicitly (deploy behind your own infra)
    standalone  provide an in-process persisted-query cache when none is
                configured; warn when no metrics sink is supplied
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from graphql import OperationDefinitionNode, OperationType
from jsonschema import Draft202012Validator

from gqlpipe.config import MODES, Settings
from gqlpipe.core.cache import InMemoryTTLCache
from gqlpipe.core.context import initialize_context
from gqlpipe.core.errors import InvalidRequest, RequestPipelineError, format_error
from gqlpipe.core.persisted_queries import PersistedQueryOptions
from gqlpipe.core.processor import RequestOptions, RequestProcessor
from gqlpipe.core.types import Request, Response

LOG = logging.getLogger(__name__)

STANDALONE_APQ_MAX_ENTRIES = 10_000

REQUEST_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://gqlpipe.dev/schemas/request.json",
    "type": "object",
    "properties": {
        "query": {"type": ["string", "null"]},
        "operationName": {"type": ["string", "null"]},
        "variables": {"type": ["object", "null"]},
        "extensions": {
            "type": ["object", "null"],
            "properties": {
                "persistedQuery": {"type": "object"},
            },
        },
    },
}

RESPONSE_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://gqlpipe.dev/schemas/response.json",
    "type": "object",
    "properties": {
        "data": {"type": ["object", "null"]},
        "errors": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["message"],
                "properties": {
                    "message": {"type": "string"},
                    "category": {"type": "string"},
                    "locations": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["line", "column"],
                            "properties": {
                                "line": {"type": "integer"},
                                "column": {"type": "integer"},
                            },
                        },
                    },
                    "path": {"type": "array", "items": {"type": ["string", "integer"]}},
                    "extensions": {"type": "object"},
                },
            },
        },
        "extensions": {"type": "object"},
    },
    "additionalProperties": False,
}

_STATUS_BY_CATEGORY: Dict[str, int] = {
    "SyntaxError": 400,
    "ValidationError": 400,
    "InvalidRequest": 400,
    "PersistedQueryNotSupported": 200,
    "PersistedQueryNotFound": 200,
    "ExecutionError": 500,
}


def status_for_category(category: Optional[str]) -> int:
    return _STATUS_BY_CATEGORY.get(category or "", 200)


def status_for_response(response: Response) -> int:
    """Status of the first classified error, else 200."""
    for e in response.errors or ():
        if isinstance(e, RequestPipelineError):
            return status_for_category(e.category)
    return 200


@dataclass(frozen=True)
class WireResponse:
    status: int
    body: Any
    headers: Dict[str, str] = field(default_factory=lambda: {"Content-Type": "application/json"})

    def json(self) -> str:
        return json.dumps(self.body)


def request_from_query_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Decode GET query parameters into a wire payload.

    `variables` and `extensions` arrive as JSON strings.

    Raises:
        InvalidRequest: a JSON parameter does not decode to an object.
    """
    payload: Dict[str, Any] = {}
    for key in ("query", "operationName"):
        if params.get(key) is not None:
            payload[key] = params[key]
    for key in ("variables", "extensions"):
        raw = params.get(key)
        if raw is None or raw == "":
            continue
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise InvalidRequest(f"{key} is not valid JSON") from e
        if not isinstance(raw, Mapping):
            raise InvalidRequest(f"{key} must be a JSON object")
        payload[key] = dict(raw)
    return payload


def _query_operations_only(operation: OperationDefinitionNode) -> None:
    if operation.operation is not OperationType.QUERY:
        raise InvalidRequest(
            f"GET supports only query operations, not {operation.operation.value}"
        )


class WireRequestHandler:
    """
    Reference wire adapter for the request pipeline.

    Args:
        options: Pipeline configuration; one `RequestProcessor` is built per request.
        mode: "thin" or "standalone" (defaults to `Settings.mode`).
        settings: Process settings (defaults to `Settings.from_env()`).

    Raises:
        ValueError: unknown mode.
        ContextConfigurationError: the configured context defines the
            reserved data-source slot.
    """

    def __init__(
        self,
        options: RequestOptions,
        *,
        mode: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or Settings.from_env()
        self.mode = mode or self._settings.mode
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}, got {self.mode!r}")

        if options.data_sources is not None:
            # Fail at startup rather than on the first request.
            initialize_context(options.context, data_sources=dict)

        if self.mode == "standalone":
            if options.persisted_query_cache() is None:
                ttl = self._settings.apq_ttl_s
                options = replace(
                    options,
                    persisted_queries=PersistedQueryOptions(
                        cache=InMemoryTTLCache(
                            max_entries=STANDALONE_APQ_MAX_ENTRIES, default_ttl_s=ttl
                        ),
                        ttl_s=ttl,
                    ),
                )
            if options.metrics is None:
                LOG.warning("standalone mode without a metrics sink; metrics are discarded")

        self.options = options
        self._validator = Draft202012Validator(REQUEST_SCHEMA)

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    async def handle(
        self,
        payload: Any,
        *,
        method: str = "POST",
        transport_metadata: Any = None,
    ) -> WireResponse:
        """Handle a single request object or a batch array."""
        if isinstance(payload, list):
            return await self._handle_batch(payload, method=method, transport_metadata=transport_metadata)
        return await self._handle_one(payload, method=method, transport_metadata=transport_metadata)

    async def handle_get(self, params: Mapping[str, Any], *, transport_metadata: Any = None) -> WireResponse:
        """Handle a GET request from its query parameters. Only query operations run."""
        try:
            payload = request_from_query_params(params)
        except RequestPipelineError as e:
            return self._error_response(e)
        return await self._handle_one(payload, method="GET", transport_metadata=transport_metadata)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def parse_payload(self, payload: Any, *, transport_metadata: Any = None) -> Request:
        if not isinstance(payload, Mapping):
            raise InvalidRequest("request body must be a JSON object or array")
        errors = sorted(self._validator.iter_errors(payload), key=lambda e: list(e.path))
        if errors:
            first = errors[0]
            where = ".".join(str(p) for p in first.path) or "request"
            raise InvalidRequest(f"invalid {where}: {first.message}")
        return Request.from_wire(payload, transport_metadata=transport_metadata)

    async def _handle_one(self, payload: Any, *, method: str, transport_metadata: Any) -> WireResponse:
        try:
            request = self.parse_payload(payload, transport_metadata=transport_metadata)
        except RequestPipelineError as e:
            return self._error_response(e)

        will_execute = _query_operations_only if method.upper() == "GET" else None
        processor = RequestProcessor(self.options, will_execute_operation=will_execute)
        response = await processor.process_request(request)

        headers = {"Content-Type": "application/json"}
        if processor.cache_control is not None and not response.errors:
            header = processor.cache_control.http_header()
            if header:
                headers["Cache-Control"] = header

        return WireResponse(
            status=status_for_response(response),
            body=response.to_dict(format_error=self._format_error),
            headers=headers,
        )

    async def _handle_batch(self, payload: List[Any], *, method: str, transport_metadata: Any) -> WireResponse:
        if not payload:
            return self._error_response(InvalidRequest("Received an empty batch"))
        results = await asyncio.gather(
            *(self._handle_one(item, method=method, transport_metadata=transport_metadata) for item in payload)
        )
        failed = [r for r in results if r.status != 200]
        status = failed[0].status if len(failed) == len(results) else 200
        return WireResponse(status=status, body=[r.body for r in results])

    def _format_error(self, error: BaseException) -> Dict[str, Any]:
        if self.options.format_error is not None:
            return self.options.format_error(error)
        return format_error(error, debug=self.options.debug)

    def _error_response(self, error: RequestPipelineError) -> WireResponse:
        LOG.debug("rejected wire request: %s", error)
        return WireResponse(
            status=status_for_category(error.category),
            body=Response(errors=(error,)).to_dict(format_error=self._format_error),
        )


__all__ = [
    "REQUEST_SCHEMA",
    "RESPONSE_SCHEMA",
    "WireResponse",
    "WireRequestHandler",
    "request_from_query_params",
    "status_for_category",
    "status_for_response",
]
