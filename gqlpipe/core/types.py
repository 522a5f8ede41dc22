# gqlpipe/core/types.py
# SPDX-License-Identifier: Apache-2.0
"""
Request / response models for the pipeline.

Both mirror the transport-agnostic wire shape:

    Request:
        {
            "query": "...",                 # optional when a persisted hash is sent
            "operationName": "...",
            "variables": { ... },
            "extensions": {
                "persistedQuery": {"version": 1, "sha256Hash": "<hex>"}
            }
        }

    Response:
        {
            "data": { ... },                # absent when the request never executed
            "errors": [ ... ],              # classified and/or field-level errors
            "extensions": { ... }
        }
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from gqlpipe.core.errors import format_error as _format_error


class _Unset:
    """Marker for a response that carries no ``data`` key at all."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class Request:
    """
    A single query-language request.

    Attributes:
        query: Query text; may be None when a persisted-query hash is supplied.
        operation_name: Operation to run when the document holds several.
        variables: Variable values keyed by variable name.
        extensions: Protocol extensions (e.g. ``persistedQuery``).
        transport_metadata: Opaque transport object (HTTP request, headers, ...).
    """
    query: Optional[str] = None
    operation_name: Optional[str] = None
    variables: Mapping[str, Any] = None
    extensions: Mapping[str, Any] = None
    transport_metadata: Any = None

    def __post_init__(self) -> None:
        if self.variables is None:
            object.__setattr__(self, "variables", {})
        if self.extensions is None:
            object.__setattr__(self, "extensions", {})

    @property
    def persisted_query(self) -> Any:
        """The raw ``extensions.persistedQuery`` value, if present."""
        if isinstance(self.extensions, Mapping):
            return self.extensions.get("persistedQuery")
        return None

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any], *, transport_metadata: Any = None) -> "Request":
        """Build a Request from a decoded wire payload (camelCase keys). Unknown keys are ignored."""
        return cls(
            query=payload.get("query"),
            operation_name=payload.get("operationName"),
            variables=payload.get("variables") or {},
            extensions=payload.get("extensions") or {},
            transport_metadata=transport_metadata,
        )


@dataclass(frozen=True)
class Response:
    """
    Result handed back to the transport.

    `errors` preserves order. Entries are either classified
    `RequestPipelineError` instances or the engine's own field errors.
    """
    data: Any = UNSET
    errors: Optional[Tuple[BaseException, ...]] = None
    extensions: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        if self.errors is not None:
            object.__setattr__(self, "errors", tuple(self.errors) or None)

    @property
    def has_data(self) -> bool:
        return self.data is not UNSET

    def to_dict(
        self,
        *,
        format_error: Optional[Callable[[BaseException], Dict[str, Any]]] = None,
        debug: bool = False,
    ) -> Dict[str, Any]:
        """
        Serialize to the wire shape.

        Args:
            format_error: Optional per-error formatter; receives the error
                object and returns its wire dict.
            debug: Include stack traces on classified errors.
        """
        out: Dict[str, Any] = {}
        if self.errors:
            if format_error is not None:
                out["errors"] = [format_error(e) for e in self.errors]
            else:
                out["errors"] = [_format_error(e, debug=debug) for e in self.errors]
        if self.has_data:
            out["data"] = self.data
        if self.extensions:
            out["extensions"] = dict(self.extensions)
        return out


__all__ = ["UNSET", "Request", "Response"]
