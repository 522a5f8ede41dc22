# gqlpipe/core/errors.py
# SPDX-License-Identifier: Apache-2.0
"""
Normalized error taxonomy for the request pipeline.

Every failure the pipeline itself detects is converted into a subclass of
`RequestPipelineError` before it leaves the processor. Each class carries a
stable `category` (transport independent, used by bindings to pick a status)
and a machine-readable UPPER_SNAKE_CASE `code`.

    Category                      Trigger
    ----------------------------  -------------------------------------------
    SyntaxError                   parser rejects query text
    ValidationError               validator reports rule violations
    InvalidRequest                malformed persisted-query usage, no query
    PersistedQueryNotSupported    hash extension used without a cache
    PersistedQueryNotFound        hash miss with no accompanying text
    ExecutionError                uncaught exception during execution

Field-level resolver errors are NOT classified: the engine embeds them in the
execution result and they are passed through untouched, so consumers can
tell protocol failures from partial application failures.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence, Type, Union

from graphql import GraphQLError

LOG = logging.getLogger(__name__)

_CONTEXT_ATTR = "__gqlpipe_context__"


class RequestPipelineError(Exception):
    """
    Base exception for classified pipeline errors.

    Attributes:
        message: Human-readable description (never rewritten by classification).
        code: Machine-readable, UPPER_SNAKE_CASE error code.
        locations: Optional source locations as ``[{"line": int, "column": int}]``.
        path: Optional response path of the failing field.
        extensions: Additional machine context merged into the wire error.
        original_error: The engine or resolver exception this was built from.
    """

    category: str = "InternalError"
    default_code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = ""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        locations: Optional[Sequence[Mapping[str, int]]] = None,
        path: Optional[Sequence[Union[str, int]]] = None,
        extensions: Optional[Mapping[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        message = message if message is not None else (self.default_message or self.category)
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.locations = [dict(loc) for loc in locations] if locations else None
        self.path = list(path) if path else None
        self.extensions = dict(extensions or {})
        self.original_error = original_error

    def __str__(self) -> str:
        base = self.message or self.__class__.__name__
        if self.code:
            base += f" [code={self.code}]"
        if self.path:
            base += f" path={self.path}"
        return base

    def to_dict(self, *, debug: bool = False) -> Dict[str, Any]:
        """Serialize to the wire error shape ``{message, category, locations?, path?, extensions}``."""
        out: Dict[str, Any] = {"message": self.message, "category": self.category}
        if self.locations:
            out["locations"] = [dict(loc) for loc in self.locations]
        if self.path:
            out["path"] = list(self.path)
        extensions: Dict[str, Any] = {"code": self.code}
        extensions.update(self.extensions)
        if debug:
            source = self.original_error or self
            extensions["exception"] = {
                "stacktrace": _stacktrace(source),
            }
        out["extensions"] = extensions
        return out


class QuerySyntaxError(RequestPipelineError):
    """Parser rejected the query text."""
    category = "SyntaxError"
    default_code = "GRAPHQL_PARSE_FAILED"


class QueryValidationError(RequestPipelineError):
    """Validator reported a rule violation."""
    category = "ValidationError"
    default_code = "GRAPHQL_VALIDATION_FAILED"


class InvalidRequest(RequestPipelineError):
    """Malformed request: missing query text or bad persisted-query usage."""
    category = "InvalidRequest"
    default_code = "BAD_REQUEST"


class PersistedQueryNotSupported(RequestPipelineError):
    """A persisted-query extension was sent but no cache is configured."""
    category = "PersistedQueryNotSupported"
    default_code = "PERSISTED_QUERY_NOT_SUPPORTED"
    default_message = "PersistedQueryNotSupported"


class PersistedQueryNotFound(RequestPipelineError):
    """Hash-only request whose hash is not in the cache."""
    category = "PersistedQueryNotFound"
    default_code = "PERSISTED_QUERY_NOT_FOUND"
    default_message = "PersistedQueryNotFound"


class ExecutionError(RequestPipelineError):
    """Uncaught exception while running the engine (not a field-level error)."""
    category = "ExecutionError"
    default_code = "INTERNAL_SERVER_ERROR"


class ContextConfigurationError(ValueError):
    """
    Raised at processor construction when the configured context is unusable,
    e.g. it already defines the reserved data-source slot.
    """


CATEGORIES: Dict[str, Type[RequestPipelineError]] = {
    cls.category: cls
    for cls in (
        QuerySyntaxError,
        QueryValidationError,
        InvalidRequest,
        PersistedQueryNotSupported,
        PersistedQueryNotFound,
        ExecutionError,
    )
}


# =============================================================================
# Classification
# =============================================================================

def classify(
    error: BaseException,
    error_class: Type[RequestPipelineError] = ExecutionError,
) -> RequestPipelineError:
    """
    Convert an engine error into a classified pipeline error.

    Already-classified errors are returned unchanged. For `GraphQLError`
    instances the locations, path and extensions are carried over, and the
    underlying `original_error` (if any) is kept for debugging.
    """
    if isinstance(error, RequestPipelineError):
        return error

    message = getattr(error, "message", None) or str(error) or type(error).__name__
    locations: Optional[List[Dict[str, int]]] = None
    path = None
    extensions: Mapping[str, Any] = {}
    original: BaseException = error

    if isinstance(error, GraphQLError):
        if error.locations:
            locations = [{"line": loc.line, "column": loc.column} for loc in error.locations]
        path = error.path
        extensions = error.extensions or {}
        if error.original_error is not None:
            original = error.original_error

    classified = error_class(
        message,
        locations=locations,
        path=path,
        extensions=extensions,
        original_error=original,
    )
    classified.__cause__ = error
    return classified


def format_error(error: BaseException, *, debug: bool = False) -> Dict[str, Any]:
    """
    Serialize any response error.

    Classified errors use `RequestPipelineError.to_dict`; engine field errors
    use graphql-core's own formatting so they stay uncategorized.
    """
    if isinstance(error, RequestPipelineError):
        return error.to_dict(debug=debug)
    if isinstance(error, GraphQLError):
        return dict(error.formatted)
    return {"message": str(error) or type(error).__name__}


def _stacktrace(error: BaseException) -> List[str]:
    lines: List[str] = []
    for chunk in traceback.format_exception(type(error), error, error.__traceback__):
        lines.extend(chunk.rstrip("\n").split("\n"))
    return lines


# =============================================================================
# Error context
# =============================================================================

def attach_context(exc: BaseException, stage: str, **context: Any) -> None:
    """
    Attach debugging context to an exception without touching its message.

    Contexts merge across calls; the first `stage` recorded wins so the
    innermost layer is reported. Keep values SIEM-safe (no query text, no raw
    tenant identifiers).
    """
    try:
        merged: MutableMapping[str, Any] = {}
        existing = getattr(exc, _CONTEXT_ATTR, None)
        if isinstance(existing, Mapping):
            merged.update(existing)
        merged.setdefault("stage", stage)
        merged.update(context)
        setattr(exc, _CONTEXT_ATTR, merged)
    except Exception as attach_error:  # noqa: BLE001
        LOG.debug("Failed to attach error context: %s", attach_error, extra={"stage": stage})


def get_context(exc: BaseException) -> Dict[str, Any]:
    """Return the context attached by `attach_context` (empty dict if none)."""
    ctx = getattr(exc, _CONTEXT_ATTR, None)
    return dict(ctx) if isinstance(ctx, Mapping) else {}


__all__ = [
    "RequestPipelineError",
    "QuerySyntaxError",
    "QueryValidationError",
    "InvalidRequest",
    "PersistedQueryNotSupported",
    "PersistedQueryNotFound",
    "ExecutionError",
    "ContextConfigurationError",
    "CATEGORIES",
    "classify",
    "format_error",
    "attach_context",
    "get_context",
]
