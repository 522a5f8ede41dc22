# gqlpipe/core/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""
Request pipeline core: processor, persisted queries, instrumentation,
error taxonomy and the collaborator contracts (engine, cache, metrics).
"""

from gqlpipe.core.cache import InMemoryTTLCache, KeyValueCache, NoopCache
from gqlpipe.core.context import DATA_SOURCES_KEY, RequestContext, close_data_sources, initialize_context
from gqlpipe.core.engine import Engine, ExecutionArgs, GraphQLCoreEngine
from gqlpipe.core.errors import (
    CATEGORIES,
    ContextConfigurationError,
    ExecutionError,
    InvalidRequest,
    PersistedQueryNotFound,
    PersistedQueryNotSupported,
    QuerySyntaxError,
    QueryValidationError,
    RequestPipelineError,
    attach_context,
    classify,
    format_error,
    get_context,
)
from gqlpipe.core.instrumentation import (
    FieldInstrumentationMiddleware,
    InstrumentationParticipant,
    InstrumentationStack,
    RequestStartInfo,
)
from gqlpipe.core.metrics import MetricsSink, NoopMetrics, tenant_hash
from gqlpipe.core.persisted_queries import (
    PersistedQueryOptions,
    ResolvedQuery,
    compute_query_hash,
    flush_pending_writes,
    persisted_query_key,
    resolve_query_text,
)
from gqlpipe.core.processor import RequestOptions, RequestProcessor, process_request
from gqlpipe.core.types import UNSET, Request, Response

__all__ = [
    # Models
    "UNSET",
    "Request",
    "Response",
    # Errors
    "CATEGORIES",
    "RequestPipelineError",
    "QuerySyntaxError",
    "QueryValidationError",
    "InvalidRequest",
    "PersistedQueryNotSupported",
    "PersistedQueryNotFound",
    "ExecutionError",
    "ContextConfigurationError",
    "classify",
    "format_error",
    "attach_context",
    "get_context",
    # Collaborators
    "KeyValueCache",
    "NoopCache",
    "InMemoryTTLCache",
    "MetricsSink",
    "NoopMetrics",
    "tenant_hash",
    "Engine",
    "ExecutionArgs",
    "GraphQLCoreEngine",
    # Context
    "DATA_SOURCES_KEY",
    "RequestContext",
    "close_data_sources",
    "initialize_context",
    # Instrumentation
    "InstrumentationParticipant",
    "InstrumentationStack",
    "RequestStartInfo",
    "FieldInstrumentationMiddleware",
    # Persisted queries
    "PersistedQueryOptions",
    "ResolvedQuery",
    "compute_query_hash",
    "persisted_query_key",
    "resolve_query_text",
    "flush_pending_writes",
    # Processor
    "RequestOptions",
    "RequestProcessor",
    "process_request",
]
