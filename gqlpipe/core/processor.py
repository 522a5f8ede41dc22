# gqlpipe/core/processor.py
# SPDX-License-Identifier: Apache-2.0
"""
Request processor: one request through the staged pipeline.

    Start -> Parsing -> Validating -> ResolvingOperation -> Executing -> Formatting -> Done

    Every state before Done may move to Errored.

Stage semantics
---------------
- Start: resolve query text (persisted queries), reject empty text. Errors in
  this state are returned directly as a single-error Response; instrumentation
  is not started for requests that never had query text.
- Parsing / Validating / Executing run inside their instrumentation brackets;
  the bracket's finalizers run on every exit path.
- The first failing stage decides the response; later stages never run.
  Validation errors are reported together.
- Operation ambiguity is left to the executor, which reports it in the result.
- Field-level resolver errors stay in the execution result unclassified.
- The request bracket (`request_did_start` -> end) always closes, including
  on early returns.
- Data sources are closed once the response is built, on every exit path.

Construction performs context and data-source initialization, so
misconfiguration fails before any request is processed.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Union

from graphql import GraphQLSchema, OperationDefinitionNode

from gqlpipe.core.cache import KeyValueCache
from gqlpipe.core.context import (
    ContextInput,
    DataSourcesFactory,
    RequestContext,
    close_data_sources,
    initialize_context,
)
from gqlpipe.core.engine import Engine, ExecutionArgs, GraphQLCoreEngine
from gqlpipe.core.errors import (
    ExecutionError,
    InvalidRequest,
    PersistedQueryNotFound,
    QuerySyntaxError,
    QueryValidationError,
    RequestPipelineError,
    attach_context,
    classify,
)
from gqlpipe.core.instrumentation import (
    InstrumentationParticipant,
    InstrumentationStack,
    RequestStartInfo,
)
from gqlpipe.core.metrics import MetricsSink, NoopMetrics, tenant_hash
from gqlpipe.core.persisted_queries import PersistedQueryOptions, ResolvedQuery, resolve_query_text
from gqlpipe.core.types import Request, Response
from gqlpipe.extensions.cache_control import CacheControlOptions, CacheControlParticipant
from gqlpipe.extensions.tracing import TracingParticipant

LOG = logging.getLogger(__name__)

METRICS_COMPONENT = "graphql"

WillExecuteOperation = Callable[[OperationDefinitionNode], Union[None, Awaitable[None]]]
FormatResponse = Callable[[Response, RequestContext], Response]


@dataclass(frozen=True)
class RequestOptions:
    """
    Pipeline configuration shared by every processor built from it.

    Attributes:
        schema: Executable schema.
        context: Configured context (RequestContext or mapping); shallow-cloned per processor.
        root_value: Root value, or a callable ``f(document) -> root``.
        cache: General cache handed to data sources (and used for persisted
            queries when `persisted_queries.cache` is not set).
        data_sources: Factory returning ``{name: DataSource}``; called once per processor.
        validation_rules: Extra validation rules appended to the standard set.
        field_resolver: Default field resolver for the executor.
        debug: Include stack traces in serialized classified errors.
        extensions: Participant factories, instantiated once per processor.
        tracing: Enable the tracing participant.
        cache_control: True or `CacheControlOptions` to enable cache hints.
        persisted_queries: Enable persisted queries; None disables them.
        format_error: Per-error serializer used by transport bindings.
        format_response: ``f(response, context) -> response`` applied before sending.
        will_execute_operation: Called with the selected operation before execution.
        engine: Query-language engine (defaults to graphql-core).
        metrics: Metrics sink (defaults to a no-op sink).
    """
    schema: GraphQLSchema
    context: ContextInput = None
    root_value: Any = None
    cache: Optional[KeyValueCache] = None
    data_sources: Optional[DataSourcesFactory] = None
    validation_rules: Sequence[Any] = field(default_factory=tuple)
    field_resolver: Optional[Callable[..., Any]] = None
    debug: bool = False
    extensions: Sequence[Callable[[], InstrumentationParticipant]] = field(default_factory=tuple)
    tracing: bool = False
    cache_control: Any = None
    persisted_queries: Optional[PersistedQueryOptions] = None
    format_error: Optional[Callable[[BaseException], Dict[str, Any]]] = None
    format_response: Optional[FormatResponse] = None
    will_execute_operation: Optional[WillExecuteOperation] = None
    engine: Optional[Engine] = None
    metrics: Optional[MetricsSink] = None

    def persisted_query_cache(self) -> Optional[KeyValueCache]:
        if self.persisted_queries is None:
            return None
        cache = self.persisted_queries.cache
        return cache if cache is not None else self.cache


class RequestProcessor:
    """
    Processes a single logical request (or one batch item).

    Build one per request: the context is cloned and data sources are
    initialized at construction.

    Args:
        options: Shared pipeline configuration.
        will_execute_operation: Overrides `options.will_execute_operation`
            (transport bindings use it to restrict GET to queries).

    Raises:
        ContextConfigurationError: the configured context defines the
            reserved data-source slot.
    """

    def __init__(
        self,
        options: RequestOptions,
        *,
        will_execute_operation: Optional[WillExecuteOperation] = None,
    ) -> None:
        self.options = options
        self._engine: Engine = options.engine or GraphQLCoreEngine()
        self._metrics: MetricsSink = options.metrics or NoopMetrics()
        self.will_execute_operation = will_execute_operation or options.will_execute_operation
        self.cache_control = None

        self.context: RequestContext = initialize_context(
            options.context,
            data_sources=options.data_sources,
            cache=options.cache,
        )
        self.instrumentation = self._initialize_instrumentation()
        self.context.instrumentation = self.instrumentation

    def _initialize_instrumentation(self) -> InstrumentationStack:
        participants = [factory() for factory in self.options.extensions]
        if self.options.tracing:
            participants.append(TracingParticipant())
        cc = self.options.cache_control
        if cc:
            cc_options = cc if isinstance(cc, CacheControlOptions) else CacheControlOptions()
            self.cache_control = CacheControlParticipant(cc_options)
            participants.append(self.cache_control)
        return InstrumentationStack(participants)

    # ------------------------------------------------------------------ #
    # Pipeline
    # ------------------------------------------------------------------ #

    async def process_request(self, request: Request) -> Response:
        """Run `request` through the pipeline. Always returns a Response."""
        try:
            return await self._process(request)
        finally:
            await close_data_sources(self.context)

    async def _process(self, request: Request) -> Response:
        t0 = time.monotonic()
        metric_extra: Dict[str, Any] = {}

        try:
            resolved = await self._resolve_query(request)
        except RequestPipelineError as e:
            if isinstance(e, PersistedQueryNotFound):
                self._count("apq_misses")
            attach_context(e, stage="start", operation=request.operation_name)
            self._log_classified(e)
            self._record("request", t0, ok=False, code=e.code)
            return Response(errors=(e,))

        if resolved.persisted_query_hit:
            self._count("apq_hits")
        if resolved.persisted_query_register:
            self._count("apq_registers")
        metric_extra["apq_hit"] = resolved.persisted_query_hit
        metric_extra["apq_register"] = resolved.persisted_query_register

        info = RequestStartInfo(
            query_string=request.query,
            operation_name=request.operation_name,
            variables=request.variables,
            extensions=request.extensions,
            transport_metadata=request.transport_metadata,
            persisted_query_hit=resolved.persisted_query_hit,
            persisted_query_register=resolved.persisted_query_register,
        )

        with self.instrumentation.stage("request", info):
            response = await self._run(resolved.query, request, metric_extra)

        first = _first_classified(response)
        self._record(
            "request",
            t0,
            ok=first is None,
            code=first.code if first is not None else "OK",
            **metric_extra,
        )
        return response

    async def _resolve_query(self, request: Request) -> ResolvedQuery:
        pq = self.options.persisted_queries
        resolved = await resolve_query_text(
            request.query,
            request.extensions,
            self.options.persisted_query_cache(),
            ttl_s=pq.ttl_s if pq is not None else None,
        )
        if not resolved.query:
            raise InvalidRequest("Must provide query string.")
        return resolved

    async def _run(self, query: str, request: Request, metric_extra: Dict[str, Any]) -> Response:
        stack = self.instrumentation

        # ---- Parsing -------------------------------------------------------
        t0 = time.monotonic()
        try:
            with stack.stage("parsing", query):
                document = self._engine.parse(query)
        except Exception as e:
            err = self._fail("parse", t0, e, QuerySyntaxError, request)
            return self._will_send_response(Response(errors=(err,)))
        self._record("parse", t0, ok=True)

        # ---- Validating ----------------------------------------------------
        t0 = time.monotonic()
        try:
            with stack.stage("validation"):
                validation_errors = self._engine.validate(
                    self.options.schema, document, self.options.validation_rules
                )
        except Exception as e:
            err = self._fail("validate", t0, e, ExecutionError, request)
            return self._will_send_response(Response(errors=(err,)))

        if validation_errors:
            errors = tuple(classify(v, QueryValidationError) for v in validation_errors)
            for err in errors:
                attach_context(err, stage="validate", operation=request.operation_name)
                self._log_classified(err)
            self._record("validate", t0, ok=False, code=errors[0].code)
            return self._will_send_response(Response(errors=errors))
        self._record("validate", t0, ok=True)

        # ---- ResolvingOperation --------------------------------------------
        try:
            operation = self._engine.get_operation(document, request.operation_name)
            if operation is not None:
                metric_extra["operation"] = operation.operation.value
                if self.will_execute_operation is not None:
                    maybe = self.will_execute_operation(operation)
                    if inspect.isawaitable(maybe):
                        await maybe
        except Exception as e:
            err = classify(e, ExecutionError)
            attach_context(err, stage="resolve_operation", operation=request.operation_name)
            self._log_classified(err)
            return self._will_send_response(Response(errors=(err,)))

        # ---- Executing -----------------------------------------------------
        t0 = time.monotonic()
        try:
            args = self._execution_args(document, request)
            with stack.stage("execution", args):
                result = self._engine.execute(args)
                if inspect.isawaitable(result):
                    result = await result
        except Exception as e:
            err = self._fail("execute", t0, e, ExecutionError, request)
            return self._will_send_response(Response(errors=(err,)))
        self._record("execute", t0, ok=True)

        response = Response(
            data=result.data,
            errors=result.errors,
            extensions=result.extensions,
        )

        # ---- Formatting ----------------------------------------------------
        formatted = stack.format()
        if formatted:
            response = replace(response, extensions={**(response.extensions or {}), **formatted})

        if self.options.format_response is not None:
            response = self.options.format_response(response, self.context)

        return self._will_send_response(response)

    def _execution_args(self, document: Any, request: Request) -> ExecutionArgs:
        root_value = self.options.root_value
        if callable(root_value):
            root_value = root_value(document)

        middleware = []
        field_middleware = self.instrumentation.field_middleware()
        if field_middleware is not None:
            middleware.append(field_middleware)

        return ExecutionArgs(
            schema=self.options.schema,
            document=document,
            root_value=root_value,
            context_value=self.context,
            variable_values=dict(request.variables) if request.variables else None,
            operation_name=request.operation_name,
            field_resolver=self.options.field_resolver,
            middleware=tuple(middleware),
        )

    def _will_send_response(self, response: Response) -> Response:
        return self.instrumentation.will_send_response(response)

    # ------------------------------------------------------------------ #
    # Error / metrics helpers
    # ------------------------------------------------------------------ #

    def _fail(
        self,
        stage: str,
        t0: float,
        error: BaseException,
        error_class: type,
        request: Request,
    ) -> RequestPipelineError:
        err = classify(error, error_class)
        attach_context(err, stage=stage, operation=request.operation_name)
        self._log_classified(err)
        self._record(stage, t0, ok=False, code=err.code)
        return err

    def _log_classified(self, err: RequestPipelineError) -> None:
        if isinstance(err, ExecutionError):
            LOG.warning(
                "request failed: category=%s code=%s",
                err.category,
                err.code,
                exc_info=err.original_error or err,
            )
        else:
            LOG.debug("request rejected: category=%s code=%s", err.category, err.code)

    def _record(self, op: str, t0: float, ok: bool, *, code: str = "OK", **extra: Any) -> None:
        """
        Record stage latency. Never exposes raw tenant identifiers or query text.
        """
        try:
            dt_ms = (time.monotonic() - t0) * 1000.0
            x = dict(extra)
            th = tenant_hash(self.context.tenant)
            if th:
                x["tenant"] = th
            self._metrics.observe(
                component=METRICS_COMPONENT, op=op, ms=dt_ms, ok=ok, code=code, extra=x or None
            )
        except Exception:
            # Never let metrics recording break the request
            pass

    def _count(self, name: str) -> None:
        try:
            self._metrics.counter(component=METRICS_COMPONENT, name=name, value=1)
        except Exception:
            pass


def _first_classified(response: Response) -> Optional[RequestPipelineError]:
    for e in response.errors or ():
        if isinstance(e, RequestPipelineError):
            return e
    return None


async def process_request(options: RequestOptions, request: Union[Request, Mapping[str, Any]]) -> Response:
    """Convenience wrapper: one processor, one request."""
    if not isinstance(request, Request):
        request = Request.from_wire(request)
    return await RequestProcessor(options).process_request(request)


__all__ = [
    "METRICS_COMPONENT",
    "RequestOptions",
    "RequestProcessor",
    "process_request",
]
