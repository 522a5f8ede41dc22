# gqlpipe/core/context.py
# SPDX-License-Identifier: Apache-2.0
"""
Per-request execution context.

The caller configures one context value and shares it across requests (or a
whole batch). Each processor takes a shallow copy so structural mutations made
while serving one request never leak into a sibling request:

    - fixed fields (request_id, tenant, traceparent) are copied by value
    - `attrs` (the extensible key/value slot) is copied into a fresh dict
    - values stored inside `attrs` are shared, not deep-copied

Data sources are attached under the reserved `data_sources` slot once per
processor and closed when that processor's request completes. A configured context that already defines that slot is a
programming error and fails at construction time.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Mapping, MutableMapping, Optional, Union

from gqlpipe.core.errors import ContextConfigurationError

LOG = logging.getLogger(__name__)

DATA_SOURCES_KEY = "data_sources"

DataSourcesFactory = Callable[[], Mapping[str, Any]]
ContextInput = Union["RequestContext", Mapping[str, Any], None]


@dataclass
class RequestContext:
    """
    Mutable context handed to resolvers as ``info.context``.

    Attributes:
        request_id: Correlation id for logs and traces.
        tenant: Multi-tenant scope (never logged raw; hashed in metrics).
        traceparent: W3C trace context header, if propagated.
        attrs: Caller-defined values; also reachable as ``context["key"]``.
        data_sources: Initialized data sources, or None when none are configured.
        instrumentation: The active `InstrumentationStack` for this request.
    """
    request_id: Optional[str] = None
    tenant: Optional[str] = None
    traceparent: Optional[str] = None
    attrs: Dict[str, Any] = field(default_factory=dict)
    data_sources: Optional[Mapping[str, Any]] = None
    instrumentation: Any = field(default=None, repr=False)

    # ---- mapping-style access to attrs --------------------------------------

    def __getitem__(self, key: str) -> Any:
        return self.attrs[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.attrs[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.attrs

    def __iter__(self) -> Iterator[str]:
        return iter(self.attrs)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attrs.get(key, default)

    def clone(self) -> "RequestContext":
        """Shallow copy: new `attrs` dict, shared attr values."""
        return RequestContext(
            request_id=self.request_id,
            tenant=self.tenant,
            traceparent=self.traceparent,
            attrs=dict(self.attrs),
            data_sources=dict(self.data_sources) if self.data_sources is not None else None,
            instrumentation=self.instrumentation,
        )

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]]) -> "RequestContext":
        """
        Build a context from a plain mapping.

        Known keys populate the fixed fields; everything else lands in `attrs`.
        The reserved data-source key is kept in `attrs` so the collision check
        can see it.
        """
        if values is None:
            return cls()
        values = dict(values)
        attrs: MutableMapping[str, Any] = dict(values.pop("attrs", None) or {})
        request_id = values.pop("request_id", None)
        tenant = values.pop("tenant", None)
        traceparent = values.pop("traceparent", None)
        attrs.update(values)
        return cls(
            request_id=request_id,
            tenant=tenant,
            traceparent=traceparent,
            attrs=dict(attrs),
        )

    def defines_data_sources(self) -> bool:
        return self.data_sources is not None or DATA_SOURCES_KEY in self.attrs


def initialize_context(
    context: ContextInput,
    *,
    data_sources: Optional[DataSourcesFactory] = None,
    cache: Any = None,
) -> RequestContext:
    """
    Build the per-request context.

    Args:
        context: Shared configured context (RequestContext, mapping or None).
        data_sources: Factory producing ``{name: DataSource}``; called once.
        cache: Cache handed to every data source's `initialize`.

    Raises:
        ContextConfigurationError: the configured context already defines
            the reserved data-source slot.
    """
    if isinstance(context, RequestContext):
        ctx = context.clone()
    elif context is None or isinstance(context, Mapping):
        ctx = RequestContext.from_mapping(context)
    else:
        raise ContextConfigurationError(
            f"context must be a RequestContext or a mapping, got {type(context).__name__}"
        )

    if data_sources is None:
        return ctx

    if ctx.defines_data_sources():
        raise ContextConfigurationError(
            "Use the data_sources option instead of putting data_sources on the context yourself."
        )

    sources = dict(data_sources() or {})
    for name, source in sources.items():
        init = getattr(source, "initialize", None)
        if init is None:
            continue
        init(context=ctx, cache=cache)
        LOG.debug("initialized data source %s", name)

    ctx.data_sources = sources
    return ctx


async def close_data_sources(ctx: RequestContext) -> None:
    """Call each data source's `close` (sync or async). Failures are logged."""
    for name, source in (ctx.data_sources or {}).items():
        close = getattr(source, "close", None)
        if close is None:
            continue
        try:
            maybe = close()
            if inspect.isawaitable(maybe):
                await maybe
        except Exception:
            LOG.warning("closing data source %s failed", name, exc_info=True)


__all__ = [
    "DATA_SOURCES_KEY",
    "RequestContext",
    "close_data_sources",
    "initialize_context",
]
