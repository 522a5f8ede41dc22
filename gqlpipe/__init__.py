# gqlpipe/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""
gqlpipe - query request pipeline

Turns a raw query-language request into a structured response: persisted
queries, parse / validate / execute with instrumentation hooks, and error
classification for transport bindings.

    from gqlpipe import RequestOptions, RequestProcessor, Request

    processor = RequestProcessor(RequestOptions(schema=schema))
    response = await processor.process_request(Request(query="{ hello }"))
"""

from gqlpipe.config import Settings
from gqlpipe.core import *  # noqa: F401,F403
from gqlpipe.core import __all__ as _core_all
from gqlpipe.extensions import (
    CACHE_CONTROL_SDL,
    CacheControlOptions,
    CacheControlParticipant,
    TracingParticipant,
    set_cache_hint,
)
from gqlpipe.wire import WireRequestHandler, WireResponse

__version__ = "0.1.0"

__all__ = [
    *_core_all,
    "Settings",
    "CACHE_CONTROL_SDL",
    "CacheControlOptions",
    "CacheControlParticipant",
    "TracingParticipant",
    "set_cache_hint",
    "WireRequestHandler",
    "WireResponse",
    "__version__",
]
