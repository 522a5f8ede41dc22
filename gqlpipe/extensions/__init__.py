# gqlpipe/extensions/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""Built-in instrumentation participants."""

from gqlpipe.extensions.cache_control import (
    CACHE_CONTROL_SDL,
    CacheControlOptions,
    CacheControlParticipant,
    CacheHint,
    CachePolicy,
    CacheScope,
    set_cache_hint,
)
from gqlpipe.extensions.tracing import TracingParticipant

__all__ = [
    "CACHE_CONTROL_SDL",
    "CacheControlOptions",
    "CacheControlParticipant",
    "CacheHint",
    "CachePolicy",
    "CacheScope",
    "set_cache_hint",
    "TracingParticipant",
]
