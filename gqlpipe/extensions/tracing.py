# gqlpipe/extensions/tracing.py
# SPDX-License-Identifier: Apache-2.0
"""
Apollo tracing (format version 1).

Adds per-request timing to ``response.extensions["tracing"]``:

    {
        "version": 1,
        "startTime": "2024-01-01T00:00:00.000Z",
        "endTime":   "2024-01-01T00:00:00.012Z",
        "duration": 12000000,                              # ns
        "parsing":    {"startOffset": ns, "duration": ns},
        "validation": {"startOffset": ns, "duration": ns},
        "execution": {
            "resolvers": [
                {"path": [...], "parentType": "Query", "fieldName": "...",
                 "returnType": "String", "startOffset": ns, "duration": ns},
            ]
        }
    }

Offsets are measured from request start on a monotonic clock; wall-clock
timestamps are UTC.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from gqlpipe.core.instrumentation import EndHandler, FieldEndHandler, InstrumentationParticipant, RequestStartInfo

TRACING_VERSION = 1


def _iso(dt: datetime) -> str:
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TracingParticipant(InstrumentationParticipant):
    def __init__(self) -> None:
        self._start_wall: Optional[datetime] = None
        self._end_wall: Optional[datetime] = None
        self._start_ns: Optional[int] = None
        self._end_ns: Optional[int] = None
        self._parsing: Optional[Dict[str, int]] = None
        self._validation: Optional[Dict[str, int]] = None
        self._resolvers: List[Dict[str, Any]] = []

    def _offset(self) -> int:
        if self._start_ns is None:
            self._start()
        return time.perf_counter_ns() - self._start_ns

    def _start(self) -> None:
        self._start_wall = datetime.now(timezone.utc)
        self._start_ns = time.perf_counter_ns()

    def _phase(self) -> Tuple[Dict[str, int], EndHandler]:
        phase = {"startOffset": self._offset(), "duration": 0}

        def _end(*errors: BaseException) -> None:
            phase["duration"] = self._offset() - phase["startOffset"]

        return phase, _end

    # ---- hooks --------------------------------------------------------------

    def request_did_start(self, info: RequestStartInfo) -> Optional[EndHandler]:
        self._start()
        return None

    def parsing_did_start(self, query_string: str) -> Optional[EndHandler]:
        self._parsing, end = self._phase()
        return end

    def validation_did_start(self) -> Optional[EndHandler]:
        self._validation, end = self._phase()
        return end

    def execution_did_start(self, execution_args: Any) -> Optional[EndHandler]:
        def _end(*errors: BaseException) -> None:
            self._end_wall = datetime.now(timezone.utc)
            self._end_ns = time.perf_counter_ns()

        return _end

    def will_resolve_field(
        self, source: Any, args: Mapping[str, Any], context: Any, info: Any
    ) -> Optional[FieldEndHandler]:
        call: Dict[str, Any] = {
            "path": info.path.as_list(),
            "parentType": str(info.parent_type),
            "fieldName": info.field_name,
            "returnType": str(info.return_type),
            "startOffset": self._offset(),
            "duration": 0,
        }
        self._resolvers.append(call)

        def _did_resolve(error: Optional[BaseException], result: Any) -> None:
            call["duration"] = self._offset() - call["startOffset"]

        return _did_resolve

    def format(self) -> Optional[Tuple[str, Any]]:
        if self._start_ns is None or self._start_wall is None:
            return None
        end_ns = self._end_ns if self._end_ns is not None else time.perf_counter_ns()
        end_wall = self._end_wall or datetime.now(timezone.utc)
        return (
            "tracing",
            {
                "version": TRACING_VERSION,
                "startTime": _iso(self._start_wall),
                "endTime": _iso(end_wall),
                "duration": end_ns - self._start_ns,
                "parsing": dict(self._parsing or {"startOffset": 0, "duration": 0}),
                "validation": dict(self._validation or {"startOffset": 0, "duration": 0}),
                "execution": {"resolvers": [dict(r) for r in self._resolvers]},
            },
        )


__all__ = ["TRACING_VERSION", "TracingParticipant"]
