# examples/common/metrics_console.py
# SPDX-License-Identifier: Apache-2.0
"""
Console MetricsSink for examples and local debugging.

Implements the shape the request processor records to:
  - observe(component, op, ms, ok, code="OK", extra=None)
  - counter(component, name, value=1, extra=None)

Lines are human-readable and machine-parseable:

    [OBS] {"component":"graphql","op":"parse","ms":0.041,"ok":true,"code":"OK"}
    [CTR] {"component":"graphql","name":"apq_hits","value":1}
"""

from __future__ import annotations

import json
import sys
import threading
import time
from typing import Any, Dict, Mapping, Optional, TextIO

__all__ = ["ConsoleMetrics"]

_LOCK = threading.Lock()
_JSON_ENCODER = json.JSONEncoder(separators=(",", ":"), ensure_ascii=False, check_circular=False)


class ConsoleMetrics:
    """
    Prints one structured line per observation or counter.

    Args:
        colored: Enable ANSI colors (only when the output is a TTY).
        name: Optional instance name included in every line.
        output_file: Where to write (default: stdout).
        max_extra_fields: Cap on `extra` keys per line.
    """

    def __init__(
        self,
        *,
        colored: bool = True,
        name: Optional[str] = None,
        output_file: Optional[TextIO] = None,
        max_extra_fields: int = 10,
    ) -> None:
        self.output_file = output_file or sys.stdout
        self.colored = colored and self.output_file.isatty()
        self.name = name
        self.max_extra_fields = max_extra_fields

    def observe(
        self,
        *,
        component: str,
        op: str,
        ms: float,
        ok: bool,
        code: str = "OK",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "component": component,
            "op": op,
            "ms": round(max(0.0, float(ms)), 3),
            "ok": bool(ok),
            "code": str(code or "OK"),
        }
        self._emit("OBS", payload, extra, ok)

    def counter(
        self,
        *,
        component: str,
        name: str,
        value: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "component": component,
            "name": name,
            "value": int(value),
        }
        self._emit("CTR", payload, extra, True)

    # ------------------------------------------------------------------

    def _emit(self, kind: str, payload: Dict[str, Any], extra: Optional[Mapping[str, Any]], ok: bool) -> None:
        if self.name:
            payload["instance"] = self.name
        safe = self._safe_extra(extra)
        if safe:
            payload["extra"] = safe
        line = f"{self._prefix(kind, ok)} {_JSON_ENCODER.encode(payload)}"
        with _LOCK:
            print(line, file=self.output_file, flush=True)

    def _prefix(self, kind: str, ok: bool) -> str:
        if not self.colored:
            return f"[{kind}]"
        color = "\x1b[36m" if kind == "CTR" else ("\x1b[32m" if ok else "\x1b[31m")
        return f"{color}[{kind}]\x1b[0m"

    def _safe_extra(self, extra: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        # low cardinality only: scalar values, bounded size
        if not extra:
            return None
        out: Dict[str, Any] = {}
        for k, v in sorted(extra.items())[: self.max_extra_fields]:
            if v is None or isinstance(v, (str, int, float, bool)):
                if len(str(v)) <= 200:
                    out[k] = v
        return out or None
