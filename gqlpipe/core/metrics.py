# gqlpipe/core/metrics.py
# SPDX-License-Identifier: Apache-2.0
"""
Metrics collection protocol (low-cardinality; SIEM-safe).

Sinks receive stage latencies and protocol counters from the request
processor. Dimensions never include query text or raw tenant identifiers;
tenants are reduced to a short sha256 prefix via `tenant_hash`.
"""

from __future__ import annotations

import hashlib
from typing import Any, Mapping, Optional, Protocol


class MetricsSink(Protocol):
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
        ...

    def counter(
        self,
        *,
        component: str,
        name: str,
        value: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...


class NoopMetrics:
    def observe(self, **_: Any) -> None:
        ...

    def counter(self, **_: Any) -> None:
        ...


def tenant_hash(tenant: Optional[str]) -> Optional[str]:
    if not tenant:
        return None
    return hashlib.sha256(tenant.encode("utf-8")).hexdigest()[:12]


__all__ = ["MetricsSink", "NoopMetrics", "tenant_hash"]
