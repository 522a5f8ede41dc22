# gqlpipe/datasources/base.py
# SPDX-License-Identifier: Apache-2.0
"""
Data-source contract.

A data source is a per-request helper (REST client, DB gateway, ...) exposed
to resolvers as ``info.context.data_sources[name]``. The processor calls
`initialize` exactly once per request, before any resolver runs, and `close`
once the response has been built.
"""

from __future__ import annotations

from typing import Any, Optional

from gqlpipe.core.cache import KeyValueCache


class DataSource:
    """Base data source; `initialize` stores the context and cache."""

    context: Any = None
    cache: Optional[KeyValueCache] = None

    def initialize(self, *, context: Any, cache: Optional[KeyValueCache] = None) -> None:
        self.context = context
        self.cache = cache

    async def close(self) -> None:
        """Release per-request resources."""


__all__ = ["DataSource"]
