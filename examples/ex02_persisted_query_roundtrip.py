# SPDX-License-Identifier: Apache-2.0
"""
Demonstrates: the automatic persisted-query handshake against the wire handler.
Expected:
  1. hash only        -> PersistedQueryNotFound (status 200, client retries)
  2. hash + full text -> data, query registered
  3. hash only        -> data served from the cache

Run from the repository root:  python -m examples.ex02_persisted_query_roundtrip
"""

import asyncio

from examples.common.bookstore import build_bookstore_schema
from examples.common.metrics_console import ConsoleMetrics
from examples.common.printing import box, print_json, print_kv
from gqlpipe import RequestOptions, Settings, WireRequestHandler
from gqlpipe.core.persisted_queries import compute_query_hash, flush_pending_writes

QUERY = "{ books { id title } }"


async def main() -> None:
    handler = WireRequestHandler(
        RequestOptions(schema=build_bookstore_schema(), metrics=ConsoleMetrics()),
        mode="standalone",
        settings=Settings(),
    )
    extensions = {"persistedQuery": {"version": 1, "sha256Hash": compute_query_hash(QUERY)}}

    box("1. hash only")
    resp = await handler.handle({"extensions": extensions})
    print_kv({"status": resp.status})
    print_json(resp.body)

    box("2. hash + query text")
    resp = await handler.handle({"query": QUERY, "extensions": extensions})
    await flush_pending_writes()
    print_kv({"status": resp.status})
    print_json(resp.body)

    box("3. hash only, again")
    resp = await handler.handle({"extensions": extensions})
    print_kv({"status": resp.status})
    print_json(resp.body)


if __name__ == "__main__":
    asyncio.run(main())
