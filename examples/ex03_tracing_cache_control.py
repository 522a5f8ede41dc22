# SPDX-License-Identifier: Apache-2.0
"""
Demonstrates: tracing and cache-control participants plus a custom one.
Expected: per-resolver timings, cache hints, Cache-Control: max-age=15, public

Run from the repository root:  python -m examples.ex03_tracing_cache_control
"""

import asyncio
import time

from examples.common.bookstore import build_bookstore_schema
from examples.common.printing import box, print_json, print_kv
from gqlpipe import InstrumentationParticipant, RequestOptions, Settings, WireRequestHandler


class SlowStageLogger(InstrumentationParticipant):
    """Prints every stage that takes longer than `threshold_ms`."""

    def __init__(self, threshold_ms: float = 0.0) -> None:
        self.threshold_ms = threshold_ms

    def _timed(self, stage):
        t0 = time.perf_counter()

        def end(*errors):
            ms = (time.perf_counter() - t0) * 1000
            if ms >= self.threshold_ms:
                print(f"  {stage}: {ms:.2f}ms{' (failed)' if errors else ''}")

        return end

    def parsing_did_start(self, query_string):
        return self._timed("parsing")

    def validation_did_start(self):
        return self._timed("validation")

    def execution_did_start(self, execution_args):
        return self._timed("execution")


async def main() -> None:
    options = RequestOptions(
        schema=build_bookstore_schema(),
        extensions=[SlowStageLogger],
        tracing=True,
        cache_control=True,
    )
    handler = WireRequestHandler(options, settings=Settings())

    box("ex03: stages")
    resp = await handler.handle({"query": '{ book(id: "1") { title stock } books { id } }'})

    box("ex03: response headers")
    print_kv(resp.headers)

    box("ex03: cache hints")
    print_json(resp.body["extensions"]["cacheControl"])

    box("ex03: tracing")
    tracing = resp.body["extensions"]["tracing"]
    for r in tracing["execution"]["resolvers"]:
        print(f"  {'.'.join(map(str, r['path'])):<20} {r['returnType']:<10} {r['duration'] / 1000:.1f}us")


if __name__ == "__main__":
    asyncio.run(main())
