# SPDX-License-Identifier: Apache-2.0
"""
Demonstrates: one request through the pipeline with console metrics.
Expected: data for the valid query; a single SyntaxError for the broken one.

Run from the repository root:  python -m examples.ex01_basic_request
"""

import asyncio

from examples.common.bookstore import build_bookstore_schema
from examples.common.metrics_console import ConsoleMetrics
from examples.common.printing import box, print_json, print_kv
from gqlpipe import RequestContext, RequestOptions, RequestProcessor
from gqlpipe.core.types import Request


async def main() -> None:
    options = RequestOptions(
        schema=build_bookstore_schema(),
        context=RequestContext(request_id="ex01", tenant="tenant-1", attrs={"user": "ada"}),
        metrics=ConsoleMetrics(),
    )

    box("ex01_basic_request: valid query")
    response = await RequestProcessor(options).process_request(
        Request(query='query One($id: ID!) { book(id: $id) { title } me }', variables={"id": "1"})
    )
    print_json(response.to_dict())

    box("ex01_basic_request: syntax error")
    response = await RequestProcessor(options).process_request(Request(query="{ book(id: 1) { title }"))
    print_json(response.to_dict())

    err = response.errors[0]
    print_kv({"category": err.category, "code": err.code})


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
