# gqlpipe/cli.py
# SPDX-License-Identifier: Apache-2.0
"""
gqlpipe CLI

    gqlpipe hash [QUERY|-]                     sha256 + persisted-query key
    gqlpipe exec --schema SDL --query TEXT     run one request, print the response
    gqlpipe test [SUITE ...]                   run the test suites
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import time
from typing import Any, Dict, List, Optional, Sequence

from graphql import build_schema

from gqlpipe.config import Settings
from gqlpipe.core.errors import RequestPipelineError
from gqlpipe.core.persisted_queries import compute_query_hash, persisted_query_key
from gqlpipe.core.processor import RequestOptions, RequestProcessor
from gqlpipe.core.types import Request
from gqlpipe.extensions.cache_control import CACHE_CONTROL_SDL

try:
    import pytest
except ImportError:  # pragma: no cover
    pytest = None  # type: ignore[assignment]


SUITE_PATHS: Dict[str, str] = {
    "core": "tests/core",
    "extensions": "tests/extensions",
    "datasources": "tests/datasources",
    "wire": "tests/wire",
    "cli": "tests/cli",
}

# Configuration from environment
COV_FAIL_UNDER = os.environ.get("COV_FAIL_UNDER", "80")
PYTEST_EXTRA_ARGS = os.environ.get("PYTEST_ARGS", "").split()


# --------------------------------------------------------------------------- #
# Internal helpers
# --------------------------------------------------------------------------- #

def _read_text(value: Optional[str]) -> str:
    if value is None or value == "-":
        # drop the newline added by echo / heredocs
        return sys.stdin.read().rstrip("\n")
    return value


def _read_file(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _load_schema(path: str):
    sdl = _read_file(path)
    if "@cacheControl" in sdl and "directive @cacheControl" not in sdl:
        sdl = CACHE_CONTROL_SDL + sdl
    return build_schema(sdl)


def _has_classified_errors(errors: Optional[Sequence[BaseException]]) -> bool:
    return any(isinstance(e, RequestPipelineError) for e in errors or ())


def _repo_root() -> str:
    """Best-effort guess of repo root."""
    here = os.path.abspath(os.path.dirname(__file__))
    return os.path.dirname(here)


def _validate_paths(paths: List[str]) -> bool:
    ok = True
    for p in paths:
        if not (os.path.isdir(p) or os.path.isfile(p)):
            print(f"error: test path does not exist: {p}", file=sys.stderr)
            ok = False
    return ok


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #

def cmd_hash(args: argparse.Namespace) -> int:
    query = _read_text(args.query)
    sha = compute_query_hash(query)
    print(json.dumps({"sha256Hash": sha, "cacheKey": persisted_query_key(sha)}))
    return 0


def cmd_exec(args: argparse.Namespace) -> int:
    settings = Settings.from_env()
    settings.configure_logging()

    if args.query_file:
        query = _read_file(args.query_file)
    else:
        query = _read_text(args.query)

    try:
        variables = json.loads(args.variables) if args.variables else {}
    except ValueError as e:
        print(f"error: --variables is not valid JSON: {e}", file=sys.stderr)
        return 2
    if not isinstance(variables, dict):
        print("error: --variables must be a JSON object", file=sys.stderr)
        return 2

    root_value: Any = None
    if args.root_value:
        root_value = json.loads(_read_file(args.root_value))

    debug = args.debug or settings.debug
    options = RequestOptions(
        schema=_load_schema(args.schema),
        root_value=root_value,
        debug=debug,
        tracing=args.tracing or settings.tracing,
    )
    request = Request(query=query, operation_name=args.operation_name, variables=variables)
    response = asyncio.run(RequestProcessor(options).process_request(request))

    print(json.dumps(response.to_dict(debug=debug), indent=2))
    return 1 if _has_classified_errors(response.errors) else 0


def cmd_test(args: argparse.Namespace, passthrough_args: List[str]) -> int:
    if pytest is None:  # pragma: no cover
        print(
            "error: pytest is required to run the test suites.\n"
            "Install test dependencies via:\n"
            "    pip install .[test]",
            file=sys.stderr,
        )
        return 1

    selected = args.suite or list(SUITE_PATHS.keys())
    unknown = [s for s in selected if s not in SUITE_PATHS]
    if unknown:
        print(f"error: unknown suite(s): {', '.join(unknown)}", file=sys.stderr)
        return 2
    os.chdir(_repo_root())
    paths = [SUITE_PATHS[s] for s in selected]
    if not _validate_paths(paths):
        return 2

    pytest_args = [*paths, *PYTEST_EXTRA_ARGS, *passthrough_args]
    if args.quiet:
        pytest_args.append("-q")
    elif args.verbose:
        pytest_args.append("-vv")
    if args.cov:
        pytest_args.extend([
            "--cov=gqlpipe",
            f"--cov-fail-under={COV_FAIL_UNDER}",
            "--cov-report=term",
        ])

    if not args.quiet:
        print(f"Running suites: {', '.join(selected)}")
    start = time.time()
    rc = int(pytest.main(pytest_args))
    if not args.quiet:
        status = "passed" if rc == 0 else "failed"
        print(f"Suites {status} in {time.time() - start:.1f}s")
    return rc


# --------------------------------------------------------------------------- #
# main
# --------------------------------------------------------------------------- #

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gqlpipe",
        description="gqlpipe - query request pipeline tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  echo '{ hello }' | gqlpipe hash
  gqlpipe exec --schema schema.graphql --query '{ hello }' --root-value root.json
  gqlpipe test core wire -q
  gqlpipe test -- -x --tb=short

Configuration (environment variables):
  GQLPIPE_DEBUG=1        Include stack traces in errors
  GQLPIPE_TRACING=1      Enable tracing for `exec`
  COV_FAIL_UNDER=90      Coverage threshold for `test --cov` (default: 80)
  PYTEST_ARGS="-x -s"    Additional pytest arguments
        """.strip(),
    )
    subparsers = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    hash_parser = subparsers.add_parser("hash", help="Print the persisted-query hash of a query")
    hash_parser.add_argument("query", nargs="?", help="Query text, or '-' for stdin (default)")

    exec_parser = subparsers.add_parser("exec", help="Execute one request against an SDL schema")
    exec_parser.add_argument("--schema", required=True, help="Path to the schema SDL file")
    source = exec_parser.add_mutually_exclusive_group()
    source.add_argument("--query", help="Query text, or '-' for stdin (default)")
    source.add_argument("--query-file", help="Read the query from a file")
    exec_parser.add_argument("--variables", help="Variables as a JSON object")
    exec_parser.add_argument("--operation-name", help="Operation to execute")
    exec_parser.add_argument("--root-value", help="JSON file used as the root value")
    exec_parser.add_argument("--tracing", action="store_true", help="Include tracing extension")
    exec_parser.add_argument("--debug", action="store_true", help="Include stack traces in errors")

    test_parser = subparsers.add_parser("test", help="Run test suites")
    test_parser.add_argument(
        "suite", nargs="*", help=f"Suites to run: {', '.join(SUITE_PATHS)} (default: all)"
    )
    test_parser.add_argument("-q", "--quiet", action="store_true", help="Minimal output")
    test_parser.add_argument("-v", "--verbose", action="store_true", help="Detailed output (-vv)")
    test_parser.add_argument("--cov", action="store_true", help="Measure coverage of gqlpipe")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    cli_args = list(sys.argv[1:] if argv is None else argv)
    passthrough_args: List[str] = []
    if "--" in cli_args:
        split_index = cli_args.index("--")
        passthrough_args = cli_args[split_index + 1:]
        cli_args = cli_args[:split_index]

    parser = build_parser()
    try:
        args = parser.parse_args(cli_args)
    except SystemExit as e:
        return int(e.code or 0)

    if args.command == "hash":
        return cmd_hash(args)
    if args.command == "exec":
        return cmd_exec(args)
    if args.command == "test":
        return cmd_test(args, passthrough_args)

    print(f"error: unknown command '{args.command}'\n", file=sys.stderr)
    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
