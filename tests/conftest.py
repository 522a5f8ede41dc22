# SPDX-License-Identifier: Apache-2.0
"""
Shared pytest configuration for the gqlpipe suites.

- registers the suite markers and applies them by directory / module name
- builds a real graphql-core schema with an execution probe per test
"""

from __future__ import annotations

import os
from typing import Dict

import pytest

from gqlpipe.core.cache import InMemoryTTLCache
from gqlpipe.core.processor import RequestOptions
from tests.mock.mock_schema import ExecutionProbe, RecordingMetrics, build_mock_schema

MARKERS: Dict[str, str] = {
    "pipeline": "request processor stages, context and error classification",
    "persisted_queries": "persisted-query protocol",
    "instrumentation": "instrumentation stack ordering and hooks",
    "extensions": "built-in participants (tracing, cache control)",
    "datasources": "data sources and the HTTP cache",
    "wire": "transport-agnostic wire handler",
    "cli": "command line interface",
    "slow": "slow tests (skipped by `-m 'not slow'`)",
}

# tests/<dir>/... -> marker
DIRECTORY_MARKERS: Dict[str, str] = {
    "core": "pipeline",
    "extensions": "extensions",
    "datasources": "datasources",
    "wire": "wire",
    "cli": "cli",
}

# module name fragment -> extra marker
MODULE_MARKERS: Dict[str, str] = {
    "persisted_queries": "persisted_queries",
    "instrumentation": "instrumentation",
}


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    for name, description in MARKERS.items():
        config.addinivalue_line("markers", f"{name}: {description}")


def pytest_collection_modifyitems(config: pytest.Config, items) -> None:
    tests_root = os.path.dirname(os.path.abspath(__file__))
    for item in items:
        path = os.path.abspath(str(item.fspath))
        rel = os.path.relpath(path, tests_root).split(os.sep)
        if len(rel) > 1 and rel[0] in DIRECTORY_MARKERS:
            item.add_marker(getattr(pytest.mark, DIRECTORY_MARKERS[rel[0]]))
        module = rel[-1]
        for fragment, marker in MODULE_MARKERS.items():
            if fragment in module:
                item.add_marker(getattr(pytest.mark, marker))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def probe() -> ExecutionProbe:
    return ExecutionProbe()


@pytest.fixture
def schema(probe):
    return build_mock_schema(probe)


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def cache() -> InMemoryTTLCache:
    return InMemoryTTLCache()


@pytest.fixture
def options(schema) -> RequestOptions:
    return RequestOptions(schema=schema)
