# gqlpipe/datasources/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""Data sources exposed to resolvers through the request context."""

from gqlpipe.datasources.base import DataSource
from gqlpipe.datasources.http_cache import HTTPCache
from gqlpipe.datasources.rest import HTTPRequestError, RESTDataSource

__all__ = ["DataSource", "HTTPCache", "HTTPRequestError", "RESTDataSource"]
