# examples/common/bookstore.py
# SPDX-License-Identifier: Apache-2.0
"""
Small executable schema shared by the examples.
"""

from __future__ import annotations

import asyncio

from graphql import GraphQLSchema, build_schema

from gqlpipe.extensions.cache_control import CACHE_CONTROL_SDL, set_cache_hint

SDL = CACHE_CONTROL_SDL + """
type Book @cacheControl(maxAge: 300) {
  id: ID!
  title: String!
  stock: Int @cacheControl(maxAge: 15)
}

type Query {
  book(id: ID!): Book
  books: [Book!]!
  me: String
}
"""

BOOKS = {
    "1": {"id": "1", "title": "The Left Hand of Darkness", "stock": 4},
    "2": {"id": "2", "title": "Roadside Picnic", "stock": 0},
}


def build_bookstore_schema() -> GraphQLSchema:
    schema = build_schema(SDL)
    fields = schema.query_type.fields

    async def book(_root, info, id):
        await asyncio.sleep(0.001)
        return BOOKS.get(id)

    def books(_root, info):
        return list(BOOKS.values())

    def me(_root, info):
        set_cache_hint(info, max_age=60, scope="PRIVATE")
        return info.context.get("user", "anonymous")

    fields["book"].resolve = book
    fields["books"].resolve = books
    fields["me"].resolve = me
    return schema
