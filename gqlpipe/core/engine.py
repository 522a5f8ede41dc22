# gqlpipe/core/engine.py
# SPDX-License-Identifier: Apache-2.0
"""
Engine binding.

The pipeline treats the query-language implementation as a black box behind
the `Engine` protocol:

    parse(text)                         -> document      (raises on bad syntax)
    validate(schema, document, rules)   -> [error, ...]  (empty when valid)
    get_operation(document, name)       -> operation | None
    execute(args)                       -> result | awaitable[result]

`GraphQLCoreEngine` is the default implementation over graphql-core.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, Union

from graphql import (
    DocumentNode,
    ExecutionResult,
    GraphQLError,
    GraphQLSchema,
    OperationDefinitionNode,
    execute as gql_execute,
    get_operation_ast,
    parse as gql_parse,
    specified_rules,
    validate as gql_validate,
)


@dataclass(frozen=True)
class ExecutionArgs:
    """
    Everything the executor needs for one operation.

    Handed to `execution_did_start` participants as-is.
    """
    schema: GraphQLSchema
    document: DocumentNode
    root_value: Any = None
    context_value: Any = None
    variable_values: Optional[dict] = None
    operation_name: Optional[str] = None
    field_resolver: Optional[Callable[..., Any]] = None
    middleware: Sequence[Any] = field(default_factory=tuple)


class Engine(Protocol):
    def parse(self, source: str) -> DocumentNode:
        ...

    def validate(
        self,
        schema: GraphQLSchema,
        document: DocumentNode,
        rules: Optional[Sequence[Any]] = None,
    ) -> Sequence[GraphQLError]:
        ...

    def get_operation(
        self, document: DocumentNode, operation_name: Optional[str] = None
    ) -> Optional[OperationDefinitionNode]:
        ...

    def execute(self, args: ExecutionArgs) -> Union[ExecutionResult, Awaitable[ExecutionResult]]:
        ...


class GraphQLCoreEngine:
    """
    graphql-core backed engine.

    `validate` always runs graphql-core's `specified_rules` first, followed
    by any caller-supplied rules.
    """

    def parse(self, source: str) -> DocumentNode:
        return gql_parse(source)

    def validate(
        self,
        schema: GraphQLSchema,
        document: DocumentNode,
        rules: Optional[Sequence[Any]] = None,
    ) -> List[GraphQLError]:
        all_rules = list(specified_rules)
        if rules:
            all_rules.extend(rules)
        return list(gql_validate(schema, document, all_rules))

    def get_operation(
        self, document: DocumentNode, operation_name: Optional[str] = None
    ) -> Optional[OperationDefinitionNode]:
        return get_operation_ast(document, operation_name)

    def execute(self, args: ExecutionArgs) -> Union[ExecutionResult, Awaitable[ExecutionResult]]:
        return gql_execute(
            args.schema,
            args.document,
            root_value=args.root_value,
            context_value=args.context_value,
            variable_values=args.variable_values,
            operation_name=args.operation_name,
            field_resolver=args.field_resolver,
            middleware=list(args.middleware) or None,
        )


__all__ = ["ExecutionArgs", "Engine", "GraphQLCoreEngine"]
