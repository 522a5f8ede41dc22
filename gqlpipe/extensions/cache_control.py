# gqlpipe/extensions/cache_control.py
# SPDX-License-Identifier: Apache-2.0
"""
Cache-control hints.

Schemas declare hints with a directive (add `CACHE_CONTROL_SDL` to the SDL):

    type Book @cacheControl(maxAge: 60) {
        title: String
        price: Int @cacheControl(maxAge: 5, scope: PRIVATE)
    }

Per resolved field the participant combines the returned type's hint with
the field's own hint (field wins), and applies `default_max_age` to root
fields and fields returning object or interface types when no maxAge was
declared. Resolvers can add hints at runtime with `set_cache_hint(info, ...)`.

The overall policy is the lowest maxAge across all hints, PRIVATE if any hint
is private; a lowest maxAge of 0 means the response is not cacheable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from graphql import (
    EnumValueNode,
    GraphQLInterfaceType,
    GraphQLObjectType,
    IntValueNode,
    get_named_type,
)

from gqlpipe.core.instrumentation import FieldEndHandler, InstrumentationParticipant

LOG = logging.getLogger(__name__)

CACHE_CONTROL_SDL = """
enum CacheControlScope {
  PUBLIC
  PRIVATE
}

directive @cacheControl(
  maxAge: Int
  scope: CacheControlScope
) on FIELD_DEFINITION | OBJECT | INTERFACE
"""


class CacheScope(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


@dataclass(frozen=True)
class CacheHint:
    max_age: Optional[int] = None
    scope: Optional[CacheScope] = None

    @property
    def is_empty(self) -> bool:
        return self.max_age is None and self.scope is None

    def merge(self, override: "CacheHint") -> "CacheHint":
        """Fields set on `override` take precedence."""
        return CacheHint(
            max_age=override.max_age if override.max_age is not None else self.max_age,
            scope=override.scope if override.scope is not None else self.scope,
        )


@dataclass(frozen=True)
class CacheControlOptions:
    """
    Attributes:
        default_max_age: maxAge for root fields and composite-returning
            fields without a declared hint.
        calculate_http_headers: Let transport bindings emit a Cache-Control header.
        strip_formatted_extensions: Compute hints but omit
            ``extensions.cacheControl`` from the response.
    """
    default_max_age: int = 0
    calculate_http_headers: bool = True
    strip_formatted_extensions: bool = False


@dataclass(frozen=True)
class CachePolicy:
    max_age: int
    scope: CacheScope = CacheScope.PUBLIC

    def http_header(self) -> str:
        return f"max-age={self.max_age}, {self.scope.value.lower()}"


def hint_from_directives(node: Any) -> CacheHint:
    """Read ``@cacheControl`` from an AST node's directives."""
    directives = getattr(node, "directives", None) or ()
    for directive in directives:
        if directive.name.value != "cacheControl":
            continue
        max_age: Optional[int] = None
        scope: Optional[CacheScope] = None
        for arg in directive.arguments or ():
            if arg.name.value == "maxAge" and isinstance(arg.value, IntValueNode):
                max_age = int(arg.value.value)
            elif arg.name.value == "scope" and isinstance(arg.value, EnumValueNode):
                try:
                    scope = CacheScope(arg.value.value)
                except ValueError:
                    LOG.debug("ignoring unknown cacheControl scope %r", arg.value.value)
        return CacheHint(max_age=max_age, scope=scope)
    return CacheHint()


def _type_hint(named_type: Any) -> CacheHint:
    hint = hint_from_directives(getattr(named_type, "ast_node", None))
    for ext in getattr(named_type, "extension_ast_nodes", None) or ():
        hint = hint.merge(hint_from_directives(ext))
    return hint


class CacheControlParticipant(InstrumentationParticipant):
    def __init__(self, options: Optional[CacheControlOptions] = None) -> None:
        self.options = options or CacheControlOptions()
        self._hints: Dict[Tuple[Union[str, int], ...], CacheHint] = {}

    def add_hint(self, path: Sequence[Union[str, int]], hint: CacheHint) -> None:
        if hint.is_empty:
            return
        key = tuple(path)
        existing = self._hints.get(key)
        self._hints[key] = existing.merge(hint) if existing is not None else hint

    @property
    def hints(self) -> Mapping[Tuple[Union[str, int], ...], CacheHint]:
        return dict(self._hints)

    def will_resolve_field(
        self, source: Any, args: Mapping[str, Any], context: Any, info: Any
    ) -> Optional[FieldEndHandler]:
        hint = CacheHint()
        target = get_named_type(info.return_type)
        composite = isinstance(target, (GraphQLObjectType, GraphQLInterfaceType))
        if composite:
            hint = hint.merge(_type_hint(target))

        field_def = getattr(info.parent_type, "fields", {}).get(info.field_name)
        if field_def is not None:
            hint = hint.merge(hint_from_directives(field_def.ast_node))

        if (composite or info.path.prev is None) and hint.max_age is None:
            hint = CacheHint(max_age=self.options.default_max_age, scope=hint.scope)

        self.add_hint(info.path.as_list(), hint)
        return None

    def overall_policy(self) -> Optional[CachePolicy]:
        lowest: Optional[int] = None
        scope = CacheScope.PUBLIC
        for hint in self._hints.values():
            if hint.max_age is not None:
                lowest = hint.max_age if lowest is None else min(lowest, hint.max_age)
            if hint.scope is CacheScope.PRIVATE:
                scope = CacheScope.PRIVATE
        if not lowest:
            return None
        return CachePolicy(max_age=lowest, scope=scope)

    def http_header(self) -> Optional[str]:
        if not self.options.calculate_http_headers:
            return None
        policy = self.overall_policy()
        return policy.http_header() if policy is not None else None

    def format(self) -> Optional[Tuple[str, Any]]:
        if self.options.strip_formatted_extensions:
            return None
        hints: List[Dict[str, Any]] = []
        for path, hint in self._hints.items():
            item: Dict[str, Any] = {"path": list(path), "maxAge": hint.max_age}
            if hint.scope is not None:
                item["scope"] = hint.scope.value
            hints.append(item)
        return ("cacheControl", {"version": 1, "hints": hints})


def set_cache_hint(
    info: Any,
    *,
    max_age: Optional[int] = None,
    scope: Union[CacheScope, str, None] = None,
) -> bool:
    """
    Add a runtime hint for the field being resolved.

    Returns False when cache control is not enabled for the request.
    """
    stack = getattr(info.context, "instrumentation", None)
    participant = stack.find(CacheControlParticipant) if stack is not None else None
    if participant is None:
        return False
    if isinstance(scope, str):
        scope = CacheScope(scope.upper())
    participant.add_hint(info.path.as_list(), CacheHint(max_age=max_age, scope=scope))
    return True


__all__ = [
    "CACHE_CONTROL_SDL",
    "CacheScope",
    "CacheHint",
    "CacheControlOptions",
    "CachePolicy",
    "CacheControlParticipant",
    "hint_from_directives",
    "set_cache_hint",
]
