# gqlpipe/core/instrumentation.py
# SPDX-License-Identifier: Apache-2.0
"""
Instrumentation participants and the stack that composes them.

A participant observes pipeline stage boundaries. Every ``*_did_start`` hook
may return a finalizer that the stack calls when the stage ends:

    request_did_start(info)              -> end(*errors)
    parsing_did_start(query_string)      -> end(*errors)
    validation_did_start()               -> end(*errors)
    execution_did_start(execution_args)  -> end(*errors)
    will_resolve_field(source, args, context, info) -> end(error, result)

plus two non-bracketing hooks:

    format()                   -> Optional[(key, value)] merged into response.extensions
    will_send_response(resp)   -> Optional[Response] replacing the response

Ordering (stack discipline): start hooks fire in registration order, end
finalizers fire in reverse registration order, so for participants A then B
every stage observes ``A.start <= B.start <= B.end <= A.end``. `stage()`
guarantees the finalizers run on every exit path, including exceptions.

Participant failures are logged and never break the request.
"""

from __future__ import annotations

import inspect
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from gqlpipe.core.types import Response

LOG = logging.getLogger(__name__)

EndHandler = Callable[..., None]
FieldEndHandler = Callable[[Optional[BaseException], Any], None]

P = TypeVar("P", bound="InstrumentationParticipant")


@dataclass(frozen=True)
class RequestStartInfo:
    """
    Payload for `request_did_start`.

    `query_string` is the text as sent by the client (None for hash-only
    persisted queries); the two flags tell telemetry which persisted-query
    path the request took.
    """
    query_string: Optional[str]
    operation_name: Optional[str]
    variables: Mapping[str, Any]
    extensions: Mapping[str, Any]
    transport_metadata: Any = None
    persisted_query_hit: bool = False
    persisted_query_register: bool = False


class InstrumentationParticipant:
    """
    Base participant; every hook is an optional no-op.

    Subclasses override only the hooks they care about.
    """

    def request_did_start(self, info: RequestStartInfo) -> Optional[EndHandler]:
        return None

    def parsing_did_start(self, query_string: str) -> Optional[EndHandler]:
        return None

    def validation_did_start(self) -> Optional[EndHandler]:
        return None

    def execution_did_start(self, execution_args: Any) -> Optional[EndHandler]:
        return None

    def will_resolve_field(
        self, source: Any, args: Mapping[str, Any], context: Any, info: Any
    ) -> Optional[FieldEndHandler]:
        return None

    def will_send_response(self, response: Response) -> Optional[Response]:
        return None

    def format(self) -> Optional[Tuple[str, Any]]:
        return None


def _overrides(participant: InstrumentationParticipant, hook: str) -> bool:
    method = getattr(type(participant), hook, None)
    base = getattr(InstrumentationParticipant, hook)
    return method is not None and method is not base


class InstrumentationStack:
    """
    Ordered collection of participants behaving as one logical participant.
    """

    def __init__(self, participants: Sequence[InstrumentationParticipant] = ()) -> None:
        self._participants: List[InstrumentationParticipant] = list(participants)

    def __len__(self) -> int:
        return len(self._participants)

    @property
    def participants(self) -> Tuple[InstrumentationParticipant, ...]:
        return tuple(self._participants)

    def find(self, kind: Type[P]) -> Optional[P]:
        """Return the first registered participant of the given type."""
        for p in self._participants:
            if isinstance(p, kind):
                return p
        return None

    # ---- bracketing hooks ---------------------------------------------------

    def _did_start(self, hook: str, *args: Any) -> EndHandler:
        end_handlers: List[EndHandler] = []
        for p in self._participants:
            try:
                end = getattr(p, hook)(*args)
            except Exception:
                LOG.warning("instrumentation hook %s.%s failed", type(p).__name__, hook, exc_info=True)
                continue
            if end is not None:
                end_handlers.append(end)

        def _end(*errors: BaseException) -> None:
            for handler in reversed(end_handlers):
                try:
                    handler(*errors)
                except Exception:
                    LOG.warning("instrumentation end handler for %s failed", hook, exc_info=True)

        return _end

    def request_did_start(self, info: RequestStartInfo) -> EndHandler:
        return self._did_start("request_did_start", info)

    def parsing_did_start(self, query_string: str) -> EndHandler:
        return self._did_start("parsing_did_start", query_string)

    def validation_did_start(self) -> EndHandler:
        return self._did_start("validation_did_start")

    def execution_did_start(self, execution_args: Any) -> EndHandler:
        return self._did_start("execution_did_start", execution_args)

    @contextmanager
    def stage(self, name: str, *args: Any) -> Iterator[None]:
        """
        Bracket a pipeline stage: ``with stack.stage("parsing", text): ...``

        The matching finalizers receive any exception raised inside the block
        and always run before it propagates.
        """
        end = self._did_start(f"{name}_did_start", *args)
        errors: List[BaseException] = []
        try:
            yield
        except BaseException as e:
            errors.append(e)
            raise
        finally:
            end(*errors)

    # ---- field hooks --------------------------------------------------------

    def will_resolve_field(
        self, source: Any, args: Mapping[str, Any], context: Any, info: Any
    ) -> FieldEndHandler:
        handlers: List[FieldEndHandler] = []
        for p in self._participants:
            try:
                end = p.will_resolve_field(source, args, context, info)
            except Exception:
                LOG.warning("will_resolve_field failed for %s", type(p).__name__, exc_info=True)
                continue
            if end is not None:
                handlers.append(end)

        def _did_resolve(error: Optional[BaseException], result: Any) -> None:
            for handler in reversed(handlers):
                try:
                    handler(error, result)
                except Exception:
                    LOG.warning("field end handler failed", exc_info=True)

        return _did_resolve

    def field_middleware(self) -> Optional["FieldInstrumentationMiddleware"]:
        """graphql-core middleware when any participant observes fields, else None."""
        if any(_overrides(p, "will_resolve_field") for p in self._participants):
            return FieldInstrumentationMiddleware(self)
        return None

    # ---- response hooks -----------------------------------------------------

    def format(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for p in self._participants:
            try:
                item = p.format()
            except Exception:
                LOG.warning("format failed for %s", type(p).__name__, exc_info=True)
                continue
            if item:
                key, value = item
                out[key] = value
        return out

    def will_send_response(self, response: Response) -> Response:
        # Runs as an end hook: reverse registration order.
        for p in reversed(self._participants):
            try:
                replaced = p.will_send_response(response)
            except Exception:
                LOG.warning("will_send_response failed for %s", type(p).__name__, exc_info=True)
                continue
            if replaced is not None:
                response = replaced
        return response


class FieldInstrumentationMiddleware:
    """
    graphql-core middleware bracketing every resolver with the stack's
    `will_resolve_field` hooks (sync and async resolvers alike).
    """

    def __init__(self, stack: InstrumentationStack) -> None:
        self._stack = stack

    def resolve(self, next_: Callable[..., Any], root: Any, info: Any, **args: Any) -> Any:
        did_resolve = self._stack.will_resolve_field(root, args, info.context, info)
        try:
            result = next_(root, info, **args)
        except Exception as e:
            did_resolve(e, None)
            raise
        if inspect.isawaitable(result):
            return self._await(result, did_resolve)
        did_resolve(None, result)
        return result

    @staticmethod
    async def _await(awaitable: Any, did_resolve: FieldEndHandler) -> Any:
        try:
            result = await awaitable
        except Exception as e:
            did_resolve(e, None)
            raise
        did_resolve(None, result)
        return result


__all__ = [
    "RequestStartInfo",
    "InstrumentationParticipant",
    "InstrumentationStack",
    "FieldInstrumentationMiddleware",
]
