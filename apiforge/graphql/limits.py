"""
Operation limits applied by the GraphQL server.

- complexity_limit_rule: validation rule rejecting operations whose cost
  exceeds ``MaxAllowedComplexity``. Each field costs 1. The selections of a
  paged field are multiplied by its ``first``/``last`` argument, or by the
  default page size when the argument is a variable or absent. Other list
  fields are multiplied by the default page size too, except the ``nodes``
  and ``edges`` lists of a page, which the page multiplier already covers
- depth_limiter: strawberry ``QueryDepthLimiter`` factory for ``MaxAllowedExecutionDepth``
- ExecutionTimeout: fails resolvers that run past ``ExecutionTimeout``
- should_mask_error: hides unexpected exception details from clients

Rejected operations are not executed; the violation is returned as a
GraphQL error.
"""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from functools import partial
from inspect import isawaitable
from typing import Any, Callable, Dict, Iterator, Optional, Set, Type

from graphql import (
    FieldNode,
    FragmentSpreadNode,
    GraphQLError,
    GraphQLField,
    GraphQLInterfaceType,
    GraphQLList,
    GraphQLNamedType,
    GraphQLObjectType,
    InlineFragmentNode,
    IntValueNode,
    OperationDefinitionNode,
    OperationType,
    SelectionSetNode,
    ValidationRule,
    get_named_type,
    get_nullable_type,
)
from strawberry.extensions import QueryDepthLimiter, SchemaExtension

from apiforge.observability.logging import get_logger
from apiforge.observability.metrics import increment_counter

logger = get_logger(__name__)

_PAGING_ARGUMENTS = ("first", "last")


def complexity_limit_rule(max_complexity: int, default_page_size: int) -> Type[ValidationRule]:
    """Build a validation rule class bound to the configured limits."""

    class MaxComplexityRule(ValidationRule):
        def enter_operation_definition(self, node: OperationDefinitionNode, *_args: Any) -> None:
            root_type = self.context.schema.get_root_type(node.operation)
            complexity = _OperationCost(self.context, default_page_size).selection(
                node.selection_set, root_type, paged=False, visited=set()
            )
            if complexity > max_complexity:
                increment_counter("graphql_operations_rejected_total", labels={"reason": "complexity"})
                logger.info(
                    "graphql_operation_rejected",
                    reason="complexity",
                    complexity=complexity,
                    max_complexity=max_complexity,
                )
                self.report_error(
                    GraphQLError(
                        "The maximum allowed operation complexity was exceeded "
                        f"({complexity} > {max_complexity}).",
                        node,
                        extensions={"code": "MAX_COMPLEXITY_EXCEEDED"},
                    )
                )

    return MaxComplexityRule


class _OperationCost:
    def __init__(self, context: Any, default_page_size: int) -> None:
        self.context = context
        self.default_page_size = default_page_size

    def selection(
        self,
        selection_set: Optional[SelectionSetNode],
        parent_type: Optional[GraphQLNamedType],
        paged: bool,
        visited: Set[str],
    ) -> int:
        """Cost of a selection set; ``paged`` marks the selections of a page."""
        if selection_set is None:
            return 0

        total = 0
        for selection in selection_set.selections:
            if isinstance(selection, FieldNode):
                if selection.name.value.startswith("__"):
                    continue
                total += self.field(selection, parent_type, paged, visited)
            elif isinstance(selection, InlineFragmentNode):
                fragment_type = parent_type
                if selection.type_condition is not None:
                    fragment_type = self.context.schema.get_type(selection.type_condition.name.value)
                total += self.selection(selection.selection_set, fragment_type, paged, visited)
            elif isinstance(selection, FragmentSpreadNode):
                name = selection.name.value
                fragment = self.context.get_fragment(name)
                if fragment is None or name in visited:
                    continue
                fragment_type = self.context.schema.get_type(fragment.type_condition.name.value)
                total += self.selection(fragment.selection_set, fragment_type, paged, visited | {name})
        return total

    def field(
        self,
        node: FieldNode,
        parent_type: Optional[GraphQLNamedType],
        paged: bool,
        visited: Set[str],
    ) -> int:
        definition = _field_definition(parent_type, node.name.value)
        if definition is None:
            # Unknown fields are reported by the standard validation rules.
            return 1 + self.selection(node.selection_set, None, False, visited)

        is_page = any(name in definition.args for name in _PAGING_ARGUMENTS)
        is_list = isinstance(get_nullable_type(definition.type), GraphQLList)
        if is_page:
            multiplier = self._page_size(node)
        elif is_list and not paged:
            multiplier = self.default_page_size
        else:
            multiplier = 1

        children = self.selection(
            node.selection_set, get_named_type(definition.type), is_page, visited
        )
        return 1 + multiplier * children

    def _page_size(self, node: FieldNode) -> int:
        for argument in node.arguments or ():
            if argument.name.value in _PAGING_ARGUMENTS and isinstance(argument.value, IntValueNode):
                return max(int(argument.value.value), 1)
        return self.default_page_size


def _field_definition(parent_type: Optional[GraphQLNamedType], name: str) -> Optional[GraphQLField]:
    if isinstance(parent_type, (GraphQLObjectType, GraphQLInterfaceType)):
        return parent_type.fields.get(name)
    return None


def depth_limiter(max_depth: int) -> Callable[[], QueryDepthLimiter]:
    def _record(depths: Dict[str, int]) -> None:
        if any(depth > max_depth for depth in depths.values()):
            increment_counter("graphql_operations_rejected_total", labels={"reason": "depth"})
            logger.info("graphql_operation_rejected", reason="depth", depths=depths, max_depth=max_depth)

    return partial(QueryDepthLimiter, max_depth=max_depth, callback=_record)


class ExecutionTimeout(SchemaExtension):
    """Fail resolvers that start or finish after the operation deadline.

    Strawberry creates one instance per operation, so the deadline is kept on
    the instance. Register it with ``execution_timeout``.
    """

    def __init__(self, *, timeout: timedelta) -> None:
        self.timeout = timeout.total_seconds()
        self.deadline: Optional[float] = None

    def on_execute(self) -> Iterator[None]:
        self.deadline = time.monotonic() + self.timeout
        yield

    def resolve(self, _next: Callable, root: Any, info: Any, *args: Any, **kwargs: Any) -> Any:
        if self.deadline is None or info.operation.operation == OperationType.SUBSCRIPTION:
            return _next(root, info, *args, **kwargs)

        remaining = self.deadline - time.monotonic()
        if remaining <= 0:
            raise self._timeout_error()

        result = _next(root, info, *args, **kwargs)
        if isawaitable(result):
            return self._await_within(result, remaining)
        return result

    async def _await_within(self, awaitable: Any, remaining: float) -> Any:
        try:
            return await asyncio.wait_for(awaitable, remaining)
        except asyncio.TimeoutError:
            raise self._timeout_error() from None

    def _timeout_error(self) -> GraphQLError:
        increment_counter("graphql_operations_rejected_total", labels={"reason": "timeout"})
        return GraphQLError(
            f"The request exceeded the configured timeout of {self.timeout:g} seconds.",
            extensions={"code": "REQUEST_TIMEOUT"},
        )


def execution_timeout(timeout: timedelta) -> Callable[[], ExecutionTimeout]:
    return partial(ExecutionTimeout, timeout=timeout)


def should_mask_error(error: GraphQLError) -> bool:
    """Mask errors raised by unexpected exceptions; GraphQL errors stay visible."""
    original = error.original_error
    return original is not None and not isinstance(original, GraphQLError)


__all__ = [
    "ExecutionTimeout",
    "complexity_limit_rule",
    "depth_limiter",
    "execution_timeout",
    "should_mask_error",
]
