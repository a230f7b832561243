"""
Cursor pagination following the Relay connection model.

Cursors are opaque base64 encodings of list offsets. Page sizes are bounded
by the ``GraphQL.Paging`` options: ``first`` defaults to ``DefaultPageSize``
and values above ``MaxPageSize`` are rejected.
"""

from __future__ import annotations

import base64
import binascii
from typing import Generic, List, Optional, Sequence, TypeVar

import strawberry
from graphql import GraphQLError

from apiforge.observability.metrics import increment_counter
from apiforge.options import PagingOptions

T = TypeVar("T")

_CURSOR_PREFIX = "cursor:"


@strawberry.type
class PageInfo:
    has_next_page: bool
    has_previous_page: bool
    start_cursor: Optional[str]
    end_cursor: Optional[str]


@strawberry.type
class Edge(Generic[T]):
    cursor: str
    node: T


@strawberry.type
class Connection(Generic[T]):
    edges: List[Edge[T]]
    nodes: List[T]
    page_info: PageInfo
    total_count: Optional[int] = strawberry.field(
        description="Total number of items; null when total counts are disabled."
    )


def encode_cursor(offset: int) -> str:
    return base64.b64encode(f"{_CURSOR_PREFIX}{offset}".encode()).decode()


def decode_cursor(cursor: str) -> int:
    try:
        value = base64.b64decode(cursor.encode(), validate=True).decode()
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise GraphQLError(f"Invalid cursor: {cursor}") from exc
    if not value.startswith(_CURSOR_PREFIX) or not value[len(_CURSOR_PREFIX):].isdigit():
        raise GraphQLError(f"Invalid cursor: {cursor}")
    return int(value[len(_CURSOR_PREFIX):])


def resolve_page_size(first: Optional[int], paging: PagingOptions) -> int:
    """Apply the default page size and enforce the maximum.

    Raises:
        GraphQLError: if ``first`` is negative or exceeds ``MaxPageSize``
    """
    if first is None:
        return paging.default_page_size
    if first < 0:
        raise GraphQLError("The argument `first` must be non-negative.")
    if first > paging.max_page_size:
        increment_counter("graphql_operations_rejected_total", labels={"reason": "paging"})
        raise GraphQLError(
            f"The maximum allowed items per page were exceeded ({first} > {paging.max_page_size}).",
            extensions={"code": "MAX_PAGE_SIZE_EXCEEDED"},
        )
    return first


def paginate(
    items: Sequence[T],
    paging: PagingOptions,
    first: Optional[int] = None,
    after: Optional[str] = None,
) -> Connection[T]:
    size = resolve_page_size(first, paging)
    start = decode_cursor(after) + 1 if after else 0
    page = list(items[start:start + size])
    edges = [Edge(cursor=encode_cursor(start + index), node=node) for index, node in enumerate(page)]

    return Connection(
        edges=edges,
        nodes=page,
        page_info=PageInfo(
            has_next_page=start + len(page) < len(items),
            has_previous_page=start > 0,
            start_cursor=edges[0].cursor if edges else None,
            end_cursor=edges[-1].cursor if edges else None,
        ),
        total_count=len(items) if paging.include_total_count else None,
    )


__all__ = [
    "Connection",
    "Edge",
    "PageInfo",
    "decode_cursor",
    "encode_cursor",
    "paginate",
    "resolve_page_size",
]
