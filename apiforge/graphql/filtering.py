"""
Filtering (``where``) and sorting (``order``) inputs for list fields.

Filter and sort inputs name the record attributes they apply to, so
``apply_filter`` and ``apply_sort`` work for any record type.
"""

from __future__ import annotations

import dataclasses
from enum import Enum
from operator import attrgetter
from typing import Any, List, Optional, Sequence, TypeVar

import strawberry

R = TypeVar("R")


@strawberry.input
class StringOperationFilterInput:
    eq: Optional[str] = None
    neq: Optional[str] = None
    contains: Optional[str] = None
    starts_with: Optional[str] = None
    in_: Optional[List[str]] = strawberry.field(name="in", default=None)

    def matches(self, value: Optional[str]) -> bool:
        if self.eq is not None and value != self.eq:
            return False
        if self.neq is not None and value == self.neq:
            return False
        if self.contains is not None and (value is None or self.contains not in value):
            return False
        if self.starts_with is not None and (value is None or not value.startswith(self.starts_with)):
            return False
        if self.in_ is not None and value not in self.in_:
            return False
        return True


@strawberry.input
class HumanFilterInput:
    and_: Optional[List[HumanFilterInput]] = strawberry.field(name="and", default=None)
    or_: Optional[List[HumanFilterInput]] = strawberry.field(name="or", default=None)
    name: Optional[StringOperationFilterInput] = None
    home_planet: Optional[StringOperationFilterInput] = None


@strawberry.input
class DroidFilterInput:
    and_: Optional[List[DroidFilterInput]] = strawberry.field(name="and", default=None)
    or_: Optional[List[DroidFilterInput]] = strawberry.field(name="or", default=None)
    name: Optional[StringOperationFilterInput] = None
    primary_function: Optional[StringOperationFilterInput] = None


@strawberry.enum
class SortEnumType(Enum):
    ASC = "ASC"
    DESC = "DESC"


@strawberry.input
class HumanSortInput:
    name: Optional[SortEnumType] = None
    home_planet: Optional[SortEnumType] = None
    date_of_birth: Optional[SortEnumType] = None


@strawberry.input
class DroidSortInput:
    name: Optional[SortEnumType] = None
    primary_function: Optional[SortEnumType] = None
    manufactured: Optional[SortEnumType] = None


def matches_filter(where: Any, record: Any) -> bool:
    """True when ``record`` satisfies every condition of ``where``."""
    if where is None:
        return True
    for field in dataclasses.fields(where):
        condition = getattr(where, field.name)
        if condition is None:
            continue
        if field.name == "and_":
            if not all(matches_filter(child, record) for child in condition):
                return False
        elif field.name == "or_":
            if not any(matches_filter(child, record) for child in condition):
                return False
        elif not condition.matches(getattr(record, field.name)):
            return False
    return True


def apply_filter(records: Sequence[R], where: Any) -> List[R]:
    return [record for record in records if matches_filter(where, record)]


def apply_sort(records: Sequence[R], order: Optional[Sequence[Any]]) -> List[R]:
    """Sort by each ``order`` entry in turn; earlier entries take precedence."""
    result = list(records)
    if not order:
        return result

    keys = []
    for entry in order:
        for field in dataclasses.fields(entry):
            direction = getattr(entry, field.name)
            if direction is not None:
                keys.append((field.name, direction))

    # Stable sorts applied from the least to the most significant key.
    # Missing values go last in both directions.
    for name, direction in reversed(keys):
        present = [record for record in result if getattr(record, name) is not None]
        missing = [record for record in result if getattr(record, name) is None]
        present.sort(key=attrgetter(name), reverse=direction is SortEnumType.DESC)
        result = present + missing
    return result


__all__ = [
    "DroidFilterInput",
    "DroidSortInput",
    "HumanFilterInput",
    "HumanSortInput",
    "SortEnumType",
    "StringOperationFilterInput",
    "apply_filter",
    "apply_sort",
    "matches_filter",
]
