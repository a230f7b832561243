"""Executable directives available to clients."""

import strawberry
from strawberry.directive import DirectiveLocation, DirectiveValue


@strawberry.directive(
    locations=[DirectiveLocation.FIELD],
    description="Converts a string field to upper case.",
)
def upper(value: DirectiveValue[str]) -> str:
    return value.upper()


__all__ = ["upper"]
