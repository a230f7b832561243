"""
GraphQL object types for the Star Wars sample domain.

Every object implements the Relay ``Node`` interface. Global IDs are base64
encodings of ``"{TypeName}:{uuid}"`` so ``node(id:)`` can resolve any object.
"""

from __future__ import annotations

import base64
import binascii
from datetime import date, datetime
from typing import List, Optional, Tuple
from uuid import UUID

import strawberry
from graphql import GraphQLError
from strawberry.types import Info

from apiforge import models
from apiforge.graphql.scalars import TimeSpan
from apiforge.repositories import CharacterRecord

Episode = strawberry.enum(models.Episode, description="The Star Wars films.")


def to_global_id(type_name: str, id: UUID) -> strawberry.ID:
    return strawberry.ID(base64.b64encode(f"{type_name}:{id}".encode()).decode())


def from_global_id(global_id: str) -> Tuple[str, UUID]:
    """Split a global ID into its type name and UUID.

    Raises:
        GraphQLError: if the value is not a valid global ID
    """
    try:
        decoded = base64.b64decode(global_id.encode(), validate=True).decode()
        type_name, _, raw_id = decoded.partition(":")
        return type_name, UUID(raw_id)
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise GraphQLError(f"The ID `{global_id}` has an invalid format.") from exc


@strawberry.interface(description="An object with a globally unique ID.")
class Node:
    id: strawberry.ID


@strawberry.interface(description="A character in the Star Wars trilogy.")
class Character(Node):
    name: str
    appears_in: List[Episode]
    friend_ids: strawberry.Private[List[UUID]]

    @strawberry.field(description="The friends of the character.")
    async def friends(self, info: Info) -> List[Character]:
        records = await info.context.loaders.load_characters(self.friend_ids)
        return [to_character(record) for record in records]


@strawberry.type(description="A human character.")
class Human(Character):
    home_planet: Optional[str]
    date_of_birth: Optional[date]

    @classmethod
    def from_record(cls, record: models.HumanRecord) -> "Human":
        return cls(
            id=to_global_id("Human", record.id),
            name=record.name,
            appears_in=list(record.appears_in),
            friend_ids=list(record.friends),
            home_planet=record.home_planet,
            date_of_birth=record.date_of_birth,
        )


@strawberry.type(description="A mechanical character.")
class Droid(Character):
    primary_function: Optional[str]
    charge_period: TimeSpan
    manufactured: Optional[datetime]

    @classmethod
    def from_record(cls, record: models.DroidRecord) -> "Droid":
        return cls(
            id=to_global_id("Droid", record.id),
            name=record.name,
            appears_in=list(record.appears_in),
            friend_ids=list(record.friends),
            primary_function=record.primary_function,
            charge_period=record.charge_period,
            manufactured=record.manufactured,
        )


def to_character(record: CharacterRecord) -> Character:
    if isinstance(record, models.HumanRecord):
        return Human.from_record(record)
    return Droid.from_record(record)


@strawberry.input(description="A human to create.")
class HumanInput:
    name: str
    home_planet: Optional[str] = None
    date_of_birth: Optional[date] = None
    friends: List[strawberry.ID] = strawberry.field(default_factory=list)
    appears_in: List[Episode] = strawberry.field(default_factory=list)


__all__ = [
    "Character",
    "Droid",
    "Episode",
    "Human",
    "HumanInput",
    "Node",
    "from_global_id",
    "to_character",
    "to_global_id",
]
