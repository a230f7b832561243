"""Request context shared by GraphQL resolvers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from strawberry.fastapi import BaseContext

from apiforge.auth import is_authenticated
from apiforge.graphql.dataloaders import Loaders
from apiforge.graphql.subscriptions import PubSub
from apiforge.options import GraphQLOptions
from apiforge.repositories import DroidRepository, HumanRepository


@dataclass
class GraphQLServices:
    """Singletons created once at startup and shared by every request."""

    options: GraphQLOptions
    humans: HumanRepository
    droids: DroidRepository
    pubsub: PubSub
    authorization_enabled: bool = True


class GraphQLContext(BaseContext):
    def __init__(self, services: GraphQLServices) -> None:
        super().__init__()
        self.services = services
        self.loaders = Loaders.create(services.humans, services.droids)

    @property
    def is_authenticated(self) -> bool:
        connection = self.request
        if connection is None:
            return False
        return is_authenticated(connection)

    @property
    def user_name(self) -> Optional[str]:
        if not self.is_authenticated:
            return None
        return self.request.user.display_name


__all__ = ["GraphQLContext", "GraphQLServices"]
