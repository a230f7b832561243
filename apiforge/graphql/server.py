"""
GraphQL server composition.

``build_graphql_router`` turns the bound options and the selected backends
into a strawberry ``GraphQLRouter`` mounted at ``/graphql``:

- schema limits and extensions from ``GraphQLOptions``
- subscriptions over graphql-transport-ws / graphql-ws when enabled
- GraphiQL only in the Development environment

Persisted queries are resolved in front of the router by
``PersistedQueryMiddleware``, registered by the service composer.
"""

from __future__ import annotations

from typing import Optional, Tuple

from starlette.requests import HTTPConnection
from strawberry.fastapi import GraphQLRouter
from strawberry.subscriptions import GRAPHQL_TRANSPORT_WS_PROTOCOL, GRAPHQL_WS_PROTOCOL

from apiforge.graphql.context import GraphQLContext, GraphQLServices
from apiforge.graphql.schema import build_schema
from apiforge.graphql.subscriptions import PubSub
from apiforge.observability.logging import get_logger
from apiforge.options import ApplicationOptions
from apiforge.repositories import DroidRepository, HumanRepository

logger = get_logger(__name__)

GRAPHQL_PATH = "/graphql"


def build_graphql_services(
    options: ApplicationOptions,
    pubsub: PubSub,
    humans: Optional[HumanRepository] = None,
    droids: Optional[DroidRepository] = None,
) -> GraphQLServices:
    return GraphQLServices(
        options=options.graphql,
        humans=humans or HumanRepository(),
        droids=droids or DroidRepository(),
        pubsub=pubsub,
        authorization_enabled=options.features.authorization,
    )


def build_graphql_router(
    options: ApplicationOptions,
    pubsub: PubSub,
    humans: Optional[HumanRepository] = None,
    droids: Optional[DroidRepository] = None,
) -> GraphQLRouter:
    """Assemble the GraphQL router for the bound options.

    Args:
        options: Bound application options; the ``GraphQL`` section must be present
        pubsub: Subscription backend selected for the storage backend
        humans: Human repository shared with the REST API
        droids: Droid repository shared with the REST API

    Returns:
        Router to include with prefix ``GRAPHQL_PATH``
    """
    features = options.features
    schema = build_schema(
        options.graphql,
        subscriptions=features.subscriptions,
        tracing_enabled=features.open_telemetry,
    )
    services = build_graphql_services(options, pubsub, humans, droids)

    async def get_context(connection: HTTPConnection) -> GraphQLContext:
        return GraphQLContext(services)

    protocols: Tuple[str, ...] = ()
    if features.subscriptions:
        protocols = (GRAPHQL_TRANSPORT_WS_PROTOCOL, GRAPHQL_WS_PROTOCOL)

    router = GraphQLRouter(
        schema,
        context_getter=get_context,
        graphql_ide="graphiql" if options.is_development else None,
        subscription_protocols=protocols,
    )
    logger.info(
        "graphql_server_configured",
        path=GRAPHQL_PATH,
        subscriptions=features.subscriptions,
        graphql_ide=options.is_development,
    )
    return router


__all__ = ["GRAPHQL_PATH", "build_graphql_router", "build_graphql_services"]
