"""GraphQL server for apiforge (strawberry)."""

from apiforge.graphql.schema import build_schema
from apiforge.graphql.server import GRAPHQL_PATH, build_graphql_router

__all__ = ["GRAPHQL_PATH", "build_graphql_router", "build_schema"]
