"""
GraphQL schema assembly.

Combines the Query, Mutation and Subscription root types with the
extensions selected by ``GraphQLOptions`` and the enabled features.
"""

from __future__ import annotations

from functools import partial
from typing import Any, AsyncGenerator, List, Optional
from uuid import UUID, uuid4

import strawberry
from graphql import GraphQLError
from strawberry.extensions import AddValidationRules, MaskErrors
from strawberry.extensions.tracing import ApolloTracingExtension, OpenTelemetryExtension
from strawberry.types import Info

from apiforge.graphql.directives import upper
from apiforge.graphql.filtering import (
    DroidFilterInput,
    DroidSortInput,
    HumanFilterInput,
    HumanSortInput,
    apply_filter,
    apply_sort,
)
from apiforge.graphql.limits import (
    complexity_limit_rule,
    depth_limiter,
    execution_timeout,
    should_mask_error,
)
from apiforge.graphql.pagination import Connection, paginate
from apiforge.graphql.permissions import IsAuthenticated
from apiforge.graphql.types import (
    Character,
    Droid,
    Human,
    HumanInput,
    Node,
    from_global_id,
    to_character,
)
from apiforge.models import HumanRecord
from apiforge.observability.logging import get_logger
from apiforge.options import GraphQLOptions

logger = get_logger(__name__)

HUMAN_CREATED_TOPIC = "human_created"


def _expect_id(global_id: str, type_name: str) -> UUID:
    kind, id = from_global_id(global_id)
    if kind != type_name:
        raise GraphQLError(f"The ID `{global_id}` is not a {type_name} ID.")
    return id


@strawberry.type
class Query:
    @strawberry.field(description="Fetches an object given its ID.")
    async def node(self, info: Info, id: strawberry.ID) -> Optional[Node]:
        kind, record_id = from_global_id(id)
        loaders = info.context.loaders
        if kind == "Human":
            record = await loaders.human.load(record_id)
            return Human.from_record(record) if record else None
        if kind == "Droid":
            record = await loaders.droid.load(record_id)
            return Droid.from_record(record) if record else None
        return None

    @strawberry.field(description="Gets a human by ID.")
    async def human(self, info: Info, id: strawberry.ID) -> Optional[Human]:
        record = await info.context.loaders.human.load(_expect_id(id, "Human"))
        return Human.from_record(record) if record else None

    @strawberry.field(description="Gets a droid by ID.")
    async def droid(self, info: Info, id: strawberry.ID) -> Optional[Droid]:
        record = await info.context.loaders.droid.load(_expect_id(id, "Droid"))
        return Droid.from_record(record) if record else None

    @strawberry.field(description="Gets a page of humans.")
    async def humans(
        self,
        info: Info,
        first: Optional[int] = None,
        after: Optional[str] = None,
        where: Optional[HumanFilterInput] = None,
        order: Optional[List[HumanSortInput]] = None,
    ) -> Connection[Human]:
        services = info.context.services
        records = apply_sort(apply_filter(await services.humans.list(), where), order)
        return paginate(
            [Human.from_record(record) for record in records],
            services.options.paging,
            first=first,
            after=after,
        )

    @strawberry.field(description="Gets a page of droids.")
    async def droids(
        self,
        info: Info,
        first: Optional[int] = None,
        after: Optional[str] = None,
        where: Optional[DroidFilterInput] = None,
        order: Optional[List[DroidSortInput]] = None,
    ) -> Connection[Droid]:
        services = info.context.services
        records = apply_sort(apply_filter(await services.droids.list(), where), order)
        return paginate(
            [Droid.from_record(record) for record in records],
            services.options.paging,
            first=first,
            after=after,
        )

    @strawberry.field(description="Gets every character, humans first.")
    async def characters(self, info: Info) -> List[Character]:
        services = info.context.services
        records = [*await services.humans.list(), *await services.droids.list()]
        return [to_character(record) for record in records]


@strawberry.type
class Mutation:
    @strawberry.mutation(
        description="Creates a human and notifies onHumanCreated subscribers.",
        permission_classes=[IsAuthenticated],
    )
    async def create_human(self, info: Info, input: HumanInput) -> Human:
        services = info.context.services
        record = HumanRecord(
            id=uuid4(),
            name=input.name,
            home_planet=input.home_planet,
            date_of_birth=input.date_of_birth,
            friends=[from_global_id(friend)[1] for friend in input.friends],
            appears_in=list(input.appears_in),
        )
        await services.humans.add(record)
        await services.pubsub.publish(HUMAN_CREATED_TOPIC, record.to_dict())
        logger.info("human_created", id=str(record.id), user=info.context.user_name)
        return Human.from_record(record)


@strawberry.type
class Subscription:
    @strawberry.subscription(description="Notifies when a human is created.")
    async def on_human_created(self, info: Info) -> AsyncGenerator[Human, None]:
        subscription = await info.context.services.pubsub.subscribe(HUMAN_CREATED_TOPIC)
        try:
            async for message in subscription:
                yield Human.from_record(HumanRecord.from_dict(message))
        finally:
            await subscription.aclose()


def build_extensions(
    options: GraphQLOptions,
    tracing_enabled: bool = False,
) -> List[Any]:
    extensions: List[Any] = [
        depth_limiter(options.max_allowed_execution_depth),
        partial(
            AddValidationRules,
            [complexity_limit_rule(options.max_allowed_complexity, options.paging.default_page_size)],
        ),
        execution_timeout(options.request.execution_timeout),
    ]
    if not options.request.include_exception_details:
        extensions.append(partial(MaskErrors, should_mask_error=should_mask_error))
    if options.enable_apollo_tracing:
        extensions.append(ApolloTracingExtension)
    if tracing_enabled:
        extensions.append(OpenTelemetryExtension)
    return extensions


def build_schema(
    options: GraphQLOptions,
    subscriptions: bool = True,
    tracing_enabled: bool = False,
) -> strawberry.Schema:
    """Create the schema for the configured limits and features."""
    schema = strawberry.Schema(
        query=Query,
        mutation=Mutation,
        subscription=Subscription if subscriptions else None,
        types=[Human, Droid],
        directives=[upper],
        extensions=build_extensions(options, tracing_enabled),
    )
    logger.debug(
        "graphql_schema_built",
        subscriptions=subscriptions,
        apollo_tracing=options.enable_apollo_tracing,
        mask_errors=not options.request.include_exception_details,
    )
    return schema


__all__ = ["HUMAN_CREATED_TOPIC", "Mutation", "Query", "Subscription", "build_schema"]
