"""Tests for the GraphQL endpoint, its limits and subscriptions."""

from __future__ import annotations

import asyncio
import inspect
import warnings
from datetime import timedelta
from uuid import uuid4

import pytest
import strawberry
from graphql import GraphQLError
from starlette.authentication import AuthCredentials, AuthenticationBackend, SimpleUser

from apiforge.config import bind_application_options
from apiforge.graphql.context import GraphQLContext
from apiforge.graphql.filtering import HumanSortInput, SortEnumType, apply_sort
from apiforge.graphql.limits import ExecutionTimeout, execution_timeout, should_mask_error
from apiforge.graphql.pagination import decode_cursor, encode_cursor
from apiforge.graphql.scalars import parse_timespan, serialize_timespan
from apiforge.graphql.schema import HUMAN_CREATED_TOPIC, build_schema
from apiforge.graphql.server import build_graphql_services
from apiforge.graphql.subscriptions import InMemoryPubSub
from apiforge.graphql.types import from_global_id, to_global_id
from apiforge.models import HumanRecord
from apiforge.repositories import LUKE

from conftest import settings

CREATE_HUMAN = """
mutation {
  createHuman(input: {name: "Ahsoka Tano", homePlanet: "Shili", appearsIn: [JEDI]}) {
    name
    homePlanet
    appearsIn
  }
}
"""


def graphql(client, query, variables=None, **kwargs):
    response = client.post("/graphql", json={"query": query, "variables": variables}, **kwargs)
    assert response.status_code == 200, response.text
    return response.json()


def error_messages(result):
    return [error["message"] for error in result.get("errors", [])]


@pytest.mark.integration
class TestQueries:
    def test_droids(self, client):
        result = graphql(client, "{ droids { nodes { name primaryFunction chargePeriod } } }")

        assert result["data"]["droids"]["nodes"] == [
            {"name": "C-3PO", "primaryFunction": "Protocol", "chargePeriod": "PT4H"},
            {"name": "R2-D2", "primaryFunction": "Astromech", "chargePeriod": "P1D"},
        ]

    def test_filter_and_sort(self, client):
        result = graphql(
            client,
            '{ humans(where: {name: {startsWith: "L"}}, order: [{name: DESC}]) { nodes { name } } }',
        )

        names = [node["name"] for node in result["data"]["humans"]["nodes"]]
        assert names == ["Luke Skywalker", "Leia Organa"]

    def test_or_filter(self, client):
        result = graphql(
            client,
            '{ humans(where: {or: [{homePlanet: {eq: "Corellia"}}, {homePlanet: {eq: "Eriadu"}}]}) '
            "{ nodes { name } } }",
        )

        names = [node["name"] for node in result["data"]["humans"]["nodes"]]
        assert names == ["Han Solo", "Wilhuff Tarkin"]

    def test_paging(self, client):
        query = """
        query ($after: String) {
          humans(first: 2, after: $after) {
            nodes { name }
            pageInfo { hasNextPage hasPreviousPage endCursor }
            totalCount
          }
        }
        """

        first_page = graphql(client, query)["data"]["humans"]
        assert [node["name"] for node in first_page["nodes"]] == ["Luke Skywalker", "Darth Vader"]
        assert first_page["pageInfo"]["hasNextPage"] is True
        assert first_page["pageInfo"]["hasPreviousPage"] is False
        assert first_page["totalCount"] == 5

        second_page = graphql(client, query, {"after": first_page["pageInfo"]["endCursor"]})
        humans = second_page["data"]["humans"]
        assert [node["name"] for node in humans["nodes"]] == ["Han Solo", "Leia Organa"]
        assert humans["pageInfo"]["hasPreviousPage"] is True

    def test_default_page_size(self, make_client):
        client = make_client(overrides={"GraphQL": {"Paging": {"DefaultPageSize": 3}}})

        result = graphql(client, "{ humans { nodes { name } } }")

        assert len(result["data"]["humans"]["nodes"]) == 3

    def test_total_count_disabled(self, make_client):
        client = make_client(overrides={"GraphQL": {"Paging": {"IncludeTotalCount": False}}})

        result = graphql(client, "{ humans { totalCount } }")

        assert result["data"]["humans"]["totalCount"] is None

    def test_page_size_above_maximum(self, make_client):
        client = make_client(overrides={"GraphQL": {"MaxAllowedComplexity": 1000}})

        result = graphql(client, "{ humans(first: 101) { nodes { name } } }")

        assert result["data"] is None
        assert error_messages(result) == [
            "The maximum allowed items per page were exceeded (101 > 100)."
        ]
        assert result["errors"][0]["extensions"]["code"] == "MAX_PAGE_SIZE_EXCEEDED"

    def test_node(self, client):
        result = graphql(
            client,
            "query ($id: ID!) { node(id: $id) { __typename ... on Human { name homePlanet } } }",
            {"id": to_global_id("Human", LUKE)},
        )

        assert result["data"]["node"] == {
            "__typename": "Human",
            "name": "Luke Skywalker",
            "homePlanet": "Tatooine",
        }

    def test_friends_are_batched_across_kinds(self, client):
        result = graphql(
            client,
            "query ($id: ID!) { human(id: $id) { friends { __typename name } } }",
            {"id": to_global_id("Human", LUKE)},
        )

        assert result["data"]["human"]["friends"] == [
            {"__typename": "Human", "name": "Han Solo"},
            {"__typename": "Human", "name": "Leia Organa"},
            {"__typename": "Droid", "name": "C-3PO"},
            {"__typename": "Droid", "name": "R2-D2"},
        ]

    def test_invalid_id(self, client):
        result = graphql(client, '{ human(id: "not-an-id") { name } }')

        assert error_messages(result) == ["The ID `not-an-id` has an invalid format."]

    def test_upper_directive(self, client):
        result = graphql(
            client,
            "query ($id: ID!) { human(id: $id) { name @upper } }",
            {"id": to_global_id("Human", LUKE)},
        )

        assert result["data"]["human"]["name"] == "LUKE SKYWALKER"

    def test_characters(self, client):
        result = graphql(client, "{ characters { __typename } }")

        kinds = [character["__typename"] for character in result["data"]["characters"]]
        assert kinds == ["Human"] * 5 + ["Droid"] * 2


@pytest.mark.integration
class TestOperationLimits:
    def test_execution_depth(self, make_client):
        client = make_client(
            overrides={"GraphQL": {"MaxAllowedExecutionDepth": 2, "MaxAllowedComplexity": 10000}}
        )

        result = graphql(client, "{ humans { nodes { friends { friends { name } } } } }")

        assert "data" not in result or result["data"] is None
        assert "exceeds maximum operation depth of 2" in error_messages(result)[0]

    def test_complexity(self, make_client):
        client = make_client(overrides={"GraphQL": {"MaxAllowedComplexity": 5}})

        result = graphql(client, "{ humans(first: 3) { nodes { name } } }")

        assert error_messages(result) == [
            "The maximum allowed operation complexity was exceeded (7 > 5)."
        ]
        assert result["errors"][0]["extensions"]["code"] == "MAX_COMPLEXITY_EXCEEDED"

    def test_complexity_within_limit(self, make_client):
        client = make_client(overrides={"GraphQL": {"MaxAllowedComplexity": 7}})

        result = graphql(client, "{ humans(first: 3) { nodes { name } } }")

        assert "errors" not in result
        assert len(result["data"]["humans"]["nodes"]) == 3

    def test_complexity_counts_default_page_size(self, make_client):
        client = make_client(overrides={"GraphQL": {"MaxAllowedComplexity": 20}})

        result = graphql(client, "{ humans { nodes { name } } }")

        # 1 + 10 * (nodes + name)
        assert error_messages(result) == [
            "The maximum allowed operation complexity was exceeded (21 > 20)."
        ]

    def test_complexity_counts_nested_lists(self, make_client):
        client = make_client(overrides={"GraphQL": {"MaxAllowedComplexity": 10}})

        result = graphql(client, "{ humans { nodes { friends { friends { name } } } } }")

        assert result["data"] is None
        assert error_messages(result) == [
            "The maximum allowed operation complexity was exceeded (1121 > 10)."
        ]

    def test_complexity_of_fragments(self, make_client):
        client = make_client(overrides={"GraphQL": {"MaxAllowedComplexity": 11}})

        result = graphql(
            client,
            "query ($id: ID!) { human(id: $id) { ...Friends } } "
            "fragment Friends on Human { friends { name } }",
            {"id": to_global_id("Human", LUKE)},
        )

        # human + friends (1 + 10 * name)
        assert error_messages(result) == [
            "The maximum allowed operation complexity was exceeded (12 > 11)."
        ]


@pytest.mark.integration
class TestAuthorization:
    def test_anonymous_mutation_is_denied(self, client):
        result = graphql(client, CREATE_HUMAN)

        assert result["data"] is None
        assert error_messages(result) == [
            "The current user is not authorized to access this resource."
        ]
        assert result["errors"][0]["extensions"]["code"] == "AUTH_NOT_AUTHENTICATED"

    def test_forwarded_identity_is_ignored_by_default(self, client):
        result = graphql(client, CREATE_HUMAN, headers={"X-Forwarded-User": "mallory"})

        assert result["data"] is None
        assert result["errors"][0]["extensions"]["code"] == "AUTH_NOT_AUTHENTICATED"

    def test_authenticated_mutation(self, make_client):
        client = make_client(overrides={"Authentication": {"TrustForwardedIdentity": True}})

        result = graphql(client, CREATE_HUMAN, headers={"X-Forwarded-User": "leia"})

        assert result["data"]["createHuman"] == {
            "name": "Ahsoka Tano",
            "homePlanet": "Shili",
            "appearsIn": ["JEDI"],
        }
        humans = graphql(client, '{ humans(where: {name: {eq: "Ahsoka Tano"}}) { totalCount } }')
        assert humans["data"]["humans"]["totalCount"] == 1

    def test_custom_backend(self, make_client):
        class TokenBackend(AuthenticationBackend):
            async def authenticate(self, conn):
                if conn.headers.get("Authorization") == "Bearer secret":
                    return AuthCredentials(["write"]), SimpleUser("han")
                return None

        client = make_client(auth_backend=TokenBackend())

        denied = graphql(client, CREATE_HUMAN, headers={"X-Forwarded-User": "han"})
        allowed = graphql(client, CREATE_HUMAN, headers={"Authorization": "Bearer secret"})

        assert denied["data"] is None
        assert allowed["data"]["createHuman"]["name"] == "Ahsoka Tano"

    def test_authorization_disabled(self, make_client):
        client = make_client(overrides={"Features": {"Authorization": False}})

        result = graphql(client, CREATE_HUMAN)

        assert result["data"]["createHuman"]["name"] == "Ahsoka Tano"


@pytest.mark.unit
class TestHelpers:
    @pytest.mark.parametrize("direction", [SortEnumType.ASC, SortEnumType.DESC])
    def test_missing_values_sort_last(self, direction):
        records = [
            HumanRecord(uuid4(), "Rey"),
            HumanRecord(uuid4(), "Luke", home_planet="Tatooine"),
            HumanRecord(uuid4(), "Leia", home_planet="Alderaan"),
        ]

        ordered = apply_sort(records, [HumanSortInput(home_planet=direction)])

        planets = [record.home_planet for record in ordered]
        expected = ["Alderaan", "Tatooine"]
        if direction is SortEnumType.DESC:
            expected.reverse()
        assert planets == [*expected, None]

    def test_global_id(self):
        assert from_global_id(to_global_id("Droid", LUKE)) == ("Droid", LUKE)

    def test_invalid_global_id(self):
        with pytest.raises(GraphQLError, match="invalid format"):
            from_global_id("!!")

    def test_cursor(self):
        assert decode_cursor(encode_cursor(7)) == 7

    def test_invalid_cursor(self):
        with pytest.raises(GraphQLError, match="Invalid cursor"):
            decode_cursor("bm9wZQ==")

    @pytest.mark.parametrize(
        "value,expected",
        [
            (timedelta(hours=4), "PT4H"),
            (timedelta(days=1), "P1D"),
            (timedelta(days=1, minutes=30), "P1DT30M"),
            (timedelta(0), "PT0S"),
        ],
    )
    def test_serialize_timespan(self, value, expected):
        assert serialize_timespan(value) == expected

    def test_parse_timespan(self):
        assert parse_timespan("PT4H30M") == timedelta(hours=4, minutes=30)

    def test_should_mask_error(self):
        assert should_mask_error(GraphQLError("boom", original_error=ValueError("boom")))
        assert not should_mask_error(GraphQLError("Invalid cursor"))
        assert not should_mask_error(
            GraphQLError("wrapped", original_error=GraphQLError("inner"))
        )


@strawberry.type
class SlowQuery:
    @strawberry.field
    async def slow(self) -> str:
        await asyncio.sleep(1)
        return "done"

    @strawberry.field
    async def fast(self) -> str:
        return "done"


@pytest.mark.asyncio
async def test_execution_timeout():
    schema = strawberry.Schema(
        query=SlowQuery,
        extensions=[execution_timeout(timedelta(milliseconds=50))],
    )

    result = await schema.execute("{ slow }")

    assert result.data is None
    assert [error.message for error in result.errors] == [
        "The request exceeded the configured timeout of 0.05 seconds."
    ]
    assert result.errors[0].extensions == {"code": "REQUEST_TIMEOUT"}


@pytest.mark.asyncio
async def test_execution_within_timeout():
    schema = strawberry.Schema(
        query=SlowQuery,
        extensions=[execution_timeout(timedelta(seconds=5))],
    )

    result = await schema.execute("{ fast }")

    assert result.errors is None
    assert result.data == {"fast": "done"}


@pytest.mark.unit
def test_schema_extensions_are_created_per_operation():
    options = bind_application_options(settings(), "Test")

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        schema = build_schema(options.graphql)

    assert not [w for w in caught if "extension instance" in str(w.message)]
    first, second = schema.get_extensions(), schema.get_extensions()
    timeouts = [ext for ext in first + second if isinstance(ext, ExecutionTimeout)]
    assert len(timeouts) == 2
    assert timeouts[0] is not timeouts[1]


@pytest.mark.asyncio
async def test_error_details_are_masked_outside_test():
    options = bind_application_options(settings("Production"), "Production")
    schema = build_schema(options.graphql)
    services = build_graphql_services(options, InMemoryPubSub())

    result = await schema.execute(
        '{ humans(after: "bm9wZQ==") { totalCount } }',
        context_value=GraphQLContext(services),
    )

    # GraphQL errors stay visible when exception details are hidden
    assert [error.message for error in result.errors] == ["Invalid cursor: bm9wZQ=="]


@pytest.mark.asyncio
async def test_subscription_receives_created_humans():
    options = bind_application_options(
        settings(overrides={"Features": {"Authorization": False}}), "Test"
    )
    pubsub = InMemoryPubSub()
    services = build_graphql_services(options, pubsub)
    schema = build_schema(options.graphql)

    subscription = schema.subscribe(
        "subscription { onHumanCreated { name homePlanet } }",
        context_value=GraphQLContext(services),
    )
    if inspect.isawaitable(subscription):
        subscription = await subscription

    next_result = asyncio.ensure_future(subscription.__anext__())
    for _ in range(100):
        if pubsub.subscriber_count(HUMAN_CREATED_TOPIC):
            break
        await asyncio.sleep(0.01)
    assert pubsub.subscriber_count(HUMAN_CREATED_TOPIC) == 1

    mutation = await schema.execute(CREATE_HUMAN, context_value=GraphQLContext(services))
    assert mutation.errors is None

    result = await asyncio.wait_for(next_result, timeout=5)
    assert result.data == {"onHumanCreated": {"name": "Ahsoka Tano", "homePlanet": "Shili"}}

    await subscription.aclose()
