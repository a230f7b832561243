"""Tests for health checks, metrics helpers and correlation IDs."""

from __future__ import annotations

import pytest

from apiforge.config import bind_application_options
from apiforge.observability.health import check_health
from apiforge.observability.logging import (
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from apiforge.observability.metrics import get_metrics_output, increment_counter

from conftest import settings


class PingingRedis:
    def __init__(self, error=None):
        self.error = error

    async def ping(self):
        if self.error:
            raise self.error
        return True


@pytest.mark.asyncio
async def test_health_without_external_store():
    options = bind_application_options(settings(), "Test")

    status = await check_health(options, uptime_seconds=1.5)

    assert status.is_healthy
    assert status.to_dict()["uptime_seconds"] == 1.5
    assert [component.name for component in status.components] == ["options"]


@pytest.mark.asyncio
async def test_health_with_reachable_store():
    options = bind_application_options(settings("Production"), "Production")

    status = await check_health(options, redis=PingingRedis())

    assert status.is_healthy
    assert [component.name for component in status.components] == ["options", "redis"]


@pytest.mark.asyncio
async def test_health_with_unreachable_store():
    options = bind_application_options(settings("Production"), "Production")

    status = await check_health(options, redis=PingingRedis(ConnectionError("refused")))

    assert status.status == "unhealthy"
    redis = status.components[1]
    assert redis.message == "Redis error: refused"
    assert redis.metadata == {"error": "refused"}


@pytest.mark.unit
def test_counter_is_exported():
    increment_counter("graphql_operations_rejected_total", labels={"reason": "depth"})

    output = get_metrics_output().decode()

    assert 'apiforge_graphql_operations_rejected_total{reason="depth"}' in output


@pytest.mark.unit
def test_correlation_id_lifecycle():
    assert set_correlation_id("abc") == "abc"
    assert get_correlation_id() == "abc"

    clear_correlation_id()
    assert get_correlation_id() is None

    generated = set_correlation_id()
    assert generated.startswith("req-")
    clear_correlation_id()
