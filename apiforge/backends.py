"""
Backend selection for the distributed cache, persisted query storage and
subscription pub/sub.

The storage backend is chosen once at startup from ``Storage.Backend``
(in-memory under the Test environment unless configured otherwise). The redis
backend shares one client between all three.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from apiforge.caching import DistributedCache, InMemoryDistributedCache, RedisDistributedCache
from apiforge.exceptions import MissingSectionError
from apiforge.graphql.persisted_queries import (
    InMemoryQueryStorage,
    QueryStorage,
    RedisQueryStorage,
)
from apiforge.graphql.subscriptions import InMemoryPubSub, PubSub, RedisPubSub
from apiforge.observability.logging import get_logger
from apiforge.options import ApplicationOptions, StorageBackend
from apiforge.store import create_store_client

logger = get_logger(__name__)


@dataclass
class Backends:
    kind: StorageBackend
    cache: DistributedCache
    query_storage: QueryStorage
    pubsub: PubSub
    redis: Optional[Any] = None

    async def start(self) -> None:
        """Verify the external store is reachable; connection errors propagate."""
        if self.redis is not None:
            await self.redis.ping()
            logger.info("redis_connected")

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()


def build_backends(options: ApplicationOptions) -> Backends:
    """Select backends for the configured storage kind.

    Raises:
        MissingSectionError: if the redis backend is selected without a ``Redis`` section
    """
    kind = options.backend
    if kind is StorageBackend.IN_MEMORY:
        logger.info("backends_selected", backend=kind.value)
        return Backends(
            kind=kind,
            cache=InMemoryDistributedCache(),
            query_storage=InMemoryQueryStorage(),
            pubsub=InMemoryPubSub(),
        )

    if options.redis is None:
        raise MissingSectionError("Redis")

    client = create_store_client(options.redis)
    instance_name = options.redis.instance_name
    logger.info("backends_selected", backend=kind.value, instance_name=instance_name)
    return Backends(
        kind=kind,
        cache=RedisDistributedCache(client, instance_name),
        query_storage=RedisQueryStorage(client, instance_name),
        pubsub=RedisPubSub(client, instance_name),
        redis=client,
    )


__all__ = ["Backends", "build_backends"]
