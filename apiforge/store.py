"""
Connection to the external in-memory data store.

A single ``redis.asyncio.Redis`` client is shared by the distributed cache,
persisted query storage and subscription pub/sub. redis-py manages its own
connection pool, so the client is safe to share between concurrent requests.

Connection strings may be redis URLs (``redis://host:6379/0``) or the
comma-separated form ``host:port,password=secret,ssl=true,defaultDatabase=1``.
"""

from __future__ import annotations

from typing import Dict, List
from urllib.parse import quote

import redis.asyncio as aioredis

from apiforge.exceptions import ConfigError
from apiforge.observability.logging import get_logger
from apiforge.options import RedisOptions

logger = get_logger(__name__)

DEFAULT_PORT = 6379


def to_redis_url(connection_string: str) -> str:
    """Normalize a connection string into a redis URL.

    Raises:
        ConfigError: if the string names no endpoint or carries an unknown option
    """
    value = connection_string.strip()
    if "://" in value:
        return value

    parts = [part.strip() for part in value.split(",") if part.strip()]
    endpoints: List[str] = [part for part in parts if "=" not in part]
    settings: Dict[str, str] = {}
    for part in parts:
        if "=" in part:
            key, _, option = part.partition("=")
            settings[key.strip().lower()] = option.strip()

    if not endpoints:
        raise ConfigError(f"Redis connection string has no endpoint: {connection_string!r}")

    host, _, port = endpoints[0].partition(":")
    port = port or str(DEFAULT_PORT)

    known = {"password", "user", "ssl", "defaultdatabase", "abortconnect", "connecttimeout"}
    unknown = set(settings) - known
    if unknown:
        raise ConfigError(f"Unsupported redis connection options: {', '.join(sorted(unknown))}")

    scheme = "rediss" if settings.get("ssl", "false").lower() == "true" else "redis"
    credentials = ""
    if "password" in settings:
        user = quote(settings.get("user", ""), safe="")
        credentials = f"{user}:{quote(settings['password'], safe='')}@"
    database = settings.get("defaultdatabase", "0")
    return f"{scheme}://{credentials}{host}:{port}/{database}"


def create_store_client(options: RedisOptions) -> aioredis.Redis:
    """Create the shared store client; connections are opened lazily by the pool."""
    url = to_redis_url(options.connection_string)
    logger.info("redis_client_created", instance_name=options.instance_name)
    return aioredis.Redis.from_url(url, decode_responses=True)


__all__ = ["create_store_client", "to_redis_url"]
