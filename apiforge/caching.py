"""
Caching for apiforge.

- DistributedCache protocol with an in-process implementation and a redis
  implementation sharing the store client
- ``cache_profile`` dependency applying named HTTP cache profiles
  (``CacheProfiles`` section) to responses
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from fastapi import Request, Response

from apiforge.exceptions import ConfigError
from apiforge.options import CacheProfileOptions


class DistributedCache(Protocol):
    """String-valued cache shared between instances of the application."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryDistributedCache:
    """Process-local cache; shared only within one instance."""

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        self._entries[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisDistributedCache:
    """Cache stored in redis under ``instance_name`` prefixed keys."""

    def __init__(self, client, instance_name: str = "") -> None:
        self._client = client
        self._prefix = instance_name

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(self._prefix + key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self._client.set(self._prefix + key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._prefix + key)


def cache_profile(name: str) -> Callable[[Request, Response], None]:
    """FastAPI dependency applying the named cache profile to the response.

    Example:
        @router.get("/droids", dependencies=[Depends(cache_profile("Default"))])
    """

    def _apply(request: Request, response: Response) -> None:
        registry = request.app.state.options_registry
        profiles = registry.get(CacheProfileOptions)
        profile = profiles.get(name)
        if profile is None:
            raise ConfigError(f"Unknown cache profile: {name}")
        response.headers["Cache-Control"] = profile.cache_control()
        if profile.vary_by_header:
            response.headers["Vary"] = profile.vary_by_header

    return _apply


__all__ = [
    "DistributedCache",
    "InMemoryDistributedCache",
    "RedisDistributedCache",
    "cache_profile",
]
