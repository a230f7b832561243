"""
Automatic persisted queries for the GraphQL endpoint.

Clients send ``extensions.persistedQuery.sha256Hash`` instead of the query
text. When the hash is unknown the server answers ``PersistedQueryNotFound``
and the client retries with both hash and query, which are then stored.

Storage is selected with the storage backend:

- InMemoryQueryStorage: process-local dictionary
- RedisQueryStorage: keys ``{instance_name}pq:{hash}`` on the shared store client
"""

from __future__ import annotations

import hashlib
import json
from datetime import timedelta
from typing import Any, Dict, List, Optional, Protocol

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from apiforge.observability.logging import get_logger
from apiforge.observability.metrics import increment_counter

logger = get_logger(__name__)

PERSISTED_QUERY_NOT_FOUND = "PersistedQueryNotFound"
PERSISTED_QUERY_NOT_SUPPORTED = "PersistedQueryNotSupported"
HASH_MISMATCH = "provided sha does not match query"


class QueryStorage(Protocol):
    async def get(self, query_hash: str) -> Optional[str]:
        ...

    async def set(self, query_hash: str, query: str) -> None:
        ...


class InMemoryQueryStorage:
    def __init__(self) -> None:
        self._queries: Dict[str, str] = {}

    async def get(self, query_hash: str) -> Optional[str]:
        return self._queries.get(query_hash)

    async def set(self, query_hash: str, query: str) -> None:
        self._queries[query_hash] = query


class RedisQueryStorage:
    def __init__(
        self,
        client: Any,
        instance_name: str = "",
        expiry: Optional[timedelta] = None,
    ) -> None:
        self._client = client
        self._prefix = f"{instance_name}pq:"
        self._expiry = expiry

    async def get(self, query_hash: str) -> Optional[str]:
        return await self._client.get(self._prefix + query_hash)

    async def set(self, query_hash: str, query: str) -> None:
        await self._client.set(self._prefix + query_hash, query, ex=self._expiry)


def hash_query(query: str) -> str:
    return hashlib.sha256(query.encode("utf-8")).hexdigest()


class PersistedQueryMiddleware:
    """Resolve persisted query hashes in GraphQL POST bodies before execution.

    Args:
        app: Wrapped ASGI application
        storage: Query storage backend
        path: GraphQL endpoint path
    """

    def __init__(self, app: ASGIApp, storage: QueryStorage, path: str = "/graphql") -> None:
        self.app = app
        self.storage = storage
        self.path = path.rstrip("/").lower()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope["method"] != "POST"
            or scope["path"].rstrip("/").lower() != self.path
        ):
            await self.app(scope, receive, send)
            return

        body = await _read_body(receive)
        payload = _parse(body)
        extension = _persisted_query_extension(payload)
        if extension is None:
            await self.app(scope, _replay(body, receive), send)
            return

        if extension.get("version", 1) != 1:
            await _error(PERSISTED_QUERY_NOT_SUPPORTED, "PERSISTED_QUERY_NOT_SUPPORTED")(
                scope, receive, send
            )
            return

        query_hash = str(extension.get("sha256Hash", ""))
        query = payload.get("query")
        if query:
            if hash_query(query) != query_hash:
                logger.info("persisted_query_hash_mismatch", hash=query_hash)
                await _error(HASH_MISMATCH, "INVALID_PERSISTED_QUERY")(scope, receive, send)
                return
            await self.storage.set(query_hash, query)
            increment_counter("persisted_query_lookups_total", labels={"result": "stored"})
            await self.app(scope, _replay(body, receive), send)
            return

        stored = await self.storage.get(query_hash)
        if stored is None:
            increment_counter("persisted_query_lookups_total", labels={"result": "miss"})
            await _error(PERSISTED_QUERY_NOT_FOUND, "PERSISTED_QUERY_NOT_FOUND")(
                scope, receive, send
            )
            return

        increment_counter("persisted_query_lookups_total", labels={"result": "hit"})
        payload["query"] = stored
        body = json.dumps(payload).encode("utf-8")
        await self.app(_with_content_length(scope, len(body)), _replay(body, receive), send)


async def _read_body(receive: Receive) -> bytes:
    chunks: List[bytes] = []
    while True:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def _replay(body: bytes, receive: Receive) -> Receive:
    sent = False

    async def _receive() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return _receive


def _parse(body: bytes) -> Any:
    try:
        return json.loads(body) if body else None
    except ValueError:
        return None


def _persisted_query_extension(payload: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return None
    extensions = payload.get("extensions")
    if not isinstance(extensions, dict):
        return None
    extension = extensions.get("persistedQuery")
    return extension if isinstance(extension, dict) else None


def _with_content_length(scope: Scope, length: int) -> Scope:
    headers = [(k, v) for k, v in scope["headers"] if k.lower() != b"content-length"]
    headers.append((b"content-length", str(length).encode("latin-1")))
    return {**scope, "headers": headers}


def _error(message: str, code: str) -> JSONResponse:
    return JSONResponse({"errors": [{"message": message, "extensions": {"code": code}}]})


__all__ = [
    "HASH_MISMATCH",
    "InMemoryQueryStorage",
    "PERSISTED_QUERY_NOT_FOUND",
    "PersistedQueryMiddleware",
    "QueryStorage",
    "RedisQueryStorage",
    "hash_query",
]
