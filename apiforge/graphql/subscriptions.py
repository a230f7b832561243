"""
Subscription pub/sub backends.

Both implementations deliver JSON-compatible dict messages per topic:

- InMemoryPubSub: broadcast through per-subscriber asyncio queues (single process)
- RedisPubSub: redis PUBLISH/SUBSCRIBE on the shared store client

``subscribe`` registers the subscriber before returning, so messages published
after the call are never missed.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Dict, Protocol, Set

from apiforge.observability.logging import get_logger

logger = get_logger(__name__)

Message = Dict[str, Any]


class Subscription(Protocol):
    def __aiter__(self) -> AsyncIterator[Message]:
        ...

    async def __anext__(self) -> Message:
        ...

    async def aclose(self) -> None:
        ...


class PubSub(Protocol):
    async def publish(self, topic: str, message: Message) -> None:
        ...

    async def subscribe(self, topic: str) -> Subscription:
        ...


class InMemorySubscription:
    def __init__(self, pubsub: "InMemoryPubSub", topic: str, queue: asyncio.Queue) -> None:
        self._pubsub = pubsub
        self._topic = topic
        self._queue = queue
        self._closed = False

    def __aiter__(self) -> "InMemorySubscription":
        return self

    async def __anext__(self) -> Message:
        if self._closed:
            raise StopAsyncIteration
        return await self._queue.get()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            self._pubsub._unsubscribe(self._topic, self._queue)


class InMemoryPubSub:
    """In-process broadcast; every subscriber of a topic gets every message."""

    def __init__(self, max_queue_size: int = 100) -> None:
        self._topics: Dict[str, Set[asyncio.Queue]] = {}
        self._max_queue_size = max_queue_size

    async def publish(self, topic: str, message: Message) -> None:
        for queue in list(self._topics.get(topic, ())):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("subscriber_queue_full", topic=topic)

    async def subscribe(self, topic: str) -> InMemorySubscription:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._topics.setdefault(topic, set()).add(queue)
        return InMemorySubscription(self, topic, queue)

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    def _unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        subscribers = self._topics.get(topic)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._topics[topic]


class RedisSubscription:
    def __init__(self, pubsub: Any) -> None:
        self._pubsub = pubsub
        self._messages = pubsub.listen()

    def __aiter__(self) -> "RedisSubscription":
        return self

    async def __anext__(self) -> Message:
        async for message in self._messages:
            if message.get("type") == "message":
                return json.loads(message["data"])
        raise StopAsyncIteration

    async def aclose(self) -> None:
        await self._pubsub.unsubscribe()
        await self._pubsub.aclose()


class RedisPubSub:
    """Pub/sub through redis channels named ``{instance_name}sub:{topic}``."""

    def __init__(self, client: Any, instance_name: str = "") -> None:
        self._client = client
        self._prefix = f"{instance_name}sub:"

    async def publish(self, topic: str, message: Message) -> None:
        await self._client.publish(self._prefix + topic, json.dumps(message))

    async def subscribe(self, topic: str) -> RedisSubscription:
        pubsub = self._client.pubsub()
        await pubsub.subscribe(self._prefix + topic)
        return RedisSubscription(pubsub)


__all__ = [
    "InMemoryPubSub",
    "InMemorySubscription",
    "PubSub",
    "RedisPubSub",
    "RedisSubscription",
    "Subscription",
]
