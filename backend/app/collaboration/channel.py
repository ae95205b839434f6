"""Plan-scoped publish/subscribe channels for change notifications."""

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator
from typing import Protocol

import redis.asyncio as aioredis
from pydantic import ValidationError

from backend.app.models.collaboration import PlanChange

logger = logging.getLogger(__name__)


def channel_name(plan_id: uuid.UUID) -> str:
    return f"trip_plan:{plan_id}"


class ChangeChannel(Protocol):
    """Delivery is best-effort: no ordering or exactly-once guarantee."""

    async def publish(self, change: PlanChange) -> None:
        """Broadcast a change to every subscriber of ``change.plan_id``."""
        ...

    def subscribe(self, plan_id: uuid.UUID) -> AsyncIterator[PlanChange]:
        """Iterate over changes for a plan until the consumer stops."""
        ...


class InMemoryChangeChannel:
    """In-process channel: one queue per subscriber."""

    def __init__(self) -> None:
        self._subscribers: dict[uuid.UUID, set[asyncio.Queue[PlanChange]]] = defaultdict(set)

    def subscriber_count(self, plan_id: uuid.UUID) -> int:
        return len(self._subscribers.get(plan_id, ()))

    async def publish(self, change: PlanChange) -> None:
        for queue in list(self._subscribers.get(change.plan_id, ())):
            queue.put_nowait(change)

    async def subscribe(self, plan_id: uuid.UUID) -> AsyncIterator[PlanChange]:
        queue: asyncio.Queue[PlanChange] = asyncio.Queue()
        self._subscribers[plan_id].add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers[plan_id].discard(queue)
            if not self._subscribers[plan_id]:
                del self._subscribers[plan_id]


class RedisChangeChannel:
    """Redis pub/sub channel shared by every API process."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisChangeChannel":
        return cls(aioredis.from_url(url, decode_responses=True))

    async def publish(self, change: PlanChange) -> None:
        await self._client.publish(channel_name(change.plan_id), change.model_dump_json())

    async def subscribe(self, plan_id: uuid.UUID) -> AsyncIterator[PlanChange]:
        pubsub = self._client.pubsub()
        await pubsub.subscribe(channel_name(plan_id))
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield PlanChange.model_validate_json(message["data"])
                except ValidationError:
                    # Payload is only a hint; an unreadable one still means "something changed"
                    logger.warning(
                        "Unreadable change payload",
                        extra={"structured": {"plan_id": str(plan_id)}},
                    )
                    yield PlanChange(plan_id=plan_id, type="plan", event="unknown")
        finally:
            await pubsub.unsubscribe(channel_name(plan_id))
            await pubsub.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()
