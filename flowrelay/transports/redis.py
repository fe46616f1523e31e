"""Redis transport for cross-process messaging."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Tuple

try:
    import redis.asyncio as redis
except ImportError:  # pragma: no cover - redis not installed
    redis = None

from pydantic import ValidationError

from ..constants import DEFAULT_GROUP_ID
from ..contracts import StageMessage
from .base import BaseTransport

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[str]):
    """Redis-based transport using one list per topic as a FIFO queue.

    Received messages are moved atomically into a processing list owned by
    this consumer and only removed from it by :meth:`ack`. Whatever is left
    there when a consumer dies is put back on the queue the next time the
    same consumer subscribes, so delivery is at-least-once.

    A single list preserves publication order, so per-run stage order holds
    as long as one worker drains the topic.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        consumer: str = DEFAULT_GROUP_ID,
        client: Optional[Any] = None,
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisTransport")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.consumer = consumer
        self._redis: Optional[Any] = client
        self._processing: Optional[str] = None

    @staticmethod
    def queue_name(topic: str) -> str:
        return f"flowrelay:{topic}"

    def processing_name(self, topic: str) -> str:
        return f"{self.queue_name(topic)}:processing:{self.consumer}"

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._redis is None:
            self._redis = redis.Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                password=self.password,
                decode_responses=True,
            )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, message: StageMessage) -> None:
        """Publish message to Redis list (acting as queue)."""
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self.queue_name(topic), message.to_json())

    async def requeue_unacked(self, topic: str) -> int:
        """Put messages left unacknowledged in the processing list back on the queue.

        The oldest one goes back to the consuming end, so the original order
        is kept. Returns how many messages were moved.
        """
        if not self._redis:
            await self.connect()
        moved = 0
        while (
            await self._redis.lmove(
                self.processing_name(topic), self.queue_name(topic), "LEFT", "RIGHT"
            )
            is not None
        ):
            moved += 1
        if moved:
            logger.warning(
                f"Requeued {moved} unacknowledged message(s) on topic {topic}"
            )
        return moved

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, StageMessage]]:
        """Subscribe to messages from Redis queue."""
        await self.requeue_unacked(topic)

        queue_name = self.queue_name(topic)
        processing = self.processing_name(topic)
        self._processing = processing
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time is not None:
                if loop.time() - start_time >= lifespan:
                    break

            # Blocking move with timeout; the message stays in the
            # processing list until acked
            message_json = await self._redis.blmove(
                queue_name, processing, timeout=1, src="RIGHT", dest="LEFT"
            )
            if message_json is None:
                continue

            try:
                message = StageMessage.from_json(message_json)
            except ValidationError as e:
                logger.error(f"Discarding malformed stage message {message_json!r}: {e}")
                await self.ack(message_json)
                continue
            yield message_json, message

    async def ack(self, raw_message: str) -> None:
        """Remove a handled message from the processing list."""
        if not self._redis or self._processing is None:
            return
        await self._redis.lrem(self._processing, 1, raw_message)
