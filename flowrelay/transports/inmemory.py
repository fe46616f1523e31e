"""In-memory transport for testing."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..contracts import StageMessage
from .base import BaseTransport

logger = logging.getLogger(__name__)


class InMemoryTransport(BaseTransport[str]):
    """Simple in-process queue for unit tests.

    Raw messages are the serialized JSON payloads, so consumers exercise the
    same decoding path as with a real broker. Every publication is also
    recorded in ``history``.
    """

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[str]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self.history: List[Tuple[str, StageMessage]] = []

    async def publish(self, topic: str, message: StageMessage) -> None:
        """Publish message to in-memory queue."""
        async with self._lock:
            self._queues[topic].append(message.to_json())
            self.history.append((topic, message))

    async def publish_raw(self, topic: str, payload: str) -> None:
        """Enqueue an arbitrary payload, bypassing serialization."""
        async with self._lock:
            self._queues[topic].append(payload)

    def pending(self, topic: str) -> int:
        return len(self._queues[topic])

    def pop(self, topic: str) -> Optional[StageMessage]:
        """Take the oldest queued message of ``topic`` without subscribing."""
        queue = self._queues[topic]
        if not queue:
            return None
        return StageMessage.from_json(queue.popleft())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, StageMessage]]:
        """Subscribe to messages from topic.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep connection open. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time is not None:
                if loop.time() - start_time >= lifespan:
                    break

            raw_message = None
            async with self._lock:
                if self._queues[topic]:
                    raw_message = self._queues[topic].popleft()

            if raw_message is None:
                await asyncio.sleep(0.01)
                continue

            try:
                message = StageMessage.from_json(raw_message)
            except ValidationError as e:
                logger.error(f"Discarding malformed stage message {raw_message!r}: {e}")
                await self.ack(raw_message)
                continue
            yield raw_message, message

    async def ack(self, raw_message: str) -> None:
        """No-op acknowledgment for in-memory transport."""
        pass
