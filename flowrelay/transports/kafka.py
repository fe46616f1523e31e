"""Kafka transport implementation using aiokafka."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Iterable, Optional, Tuple

try:
    from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
    from aiokafka.structs import TopicPartition
except ImportError:  # pragma: no cover - aiokafka not installed
    AIOKafkaConsumer = None  # type: ignore
    AIOKafkaProducer = None  # type: ignore
    TopicPartition = None  # type: ignore

from pydantic import ValidationError

from ..constants import DEFAULT_CLIENT_ID, DEFAULT_GROUP_ID
from ..contracts import StageMessage
from ..exceptions import TransportNotConnectedError
from .base import BaseTransport

logger = logging.getLogger(__name__)


class KafkaTransport(BaseTransport[Any]):
    """Kafka-based transport for distributed messaging.

    Messages are keyed by workflow run id so every stage of a run lands on the
    same partition. Offsets are committed manually in :meth:`ack`.
    """

    def __init__(
        self,
        brokers: Iterable[str] | str = "localhost:9092",
        group_id: str = DEFAULT_GROUP_ID,
        client_id: str = DEFAULT_CLIENT_ID,
    ) -> None:
        if AIOKafkaProducer is None or AIOKafkaConsumer is None:
            raise ImportError("aiokafka package is required for KafkaTransport")

        self.brokers = [brokers] if isinstance(brokers, str) else list(brokers)
        self.group_id = group_id
        self.client_id = client_id
        self._producer: Optional[AIOKafkaProducer] = None
        self._consumer: Optional[AIOKafkaConsumer] = None

    async def connect(self) -> None:
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self.brokers, client_id=self.client_id
        )
        self._consumer = AIOKafkaConsumer(
            bootstrap_servers=self.brokers,
            group_id=self.group_id,
            client_id=self.client_id,
            enable_auto_commit=False,
            auto_offset_reset="earliest",
        )
        await self._producer.start()
        await self._consumer.start()

    async def disconnect(self) -> None:
        if self._consumer:
            await self._consumer.stop()
            self._consumer = None
        if self._producer:
            await self._producer.stop()
            self._producer = None

    async def publish(self, topic: str, message: StageMessage) -> None:
        if not self._producer:
            raise TransportNotConnectedError("KafkaTransport not connected")
        await self._producer.send_and_wait(
            topic,
            value=message.to_json().encode(),
            key=message.partition_key.encode(),
        )

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[Any, StageMessage]]:
        if not self._consumer:
            raise TransportNotConnectedError("KafkaTransport not connected")
        self._consumer.subscribe([topic])
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time is not None:
                remaining = lifespan - (loop.time() - start_time)
                if remaining <= 0:
                    break
                try:
                    msg = await asyncio.wait_for(self._consumer.getone(), remaining)
                except asyncio.TimeoutError:
                    break
            else:
                msg = await self._consumer.getone()

            logger.debug(
                f"Received partition={msg.partition} offset={msg.offset} value={msg.value!r}"
            )
            if not msg.value:
                await self.ack(msg)
                continue
            try:
                envelope = StageMessage.from_json(msg.value)
            except ValidationError as e:
                logger.error(f"Discarding malformed stage message at offset {msg.offset}: {e}")
                await self.ack(msg)
                continue
            yield msg, envelope

    async def ack(self, raw_message: Any) -> None:
        if not self._consumer:
            raise TransportNotConnectedError("KafkaTransport not connected")
        tp = TopicPartition(raw_message.topic, raw_message.partition)
        await self._consumer.commit({tp: raw_message.offset + 1})
