"""Outbox relay: republishes newly created runs onto the broker."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .config import FlowRelayConfig
from .constants import DEFAULT_OUTBOX_BATCH_SIZE, DEFAULT_POLL_INTERVAL, DEFAULT_TOPIC
from .contracts import StageMessage
from .persistence import WorkflowRepository, get_repository
from .transports import BaseTransport
from .utils.retry import compute_backoff

logger = logging.getLogger(__name__)


class OutboxRelay:
    """Service responsible for dispatching new workflow runs.

    Entries are published before they are deleted, so a crash in between
    republishes them on the next poll; consumers tolerate the duplicate
    stage-0 message.
    """

    def __init__(
        self,
        repository: WorkflowRepository | None,
        transport: BaseTransport,
        topic: str = DEFAULT_TOPIC,
        batch_size: int = DEFAULT_OUTBOX_BATCH_SIZE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_backoff: float = 30.0,
    ) -> None:
        self._repository = repository or get_repository()
        self._transport = transport
        self.topic = topic
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.max_backoff = max_backoff
        self._stop_event: Optional[asyncio.Event] = None

    @classmethod
    def from_config(
        cls,
        config: FlowRelayConfig,
        transport: BaseTransport,
        repository: WorkflowRepository | None = None,
    ) -> "OutboxRelay":
        return cls(
            repository or get_repository(config=config),
            transport,
            topic=config.transport.topic,
            batch_size=config.relay.batch_size,
            poll_interval=config.relay.poll_interval,
            max_backoff=config.relay.max_backoff,
        )

    async def run_once(self) -> int:
        """Relay one batch of outbox entries.

        Returns:
            Number of entries published and removed from the outbox.
        """
        entries = await self._repository.fetch_outbox(self.batch_size)
        if not entries:
            return 0

        published: list[int] = []
        try:
            for entry in entries:
                await self._transport.publish(
                    self.topic,
                    StageMessage(workflow_run_id=entry.workflow_run_id, stage=0),
                )
                published.append(entry.id)
        finally:
            if published:
                await self._repository.delete_outbox(published)
                logger.info(f"Relayed {len(published)} workflow run(s) to {self.topic}")
        return len(published)

    def stop(self) -> None:
        """Ask a running :meth:`run` loop to exit after its current iteration."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(
        self,
        stop_event: Optional[asyncio.Event] = None,
        lifespan: Optional[float] = None,
    ) -> None:
        """Poll the outbox until ``stop_event`` is set or ``lifespan`` elapses.

        Errors in one iteration are logged and retried with exponential
        backoff; they never end the loop.
        """
        self._stop_event = stop_event or asyncio.Event()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan else None
        failures = 0

        logger.info(f"Outbox relay started (topic={self.topic}, batch={self.batch_size})")
        while not self._stop_event.is_set():
            try:
                relayed = await self.run_once()
                failures = 0
            except Exception:
                failures += 1
                relayed = 0
                logger.exception(f"Outbox relay iteration failed (attempt {failures})")

            if failures:
                delay = compute_backoff(failures, cap=self.max_backoff)
            elif relayed >= self.batch_size:
                # Full batch: more entries are likely waiting.
                delay = 0.0
            else:
                delay = self.poll_interval

            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                delay = min(delay, remaining)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        logger.info("Outbox relay stopped")
