"""Stage execution engine: walks a run's action chain one stage per message."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .config import FlowRelayConfig
from .constants import DEFAULT_STAGE_DELAY, DEFAULT_TOPIC
from .contracts import StageMessage
from .executors import ExecutorRegistry, build_executor_registry
from .executors.base import ExecutionResult
from .persistence import RunDetails, RunStatus, WorkflowRepository, get_repository
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class StageExecutor:
    """Executes workflow stages by listening to transport messages.

    Each message names a run and a stage. The stage's action is executed,
    the outcome persisted on the run, and the following stage enqueued. The
    input message is acknowledged only once all of that has happened, so a
    crash in between leads to the same stage being processed again.
    """

    def __init__(
        self,
        transport: BaseTransport,
        repository: WorkflowRepository | None = None,
        executors: ExecutorRegistry | None = None,
        topic: str = DEFAULT_TOPIC,
        stage_delay: float = DEFAULT_STAGE_DELAY,
    ) -> None:
        self._transport = transport
        self._repository = repository or get_repository()
        self._executors = executors if executors is not None else build_executor_registry()
        self.topic = topic
        self.stage_delay = stage_delay
        self._stopping = asyncio.Event()
        self._handling = False

    @classmethod
    def from_config(
        cls,
        config: FlowRelayConfig,
        transport: BaseTransport,
        repository: WorkflowRepository | None = None,
    ) -> "StageExecutor":
        return cls(
            transport,
            repository=repository or get_repository(config=config),
            executors=build_executor_registry(config.executors),
            topic=config.transport.topic,
            stage_delay=config.worker.stage_delay,
        )

    def stop(self) -> None:
        """Stop consuming; a message being handled is finished and acked first."""
        self._stopping.set()

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Consume stage messages until ``lifespan`` elapses or :meth:`stop`.

        An idle consumer is cancelled as soon as :meth:`stop` is called. The
        unacknowledged message it may be waiting on is redelivered later.
        """
        self._stopping.clear()
        logger.info(f"Stage executor listening on topic {self.topic}")
        consumer = asyncio.create_task(self._consume(lifespan))
        stop_requested = asyncio.create_task(self._stopping.wait())
        try:
            await asyncio.wait(
                {consumer, stop_requested}, return_when=asyncio.FIRST_COMPLETED
            )
            if not consumer.done() and not self._handling:
                consumer.cancel()
            await asyncio.wait({consumer})
        finally:
            stop_requested.cancel()
            if not consumer.done():
                consumer.cancel()
        if not consumer.cancelled():
            consumer.result()
        logger.info("Stage executor stopped")

    async def _consume(self, lifespan: Optional[float]) -> None:
        async for raw_message, message in self._transport.subscribe(
            self.topic, lifespan=lifespan
        ):
            self._handling = True
            try:
                await self.handle_message(message)
                await self._transport.ack(raw_message)
            finally:
                self._handling = False
            if self._stopping.is_set():
                break

    async def handle_message(self, message: StageMessage) -> None:
        """Process one stage of one run.

        Data problems (unknown run, missing action, failed validation or
        downstream call) are handled here. Store and broker errors propagate.
        """
        run_id = message.workflow_run_id
        stage = message.stage
        logger.info(f"Received stage {stage} for workflow_run_id={run_id}")

        details = await self._repository.get_run_details(run_id)
        if details is None:
            logger.warning(f"Workflow run {run_id} not found; discarding stage {stage}")
            return

        if details.run.status.is_terminal:
            logger.info(
                f"Workflow run {run_id} is {details.run.status.value}; discarding stage {stage}"
            )
            return

        action = details.action_for_stage(stage)
        if action is None:
            logger.error(f"No action at stage {stage} for workflow_run_id={run_id}")
            return

        executor = self._executors.get(action.action_kind)
        if executor is None:
            logger.error(
                f"Unknown action kind {action.action_kind!r} at stage {stage} "
                f"for workflow_run_id={run_id}"
            )
            return

        credential = details.credential(action.credential_id)
        result = await executor.run(credential, action.metadata, details.run.metadata)

        if self.stage_delay > 0:
            await asyncio.sleep(self.stage_delay)

        if not result.success:
            logger.warning(
                f"Stage {stage} ({action.action_kind}) failed for "
                f"workflow_run_id={run_id}: {result.error}"
            )
            await self._repository.mark_run_error(run_id, result.error or "Unknown error")
            return

        if result.context_updates:
            await self._merge_context(details, result, executor.mutates_context)

        await self._advance(details, message)

    async def _merge_context(
        self, details: RunDetails, result: ExecutionResult, allowed: bool
    ) -> None:
        run_id = details.run.id
        if not allowed:
            logger.warning(
                f"Ignoring context updates from a non-generating action for "
                f"workflow_run_id={run_id}: {sorted(result.context_updates)}"
            )
            return
        metadata = {**details.run.metadata, **result.context_updates}
        await self._repository.update_run_metadata(run_id, metadata)

    async def _advance(self, details: RunDetails, message: StageMessage) -> None:
        run_id = message.workflow_run_id
        status = await self._repository.get_run_status(run_id)
        if status is RunStatus.ERROR:
            logger.info(f"Workflow run {run_id} errored meanwhile; not advancing")
            return

        if message.stage >= details.last_stage:
            await self._repository.mark_run_complete(run_id)
            logger.info(f"Workflow completed for workflow_run_id={run_id}")
            return

        next_message = message.next_stage()
        await self._transport.publish(self.topic, next_message)
        logger.info(
            f"Forwarded stage {next_message.stage} for workflow_run_id={run_id}"
        )
