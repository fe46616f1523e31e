"""Tests for stage-by-stage execution of workflow runs."""

import asyncio

import pytest
from pydantic_ai.models.test import TestModel

from conftest import (
    GEMINI_CREDENTIAL_ID,
    RecordingExecutor,
    drain,
    published_stages,
    seed_workflow,
    telegram_action,
)
from flowrelay.contracts import StageMessage
from flowrelay.executors import GeminiExecutor
from flowrelay.persistence import Action, InMemoryWorkflowRepository, RunStatus
from flowrelay.relay import OutboxRelay
from flowrelay.worker import StageExecutor


class CountingRepository(InMemoryWorkflowRepository):
    """In-memory repository counting run writes."""

    def __init__(self) -> None:
        super().__init__()
        self.writes = 0

    async def update_run_metadata(self, run_id, metadata):
        self.writes += 1
        await super().update_run_metadata(run_id, metadata)

    async def mark_run_error(self, run_id, message):
        self.writes += 1
        await super().mark_run_error(run_id, message)

    async def mark_run_complete(self, run_id):
        self.writes += 1
        await super().mark_run_complete(run_id)


def _worker(transport, repository, executors):
    return StageExecutor(
        transport, repository=repository, executors=executors, stage_delay=0
    )


async def _start_run(repository, transport, actions, metadata=None):
    workflow_id = await seed_workflow(repository, actions)
    run = await repository.create_run(workflow_id, metadata or {})
    await OutboxRelay(repository, transport).run_once()
    return run.id


@pytest.mark.asyncio
async def test_three_stage_run_publishes_each_stage_and_completes(
    repository, transport, recorder
):
    actions = [telegram_action(i, message=f"step {i}") for i in range(3)]
    run_id = await _start_run(repository, transport, actions)
    worker = _worker(transport, repository, {"telegram": recorder})

    handled = await drain(worker, transport)

    assert handled == [0, 1, 2]
    assert published_stages(transport, run_id) == [0, 1, 2]
    assert [text for _, text in recorder.sent] == ["step 0", "step 1", "step 2"]
    run = await repository.get_run(run_id)
    assert run.status is RunStatus.COMPLETE
    assert run.finished_at is not None
    assert run.error_metadata is None


@pytest.mark.asyncio
async def test_missing_credential_halts_run(repository, transport, recorder):
    actions = [
        telegram_action(0),
        telegram_action(1, credential_id="does-not-exist"),
        telegram_action(2),
    ]
    run_id = await _start_run(repository, transport, actions)
    worker = _worker(transport, repository, {"telegram": recorder})

    await drain(worker, transport)

    assert published_stages(transport, run_id) == [0, 1]
    assert len(recorder.sent) == 1
    run = await repository.get_run(run_id)
    assert run.status is RunStatus.ERROR
    assert run.error_message == "No telegram credentials found for the user"
    assert run.finished_at is None


@pytest.mark.asyncio
async def test_redelivery_to_errored_run_is_discarded(transport):
    repository = CountingRepository()
    failing = RecordingExecutor(fail_with="chat not found")
    run_id = await _start_run(repository, transport, [telegram_action(0), telegram_action(1)])
    worker = _worker(transport, repository, {"telegram": failing})

    await drain(worker, transport)
    run = await repository.get_run(run_id)
    assert run.status is RunStatus.ERROR
    writes = repository.writes
    publications = len(transport.history)

    await worker.handle_message(StageMessage(workflow_run_id=run_id, stage=0))

    assert repository.writes == writes
    assert len(transport.history) == publications
    assert len(failing.sent) == 1
    assert (await repository.get_run(run_id)).error_message == run.error_message


@pytest.mark.asyncio
async def test_redelivery_to_completed_run_is_discarded(transport, recorder):
    repository = CountingRepository()
    run_id = await _start_run(repository, transport, [telegram_action(0)])
    worker = _worker(transport, repository, {"telegram": recorder})
    await drain(worker, transport)
    writes = repository.writes

    await worker.handle_message(StageMessage(workflow_run_id=run_id, stage=0))

    assert repository.writes == writes
    assert len(recorder.sent) == 1


@pytest.mark.asyncio
async def test_ai_output_is_available_to_next_stage(repository, transport, recorder):
    gemini = GeminiExecutor(
        model_factory=lambda api_key, name: TestModel(custom_output_text="foo")
    )
    actions = [
        Action(
            sorting_order=0,
            action_kind="gemini",
            metadata={"message": "Say foo", "credentialId": GEMINI_CREDENTIAL_ID},
        ),
        telegram_action(1, message="{aiResponse}"),
    ]
    run_id = await _start_run(repository, transport, actions, {"name": "Ann"})
    worker = _worker(transport, repository, {"gemini": gemini, "telegram": recorder})

    await drain(worker, transport)

    assert recorder.sent == [("42", "foo")]
    run = await repository.get_run(run_id)
    assert run.status is RunStatus.COMPLETE
    assert run.metadata == {"name": "Ann", "aiResponse": "foo"}


@pytest.mark.asyncio
async def test_context_updates_from_other_actions_are_ignored(repository, transport):
    leaky = RecordingExecutor(context_updates={"injected": True})
    run_id = await _start_run(repository, transport, [telegram_action(0)], {"a": 1})
    worker = _worker(transport, repository, {"telegram": leaky})

    await drain(worker, transport)

    run = await repository.get_run(run_id)
    assert run.status is RunStatus.COMPLETE
    assert run.metadata == {"a": 1}


@pytest.mark.asyncio
async def test_missing_metadata_fields_are_all_reported(repository, transport, recorder):
    action = Action(
        sorting_order=0,
        action_kind="telegram",
        metadata={"credentialId": "cred-telegram"},
    )
    run_id = await _start_run(repository, transport, [action])
    worker = _worker(transport, repository, {"telegram": recorder})

    await drain(worker, transport)

    run = await repository.get_run(run_id)
    assert run.status is RunStatus.ERROR
    assert (
        run.error_message
        == "Telegram action metadata missing required fields: chatId, message"
    )
    assert recorder.sent == []


@pytest.mark.asyncio
async def test_unterminated_template_fails_stage(repository, transport, recorder):
    run_id = await _start_run(
        repository, transport, [telegram_action(0, message="Hello {name")]
    )
    worker = _worker(transport, repository, {"telegram": recorder})

    await drain(worker, transport)

    run = await repository.get_run(run_id)
    assert run.status is RunStatus.ERROR
    assert run.error_message.startswith("Invalid template in field 'message'")


@pytest.mark.asyncio
async def test_downstream_failure_is_recorded(repository, transport):
    failing = RecordingExecutor(fail_with="Bad Request: chat not found")
    run_id = await _start_run(repository, transport, [telegram_action(0), telegram_action(1)])
    worker = _worker(transport, repository, {"telegram": failing})

    await drain(worker, transport)

    run = await repository.get_run(run_id)
    assert run.status is RunStatus.ERROR
    assert run.error_message == (
        "Failed to send Telegram message: Bad Request: chat not found"
    )
    assert published_stages(transport, run_id) == [0]


@pytest.mark.asyncio
async def test_stage_without_action_is_discarded(transport, recorder):
    repository = CountingRepository()
    run_id = await _start_run(repository, transport, [telegram_action(0)])
    worker = _worker(transport, repository, {"telegram": recorder})

    await worker.handle_message(StageMessage(workflow_run_id=run_id, stage=5))

    assert repository.writes == 0
    assert (await repository.get_run_status(run_id)) is RunStatus.RUNNING


@pytest.mark.asyncio
async def test_unknown_action_kind_is_discarded(transport, recorder):
    repository = CountingRepository()
    action = Action(sorting_order=0, action_kind="fax", metadata={})
    run_id = await _start_run(repository, transport, [action])
    worker = _worker(transport, repository, {"telegram": recorder})

    await drain(worker, transport)

    assert repository.writes == 0
    assert (await repository.get_run_status(run_id)) is RunStatus.RUNNING


@pytest.mark.asyncio
async def test_unknown_run_is_discarded(repository, transport, recorder):
    worker = _worker(transport, repository, {"telegram": recorder})

    await worker.handle_message(StageMessage(workflow_run_id="nope", stage=0))

    assert transport.history == []


@pytest.mark.asyncio
async def test_start_consumes_until_lifespan(repository, transport, recorder):
    run_id = await _start_run(
        repository, transport, [telegram_action(0), telegram_action(1)]
    )
    await transport.publish_raw("zap-events", "not json")
    worker = _worker(transport, repository, {"telegram": recorder})

    await worker.start(lifespan=0.5)

    assert (await repository.get_run_status(run_id)) is RunStatus.COMPLETE
    assert len(recorder.sent) == 2


@pytest.mark.asyncio
async def test_stop_ends_idle_worker(repository, transport, recorder):
    worker = _worker(transport, repository, {"telegram": recorder})
    task = asyncio.create_task(worker.start())
    await asyncio.sleep(0.05)

    worker.stop()

    await asyncio.wait_for(task, timeout=1)
    assert task.done()


class StoppingExecutor(RecordingExecutor):
    """Requests a worker stop while its stage is being handled."""

    worker = None

    async def execute(self, secret, metadata, context):
        self.worker.stop()
        await asyncio.sleep(0.05)
        return await super().execute(secret, metadata, context)


@pytest.mark.asyncio
async def test_stop_finishes_message_in_flight(repository, transport):
    executor = StoppingExecutor()
    run_id = await _start_run(
        repository, transport, [telegram_action(0), telegram_action(1)]
    )
    worker = _worker(transport, repository, {"telegram": executor})
    executor.worker = worker

    await asyncio.wait_for(worker.start(), timeout=1)

    assert len(executor.sent) == 1
    assert published_stages(transport, run_id) == [0, 1]
    assert transport.pending("zap-events") == 1
    assert (await repository.get_run_status(run_id)) is RunStatus.RUNNING
