"""Shared helpers for flowrelay tests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import pytest

from flowrelay.actions import ActionKind, ApiKeyCredential, TelegramMetadata
from flowrelay.constants import DEFAULT_TOPIC
from flowrelay.executors import ActionExecutor, ExecutionResult
from flowrelay.persistence import (
    Action,
    Credential,
    InMemoryWorkflowRepository,
    WorkflowRepository,
)
from flowrelay.transports import InMemoryTransport
from flowrelay.worker import StageExecutor

USER_ID = "user-1"
TELEGRAM_CREDENTIAL_ID = "cred-telegram"
GEMINI_CREDENTIAL_ID = "cred-gemini"


class RecordingExecutor(ActionExecutor):
    """Telegram-shaped executor that records messages instead of sending."""

    kind = ActionKind.TELEGRAM
    platform = "telegram"
    label = "Telegram"
    failure_prefix = "Failed to send Telegram message:"
    metadata_model = TelegramMetadata
    credential_model = ApiKeyCredential

    def __init__(
        self,
        fail_with: Optional[str] = None,
        context_updates: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.fail_with = fail_with
        self.context_updates = context_updates
        self.sent: List[tuple[str, str]] = []

    async def execute(self, secret, metadata, context) -> ExecutionResult:
        text = self.render("message", metadata.message, context)
        self.sent.append((metadata.chat_id, text))
        if self.fail_with:
            return ExecutionResult.failed(f"{self.failure_prefix} {self.fail_with}")
        return ExecutionResult.ok(self.context_updates)


def telegram_action(
    order: int, message: str = "hello", credential_id: str = TELEGRAM_CREDENTIAL_ID
) -> Action:
    return Action(
        sorting_order=order,
        action_kind="telegram",
        metadata={"chatId": "42", "message": message, "credentialId": credential_id},
    )


async def seed_workflow(
    repository: WorkflowRepository, actions: Sequence[Action]
) -> str:
    """Store the user's credentials and a workflow; return the workflow id."""
    await repository.add_credential(
        Credential(
            id=TELEGRAM_CREDENTIAL_ID,
            user_id=USER_ID,
            platform="telegram",
            keys={"apiKey": "bot-token"},
        )
    )
    await repository.add_credential(
        Credential(
            id=GEMINI_CREDENTIAL_ID,
            user_id=USER_ID,
            platform="gemini",
            keys={"apiKey": "gemini-key"},
        )
    )
    workflow = await repository.create_workflow(USER_ID, actions)
    return workflow.id


async def drain(
    executor: StageExecutor, transport: InMemoryTransport, topic: str = DEFAULT_TOPIC
) -> List[int]:
    """Handle queued stage messages until the topic is empty."""
    handled = []
    while True:
        message = transport.pop(topic)
        if message is None:
            break
        handled.append(message.stage)
        await executor.handle_message(message)
    return handled


def published_stages(transport: InMemoryTransport, run_id: str) -> List[int]:
    return [m.stage for _, m in transport.history if m.workflow_run_id == run_id]


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def recorder() -> RecordingExecutor:
    return RecordingExecutor()
