"""Data models for persisted workflow state."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    RUNNING = "Running"
    COMPLETE = "Complete"
    ERROR = "Error"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class Workflow(BaseModel):
    """Owner of an ordered action chain."""

    id: str = Field(default_factory=_new_id)
    user_id: str


class Action(BaseModel):
    """One stage of a workflow's action chain."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str = ""
    sorting_order: int
    action_kind: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def credential_id(self) -> Optional[str]:
        value = self.metadata.get("credentialId")
        return value if isinstance(value, str) else None


class Credential(BaseModel):
    """A user's secret key bundle for one platform."""

    id: str = Field(default_factory=_new_id)
    user_id: str
    platform: str
    keys: dict[str, Any] = Field(default_factory=dict)


class WorkflowRun(BaseModel):
    """Persisted state of one execution of a workflow."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: RunStatus = RunStatus.RUNNING
    error_metadata: Optional[dict[str, Any]] = None
    finished_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def error_message(self) -> Optional[str]:
        if not self.error_metadata:
            return None
        return self.error_metadata.get("errorMessage")


class OutboxEntry(BaseModel):
    """Pending announcement of a newly created run."""

    id: int
    workflow_run_id: str


class RunDetails(BaseModel):
    """Everything the stage executor needs to process one stage of a run."""

    run: WorkflowRun
    workflow: Workflow
    actions: list[Action] = Field(default_factory=list)
    credentials: list[Credential] = Field(default_factory=list)

    @property
    def last_stage(self) -> int:
        return len(self.actions) - 1

    def action_for_stage(self, stage: int) -> Optional[Action]:
        for action in self.actions:
            if action.sorting_order == stage:
                return action
        return None

    def credential(self, credential_id: Optional[str]) -> Optional[Credential]:
        """Look up a credential by id; a user may hold several per platform."""
        if credential_id is None:
            return None
        for credential in self.credentials:
            if credential.id == credential_id:
                return credential
        return None
