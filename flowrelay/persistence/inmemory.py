"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, Sequence

from .models import (
    Action,
    Credential,
    OutboxEntry,
    RunDetails,
    RunStatus,
    Workflow,
    WorkflowRun,
    utcnow,
)
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._actions: Dict[str, list[Action]] = {}
        self._credentials: Dict[str, Credential] = {}
        self._runs: Dict[str, WorkflowRun] = {}
        self._outbox: Dict[int, OutboxEntry] = {}
        self._outbox_id = 0

    # ------------------------------------------------------------------
    async def create_workflow(
        self, user_id: str, actions: Sequence[Action], workflow_id: str | None = None
    ) -> Workflow:
        workflow = (
            Workflow(id=workflow_id, user_id=user_id)
            if workflow_id
            else Workflow(user_id=user_id)
        )
        self._workflows[workflow.id] = workflow
        self._actions[workflow.id] = [
            action.model_copy(update={"workflow_id": workflow.id}, deep=True)
            for action in actions
        ]
        return workflow

    async def add_credential(self, credential: Credential) -> Credential:
        self._credentials[credential.id] = credential.model_copy(deep=True)
        return credential

    async def create_run(
        self, workflow_id: str, metadata: dict[str, Any] | None = None
    ) -> WorkflowRun:
        if workflow_id not in self._workflows:
            raise KeyError(f"Unknown workflow: {workflow_id}")
        run = WorkflowRun(workflow_id=workflow_id, metadata=copy.deepcopy(metadata or {}))
        self._outbox_id += 1
        self._runs[run.id] = run
        self._outbox[self._outbox_id] = OutboxEntry(
            id=self._outbox_id, workflow_run_id=run.id
        )
        return run.model_copy(deep=True)

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def get_run_details(self, run_id: str) -> RunDetails | None:
        run = self._runs.get(run_id)
        if run is None:
            return None
        workflow = self._workflows[run.workflow_id]
        actions = sorted(
            self._actions.get(workflow.id, []), key=lambda action: action.sorting_order
        )
        credentials = [
            c for c in self._credentials.values() if c.user_id == workflow.user_id
        ]
        return RunDetails(
            run=run, workflow=workflow, actions=actions, credentials=credentials
        ).model_copy(deep=True)

    async def get_run_status(self, run_id: str) -> RunStatus | None:
        run = self._runs.get(run_id)
        return run.status if run else None

    async def list_runs(self) -> list[WorkflowRun]:
        return [run.model_copy(deep=True) for run in self._runs.values()]

    async def update_run_metadata(self, run_id: str, metadata: dict[str, Any]) -> None:
        run = self._runs.get(run_id)
        if run:
            run.metadata = copy.deepcopy(metadata)

    async def mark_run_error(self, run_id: str, message: str) -> None:
        run = self._runs.get(run_id)
        if run and run.status is RunStatus.RUNNING:
            run.status = RunStatus.ERROR
            run.error_metadata = {"errorMessage": message}

    async def mark_run_complete(self, run_id: str) -> None:
        run = self._runs.get(run_id)
        if run and run.status is RunStatus.RUNNING:
            run.status = RunStatus.COMPLETE
            run.finished_at = utcnow()

    async def fetch_outbox(self, limit: int) -> list[OutboxEntry]:
        return [self._outbox[key] for key in sorted(self._outbox)[:limit]]

    async def delete_outbox(self, entry_ids: Iterable[int]) -> None:
        for entry_id in entry_ids:
            self._outbox.pop(entry_id, None)
