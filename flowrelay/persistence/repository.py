"""Repository abstraction for workflow run persistence."""

from __future__ import annotations

from typing import Any, Iterable, Protocol, Sequence

from .models import (
    Action,
    Credential,
    OutboxEntry,
    RunDetails,
    RunStatus,
    Workflow,
    WorkflowRun,
)


class WorkflowRepository(Protocol):
    """Protocol for workflow run persistence backends."""

    async def create_workflow(
        self, user_id: str, actions: Sequence[Action], workflow_id: str | None = None
    ) -> Workflow:
        """Persist a workflow and its action chain."""

    async def add_credential(self, credential: Credential) -> Credential:
        """Persist a user's credential."""

    async def create_run(
        self, workflow_id: str, metadata: dict[str, Any] | None = None
    ) -> WorkflowRun:
        """Create a run and its outbox entry in one transaction."""

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        """Retrieve a run by id."""

    async def get_run_details(self, run_id: str) -> RunDetails | None:
        """Load a run with its action chain and the owner's credentials."""

    async def get_run_status(self, run_id: str) -> RunStatus | None:
        """Return the persisted status of a run."""

    async def list_runs(self) -> list[WorkflowRun]:
        """Return all persisted runs."""

    async def update_run_metadata(self, run_id: str, metadata: dict[str, Any]) -> None:
        """Replace the run context."""

    async def mark_run_error(self, run_id: str, message: str) -> None:
        """Move a running run to ``Error``."""

    async def mark_run_complete(self, run_id: str) -> None:
        """Move a running run to ``Complete`` and stamp ``finished_at``."""

    async def fetch_outbox(self, limit: int) -> list[OutboxEntry]:
        """Return up to ``limit`` pending outbox entries, oldest first."""

    async def delete_outbox(self, entry_ids: Iterable[int]) -> None:
        """Remove relayed outbox entries."""
