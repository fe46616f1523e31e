"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from typing import Any, Iterable, Sequence

import asyncpg

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

_RUN_COLUMNS = "id, workflow_id, metadata, status, error_metadata, finished_at, created_at"


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        for json_type in ("json", "jsonb"):
            await conn.set_type_codec(
                json_type, encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
            )
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS actions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL REFERENCES workflows(id) ON DELETE CASCADE,
                sorting_order INTEGER NOT NULL,
                action_kind TEXT NOT NULL,
                metadata JSONB NOT NULL,
                UNIQUE (workflow_id, sorting_order)
            );
            CREATE TABLE IF NOT EXISTS credentials (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                platform TEXT NOT NULL,
                keys JSONB NOT NULL
            );
            CREATE TABLE IF NOT EXISTS workflow_runs (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL REFERENCES workflows(id) ON DELETE CASCADE,
                metadata JSONB NOT NULL,
                status TEXT NOT NULL,
                error_metadata JSONB,
                finished_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL
            );
            CREATE TABLE IF NOT EXISTS workflow_run_outbox (
                id BIGSERIAL PRIMARY KEY,
                workflow_run_id TEXT NOT NULL REFERENCES workflow_runs(id) ON DELETE CASCADE
            );
            """
        )

    @staticmethod
    def _row_to_run(row: asyncpg.Record) -> WorkflowRun:
        return WorkflowRun(
            id=row["id"],
            workflow_id=row["workflow_id"],
            metadata=row["metadata"] or {},
            status=RunStatus(row["status"]),
            error_metadata=row["error_metadata"],
            finished_at=row["finished_at"],
            created_at=row["created_at"],
        )

    # ------------------------------------------------------------------
    async def create_workflow(
        self, user_id: str, actions: Sequence[Action], workflow_id: str | None = None
    ) -> Workflow:
        workflow = (
            Workflow(id=workflow_id, user_id=user_id)
            if workflow_id
            else Workflow(user_id=user_id)
        )
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    "INSERT INTO workflows (id, user_id) VALUES ($1, $2)",
                    workflow.id,
                    user_id,
                )
                await conn.executemany(
                    "INSERT INTO actions (id, workflow_id, sorting_order, action_kind, metadata) "
                    "VALUES ($1, $2, $3, $4, $5)",
                    [
                        (a.id, workflow.id, a.sorting_order, a.action_kind, a.metadata)
                        for a in actions
                    ],
                )
        finally:
            await conn.close()
        return workflow

    async def add_credential(self, credential: Credential) -> Credential:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO credentials (id, user_id, platform, keys) VALUES ($1, $2, $3, $4)",
                credential.id,
                credential.user_id,
                credential.platform,
                credential.keys,
            )
        finally:
            await conn.close()
        return credential

    async def create_run(
        self, workflow_id: str, metadata: dict[str, Any] | None = None
    ) -> WorkflowRun:
        run = WorkflowRun(workflow_id=workflow_id, metadata=metadata or {})
        conn = await self._connect()
        try:
            try:
                async with conn.transaction():
                    await conn.execute(
                        f"INSERT INTO workflow_runs ({_RUN_COLUMNS}) "
                        "VALUES ($1, $2, $3, $4, NULL, NULL, $5)",
                        run.id,
                        run.workflow_id,
                        run.metadata,
                        run.status.value,
                        run.created_at,
                    )
                    await conn.execute(
                        "INSERT INTO workflow_run_outbox (workflow_run_id) VALUES ($1)",
                        run.id,
                    )
            except asyncpg.ForeignKeyViolationError as exc:
                raise KeyError(f"Unknown workflow: {workflow_id}") from exc
        finally:
            await conn.close()
        return run

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE id = $1", run_id
            )
        finally:
            await conn.close()
        return self._row_to_run(row) if row else None

    async def get_run_details(self, run_id: str) -> RunDetails | None:
        conn = await self._connect()
        try:
            async with conn.transaction(readonly=True, isolation="repeatable_read"):
                row = await conn.fetchrow(
                    f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE id = $1", run_id
                )
                if not row:
                    return None
                wf_row = await conn.fetchrow(
                    "SELECT id, user_id FROM workflows WHERE id = $1", row["workflow_id"]
                )
                if not wf_row:
                    return None
                action_rows = await conn.fetch(
                    "SELECT id, workflow_id, sorting_order, action_kind, metadata "
                    "FROM actions WHERE workflow_id = $1 ORDER BY sorting_order",
                    wf_row["id"],
                )
                credential_rows = await conn.fetch(
                    "SELECT id, user_id, platform, keys FROM credentials WHERE user_id = $1",
                    wf_row["user_id"],
                )
        finally:
            await conn.close()
        return RunDetails(
            run=self._row_to_run(row),
            workflow=Workflow(id=wf_row["id"], user_id=wf_row["user_id"]),
            actions=[
                Action(
                    id=r["id"],
                    workflow_id=r["workflow_id"],
                    sorting_order=r["sorting_order"],
                    action_kind=r["action_kind"],
                    metadata=r["metadata"],
                )
                for r in action_rows
            ],
            credentials=[
                Credential(
                    id=r["id"], user_id=r["user_id"], platform=r["platform"], keys=r["keys"]
                )
                for r in credential_rows
            ],
        )

    async def get_run_status(self, run_id: str) -> RunStatus | None:
        conn = await self._connect()
        try:
            status = await conn.fetchval(
                "SELECT status FROM workflow_runs WHERE id = $1", run_id
            )
        finally:
            await conn.close()
        return RunStatus(status) if status else None

    async def list_runs(self) -> list[WorkflowRun]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_RUN_COLUMNS} FROM workflow_runs ORDER BY created_at"
            )
        finally:
            await conn.close()
        return [self._row_to_run(r) for r in rows]

    async def update_run_metadata(self, run_id: str, metadata: dict[str, Any]) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE workflow_runs SET metadata = $1 WHERE id = $2", metadata, run_id
            )
        finally:
            await conn.close()

    async def mark_run_error(self, run_id: str, message: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE workflow_runs SET status = $1, error_metadata = $2 "
                "WHERE id = $3 AND status = $4",
                RunStatus.ERROR.value,
                {"errorMessage": message},
                run_id,
                RunStatus.RUNNING.value,
            )
        finally:
            await conn.close()

    async def mark_run_complete(self, run_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE workflow_runs SET status = $1, finished_at = $2 "
                "WHERE id = $3 AND status = $4",
                RunStatus.COMPLETE.value,
                utcnow(),
                run_id,
                RunStatus.RUNNING.value,
            )
        finally:
            await conn.close()

    async def fetch_outbox(self, limit: int) -> list[OutboxEntry]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT id, workflow_run_id FROM workflow_run_outbox ORDER BY id LIMIT $1",
                limit,
            )
        finally:
            await conn.close()
        return [OutboxEntry(id=r["id"], workflow_run_id=r["workflow_run_id"]) for r in rows]

    async def delete_outbox(self, entry_ids: Iterable[int]) -> None:
        ids = list(entry_ids)
        if not ids:
            return
        conn = await self._connect()
        try:
            await conn.execute(
                "DELETE FROM workflow_run_outbox WHERE id = ANY($1::bigint[])", ids
            )
        finally:
            await conn.close()
