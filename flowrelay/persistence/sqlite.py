"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

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


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite.

    One connection serves every worker thread; ``_lock`` serializes access
    so a multi-statement transaction is never committed halfway.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS actions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL REFERENCES workflows(id),
                sorting_order INTEGER NOT NULL,
                action_kind TEXT NOT NULL,
                metadata TEXT NOT NULL,
                UNIQUE (workflow_id, sorting_order)
            );
            CREATE TABLE IF NOT EXISTS credentials (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                platform TEXT NOT NULL,
                keys TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS workflow_runs (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL REFERENCES workflows(id),
                metadata TEXT NOT NULL,
                status TEXT NOT NULL,
                error_metadata TEXT,
                finished_at TEXT,
                created_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS workflow_run_outbox (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_run_id TEXT NOT NULL REFERENCES workflow_runs(id)
            );
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()

    def _execute_many(self, statements: list[tuple[str, tuple]]) -> None:
        """Run ``statements`` in a single transaction."""
        with self._lock:
            try:
                cur = self._conn.cursor()
                for query, params in statements:
                    cur.execute(query, params)
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _row_to_run(row: sqlite3.Row) -> WorkflowRun:
        return WorkflowRun(
            id=row["id"],
            workflow_id=row["workflow_id"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            status=RunStatus(row["status"]),
            error_metadata=json.loads(row["error_metadata"]) if row["error_metadata"] else None,
            finished_at=datetime.fromisoformat(row["finished_at"]) if row["finished_at"] else None,
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _load_details(self, run_id: str) -> RunDetails | None:
        with self._lock:
            return self._read_details(run_id)

    def _read_details(self, run_id: str) -> RunDetails | None:
        # Run, ordered action chain and every credential of the workflow owner.
        row = self._fetchone(
            f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE id = ?", run_id
        )
        if not row:
            return None
        run = self._row_to_run(row)
        wf_row = self._fetchone(
            "SELECT id, user_id FROM workflows WHERE id = ?", run.workflow_id
        )
        if not wf_row:
            return None
        workflow = Workflow(id=wf_row["id"], user_id=wf_row["user_id"])
        action_rows = self._fetchall(
            "SELECT id, workflow_id, sorting_order, action_kind, metadata FROM actions "
            "WHERE workflow_id = ? ORDER BY sorting_order",
            workflow.id,
        )
        credential_rows = self._fetchall(
            "SELECT id, user_id, platform, keys FROM credentials WHERE user_id = ?",
            workflow.user_id,
        )
        return RunDetails(
            run=run,
            workflow=workflow,
            actions=[
                Action(
                    id=r["id"],
                    workflow_id=r["workflow_id"],
                    sorting_order=r["sorting_order"],
                    action_kind=r["action_kind"],
                    metadata=json.loads(r["metadata"]),
                )
                for r in action_rows
            ],
            credentials=[
                Credential(
                    id=r["id"],
                    user_id=r["user_id"],
                    platform=r["platform"],
                    keys=json.loads(r["keys"]),
                )
                for r in credential_rows
            ],
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_workflow(
        self, user_id: str, actions: Sequence[Action], workflow_id: str | None = None
    ) -> Workflow:
        workflow = (
            Workflow(id=workflow_id, user_id=user_id)
            if workflow_id
            else Workflow(user_id=user_id)
        )
        statements: list[tuple[str, tuple]] = [
            ("INSERT INTO workflows (id, user_id) VALUES (?, ?)", (workflow.id, user_id))
        ]
        for action in actions:
            statements.append(
                (
                    "INSERT INTO actions (id, workflow_id, sorting_order, action_kind, metadata) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        action.id,
                        workflow.id,
                        action.sorting_order,
                        action.action_kind,
                        json.dumps(action.metadata),
                    ),
                )
            )
        await asyncio.to_thread(self._execute_many, statements)
        return workflow

    async def add_credential(self, credential: Credential) -> Credential:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO credentials (id, user_id, platform, keys) VALUES (?, ?, ?, ?)",
            credential.id,
            credential.user_id,
            credential.platform,
            json.dumps(credential.keys),
        )
        return credential

    async def create_run(
        self, workflow_id: str, metadata: dict[str, Any] | None = None
    ) -> WorkflowRun:
        run = WorkflowRun(workflow_id=workflow_id, metadata=metadata or {})
        exists = await asyncio.to_thread(
            self._fetchone, "SELECT 1 FROM workflows WHERE id = ?", workflow_id
        )
        if not exists:
            raise KeyError(f"Unknown workflow: {workflow_id}")
        await asyncio.to_thread(
            self._execute_many,
            [
                (
                    f"INSERT INTO workflow_runs ({_RUN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        run.id,
                        run.workflow_id,
                        json.dumps(run.metadata),
                        run.status.value,
                        None,
                        None,
                        run.created_at.isoformat(),
                    ),
                ),
                (
                    "INSERT INTO workflow_run_outbox (workflow_run_id) VALUES (?)",
                    (run.id,),
                ),
            ],
        )
        return run

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE id = ?",
            run_id,
        )
        return self._row_to_run(row) if row else None

    async def get_run_details(self, run_id: str) -> RunDetails | None:
        return await asyncio.to_thread(self._load_details, run_id)

    async def get_run_status(self, run_id: str) -> RunStatus | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT status FROM workflow_runs WHERE id = ?", run_id
        )
        return RunStatus(row["status"]) if row else None

    async def list_runs(self) -> list[WorkflowRun]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_RUN_COLUMNS} FROM workflow_runs ORDER BY created_at",
        )
        return [self._row_to_run(row) for row in rows]

    async def update_run_metadata(self, run_id: str, metadata: dict[str, Any]) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_runs SET metadata = ? WHERE id = ?",
            json.dumps(metadata),
            run_id,
        )

    async def mark_run_error(self, run_id: str, message: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_runs SET status = ?, error_metadata = ? "
            "WHERE id = ? AND status = ?",
            RunStatus.ERROR.value,
            json.dumps({"errorMessage": message}),
            run_id,
            RunStatus.RUNNING.value,
        )

    async def mark_run_complete(self, run_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_runs SET status = ?, finished_at = ? "
            "WHERE id = ? AND status = ?",
            RunStatus.COMPLETE.value,
            utcnow().isoformat(),
            run_id,
            RunStatus.RUNNING.value,
        )

    async def fetch_outbox(self, limit: int) -> list[OutboxEntry]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, workflow_run_id FROM workflow_run_outbox ORDER BY id LIMIT ?",
            limit,
        )
        return [
            OutboxEntry(id=row["id"], workflow_run_id=row["workflow_run_id"])
            for row in rows
        ]

    async def delete_outbox(self, entry_ids: Iterable[int]) -> None:
        ids = list(entry_ids)
        if not ids:
            return
        placeholders = ", ".join("?" for _ in ids)
        await asyncio.to_thread(
            self._execute,
            f"DELETE FROM workflow_run_outbox WHERE id IN ({placeholders})",
            *ids,
        )
