"""Wire contracts exchanged over the broker."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class StageMessage(BaseModel):
    """Request to execute one stage of a workflow run.

    Serialized as ``{"workflowRunId": ..., "stage": ...}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    workflow_run_id: str = Field(alias="workflowRunId")
    stage: int = Field(ge=0)

    @property
    def partition_key(self) -> str:
        """Broker key keeping all stages of one run in order."""
        return self.workflow_run_id

    def next_stage(self) -> "StageMessage":
        """Message for the stage following this one."""
        return StageMessage(workflow_run_id=self.workflow_run_id, stage=self.stage + 1)

    def to_json(self) -> str:
        """Serialize message to JSON."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str | bytes) -> "StageMessage":
        """Deserialize message from JSON."""
        return cls.model_validate_json(data)
