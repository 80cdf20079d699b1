"""Job request, checkpoint and progress models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from layered.models.ledger import utcnow


class JobParams(BaseModel):
    """Payload a job is enqueued with."""

    project_id: str
    prediction_id: str
    image_url: str
    layer_count: int = Field(ge=1)


class JobRequest(BaseModel):
    """Queue message: a job id plus its parameters."""

    job_id: str
    params: JobParams


class Checkpoint(BaseModel):
    """Durably recorded result of one step of one job."""

    job_id: str
    step_name: str
    result: Any = None
    created_at: datetime = Field(default_factory=utcnow)


class JobState(StrEnum):
    PENDING = "pending"
    LAYERS_GENERATED = "layers_generated"
    OUTPUT_PERSISTED = "output_persisted"
    NAME_PERSISTED = "name_persisted"
    BLOBS_UPLOADED = "blobs_uploaded"
    COMPLETED = "completed"
    FAILED = "failed"


class JobProgress(BaseModel):
    """State of a job as reconstructed from its checkpoints."""

    job_id: str
    state: JobState = JobState.PENDING
    steps: list[str] = Field(default_factory=list)
    outputs_uploaded: int = 0
    outputs_total: Optional[int] = None

    @property
    def terminal(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)
