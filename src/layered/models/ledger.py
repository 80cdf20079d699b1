"""Ledger rows (projects, predictions, blobs, prediction_blobs) and batch writes."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, ClassVar, Optional, Union

from pydantic import BaseModel, Field

from layered.core.ids import generate_id


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Status(StrEnum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class BlobRole(StrEnum):
    INPUT = "input"
    OUTPUT = "output"


class Entity(StrEnum):
    PROJECTS = "projects"
    PREDICTIONS = "predictions"
    BLOBS = "blobs"
    PREDICTION_BLOBS = "prediction_blobs"


class Project(BaseModel):
    """One user-initiated decomposition job."""

    entity: ClassVar[Entity] = Entity.PROJECTS

    id: str = Field(default_factory=generate_id)
    name: Optional[str] = None
    status: Status = Status.PROCESSING
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Prediction(BaseModel):
    """One invocation of the inference service. ``output`` is ``"{}"`` until persisted."""

    entity: ClassVar[Entity] = Entity.PREDICTIONS

    id: str = Field(default_factory=generate_id)
    project_id: Optional[str] = None
    user_id: Optional[str] = None
    endpoint_id: str
    input: str
    output: str = "{}"
    status: Status = Status.PROCESSING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Blob(BaseModel):
    """Metadata for bytes held in the blob store under the same id."""

    entity: ClassVar[Entity] = Entity.BLOBS

    id: str = Field(default_factory=generate_id)
    content_type: str
    file_name: str
    file_size: int
    width: int
    height: int
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PredictionBlob(BaseModel):
    """Links a blob to a prediction as its input or as output number ``position``."""

    entity: ClassVar[Entity] = Entity.PREDICTION_BLOBS

    id: str = Field(default_factory=generate_id)
    prediction_id: str
    blob_id: str
    role: BlobRole
    position: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


Row = Union[Project, Prediction, Blob, PredictionBlob]

ROW_TYPES: dict[Entity, type[BaseModel]] = {
    Entity.PROJECTS: Project,
    Entity.PREDICTIONS: Prediction,
    Entity.BLOBS: Blob,
    Entity.PREDICTION_BLOBS: PredictionBlob,
}


class Insert(BaseModel):
    """Batch write: insert a new row. Fails the batch if the id exists."""

    row: Row

    @property
    def entity(self) -> Entity:
        return self.row.entity


class Update(BaseModel):
    """Batch write: set columns on an existing row.

    Fails the batch if the row is absent or any ``expected`` column differs
    from its current value.
    """

    entity: Entity
    row_id: str
    changes: dict[str, Any]
    expected: dict[str, Any] = Field(default_factory=dict)


Write = Union[Insert, Update]


def set_status(
    entity: Entity, row_id: str, status: Status, expected: Optional[Status] = None
) -> Update:
    """Status write, conditional on the current status when ``expected`` is given."""
    return Update(
        entity=entity,
        row_id=row_id,
        changes={"status": status},
        expected={"status": expected} if expected is not None else {},
    )
