"""Protocol interfaces for all Layered collaborators.

The workflow only talks to these Protocols: structural typing, no inheritance
required, easy to fake in tests.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from layered.models.ledger import (
    Blob,
    BlobRole,
    Entity,
    Prediction,
    PredictionBlob,
    Project,
    Row,
    Write,
)
from layered.core.types import BlobId, JobId, JsonDict, PredictionId, ProjectId, StepName
from layered.models.workflow import Checkpoint, JobRequest


# ---------------------------------------------------------------------------
# Persistence: Ledger
# ---------------------------------------------------------------------------

@runtime_checkable
class ILedger(Protocol):
    """Transactional store for projects, predictions, blobs and their links."""

    def insert(self, row: Row) -> None: ...

    def update(self, entity: Entity, row_id: str, **changes: Any) -> None: ...

    def get_project(self, project_id: ProjectId) -> Optional[Project]: ...

    def get_prediction(self, prediction_id: PredictionId) -> Optional[Prediction]: ...

    def get_blob(self, blob_id: BlobId) -> Optional[Blob]: ...

    def list_predictions(self, project_id: ProjectId) -> list[Prediction]: ...

    def list_prediction_blobs(
        self, prediction_id: PredictionId, role: Optional[BlobRole] = None
    ) -> list[PredictionBlob]: ...

    def batch(self, writes: Sequence[Write]) -> None: ...

    def list_stale_projects(self, older_than: datetime) -> list[Project]: ...


# ---------------------------------------------------------------------------
# Persistence: Blob Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IBlobStore(Protocol):
    """Durable binary storage keyed by blob id."""

    def put(self, key: str, data: bytes, content_type: str) -> None: ...

    def get(self, key: str) -> bytes: ...


# ---------------------------------------------------------------------------
# Persistence: Step Checkpoints
# ---------------------------------------------------------------------------

@runtime_checkable
class ICheckpointStore(Protocol):
    """Step results keyed by (job_id, step_name)."""

    def get(self, job_id: JobId, step_name: StepName) -> Optional[Checkpoint]: ...

    def put(self, job_id: JobId, step_name: StepName, result: Any) -> None: ...

    def list_job(self, job_id: JobId) -> list[Checkpoint]: ...


# ---------------------------------------------------------------------------
# External gateways
# ---------------------------------------------------------------------------

@runtime_checkable
class IInferenceGateway(Protocol):
    """Layer-decomposition inference service. Blocks until a result is available."""

    def generate_layers(self, image_url: str, num_layers: int) -> JsonDict: ...


@runtime_checkable
class ICaptioningGateway(Protocol):
    """Short title for an image, or None."""

    def generate_title(self, image_url: str) -> Optional[str]: ...


@runtime_checkable
class IAssetFetcher(Protocol):
    """Download bytes of a remote asset."""

    def fetch(self, url: str) -> bytes: ...


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

@runtime_checkable
class IJobQueue(Protocol):
    """At-least-once job delivery."""

    def enqueue(self, request: JobRequest) -> None: ...

    def receive(self, max_messages: int = 1) -> list[tuple[str, JobRequest]]: ...

    def ack(self, receipt: str) -> None: ...
