"""In-memory backends for unit tests and local runs."""

from __future__ import annotations

import copy
import json
import threading
from collections import Counter, deque
from datetime import datetime
from typing import Any, Optional, Sequence

from layered.core.exceptions import (
    BatchWriteError,
    BlobNotFoundError,
    CheckpointError,
    ConditionFailedError,
    DuplicateRowError,
    LedgerError,
    RowNotFoundError,
)
from layered.core.ids import generate_id
from layered.models.ledger import (
    Blob,
    BlobRole,
    Entity,
    Insert,
    Prediction,
    PredictionBlob,
    Project,
    Row,
    Status,
    Update,
    Write,
    utcnow,
)
from layered.models.workflow import Checkpoint, JobRequest

_Tables = dict[Entity, dict[str, Row]]


class MemoryLedger:
    """Dict-backed ILedger. Batches apply to a copy that is swapped in on success."""

    def __init__(self) -> None:
        self._tables: _Tables = {entity: {} for entity in Entity}
        self._lock = threading.Lock()
        self._batch_failures: deque[Exception] = deque()
        self.batch_count = 0

    def fail_next_batch(self, error: Optional[Exception] = None) -> None:
        """Make the next ``batch`` call raise without applying anything."""
        self._batch_failures.append(error or BatchWriteError("injected batch failure"))

    # ---- ILedger methods ----

    def insert(self, row: Row) -> None:
        with self._lock:
            self._apply(self._tables, Insert(row=row))

    def update(self, entity: Entity, row_id: str, **changes: Any) -> None:
        with self._lock:
            self._apply(self._tables, Update(entity=entity, row_id=row_id, changes=changes))

    def get_project(self, project_id: str) -> Optional[Project]:
        return self._get(Entity.PROJECTS, project_id)  # type: ignore[return-value]

    def get_prediction(self, prediction_id: str) -> Optional[Prediction]:
        return self._get(Entity.PREDICTIONS, prediction_id)  # type: ignore[return-value]

    def get_blob(self, blob_id: str) -> Optional[Blob]:
        return self._get(Entity.BLOBS, blob_id)  # type: ignore[return-value]

    def list_predictions(self, project_id: str) -> list[Prediction]:
        rows = [
            p for p in self._tables[Entity.PREDICTIONS].values()
            if p.project_id == project_id  # type: ignore[union-attr]
        ]
        return [p.model_copy() for p in sorted(rows, key=lambda p: p.created_at)]  # type: ignore[misc]

    def list_prediction_blobs(
        self, prediction_id: str, role: Optional[BlobRole] = None
    ) -> list[PredictionBlob]:
        rows = [
            pb for pb in self._tables[Entity.PREDICTION_BLOBS].values()
            if pb.prediction_id == prediction_id  # type: ignore[union-attr]
            and (role is None or pb.role == role)  # type: ignore[union-attr]
        ]
        rows.sort(key=lambda pb: (pb.role, pb.position))  # type: ignore[union-attr]
        return [pb.model_copy() for pb in rows]  # type: ignore[misc]

    def batch(self, writes: Sequence[Write]) -> None:
        with self._lock:
            self.batch_count += 1
            if self._batch_failures:
                raise self._batch_failures.popleft()
            staged = {entity: dict(rows) for entity, rows in self._tables.items()}
            try:
                for write in writes:
                    self._apply(staged, write)
            except LedgerError as exc:
                raise BatchWriteError(f"Batch rejected: {exc}") from exc
            self._tables = staged

    def list_stale_projects(self, older_than: datetime) -> list[Project]:
        rows = [
            p for p in self._tables[Entity.PROJECTS].values()
            if p.status == Status.PROCESSING and p.created_at < older_than  # type: ignore[union-attr]
        ]
        return [p.model_copy() for p in sorted(rows, key=lambda p: p.created_at)]  # type: ignore[misc]

    # ---- helpers ----

    def _get(self, entity: Entity, row_id: str) -> Optional[Row]:
        row = self._tables[entity].get(row_id)
        return row.model_copy() if row is not None else None

    @staticmethod
    def _apply(tables: _Tables, write: Write) -> None:
        if isinstance(write, Insert):
            table = tables[write.entity]
            if write.row.id in table:
                raise DuplicateRowError(f"{write.entity} row {write.row.id!r} already exists")
            if isinstance(write.row, PredictionBlob):
                for other in table.values():
                    if (
                        other.prediction_id == write.row.prediction_id  # type: ignore[union-attr]
                        and other.role == write.row.role  # type: ignore[union-attr]
                        and other.position == write.row.position  # type: ignore[union-attr]
                    ):
                        raise DuplicateRowError(
                            f"{write.row.role} position {write.row.position} already linked "
                            f"to prediction {write.row.prediction_id!r}"
                        )
            table[write.row.id] = write.row.model_copy(deep=True)
        else:
            table = tables[write.entity]
            current = table.get(write.row_id)
            if current is None:
                raise RowNotFoundError(f"{write.entity} row {write.row_id!r} not found")
            for field, value in write.expected.items():
                if getattr(current, field) != value:
                    raise ConditionFailedError(
                        f"{write.entity} row {write.row_id!r} has {field}="
                        f"{getattr(current, field)!r}, expected {value!r}"
                    )
            changes = {**write.changes, "updated_at": utcnow()}
            table[write.row_id] = current.model_copy(update=changes)


class MemoryBlobStore:
    """Dict-backed IBlobStore for unit tests. Counts writes per key."""

    def __init__(self) -> None:
        self._blobs: dict[str, tuple[bytes, str]] = {}
        self.put_counts: Counter[str] = Counter()

    def put(self, key: str, data: bytes, content_type: str) -> None:
        self._blobs[key] = (data, content_type)
        self.put_counts[key] += 1

    def get(self, key: str) -> bytes:
        try:
            return self._blobs[key][0]
        except KeyError:
            raise BlobNotFoundError(key) from None

    def content_type(self, key: str) -> str:
        return self._blobs[key][1]

    def keys(self) -> list[str]:
        return sorted(self._blobs)


class MemoryCheckpointStore:
    """Dict-backed ICheckpointStore. Results round-trip through JSON like real backends."""

    def __init__(self) -> None:
        self._checkpoints: dict[tuple[str, str], str] = {}
        self._created: dict[tuple[str, str], datetime] = {}
        self.put_count = 0
        self._put_failures: dict[str, deque[Exception]] = {}

    def fail_next_put(self, step_name: str, error: Optional[Exception] = None) -> None:
        """Make the next ``put`` for ``step_name`` raise without storing anything."""
        self._put_failures.setdefault(step_name, deque()).append(
            error or CheckpointError(f"injected checkpoint write failure for {step_name}")
        )

    def get(self, job_id: str, step_name: str) -> Optional[Checkpoint]:
        raw = self._checkpoints.get((job_id, step_name))
        if raw is None:
            return None
        return Checkpoint(
            job_id=job_id, step_name=step_name, result=json.loads(raw),
            created_at=self._created[(job_id, step_name)],
        )

    def put(self, job_id: str, step_name: str, result: Any) -> None:
        pending = self._put_failures.get(step_name)
        if pending:
            raise pending.popleft()
        self._checkpoints[(job_id, step_name)] = json.dumps(result)
        self._created[(job_id, step_name)] = utcnow()
        self.put_count += 1

    def list_job(self, job_id: str) -> list[Checkpoint]:
        keys = sorted(
            (k for k in self._checkpoints if k[0] == job_id), key=lambda k: self._created[k]
        )
        return [self.get(*k) for k in keys]  # type: ignore[misc]

    def drop(self, job_id: str, step_name: str) -> None:
        """Forget a checkpoint, as if its write had been lost."""
        self._checkpoints.pop((job_id, step_name), None)
        self._created.pop((job_id, step_name), None)


class MemoryJobQueue:
    """In-process IJobQueue. Un-acked messages can be redelivered with ``requeue_unacked``."""

    def __init__(self) -> None:
        self._pending: deque[JobRequest] = deque()
        self._in_flight: dict[str, JobRequest] = {}

    def enqueue(self, request: JobRequest) -> None:
        self._pending.append(copy.deepcopy(request))

    def receive(self, max_messages: int = 1) -> list[tuple[str, JobRequest]]:
        received: list[tuple[str, JobRequest]] = []
        while self._pending and len(received) < max_messages:
            receipt = generate_id()
            request = self._pending.popleft()
            self._in_flight[receipt] = request
            received.append((receipt, request))
        return received

    def ack(self, receipt: str) -> None:
        self._in_flight.pop(receipt, None)

    def requeue_unacked(self) -> int:
        """Simulate visibility timeout expiry. Returns the number of redelivered jobs."""
        count = len(self._in_flight)
        self._pending.extend(self._in_flight.values())
        self._in_flight.clear()
        return count

    def __len__(self) -> int:
        return len(self._pending)
