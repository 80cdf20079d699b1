"""Layered exception hierarchy."""

from __future__ import annotations


class LayeredError(Exception):
    """Base exception for all Layered errors."""


class NonRetryableError(LayeredError):
    """Failure that retrying the same step body cannot fix."""


class WorkflowError(LayeredError):
    """Error during workflow execution."""


class JobFailedError(WorkflowError):
    """The job already reached the terminal failed state."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id} already failed")


class TerminalStatusError(NonRetryableError, WorkflowError):
    """A terminal status write found the job already in the other terminal status."""

    def __init__(self, project_id: str, current: str, requested: str) -> None:
        self.project_id = project_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Project {project_id} is already {current}; refusing to mark it {requested}"
        )


class InvalidInferenceOutputError(NonRetryableError):
    """Inference response is empty or does not match the expected shape."""


class InvalidJobParamsError(NonRetryableError):
    """Job submission parameters are out of range or reference missing rows."""


class UnsupportedContentTypeError(NonRetryableError):
    """Uploaded image has a content type the pipeline does not accept."""

    def __init__(self, content_type: str) -> None:
        self.content_type = content_type
        super().__init__(f"Unsupported content type: {content_type!r}")


class GatewayError(LayeredError):
    """An external service call failed."""


class InferenceError(GatewayError):
    """Layer-decomposition inference call failed."""


class InferenceTimeoutError(InferenceError):
    """Inference request did not complete within its deadline."""

    def __init__(self, request_id: str, timeout_seconds: float) -> None:
        self.request_id = request_id
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Inference request {request_id} not completed after {timeout_seconds}s")


class CaptioningError(GatewayError):
    """Title generation call failed."""


class AssetFetchError(GatewayError):
    """Downloading an output asset failed."""


class LedgerError(LayeredError):
    """Ledger (relational store) operation failed."""


class DuplicateRowError(LedgerError):
    """Insert targeted a row id that already exists."""


class RowNotFoundError(LedgerError):
    """Update targeted a row that does not exist."""


class ConditionFailedError(LedgerError):
    """Update precondition on the current row values did not hold."""


class BatchWriteError(LedgerError):
    """Atomic batch write was rejected; none of its writes were applied."""


class BlobStoreError(LayeredError):
    """Blob store operation failed."""


class BlobNotFoundError(BlobStoreError):
    """No bytes stored under the requested key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Blob {key!r} not found")


class CheckpointError(LayeredError):
    """Checkpoint store operation failed."""


class QueueError(LayeredError):
    """Job queue operation failed."""
