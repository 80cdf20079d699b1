"""Job state machine reconstructed from checkpoints.

pending -> layers_generated -> output_persisted -> [name_persisted]
        -> blobs_uploaded(k of n) -> completed

``failed`` is absorbing and reachable from any state before ``completed``.
"""

from __future__ import annotations

from typing import Iterable

from layered.models.workflow import Checkpoint, JobProgress, JobState

GENERATE_LAYERS = "generate-layers"
GENERATE_NAME = "generate-name"
PERSIST_PREDICTION_OUTPUT = "persist-prediction-output"
PERSIST_PROJECT_NAME = "persist-project-name"
UPLOAD_OUTPUT_PREFIX = "upload-output-"
MARK_COMPLETED = "mark-completed"
MARK_FAILED = "mark-failed"


def upload_step(index: int) -> str:
    return f"{UPLOAD_OUTPUT_PREFIX}{index}"


def resolve_progress(job_id: str, checkpoints: Iterable[Checkpoint]) -> JobProgress:
    """Map a job's checkpoints onto its position in the state machine."""
    by_step = {c.step_name: c for c in checkpoints}
    progress = JobProgress(job_id=job_id, steps=list(by_step))

    layers = by_step.get(GENERATE_LAYERS)
    if layers is not None and isinstance(layers.result, dict):
        progress.outputs_total = len(layers.result.get("images", []))
    progress.outputs_uploaded = sum(1 for s in by_step if s.startswith(UPLOAD_OUTPUT_PREFIX))

    if MARK_FAILED in by_step:
        progress.state = JobState.FAILED
    elif MARK_COMPLETED in by_step:
        progress.state = JobState.COMPLETED
    elif progress.outputs_uploaded:
        progress.state = JobState.BLOBS_UPLOADED
    elif PERSIST_PROJECT_NAME in by_step:
        progress.state = JobState.NAME_PERSISTED
    elif PERSIST_PREDICTION_OUTPUT in by_step:
        progress.state = JobState.OUTPUT_PERSISTED
    elif layers is not None:
        progress.state = JobState.LAYERS_GENERATED
    return progress
