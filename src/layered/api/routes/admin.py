"""Admin endpoints for job inspection and stuck-project reporting."""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, HTTPException, Query, Request

from layered.core.exceptions import RowNotFoundError
from layered.models.workflow import JobProgress
from layered.services.projects import PredictionView, get_prediction, list_stale_projects
from layered.workflow.state import resolve_progress

router = APIRouter(tags=["admin"])


@router.get("/jobs/{job_id}")
def get_job(job_id: str, request: Request) -> JobProgress:
    """Return checkpointed steps and the resolved state of a job."""
    checkpoints = request.app.state.checkpoints.list_job(job_id)
    return resolve_progress(job_id, checkpoints)


@router.get("/predictions/{prediction_id}")
def get_prediction_layers(prediction_id: str, request: Request) -> PredictionView:
    """Return the layer URLs of a prediction, raw inference URLs until outputs are stored."""
    try:
        return get_prediction(
            request.app.state.ledger, prediction_id, request.app.state.settings.public_base_url,
        )
    except RowNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/projects/stale")
def get_stale_projects(
    request: Request,
    older_than_minutes: int = Query(60, ge=1),
) -> dict:
    """Projects still processing after the given age. Read-only."""
    stale = list_stale_projects(request.app.state.ledger, timedelta(minutes=older_than_minutes))
    return {
        "older_than_minutes": older_than_minutes,
        "projects": [p.model_dump(mode="json") for p in stale],
    }
