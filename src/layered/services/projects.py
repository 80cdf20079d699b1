"""Project submission and read model.

Submission writes the placeholder rows and enqueues the job; the workflow
itself only ever runs on a worker.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Optional, get_args

import structlog
from pydantic import BaseModel, Field, ValidationError

from layered.core.exceptions import (
    InvalidJobParamsError,
    RowNotFoundError,
    UnsupportedContentTypeError,
)
from layered.core.ids import generate_id
from layered.core.protocols import IBlobStore, IJobQueue, ILedger
from layered.models.inference import ImageContentType, LayeredImageOutput
from layered.models.ledger import (
    Blob,
    BlobRole,
    Insert,
    Prediction,
    PredictionBlob,
    Project,
    Status,
    utcnow,
)
from layered.models.workflow import JobParams, JobRequest

logger = structlog.get_logger(__name__)

IMAGE_ENDPOINT_ID = "fal-ai/qwen-image-layered"
CONTENT_TYPES: tuple[str, ...] = get_args(ImageContentType)
MIN_LAYERS = 2
MAX_LAYERS = 10
DEFAULT_LAYERS = 4


class PublicBlob(BaseModel):
    id: str
    url: str
    content_type: str
    width: int
    height: int


class ProjectView(BaseModel):
    """What a client polling a project sees."""

    id: str
    name: Optional[str] = None
    status: Status
    input_blob: Optional[PublicBlob] = None
    output_blobs: list[PublicBlob] = Field(default_factory=list)
    created_at: datetime


class PredictionView(BaseModel):
    """Layer URLs of one prediction.

    Stored output blobs win. Before any are linked, the layers fall back to the
    raw URLs of the persisted inference response, so a job interrupted between
    persisting the response and uploading the layers still shows its result.
    """

    id: str
    project_id: str
    status: Status
    layers: list[str] = Field(default_factory=list)
    created_at: datetime


def upload_input_image(
    ledger: ILedger,
    blob_store: IBlobStore,
    *,
    data: bytes,
    content_type: str,
    file_name: str,
    width: int,
    height: int,
) -> Blob:
    """Store an uploaded source image, bytes first, then its blob row."""
    if content_type not in CONTENT_TYPES:
        raise UnsupportedContentTypeError(content_type)

    blob = Blob(
        content_type=content_type,
        file_name=file_name,
        file_size=len(data),
        width=width,
        height=height,
    )
    blob_store.put(blob.id, data, content_type)
    ledger.insert(blob)
    logger.info("input_uploaded", blob_id=blob.id, size=blob.file_size)
    return blob


def create_project(
    ledger: ILedger,
    queue: IJobQueue,
    *,
    image_url: str,
    input_blob_id: str,
    layer_count: int = DEFAULT_LAYERS,
    user_id: Optional[str] = None,
    endpoint_id: str = IMAGE_ENDPOINT_ID,
) -> JobRequest:
    """Write the processing Project, placeholder Prediction and input link, then enqueue."""
    if not MIN_LAYERS <= layer_count <= MAX_LAYERS:
        raise InvalidJobParamsError(
            f"layer_count must be between {MIN_LAYERS} and {MAX_LAYERS}, got {layer_count}"
        )
    if ledger.get_blob(input_blob_id) is None:
        raise InvalidJobParamsError(f"Input blob {input_blob_id!r} not found")

    project = Project(user_id=user_id, status=Status.PROCESSING)
    prediction = Prediction(
        project_id=project.id,
        user_id=user_id,
        endpoint_id=endpoint_id,
        input=json.dumps({"image_url": image_url, "num_layers": layer_count}),
        output=json.dumps({}),
        status=Status.PROCESSING,
    )
    ledger.batch([
        Insert(row=project),
        Insert(row=prediction),
        Insert(row=PredictionBlob(
            prediction_id=prediction.id,
            blob_id=input_blob_id,
            role=BlobRole.INPUT,
            position=0,
        )),
    ])

    request = JobRequest(
        job_id=generate_id(),
        params=JobParams(
            project_id=project.id,
            prediction_id=prediction.id,
            image_url=image_url,
            layer_count=layer_count,
        ),
    )
    queue.enqueue(request)
    logger.info(
        "project_created", project_id=project.id, prediction_id=prediction.id,
        job_id=request.job_id, layer_count=layer_count,
    )
    return request


def _public_blob(blob: Blob, public_base_url: str) -> PublicBlob:
    return PublicBlob(
        id=blob.id,
        url=f"{public_base_url.rstrip('/')}/{blob.id}",
        content_type=blob.content_type,
        width=blob.width,
        height=blob.height,
    )


def _raw_layer_urls(prediction: Prediction) -> list[str]:
    """Layer URLs straight from the persisted inference response."""
    try:
        output = LayeredImageOutput.model_validate_json(prediction.output)
    except ValidationError:
        return []
    return [image.url for image in output.images]


def get_project(ledger: ILedger, project_id: str, public_base_url: str) -> ProjectView:
    """Assemble the project read model. Outputs are shown only once completed."""
    project = ledger.get_project(project_id)
    if project is None:
        raise RowNotFoundError(f"Project {project_id!r} not found")

    predictions = ledger.list_predictions(project_id)
    if not predictions:
        raise RowNotFoundError(f"No prediction for project {project_id!r}")
    prediction = predictions[0]

    view = ProjectView(
        id=project.id, name=project.name, status=project.status, created_at=project.created_at,
    )
    for link in ledger.list_prediction_blobs(prediction.id):
        blob = ledger.get_blob(link.blob_id)
        if blob is None:
            continue
        if link.role == BlobRole.INPUT:
            view.input_blob = _public_blob(blob, public_base_url)
        elif project.status == Status.COMPLETED:
            view.output_blobs.append(_public_blob(blob, public_base_url))
    return view


def get_prediction(ledger: ILedger, prediction_id: str, public_base_url: str) -> PredictionView:
    """Assemble the per-prediction layer view."""
    prediction = ledger.get_prediction(prediction_id)
    if prediction is None:
        raise RowNotFoundError(f"Prediction {prediction_id!r} not found")

    layers = []
    for link in ledger.list_prediction_blobs(prediction_id, role=BlobRole.OUTPUT):
        blob = ledger.get_blob(link.blob_id)
        if blob is not None:
            layers.append(_public_blob(blob, public_base_url).url)
    if not layers:
        layers = _raw_layer_urls(prediction)

    return PredictionView(
        id=prediction.id, project_id=prediction.project_id, status=prediction.status,
        layers=layers, created_at=prediction.created_at,
    )


def list_stale_projects(
    ledger: ILedger, max_age: timedelta, now: Optional[datetime] = None
) -> list[Project]:
    """Projects still processing after ``max_age``. Reports only; nothing reconciles them."""
    cutoff = (now or utcnow()) - max_age
    stale = ledger.list_stale_projects(cutoff)
    if stale:
        logger.warning("stale_projects_found", count=len(stale), cutoff=cutoff.isoformat())
    return stale
