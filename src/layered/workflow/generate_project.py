"""GenerateProjectWorkflow: turns one uploaded image into a layered project.

Steps, each checkpointed under its name:

1. generate-layers            inference call, response validated
2. generate-name              captioning call; failures yield no name
3. persist-prediction-output  raw output onto the prediction row
4. persist-project-name       only when step 2 produced a name
5. upload-output-{i}          fetch layer i, store bytes, then blob + link rows
6. mark-completed             prediction and project completed together

Any failure outside step 2 runs mark-failed (both rows failed together) and
re-raises, so the scheduler sees the job fail. Status batches only move rows
out of processing; a job whose rows are already terminal records the matching
checkpoint and stops.
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import structlog

from layered.core.config import WorkflowConfig
from layered.core.exceptions import (
    BlobNotFoundError,
    JobFailedError,
    TerminalStatusError,
    WorkflowError,
)
from layered.core.ids import derive_blob_id
from layered.core.protocols import (
    IAssetFetcher,
    IBlobStore,
    ICaptioningGateway,
    ICheckpointStore,
    IInferenceGateway,
    ILedger,
)
from layered.models.inference import LayeredImageOutput, OutputImage, parse_inference_output
from layered.models.ledger import (
    Blob,
    BlobRole,
    Entity,
    Insert,
    PredictionBlob,
    Status,
    set_status,
)
from layered.models.workflow import JobParams
from layered.workflow.state import (
    GENERATE_LAYERS,
    GENERATE_NAME,
    MARK_COMPLETED,
    MARK_FAILED,
    PERSIST_PREDICTION_OUTPUT,
    PERSIST_PROJECT_NAME,
    upload_step,
)
from layered.workflow.steps import RetryPolicy, StepRunner

logger = structlog.get_logger(__name__)


class GenerateProjectWorkflow:
    """Durable, resumable layer-generation job. Safe to re-run with the same job id."""

    def __init__(
        self,
        *,
        ledger: ILedger,
        blob_store: IBlobStore,
        checkpoints: ICheckpointStore,
        inference: IInferenceGateway,
        captioning: ICaptioningGateway,
        assets: IAssetFetcher,
        config: Optional[WorkflowConfig] = None,
    ) -> None:
        config = config or WorkflowConfig()
        self._ledger = ledger
        self._blob_store = blob_store
        self._checkpoints = checkpoints
        self._inference = inference
        self._captioning = captioning
        self._assets = assets
        self._policy = RetryPolicy.from_config(config)
        self._upload_concurrency = max(1, config.upload_concurrency)

    def run(self, job_id: str, params: JobParams) -> None:
        """Drive the job to completed or failed, resuming after the last checkpoint."""
        steps = StepRunner(job_id, self._checkpoints, self._policy)
        log = logger.bind(
            job_id=job_id, project_id=params.project_id, prediction_id=params.prediction_id,
        )

        if steps.checkpoint(MARK_FAILED) is not None:
            log.warning("job_already_failed")
            raise JobFailedError(job_id)
        if steps.checkpoint(MARK_COMPLETED) is not None:
            log.info("job_already_completed")
            return

        # the status batch can commit while its checkpoint write is lost
        terminal = self._terminal_status(params)
        if terminal is Status.FAILED:
            log.warning("job_failed_without_checkpoint")
            steps.run(MARK_FAILED, lambda: self._mark(params, Status.FAILED))
            raise JobFailedError(job_id)
        if terminal is Status.COMPLETED:
            log.warning("job_completed_without_checkpoint")
            steps.run(MARK_COMPLETED, lambda: self._mark(params, Status.COMPLETED))
            return

        log.info("job_started", layer_count=params.layer_count)
        try:
            self._run_steps(steps, params)
        except Exception as exc:
            log.error("job_failed", error=str(exc), error_type=type(exc).__name__)
            if self._terminal_status(params) is Status.COMPLETED:
                log.warning("job_failed_after_completion_committed")
                raise
            steps.run(MARK_FAILED, lambda: self._mark(params, Status.FAILED))
            raise
        log.info("job_completed")

    def _run_steps(self, steps: StepRunner, params: JobParams) -> None:
        output = parse_inference_output(
            steps.run(GENERATE_LAYERS, lambda: self.generate_layers(params))
        )
        name = steps.run(GENERATE_NAME, lambda: self.generate_name(params))
        steps.run(PERSIST_PREDICTION_OUTPUT, lambda: self.persist_prediction_output(params, output))
        if name:
            steps.run(PERSIST_PROJECT_NAME, lambda: self.persist_project_name(params, name))
        self._upload_outputs(steps, params, output.images)
        steps.run(MARK_COMPLETED, lambda: self._mark_completed(params, len(output.images)))

    # ---- step bodies ----

    def generate_layers(self, params: JobParams) -> dict:
        raw = self._inference.generate_layers(params.image_url, params.layer_count)
        output = parse_inference_output(raw)
        logger.info(
            "layers_generated", prediction_id=params.prediction_id, layers=len(output.images),
        )
        return output.to_payload()

    def generate_name(self, params: JobParams) -> Optional[str]:
        try:
            return self._captioning.generate_title(params.image_url)
        except Exception as exc:
            logger.warning(
                "name_generation_failed", project_id=params.project_id, error=str(exc),
            )
            return None

    def persist_prediction_output(self, params: JobParams, output: LayeredImageOutput) -> None:
        self._ledger.update(
            Entity.PREDICTIONS, params.prediction_id, output=json.dumps(output.to_payload()),
        )

    def persist_project_name(self, params: JobParams, name: str) -> None:
        self._ledger.update(Entity.PROJECTS, params.project_id, name=name)

    def upload_output(self, params: JobParams, index: int, image: OutputImage) -> None:
        """Re-host output ``index`` under its derived blob id; no-op if already recorded."""
        blob_id = derive_blob_id(params.prediction_id, index)
        log = logger.bind(prediction_id=params.prediction_id, blob_id=blob_id, position=index)

        if self._ledger.get_blob(blob_id) is not None:
            log.info("upload_already_recorded")
            return

        try:
            data = self._blob_store.get(blob_id)
            log.info("upload_reusing_stored_bytes", size=len(data))
        except BlobNotFoundError:
            data = self._assets.fetch(image.url)
            self._blob_store.put(blob_id, data, image.content_type)

        # bytes are durable before any ledger row points at them
        self._ledger.batch([
            Insert(row=Blob(
                id=blob_id,
                content_type=image.content_type,
                file_name=image.file_name,
                file_size=len(data),
                width=image.width,
                height=image.height,
            )),
            Insert(row=PredictionBlob(
                prediction_id=params.prediction_id,
                blob_id=blob_id,
                role=BlobRole.OUTPUT,
                position=index,
            )),
        ])
        log.info("output_uploaded", size=len(data))

    def _upload_outputs(self, steps: StepRunner, params: JobParams, images: list[OutputImage]) -> None:
        def upload(index: int, image: OutputImage) -> None:
            steps.run(upload_step(index), lambda: self.upload_output(params, index, image))

        if self._upload_concurrency == 1 or len(images) == 1:
            for index, image in enumerate(images):
                upload(index, image)
            return

        with ThreadPoolExecutor(max_workers=min(self._upload_concurrency, len(images))) as pool:
            futures = [pool.submit(upload, index, image) for index, image in enumerate(images)]
        for future in futures:
            future.result()

    def _mark_completed(self, params: JobParams, expected_outputs: int) -> None:
        links = self._ledger.list_prediction_blobs(params.prediction_id, role=BlobRole.OUTPUT)
        positions = [link.position for link in links]
        if positions != list(range(expected_outputs)):
            raise WorkflowError(
                f"Prediction {params.prediction_id} has output positions {positions}, "
                f"expected 0..{expected_outputs - 1}"
            )
        self._mark(params, Status.COMPLETED)

    def _terminal_status(self, params: JobParams) -> Optional[Status]:
        project = self._ledger.get_project(params.project_id)
        if project is None or project.status == Status.PROCESSING:
            return None
        return project.status

    def _mark(self, params: JobParams, status: Status) -> None:
        """Move both rows from processing to ``status``. Terminal statuses never change."""
        current = self._terminal_status(params)
        if current == status:
            logger.info(
                "job_status_already_committed", project_id=params.project_id, status=str(status),
            )
            return
        if current is not None:
            raise TerminalStatusError(params.project_id, str(current), str(status))

        self._ledger.batch([
            set_status(Entity.PREDICTIONS, params.prediction_id, status, expected=Status.PROCESSING),
            set_status(Entity.PROJECTS, params.project_id, status, expected=Status.PROCESSING),
        ])
        logger.info(
            "job_status_committed", project_id=params.project_id,
            prediction_id=params.prediction_id, status=str(status),
        )
