"""Tests for project submission and the project and prediction read models."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from layered.core.exceptions import (
    AssetFetchError,
    InvalidJobParamsError,
    RowNotFoundError,
    UnsupportedContentTypeError,
)
from layered.models.ledger import BlobRole, Project, Status, utcnow
from layered.services.projects import (
    IMAGE_ENDPOINT_ID,
    create_project,
    get_prediction,
    get_project,
    list_stale_projects,
    upload_input_image,
)
from tests.fakes import SimulatedCrash

PUBLIC = "https://blobs.example.com/"
LAYER_URLS = [f"https://mock.invalid/layers/layer-{i}.png" for i in range(3)]


@pytest.fixture
def input_blob(ledger, blob_store):
    return upload_input_image(
        ledger, blob_store, data=b"jpegdata", content_type="image/jpeg",
        file_name="cat.jpg", width=640, height=480,
    )


class TestUploadInputImage:
    def test_stores_bytes_then_row(self, ledger, blob_store, input_blob):
        assert blob_store.get(input_blob.id) == b"jpegdata"
        assert ledger.get_blob(input_blob.id).file_size == 8

    def test_rejects_unsupported_type(self, ledger, blob_store):
        with pytest.raises(UnsupportedContentTypeError):
            upload_input_image(
                ledger, blob_store, data=b"%PDF", content_type="application/pdf",
                file_name="x.pdf", width=1, height=1,
            )
        assert blob_store.keys() == []


class TestCreateProject:
    def test_writes_placeholders_and_enqueues(self, ledger, queue, input_blob):
        request = create_project(
            ledger, queue, image_url="https://img/cat.jpg", input_blob_id=input_blob.id,
            layer_count=5, user_id="u1",
        )

        project = ledger.get_project(request.params.project_id)
        prediction = ledger.get_prediction(request.params.prediction_id)
        assert project.status == prediction.status == Status.PROCESSING
        assert prediction.project_id == project.id
        assert prediction.endpoint_id == IMAGE_ENDPOINT_ID
        assert prediction.output == "{}"
        assert json.loads(prediction.input) == {"image_url": "https://img/cat.jpg", "num_layers": 5}

        [link] = ledger.list_prediction_blobs(prediction.id)
        assert (link.blob_id, link.role, link.position) == (input_blob.id, BlobRole.INPUT, 0)

        [(_, queued)] = queue.receive()
        assert queued == request

    @pytest.mark.parametrize("layer_count", [1, 11])
    def test_layer_count_bounds(self, ledger, queue, input_blob, layer_count):
        with pytest.raises(InvalidJobParamsError):
            create_project(
                ledger, queue, image_url="https://img/cat.jpg",
                input_blob_id=input_blob.id, layer_count=layer_count,
            )
        assert len(queue) == 0

    def test_unknown_input_blob(self, ledger, queue):
        with pytest.raises(InvalidJobParamsError):
            create_project(ledger, queue, image_url="https://img/cat.jpg", input_blob_id="nope")


class TestGetProject:
    def test_processing_hides_outputs(self, ledger, job):
        view = get_project(ledger, job.params.project_id, PUBLIC)
        assert view.status == Status.PROCESSING
        assert view.input_blob.url.startswith("https://blobs.example.com/")
        assert view.output_blobs == []

    def test_completed_shows_ordered_outputs(self, ledger, workflow, job):
        workflow.run(job.job_id, job.params)

        view = get_project(ledger, job.params.project_id, PUBLIC)
        assert view.name == "Sunset Over Hills"
        assert [b.id for b in view.output_blobs] == [
            f"{job.params.prediction_id}-{i}" for i in range(3)
        ]
        assert view.output_blobs[0].url == f"https://blobs.example.com/{job.params.prediction_id}-0"
        assert view.input_blob.width == 1024

    def test_interrupted_job_hides_outputs(self, ledger, workflow, assets, job):
        assets.fail_with(LAYER_URLS[0], SimulatedCrash())
        with pytest.raises(SimulatedCrash):
            workflow.run(job.job_id, job.params)

        view = get_project(ledger, job.params.project_id, PUBLIC)
        assert view.status == Status.PROCESSING
        assert view.output_blobs == []

    def test_missing_project(self, ledger):
        with pytest.raises(RowNotFoundError):
            get_project(ledger, "ghost", PUBLIC)


class TestGetPrediction:
    def test_placeholder_has_no_layers(self, ledger, job):
        view = get_prediction(ledger, job.params.prediction_id, PUBLIC)
        assert view.status == Status.PROCESSING
        assert view.layers == []

    def test_interrupted_after_output_persisted_shows_raw_layers(
        self, ledger, workflow, checkpoints, assets, job,
    ):
        assets.fail_with(LAYER_URLS[0], SimulatedCrash())
        with pytest.raises(SimulatedCrash):
            workflow.run(job.job_id, job.params)
        assert checkpoints.get(job.job_id, "persist-prediction-output") is not None
        assert checkpoints.get(job.job_id, "upload-output-0") is None

        view = get_prediction(ledger, job.params.prediction_id, PUBLIC)

        assert view.project_id == job.params.project_id
        assert view.status == Status.PROCESSING
        assert view.layers == LAYER_URLS

    def test_stored_outputs_replace_raw_layers(self, ledger, workflow, job):
        workflow.run(job.job_id, job.params)

        view = get_prediction(ledger, job.params.prediction_id, PUBLIC)

        assert view.status == Status.COMPLETED
        assert view.layers == [
            f"https://blobs.example.com/{job.params.prediction_id}-{i}" for i in range(3)
        ]

    def test_failed_upload_keeps_raw_layers(self, ledger, workflow, assets, job):
        assets.fail_always(LAYER_URLS[0])
        with pytest.raises(AssetFetchError):
            workflow.run(job.job_id, job.params)

        view = get_prediction(ledger, job.params.prediction_id, PUBLIC)
        assert view.status == Status.FAILED
        assert view.layers == LAYER_URLS

    def test_missing_prediction(self, ledger):
        with pytest.raises(RowNotFoundError):
            get_prediction(ledger, "ghost", PUBLIC)


class TestListStaleProjects:
    def test_uses_cutoff(self, ledger):
        now = utcnow()
        old = Project(created_at=now - timedelta(minutes=90))
        ledger.insert(old)
        ledger.insert(Project(created_at=now - timedelta(minutes=10)))

        stale = list_stale_projects(ledger, timedelta(hours=1), now=now)
        assert [p.id for p in stale] == [old.id]
