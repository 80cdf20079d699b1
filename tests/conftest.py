"""Shared fixtures: memory backends, mock gateways and a workflow wired to them."""

from __future__ import annotations

import pytest

from layered.core.config import WorkflowConfig
from layered.models.workflow import JobRequest
from layered.services.projects import create_project, upload_input_image
from layered.workflow.generate_project import GenerateProjectWorkflow
from tests.fakes import (
    MemoryBlobStore,
    MemoryCheckpointStore,
    MemoryJobQueue,
    MemoryLedger,
    MockAssetFetcher,
    MockCaptioningGateway,
    MockInferenceGateway,
)

SOURCE_IMAGE_URL = "https://cdn.example.com/uploads/source.png"


@pytest.fixture
def ledger():
    return MemoryLedger()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def checkpoints():
    return MemoryCheckpointStore()


@pytest.fixture
def queue():
    return MemoryJobQueue()


@pytest.fixture
def inference():
    return MockInferenceGateway()


@pytest.fixture
def captioning():
    return MockCaptioningGateway(title="Sunset Over Hills")


@pytest.fixture
def assets():
    return MockAssetFetcher()


@pytest.fixture
def workflow_config():
    return WorkflowConfig(max_attempts=3, backoff_multiplier=0, max_backoff_seconds=0)


@pytest.fixture
def workflow(ledger, blob_store, checkpoints, inference, captioning, assets, workflow_config):
    return GenerateProjectWorkflow(
        ledger=ledger,
        blob_store=blob_store,
        checkpoints=checkpoints,
        inference=inference,
        captioning=captioning,
        assets=assets,
        config=workflow_config,
    )


@pytest.fixture
def job(ledger, blob_store, queue) -> JobRequest:
    """A freshly submitted project: input blob, placeholder rows, one queued job."""
    blob = upload_input_image(
        ledger, blob_store,
        data=b"\x89PNG source", content_type="image/png", file_name="source.png",
        width=1024, height=768,
    )
    return create_project(
        ledger, queue, image_url=SOURCE_IMAGE_URL, input_blob_id=blob.id, layer_count=3,
    )
