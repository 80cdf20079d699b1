"""Tests for the operations API using FastAPI's TestClient."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from layered.api.app import create_app
from layered.core.config import AppSettings
from layered.models.ledger import Project, Status, utcnow


@pytest.fixture
def client(ledger, checkpoints):
    app = create_app(settings=AppSettings(), ledger=ledger, checkpoints=checkpoints)
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_ready_once_started(self, client):
        assert client.get("/ready").json() == {"status": "ready"}


class TestJobProgress:
    def test_unknown_job_is_pending(self, client):
        body = client.get("/admin/jobs/nope").json()
        assert body["state"] == "pending"
        assert body["steps"] == []

    def test_completed_job(self, client, workflow, job):
        workflow.run(job.job_id, job.params)

        body = client.get(f"/admin/jobs/{job.job_id}").json()
        assert body["state"] == "completed"
        assert body["outputs_uploaded"] == body["outputs_total"] == 3
        assert body["steps"][-1] == "mark-completed"


class TestPredictionLayers:
    def test_completed_prediction_lists_stored_layers(self, client, workflow, job):
        workflow.run(job.job_id, job.params)

        body = client.get(f"/admin/predictions/{job.params.prediction_id}").json()
        base = client.app.state.settings.public_base_url.rstrip("/")
        assert body["status"] == "completed"
        assert body["layers"] == [f"{base}/{job.params.prediction_id}-{i}" for i in range(3)]

    def test_unknown_prediction_is_404(self, client):
        assert client.get("/admin/predictions/ghost").status_code == 404


class TestStaleProjects:
    def test_reports_old_processing_projects(self, client, ledger):
        old = Project(created_at=utcnow() - timedelta(hours=2))
        ledger.insert(old)
        ledger.insert(Project(status=Status.FAILED, created_at=utcnow() - timedelta(hours=2)))
        ledger.insert(Project())

        body = client.get("/admin/projects/stale", params={"older_than_minutes": 30}).json()
        assert [p["id"] for p in body["projects"]] == [old.id]
        assert body["older_than_minutes"] == 30

    def test_rejects_non_positive_age(self, client):
        assert client.get("/admin/projects/stale", params={"older_than_minutes": 0}).status_code == 422
