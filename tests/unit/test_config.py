"""Tests for configuration defaults and env overrides."""

from __future__ import annotations

from layered.core.config import AppSettings, InferenceConfig, WorkflowConfig


def test_default_settings():
    settings = AppSettings()
    assert settings.environment == "dev"
    assert settings.inference.provider == "mock"
    assert settings.captioning.provider == "mock"
    assert settings.s3.bucket == "layered-blobs"


def test_workflow_config_defaults():
    config = WorkflowConfig()
    assert config.max_attempts == 3
    assert config.upload_concurrency == 1
    assert config.checkpoint_backend == "dynamodb"


def test_inference_config_defaults():
    config = InferenceConfig()
    assert config.endpoint_id == "fal-ai/qwen-image-layered"
    assert config.base_url == "https://queue.fal.run"


def test_env_override(monkeypatch):
    monkeypatch.setenv("LAYERED_WORKFLOW_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("LAYERED_WORKFLOW_CHECKPOINT_BACKEND", "redis")
    config = WorkflowConfig()
    assert config.max_attempts == 5
    assert config.checkpoint_backend == "redis"
