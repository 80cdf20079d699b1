"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class DynamoDBConfig(BaseSettings):
    """DynamoDB ledger and checkpoint table configuration."""

    model_config = {"env_prefix": "LAYERED_DYNAMO_"}

    table_suffix: str = ""  # "-dev", "-uat", or "" for prod
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class S3Config(BaseSettings):
    """S3 blob storage configuration."""

    model_config = {"env_prefix": "LAYERED_S3_"}

    bucket: str = "layered-blobs"
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class RedisConfig(BaseSettings):
    """Redis configuration for the cache-backed checkpoint store."""

    model_config = {"env_prefix": "LAYERED_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0


class SQSConfig(BaseSettings):
    """SQS job queue configuration."""

    model_config = {"env_prefix": "LAYERED_SQS_"}

    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override
    job_queue_url: str = ""
    wait_time_seconds: int = 20
    visibility_timeout: int = 900


class InferenceConfig(BaseSettings):
    """Layer-decomposition inference service (fal queue API)."""

    model_config = {"env_prefix": "LAYERED_INFERENCE_"}

    provider: Literal["mock", "fal"] = "mock"
    api_key: str = ""
    base_url: str = "https://queue.fal.run"
    endpoint_id: str = "fal-ai/qwen-image-layered"
    poll_interval_seconds: float = 1.0
    timeout_seconds: float = 600.0
    request_timeout_seconds: float = 30.0


class CaptioningConfig(BaseSettings):
    """Title generation via an OpenAI-compatible chat completions endpoint."""

    model_config = {"env_prefix": "LAYERED_CAPTIONING_"}

    provider: Literal["mock", "openai"] = "mock"
    base_url: str = "https://api.openai.com/v1"
    api_token: str = ""
    auth_header: str = "Authorization"
    model: str = "gpt-4o-mini"
    max_tokens: int = 20
    timeout_seconds: float = 30.0


class AssetFetchConfig(BaseSettings):
    """Download of output layers from the inference service."""

    model_config = {"env_prefix": "LAYERED_ASSETS_"}

    timeout_seconds: float = 60.0
    follow_redirects: bool = True


class WorkflowConfig(BaseSettings):
    """Step retry policy and checkpoint backend selection."""

    model_config = {"env_prefix": "LAYERED_WORKFLOW_"}

    max_attempts: int = 3
    backoff_multiplier: float = 1.0
    max_backoff_seconds: float = 30.0
    upload_concurrency: int = 1
    checkpoint_backend: Literal["memory", "dynamodb", "redis"] = "dynamodb"
    checkpoint_ttl_seconds: int = 7 * 24 * 3600  # redis only


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "LAYERED_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    log_json: bool = False
    public_base_url: str = "http://localhost:9000/layered-blobs"

    dynamodb: DynamoDBConfig = DynamoDBConfig()
    s3: S3Config = S3Config()
    redis: RedisConfig = RedisConfig()
    sqs: SQSConfig = SQSConfig()
    inference: InferenceConfig = InferenceConfig()
    captioning: CaptioningConfig = CaptioningConfig()
    assets: AssetFetchConfig = AssetFetchConfig()
    workflow: WorkflowConfig = WorkflowConfig()
