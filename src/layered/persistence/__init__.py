"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from layered.core.config import AppSettings
from layered.core.protocols import ICheckpointStore
from layered.persistence.dynamodb_backend import DynamoDBCheckpointStore, DynamoDBLedger
from layered.persistence.memory_backend import MemoryCheckpointStore
from layered.persistence.redis_backend import RedisCheckpointStore
from layered.persistence.s3_backend import S3BlobStore


def create_checkpoint_store(settings: AppSettings) -> ICheckpointStore:
    """Build the checkpoint backend selected by ``settings.workflow.checkpoint_backend``."""
    backend = settings.workflow.checkpoint_backend
    if backend == "redis":
        return RedisCheckpointStore(
            host=settings.redis.host,
            port=settings.redis.port,
            db=settings.redis.db,
            ttl=settings.workflow.checkpoint_ttl_seconds,
        )
    if backend == "memory":
        return MemoryCheckpointStore()
    return DynamoDBCheckpointStore(
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )


def create_persistence(settings: AppSettings | None = None):
    """Create wired-up persistence backends from application settings.

    Returns:
        Tuple of (ledger, blob_store, checkpoints).
    """
    if settings is None:
        settings = AppSettings()

    ledger = DynamoDBLedger(
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )

    blob_store = S3BlobStore(
        bucket=settings.s3.bucket,
        region=settings.s3.region,
        endpoint_url=settings.s3.endpoint_url,
    )

    return ledger, blob_store, create_checkpoint_store(settings)
