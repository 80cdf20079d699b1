"""Unit tests for S3BlobStore using moto."""

from __future__ import annotations

import boto3
import pytest
from moto import mock_aws

from layered.core.exceptions import BlobNotFoundError, BlobStoreError
from layered.persistence.s3_backend import S3BlobStore

BUCKET = "test-layered-blobs"


@pytest.fixture
def s3():
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=BUCKET)
        yield client


@pytest.fixture
def store(s3):
    return S3BlobStore(bucket=BUCKET, region="us-east-1")


class TestPut:
    def test_stores_bytes_and_content_type(self, store, s3):
        store.put("blob1", b"\x89PNG", "image/png")
        head = s3.head_object(Bucket=BUCKET, Key="blob1")
        assert head["ContentType"] == "image/png"

    def test_overwrite_is_idempotent(self, store):
        store.put("blob1", b"a", "image/png")
        store.put("blob1", b"a", "image/png")
        assert store.get("blob1") == b"a"

    def test_missing_bucket_raises(self, s3):
        with pytest.raises(BlobStoreError):
            S3BlobStore(bucket="no-such-bucket").put("k", b"x", "image/png")


class TestGet:
    def test_returns_bytes(self, store):
        store.put("pred-0", b"\x00\x01\x02", "image/png")
        assert store.get("pred-0") == b"\x00\x01\x02"

    def test_missing_key_raises_not_found(self, store):
        with pytest.raises(BlobNotFoundError) as excinfo:
            store.get("does-not-exist")
        assert excinfo.value.key == "does-not-exist"
