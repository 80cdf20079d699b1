"""Tests for the table, bucket and queue bootstrap script."""

from __future__ import annotations

import boto3
import pytest
from moto import mock_aws

from create_tables import create_bucket, create_queue, create_tables


@pytest.fixture
def ddb():
    with mock_aws():
        yield boto3.resource("dynamodb", region_name="us-east-1")


class TestCreateTables:
    def test_creates_all_five_tables(self, ddb):
        created = create_tables(ddb, suffix="-test")
        tables = boto3.client("dynamodb", region_name="us-east-1").list_tables()["TableNames"]
        assert len(tables) == 5
        assert sorted(created) == sorted(tables)
        assert "layered-checkpoints-test" in tables

    def test_idempotent_skips_existing(self, ddb):
        create_tables(ddb, suffix="-test")
        assert create_tables(ddb, suffix="-test") == []


class TestCreateBucketAndQueue:
    def test_bucket_created_once(self, ddb):
        s3 = boto3.client("s3", region_name="us-east-1")
        create_bucket(s3, "layered-blobs-test")
        create_bucket(s3, "layered-blobs-test")
        assert [b["Name"] for b in s3.list_buckets()["Buckets"]] == ["layered-blobs-test"]

    def test_queue_visibility_timeout(self, ddb):
        sqs = boto3.client("sqs", region_name="us-east-1")
        url = create_queue(sqs, "layered-jobs", visibility_timeout=120)
        attrs = sqs.get_queue_attributes(QueueUrl=url, AttributeNames=["VisibilityTimeout"])
        assert attrs["Attributes"]["VisibilityTimeout"] == "120"
