"""Unit tests for SQSJobQueue using moto."""

from __future__ import annotations

import boto3
import pytest
from moto import mock_aws

from create_tables import create_queue
from layered.core.exceptions import QueueError
from layered.models.workflow import JobParams, JobRequest
from layered.orchestration.sqs_queue import SQSJobQueue

REGION = "us-east-1"


def _request(job_id: str = "job-1") -> JobRequest:
    return JobRequest(
        job_id=job_id,
        params=JobParams(
            project_id="proj", prediction_id="pred", image_url="https://img/a.png", layer_count=4,
        ),
    )


@pytest.fixture
def sqs():
    with mock_aws():
        yield boto3.client("sqs", region_name=REGION)


@pytest.fixture
def queue(sqs):
    url = create_queue(sqs, "layered-jobs-test", visibility_timeout=30)
    return SQSJobQueue(queue_url=url, region=REGION, wait_time_seconds=0, visibility_timeout=30)


class TestSQSJobQueue:
    def test_round_trip(self, queue):
        queue.enqueue(_request())
        [(receipt, request)] = queue.receive()
        assert request == _request()
        assert receipt

    def test_ack_deletes(self, queue, sqs):
        queue.enqueue(_request())
        [(receipt, _)] = queue.receive()
        queue.ack(receipt)
        attrs = sqs.get_queue_attributes(
            QueueUrl=queue._queue_url,
            AttributeNames=["ApproximateNumberOfMessages", "ApproximateNumberOfMessagesNotVisible"],
        )["Attributes"]
        assert attrs["ApproximateNumberOfMessages"] == "0"
        assert attrs["ApproximateNumberOfMessagesNotVisible"] == "0"

    def test_invalid_message_dropped(self, queue, sqs):
        sqs.send_message(QueueUrl=queue._queue_url, MessageBody='{"job_id": 1}')
        assert queue.receive() == []
        assert queue.receive() == []

    def test_empty_receive(self, queue):
        assert queue.receive(max_messages=5) == []

    def test_missing_queue_raises(self, sqs):
        missing = SQSJobQueue(
            queue_url="https://sqs.us-east-1.amazonaws.com/123456789012/nope",
            region=REGION, wait_time_seconds=0,
        )
        with pytest.raises(QueueError):
            missing.enqueue(_request())
