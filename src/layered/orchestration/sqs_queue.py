"""SQS job queue implementing IJobQueue."""

from __future__ import annotations

import boto3
import structlog
from botocore.exceptions import ClientError
from pydantic import ValidationError

from layered.core.exceptions import QueueError
from layered.models.workflow import JobRequest

logger = structlog.get_logger(__name__)


class SQSJobQueue:
    """Production IJobQueue backed by SQS. Un-acked messages reappear after the visibility timeout."""

    def __init__(self, queue_url: str, region: str = "us-east-1",
                 endpoint_url: str | None = None, wait_time_seconds: int = 20,
                 visibility_timeout: int = 900) -> None:
        self._queue_url = queue_url
        self._wait_time_seconds = wait_time_seconds
        self._visibility_timeout = visibility_timeout
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("sqs", **kwargs)

    def enqueue(self, request: JobRequest) -> None:
        try:
            self._client.send_message(
                QueueUrl=self._queue_url, MessageBody=request.model_dump_json(),
            )
        except ClientError as exc:
            raise QueueError(f"SQS send failed for job {request.job_id}: {exc}") from exc
        logger.info("job_enqueued", job_id=request.job_id)

    def receive(self, max_messages: int = 1) -> list[tuple[str, JobRequest]]:
        try:
            resp = self._client.receive_message(
                QueueUrl=self._queue_url,
                MaxNumberOfMessages=min(max_messages, 10),
                WaitTimeSeconds=self._wait_time_seconds,
                VisibilityTimeout=self._visibility_timeout,
            )
        except ClientError as exc:
            raise QueueError(f"SQS receive failed: {exc}") from exc

        received: list[tuple[str, JobRequest]] = []
        for message in resp.get("Messages", []):
            try:
                request = JobRequest.model_validate_json(message["Body"])
            except ValidationError as exc:
                # poison message: drop it so it cannot block the queue
                logger.error("job_message_invalid", message_id=message.get("MessageId"), error=str(exc))
                self.ack(message["ReceiptHandle"])
                continue
            received.append((message["ReceiptHandle"], request))
        return received

    def ack(self, receipt: str) -> None:
        try:
            self._client.delete_message(QueueUrl=self._queue_url, ReceiptHandle=receipt)
        except ClientError as exc:
            raise QueueError(f"SQS delete failed: {exc}") from exc
