"""Worker entrypoint: SQS consumer for GenerateProjectWorkflow jobs.

Usage:
    python -m layered.orchestration.main [--once] [--max-messages N]
"""

from __future__ import annotations

import argparse
import signal

import structlog

from layered.core.config import AppSettings
from layered.core.logging import configure_logging
from layered.gateways import create_gateways
from layered.orchestration.sqs_queue import SQSJobQueue
from layered.orchestration.worker import Worker
from layered.persistence import create_persistence
from layered.workflow.generate_project import GenerateProjectWorkflow

logger = structlog.get_logger(__name__)


def build_workflow(settings: AppSettings) -> GenerateProjectWorkflow:
    ledger, blob_store, checkpoints = create_persistence(settings)
    inference, captioning, assets = create_gateways(settings)
    return GenerateProjectWorkflow(
        ledger=ledger,
        blob_store=blob_store,
        checkpoints=checkpoints,
        inference=inference,
        captioning=captioning,
        assets=assets,
        config=settings.workflow,
    )


def build_queue(settings: AppSettings) -> SQSJobQueue:
    return SQSJobQueue(
        queue_url=settings.sqs.job_queue_url,
        region=settings.sqs.region,
        endpoint_url=settings.sqs.endpoint_url,
        wait_time_seconds=settings.sqs.wait_time_seconds,
        visibility_timeout=settings.sqs.visibility_timeout,
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the Layered project generation worker")
    parser.add_argument("--once", action="store_true", help="Process one receive batch and exit")
    parser.add_argument("--max-messages", type=int, default=1, help="Messages per receive (max 10)")
    args = parser.parse_args(argv)

    settings = AppSettings()
    configure_logging(settings.log_level, json=settings.log_json)
    if not settings.sqs.job_queue_url:
        parser.error("LAYERED_SQS_JOB_QUEUE_URL is not set")

    worker = Worker(build_queue(settings), build_workflow(settings), max_messages=args.max_messages)
    if args.once:
        worker.run_once()
        return

    signal.signal(signal.SIGTERM, lambda *_: worker.stop())
    signal.signal(signal.SIGINT, lambda *_: worker.stop())
    logger.info("worker_configured", environment=settings.environment, queue=settings.sqs.job_queue_url)
    worker.run_forever()


if __name__ == "__main__":
    main()
