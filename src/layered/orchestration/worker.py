"""Worker: pulls jobs off the queue and runs the workflow for each.

Delivery is at-least-once. A job is acked when it completes or is already
terminally failed; any other error leaves the message un-acked so the queue
redelivers it and the workflow resumes from its last checkpoint.
"""

from __future__ import annotations

import threading
from typing import Optional

import structlog

from layered.core.exceptions import JobFailedError
from layered.core.protocols import IJobQueue
from layered.workflow.generate_project import GenerateProjectWorkflow

logger = structlog.get_logger(__name__)


class Worker:
    """Single-threaded consumer loop around one GenerateProjectWorkflow."""

    def __init__(self, queue: IJobQueue, workflow: GenerateProjectWorkflow,
                 max_messages: int = 1) -> None:
        self._queue = queue
        self._workflow = workflow
        self._max_messages = max_messages
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    def run_once(self) -> int:
        """Process one receive batch. Returns the number of jobs acked."""
        acked = 0
        for receipt, request in self._queue.receive(self._max_messages):
            log = logger.bind(job_id=request.job_id, project_id=request.params.project_id)
            try:
                self._workflow.run(request.job_id, request.params)
            except JobFailedError:
                log.warning("job_terminal_failed_acked")
            except Exception as exc:
                log.error("job_attempt_failed", error=str(exc), error_type=type(exc).__name__)
                continue
            else:
                log.info("job_acked")
            self._queue.ack(receipt)
            acked += 1
        return acked

    def run_forever(self, idle_sleep: float = 1.0, max_batches: Optional[int] = None) -> None:
        batches = 0
        logger.info("worker_started")
        while not self._stop.is_set():
            if max_batches is not None and batches >= max_batches:
                break
            acked = self.run_once()
            batches += 1
            if not acked:
                self._stop.wait(idle_sleep)
        logger.info("worker_stopped", batches=batches)
