"""Checkpointed step execution.

A step body runs at most until it succeeds once: its result is stored under
(job_id, step_name) and later runs of the same job return the stored result
without calling the body. Bodies may still run more than once (a crash after
the body but before the checkpoint write), so every body must be idempotent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from layered.core.config import WorkflowConfig
from layered.core.exceptions import NonRetryableError
from layered.core.protocols import ICheckpointStore
from layered.models.workflow import Checkpoint

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff applied to each step body."""

    max_attempts: int = 3
    backoff_multiplier: float = 1.0
    max_backoff_seconds: float = 30.0

    @classmethod
    def from_config(cls, config: WorkflowConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            backoff_multiplier=config.backoff_multiplier,
            max_backoff_seconds=config.max_backoff_seconds,
        )

    def retrying(self, before_sleep: Callable[[RetryCallState], None]) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.backoff_multiplier,
                max=self.max_backoff_seconds,
            ),
            retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(NonRetryableError),
            before_sleep=before_sleep,
            reraise=True,
        )


class StepRunner:
    """Runs named steps of one job: checkpoint hit, or execute-with-retry and store."""

    def __init__(self, job_id: str, checkpoints: ICheckpointStore, policy: RetryPolicy) -> None:
        self.job_id = job_id
        self._checkpoints = checkpoints
        self._policy = policy
        self._log = logger.bind(job_id=job_id)

    def checkpoint(self, step_name: str) -> Optional[Checkpoint]:
        return self._checkpoints.get(self.job_id, step_name)

    def run(self, step_name: str, body: Callable[[], T]) -> T:
        cached = self.checkpoint(step_name)
        if cached is not None:
            self._log.info("step_replayed", step=step_name)
            return cached.result

        result = self._execute(step_name, body)
        self._checkpoints.put(self.job_id, step_name, result)
        self._log.info("step_checkpointed", step=step_name)
        return result

    def _execute(self, step_name: str, body: Callable[[], T]) -> T:
        log = self._log.bind(step=step_name)

        def before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            log.warning(
                "step_retrying",
                attempt=state.attempt_number,
                wait_seconds=round(state.next_action.sleep, 3) if state.next_action else None,
                error=str(exc),
            )

        try:
            for attempt in self._policy.retrying(before_sleep):
                with attempt:
                    return body()
        except Exception as exc:
            log.error("step_failed", error=str(exc), error_type=type(exc).__name__)
            raise
        raise AssertionError("unreachable")  # pragma: no cover
