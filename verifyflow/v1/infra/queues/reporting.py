"""
Lifecycle status reporting.

Queue handles and the worker engine call a StatusReporter directly after
each job state transition, in transition order, on the same task that made
the transition.
"""

from typing import Any, Protocol

from verifyflow.config.logging import get_logger
from verifyflow.v1.infra.queues.models import Job

logger = get_logger(__name__)


class StatusReporter(Protocol):
    """Sink for job lifecycle transitions."""

    def job_waiting(self, queue_name: str, job: Job) -> None: ...

    def job_active(self, queue_name: str, job: Job) -> None: ...

    def job_completed(self, queue_name: str, job: Job, result: dict[str, Any] | None) -> None: ...

    def job_failed(
        self, queue_name: str, job: Job, error: BaseException | str, will_retry: bool
    ) -> None: ...

    def job_delayed(self, queue_name: str, job: Job, delay_ms: int) -> None: ...

    def job_stalled(self, queue_name: str, job: Job, outcome: str) -> None: ...

    def queue_error(self, queue_name: str, error: BaseException) -> None: ...


class LoggingStatusReporter:
    """Writes every transition as a structured log event."""

    def job_waiting(self, queue_name: str, job: Job) -> None:
        logger.info(
            "Job waiting",
            queue=queue_name,
            job_id=job.id,
            job_type=job.job_type,
            state=job.state,
            available_at=job.available_at.isoformat(),
        )

    def job_active(self, queue_name: str, job: Job) -> None:
        logger.info(
            "Job started processing",
            queue=queue_name,
            job_id=job.id,
            job_type=job.job_type,
            attempt=job.attempts_made,
            max_attempts=job.max_attempts,
        )

    def job_completed(self, queue_name: str, job: Job, result: dict[str, Any] | None) -> None:
        logger.info(
            "Job completed",
            queue=queue_name,
            job_id=job.id,
            job_type=job.job_type,
            result=result,
        )

    def job_failed(
        self, queue_name: str, job: Job, error: BaseException | str, will_retry: bool
    ) -> None:
        log = logger.warning if will_retry else logger.error
        log(
            "Job failed",
            queue=queue_name,
            job_id=job.id,
            job_type=job.job_type,
            attempt=job.attempts_made,
            max_attempts=job.max_attempts,
            will_retry=will_retry,
            error=str(error),
        )

    def job_delayed(self, queue_name: str, job: Job, delay_ms: int) -> None:
        logger.info(
            "Job scheduled for retry",
            queue=queue_name,
            job_id=job.id,
            job_type=job.job_type,
            delay_ms=delay_ms,
        )

    def job_stalled(self, queue_name: str, job: Job, outcome: str) -> None:
        logger.warning(
            "Job stalled",
            queue=queue_name,
            job_id=job.id,
            job_type=job.job_type,
            stalled_count=job.stalled_count,
            outcome=outcome,
        )

    def queue_error(self, queue_name: str, error: BaseException) -> None:
        logger.error(
            "Queue error",
            queue=queue_name,
            exception=error.__class__.__name__,
            error=str(error),
        )


def report(reporter: StatusReporter, event: str, *args: Any) -> None:
    """Call ``reporter.<event>``; a failing reporter never affects job state."""
    try:
        getattr(reporter, event)(*args)
    except Exception:
        logger.exception("Status reporter failed", event=event)
