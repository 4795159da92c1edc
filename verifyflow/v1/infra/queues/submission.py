"""
Job submission API used by the verification services and by handlers
chaining follow-up work.
"""

from typing import Any

from verifyflow.config.logging import get_logger
from verifyflow.v1.infra.queues.recurrence import RecurrenceRule
from verifyflow.v1.infra.queues.registry import (
    DOCUMENT_QUEUE,
    NOTIFICATION_QUEUE,
    SCREENING_QUEUE,
    VERIFICATION_QUEUE,
    QueueRegistry,
)
from verifyflow.v1.infra.queues.scheduler import Scheduler
from verifyflow.v1.infra.queues.schemas import JobHandle, JobOptions

logger = get_logger(__name__)

# Per-submission defaults layered between the caller's options and the queue's
SUBMISSION_DEFAULTS: dict[str, JobOptions] = {
    VERIFICATION_QUEUE: JobOptions(priority=0, delay_ms=0),
    SCREENING_QUEUE: JobOptions(priority=0, delay_ms=0),
    DOCUMENT_QUEUE: JobOptions(priority=0, delay_ms=0),
    NOTIFICATION_QUEUE: JobOptions(priority=10, delay_ms=0),
}


class JobSubmitter:
    """Accepts work for the named queues and returns as soon as it is stored."""

    def __init__(self, registry: QueueRegistry, scheduler: Scheduler):
        self.registry = registry
        self.scheduler = scheduler

    async def submit(
        self,
        queue_name: str,
        job_type: str,
        payload: dict[str, Any],
        options: JobOptions | None = None,
    ) -> JobHandle:
        """
        Submit a job to a queue.

        Args:
            queue_name: Target queue, created on first use
            job_type: Handler selector within the queue
            payload: JSON-serializable job input
            options: Overrides for the domain and queue defaults

        Returns:
            Handle of the stored job, or of the live job holding the same key
        """
        resolved = options or JobOptions()
        domain_defaults = SUBMISSION_DEFAULTS.get(queue_name)
        if domain_defaults is not None:
            resolved = resolved.merged_over(domain_defaults)

        queue = await self.registry.queue_for(queue_name)
        handle = await queue.add(job_type, payload, resolved)
        logger.debug(
            "Job submitted",
            queue=queue_name,
            job_type=job_type,
            job_id=handle.job_id,
            state=handle.state.value,
            deduplicated=handle.deduplicated,
        )
        return handle

    async def submit_verification(
        self, job_type: str, payload: dict[str, Any], options: JobOptions | None = None
    ) -> JobHandle:
        return await self.submit(VERIFICATION_QUEUE, job_type, payload, options)

    async def submit_screening(
        self, job_type: str, payload: dict[str, Any], options: JobOptions | None = None
    ) -> JobHandle:
        return await self.submit(SCREENING_QUEUE, job_type, payload, options)

    async def submit_document(
        self, job_type: str, payload: dict[str, Any], options: JobOptions | None = None
    ) -> JobHandle:
        return await self.submit(DOCUMENT_QUEUE, job_type, payload, options)

    async def submit_notification(
        self, job_type: str, payload: dict[str, Any], options: JobOptions | None = None
    ) -> JobHandle:
        return await self.submit(NOTIFICATION_QUEUE, job_type, payload, options)

    async def schedule_recurring(
        self,
        subject_id: str,
        screening_type: str,
        recurrence: RecurrenceRule | None = None,
        profile: dict[str, Any] | None = None,
    ) -> JobHandle:
        return await self.scheduler.schedule_recurring(
            subject_id, screening_type, recurrence, profile
        )
