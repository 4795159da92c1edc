"""
Recurring job scheduling: periodic re-screening and repeating jobs.
"""

from datetime import datetime
from typing import Any

from verifyflow.config.logging import get_logger
from verifyflow.v1.infra.queues.models import Job
from verifyflow.v1.infra.queues.recurrence import RecurrenceRule
from verifyflow.v1.infra.queues.registry import PERIODIC_QUEUE, QueueRegistry
from verifyflow.v1.infra.queues.schemas import BackoffPolicy, JobHandle, JobOptions
from verifyflow.v1.infra.queues.store import JobStore

logger = get_logger(__name__)

PERIODIC_JOB_TYPE = "periodic-screening"
PROFILE_FIELDS = ("fullName", "country")


def recurring_job_key(screening_type: str, subject_id: str) -> str:
    return f"periodic-{screening_type}-{subject_id}"


class Scheduler:
    """Creates the delayed instances of recurring jobs."""

    def __init__(self, registry: QueueRegistry, store: JobStore):
        self.registry = registry
        self.store = store

    def next_fire_time(self, rule: RecurrenceRule, after: datetime) -> datetime:
        """Next time ``rule`` fires strictly after ``after`` (UTC)."""
        return rule.next_fire(after)

    async def schedule_recurring(
        self,
        subject_id: str,
        screening_type: str,
        recurrence: RecurrenceRule | None = None,
        profile: dict[str, Any] | None = None,
    ) -> JobHandle:
        """
        Schedule periodic re-screening for a subject.

        At most one live instance exists per subject and screening type; asking
        again while one is pending returns that instance's handle.

        Args:
            subject_id: The user being screened
            screening_type: "aml", "sanctions" or "pep"
            recurrence: When to fire, defaults to Sundays at 02:00 UTC
            profile: Optional subject details carried in the payload

        Returns:
            Handle of the pending instance
        """
        rule = recurrence or RecurrenceRule.weekly_default()
        payload: dict[str, Any] = {"userId": subject_id, "screeningType": screening_type}
        for field in PROFILE_FIELDS:
            if profile and profile.get(field) is not None:
                payload[field] = profile[field]

        handle = await self._enqueue(
            PERIODIC_QUEUE,
            PERIODIC_JOB_TYPE,
            payload,
            rule,
            JobOptions(job_key=recurring_job_key(screening_type, subject_id), repeat=rule),
        )
        logger.info(
            "Periodic screening scheduled",
            user_id=subject_id,
            screening_type=screening_type,
            job_key=handle.job_key,
            next_run=handle.available_at.isoformat(),
            deduplicated=handle.deduplicated,
        )
        return handle

    async def schedule_next(self, job: Job) -> JobHandle | None:
        """
        Create the instance following a recurring job that just finished.

        The next instance lands on the same queue with the same job type,
        identity key and retry policy as the one that finished.
        """
        if not job.repeat:
            return None
        rule = RecurrenceRule(**job.repeat)
        payload = {k: v for k, v in job.payload.items() if k != "scheduledAt"}
        options = JobOptions(
            job_key=job.job_key,
            repeat=rule,
            priority=job.priority,
            attempts=job.max_attempts,
            backoff=BackoffPolicy.model_validate(job.backoff) if job.backoff else None,
            remove_on_complete=job.remove_on_complete,
            remove_on_fail=job.remove_on_fail,
        )
        handle = await self._enqueue(
            job.queue_name,
            job.job_type,
            payload,
            rule,
            options,
            stamp="scheduledAt" in job.payload,
        )
        logger.info(
            "Next recurring instance scheduled",
            previous_job_id=job.id,
            queue=handle.queue,
            job_id=handle.job_id,
            job_key=handle.job_key,
            next_run=handle.available_at.isoformat(),
        )
        return handle

    async def _enqueue(
        self,
        queue_name: str,
        job_type: str,
        payload: dict[str, Any],
        rule: RecurrenceRule,
        options: JobOptions,
        stamp: bool = True,
    ) -> JobHandle:
        fire_at = self.next_fire_time(rule, self.store.now())
        queue = await self.registry.queue_for(queue_name)
        if stamp:
            payload = {**payload, "scheduledAt": fire_at.isoformat()}
        return await queue.add(job_type, payload, options, run_at=fire_at)
