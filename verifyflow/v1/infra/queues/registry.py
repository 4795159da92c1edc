"""
Queue registry: one handle per queue name for the lifetime of the process.
"""

import asyncio
import json
from datetime import datetime
from typing import Any

from verifyflow.config.logging import get_logger
from verifyflow.config.settings import BackoffType, Settings
from verifyflow.v1.core.exceptions import (
    BackingStoreUnavailableError,
    InvalidJobOptionsError,
    UnknownQueueError,
)
from verifyflow.v1.infra.queues.models import Job, JobState
from verifyflow.v1.infra.queues.reporting import StatusReporter, report
from verifyflow.v1.infra.queues.schemas import (
    BackoffPolicy,
    JobHandle,
    JobOptions,
    QueueCounts,
)
from verifyflow.v1.infra.queues.store import JobStore

logger = get_logger(__name__)

VERIFICATION_QUEUE = "verification-processing"
SCREENING_QUEUE = "screening"
DOCUMENT_QUEUE = "document-processing"
NOTIFICATION_QUEUE = "notification"
PERIODIC_QUEUE = "periodic-rescreening"

# Fixed per-domain tuning; changing these requires a restart
DOMAIN_QUEUES: dict[str, JobOptions] = {
    VERIFICATION_QUEUE: JobOptions(
        attempts=5, backoff=BackoffPolicy(type=BackoffType.EXPONENTIAL, delay_ms=5000)
    ),
    SCREENING_QUEUE: JobOptions(
        attempts=3, backoff=BackoffPolicy(type=BackoffType.EXPONENTIAL, delay_ms=10000)
    ),
    DOCUMENT_QUEUE: JobOptions(
        attempts=3, backoff=BackoffPolicy(type=BackoffType.FIXED, delay_ms=5000)
    ),
    NOTIFICATION_QUEUE: JobOptions(
        attempts=5, backoff=BackoffPolicy(type=BackoffType.EXPONENTIAL, delay_ms=1000)
    ),
    PERIODIC_QUEUE: JobOptions(
        attempts=2, backoff=BackoffPolicy(type=BackoffType.FIXED, delay_ms=60000)
    ),
}


def global_job_defaults(settings: Settings) -> JobOptions:
    """Defaults every queue starts from before its own overrides."""
    return JobOptions(
        priority=0,
        delay_ms=0,
        attempts=settings.default_job_attempts,
        backoff=BackoffPolicy(
            type=settings.default_backoff_type, delay_ms=settings.default_backoff_delay_ms
        ),
        remove_on_complete=settings.default_remove_on_complete,
        remove_on_fail=settings.default_remove_on_fail,
    )


class QueueHandle:
    """A named queue bound to the backing store."""

    def __init__(
        self, name: str, store: JobStore, defaults: JobOptions, reporter: StatusReporter
    ):
        self.name = name
        self.store = store
        self.defaults = defaults
        self.reporter = reporter
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def add(
        self,
        job_type: str,
        payload: dict[str, Any],
        options: JobOptions | None = None,
        *,
        run_at: datetime | None = None,
    ) -> JobHandle:
        """
        Write a job to the backing store and return its handle.

        ``run_at`` pins the eligibility time and takes precedence over the
        ``delay_ms`` option.
        """
        if self._closed:
            raise BackingStoreUnavailableError(
                f"Queue {self.name} is closed", {"queue": self.name}
            )
        if not isinstance(payload, dict):
            raise InvalidJobOptionsError(
                "Job payload must be a mapping", {"queue": self.name, "job_type": job_type}
            )
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise InvalidJobOptionsError(
                f"Job payload is not serializable: {e}",
                {"queue": self.name, "job_type": job_type},
            ) from e

        resolved = (options or JobOptions()).merged_over(self.defaults)
        backoff = resolved.backoff or BackoffPolicy()

        job, deduplicated = await self.store.add_job(
            self.name,
            job_type,
            payload,
            priority=resolved.priority or 0,
            max_attempts=resolved.attempts or 1,
            backoff=backoff.model_dump(mode="json"),
            delay_ms=resolved.delay_ms or 0,
            run_at=run_at,
            remove_on_complete=resolved.remove_on_complete,
            remove_on_fail=resolved.remove_on_fail,
            job_key=resolved.job_key,
            repeat=resolved.repeat.model_dump(exclude_none=True) if resolved.repeat else None,
        )

        if deduplicated:
            logger.info(
                "Job deduplicated",
                queue=self.name,
                job_id=job.id,
                job_type=job_type,
                job_key=resolved.job_key,
            )
        else:
            report(self.reporter, "job_waiting", self.name, job)

        return to_handle(job, deduplicated)

    async def get_job(self, job_id: int | str) -> Job | None:
        job = await self.store.get_job(int(job_id))
        if job is None or job.queue_name != self.name:
            return None
        return job

    async def counts(self) -> QueueCounts:
        return QueueCounts(**await self.store.count_by_state(self.name))

    async def jobs(self, state: JobState, limit: int = 10) -> list[Job]:
        return await self.store.list_jobs(self.name, state, limit)

    async def clean(self, grace_s: int, state: JobState) -> int:
        return await self.store.clean(self.name, grace_s, state)

    async def pause(self) -> None:
        await self.store.set_paused(self.name, True)

    async def resume(self) -> None:
        await self.store.set_paused(self.name, False)

    async def is_paused(self) -> bool:
        return await self.store.is_paused(self.name)

    async def is_ready(self) -> bool:
        """False once closed; raises if the backing store cannot be reached."""
        if self._closed:
            return False
        await self.store.ping()
        return True

    async def close(self) -> None:
        self._closed = True
        logger.info("Queue closed", queue=self.name)


def to_handle(job: Job, deduplicated: bool = False) -> JobHandle:
    return JobHandle(
        job_id=str(job.id),
        queue=job.queue_name,
        job_type=job.job_type,
        state=JobState(job.state),
        job_key=job.job_key,
        available_at=job.available_at,
        deduplicated=deduplicated,
    )


class QueueRegistry:
    """
    Lazily populated map from queue name to handle.

    First write wins: options passed on later lookups of an existing queue
    are ignored. A failed creation caches nothing, so the next lookup
    retries it.
    """

    def __init__(self, store: JobStore, settings: Settings, reporter: StatusReporter):
        self.store = store
        self.settings = settings
        self.reporter = reporter
        self._queues: dict[str, QueueHandle] = {}
        self._lock = asyncio.Lock()

    async def get_or_create_queue(
        self, name: str, options: JobOptions | None = None
    ) -> QueueHandle:
        handle = self._queues.get(name)
        if handle is not None:
            return handle

        async with self._lock:
            handle = self._queues.get(name)
            if handle is not None:
                return handle

            defaults = (options or JobOptions()).merged_over(global_job_defaults(self.settings))
            await self.store.ensure_queue(
                name, defaults.model_dump(mode="json", exclude_none=True)
            )

            handle = QueueHandle(name, self.store, defaults, self.reporter)
            self._queues[name] = handle
            logger.info(
                "Queue created",
                queue=name,
                attempts=defaults.attempts,
                backoff=defaults.backoff.model_dump(mode="json") if defaults.backoff else None,
            )
            return handle

    async def get_domain_queue(self, name: str) -> QueueHandle:
        """Fetch one of the predefined domain queues with its fixed tuning."""
        if name not in DOMAIN_QUEUES:
            raise UnknownQueueError(name)
        return await self.get_or_create_queue(name, DOMAIN_QUEUES[name])

    async def queue_for(self, name: str) -> QueueHandle:
        """Domain queues with their fixed tuning, anything else with the global defaults."""
        if name in DOMAIN_QUEUES:
            return await self.get_domain_queue(name)
        return await self.get_or_create_queue(name)

    async def warm_up(self) -> None:
        for name in DOMAIN_QUEUES:
            await self.get_domain_queue(name)

    def get(self, name: str) -> QueueHandle:
        handle = self._queues.get(name)
        if handle is None:
            raise UnknownQueueError(name)
        return handle

    def names(self) -> list[str]:
        return list(self._queues.keys())

    def handles(self) -> list[QueueHandle]:
        return list(self._queues.values())

    def __contains__(self, name: str) -> bool:
        return name in self._queues

    def clear(self) -> None:
        self._queues.clear()
