"""
Worker engine that claims jobs from the backing store and runs their handlers.
"""

import asyncio
import os
import socket
from dataclasses import dataclass, field
from typing import Any

from verifyflow.config.logging import get_logger
from verifyflow.config.settings import Settings
from verifyflow.v1.core.exceptions import UnrecoverableJobError
from verifyflow.v1.core.registries import HandlerRegistry, JobHandler
from verifyflow.v1.infra.queues.backoff import compute_backoff_ms
from verifyflow.v1.infra.queues.models import TERMINAL_STATES, Job, JobState
from verifyflow.v1.infra.queues.registry import QueueRegistry
from verifyflow.v1.infra.queues.reporting import StatusReporter, report
from verifyflow.v1.infra.queues.scheduler import Scheduler
from verifyflow.v1.infra.queues.schemas import HandlerResult, JobContext
from verifyflow.v1.infra.queues.store import JobStore
from verifyflow.v1.infra.queues.submission import JobSubmitter

logger = get_logger(__name__)


@dataclass
class HandlerRegistration:
    """A handler bound to one queue and job type with its concurrency bound."""

    queue_name: str
    job_type: str
    handler: JobHandler
    concurrency: int = 1
    semaphore: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.semaphore = asyncio.Semaphore(self.concurrency)


def normalize_result(outcome: Any) -> HandlerResult:
    """Accept a HandlerResult, a plain result dict or None from a handler."""
    if isinstance(outcome, HandlerResult):
        return outcome
    if outcome is None or isinstance(outcome, dict):
        return HandlerResult(result=outcome)
    raise TypeError(
        f"Handler returned {type(outcome).__name__}; expected dict, None or HandlerResult"
    )


class WorkerEngine:
    """
    Runs registered handlers against their queues.

    Features:
    - Conditional-update claiming, highest priority first and FIFO within it
    - A semaphore per registration bounding concurrent invocations
    - Retry with fixed or exponential backoff, and immediate failure for
      unrecoverable errors
    - Follow-up submission before completion
    - Heartbeats and stalled job recovery
    """

    def __init__(
        self,
        registry: QueueRegistry,
        submitter: JobSubmitter,
        scheduler: Scheduler,
        store: JobStore,
        settings: Settings,
        reporter: StatusReporter,
        worker_id: str | None = None,
    ):
        self.registry = registry
        self.submitter = submitter
        self.scheduler = scheduler
        self.store = store
        self.settings = settings
        self.reporter = reporter
        self.worker_id = worker_id or f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.handlers: HandlerRegistry[HandlerRegistration] = HandlerRegistry()
        self.running = False
        self.active_jobs: set[int] = set()
        self._loops: list[asyncio.Task] = []
        self._inflight: set[asyncio.Task] = set()

    # Registration

    def register_handler(
        self, queue_name: str, job_type: str, handler: JobHandler, concurrency: int = 1
    ) -> HandlerRegistration:
        """Bind a handler to a queue and job type; raises if one is already bound."""
        if concurrency < 1:
            raise ValueError(f"Concurrency must be at least 1, got {concurrency}")

        registration = HandlerRegistration(queue_name, job_type, handler, concurrency)
        self.handlers.register(HandlerRegistry.key(queue_name, job_type), registration)
        logger.info(
            "Handler registered",
            queue=queue_name,
            job_type=job_type,
            concurrency=concurrency,
            handler=type(handler).__name__,
        )

        if self.running:
            self._start_claim_loop(registration)
        return registration

    def registrations(self, queue_name: str | None = None) -> list[HandlerRegistration]:
        return [
            registration
            for _, registration in self.handlers.items()
            if queue_name is None or registration.queue_name == queue_name
        ]

    def _registration_for(self, job: Job) -> HandlerRegistration | None:
        key = HandlerRegistry.key(job.queue_name, job.job_type)
        if not self.handlers.contains(key):
            return None
        return self.handlers.get(key)

    # Synchronous control

    async def process_next(self, queue_name: str, job_type: str | None = None) -> Job | None:
        """
        Claim one eligible job with a registered handler and run it inline.

        Returns:
            The job record after its transition, or None if nothing was eligible
        """
        self.registry.get(queue_name)

        job_types = [r.job_type for r in self.registrations(queue_name)]
        if job_type is not None:
            job_types = [t for t in job_types if t == job_type]
        if not job_types:
            return None

        await self.store.promote_delayed(queue_name)
        job = await self.store.claim(queue_name, self.worker_id, job_types)
        if job is None:
            return None

        registration = self._registration_for(job)
        async with registration.semaphore:
            return await self._execute(job, registration)

    async def drain(self, queue_name: str, max_jobs: int | None = None) -> list[Job]:
        """Process jobs inline until none is eligible (or ``max_jobs`` ran)."""
        processed: list[Job] = []
        while max_jobs is None or len(processed) < max_jobs:
            job = await self.process_next(queue_name)
            if job is None:
                break
            processed.append(job)
        return processed

    # Execution

    def _context(self, job: Job) -> JobContext:
        return JobContext(
            id=str(job.id),
            queue=job.queue_name,
            job_type=job.job_type,
            payload=dict(job.payload or {}),
            attempts_made=job.attempts_made,
            max_attempts=job.max_attempts,
            job_key=job.job_key,
        )

    async def _execute(self, job: Job, registration: HandlerRegistration) -> Job | None:
        """Run a claimed job through its handler and record the outcome."""
        job_logger = logger.bind(
            job_id=job.id, queue=job.queue_name, job_type=job.job_type, attempt=job.attempts_made
        )
        self.active_jobs.add(job.id)
        report(self.reporter, "job_active", job.queue_name, job)

        try:
            try:
                outcome = normalize_result(await registration.handler.handle(self._context(job)))
                for follow_up in outcome.follow_ups:
                    await self.submitter.submit(
                        follow_up.queue, follow_up.job_type, follow_up.payload, follow_up.options
                    )
            except UnrecoverableJobError as e:
                job_logger.warning("Job failed without retry", error=str(e))
                final = await self._fail(job, e, retry=False)
            except Exception as e:
                job_logger.exception("Job processing failed", error=str(e))
                final = await self._fail(job, e, retry=job.can_retry())
            else:
                final = await self.store.mark_completed(job.id, self.worker_id, outcome.result)
                if final is not None:
                    report(self.reporter, "job_completed", job.queue_name, final, outcome.result)

            if final is not None and final.state in TERMINAL_STATES:
                await self._schedule_next(final)
            return final
        finally:
            self.active_jobs.discard(job.id)

    async def _fail(self, job: Job, error: Exception, retry: bool) -> Job | None:
        message = str(error) or type(error).__name__
        if retry:
            delay_ms = compute_backoff_ms(job.backoff or {}, job.attempts_made)
            final = await self.store.mark_retry(job.id, self.worker_id, delay_ms, message)
            if final is not None:
                report(self.reporter, "job_failed", job.queue_name, final, error, True)
                report(self.reporter, "job_delayed", job.queue_name, final, delay_ms)
            return final

        error_code = (
            "UNRECOVERABLE" if isinstance(error, UnrecoverableJobError) else "PROCESSING_ERROR"
        )
        final = await self.store.mark_failed(job.id, self.worker_id, message, error_code)
        if final is not None:
            report(self.reporter, "job_failed", job.queue_name, final, error, False)
        return final

    async def _schedule_next(self, job: Job) -> None:
        if not job.repeat:
            return
        try:
            await self.scheduler.schedule_next(job)
        except Exception as e:
            logger.exception(
                "Failed to schedule next recurring instance", job_id=job.id, job_key=job.job_key
            )
            report(self.reporter, "queue_error", job.queue_name, e)

    # Background loops

    async def start(self) -> None:
        """Start claim loops for every registration plus heartbeat and stall checks."""
        if self.running:
            raise RuntimeError("Worker is already running")

        self.running = True
        for registration in self.registrations():
            self._start_claim_loop(registration)
        self._loops.append(asyncio.create_task(self._heartbeat_loop()))
        self._loops.append(asyncio.create_task(self._stall_check_loop()))

        logger.info(
            "Worker engine started",
            worker_id=self.worker_id,
            handlers=self.handlers.list(),
            poll_interval_ms=self.settings.job_poll_interval_ms,
        )

    def _start_claim_loop(self, registration: HandlerRegistration) -> None:
        self._loops.append(asyncio.create_task(self._claim_loop(registration)))

    async def stop(self, timeout: float | None = None) -> None:
        """Stop claiming, wait for in-flight jobs up to ``timeout`` seconds, then cancel."""
        if not self.running and not self._loops:
            return

        timeout = self.settings.job_shutdown_timeout_s if timeout is None else timeout
        logger.info("Stopping worker engine", worker_id=self.worker_id)
        self.running = False

        for task in self._loops:
            task.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()

        if self._inflight:
            _, pending = await asyncio.wait(set(self._inflight), timeout=timeout)
            if pending:
                # Left active; stall recovery hands them to another worker
                logger.warning(
                    "Worker stopped with active jobs",
                    worker_id=self.worker_id,
                    active_jobs=len(pending),
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        logger.info("Worker engine stopped", worker_id=self.worker_id)

    async def _claim_loop(self, registration: HandlerRegistration) -> None:
        """Claim jobs for one registration while it has free slots."""
        queue_name = registration.queue_name
        poll_s = self.settings.job_poll_interval_ms / 1000

        while self.running:
            await registration.semaphore.acquire()
            try:
                await self.store.promote_delayed(queue_name)
                job = await self.store.claim(
                    queue_name, self.worker_id, [registration.job_type]
                )
            except asyncio.CancelledError:
                registration.semaphore.release()
                raise
            except Exception as e:
                registration.semaphore.release()
                logger.exception(
                    "Error in claim loop", worker_id=self.worker_id, queue=queue_name
                )
                report(self.reporter, "queue_error", queue_name, e)
                await asyncio.sleep(poll_s * 10)
                continue

            if job is None:
                registration.semaphore.release()
                await asyncio.sleep(poll_s)
                continue

            task = asyncio.create_task(self._run_claimed(job, registration))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _run_claimed(self, job: Job, registration: HandlerRegistration) -> None:
        try:
            await self._execute(job, registration)
        except Exception as e:
            # Backing store failures while recording an outcome; stall recovery retries
            logger.exception("Failed to record job outcome", job_id=job.id)
            report(self.reporter, "queue_error", job.queue_name, e)
        finally:
            registration.semaphore.release()

    async def _heartbeat_loop(self) -> None:
        """Refresh heartbeats for the jobs this worker is running."""
        while self.running:
            try:
                await self.store.heartbeat(list(self.active_jobs), self.worker_id)
            except Exception:
                logger.exception("Error updating heartbeats", worker_id=self.worker_id)
            await asyncio.sleep(self.settings.job_heartbeat_interval_s)

    async def _stall_check_loop(self) -> None:
        while self.running:
            try:
                await self.recover_stalled()
            except Exception:
                logger.exception("Error in stalled job recovery", worker_id=self.worker_id)
            await asyncio.sleep(self.settings.job_stall_check_interval_s)

    async def recover_stalled(self) -> list[Job]:
        """
        Requeue or fail active jobs whose heartbeat is older than the stall
        timeout. Runs on a timer in the background and can be called directly.
        """
        queue_names = self.registry.names()
        if not queue_names:
            return []

        recovered: list[Job] = []
        stalled = await self.store.find_stalled(queue_names, self.settings.job_stall_timeout_s)
        for job in stalled:
            updated, outcome = await self.store.recover_stalled(
                job, self.settings.job_max_stalled_count
            )
            if updated is None:
                continue
            report(self.reporter, "job_stalled", updated.queue_name, updated, outcome)
            if outcome == "failed":
                report(
                    self.reporter,
                    "job_failed",
                    updated.queue_name,
                    updated,
                    updated.last_error,
                    False,
                )
                await self._schedule_next(updated)
            recovered.append(updated)
        return recovered
