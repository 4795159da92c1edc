"""
SQL backing store for queues and jobs.

All coordination between workers goes through this module: claim-once
semantics come from conditional UPDATEs, delayed visibility from
``available_at``, and stall detection from heartbeats.
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from verifyflow.config.logging import get_logger
from verifyflow.infra.database import Database, utcnow
from verifyflow.v1.core.exceptions import BackingStoreUnavailableError
from verifyflow.v1.infra.queues.models import LIVE_STATES, Job, JobState, QueueRecord

logger = get_logger(__name__)

Clock = Callable[[], datetime]

# Lost claim races are retried this many times before reporting "no job"
_CLAIM_RETRIES = 3


class JobStore:
    """Backing store operations shared by every queue handle and worker."""

    def __init__(self, database: Database, clock: Clock = utcnow):
        self.database = database
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Session whose connectivity failures surface as BackingStoreUnavailableError."""
        try:
            async with self.database.session() as session:
                yield session
        except IntegrityError:
            raise
        except (OperationalError, InterfaceError, OSError) as e:
            raise BackingStoreUnavailableError(
                f"Backing store unavailable during {operation}",
                {"operation": operation, "error": str(e)},
            ) from e

    async def ping(self) -> None:
        try:
            await self.database.ping()
        except (OperationalError, InterfaceError, OSError) as e:
            raise BackingStoreUnavailableError(
                "Backing store unavailable", {"error": str(e)}
            ) from e

    # Queues

    async def ensure_queue(self, name: str, default_options: dict[str, Any]) -> QueueRecord:
        """Create the queue row if missing and return it."""
        async with self._session("ensure_queue") as session:
            record = await session.get(QueueRecord, name)
            if record is not None:
                return record

            record = QueueRecord(
                name=name, paused=False, default_options=default_options, created_at=self.now()
            )
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                # Another process created it first
                await session.rollback()
                record = await session.get(QueueRecord, name)
            return record

    async def set_paused(self, name: str, paused: bool) -> None:
        async with self._session("set_paused") as session:
            await session.execute(
                update(QueueRecord).where(QueueRecord.name == name).values(paused=paused)
            )
            await session.commit()

    async def is_paused(self, name: str) -> bool:
        async with self._session("is_paused") as session:
            paused = await session.scalar(
                select(QueueRecord.paused).where(QueueRecord.name == name)
            )
            return bool(paused)

    # Submission

    async def _find_live_by_key(
        self, session: AsyncSession, queue_name: str, job_key: str
    ) -> Job | None:
        result = await session.execute(
            select(Job)
            .where(
                Job.queue_name == queue_name,
                Job.job_key == job_key,
                Job.state.in_(LIVE_STATES),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def add_job(
        self,
        queue_name: str,
        job_type: str,
        payload: dict[str, Any],
        *,
        priority: int,
        max_attempts: int,
        backoff: dict[str, Any],
        delay_ms: int = 0,
        run_at: datetime | None = None,
        remove_on_complete: int | None = None,
        remove_on_fail: int | None = None,
        job_key: str | None = None,
        repeat: dict[str, Any] | None = None,
    ) -> tuple[Job, bool]:
        """
        Insert a job, or return the live job holding the same identity key.

        Returns:
            The job and whether it was deduplicated against an existing one
        """
        now = self.now()
        available_at = run_at or now + timedelta(milliseconds=delay_ms)
        state = JobState.DELAYED if available_at > now else JobState.WAITING

        async with self._session("add_job") as session:
            if job_key:
                existing = await self._find_live_by_key(session, queue_name, job_key)
                if existing is not None:
                    return existing, True

            job = Job(
                queue_name=queue_name,
                job_type=job_type,
                payload=payload,
                state=state.value,
                priority=priority,
                available_at=available_at,
                attempts_made=0,
                max_attempts=max_attempts,
                backoff=backoff,
                remove_on_complete=remove_on_complete,
                remove_on_fail=remove_on_fail,
                job_key=job_key,
                repeat=repeat,
                stalled_count=0,
                created_at=now,
                updated_at=now,
            )
            session.add(job)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                if job_key:
                    # Race with a concurrent submitter using the same key
                    existing = await self._find_live_by_key(session, queue_name, job_key)
                    if existing is not None:
                        return existing, True
                raise
            return job, False

    async def get_job(self, job_id: int) -> Job | None:
        async with self._session("get_job") as session:
            return await session.get(Job, job_id)

    # Claiming

    async def promote_delayed(self, queue_name: str) -> int:
        """Move delayed jobs whose time has come back to waiting."""
        now = self.now()
        async with self._session("promote_delayed") as session:
            result = await session.execute(
                update(Job)
                .where(
                    Job.queue_name == queue_name,
                    Job.state == JobState.DELAYED.value,
                    Job.available_at <= now,
                )
                .values(state=JobState.WAITING.value, updated_at=now)
            )
            await session.commit()
            return result.rowcount or 0

    async def claim(
        self, queue_name: str, worker_id: str, job_types: list[str] | None = None
    ) -> Job | None:
        """
        Claim the next eligible job: highest priority first, then earliest
        eligibility, then insertion order. Only jobs of ``job_types`` are
        considered when given. Returns None when the queue is paused or
        nothing is eligible.
        """
        async with self._session("claim") as session:
            paused = await session.scalar(
                select(QueueRecord.paused).where(QueueRecord.name == queue_name)
            )
            if paused:
                return None

            for _ in range(_CLAIM_RETRIES):
                now = self.now()
                candidates = select(Job.id).where(
                    Job.queue_name == queue_name,
                    Job.state == JobState.WAITING.value,
                    Job.available_at <= now,
                )
                if job_types is not None:
                    candidates = candidates.where(Job.job_type.in_(job_types))
                candidates = (
                    candidates.order_by(Job.priority.desc(), Job.available_at, Job.id)
                    .limit(1)
                    .with_for_update(skip_locked=True)
                )

                job_id = await session.scalar(candidates)
                if job_id is None:
                    await session.rollback()
                    return None

                result = await session.execute(
                    update(Job)
                    .where(Job.id == job_id, Job.state == JobState.WAITING.value)
                    .values(
                        state=JobState.ACTIVE.value,
                        attempts_made=Job.attempts_made + 1,
                        locked_by=worker_id,
                        locked_at=now,
                        heartbeat_at=now,
                        processed_at=now,
                        updated_at=now,
                    )
                )
                await session.commit()
                if result.rowcount == 1:
                    return await session.get(Job, job_id, populate_existing=True)

            return None

    # Terminal transitions

    async def _finish(
        self, session: AsyncSession, job_id: int, worker_id: str, values: dict[str, Any]
    ) -> Job | None:
        """Apply a transition only if this worker still holds the job."""
        result = await session.execute(
            update(Job)
            .where(
                Job.id == job_id,
                Job.state == JobState.ACTIVE.value,
                Job.locked_by == worker_id,
            )
            .values(locked_by=None, locked_at=None, heartbeat_at=None, **values)
        )
        if result.rowcount != 1:
            await session.rollback()
            logger.warning("Job lock lost before transition", job_id=job_id, worker_id=worker_id)
            return None
        return await session.get(Job, job_id, populate_existing=True)

    async def _trim(
        self, session: AsyncSession, queue_name: str, state: JobState, keep: int | None
    ) -> None:
        """Keep only the ``keep`` most recently finished jobs in ``state``."""
        if keep is None:
            return
        newest = (
            select(Job.id)
            .where(Job.queue_name == queue_name, Job.state == state.value)
            .order_by(Job.finished_at.desc(), Job.id.desc())
            .limit(keep)
        )
        await session.execute(
            delete(Job).where(
                Job.queue_name == queue_name,
                Job.state == state.value,
                Job.id.not_in(newest.scalar_subquery()),
            )
            .execution_options(synchronize_session=False)
        )

    async def mark_completed(
        self, job_id: int, worker_id: str, result: dict[str, Any] | None
    ) -> Job | None:
        now = self.now()
        async with self._session("mark_completed") as session:
            job = await self._finish(
                session,
                job_id,
                worker_id,
                {
                    "state": JobState.COMPLETED.value,
                    "result": result,
                    "finished_at": now,
                    "updated_at": now,
                },
            )
            if job is None:
                return None
            await self._trim(session, job.queue_name, JobState.COMPLETED, job.remove_on_complete)
            await session.commit()
            return job

    async def mark_retry(
        self, job_id: int, worker_id: str, delay_ms: int, error: str
    ) -> Job | None:
        """Send a failed attempt back for another try after ``delay_ms``."""
        now = self.now()
        state = JobState.DELAYED if delay_ms > 0 else JobState.WAITING
        async with self._session("mark_retry") as session:
            job = await self._finish(
                session,
                job_id,
                worker_id,
                {
                    "state": state.value,
                    "available_at": now + timedelta(milliseconds=delay_ms),
                    "last_error": error,
                    "error_code": "RETRY_SCHEDULED",
                    "updated_at": now,
                },
            )
            await session.commit()
            return job

    async def mark_failed(
        self, job_id: int, worker_id: str, error: str, error_code: str = "PROCESSING_ERROR"
    ) -> Job | None:
        now = self.now()
        async with self._session("mark_failed") as session:
            job = await self._finish(
                session,
                job_id,
                worker_id,
                {
                    "state": JobState.FAILED.value,
                    "last_error": error,
                    "error_code": error_code,
                    "finished_at": now,
                    "updated_at": now,
                },
            )
            if job is None:
                return None
            await self._trim(session, job.queue_name, JobState.FAILED, job.remove_on_fail)
            await session.commit()
            return job

    # Liveness

    async def heartbeat(self, job_ids: list[int], worker_id: str) -> int:
        if not job_ids:
            return 0
        async with self._session("heartbeat") as session:
            result = await session.execute(
                update(Job)
                .where(
                    Job.id.in_(job_ids),
                    Job.locked_by == worker_id,
                    Job.state == JobState.ACTIVE.value,
                )
                .values(heartbeat_at=self.now())
            )
            await session.commit()
            return result.rowcount or 0

    async def find_stalled(self, queue_names: list[str], stall_timeout_s: int) -> list[Job]:
        cutoff = self.now() - timedelta(seconds=stall_timeout_s)
        async with self._session("find_stalled") as session:
            result = await session.execute(
                select(Job).where(
                    Job.queue_name.in_(queue_names),
                    Job.state == JobState.ACTIVE.value,
                    Job.heartbeat_at < cutoff,
                )
            )
            return list(result.scalars().all())

    async def recover_stalled(self, job: Job, max_stalled_count: int) -> tuple[Job | None, str]:
        """
        Make a stalled job reclaimable, or fail it once it has stalled more
        than ``max_stalled_count`` times. A stall does not use up an attempt.

        Returns:
            The updated job (None if a worker touched it meanwhile) and
            "requeued" or "failed"
        """
        now = self.now()
        stalled_count = job.stalled_count + 1
        if stalled_count > max_stalled_count:
            outcome = "failed"
            values = {
                "state": JobState.FAILED.value,
                "error_code": "STALLED",
                "last_error": "job stalled more than allowable limit",
                "finished_at": now,
            }
        else:
            outcome = "requeued"
            values = {
                "state": JobState.WAITING.value,
                # Claiming counted this run; a stall hands the attempt back
                "attempts_made": Job.attempts_made - 1,
                "available_at": now,
            }

        async with self._session("recover_stalled") as session:
            result = await session.execute(
                update(Job)
                .where(
                    Job.id == job.id,
                    Job.state == JobState.ACTIVE.value,
                    Job.locked_by == job.locked_by,
                    Job.heartbeat_at == job.heartbeat_at,
                )
                .values(
                    stalled_count=stalled_count,
                    locked_by=None,
                    locked_at=None,
                    heartbeat_at=None,
                    updated_at=now,
                    **values,
                )
            )
            if result.rowcount != 1:
                await session.rollback()
                return None, outcome
            recovered = await session.get(Job, job.id, populate_existing=True)
            if outcome == "failed":
                await self._trim(session, job.queue_name, JobState.FAILED, job.remove_on_fail)
            await session.commit()
            return recovered, outcome

    # Inspection and maintenance

    async def count_by_state(self, queue_name: str) -> dict[str, int]:
        async with self._session("count_by_state") as session:
            result = await session.execute(
                select(Job.state, func.count(Job.id))
                .where(Job.queue_name == queue_name)
                .group_by(Job.state)
            )
            return {state: count for state, count in result.all()}

    async def list_jobs(self, queue_name: str, state: JobState, limit: int) -> list[Job]:
        ordering = {
            JobState.WAITING: (Job.priority.desc(), Job.available_at, Job.id),
            JobState.DELAYED: (Job.available_at, Job.id),
            JobState.ACTIVE: (Job.processed_at, Job.id),
            JobState.COMPLETED: (Job.finished_at.desc(), Job.id.desc()),
            JobState.FAILED: (Job.finished_at.desc(), Job.id.desc()),
        }[state]
        async with self._session("list_jobs") as session:
            result = await session.execute(
                select(Job)
                .where(Job.queue_name == queue_name, Job.state == state.value)
                .order_by(*ordering)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def clean(self, queue_name: str, grace_s: int, state: JobState) -> int:
        """Delete terminal jobs in ``state`` that finished more than ``grace_s`` ago."""
        cutoff = self.now() - timedelta(seconds=grace_s)
        async with self._session("clean") as session:
            result = await session.execute(
                delete(Job).where(
                    Job.queue_name == queue_name,
                    Job.state == state.value,
                    Job.finished_at < cutoff,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount or 0
