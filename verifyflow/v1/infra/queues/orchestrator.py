"""
Process-level owner of the queue system: wiring, observability and shutdown.
"""

import asyncio
import signal
from typing import Any

from verifyflow.config.logging import get_logger
from verifyflow.config.settings import Settings
from verifyflow.infra.database import Database, utcnow
from verifyflow.v1.infra.queues.models import JobState
from verifyflow.v1.infra.queues.registry import QueueRegistry
from verifyflow.v1.infra.queues.reporting import LoggingStatusReporter, StatusReporter, report
from verifyflow.v1.infra.queues.scheduler import Scheduler
from verifyflow.v1.infra.queues.schemas import (
    HealthReport,
    JobSummary,
    QueueHealth,
    QueueStats,
)
from verifyflow.v1.infra.queues.store import Clock, JobStore
from verifyflow.v1.infra.queues.submission import JobSubmitter
from verifyflow.v1.infra.queues.worker import WorkerEngine

logger = get_logger(__name__)

# Job states sampled in queue statistics
SAMPLED_STATES = (JobState.WAITING, JobState.ACTIVE, JobState.FAILED)


class Orchestrator:
    """
    Builds the registry, submitter, scheduler and worker engine around one
    database and exposes the operational surface over them.
    """

    def __init__(
        self,
        settings: Settings,
        database: Database | None = None,
        reporter: StatusReporter | None = None,
        clock: Clock = utcnow,
        worker_id: str | None = None,
    ):
        self.settings = settings
        self.database = database or Database(settings)
        self.reporter = reporter or LoggingStatusReporter()
        self.store = JobStore(self.database, clock)
        self.registry = QueueRegistry(self.store, settings, self.reporter)
        self.scheduler = Scheduler(self.registry, self.store)
        self.submitter = JobSubmitter(self.registry, self.scheduler)
        self.engine = WorkerEngine(
            self.registry,
            self.submitter,
            self.scheduler,
            self.store,
            settings,
            self.reporter,
            worker_id=worker_id,
        )
        self._closed = False
        self._close_lock = asyncio.Lock()
        self._closed_event = asyncio.Event()
        self._shutdown_task: asyncio.Task | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Create the schema when configured, warm up the domain queues."""
        if self.settings.auto_create_schema:
            await self.database.create_schema()
        await self.registry.warm_up()
        logger.info("Queue system initialized", queues=self.registry.names())

    # Observability

    async def get_queue_stats(self, queue_name: str) -> QueueStats:
        """Counts per state plus the first few waiting, active and failed jobs."""
        queue = self.registry.get(queue_name)
        limit = self.settings.stats_sample_size

        counts = await queue.counts()
        jobs = {}
        for state in SAMPLED_STATES:
            sample = await queue.jobs(state, limit)
            jobs[state.value] = [JobSummary.model_validate(job) for job in sample]

        return QueueStats(
            queue_name=queue_name,
            paused=await queue.is_paused(),
            counts=counts,
            jobs=jobs,
        )

    async def get_all_queue_stats(self) -> dict[str, QueueStats | dict[str, str]]:
        """Stats for every known queue; a failing queue yields ``{"error": msg}``."""
        stats: dict[str, QueueStats | dict[str, str]] = {}
        for name in self.registry.names():
            try:
                stats[name] = await self.get_queue_stats(name)
            except Exception as e:
                logger.error("Failed to get queue stats", queue=name, error=str(e))
                report(self.reporter, "queue_error", name, e)
                stats[name] = {"error": str(e)}
        return stats

    async def cleanup(self, grace_s: int | None = None) -> dict[str, dict[str, Any]]:
        """Purge completed and failed jobs finished more than ``grace_s`` ago."""
        grace_s = self.settings.job_cleanup_grace_s if grace_s is None else grace_s
        results: dict[str, dict[str, Any]] = {}

        for queue in self.registry.handles():
            try:
                completed = await queue.clean(grace_s, JobState.COMPLETED)
                failed = await queue.clean(grace_s, JobState.FAILED)
            except Exception as e:
                logger.error("Failed to clean queue", queue=queue.name, error=str(e))
                report(self.reporter, "queue_error", queue.name, e)
                results[queue.name] = {"error": str(e)}
                continue
            results[queue.name] = {"completed": completed, "failed": failed}

        logger.info("Old jobs cleaned up", grace_s=grace_s, results=results)
        return results

    # Control

    async def pause(self, queue_name: str) -> None:
        await self.registry.get(queue_name).pause()
        logger.info("Queue paused", queue=queue_name)

    async def resume(self, queue_name: str) -> None:
        await self.registry.get(queue_name).resume()
        logger.info("Queue resumed", queue=queue_name)

    async def health_check(self) -> HealthReport:
        """
        Readiness of every known queue.

        Overall status is unhealthy if any queue errored, degraded if any is
        not ready, healthy otherwise.
        """
        queues: dict[str, QueueHealth] = {}
        for queue in self.registry.handles():
            try:
                ready = await queue.is_ready()
                paused = await queue.is_paused() if ready else None
                queues[queue.name] = QueueHealth(
                    status="ready" if ready else "not_ready", paused=paused
                )
            except Exception as e:
                logger.error("Queue health check failed", queue=queue.name, error=str(e))
                queues[queue.name] = QueueHealth(status="error", error=str(e))

        statuses = {health.status for health in queues.values()}
        if "error" in statuses:
            status = "unhealthy"
        elif "not_ready" in statuses:
            status = "degraded"
        else:
            status = "healthy"

        return HealthReport(status=status, queues=queues, timestamp=self.store.now())

    # Shutdown

    async def close_all(self) -> None:
        """Stop the engine, close every queue and release the database. Idempotent."""
        async with self._close_lock:
            if self._closed:
                return

            logger.info("Closing all queues")
            await self.engine.stop()

            for queue in self.registry.handles():
                try:
                    await queue.close()
                except Exception:
                    logger.exception("Error closing queue", queue=queue.name)

            self.registry.clear()
            await self.database.close()
            self._closed = True
            self._closed_event.set()
            logger.info("All queues closed")

    async def wait_closed(self) -> None:
        await self._closed_event.wait()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Close everything on SIGTERM or SIGINT."""
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._on_signal, sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Received shutdown signal", signal=sig.name)
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self.close_all())
