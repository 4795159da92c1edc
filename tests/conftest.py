from collections.abc import AsyncGenerator, Generator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import structlog
from fastapi.testclient import TestClient

from verifyflow.config.settings import Settings
from verifyflow.main import create_app
from verifyflow.v1.handlers.registry_init import register_domain_handlers
from verifyflow.v1.infra.queues.orchestrator import Orchestrator
from verifyflow.v1.infra.queues.schemas import JobContext

# Resolve sys.stdout on every log call; CliRunner swaps it out per invocation
structlog.configure(cache_logger_on_first_use=False)


class FakeClock:
    """Controllable clock handed to the job store."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 1, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingHandler:
    """Handler that records the jobs it ran and returns a fixed outcome."""

    def __init__(self, outcome: Any = None, error: Exception | None = None):
        self.outcome = outcome
        self.error = error
        self.calls: list[JobContext] = []

    async def handle(self, job: JobContext) -> Any:
        self.calls.append(job)
        if self.error is not None:
            raise self.error
        return self.outcome


class RecordingReporter:
    """Status reporter that keeps every event it receives."""

    def __init__(self):
        self.events: list[tuple[str, str, int]] = []

    def _record(self, event: str, queue_name: str, job) -> None:
        self.events.append((event, queue_name, job.id))

    def job_waiting(self, queue_name, job):
        self._record("waiting", queue_name, job)

    def job_active(self, queue_name, job):
        self._record("active", queue_name, job)

    def job_completed(self, queue_name, job, result):
        self._record("completed", queue_name, job)

    def job_failed(self, queue_name, job, error, will_retry):
        self._record("failed", queue_name, job)

    def job_delayed(self, queue_name, job, delay_ms):
        self._record("delayed", queue_name, job)

    def job_stalled(self, queue_name, job, outcome):
        self._record(f"stalled:{outcome}", queue_name, job)

    def queue_error(self, queue_name, error):
        self.events.append(("error", queue_name, 0))

    def names(self, job_id: int) -> list[str]:
        return [event for event, _, recorded_id in self.events if recorded_id == job_id]


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings backed by a throwaway SQLite file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'verifyflow.db'}",
        auto_create_schema=True,
        worker_enabled=False,
        provider_latency_scale=0,
        job_poll_interval_ms=10,
        job_heartbeat_interval_s=1,
        job_stall_timeout_s=30,
        job_stall_check_interval_s=1,
    )


@pytest.fixture
def make_handler():
    """Factory for RecordingHandler instances."""
    return RecordingHandler


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
async def orchestrator(
    test_settings, clock, reporter
) -> AsyncGenerator[Orchestrator, None]:
    """Orchestrator with the domain queues created and no handlers registered."""
    orchestrator = Orchestrator(
        test_settings, reporter=reporter, clock=clock, worker_id="test-worker"
    )
    await orchestrator.start()
    yield orchestrator
    await orchestrator.close_all()


@pytest.fixture
async def domain_orchestrator(orchestrator) -> Orchestrator:
    """Orchestrator with every domain handler registered."""
    register_domain_handlers(orchestrator.engine, orchestrator.settings)
    return orchestrator


@pytest.fixture
def client(test_settings) -> Generator[TestClient, None, None]:
    """Test client running the app lifespan against the SQLite store."""
    app = create_app(test_settings)
    with TestClient(app) as test_client:
        yield test_client
