import pytest

from verifyflow.v1.core.exceptions import BackingStoreUnavailableError, UnknownQueueError
from verifyflow.v1.infra.queues.models import JobState
from verifyflow.v1.infra.queues.registry import DOMAIN_QUEUES, SCREENING_QUEUE
from verifyflow.v1.infra.queues.schemas import JobOptions, QueueStats

QUEUE = "ops-queue"
DOMAIN_QUEUES_FIRST = next(iter(DOMAIN_QUEUES))


async def completed_jobs(orchestrator, count, queue_name=QUEUE):
    queue = orchestrator.registry.get(queue_name)
    for n in range(count):
        await queue.add("work", {"n": n})
    return await orchestrator.engine.drain(queue_name)


@pytest.fixture
async def ops(orchestrator, make_handler):
    """Orchestrator with a custom queue whose 'work' jobs always succeed."""
    await orchestrator.registry.get_or_create_queue(QUEUE, JobOptions(attempts=1))
    orchestrator.engine.register_handler(QUEUE, "work", make_handler(outcome={"done": True}))
    return orchestrator


@pytest.mark.asyncio
async def test_queue_stats(ops):
    queue = ops.registry.get(QUEUE)
    await completed_jobs(ops, 2)
    await queue.add("work", {"n": "pending"})
    await queue.add("work", {"n": "later"}, JobOptions(delay_ms=60000))

    stats = await ops.get_queue_stats(QUEUE)

    assert stats.queue_name == QUEUE
    assert stats.paused is False
    assert stats.counts.model_dump() == {
        "waiting": 1,
        "active": 0,
        "completed": 2,
        "failed": 0,
        "delayed": 1,
    }
    assert set(stats.jobs) == {"waiting", "active", "failed"}
    assert [job.payload for job in stats.jobs["waiting"]] == [{"n": "pending"}]
    assert stats.jobs["active"] == []


@pytest.mark.asyncio
async def test_queue_stats_sample_is_bounded(ops):
    queue = ops.registry.get(QUEUE)
    for n in range(ops.settings.stats_sample_size + 5):
        await queue.add("work", {"n": n})

    stats = await ops.get_queue_stats(QUEUE)

    assert stats.counts.waiting == ops.settings.stats_sample_size + 5
    assert len(stats.jobs["waiting"]) == ops.settings.stats_sample_size


@pytest.mark.asyncio
async def test_stats_for_unknown_queue(orchestrator):
    with pytest.raises(UnknownQueueError):
        await orchestrator.get_queue_stats("missing")


@pytest.mark.asyncio
async def test_all_queue_stats_isolates_failures(ops, reporter, monkeypatch):
    async def broken_counts():
        raise BackingStoreUnavailableError("connection refused")

    monkeypatch.setattr(ops.registry.get(SCREENING_QUEUE), "counts", broken_counts)

    stats = await ops.get_all_queue_stats()

    assert set(stats) == set(DOMAIN_QUEUES) | {QUEUE}
    assert stats[SCREENING_QUEUE] == {"error": "connection refused"}
    assert isinstance(stats[QUEUE], QueueStats)
    assert ("error", SCREENING_QUEUE, 0) in reporter.events


@pytest.mark.asyncio
async def test_cleanup_removes_only_old_terminal_jobs(ops, clock):
    await completed_jobs(ops, 2)
    clock.advance(hours=25)
    await completed_jobs(ops, 1)

    results = await ops.cleanup()

    assert results[QUEUE] == {"completed": 2, "failed": 0}
    assert results[SCREENING_QUEUE] == {"completed": 0, "failed": 0}
    assert (await ops.registry.get(QUEUE).counts()).completed == 1


@pytest.mark.asyncio
async def test_cleanup_with_custom_grace(ops, clock):
    await completed_jobs(ops, 3)
    clock.advance(minutes=10)

    assert (await ops.cleanup(grace_s=3600))[QUEUE]["completed"] == 0
    assert (await ops.cleanup(grace_s=60))[QUEUE]["completed"] == 3


@pytest.mark.asyncio
async def test_cleanup_never_touches_live_jobs(ops, clock):
    queue = ops.registry.get(QUEUE)
    await queue.add("work", {})
    await queue.add("work", {}, JobOptions(delay_ms=1000))
    clock.advance(days=3)

    await ops.cleanup(grace_s=0)

    counts = await queue.counts()
    assert counts.waiting == 1
    assert counts.delayed == 1


@pytest.mark.asyncio
async def test_completed_retention(orchestrator, make_handler):
    await orchestrator.registry.get_or_create_queue(
        "short-memory", JobOptions(remove_on_complete=2, remove_on_fail=1, attempts=1)
    )
    orchestrator.engine.register_handler("short-memory", "work", make_handler())

    await completed_jobs(orchestrator, 3, "short-memory")

    queue = orchestrator.registry.get("short-memory")
    kept = await queue.jobs(JobState.COMPLETED)
    assert (await queue.counts()).completed == 2
    assert sorted(job.payload["n"] for job in kept) == [1, 2]


@pytest.mark.asyncio
async def test_failed_retention(orchestrator, make_handler):
    await orchestrator.registry.get_or_create_queue(
        "short-memory", JobOptions(remove_on_fail=1, attempts=1)
    )
    orchestrator.engine.register_handler(
        "short-memory", "work", make_handler(error=RuntimeError("nope"))
    )

    await completed_jobs(orchestrator, 3, "short-memory")

    assert (await orchestrator.registry.get("short-memory").counts()).failed == 1


@pytest.mark.asyncio
async def test_pause_is_reported_in_stats(ops):
    await ops.pause(QUEUE)
    assert (await ops.get_queue_stats(QUEUE)).paused is True

    await ops.resume(QUEUE)
    assert (await ops.get_queue_stats(QUEUE)).paused is False


@pytest.mark.asyncio
async def test_pause_unknown_queue(orchestrator):
    with pytest.raises(UnknownQueueError):
        await orchestrator.pause("missing")


@pytest.mark.asyncio
async def test_health_check_healthy(orchestrator):
    await orchestrator.pause(SCREENING_QUEUE)

    report = await orchestrator.health_check()

    assert report.status == "healthy"
    assert set(report.queues) == set(DOMAIN_QUEUES)
    assert report.queues[SCREENING_QUEUE].status == "ready"
    assert report.queues[SCREENING_QUEUE].paused is True


@pytest.mark.asyncio
async def test_health_check_degraded_when_queue_closed(orchestrator):
    await orchestrator.registry.get(SCREENING_QUEUE).close()

    report = await orchestrator.health_check()

    assert report.status == "degraded"
    assert report.queues[SCREENING_QUEUE].status == "not_ready"
    assert report.queues[SCREENING_QUEUE].paused is None


@pytest.mark.asyncio
async def test_health_check_unhealthy_on_store_error(orchestrator, monkeypatch):
    async def unreachable():
        raise BackingStoreUnavailableError("Backing store unavailable")

    await orchestrator.registry.get(SCREENING_QUEUE).close()
    monkeypatch.setattr(orchestrator.registry.get(DOMAIN_QUEUES_FIRST), "is_ready", unreachable)

    report = await orchestrator.health_check()

    assert report.status == "unhealthy"
    assert report.queues[DOMAIN_QUEUES_FIRST].status == "error"
    assert report.queues[DOMAIN_QUEUES_FIRST].error == "Backing store unavailable"


@pytest.mark.asyncio
async def test_close_all_is_idempotent(orchestrator):
    await orchestrator.close_all()
    await orchestrator.close_all()

    assert orchestrator.closed is True
    assert orchestrator.registry.names() == []
    await orchestrator.wait_closed()
