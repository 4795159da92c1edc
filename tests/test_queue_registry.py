import asyncio

import pytest

from verifyflow.config.settings import BackoffType
from verifyflow.v1.core.exceptions import (
    BackingStoreUnavailableError,
    InvalidJobOptionsError,
    UnknownQueueError,
)
from verifyflow.v1.infra.queues.models import JobState
from verifyflow.v1.infra.queues.registry import (
    DOMAIN_QUEUES,
    NOTIFICATION_QUEUE,
    SCREENING_QUEUE,
    VERIFICATION_QUEUE,
)
from verifyflow.v1.infra.queues.schemas import BackoffPolicy, JobOptions


@pytest.mark.asyncio
async def test_warm_up_creates_domain_queues(orchestrator):
    """Test that startup creates every domain queue."""
    assert sorted(orchestrator.registry.names()) == sorted(DOMAIN_QUEUES)


@pytest.mark.asyncio
async def test_get_or_create_queue_is_idempotent(orchestrator):
    """Test that one name always maps to one handle and the first options win."""
    registry = orchestrator.registry

    first = await registry.get_or_create_queue("custom", JobOptions(attempts=7))
    second = await registry.get_or_create_queue("custom", JobOptions(attempts=1))

    assert first is second
    assert second.defaults.attempts == 7


@pytest.mark.asyncio
async def test_concurrent_creation_yields_one_handle(orchestrator):
    handles = await asyncio.gather(
        *[orchestrator.registry.get_or_create_queue("racy") for _ in range(5)]
    )

    assert all(handle is handles[0] for handle in handles)
    assert orchestrator.registry.names().count("racy") == 1


@pytest.mark.asyncio
async def test_queue_defaults_fall_back_to_settings(orchestrator):
    handle = await orchestrator.registry.get_or_create_queue("plain")

    assert handle.defaults.attempts == 3
    assert handle.defaults.backoff.type == BackoffType.EXPONENTIAL
    assert handle.defaults.backoff.delay_ms == 2000
    assert handle.defaults.remove_on_complete == 100
    assert handle.defaults.remove_on_fail == 50


@pytest.mark.asyncio
async def test_unknown_queue_lookup(orchestrator):
    with pytest.raises(UnknownQueueError) as exc_info:
        orchestrator.registry.get("missing")

    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "Queue missing not found"


@pytest.mark.asyncio
async def test_domain_defaults_applied_on_submit(orchestrator):
    """Test that domain queue tuning reaches the stored job."""
    handle = await orchestrator.submitter.submit_verification(
        "pan-verify", {"userId": "u1", "panNumber": "ABCDE1234F"}
    )

    job = await orchestrator.registry.get(VERIFICATION_QUEUE).get_job(handle.job_id)
    assert handle.state == JobState.WAITING
    assert job.max_attempts == 5
    assert job.backoff == {"type": "exponential", "delay_ms": 5000}
    assert job.priority == 0


@pytest.mark.asyncio
async def test_notifications_default_to_high_priority(orchestrator):
    handle = await orchestrator.submitter.submit_notification(
        "kyc-status-update", {"userId": "u1", "type": "pan_verified"}
    )

    job = await orchestrator.registry.get(NOTIFICATION_QUEUE).get_job(handle.job_id)
    assert job.priority == 10


@pytest.mark.asyncio
async def test_caller_options_override_defaults(orchestrator):
    handle = await orchestrator.submitter.submit_screening(
        "pep-screening",
        {"userId": "u1"},
        JobOptions(
            priority=4, attempts=1, backoff=BackoffPolicy(type=BackoffType.FIXED, delay_ms=50)
        ),
    )

    job = await orchestrator.registry.get(SCREENING_QUEUE).get_job(handle.job_id)
    assert job.priority == 4
    assert job.max_attempts == 1
    assert job.backoff == {"type": "fixed", "delay_ms": 50}


@pytest.mark.asyncio
async def test_delayed_submission(orchestrator, clock):
    handle = await orchestrator.submitter.submit_screening(
        "pep-screening", {"userId": "u1"}, JobOptions(delay_ms=5000)
    )

    assert handle.state == JobState.DELAYED
    assert (handle.available_at - clock()).total_seconds() == 5


@pytest.mark.asyncio
async def test_job_key_deduplicates_live_jobs(orchestrator):
    options = JobOptions(job_key="pan-u1")

    first = await orchestrator.submitter.submit_verification(
        "pan-verify", {"userId": "u1", "panNumber": "ABCDE1234F"}, options
    )
    second = await orchestrator.submitter.submit_verification(
        "pan-verify", {"userId": "u1", "panNumber": "ABCDE1234F"}, options
    )

    assert first.deduplicated is False
    assert second.deduplicated is True
    assert second.job_id == first.job_id

    counts = await orchestrator.registry.get(VERIFICATION_QUEUE).counts()
    assert counts.waiting == 1


@pytest.mark.asyncio
async def test_unserializable_payload_rejected(orchestrator):
    with pytest.raises(InvalidJobOptionsError, match="not serializable"):
        await orchestrator.submitter.submit_screening(
            "pep-screening", {"userId": "u1", "when": object()}
        )

    counts = await orchestrator.registry.get(SCREENING_QUEUE).counts()
    assert counts.waiting == 0


def test_unknown_option_rejected():
    with pytest.raises(ValueError):
        JobOptions(retries=3)


@pytest.mark.asyncio
async def test_closed_queue_rejects_submissions(orchestrator):
    queue = orchestrator.registry.get(SCREENING_QUEUE)
    await queue.close()

    with pytest.raises(BackingStoreUnavailableError):
        await queue.add("pep-screening", {"userId": "u1"})
