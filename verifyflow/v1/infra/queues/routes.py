"""
Queue operations API endpoints.

Provides admin endpoints for queue statistics, pause/resume and cleanup.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from verifyflow.config.logging import get_logger
from verifyflow.v1.core.exceptions import create_success_response
from verifyflow.v1.infra.queues.orchestrator import Orchestrator
from verifyflow.v1.infra.queues.schemas import QueueStats

logger = get_logger(__name__)
router = APIRouter(prefix="/queues", tags=["queues"])


def get_orchestrator(request: Request) -> Orchestrator:
    """Dependency returning the orchestrator built by the app lifespan."""
    return request.app.state.orchestrator


OrchestratorDep = Depends(get_orchestrator)


def _dump_stats(stats: QueueStats | dict[str, str]) -> dict[str, Any]:
    if isinstance(stats, QueueStats):
        return stats.model_dump(mode="json")
    return stats


@router.get("", response_model=dict)
async def list_queue_stats(orchestrator: Orchestrator = OrchestratorDep) -> dict[str, Any]:
    """Statistics for every known queue."""
    stats = await orchestrator.get_all_queue_stats()
    return create_success_response(
        data={name: _dump_stats(queue_stats) for name, queue_stats in stats.items()}
    )


@router.post("/cleanup", response_model=dict)
async def cleanup_queues(
    grace_s: int | None = Query(
        default=None, ge=0, description="Purge terminal jobs older than this many seconds"
    ),
    orchestrator: Orchestrator = OrchestratorDep,
) -> dict[str, Any]:
    """Purge old completed and failed jobs from every queue."""
    results = await orchestrator.cleanup(grace_s)
    return create_success_response(data=results, message="Cleanup completed")


@router.get("/{queue_name}", response_model=dict)
async def get_queue_stats(
    queue_name: str, orchestrator: Orchestrator = OrchestratorDep
) -> dict[str, Any]:
    """Statistics for one queue."""
    stats = await orchestrator.get_queue_stats(queue_name)
    return create_success_response(data=stats.model_dump(mode="json"))


@router.post("/{queue_name}/pause", response_model=dict)
async def pause_queue(
    queue_name: str, orchestrator: Orchestrator = OrchestratorDep
) -> dict[str, Any]:
    """Stop workers from claiming jobs on a queue."""
    await orchestrator.pause(queue_name)
    logger.info("Queue paused via API", queue=queue_name)
    return create_success_response(
        data={"queue": queue_name, "paused": True}, message=f"Queue {queue_name} paused"
    )


@router.post("/{queue_name}/resume", response_model=dict)
async def resume_queue(
    queue_name: str, orchestrator: Orchestrator = OrchestratorDep
) -> dict[str, Any]:
    """Let workers claim jobs on a paused queue again."""
    await orchestrator.resume(queue_name)
    logger.info("Queue resumed via API", queue=queue_name)
    return create_success_response(
        data={"queue": queue_name, "paused": False}, message=f"Queue {queue_name} resumed"
    )
