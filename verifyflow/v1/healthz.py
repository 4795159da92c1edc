from fastapi import APIRouter

from verifyflow.config.settings import Settings, SettingsDep
from verifyflow.v1.core.exceptions import create_success_response
from verifyflow.v1.infra.queues.orchestrator import Orchestrator
from verifyflow.v1.infra.queues.routes import OrchestratorDep

router = APIRouter()


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, orchestrator: Orchestrator = OrchestratorDep
):
    """Health check with the readiness of every queue."""

    report = await orchestrator.health_check()

    health_data = {
        "ok": report.status != "unhealthy",
        "status": report.status,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": report.timestamp.isoformat(),
        "queues": {
            name: queue.model_dump(mode="json") for name, queue in report.queues.items()
        },
    }

    return create_success_response(data=health_data)
