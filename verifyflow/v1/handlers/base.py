"""
Shared plumbing for the domain job handlers.
"""

from datetime import UTC, datetime
from typing import Any

from verifyflow.config.settings import Settings
from verifyflow.v1.core.exceptions import InvalidPayloadError
from verifyflow.v1.handlers.providers import SimulatedProvider
from verifyflow.v1.infra.queues.schemas import JobContext


def require_fields(job: JobContext, *fields: str) -> list[Any]:
    """Return the payload values for ``fields``, failing the job if any is missing."""
    missing = [name for name in fields if job.payload.get(name) in (None, "")]
    if missing:
        raise InvalidPayloadError(
            f"{job.job_type} payload missing required fields: {', '.join(missing)}"
        )
    return [job.payload[name] for name in fields]


def timestamp() -> str:
    return datetime.now(UTC).isoformat()


class ProviderHandler:
    """Base for handlers that call out to a verification provider."""

    def __init__(self, settings: Settings, provider: SimulatedProvider):
        self.settings = settings
        self.provider = provider
