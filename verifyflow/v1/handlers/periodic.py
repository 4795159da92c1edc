"""
Periodic re-screening: each recurring instance fans out fresh screening jobs.
"""

from typing import Any

from verifyflow.config.logging import get_logger
from verifyflow.v1.core.exceptions import InvalidPayloadError
from verifyflow.v1.handlers.base import require_fields, timestamp
from verifyflow.v1.handlers.providers import DEFAULT_SANCTIONS_LISTS
from verifyflow.v1.infra.queues.registry import SCREENING_QUEUE
from verifyflow.v1.infra.queues.schemas import FollowUp, HandlerResult, JobContext

logger = get_logger(__name__)

# Used when the schedule carried no subject profile
FALLBACK_FULL_NAME = "User Name"
FALLBACK_COUNTRY = "IN"

SCREENINGS_BY_TYPE = {
    "aml": ("sanctions-screening", "pep-screening"),
    "sanctions": ("sanctions-screening",),
    "pep": ("pep-screening",),
}


def screening_payload(job_type: str, user_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    full_name = payload.get("fullName") or FALLBACK_FULL_NAME
    country = payload.get("country") or FALLBACK_COUNTRY

    if job_type == "sanctions-screening":
        return {
            "userId": user_id,
            "fullName": full_name,
            "country": country,
            "lists": list(DEFAULT_SANCTIONS_LISTS),
        }

    first_name, _, last_name = full_name.partition(" ")
    return {
        "userId": user_id,
        "personalInfo": {"firstName": first_name, "lastName": last_name, "country": country},
    }


class PeriodicScreeningHandler:
    """
    Submits the screenings due for a subject.

    Payload expected:
    {
        "userId": "user-id",
        "screeningType": "aml" | "sanctions" | "pep",
        "scheduledAt": "2024-01-07T02:00:00+00:00",
        "fullName": "Full Name",   # optional
        "country": "IN"            # optional
    }
    """

    async def handle(self, job: JobContext) -> HandlerResult:
        user_id, screening_type = require_fields(job, "userId", "screeningType")
        job_types = SCREENINGS_BY_TYPE.get(screening_type)
        if job_types is None:
            raise InvalidPayloadError(f"Unknown screening type: {screening_type}")

        logger.info(
            "Starting periodic screening", user_id=user_id, screening_type=screening_type
        )
        follow_ups = [
            FollowUp(
                queue=SCREENING_QUEUE,
                job_type=job_type,
                payload=screening_payload(job_type, user_id, job.payload),
            )
            for job_type in job_types
        ]

        return HandlerResult(
            result={
                "success": True,
                "userId": user_id,
                "screeningType": screening_type,
                "scheduledJobs": len(follow_ups),
                "timestamp": timestamp(),
            },
            follow_ups=follow_ups,
        )
