"""
Sanctions and PEP screening handlers for the screening queue.

A screening with any match chains an ``aml-alert`` notification.
"""

from typing import Any

from verifyflow.config.logging import get_logger
from verifyflow.v1.handlers.base import ProviderHandler, require_fields, timestamp
from verifyflow.v1.handlers.providers import DEFAULT_SANCTIONS_LISTS, mask_name
from verifyflow.v1.infra.queues.registry import NOTIFICATION_QUEUE
from verifyflow.v1.infra.queues.schemas import FollowUp, HandlerResult, JobContext

logger = get_logger(__name__)

SANCTIONS_CLEAR_SCORE = 0.1
PEP_CLEAR_SCORE = 0.2
MATCH_SCORE = 0.9


def match_alert(user_id: str, alert_type: str, matches: list[dict[str, Any]]) -> FollowUp:
    return FollowUp(
        queue=NOTIFICATION_QUEUE,
        job_type="aml-alert",
        payload={
            "userId": user_id,
            "alertType": alert_type,
            "severity": "HIGH",
            "details": {"matches": matches},
        },
    )


class SanctionsScreeningHandler(ProviderHandler):
    """
    Screens a subject against sanctions lists.

    Payload expected:
    {
        "userId": "user-id",
        "fullName": "Full Name",
        "country": "IN",                  # optional
        "lists": ["UN", "OFAC", ...]      # optional, defaults to all lists
    }
    """

    async def handle(self, job: JobContext) -> HandlerResult:
        user_id, full_name = require_fields(job, "userId", "fullName")
        lists = job.payload.get("lists") or list(DEFAULT_SANCTIONS_LISTS)

        logger.info(
            "AML check processing",
            user_id=user_id,
            operation="sanctions_screening",
            name=mask_name(full_name),
        )
        matches = await self.provider.screen_sanctions(
            full_name, job.payload.get("country"), lists
        )
        risk_score = MATCH_SCORE if matches else SANCTIONS_CLEAR_SCORE
        logger.info(
            "AML check completed",
            user_id=user_id,
            operation="sanctions_screening",
            matches=len(matches),
            risk_score=risk_score,
        )

        return HandlerResult(
            result={
                "success": True,
                "status": "completed",
                "matches": matches,
                "riskScore": risk_score,
                "checkedLists": lists,
                "timestamp": timestamp(),
            },
            follow_ups=[match_alert(user_id, "sanctions_match", matches)] if matches else [],
        )


class PepScreeningHandler(ProviderHandler):
    """Screens a subject against politically exposed person registers."""

    async def handle(self, job: JobContext) -> HandlerResult:
        (user_id,) = require_fields(job, "userId")
        personal_info = job.payload.get("personalInfo") or {}

        logger.info("AML check processing", user_id=user_id, operation="pep_screening")
        matches = await self.provider.screen_pep(personal_info)
        risk_score = MATCH_SCORE if matches else PEP_CLEAR_SCORE
        logger.info(
            "AML check completed",
            user_id=user_id,
            operation="pep_screening",
            matches=len(matches),
            risk_score=risk_score,
        )

        return HandlerResult(
            result={
                "success": True,
                "status": "completed",
                "matches": matches,
                "riskScore": risk_score,
                "timestamp": timestamp(),
            },
            follow_ups=[match_alert(user_id, "pep_match", matches)] if matches else [],
        )
