"""
Customer risk scoring and the risk-assessment handler.
"""

from typing import Any

from verifyflow.config.logging import get_logger
from verifyflow.v1.core.exceptions import InvalidPayloadError
from verifyflow.v1.handlers.base import ProviderHandler, require_fields, timestamp
from verifyflow.v1.infra.queues.registry import NOTIFICATION_QUEUE
from verifyflow.v1.infra.queues.schemas import FollowUp, HandlerResult, JobContext

logger = get_logger(__name__)

RISK_WEIGHTS = {
    "transactionVolume": 0.30,
    "transactionFrequency": 0.20,
    "geographicRisk": 0.25,
    "industryRisk": 0.15,
    "customerType": 0.10,
}

# Non-numeric factor values are scored as this
NON_NUMERIC_FACTOR_VALUE = 0.1

# Lower bounds, inclusive, checked from the top
RISK_LEVELS = (("CRITICAL", 0.8), ("HIGH", 0.6), ("MEDIUM", 0.3), ("LOW", 0.0))

RISK_RECOMMENDATIONS = {
    "LOW": ["Continue standard monitoring", "Periodic review recommended"],
    "MEDIUM": [
        "Enhanced monitoring required",
        "Quarterly review",
        "Additional documentation may be needed",
    ],
    "HIGH": ["Manual review required", "Enhanced due diligence", "Senior approval needed"],
    "CRITICAL": [
        "Immediate review required",
        "Escalate to compliance team",
        "Consider account restrictions",
    ],
}

ALERT_LEVELS = {"HIGH", "CRITICAL"}


def calculate_risk_score(factors: dict[str, Any]) -> float:
    """Weighted sum of the known risk factors, clamped to [0, 1]."""
    score = 0.0
    for factor, value in factors.items():
        weight = RISK_WEIGHTS.get(factor)
        if weight is None:
            continue
        numeric = isinstance(value, int | float) and not isinstance(value, bool)
        score += (value if numeric else NON_NUMERIC_FACTOR_VALUE) * weight
    # Rounded so sums such as 0.25 + 0.05 land on their boundary
    return min(max(round(score, 6), 0.0), 1.0)


def get_risk_level(score: float) -> str:
    for level, lower_bound in RISK_LEVELS:
        if score >= lower_bound:
            return level
    return "LOW"


def get_risk_recommendations(level: str) -> list[str]:
    return list(RISK_RECOMMENDATIONS.get(level, RISK_RECOMMENDATIONS["LOW"]))


class RiskAssessmentHandler(ProviderHandler):
    """
    Scores a customer from weighted risk factors.

    Payload expected:
    {
        "userId": "user-id",
        "riskFactors": {"transactionVolume": 0.7, "geographicRisk": "high", ...}
    }
    """

    async def handle(self, job: JobContext) -> HandlerResult:
        (user_id,) = require_fields(job, "userId")
        factors = job.payload.get("riskFactors") or {}
        if not isinstance(factors, dict):
            raise InvalidPayloadError("risk-assessment riskFactors must be an object")

        logger.info("AML check processing", user_id=user_id, operation="risk_assessment")
        await self.provider.assess_risk()

        risk_score = calculate_risk_score(factors)
        risk_level = get_risk_level(risk_score)
        recommendations = get_risk_recommendations(risk_level)
        logger.info(
            "AML check completed",
            user_id=user_id,
            operation="risk_assessment",
            risk_score=risk_score,
            risk_level=risk_level,
        )

        follow_ups = []
        if risk_level in ALERT_LEVELS:
            follow_ups.append(
                FollowUp(
                    queue=NOTIFICATION_QUEUE,
                    job_type="aml-alert",
                    payload={
                        "userId": user_id,
                        "alertType": "high_risk_customer",
                        "severity": risk_level,
                        "details": {
                            "riskScore": risk_score,
                            "recommendations": recommendations,
                        },
                    },
                )
            )

        return HandlerResult(
            result={
                "success": True,
                "userId": user_id,
                "riskScore": risk_score,
                "riskLevel": risk_level,
                "factors": factors,
                "recommendations": recommendations,
                "timestamp": timestamp(),
            },
            follow_ups=follow_ups,
        )
