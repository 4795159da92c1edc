"""
User notification and compliance alert handlers for the notification queue.
"""

from verifyflow.config.logging import get_logger
from verifyflow.v1.handlers.base import ProviderHandler, require_fields, timestamp
from verifyflow.v1.infra.queues.schemas import JobContext

logger = get_logger(__name__)


class KycStatusUpdateHandler(ProviderHandler):
    """Sends a KYC status update to the user (email, SMS or push)."""

    async def handle(self, job: JobContext) -> dict:
        user_id, kind = require_fields(job, "userId", "type")
        message = job.payload.get("message")

        logger.info("Sending KYC notification", user_id=user_id, type=kind)
        await self.provider.send_notification(user_id, kind, message)
        logger.info("KYC notification sent", user_id=user_id, type=kind)

        return {
            "success": True,
            "userId": user_id,
            "type": kind,
            "message": message,
            "sentAt": timestamp(),
        }


class AmlAlertHandler(ProviderHandler):
    """Raises an AML alert with the compliance team."""

    async def handle(self, job: JobContext) -> dict:
        user_id, alert_type = require_fields(job, "userId", "alertType")
        severity = job.payload.get("severity")
        details = job.payload.get("details")

        logger.warning("Sending AML alert", user_id=user_id, alert_type=alert_type, severity=severity)
        await self.provider.send_alert(user_id, alert_type, severity, details)
        logger.info("AML alert sent", user_id=user_id, alert_type=alert_type)

        return {
            "success": True,
            "userId": user_id,
            "alertType": alert_type,
            "severity": severity,
            "details": details,
            "sentAt": timestamp(),
        }
