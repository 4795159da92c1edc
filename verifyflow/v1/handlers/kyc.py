"""
Identity verification handlers for the verification-processing queue.

Every successful verification chains a ``kyc-status-update`` notification.
"""

from verifyflow.config.logging import get_logger
from verifyflow.v1.handlers.base import ProviderHandler, require_fields, timestamp
from verifyflow.v1.handlers.providers import mask_aadhaar, mask_pan
from verifyflow.v1.infra.queues.registry import NOTIFICATION_QUEUE
from verifyflow.v1.infra.queues.schemas import FollowUp, HandlerResult, JobContext

logger = get_logger(__name__)


def status_update(user_id: str, kind: str, message: str) -> FollowUp:
    return FollowUp(
        queue=NOTIFICATION_QUEUE,
        job_type="kyc-status-update",
        payload={"userId": user_id, "type": kind, "message": message},
    )


class AadhaarOtpVerifyHandler(ProviderHandler):
    """
    Confirms an Aadhaar OTP and returns the resident's KYC data.

    Payload expected:
    {
        "userId": "user-id",
        "otp": "123456",
        "aadhaarNumber": "123412341234",  # optional
        "referenceId": "otp-reference"    # optional
    }
    """

    async def handle(self, job: JobContext) -> HandlerResult:
        user_id, otp = require_fields(job, "userId", "otp")
        aadhaar_number = job.payload.get("aadhaarNumber")
        reference_id = job.payload.get("referenceId")

        logger.info(
            "KYC verification processing",
            user_id=user_id,
            operation="aadhaar_otp_verify",
            reference_id=reference_id,
            aadhaar=mask_aadhaar(aadhaar_number) if aadhaar_number else None,
        )
        kyc_data = await self.provider.verify_aadhaar_otp(aadhaar_number, otp, reference_id)
        logger.info(
            "KYC verification completed", user_id=user_id, operation="aadhaar_otp_verify"
        )

        return HandlerResult(
            result={
                "success": True,
                "verified": True,
                "kycData": kyc_data,
                "referenceId": reference_id,
                "timestamp": timestamp(),
            },
            follow_ups=[
                status_update(
                    user_id, "aadhaar_verified", "Aadhaar verification completed successfully"
                )
            ],
        )


class PanVerifyHandler(ProviderHandler):
    """Validates a PAN against the tax registry."""

    async def handle(self, job: JobContext) -> HandlerResult:
        user_id, pan_number = require_fields(job, "userId", "panNumber")

        logger.info(
            "KYC verification processing",
            user_id=user_id,
            operation="pan_verify",
            pan=mask_pan(pan_number),
        )
        pan_data = await self.provider.verify_pan(pan_number, job.payload.get("name"))
        logger.info("KYC verification completed", user_id=user_id, operation="pan_verify")

        return HandlerResult(
            result={
                "success": True,
                "verified": True,
                "panData": pan_data,
                "timestamp": timestamp(),
            },
            follow_ups=[
                status_update(user_id, "pan_verified", "PAN verification completed successfully")
            ],
        )


class PassportVerifyHandler(ProviderHandler):
    async def handle(self, job: JobContext) -> HandlerResult:
        user_id, passport_number = require_fields(job, "userId", "passportNumber")

        logger.info("KYC verification processing", user_id=user_id, operation="passport_verify")
        passport_data = await self.provider.verify_passport(
            passport_number, job.payload.get("dateOfBirth")
        )
        logger.info(
            "KYC verification completed", user_id=user_id, operation="passport_verify"
        )

        return HandlerResult(
            result={
                "success": True,
                "verified": True,
                "passportData": passport_data,
                "timestamp": timestamp(),
            },
            follow_ups=[
                status_update(
                    user_id, "passport_verified", "Passport verification completed successfully"
                )
            ],
        )
