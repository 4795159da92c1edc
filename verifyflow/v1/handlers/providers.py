"""
Simulated verification providers.

Each call sleeps for the provider's typical latency, scaled by
``provider_latency_scale``, and returns canned data. Replace with real
clients by subclassing SimulatedProvider and overriding the calls.
"""

import asyncio
from typing import Any

from verifyflow.config.logging import get_logger
from verifyflow.config.settings import Settings

logger = get_logger(__name__)

DEFAULT_SANCTIONS_LISTS = ["UN", "OFAC", "RBI", "FIU_INDIA"]

# Typical upstream latency per call in milliseconds
LATENCY_MS = {
    "aadhaar_otp_verify": 2000,
    "pan_verify": 3000,
    "passport_verify": 4000,
    "sanctions_screening": 5000,
    "pep_screening": 4000,
    "risk_assessment": 2000,
    "ocr_processing": 8000,
    "document_verification": 5000,
    "kyc_notification": 1000,
    "aml_alert": 500,
}


class ProviderError(Exception):
    """Transient provider failure; the job is retried with backoff."""


def mask_pan(pan: str) -> str:
    return pan[:5] + "****"


def mask_name(name: str) -> str:
    return name[:2] + "****"


def mask_aadhaar(number: str) -> str:
    return "********" + number[-4:]


class SimulatedProvider:
    """Stand-in for the identity, screening, OCR and messaging providers."""

    def __init__(self, settings: Settings):
        self.latency_scale = settings.provider_latency_scale

    async def _call(self, operation: str) -> None:
        delay_s = LATENCY_MS[operation] * self.latency_scale / 1000
        if delay_s > 0:
            await asyncio.sleep(delay_s)

    # Identity

    async def verify_aadhaar_otp(
        self, aadhaar_number: str | None, otp: str, reference_id: str | None
    ) -> dict[str, Any]:
        await self._call("aadhaar_otp_verify")
        return {
            "name": "John Doe",
            "dob": "1990-01-01",
            "gender": "M",
            "address": "Sample Address, City, State - 123456",
        }

    async def verify_pan(self, pan_number: str, name: str | None) -> dict[str, Any]:
        await self._call("pan_verify")
        return {
            "name": "JOHN DOE",
            "panNumber": pan_number,
            "status": "VALID",
            "aadhaarLinked": True,
        }

    async def verify_passport(
        self, passport_number: str, date_of_birth: str | None
    ) -> dict[str, Any]:
        await self._call("passport_verify")
        return {
            "name": "JOHN DOE",
            "passportNumber": passport_number,
            "dateOfBirth": date_of_birth,
            "placeOfBirth": "MUMBAI",
            "issueDate": "2020-01-15",
            "expiryDate": "2030-01-14",
            "status": "VALID",
        }

    # Screening

    async def screen_sanctions(
        self, full_name: str, country: str | None, lists: list[str]
    ) -> list[dict[str, Any]]:
        await self._call("sanctions_screening")
        return []

    async def screen_pep(self, personal_info: dict[str, Any]) -> list[dict[str, Any]]:
        await self._call("pep_screening")
        return []

    async def assess_risk(self) -> None:
        await self._call("risk_assessment")

    # Documents

    async def extract_text(
        self, document_id: str, document_type: str | None, file_path: str | None
    ) -> dict[str, Any]:
        await self._call("ocr_processing")
        return {
            "confidence": 0.95,
            "extractedText": "Sample extracted text from document",
            "fields": {
                "name": "JOHN DOE",
                "number": "ABCDE1234F",
                "dateOfBirth": "01/01/1990",
            },
        }

    async def verify_document(
        self, document_id: str, document_type: str | None, ocr_data: dict[str, Any] | None
    ) -> dict[str, Any]:
        await self._call("document_verification")
        return {
            "authentic": True,
            "qualityScore": 0.92,
            "tamperingDetected": False,
            "confidence": 0.88,
        }

    # Messaging

    async def send_notification(self, user_id: str, kind: str, message: str | None) -> None:
        await self._call("kyc_notification")

    async def send_alert(
        self, user_id: str, alert_type: str, severity: str | None, details: Any
    ) -> None:
        await self._call("aml_alert")
