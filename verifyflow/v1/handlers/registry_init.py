"""
Registers the KYC/AML domain handlers with a worker engine.
"""

from verifyflow.config.logging import get_logger
from verifyflow.config.settings import Settings
from verifyflow.v1.handlers.aml import PepScreeningHandler, SanctionsScreeningHandler
from verifyflow.v1.handlers.documents import DocumentVerificationHandler, OcrProcessingHandler
from verifyflow.v1.handlers.kyc import (
    AadhaarOtpVerifyHandler,
    PanVerifyHandler,
    PassportVerifyHandler,
)
from verifyflow.v1.handlers.notifications import AmlAlertHandler, KycStatusUpdateHandler
from verifyflow.v1.handlers.periodic import PeriodicScreeningHandler
from verifyflow.v1.handlers.providers import SimulatedProvider
from verifyflow.v1.handlers.risk import RiskAssessmentHandler
from verifyflow.v1.infra.queues.registry import (
    DOCUMENT_QUEUE,
    NOTIFICATION_QUEUE,
    PERIODIC_QUEUE,
    SCREENING_QUEUE,
    VERIFICATION_QUEUE,
)
from verifyflow.v1.infra.queues.worker import WorkerEngine

logger = get_logger(__name__)


def register_domain_handlers(
    engine: WorkerEngine, settings: Settings, provider: SimulatedProvider | None = None
) -> None:
    """Register every domain handler with its queue and concurrency bound."""
    provider = provider or SimulatedProvider(settings)

    logger.info("Registering job handlers")

    # Identity verification
    engine.register_handler(
        VERIFICATION_QUEUE, "aadhaar-otp-verify", AadhaarOtpVerifyHandler(settings, provider), 5
    )
    engine.register_handler(
        VERIFICATION_QUEUE, "pan-verify", PanVerifyHandler(settings, provider), 3
    )
    engine.register_handler(
        VERIFICATION_QUEUE, "passport-verify", PassportVerifyHandler(settings, provider), 2
    )

    # AML screening
    engine.register_handler(
        SCREENING_QUEUE, "sanctions-screening", SanctionsScreeningHandler(settings, provider), 3
    )
    engine.register_handler(
        SCREENING_QUEUE, "pep-screening", PepScreeningHandler(settings, provider), 3
    )
    engine.register_handler(
        SCREENING_QUEUE, "risk-assessment", RiskAssessmentHandler(settings, provider), 5
    )

    # Documents
    engine.register_handler(
        DOCUMENT_QUEUE, "ocr-processing", OcrProcessingHandler(settings, provider), 3
    )
    engine.register_handler(
        DOCUMENT_QUEUE,
        "document-verification",
        DocumentVerificationHandler(settings, provider),
        2,
    )

    # Notifications
    engine.register_handler(
        NOTIFICATION_QUEUE, "kyc-status-update", KycStatusUpdateHandler(settings, provider), 10
    )
    engine.register_handler(
        NOTIFICATION_QUEUE, "aml-alert", AmlAlertHandler(settings, provider), 5
    )

    # Periodic re-screening
    engine.register_handler(
        PERIODIC_QUEUE, "periodic-screening", PeriodicScreeningHandler(), 2
    )

    logger.info("Job handlers registered", registered_handlers=engine.handlers.list())
