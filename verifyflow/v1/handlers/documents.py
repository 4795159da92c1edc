"""
Document OCR and authenticity handlers for the document-processing queue.
"""

from verifyflow.config.logging import get_logger
from verifyflow.v1.handlers.base import ProviderHandler, require_fields, timestamp
from verifyflow.v1.infra.queues.schemas import JobContext

logger = get_logger(__name__)


class OcrProcessingHandler(ProviderHandler):
    """Extracts text and identity fields from an uploaded document."""

    async def handle(self, job: JobContext) -> dict:
        user_id, document_id = require_fields(job, "userId", "documentId")
        document_type = job.payload.get("documentType")

        logger.info(
            "Processing OCR", user_id=user_id, document_id=document_id, document_type=document_type
        )
        ocr_data = await self.provider.extract_text(
            document_id, document_type, job.payload.get("filePath")
        )
        logger.info("OCR processing completed", document_id=document_id)

        return {
            "success": True,
            "documentId": document_id,
            "ocrData": ocr_data,
            "timestamp": timestamp(),
        }


class DocumentVerificationHandler(ProviderHandler):
    async def handle(self, job: JobContext) -> dict:
        (document_id,) = require_fields(job, "documentId")
        document_type = job.payload.get("documentType")

        logger.info(
            "Verifying document",
            user_id=job.payload.get("userId"),
            document_id=document_id,
            document_type=document_type,
        )
        verification = await self.provider.verify_document(
            document_id, document_type, job.payload.get("ocrData")
        )
        logger.info("Document verification completed", document_id=document_id)

        return {
            "success": True,
            "documentId": document_id,
            "verification": verification,
            "timestamp": timestamp(),
        }
