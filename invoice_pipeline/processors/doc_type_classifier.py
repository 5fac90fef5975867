"""
LLM-based invoice type classifier (stage 1).

Sends the OCR text with the classification prompt and the minimal
``{invoice_type}`` schema, and returns the chosen category. There is no
default category: any model failure is fatal for the document.
"""

import asyncio
import logging
from typing import Optional

from invoice_pipeline.clients.llm_client import ModelClient
from invoice_pipeline.core.exceptions import ClassificationFailedError
from invoice_pipeline.core.settings import PipelineSettings
from invoice_pipeline.models.dto import ClassificationResult
from invoice_pipeline.prompts.classification import build_classification_messages
from invoice_pipeline.schemas.invoice import InvoiceTypeSchema

logger = logging.getLogger(__name__)


async def classify_document(
    text: str,
    client: ModelClient,
    settings: PipelineSettings,
    *,
    cancel_event: Optional[asyncio.Event] = None,
) -> ClassificationResult:
    """
    Classify OCR text as general, insurance, utility or tax.

    Raises:
        ClassificationFailedError: The model call failed after retries.
    """
    outcome = await client.call(
        build_classification_messages(text),
        InvoiceTypeSchema,
        timeout_seconds=settings.CLASSIFICATION_TIMEOUT_SECONDS,
        max_retries=settings.LLM_MAX_RETRIES,
        cancel_event=cancel_event,
    )

    if not outcome.ok:
        logger.error(
            "Invoice type classification failed: %s",
            outcome.message,
            extra={
                "stage": "classification",
                "category": outcome.category.value,
                "status_code": outcome.status_code,
                "attempt": outcome.attempts,
            },
        )
        raise ClassificationFailedError(
            f"Invoice type classification failed: {outcome.message}",
            status_code=outcome.status_code,
            cause_category=outcome.category.value,
        )

    category = outcome.data.invoice_type
    logger.info(
        "Invoice classified",
        extra={
            "stage": "classification",
            "document_category": category.value,
            "tokens": outcome.usage.total_tokens,
            "duration_ms": outcome.duration_ms,
        },
    )
    return ClassificationResult(
        category=category,
        tokens=outcome.usage.total_tokens,
        attempts=outcome.attempts,
        duration_ms=outcome.duration_ms,
    )
