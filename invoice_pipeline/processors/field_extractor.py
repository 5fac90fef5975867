"""
LLM-based invoice field extractor (stage 2).

The request schema is built from the field catalogue for the classified
category, so the model is never asked for fields of another invoice type.
"""

import asyncio
import logging
from typing import Optional

from invoice_pipeline.clients.llm_client import ModelClient
from invoice_pipeline.core.exceptions import ExtractionFailedError
from invoice_pipeline.core.settings import PipelineSettings
from invoice_pipeline.models.dto import FieldExtraction
from invoice_pipeline.models.fields import DocumentCategory
from invoice_pipeline.prompts.extraction import build_extraction_messages
from invoice_pipeline.schemas.invoice import build_invoice_schema

logger = logging.getLogger(__name__)


async def extract_fields(
    text: str,
    category: DocumentCategory,
    client: ModelClient,
    settings: PipelineSettings,
    *,
    cancel_event: Optional[asyncio.Event] = None,
) -> FieldExtraction:
    """
    Extract the reasoned fields of ``category`` from OCR text.

    Fields the model leaves out are not present in the result (absent),
    which is distinct from a returned field with a null value.

    Raises:
        ExtractionFailedError: The model call failed after retries.
    """
    schema = build_invoice_schema(category)
    outcome = await client.call(
        build_extraction_messages(text, category),
        schema,
        timeout_seconds=settings.EXTRACTION_TIMEOUT_SECONDS,
        max_retries=settings.LLM_MAX_RETRIES,
        cancel_event=cancel_event,
    )

    if not outcome.ok:
        logger.error(
            "Field extraction failed: %s",
            outcome.message,
            extra={
                "stage": "extraction",
                "document_category": category.value,
                "category": outcome.category.value,
                "status_code": outcome.status_code,
                "attempt": outcome.attempts,
            },
        )
        raise ExtractionFailedError(
            f"Field extraction failed: {outcome.message}",
            status_code=outcome.status_code,
            cause_category=outcome.category.value,
        )

    fields = {
        name: getattr(outcome.data, name)
        for name in type(outcome.data).model_fields
        if getattr(outcome.data, name) is not None
    }
    logger.info(
        "Fields extracted",
        extra={
            "stage": "extraction",
            "document_category": category.value,
            "tokens": outcome.usage.total_tokens,
            "duration_ms": outcome.duration_ms,
        },
    )
    return FieldExtraction(
        category=category,
        fields=fields,
        tokens=outcome.usage.total_tokens,
        attempts=outcome.attempts,
        duration_ms=outcome.duration_ms,
        repaired=outcome.repaired,
    )
