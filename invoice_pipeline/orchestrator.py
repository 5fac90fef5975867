"""
Per-document extraction pipeline.

Stages:
1. ingest: DocumentGuard fetches and normalizes the PDF
2. ocr: the OCR collaborator turns it into text (inline-base64 retry once
   when a by-reference payload is rejected)
3. gates: empty and oversized OCR text are terminal failures
4. classification -> extraction -> normalization -> confidence scoring

Per-document failures come back as ``PipelineFailure``; only caller
cancellation propagates as an exception.
"""

import asyncio
import logging
import time
from typing import Optional

from invoice_pipeline.clients.llm_client import ModelClient
from invoice_pipeline.clients.ocr_port import OcrPort
from invoice_pipeline.core.exceptions import (
    EmptyOcrTextError,
    OcrError,
    OcrTextTooLargeError,
    PipelineStageError,
)
from invoice_pipeline.core.settings import Settings
from invoice_pipeline.errors.codes import ErrorCode, PipelineErrorCode
from invoice_pipeline.ingest.document_guard import DocumentGuard
from invoice_pipeline.models.dto import (
    DeliveryMode,
    ExtractionResult,
    GuardSuccess,
    OcrText,
    PipelineFailure,
    PipelineOutcome,
    PipelineSuccess,
    TokenUsage,
)
from invoice_pipeline.processors.confidence import ConfidenceConfig, score_fields
from invoice_pipeline.processors.doc_type_classifier import classify_document
from invoice_pipeline.processors.field_extractor import extract_fields
from invoice_pipeline.processors.normalize import normalize_fields

logger = logging.getLogger(__name__)


def check_ocr_text(text: Optional[str], max_bytes: int) -> str:
    """Validate OCR text before any model call.

    Raises:
        EmptyOcrTextError: Text is empty or whitespace only
        OcrTextTooLargeError: UTF-8 size exceeds ``max_bytes``
    """
    if not text or not text.strip():
        raise EmptyOcrTextError()
    size = len(text.encode("utf-8"))
    if size > max_bytes:
        raise OcrTextTooLargeError(size, max_bytes)
    return text


def _failure_from(error: PipelineStageError) -> PipelineFailure:
    return PipelineFailure(
        stage=error.stage,
        code=error.code,
        status_code=error.status_code,
        cause_category=error.cause_category,
        message=error.message,
        retryable=error.retryable,
    )


async def run_extraction(
    text: str,
    *,
    client: ModelClient,
    settings: Settings,
    confidence_config: Optional[ConfidenceConfig] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> PipelineOutcome:
    """Turn OCR text into a scored ``ExtractionResult``."""
    started = time.perf_counter()
    pipeline_settings = settings.pipeline
    config = confidence_config or ConfidenceConfig.from_settings(pipeline_settings)

    try:
        check_ocr_text(text, pipeline_settings.MAX_OCR_TEXT_BYTES)
        classification = await classify_document(
            text, client, pipeline_settings, cancel_event=cancel_event
        )
        extraction = await extract_fields(
            text,
            classification.category,
            client,
            pipeline_settings,
            cancel_event=cancel_event,
        )
    except PipelineStageError as e:
        logger.warning(
            "Extraction pipeline stopped: %s",
            e.message,
            extra={"stage": e.stage, "error_code": e.error_code},
        )
        return _failure_from(e)

    fields = normalize_fields(extraction.fields)
    score = score_fields(fields, classification.category, config)
    if score.missing_required:
        logger.info(
            "Required fields absent: %s",
            ", ".join(score.missing_required),
            extra={"document_category": classification.category.value},
        )

    result = ExtractionResult(
        category=classification.category,
        fields=fields,
        tokens_used=TokenUsage(
            classification=classification.tokens,
            extraction=extraction.tokens,
        ),
        overall_confidence=score.overall,
        per_field_confidence=score.per_field,
    )
    logger.info(
        "Extraction completed",
        extra={
            "stage": "completed",
            "document_category": classification.category.value,
            "tokens": result.tokens_used.total,
            "duration_ms": int((time.perf_counter() - started) * 1000),
        },
    )
    return PipelineSuccess(result=result)


async def _run_ocr(document: GuardSuccess, ocr: OcrPort) -> tuple[OcrText, DeliveryMode]:
    mode = document.delivery_mode
    try:
        return await ocr.extract(mode, document.as_ocr_payload()), mode
    except OcrError as e:
        if not (e.validation and mode is DeliveryMode.BY_REFERENCE):
            raise
        logger.warning(
            "OCR rejected document URL, retrying with inline base64: %s",
            e.message,
            extra={"stage": "ocr", "status_code": e.status_code},
        )

    inline = document.model_copy(update={"delivery_mode": DeliveryMode.INLINE_BASE64})
    text = await ocr.extract(DeliveryMode.INLINE_BASE64, inline.as_ocr_payload())
    return text, DeliveryMode.INLINE_BASE64


async def process_document(
    url: str,
    *,
    guard: DocumentGuard,
    ocr: OcrPort,
    client: ModelClient,
    settings: Settings,
    confidence_config: Optional[ConfidenceConfig] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> PipelineOutcome:
    """Fetch, OCR and extract one document URL."""
    guarded = await guard.fetch_and_normalize(url, cancel_event=cancel_event)
    if not guarded.ok:
        error = guarded.error
        return PipelineFailure(
            stage="ingest",
            code=error.code,
            status_code=error.status_code,
            message=error.message,
            retryable=ErrorCode.get_spec(error.code).retryable,
        )

    try:
        ocr_text, delivery_mode = await _run_ocr(guarded, ocr)
    except OcrError as e:
        logger.error(
            "OCR failed: %s",
            e.message,
            extra={"stage": "ocr", "status_code": e.status_code},
        )
        return PipelineFailure(
            stage="ocr",
            code=PipelineErrorCode.OCR_FAILED,
            status_code=e.status_code,
            message=e.message,
            retryable=e.retryable,
        )

    logger.info(
        "OCR completed",
        extra={
            "stage": "ocr",
            "delivery_mode": delivery_mode.value,
            "duration_ms": ocr_text.duration_ms,
        },
    )

    outcome = await run_extraction(
        ocr_text.text,
        client=client,
        settings=settings,
        confidence_config=confidence_config,
        cancel_event=cancel_event,
    )
    if outcome.ok:
        return outcome.model_copy(
            update={"ocr_pages": ocr_text.pages, "delivery_mode": delivery_mode}
        )
    return outcome
