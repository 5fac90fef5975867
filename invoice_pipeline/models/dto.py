"""
Lightweight DTO models used as typed contracts across the pipeline.

Result types are discriminated unions on ``ok``: callers branch on the
discriminant and never probe both arms.
"""

from __future__ import annotations

import base64
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from invoice_pipeline.errors.codes import (
    IngestErrorCode,
    ModelErrorCategory,
    PipelineErrorCode,
)
from invoice_pipeline.models.fields import (
    Confidence,
    DocumentCategory,
    ReasonCode,
    ReasonedField,
)
from invoice_pipeline.schemas.invoice import INVOICE_TYPE_FIELD

# =============================================================================
# Model calls
# =============================================================================


class ModelUsage(BaseModel):
    """Token usage reported by the model provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ModelCallSuccess(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    ok: Literal[True] = True
    data: Any
    usage: ModelUsage = Field(default_factory=ModelUsage)
    duration_ms: int
    attempts: int = 1
    repaired: bool = False


class ModelCallFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: Literal[False] = False
    category: ModelErrorCategory
    status_code: Optional[int] = None
    message: str
    duration_ms: int
    attempts: int = 1


ModelCallOutcome = Union[ModelCallSuccess, ModelCallFailure]


# =============================================================================
# Document ingestion
# =============================================================================


class DeliveryMode(str, Enum):
    """How the OCR collaborator receives the document."""

    BY_REFERENCE = "by-reference"
    INLINE_BASE64 = "inline-base64"


class IngestError(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: IngestErrorCode
    message: str
    status_code: Optional[int] = None


class GuardSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: Literal[True] = True
    source_url: str
    content: bytes
    delivery_mode: DeliveryMode
    content_verified: bool
    gzip_unwrapped: bool = False
    stripped_prefix_bytes: int = 0
    retries: int = 0

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    def as_ocr_payload(self) -> str:
        """Payload for the OCR collaborator: the URL, or a base64 data URL."""
        if self.delivery_mode is DeliveryMode.BY_REFERENCE:
            return self.source_url
        encoded = base64.b64encode(self.content).decode("ascii")
        return f"data:application/pdf;base64,{encoded}"


class GuardFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: Literal[False] = False
    error: IngestError


GuardResult = Union[GuardSuccess, GuardFailure]


# =============================================================================
# OCR collaborator
# =============================================================================


class OcrText(BaseModel):
    """What the OCR collaborator hands back."""

    text: str
    pages: int = 0
    duration_ms: int = 0
    provider: Optional[str] = None


# =============================================================================
# Extraction
# =============================================================================


class ClassificationResult(BaseModel):
    """Stage 1 output."""

    category: DocumentCategory
    tokens: int = 0
    attempts: int = 1
    duration_ms: int = 0


class FieldExtraction(BaseModel):
    """Stage 2 output: only the fields the model returned, not yet normalized."""

    category: DocumentCategory
    fields: dict[str, ReasonedField]
    tokens: int = 0
    attempts: int = 1
    duration_ms: int = 0
    repaired: bool = False


class TokenUsage(BaseModel):
    classification: int = 0
    extraction: int = 0

    @property
    def total(self) -> int:
        return self.classification + self.extraction


class ConfidenceScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall: float = Field(ge=0.0, le=1.0)
    per_field: dict[str, float]
    required_fields: tuple[str, ...] = ()
    missing_required: tuple[str, ...] = ()


class ExtractionResult(BaseModel):
    """Final per-document result handed to the persistence collaborator.

    ``category`` is kept as its own attribute; ``to_payload`` flattens it into
    the field map as the synthetic ``invoice_type`` field.
    """

    category: DocumentCategory
    fields: dict[str, ReasonedField]
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)
    overall_confidence: float = Field(ge=0.0, le=1.0)
    per_field_confidence: dict[str, float] = Field(default_factory=dict)

    def category_field(self) -> ReasonedField:
        return ReasonedField[str](
            value=self.category.value,
            confidence=Confidence.HIGH,
            reason_code=ReasonCode.EXPLICIT_LABEL,
            reasoning="Determined by the invoice type classification stage",
        )

    def to_payload(self) -> dict[str, Any]:
        fields = {
            name: field.model_dump(mode="json", exclude_none=True)
            for name, field in self.fields.items()
        }
        fields[INVOICE_TYPE_FIELD] = self.category_field().model_dump(
            mode="json", exclude_none=True
        )
        return {
            "invoice_type": self.category.value,
            "fields": fields,
            "tokens_used": self.tokens_used.model_dump(),
            "overall_confidence": self.overall_confidence,
            "per_field_confidence": dict(self.per_field_confidence),
        }


# =============================================================================
# Pipeline
# =============================================================================


class PipelineSuccess(BaseModel):
    ok: Literal[True] = True
    result: ExtractionResult
    ocr_pages: Optional[int] = None
    delivery_mode: Optional[DeliveryMode] = None


class PipelineFailure(BaseModel):
    ok: Literal[False] = False
    stage: str
    code: Union[PipelineErrorCode, IngestErrorCode]
    status_code: Optional[int] = None
    cause_category: Optional[str] = None
    message: str
    retryable: bool = False


PipelineOutcome = Union[PipelineSuccess, PipelineFailure]
