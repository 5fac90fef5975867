"""Exception hierarchy for the invoice pipeline.

Components return typed results across their public boundary; these
exceptions are raised only inside the pipeline (stage failures that the
orchestrator converts into a ``PipelineFailure``). All inherit from
``BaseError`` and provide structured error information compatible with
RFC 7807 Problem Details.
"""

from enum import Enum
from typing import Any, Optional

from invoice_pipeline.errors.codes import ErrorCode, ModelErrorCategory, PipelineErrorCode

_MODEL_CATEGORIES = frozenset(category.value for category in ModelErrorCategory)


class ErrorCategory(str, Enum):
    """Error categories for classification and monitoring."""

    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    EXTERNAL_SERVICE = "external_service"


class BaseError(Exception):
    """Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message (no document content)
        error_code: Application-specific error code
        category: Error category for classification
        http_status: HTTP status code the workflow layer may surface
        details: Additional context (dict)
        retryable: Whether the document may be resubmitted
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        category: ErrorCategory,
        http_status: int,
        details: Optional[dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.category = category
        self.http_status = http_status
        self.details = details or {}
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to RFC 7807 Problem Details format."""
        return {
            "type": f"/errors/{self.error_code}",
            "title": self.message,
            "status": self.http_status,
            "code": self.error_code,
            "detail": self.details.get("detail"),
            "category": self.category.value,
            "retryable": self.retryable,
        }


class PipelineStageError(BaseError):
    """A pipeline stage failed for a single document.

    Fatal to the document invocation, never to the process.

    Args:
        code: Pipeline error code
        stage: Stage name ("ocr", "classification", "extraction")
        status_code: Upstream status code, when one exists
        cause_category: Underlying model/OCR category (e.g. "QUOTA")
    """

    def __init__(
        self,
        code: PipelineErrorCode,
        stage: str,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        cause_category: Optional[str] = None,
    ):
        spec = ErrorCode.get_spec(code)
        details: dict[str, Any] = {"stage": stage}
        if status_code is not None:
            details["status_code"] = status_code
        if cause_category is not None:
            details["cause_category"] = cause_category
        super().__init__(
            message=message or spec.message,
            error_code=spec.code,
            category=(
                ErrorCategory.CLIENT_ERROR
                if spec.category == "client_error"
                else ErrorCategory.SERVER_ERROR
            ),
            http_status=spec.http_status,
            details=details,
            retryable=spec.retryable,
        )
        self.code = code
        self.stage = stage
        self.status_code = status_code
        self.cause_category = cause_category
        if cause_category in _MODEL_CATEGORIES:
            self.retryable = ModelErrorCategory(cause_category).retryable


class EmptyOcrTextError(PipelineStageError):
    """OCR returned no usable text."""

    def __init__(self) -> None:
        super().__init__(PipelineErrorCode.EMPTY_OCR_TEXT, "ocr")


class OcrTextTooLargeError(PipelineStageError):
    """OCR text exceeds the configured byte limit."""

    def __init__(self, size_bytes: int, max_bytes: int) -> None:
        super().__init__(
            PipelineErrorCode.OCR_TEXT_TOO_LARGE,
            "ocr",
            f"OCR text too large: {size_bytes} bytes (max: {max_bytes})",
        )
        self.details.update({"bytes": size_bytes, "max_bytes": max_bytes})


class ClassificationFailedError(PipelineStageError):
    """Stage 1 (invoice type classification) failed; no default category exists."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        cause_category: Optional[str] = None,
    ) -> None:
        super().__init__(
            PipelineErrorCode.CLASSIFICATION_FAILED,
            "classification",
            message,
            status_code=status_code,
            cause_category=cause_category,
        )


class ExtractionFailedError(PipelineStageError):
    """Stage 2 (field extraction) failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        cause_category: Optional[str] = None,
    ) -> None:
        super().__init__(
            PipelineErrorCode.EXTRACTION_FAILED,
            "extraction",
            message,
            status_code=status_code,
            cause_category=cause_category,
        )


class OcrError(BaseError):
    """The OCR collaborator failed or rejected the document.

    Args:
        message: Operator-facing reason (no document content)
        status_code: Upstream status code, when one exists
        validation: The OCR service rejected the input itself (bad URL,
            unsupported payload) rather than failing to process it
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        validation: bool = False,
    ) -> None:
        spec = ErrorCode.get_spec(PipelineErrorCode.OCR_FAILED)
        super().__init__(
            message=message,
            error_code=spec.code,
            category=ErrorCategory.EXTERNAL_SERVICE,
            http_status=spec.http_status,
            details={"status_code": status_code, "validation": validation},
            retryable=not validation,
        )
        self.status_code = status_code
        self.validation = validation
