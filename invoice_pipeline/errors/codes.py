"""
Centralized error code registry with specifications.

Provides single source of truth for error codes, including operator-facing
messages, error categories (client/server), suggested HTTP status and
retryability flags. The three code families never overlap: document fetch,
model call, and pipeline gate failures.
"""

from dataclasses import dataclass
from enum import Enum


class IngestErrorCode(str, Enum):
    """Document fetch / normalization failures."""

    INVALID_URL = "INVALID_URL"
    INVALID_SCHEME = "INVALID_SCHEME"
    HOST_NOT_ALLOWED = "HOST_NOT_ALLOWED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


class ModelErrorCategory(str, Enum):
    """Model call failures."""

    VALIDATION = "VALIDATION"
    AUTH = "AUTH"
    QUOTA = "QUOTA"
    TIMEOUT = "TIMEOUT"
    SERVER = "SERVER"
    SCHEMA_VALIDATION = "SCHEMA_VALIDATION"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_MODEL_CATEGORIES


_RETRYABLE_MODEL_CATEGORIES = frozenset(
    {ModelErrorCategory.QUOTA, ModelErrorCategory.TIMEOUT, ModelErrorCategory.SERVER}
)


class PipelineErrorCode(str, Enum):
    """Per-document pipeline gate failures."""

    EMPTY_OCR_TEXT = "EMPTY_OCR_TEXT"
    OCR_TEXT_TOO_LARGE = "OCR_TEXT_TOO_LARGE"
    OCR_FAILED = "OCR_FAILED"
    CLASSIFICATION_FAILED = "CLASSIFICATION_FAILED"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"


@dataclass(frozen=True)
class ErrorSpec:
    """Specification for a single error type."""

    code: str
    http_status: int
    message: str
    category: str  # "client_error" or "server_error"
    retryable: bool  # True if the workflow layer may resubmit


class ErrorCode(Enum):
    """Centralized error code registry.

    Single source of truth for all error specifications.
    Usage:
        error_spec = ErrorCode.get_spec("PAYLOAD_TOO_LARGE")
        print(error_spec.message, error_spec.category, error_spec.retryable)
    """

    # ========================================
    # DOCUMENT FETCH
    # ========================================
    INVALID_URL = ErrorSpec(
        "INVALID_URL", 400, "Document URL is invalid", "client_error", False
    )
    INVALID_SCHEME = ErrorSpec(
        "INVALID_SCHEME", 400, "Document URL must use HTTPS", "client_error", False
    )
    HOST_NOT_ALLOWED = ErrorSpec(
        "HOST_NOT_ALLOWED", 400, "Document host is not allowed", "client_error", False
    )
    PAYLOAD_TOO_LARGE = ErrorSpec(
        "PAYLOAD_TOO_LARGE", 413, "Document exceeds size limit", "client_error", False
    )
    UPSTREAM_ERROR = ErrorSpec(
        "UPSTREAM_ERROR", 502, "Document source returned an error", "server_error", True
    )
    NETWORK_ERROR = ErrorSpec(
        "NETWORK_ERROR", 504, "Document source unreachable", "server_error", True
    )

    # ========================================
    # MODEL CALLS
    # ========================================
    VALIDATION = ErrorSpec(
        "VALIDATION", 400, "Model request rejected", "client_error", False
    )
    AUTH = ErrorSpec("AUTH", 401, "Model authentication failed", "server_error", False)
    QUOTA = ErrorSpec("QUOTA", 429, "Model quota exceeded", "server_error", True)
    TIMEOUT = ErrorSpec("TIMEOUT", 504, "Model call timed out", "server_error", True)
    SERVER = ErrorSpec("SERVER", 502, "Model service error", "server_error", True)
    SCHEMA_VALIDATION = ErrorSpec(
        "SCHEMA_VALIDATION",
        502,
        "Model output did not match the schema",
        "server_error",
        False,
    )

    # ========================================
    # PIPELINE GATES
    # ========================================
    EMPTY_OCR_TEXT = ErrorSpec(
        "EMPTY_OCR_TEXT", 422, "OCR text is empty", "client_error", False
    )
    OCR_TEXT_TOO_LARGE = ErrorSpec(
        "OCR_TEXT_TOO_LARGE", 413, "OCR text exceeds size limit", "client_error", False
    )
    OCR_FAILED = ErrorSpec("OCR_FAILED", 502, "OCR failed", "server_error", True)
    CLASSIFICATION_FAILED = ErrorSpec(
        "CLASSIFICATION_FAILED",
        502,
        "Invoice type classification failed",
        "server_error",
        True,
    )
    EXTRACTION_FAILED = ErrorSpec(
        "EXTRACTION_FAILED", 502, "Field extraction failed", "server_error", True
    )

    @classmethod
    def get_spec(cls, code: str | Enum) -> ErrorSpec:
        """Get error specification by code string or code enum member.

        Returns:
            ErrorSpec with category, message, and retryability.
            Returns default spec for unknown codes.
        """
        key = code.value if isinstance(code, Enum) else code
        for error in cls:
            if error.value.code == key:
                return error.value
        return ErrorSpec(key, 500, f"Error: {key}", "server_error", False)

