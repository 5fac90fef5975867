# =============================================================================
# Document Ingestion
# =============================================================================

MAX_DOCUMENT_BYTES = 15 * 1024 * 1024  # 15 MiB
MAX_URL_LENGTH = 2048
ALLOWED_URL_SCHEME = "https"
EXPECTED_MEDIA_TYPE = "application/pdf"
EXPECTED_EXTENSION = ".pdf"

FETCH_TIMEOUT_SECONDS = 45.0  # Total budget for one document fetch
UPSTREAM_RETRY_DELAY_SECONDS = 0.25  # Fixed delay before the single 5xx retry
STREAM_CHUNK_SIZE = 64 * 1024

# Magic bytes are only searched within this window when stripping envelopes
ENVELOPE_SEARCH_WINDOW = 1024

FETCH_USER_AGENT = "invoice-pipeline/1.0"

# =============================================================================
# OCR Text
# =============================================================================

MAX_OCR_TEXT_BYTES = 1 * 1024 * 1024  # 1 MiB

# =============================================================================
# LLM Calls
# =============================================================================

CLASSIFICATION_TIMEOUT_SECONDS = 30.0
EXTRACTION_TIMEOUT_SECONDS = 60.0
DEFAULT_LLM_TIMEOUT_SECONDS = 30.0
DEFAULT_TEMPERATURE = 0.0

LLM_PROVIDER = "azure_openai"
LLM_API_VERSION = "2024-08-01-preview"

# =============================================================================
# Retry Configuration
# =============================================================================

LLM_MAX_RETRIES = 2
BACKOFF_SCHEDULE_SECONDS = (0.5, 1.0, 2.0, 4.0, 4.0)
BACKOFF_JITTER_SECONDS = 0.2

# =============================================================================
# Logging
# =============================================================================

LOG_PREVIEW_CHARS = 120  # Max chars of model content echoed into logs
ERROR_BODY_MAX_CHARS = 200  # Maximum chars from error response bodies

# =============================================================================
# Reasoned field limits
# =============================================================================

REASONING_MAX_CHARS = 120
EVIDENCE_SNIPPET_MAX_CHARS = 80
