"""
Defensive fetch and normalization of untrusted PDF payloads.

Flow:
1. Validate the URL (length, scheme, host allow-list) without any network I/O
2. Stream the document with a hard byte ceiling; one retry on 5xx/network errors
3. Normalize: gzip unwrap, strip junk before ``%PDF-``, choose delivery mode

All failures are returned as ``GuardFailure`` values.
"""

import asyncio
import logging
import time
import zlib
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import SplitResult, urlsplit

import httpx

from invoice_pipeline.core.config import (
    ALLOWED_URL_SCHEME,
    ENVELOPE_SEARCH_WINDOW,
    EXPECTED_EXTENSION,
    EXPECTED_MEDIA_TYPE,
    FETCH_USER_AGENT,
    STREAM_CHUNK_SIZE,
)
from invoice_pipeline.core.logging_utils import redact_url
from invoice_pipeline.core.settings import IngestSettings, Settings, get_settings
from invoice_pipeline.errors.codes import ErrorCode, IngestErrorCode
from invoice_pipeline.models.dto import (
    DeliveryMode,
    GuardFailure,
    GuardResult,
    GuardSuccess,
    IngestError,
)
from invoice_pipeline.resilience.cancellation import run_cancellable
from invoice_pipeline.utils.file_detection import (
    find_pdf_header,
    has_pdf_header,
    is_gzip,
)

logger = logging.getLogger(__name__)

FETCH_HEADERS = {
    "Accept": "application/pdf,*/*",
    "Accept-Encoding": "identity",
    "User-Agent": FETCH_USER_AGENT,
}


def _error(
    code: IngestErrorCode, message: Optional[str] = None, status_code: Optional[int] = None
) -> IngestError:
    return IngestError(
        code=code,
        message=message or ErrorCode.get_spec(code).message,
        status_code=status_code,
    )


@dataclass(frozen=True)
class _Download:
    content: bytes
    content_type: Optional[str]


@dataclass(frozen=True)
class NormalizedDocument:
    content: bytes
    delivery_mode: DeliveryMode
    gzip_unwrapped: bool
    stripped_prefix_bytes: int


# =============================================================================
# URL validation
# =============================================================================


def host_allowed(host: str, allowed_hosts: tuple[str, ...]) -> bool:
    """Exact match or dot-suffix match against the allow-list (case-insensitive).

    An empty allow-list allows every host.
    """
    if not allowed_hosts:
        return True
    host = host.lower().rstrip(".")
    return any(host == entry or host.endswith(f".{entry}") for entry in allowed_hosts)


def validate_url(url: str, settings: IngestSettings) -> Union[SplitResult, IngestError]:
    if not url or len(url) > settings.MAX_URL_LENGTH:
        return _error(IngestErrorCode.INVALID_URL, "Document URL is empty or too long")
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
    except ValueError:
        return _error(IngestErrorCode.INVALID_URL, "Document URL cannot be parsed")
    if parts.scheme.lower() != ALLOWED_URL_SCHEME:
        return _error(IngestErrorCode.INVALID_SCHEME)
    if not host:
        return _error(IngestErrorCode.INVALID_URL, "Document URL has no host")
    if not host_allowed(host, settings.allowed_hosts):
        return _error(IngestErrorCode.HOST_NOT_ALLOWED)
    return parts


def is_pdf_content(content_type: Optional[str], path: str) -> bool:
    """``application/pdf`` (parameters ignored) or a ``.pdf`` path suffix."""
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    return media_type == EXPECTED_MEDIA_TYPE or path.lower().endswith(EXPECTED_EXTENSION)


# =============================================================================
# Normalization
# =============================================================================


def gunzip_bounded(data: bytes, max_bytes: int) -> Union[bytes, IngestError, None]:
    """Decompress gzip data without ever holding more than ``max_bytes + 1`` bytes.

    Returns:
        Decompressed bytes, PAYLOAD_TOO_LARGE error, or None for corrupt or
        truncated input.
    """
    decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
    try:
        out = decompressor.decompress(data, max_bytes + 1)
    except zlib.error:
        return None
    if len(out) > max_bytes or decompressor.unconsumed_tail:
        return _error(
            IngestErrorCode.PAYLOAD_TOO_LARGE,
            f"Decompressed document exceeds {max_bytes} bytes",
        )
    if not decompressor.eof:
        return None
    return out


def normalize_document(
    data: bytes, max_bytes: int
) -> Union[NormalizedDocument, IngestError]:
    """Apply gzip unwrap, envelope strip and delivery mode selection, in that order."""
    gzip_unwrapped = False
    if is_gzip(data):
        unwrapped = gunzip_bounded(data, max_bytes)
        if isinstance(unwrapped, IngestError):
            return unwrapped
        if unwrapped is None:
            logger.warning("Corrupt or truncated gzip payload, leaving buffer unchanged")
        else:
            data = unwrapped
            gzip_unwrapped = True

    stripped = 0
    offset = find_pdf_header(data, ENVELOPE_SEARCH_WINDOW)
    if offset > 0:
        data = data[offset:]
        stripped = offset

    delivery_mode = (
        DeliveryMode.BY_REFERENCE if has_pdf_header(data) else DeliveryMode.INLINE_BASE64
    )
    return NormalizedDocument(
        content=data,
        delivery_mode=delivery_mode,
        gzip_unwrapped=gzip_unwrapped,
        stripped_prefix_bytes=stripped,
    )


# =============================================================================
# Guard
# =============================================================================


class DocumentGuard:
    """Fetches one untrusted document URL and prepares it for OCR.

    Args:
        settings: Size, URL and timeout limits
        transport: Injected httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        settings: IngestSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=FETCH_HEADERS,
            timeout=self._settings.FETCH_TIMEOUT_SECONDS,
            follow_redirects=False,
            transport=self._transport,
        )

    async def fetch_and_normalize(
        self, url: str, *, cancel_event: Optional[asyncio.Event] = None
    ) -> GuardResult:
        """Validate, download and normalize ``url``.

        Raises:
            CancelledByCaller: ``cancel_event`` fired while the fetch was in flight.
        """
        started = time.perf_counter()
        url = (url or "").strip()
        safe_url = redact_url(url)

        parts = validate_url(url, self._settings)
        if isinstance(parts, IngestError):
            logger.warning(
                "Document URL rejected",
                extra={"error_code": parts.code.value, "decision": "reject"},
            )
            return GuardFailure(error=parts)

        try:
            downloaded = await run_cancellable(
                asyncio.wait_for(
                    self._download(url), self._settings.FETCH_TIMEOUT_SECONDS
                ),
                cancel_event,
            )
        except asyncio.TimeoutError:
            downloaded = (
                _error(
                    IngestErrorCode.NETWORK_ERROR,
                    f"Document fetch exceeded {self._settings.FETCH_TIMEOUT_SECONDS:.0f}s",
                ),
                0,
            )

        result, retries = downloaded
        if isinstance(result, IngestError):
            logger.warning(
                "Document fetch failed: %s",
                result.message,
                extra={
                    "host": parts.hostname,
                    "error_code": result.code.value,
                    "status_code": result.status_code,
                    "retry_attempt": retries,
                },
            )
            return GuardFailure(error=result)

        content_verified = is_pdf_content(result.content_type, parts.path)
        if not content_verified:
            logger.info(
                "Document content type is not PDF, continuing",
                extra={"host": parts.hostname, "decision": "unverified"},
            )

        normalized = normalize_document(result.content, self._settings.MAX_DOCUMENT_BYTES)
        if isinstance(normalized, IngestError):
            logger.warning(
                "Document normalization failed: %s",
                normalized.message,
                extra={"host": parts.hostname, "error_code": normalized.code.value},
            )
            return GuardFailure(error=normalized)

        logger.info(
            "Document fetched",
            extra={
                "host": parts.hostname,
                "bytes": len(normalized.content),
                "delivery_mode": normalized.delivery_mode.value,
                "retry_attempt": retries,
                "duration_ms": int((time.perf_counter() - started) * 1000),
                "decision": (
                    "stripped_prefix" if normalized.stripped_prefix_bytes else "passthrough"
                ),
            },
        )
        logger.debug("Fetched %s", safe_url)

        return GuardSuccess(
            source_url=url,
            content=normalized.content,
            delivery_mode=normalized.delivery_mode,
            content_verified=content_verified,
            gzip_unwrapped=normalized.gzip_unwrapped,
            stripped_prefix_bytes=normalized.stripped_prefix_bytes,
            retries=retries,
        )

    async def _download(self, url: str) -> tuple[Union[_Download, IngestError], int]:
        """GET with a single retry on 5xx or transport failure.

        Returns:
            (download or error, number of retries performed)
        """
        async with self._client() as http:
            result, retryable = await self._get_classified(http, url)
            if not retryable:
                return result, 0

            logger.info(
                "Retrying document fetch",
                extra={
                    "error_code": result.code.value,
                    "status_code": result.status_code,
                    "delay_ms": int(self._settings.UPSTREAM_RETRY_DELAY_SECONDS * 1000),
                },
            )
            await asyncio.sleep(self._settings.UPSTREAM_RETRY_DELAY_SECONDS)
            result, _ = await self._get_classified(http, url)
            return result, 1

    async def _get_classified(
        self, http: httpx.AsyncClient, url: str
    ) -> tuple[Union[_Download, IngestError], bool]:
        """One GET, flagged retryable on 5xx or transport failure."""
        try:
            result = await self._get_once(http, url)
        except httpx.HTTPError as e:
            return (
                _error(
                    IngestErrorCode.NETWORK_ERROR,
                    f"Document fetch failed: {type(e).__name__}",
                ),
                True,
            )
        retryable = (
            isinstance(result, IngestError)
            and result.code is IngestErrorCode.UPSTREAM_ERROR
            and (result.status_code or 0) >= 500
        )
        return result, retryable

    async def _get_once(
        self, http: httpx.AsyncClient, url: str
    ) -> Union[_Download, IngestError]:
        max_bytes = self._settings.MAX_DOCUMENT_BYTES
        async with http.stream("GET", url) as response:
            status = response.status_code
            if not response.is_success:
                return _error(
                    IngestErrorCode.UPSTREAM_ERROR,
                    f"Document source returned HTTP {status}",
                    status_code=status,
                )

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                return _error(
                    IngestErrorCode.PAYLOAD_TOO_LARGE,
                    f"Declared size {declared} exceeds {max_bytes} bytes",
                    status_code=status,
                )

            buffer = bytearray()
            async for chunk in response.aiter_bytes(STREAM_CHUNK_SIZE):
                buffer.extend(chunk)
                if len(buffer) > max_bytes:
                    # Leaving the context closes the stream
                    return _error(
                        IngestErrorCode.PAYLOAD_TOO_LARGE,
                        f"Document exceeds {max_bytes} bytes",
                        status_code=status,
                    )

            return _Download(
                content=bytes(buffer),
                content_type=response.headers.get("content-type"),
            )


def create_document_guard_from_settings(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DocumentGuard:
    """Create a DocumentGuard from the ingest settings."""
    settings = settings or get_settings()
    return DocumentGuard(settings.ingest, transport=transport)
