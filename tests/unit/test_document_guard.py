"""Unit tests for DocumentGuard fetch and normalization."""

import asyncio
import base64
import gzip

import httpx
import pytest

from invoice_pipeline.core.settings import Settings
from invoice_pipeline.errors.codes import IngestErrorCode
from invoice_pipeline.ingest.document_guard import (
    DocumentGuard,
    create_document_guard_from_settings,
    gunzip_bounded,
    host_allowed,
    is_pdf_content,
    normalize_document,
)
from invoice_pipeline.models.dto import DeliveryMode, IngestError
from invoice_pipeline.resilience.cancellation import CancelledByCaller
from tests.helpers import pdf_bytes

DOC_URL = "https://docs.example.com/files/invoice-001.pdf"
MAX_BYTES = 64 * 1024


class Recorder:
    """MockTransport handler replaying canned responses and counting calls."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def pdf_response(content: bytes, **headers) -> httpx.Response:
    headers.setdefault("content-type", "application/pdf")
    return httpx.Response(200, content=content, headers=headers)


def make_guard(ingest_settings, handler) -> DocumentGuard:
    return DocumentGuard(ingest_settings, transport=httpx.MockTransport(handler))


def fail_on_request(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected network call to {request.url}")


class TestUrlValidation:
    """URL checks happen before any network I/O."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url,code",
        [
            ("", IngestErrorCode.INVALID_URL),
            ("https://docs.example.com/" + "a" * 2100, IngestErrorCode.INVALID_URL),
            ("https:///no-host.pdf", IngestErrorCode.INVALID_URL),
            ("http://docs.example.com/invoice.pdf", IngestErrorCode.INVALID_SCHEME),
            ("ftp://docs.example.com/invoice.pdf", IngestErrorCode.INVALID_SCHEME),
            ("https://evil.example.net/invoice.pdf", IngestErrorCode.HOST_NOT_ALLOWED),
            ("https://docs.example.com.evil.net/a.pdf", IngestErrorCode.HOST_NOT_ALLOWED),
            ("https://evil-docs.example.com/a.pdf", IngestErrorCode.HOST_NOT_ALLOWED),
        ],
    )
    async def test_rejects_without_network(self, ingest_settings, url, code):
        """Invalid URLs fail with the matching code and never hit the network."""
        guard = make_guard(ingest_settings, fail_on_request)

        result = await guard.fetch_and_normalize(url)

        assert result.ok is False
        assert result.error.code == code

    def test_host_allowed_exact_and_suffix(self):
        """Allow-list matches exact hosts and dot-suffix subdomains, case-insensitively."""
        allowed = ("docs.example.com",)
        assert host_allowed("docs.example.com", allowed)
        assert host_allowed("EU.Docs.Example.com", allowed)
        assert not host_allowed("xdocs.example.com", allowed)
        assert not host_allowed("example.com", allowed)

    @pytest.mark.asyncio
    async def test_factory_applies_ingest_settings(self, ingest_settings):
        """The settings factory builds a guard with the configured allow-list."""
        guard = create_document_guard_from_settings(
            Settings(ingest=ingest_settings), transport=httpx.MockTransport(fail_on_request)
        )

        result = await guard.fetch_and_normalize("https://evil.example.net/a.pdf")

        assert result.ok is False
        assert result.error.code == IngestErrorCode.HOST_NOT_ALLOWED

    def test_empty_allow_list_allows_everything(self):
        """No configured allow-list means every host passes."""
        assert host_allowed("anything.example.net", ())

    @pytest.mark.asyncio
    async def test_subdomain_of_allowed_host_is_fetched(self, ingest_settings):
        """A subdomain of an allow-listed host passes validation."""
        recorder = Recorder(pdf_response(pdf_bytes(2048)))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize("https://eu.storage.example.org/doc.pdf")

        assert result.ok is True
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_surrounding_whitespace_is_stripped_before_fetch(self, ingest_settings):
        """The URL that was validated is the URL that is fetched."""
        recorder = Recorder(pdf_response(pdf_bytes(2048)))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(f"  {DOC_URL}\n")

        assert result.ok is True
        assert result.source_url == DOC_URL
        assert result.retries == 0
        assert len(recorder.requests) == 1
        assert str(recorder.requests[0].url) == DOC_URL

    @pytest.mark.asyncio
    async def test_whitespace_only_url_is_invalid(self, ingest_settings):
        """A blank URL is rejected without any request."""
        guard = make_guard(ingest_settings, fail_on_request)

        result = await guard.fetch_and_normalize("   ")

        assert result.ok is False
        assert result.error.code == IngestErrorCode.INVALID_URL


class TestFetch:
    """Status handling and retry policy."""

    @pytest.mark.asyncio
    async def test_success_by_reference(self, ingest_settings):
        """A clean PDF is returned unchanged with by-reference delivery."""
        content = pdf_bytes(4096)
        recorder = Recorder(pdf_response(content))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is True
        assert result.content == content
        assert result.delivery_mode is DeliveryMode.BY_REFERENCE
        assert result.content_verified is True
        assert result.retries == 0
        assert result.as_ocr_payload() == DOC_URL

    @pytest.mark.asyncio
    async def test_sends_fetch_headers(self, ingest_settings):
        """Requests ask for PDFs without transfer compression."""
        recorder = Recorder(pdf_response(pdf_bytes(1024)))
        guard = make_guard(ingest_settings, recorder)

        await guard.fetch_and_normalize(DOC_URL)

        request = recorder.requests[0]
        assert request.headers["accept"] == "application/pdf,*/*"
        assert request.headers["accept-encoding"] == "identity"
        assert request.headers["user-agent"]

    @pytest.mark.asyncio
    async def test_retries_once_on_5xx(self, ingest_settings):
        """A single 5xx is retried and the second attempt succeeds."""
        recorder = Recorder(httpx.Response(503), pdf_response(pdf_bytes(1024)))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is True
        assert result.retries == 1
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_second_5xx_is_upstream_error(self, ingest_settings):
        """Two consecutive 5xx responses give UPSTREAM_ERROR with the status."""
        recorder = Recorder(httpx.Response(502), httpx.Response(503))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is False
        assert result.error.code == IngestErrorCode.UPSTREAM_ERROR
        assert result.error.status_code == 503
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 403, 404, 410])
    async def test_4xx_is_not_retried(self, ingest_settings, status):
        """Client errors fail immediately."""
        recorder = Recorder(httpx.Response(status))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is False
        assert result.error.code == IngestErrorCode.UPSTREAM_ERROR
        assert result.error.status_code == status
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_redirect_is_not_followed(self, ingest_settings):
        """Redirects could leave the allow-list, so they count as upstream errors."""
        recorder = Recorder(
            httpx.Response(302, headers={"location": "https://evil.example.net/x.pdf"})
        )
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is False
        assert result.error.code == IngestErrorCode.UPSTREAM_ERROR
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_network_error_after_single_retry(self, ingest_settings):
        """Transport failures are retried once, then reported as NETWORK_ERROR."""
        recorder = Recorder(httpx.ConnectError("connection refused"))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is False
        assert result.error.code == IngestErrorCode.NETWORK_ERROR
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_content_type_mismatch_still_continues(self, ingest_settings):
        """A non-PDF content type only clears content_verified."""
        recorder = Recorder(
            pdf_response(pdf_bytes(1024), **{"content-type": "text/html"})
        )
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize("https://docs.example.com/download?id=1")

        assert result.ok is True
        assert result.content_verified is False

    def test_pdf_content_detection(self):
        """Media type parameters are ignored; a .pdf path also counts."""
        assert is_pdf_content("application/pdf; charset=binary", "/x")
        assert is_pdf_content("application/octet-stream", "/files/INVOICE.PDF")
        assert not is_pdf_content(None, "/files/invoice")


class TestSizeLimits:
    """Output never exceeds the configured maximum."""

    @pytest.mark.asyncio
    async def test_declared_length_too_large(self, ingest_settings):
        """An oversized Content-Length is rejected before reading the body."""
        recorder = Recorder(
            pdf_response(pdf_bytes(1024), **{"content-length": str(MAX_BYTES + 1)})
        )
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is False
        assert result.error.code == IngestErrorCode.PAYLOAD_TOO_LARGE

    @pytest.mark.asyncio
    async def test_streamed_body_exceeds_max_despite_small_declared_length(self, ingest_settings):
        """The running byte count is enforced even when the declared length lies."""
        recorder = Recorder(
            pdf_response(pdf_bytes(MAX_BYTES + 10), **{"content-length": "1000"})
        )
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is False
        assert result.error.code == IngestErrorCode.PAYLOAD_TOO_LARGE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [MAX_BYTES - 1, MAX_BYTES])
    async def test_body_at_limit_is_accepted(self, ingest_settings, size):
        """Bodies up to and including the maximum are accepted."""
        recorder = Recorder(pdf_response(pdf_bytes(size)))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is True
        assert result.size_bytes == size
        assert result.size_bytes <= MAX_BYTES

    @pytest.mark.asyncio
    async def test_decompressed_size_is_bounded(self, ingest_settings):
        """A small gzip that inflates past the maximum is rejected."""
        bomb = gzip.compress(pdf_bytes(MAX_BYTES * 4))
        assert len(bomb) < MAX_BYTES
        recorder = Recorder(pdf_response(bomb))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is False
        assert result.error.code == IngestErrorCode.PAYLOAD_TOO_LARGE


class TestNormalization:
    """gzip unwrap, envelope stripping and delivery mode."""

    @pytest.mark.asyncio
    async def test_strips_fifteen_junk_bytes(self, ingest_settings):
        """A 10 KiB buffer with 15 junk bytes before %PDF- yields the trailing bytes."""
        document = pdf_bytes(10 * 1024 - 15)
        buffer = b"\x00JUNKHEADER\r\n\r\n" + document
        assert len(buffer) == 10 * 1024
        recorder = Recorder(pdf_response(buffer))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.ok is True
        assert result.content == document
        assert result.stripped_prefix_bytes == 15
        assert result.delivery_mode is DeliveryMode.BY_REFERENCE

    def test_gzip_is_unwrapped_before_stripping(self):
        """gzip is handled first; the inner envelope is then stripped."""
        document = pdf_bytes(2048)
        normalized = normalize_document(gzip.compress(b"prefix" + document), MAX_BYTES)

        assert not isinstance(normalized, IngestError)
        assert normalized.gzip_unwrapped is True
        assert normalized.stripped_prefix_bytes == len(b"prefix")
        assert normalized.content == document

    def test_magic_at_1023_is_stripped(self):
        """The last offset inside the search window is still stripped."""
        document = pdf_bytes(512)
        normalized = normalize_document(b"x" * 1023 + document, MAX_BYTES)

        assert normalized.stripped_prefix_bytes == 1023
        assert normalized.content == document

    def test_magic_at_1024_is_left_untouched(self):
        """Magic beyond the window leaves the buffer unmodified, delivered inline."""
        buffer = b"x" * 1024 + pdf_bytes(512)
        normalized = normalize_document(buffer, MAX_BYTES)

        assert normalized.content == buffer
        assert normalized.stripped_prefix_bytes == 0
        assert normalized.delivery_mode is DeliveryMode.INLINE_BASE64

    def test_corrupt_gzip_is_left_as_is(self):
        """A gzip header over garbage keeps the buffer and falls back to inline."""
        buffer = b"\x1f\x8b" + b"not really gzip" * 10
        normalized = normalize_document(buffer, MAX_BYTES)

        assert normalized.gzip_unwrapped is False
        assert normalized.content == buffer
        assert normalized.delivery_mode is DeliveryMode.INLINE_BASE64

    def test_truncated_gzip_is_left_as_is(self):
        """A gzip stream cut short is not unwrapped into a partial PDF."""
        document = b"%PDF-1.7\n" + bytes(range(256)) * 60
        compressed = gzip.compress(document)
        truncated = compressed[: len(compressed) // 2]

        assert gunzip_bounded(truncated, MAX_BYTES) is None

        normalized = normalize_document(truncated, MAX_BYTES)

        assert normalized.gzip_unwrapped is False
        assert normalized.content == truncated
        assert normalized.delivery_mode is DeliveryMode.INLINE_BASE64

    def test_complete_gzip_is_unwrapped_whole(self):
        """An intact stream inflates to the full document."""
        document = b"%PDF-1.7\n" + bytes(range(256)) * 60

        assert gunzip_bounded(gzip.compress(document), MAX_BYTES) == document

    @pytest.mark.asyncio
    async def test_inline_payload_is_data_url(self, ingest_settings):
        """Inline delivery hands OCR a base64 data URL of the normalized bytes."""
        buffer = b"<html>not a pdf</html>"
        recorder = Recorder(pdf_response(buffer))
        guard = make_guard(ingest_settings, recorder)

        result = await guard.fetch_and_normalize(DOC_URL)

        assert result.delivery_mode is DeliveryMode.INLINE_BASE64
        payload = result.as_ocr_payload()
        assert payload.startswith("data:application/pdf;base64,")
        assert base64.b64decode(payload.split(",", 1)[1]) == buffer


class TestCancellation:
    """Caller cancellation aborts the in-flight request."""

    @pytest.mark.asyncio
    async def test_cancel_event_aborts_fetch(self, ingest_settings):
        """Setting the cancel event stops a hanging download promptly."""

        async def hang(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(30)
            return pdf_response(pdf_bytes(1024))

        guard = make_guard(ingest_settings, hang)
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        with pytest.raises(CancelledByCaller):
            await asyncio.wait_for(
                guard.fetch_and_normalize(DOC_URL, cancel_event=cancel), timeout=5
            )
