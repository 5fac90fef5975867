"""Unit tests for the classification and extraction stages."""

import json

import httpx
import pytest

from invoice_pipeline.core.exceptions import (
    ClassificationFailedError,
    ExtractionFailedError,
)
from invoice_pipeline.models.fields import DocumentCategory, ReasonedField
from invoice_pipeline.processors.doc_type_classifier import classify_document
from invoice_pipeline.processors.field_extractor import extract_fields
from invoice_pipeline.schemas.invoice import build_invoice_schema, fields_for_category
from tests.helpers import chat_response, reasoned

OCR_TEXT = "ACME Insurance\nPolicy Number: POL-123\nPremium due 2025-02-01"


class TestClassifyDocument:
    """Tests for stage 1."""

    @pytest.mark.asyncio
    async def test_returns_category_and_tokens(self, make_client, pipeline_settings):
        """A valid answer yields the category and token usage."""
        client = make_client(
            lambda request: chat_response(
                {"invoice_type": "insurance"}, prompt_tokens=50, completion_tokens=5
            )
        )

        result = await classify_document(OCR_TEXT, client, pipeline_settings)

        assert result.category is DocumentCategory.INSURANCE
        assert result.tokens == 55

    @pytest.mark.asyncio
    async def test_prompt_contains_ocr_text(self, make_client, pipeline_settings):
        """The OCR text is sent inside the user message."""
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return chat_response({"invoice_type": "general"})

        await classify_document(OCR_TEXT, make_client(handler), pipeline_settings)

        user_message = seen[0]["messages"][-1]["content"]
        assert "--- OCR START ---" in user_message
        assert "POL-123" in user_message

    @pytest.mark.asyncio
    async def test_failure_is_fatal(self, make_client, pipeline_settings):
        """A failed call raises ClassificationFailedError; no default category."""
        client = make_client(lambda request: httpx.Response(401))

        with pytest.raises(ClassificationFailedError) as exc_info:
            await classify_document(OCR_TEXT, client, pipeline_settings)

        error = exc_info.value
        assert error.stage == "classification"
        assert error.status_code == 401
        assert error.cause_category == "AUTH"
        assert error.retryable is False

    @pytest.mark.asyncio
    async def test_quota_failure_is_retryable(self, make_client, pipeline_settings):
        """Exhausted QUOTA retries surface as a retryable failure."""
        client = make_client(lambda request: httpx.Response(429))

        with pytest.raises(ClassificationFailedError) as exc_info:
            await classify_document(OCR_TEXT, client, pipeline_settings)

        assert exc_info.value.cause_category == "QUOTA"
        assert exc_info.value.retryable is True


class TestExtractFields:
    """Tests for stage 2."""

    @pytest.mark.asyncio
    async def test_extracts_reasoned_fields(self, make_client, pipeline_settings):
        """Returned fields become ReasonedField values; omitted ones stay absent."""
        client = make_client(
            lambda request: chat_response(
                {
                    "invoice_number": reasoned("INV-9"),
                    "policy_number": reasoned("POL-123"),
                    "total_amount_due": reasoned("$1,200.00", "medium", "nearby_header"),
                }
            )
        )

        result = await extract_fields(
            OCR_TEXT, DocumentCategory.INSURANCE, client, pipeline_settings
        )

        assert set(result.fields) == {"invoice_number", "policy_number", "total_amount_due"}
        assert isinstance(result.fields["policy_number"], ReasonedField)
        assert result.fields["policy_number"].value == "POL-123"
        assert result.fields["total_amount_due"].value == "$1,200.00"

    @pytest.mark.asyncio
    async def test_fields_of_other_categories_are_ignored(self, make_client, pipeline_settings):
        """A general invoice never carries insurance-only fields."""
        client = make_client(
            lambda request: chat_response(
                {"invoice_number": reasoned("INV-9"), "policy_number": reasoned("POL-1")}
            )
        )

        result = await extract_fields(
            OCR_TEXT, DocumentCategory.GENERAL, client, pipeline_settings
        )

        assert "policy_number" not in result.fields

    @pytest.mark.asyncio
    async def test_uses_category_prompt(self, make_client, pipeline_settings):
        """The tax prompt includes the tax-specific rules."""
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return chat_response({"tax_year": reasoned("2025")})

        await extract_fields(
            OCR_TEXT, DocumentCategory.TAX, make_client(handler), pipeline_settings
        )

        system = seen[0]["messages"][0]["content"]
        assert "tax_year" in system
        assert "property_id" in system
        assert "Insurance fields" not in system

    @pytest.mark.asyncio
    async def test_failure_raises(self, make_client, pipeline_settings):
        """A failed call raises ExtractionFailedError."""
        client = make_client(lambda request: httpx.Response(400))

        with pytest.raises(ExtractionFailedError) as exc_info:
            await extract_fields(
                OCR_TEXT, DocumentCategory.UTILITY, client, pipeline_settings
            )

        assert exc_info.value.stage == "extraction"
        assert exc_info.value.cause_category == "VALIDATION"


class TestSchemas:
    """Per-category schema construction."""

    @pytest.mark.parametrize(
        "category,present,absent",
        [
            (DocumentCategory.GENERAL, {"invoice_number"}, {"policy_number", "tax_year"}),
            (
                DocumentCategory.INSURANCE,
                {"policy_number", "policy_start_date", "service_termination"},
                {"service_start_date", "tax_year"},
            ),
            (
                DocumentCategory.UTILITY,
                {"service_start_date", "service_end_date", "service_termination"},
                {"policy_number", "property_id"},
            ),
            (DocumentCategory.TAX, {"tax_year", "property_id"}, {"service_termination"}),
        ],
    )
    def test_schema_field_subsets(self, category, present, absent):
        """Each schema contains only its category's fields."""
        names = set(build_invoice_schema(category).model_fields)

        assert present <= names
        assert not absent & names
        assert names == {spec.name for spec in fields_for_category(category)}
