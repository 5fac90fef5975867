"""Unit tests for reasoned fields and result models."""

import pytest
from pydantic import ValidationError

from invoice_pipeline.models.dto import ExtractionResult, TokenUsage
from invoice_pipeline.models.fields import (
    AmountField,
    Confidence,
    DocumentCategory,
    ReasonCode,
    TextField,
)
from invoice_pipeline.schemas.invoice import DEFAULT_REQUIRED_FIELDS, FIELD_SPECS


class TestReasonedField:
    """Tests for the ReasonedField container."""

    def test_long_text_is_truncated(self):
        """Evidence and reasoning are clipped rather than rejected."""
        field = TextField(
            value="x",
            confidence="high",
            evidence_snippet="e" * 200,
            reasoning="r" * 500,
        )

        assert len(field.evidence_snippet) == 80
        assert len(field.reasoning) == 120

    def test_enums_are_case_insensitive(self):
        """Confidence and reason code accept any case."""
        field = TextField(value="x", confidence="HIGH", reason_code="Explicit_Label")

        assert field.confidence is Confidence.HIGH
        assert field.reason_code is ReasonCode.EXPLICIT_LABEL

    def test_single_assumption_string_becomes_list(self):
        """A bare string assumption is wrapped in a list."""
        field = TextField(value="x", confidence="low", assumptions="US date format")

        assert field.assumptions == ["US date format"]

    def test_confidence_is_required(self):
        """A field without confidence is invalid."""
        with pytest.raises(ValidationError):
            TextField(value="x")

    def test_unknown_reason_code_rejected(self):
        """Reason codes are a closed set."""
        with pytest.raises(ValidationError):
            TextField(value="x", confidence="high", reason_code="vibes")

    def test_amount_accepts_number_or_text(self):
        """Amounts accept numbers and raw text for later normalization."""
        assert AmountField(value=12.5, confidence="high").value == 12.5
        assert AmountField(value="$12.50", confidence="high").value == "$12.50"


class TestCatalogue:
    """Tests for the field catalogue."""

    @pytest.mark.parametrize("category", list(DocumentCategory))
    def test_required_fields_exist_in_catalogue(self, category):
        """Every required field belongs to its category's catalogue."""
        for name in DEFAULT_REQUIRED_FIELDS[category]:
            assert category in FIELD_SPECS[name].categories


class TestExtractionResult:
    """Tests for ExtractionResult serialization."""

    def test_to_payload(self):
        """Payload holds fields, tokens and scores."""
        result = ExtractionResult(
            category=DocumentCategory.UTILITY,
            fields={"vendor_name": TextField(value="City Water", confidence="high")},
            tokens_used=TokenUsage(classification=10, extraction=90),
            overall_confidence=0.5,
            per_field_confidence={"vendor_name": 0.9},
        )

        payload = result.to_payload()

        assert payload["fields"]["vendor_name"]["value"] == "City Water"
        assert payload["fields"]["invoice_type"]["value"] == "utility"
        assert payload["tokens_used"] == {"classification": 10, "extraction": 90}
        assert payload["overall_confidence"] == 0.5

    def test_overall_confidence_is_bounded(self):
        """Overall confidence outside [0, 1] is rejected."""
        with pytest.raises(ValidationError):
            ExtractionResult(category=DocumentCategory.GENERAL, fields={}, overall_confidence=1.5)
