"""
Reasoned field container and the closed enums it is built from.

Every extracted value travels wrapped in a ``ReasonedField``: the value
itself plus the model's confidence, a categorical reason code and optional
short evidence. ``value`` may be ``None`` even at ``high`` confidence
(the field is explicitly absent from the document).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, field_validator

from invoice_pipeline.core.config import (
    EVIDENCE_SNIPPET_MAX_CHARS,
    REASONING_MAX_CHARS,
)

T = TypeVar("T")


class DocumentCategory(str, Enum):
    """Invoice type chosen by the classification stage."""

    GENERAL = "general"
    INSURANCE = "insurance"
    UTILITY = "utility"
    TAX = "tax"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReasonCode(str, Enum):
    """Why a value was assigned its confidence level."""

    EXPLICIT_LABEL = "explicit_label"
    NEARBY_HEADER = "nearby_header"
    INFERRED_LAYOUT = "inferred_layout"
    CONFLICT = "conflict"
    MISSING = "missing"


class FieldKind(str, Enum):
    """Value type tag of a catalogue field."""

    AMOUNT = "amount"
    DATE = "date"
    IDENTIFIER = "identifier"
    TEXT = "text"
    NAME = "name"
    ADDRESS = "address"
    BOOLEAN = "boolean"


class WeightClass(str, Enum):
    """Semantic class used to weight a field in the overall score."""

    AMOUNTS = "amounts"
    DATES = "dates"
    IDENTIFIERS = "identifiers"
    ADDRESSES = "addresses"
    NAMES = "names"
    VALIDATION_FLAGS = "validation_flags"
    DEFAULT = "default"


def _truncate(value: Any, limit: int) -> Any:
    if isinstance(value, str) and len(value) > limit:
        return value[:limit]
    return value


class ReasonedField(BaseModel, Generic[T]):
    """A value plus the model's justification for it."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    value: Optional[T] = None
    confidence: Confidence
    reason_code: Optional[ReasonCode] = None
    evidence_snippet: Optional[str] = None
    reasoning: Optional[str] = None
    assumptions: Optional[list[str]] = None

    @field_validator("confidence", "reason_code", mode="before")
    @classmethod
    def lowercase_enum(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("evidence_snippet", mode="before")
    @classmethod
    def clip_evidence(cls, value: Any) -> Any:
        return _truncate(value, EVIDENCE_SNIPPET_MAX_CHARS)

    @field_validator("reasoning", mode="before")
    @classmethod
    def clip_reasoning(cls, value: Any) -> Any:
        return _truncate(value, REASONING_MAX_CHARS)

    @field_validator("assumptions", mode="before")
    @classmethod
    def listify_assumptions(cls, value: Any) -> Any:
        # Models sometimes emit a single string despite the array instruction
        if isinstance(value, str):
            return [value] if value.strip() else None
        return value


# Tagged variants, one per value kind. Amounts accept strings at the
# boundary; normalization coerces numeric-looking ones afterwards.
AmountField = ReasonedField[Union[float, str]]
DateField = ReasonedField[str]
IdentifierField = ReasonedField[str]
TextField = ReasonedField[str]
BooleanField = ReasonedField[bool]

FIELD_TYPE_BY_KIND: dict[FieldKind, type[ReasonedField]] = {
    FieldKind.AMOUNT: AmountField,
    FieldKind.DATE: DateField,
    FieldKind.IDENTIFIER: IdentifierField,
    FieldKind.TEXT: TextField,
    FieldKind.NAME: TextField,
    FieldKind.ADDRESS: TextField,
    FieldKind.BOOLEAN: BooleanField,
}
