"""
Invoice field catalogue and per-category extraction schemas.

The catalogue is the single source of truth for which fields exist, their
value kind, their weight class in confidence scoring, and which invoice
categories they belong to. Extraction schemas are pydantic models built
from it, so the model is only ever asked for the fields of the classified
category.

Field coverage:
- Base (all categories): dates, identifiers, vendor/community names,
  remittance entity and address, amounts, ``reasoning`` and ``valid_input``
- insurance: policy period dates, policy number, service termination
- utility: service period dates, service termination
- tax: tax year, property id
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, create_model, field_validator

from invoice_pipeline.models.fields import (
    FIELD_TYPE_BY_KIND,
    DocumentCategory,
    FieldKind,
    WeightClass,
)

# Synthetic field carrying the classification result in serialized output
INVOICE_TYPE_FIELD = "invoice_type"

_ALL = frozenset(DocumentCategory)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: FieldKind
    weight_class: WeightClass
    description: str
    categories: frozenset[DocumentCategory] = _ALL


FIELD_CATALOGUE: tuple[FieldSpec, ...] = (
    # === DATE FIELDS ===
    FieldSpec(
        "invoice_date",
        FieldKind.DATE,
        WeightClass.DATES,
        "Invoice issue date in any format (MM/DD/YYYY, Month DD, YYYY, ...).",
    ),
    FieldSpec(
        "invoice_due_date",
        FieldKind.DATE,
        WeightClass.DATES,
        'Payment due date. May be labeled "Due Date" or "Payment Due".',
    ),
    FieldSpec(
        "policy_start_date",
        FieldKind.DATE,
        WeightClass.DATES,
        "Policy effective / coverage start date (not the invoice date).",
        frozenset({DocumentCategory.INSURANCE}),
    ),
    FieldSpec(
        "policy_end_date",
        FieldKind.DATE,
        WeightClass.DATES,
        "Policy expiration / coverage end date.",
        frozenset({DocumentCategory.INSURANCE}),
    ),
    FieldSpec(
        "service_start_date",
        FieldKind.DATE,
        WeightClass.DATES,
        "Start of the billed service period.",
        frozenset({DocumentCategory.UTILITY}),
    ),
    FieldSpec(
        "service_end_date",
        FieldKind.DATE,
        WeightClass.DATES,
        "End of the billed service period.",
        frozenset({DocumentCategory.UTILITY}),
    ),
    FieldSpec(
        "tax_year",
        FieldKind.DATE,
        WeightClass.DATES,
        'Tax year the bill applies to, e.g. "2025".',
        frozenset({DocumentCategory.TAX}),
    ),
    # === IDENTIFIER FIELDS ===
    FieldSpec(
        "invoice_number",
        FieldKind.IDENTIFIER,
        WeightClass.IDENTIFIERS,
        "Invoice number, reference number or invoice ID (may include INV-, #).",
    ),
    FieldSpec(
        "account_number",
        FieldKind.IDENTIFIER,
        WeightClass.IDENTIFIERS,
        "Account number, customer number or client ID.",
    ),
    FieldSpec(
        "policy_number",
        FieldKind.IDENTIFIER,
        WeightClass.IDENTIFIERS,
        "Policy number or policy ID; distinct from invoice and account numbers.",
        frozenset({DocumentCategory.INSURANCE}),
    ),
    FieldSpec(
        "property_id",
        FieldKind.IDENTIFIER,
        WeightClass.IDENTIFIERS,
        "Parcel number, parcel ID or property ID.",
        frozenset({DocumentCategory.TAX}),
    ),
    # === ENTITY AND CONTACT FIELDS ===
    FieldSpec(
        "vendor_name",
        FieldKind.NAME,
        WeightClass.NAMES,
        "Vendor, supplier or service provider issuing the invoice.",
    ),
    FieldSpec(
        "community_name",
        FieldKind.NAME,
        WeightClass.NAMES,
        "Community, HOA or property associated with the invoice.",
    ),
    FieldSpec(
        "payment_remittance_entity",
        FieldKind.NAME,
        WeightClass.NAMES,
        "Entity to remit payment to; may differ from the vendor.",
    ),
    FieldSpec(
        "payment_remittance_entity_care_of",
        FieldKind.NAME,
        WeightClass.NAMES,
        "Care of (c/o) or attention line for the remittance entity.",
    ),
    FieldSpec(
        "payment_remittance_address",
        FieldKind.ADDRESS,
        WeightClass.ADDRESSES,
        "Full remit-to address: street, city, state, zip.",
    ),
    # === FINANCIAL FIELDS ===
    FieldSpec(
        "total_amount_due",
        FieldKind.AMOUNT,
        WeightClass.AMOUNTS,
        "Total amount due including past due balances.",
    ),
    FieldSpec(
        "invoice_current_due_amount",
        FieldKind.AMOUNT,
        WeightClass.AMOUNTS,
        "Current amount due for this billing period.",
    ),
    FieldSpec(
        "invoice_past_due_amount",
        FieldKind.AMOUNT,
        WeightClass.AMOUNTS,
        "Past due amount or previous unpaid balance carried forward.",
    ),
    FieldSpec(
        "invoice_late_fee_amount",
        FieldKind.AMOUNT,
        WeightClass.AMOUNTS,
        "Late fee or penalty for overdue payment.",
    ),
    FieldSpec(
        "credit_amount",
        FieldKind.AMOUNT,
        WeightClass.AMOUNTS,
        "Credit or refund applied to the account.",
    ),
    # === VALIDATION FIELDS ===
    FieldSpec(
        "service_termination",
        FieldKind.BOOLEAN,
        WeightClass.VALIDATION_FLAGS,
        "True if the document announces cancellation, disconnection or a final bill.",
        frozenset({DocumentCategory.INSURANCE, DocumentCategory.UTILITY}),
    ),
    FieldSpec(
        "valid_input",
        FieldKind.BOOLEAN,
        WeightClass.VALIDATION_FLAGS,
        "Whether the document is a valid invoice that can be processed.",
    ),
    # === METADATA ===
    FieldSpec(
        "reasoning",
        FieldKind.TEXT,
        WeightClass.DEFAULT,
        "Short overall note about the document and extraction quality.",
    ),
)

FIELD_SPECS: Mapping[str, FieldSpec] = MappingProxyType(
    {spec.name: spec for spec in FIELD_CATALOGUE}
)

_BASE_REQUIRED = (
    "invoice_number",
    "invoice_date",
    "invoice_due_date",
    "vendor_name",
    "invoice_current_due_amount",
    "payment_remittance_address",
)

DEFAULT_REQUIRED_FIELDS: Mapping[DocumentCategory, tuple[str, ...]] = MappingProxyType(
    {
        DocumentCategory.GENERAL: _BASE_REQUIRED,
        DocumentCategory.INSURANCE: _BASE_REQUIRED
        + ("policy_number", "policy_start_date", "policy_end_date"),
        DocumentCategory.UTILITY: _BASE_REQUIRED
        + ("account_number", "service_start_date", "service_end_date"),
        DocumentCategory.TAX: _BASE_REQUIRED + ("property_id", "tax_year"),
    }
)


def fields_for_category(category: DocumentCategory) -> tuple[FieldSpec, ...]:
    """Catalogue fields relevant to ``category``, in catalogue order."""
    return tuple(spec for spec in FIELD_CATALOGUE if category in spec.categories)


@lru_cache(maxsize=None)
def build_invoice_schema(category: DocumentCategory) -> type[BaseModel]:
    """Pydantic model containing only the fields of ``category``.

    Every field is optional: a field the model leaves out is "absent" and
    scores 0, which is different from a present field with ``value=None``.
    """
    definitions = {
        spec.name: (
            Optional[FIELD_TYPE_BY_KIND[spec.kind]],
            Field(default=None, description=spec.description),
        )
        for spec in fields_for_category(category)
    }
    return create_model(
        f"{category.value.capitalize()}InvoiceFields",
        __config__=ConfigDict(extra="ignore"),
        **definitions,
    )


class InvoiceTypeSchema(BaseModel):
    """Stage 1 output: exactly one value from the closed category enum."""

    model_config = ConfigDict(extra="ignore")

    invoice_type: DocumentCategory = Field(
        ...,
        description=(
            "The type of invoice: general (standard vendor), insurance "
            "(policy-based), utility (service-based), or tax (property tax)"
        ),
    )

    @field_validator("invoice_type", mode="before")
    @classmethod
    def lowercase_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value
