"""
Per-category field extraction prompts.

Each category prompt is the shared rule blocks plus the rules for the
fields only that category carries (policy period, service period, tax
year and parcel id).
"""

from types import MappingProxyType
from typing import Mapping

from invoice_pipeline.models.fields import DocumentCategory
from invoice_pipeline.prompts.rules import LEADING_BLOCKS, TRAILING_BLOCKS

INSURANCE_RULES = """- Insurance fields:
  - policy_start_date: "Policy Effective Date", "Coverage Begins", "Effective From", "Policy Period Start". Not the invoice date.
  - policy_end_date: "Policy Expiration", "Coverage Ends", "Expires", "Policy Period End", "Renewal Date".
  - policy_number: "Policy #", "Policy No.", "Policy Number", "Policy ID"; distinct from invoice_number and account_number.
  - service_termination: true on "Cancellation Notice", "Policy Terminated", "Non-Renewal", "Final Bill"; false without such cues; null if unclear.
  - A date range near "Policy Period" or "Coverage Period": start -> policy_start_date, end -> policy_end_date.
  - policy_end_date not after policy_start_date -> both null with evidence_snippet."""

UTILITY_RULES = """- Utility fields:
  - service_start_date: "Service Period From", "Billing Period From", "Usage Period Start". Not the invoice date.
  - service_end_date: "Service Period To", "Billing Period To", "Usage Period End".
  - service_termination: true on "Disconnect Notice", "Service Disconnection", "Service terminating"; false without such cues; null if unclear.
  - Prefer explicit service/billing period labels over meter reading dates; if only reading dates exist use them with confidence "medium" and note the assumption.
  - service_end_date not after service_start_date -> both null with evidence_snippet.
  - invoice_current_due_amount: "Total Current Charges", "Current Period Charges"."""

TAX_RULES = """- Tax fields:
  - tax_year: "Tax Year", "Assessment Year", or a year in the title ("2025 Property Tax Bill"); 4-digit YYYY. Not the invoice date year.
  - property_id: "Parcel Number", "Parcel ID", "Property ID", "APN", "Assessment Number"; identifies the property, not the billing account.
  - vendor_name is the issuing government office ("County Tax Collector"); payment processors belong to payment_remittance_entity.
  - total_amount_due is the full annual total, not a single installment."""

_CATEGORY_RULES: Mapping[DocumentCategory, str] = MappingProxyType(
    {
        DocumentCategory.GENERAL: "",
        DocumentCategory.INSURANCE: INSURANCE_RULES,
        DocumentCategory.UTILITY: UTILITY_RULES,
        DocumentCategory.TAX: TAX_RULES,
    }
)

_ROLE_BY_CATEGORY: Mapping[DocumentCategory, str] = MappingProxyType(
    {
        DocumentCategory.GENERAL: "invoice",
        DocumentCategory.INSURANCE: "insurance invoice",
        DocumentCategory.UTILITY: "utility invoice",
        DocumentCategory.TAX: "property tax bill",
    }
)

EXTRACTION_USER_PROMPT = """Extract structured {label} data per the rules. Return a single JSON object that matches the schema.

--- OCR START ---
{ocr_text}
--- OCR END ---"""


def build_extraction_system_prompt(category: DocumentCategory) -> str:
    blocks = [f"You are a precise {_ROLE_BY_CATEGORY[category]} extraction assistant."]
    blocks.extend(LEADING_BLOCKS)
    if _CATEGORY_RULES[category]:
        blocks.append(_CATEGORY_RULES[category])
    blocks.extend(TRAILING_BLOCKS)
    return "\n\n".join(blocks) + "\n"


def build_extraction_messages(
    ocr_text: str, category: DocumentCategory
) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": build_extraction_system_prompt(category)},
        {
            "role": "user",
            "content": EXTRACTION_USER_PROMPT.format(
                label=_ROLE_BY_CATEGORY[category], ocr_text=ocr_text
            ),
        },
    ]
