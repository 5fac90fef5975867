"""
Shared prompt rule blocks for invoice field extraction.

Category prompts compose these blocks with their own specific rules, so
the disambiguation, output format and confidence guidance stay identical
across invoice types.
"""

CORE_DISAMBIGUATION_RULES = """- Core disambiguation:
  - Dates: "Invoice Date" -> invoice_date; "Due Date" -> invoice_due_date; ignore unrelated dates. Non-date due text ("Due upon receipt") -> invoice_due_date = null.
  - Label proximity: with several candidates pick the value closest to its label; if still conflicting, set null with confidence "low" and an evidence_snippet.
  - Missing values: never infer; set null and add evidence_snippet when it helps."""

OUTPUT_STRUCTURE = """- Output format:
  - Respond with ONLY a raw JSON object. No markdown code fences, no text before or after it.
  - Every field is a nested object:
    "field_name": {
      "value": <value or null>,
      "confidence": "low"|"medium"|"high",
      "reason_code": "explicit_label"|"nearby_header"|"inferred_layout"|"conflict"|"missing",
      "evidence_snippet": "short quote from the document" (optional, <=80 chars),
      "reasoning": "brief explanation" (optional, <=120 chars),
      "assumptions": ["..."] (optional, always an array)
    }"""

COMMUNITY_NAME_RULES = """- Community name:
  - Prefer labels like "Community", "Association", "HOA", "Property", "Condo"; avoid "Vendor", "Management Company", "Remit To".
  - Prefer header/title blocks and names near the service address; avoid footer and remittance areas.
  - Exclude management companies (Inc., LLC, Management, Services) and bank lockboxes.
  - A "Bill To" entry counts only when it clearly names an HOA/Association/Community; never a person ("Attn: ...") or unit.
  - Several communities listed -> null with evidence_snippet. A value used as vendor_name cannot also be community_name."""

VENDOR_REMITTANCE_RULES = """- Vendor vs remittance:
  - vendor_name is the issuer of the invoice; payment_remittance_* is where payment goes. They may differ.
  - Remittance cues: "Remit To", "Mail Payment To", "Lockbox", "PO Box", bank routing/ACH blocks.
  - payment_remittance_entity_care_of: "c/o", "Attn:", "Care of" line in the remittance block.
  - payment_remittance_address: join multi-line addresses as "Street, City, State ZIP".
  - Never take vendor_name from the remittance block."""

FINANCIAL_RULES = """- Amounts:
  - total_amount_due: "Amount Due", "Balance Due", "Total due", "Total amount you owe".
  - invoice_current_due_amount: "Current charges", "New charges", "Total new charges".
  - invoice_past_due_amount: "Past due", "Previous balance", "Overdue".
  - invoice_late_fee_amount: "Late fee", "Penalty", "Finance charge".
  - credit_amount: "Credit", "Refund", "Payment applied".
  - A single "total" goes to total_amount_due, never to invoice_current_due_amount.
  - Prefer body totals over remittance stub/coupon amounts.
  - Strip currency symbols and thousands separators; parentheses mean negative ("($25.00)" -> -25.00)."""

DATE_SANITY_RULES = """- Date sanity:
  - invoice_due_date earlier than invoice_date -> set the affected date(s) to null with evidence_snippet; do not correct.
  - "Net N" / "Due in N days" with a parseable invoice_date -> invoice_due_date = invoice_date + N days (YYYY-MM-DD), noted in assumptions.
  - Such terms without a parseable invoice_date -> invoice_due_date = null."""

IDENTIFIER_RULES = """- Identifiers:
  - invoice_number: prefer "Invoice #", "Invoice No.", "Invoice Number" over "Reference #", "Bill #", "Confirmation #".
  - account_number: "Account #", "Acct No.", "Customer #", "Client ID".
  - Disambiguate several identifiers by explicit labels and proximity."""

DOCUMENT_VALIDATION_RULES = """- valid_input:
  - true when vendor_name is present AND (invoice_number OR total_amount_due) is present.
  - false for receipts, quotes, estimates, statements, promotional material, or documents missing core invoice fields; add evidence_snippet."""

GENERAL_REASONING_GUIDANCE = """- reasoning field:
  - Same nested structure as every other field.
  - reasoning.value holds document-level notes (OCR quality, unusual layout, several properties), <=120 chars."""

CONFIDENCE_GUIDANCE = """- Confidence:
  - high: explicit label next to the value, OR the field is clearly absent (value null, reason_code "missing").
  - medium: nearby header or context supports the value without an explicit label.
  - low: competing candidates or weak cues; prefer null over a guess."""

EMISSION_POLICY = """- Emission policy:
  - reason_code: always.
  - evidence_snippet and reasoning: only when confidence is not "high" or the value is null/ambiguous.
  - assumptions: only when a default was applied or an ambiguity resolved."""

REASON_CODE_GUIDANCE = (
    '- reason_code must be one of ["explicit_label", "nearby_header", '
    '"inferred_layout", "conflict", "missing"]. If unsure, use "missing".'
)

# Order matters: general field rules first, category rules after identifiers
LEADING_BLOCKS = (
    CORE_DISAMBIGUATION_RULES,
    OUTPUT_STRUCTURE,
    COMMUNITY_NAME_RULES,
    VENDOR_REMITTANCE_RULES,
    FINANCIAL_RULES,
    DATE_SANITY_RULES,
    IDENTIFIER_RULES,
)

TRAILING_BLOCKS = (
    DOCUMENT_VALIDATION_RULES,
    GENERAL_REASONING_GUIDANCE,
    CONFIDENCE_GUIDANCE,
    EMISSION_POLICY,
    REASON_CODE_GUIDANCE,
)
