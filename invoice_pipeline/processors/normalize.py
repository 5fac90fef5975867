"""
Post-extraction normalization of reasoned field values.

Pure and total: never raises, never drops a field, and only touches
``value``. Confidence metadata is left exactly as the model returned it.
"""

import re
from typing import Any, Mapping, Optional

from invoice_pipeline.models.fields import FieldKind, ReasonedField
from invoice_pipeline.schemas.invoice import FIELD_SPECS

_CURRENCY = re.compile(r"[$€£¥]|\b(?:USD|EUR|GBP|CAD)\b", re.IGNORECASE)
_NUMBER = re.compile(r"\d+(?:\.\d+)?|\.\d+")


def parse_amount(text: str) -> Optional[float]:
    """
    Parse a currency-formatted amount.

    Example:
        >>> parse_amount("$1,234.50")
        1234.5
        >>> parse_amount("(12.00)")
        -12.0
        >>> parse_amount("see attached") is None
        True
    """
    candidate = _CURRENCY.sub("", text).strip()
    negative = False
    if candidate.startswith("(") and candidate.endswith(")"):
        negative = True
        candidate = candidate[1:-1].strip()
    if candidate.startswith("-"):
        negative = not negative
        candidate = candidate[1:].strip()
    candidate = candidate.replace(",", "").replace(" ", "")
    if not _NUMBER.fullmatch(candidate):
        return None
    amount = float(candidate)
    return -amount if negative else amount


def _normalize_value(value: Any, kind: Optional[FieldKind]) -> Any:
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        if kind is FieldKind.AMOUNT:
            parsed = parse_amount(value)
            return value if parsed is None else parsed
        return value
    if kind is FieldKind.AMOUNT and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


def normalize_fields(fields: Mapping[str, ReasonedField]) -> dict[str, ReasonedField]:
    """
    Normalize every field value.

    Rules:
    - strings are trimmed; empty strings become None
    - numeric-looking amount strings become floats ("$1,234.50" -> 1234.5,
      "(12.00)" -> -12.0); unparseable ones are kept as trimmed text
    - other values pass through unchanged
    """
    normalized: dict[str, ReasonedField] = {}
    for name, field in fields.items():
        spec = FIELD_SPECS.get(name)
        value = _normalize_value(field.value, spec.kind if spec else None)
        normalized[name] = field.model_copy(update={"value": value})
    return normalized
