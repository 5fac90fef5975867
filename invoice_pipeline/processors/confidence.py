"""
Per-field and overall confidence scoring.

Per-field score = base score of the model's confidence level times the
multiplier of its reason code, clamped to [0, 1]. The overall score is the
weighted mean over the category's required fields only; an absent required
field counts as 0 at its full weight.

Scoring tables:
- base: high 0.9, medium 0.6, low 0.3, absent 0
- reason: explicit_label x1.05, nearby_header x1.0, inferred_layout x0.9,
  conflict x0.5, missing -> 0
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Union

from invoice_pipeline.core.settings import PipelineSettings
from invoice_pipeline.models.dto import ConfidenceScore
from invoice_pipeline.models.fields import (
    Confidence,
    DocumentCategory,
    ReasonCode,
    ReasonedField,
    WeightClass,
)
from invoice_pipeline.schemas.invoice import DEFAULT_REQUIRED_FIELDS, FIELD_SPECS

logger = logging.getLogger(__name__)

BASE_SCORES: Mapping[Confidence, float] = MappingProxyType(
    {
        Confidence.HIGH: 0.9,
        Confidence.MEDIUM: 0.6,
        Confidence.LOW: 0.3,
    }
)

REASON_MULTIPLIERS: Mapping[ReasonCode, float] = MappingProxyType(
    {
        ReasonCode.EXPLICIT_LABEL: 1.05,
        ReasonCode.NEARBY_HEADER: 1.0,
        ReasonCode.INFERRED_LAYOUT: 0.9,
        ReasonCode.CONFLICT: 0.5,
        ReasonCode.MISSING: 0.0,
    }
)

DEFAULT_WEIGHTS: Mapping[WeightClass, float] = MappingProxyType(
    {
        WeightClass.AMOUNTS: 1.5,
        WeightClass.DATES: 1.2,
        WeightClass.IDENTIFIERS: 1.3,
        WeightClass.ADDRESSES: 0.8,
        WeightClass.NAMES: 1.0,
        WeightClass.VALIDATION_FLAGS: 0.5,
        WeightClass.DEFAULT: 1.0,
    }
)


@dataclass(frozen=True)
class ConfidenceConfig:
    """Immutable weights table and required-field sets used for scoring."""

    weights: Mapping[WeightClass, float] = field(default_factory=lambda: DEFAULT_WEIGHTS)
    required_fields: Mapping[DocumentCategory, tuple[str, ...]] = field(
        default_factory=lambda: DEFAULT_REQUIRED_FIELDS
    )

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "ConfidenceConfig":
        """Defaults overlaid with CONFIDENCE_WEIGHTS / REQUIRED_FIELDS overrides."""
        weights = dict(DEFAULT_WEIGHTS)
        for key, weight in settings.CONFIDENCE_WEIGHTS.items():
            try:
                weights[WeightClass(key.lower())] = float(weight)
            except ValueError:
                logger.warning("Ignoring weight for unknown class %r", key)

        required = dict(DEFAULT_REQUIRED_FIELDS)
        for key, names in settings.REQUIRED_FIELDS.items():
            try:
                required[DocumentCategory(key.lower())] = tuple(names)
            except ValueError:
                logger.warning("Ignoring required fields for unknown category %r", key)

        return cls(
            weights=MappingProxyType(weights),
            required_fields=MappingProxyType(required),
        )

    def weight_for(self, field_name: str) -> float:
        spec = FIELD_SPECS.get(field_name)
        weight_class = spec.weight_class if spec else WeightClass.DEFAULT
        return self.weights.get(weight_class, self.weights.get(WeightClass.DEFAULT, 1.0))

    def required_for(self, category: Union[DocumentCategory, str]) -> tuple[str, ...]:
        """Required fields of ``category``; unknown categories fall back to general.

        The category enum is closed and classification is schema-constrained,
        so the fallback branch only fires on a programming error.
        """
        try:
            resolved = DocumentCategory(category)
        except ValueError:
            resolved = None
        if resolved is not None and resolved in self.required_fields:
            return self.required_fields[resolved]
        logger.warning(
            "No required field set for category, falling back to general",
            extra={"document_category": str(category)},
        )
        return self.required_fields.get(DocumentCategory.GENERAL, ())


def field_score(reasoned: Optional[ReasonedField]) -> float:
    """Score one field in [0, 1]; an absent field scores 0."""
    if reasoned is None:
        return 0.0
    base = BASE_SCORES.get(reasoned.confidence, 0.0)
    reason = reasoned.reason_code
    multiplier = 1.0 if reason is None else REASON_MULTIPLIERS[reason]
    return min(1.0, max(0.0, base * multiplier))


def score_fields(
    fields: Mapping[str, ReasonedField],
    category: Union[DocumentCategory, str],
    config: Optional[ConfidenceConfig] = None,
) -> ConfidenceScore:
    """Compute per-field scores and the weighted overall score."""
    config = config or ConfidenceConfig()
    required = config.required_for(category)

    per_field = {name: field_score(reasoned) for name, reasoned in fields.items()}

    total_weight = 0.0
    weighted_sum = 0.0
    missing = []
    for name in required:
        weight = config.weight_for(name)
        total_weight += weight
        if name in fields:
            weighted_sum += weight * per_field[name]
        else:
            missing.append(name)
            per_field.setdefault(name, 0.0)

    overall = weighted_sum / total_weight if total_weight > 0 else 0.0
    return ConfidenceScore(
        overall=round(min(1.0, max(0.0, overall)), 4),
        per_field=per_field,
        required_fields=tuple(required),
        missing_required=tuple(missing),
    )
