"""
Cohort Matching Module

This module provides the in-memory predicate engine used to filter
enriched dental patients against research cohort criteria.
"""

from .clinical_sections import (
    ConsultationRecord,
    parse_section,
)
from .field_classifier import (
    APPOINTMENTS,
    CONSULTATIONS,
    DEMOGRAPHIC_FIELDS,
    TOOTH_DIAGNOSES,
    TREATMENTS,
    required_sources,
    split_criteria,
)
from .records import (
    EnrichedPatient,
    calculate_age,
)
from .registry import (
    # Main classes
    PredicateRegistry,
    FieldSpec,
    ValueKind,

    # Default strategy for unknown fields
    FAIL_OPEN,

    # Global instance
    REGISTRY,
)
from .scoring import calculate_match_score
from .transform import deduplicate_and_transform

__all__ = [
    "ConsultationRecord",
    "parse_section",
    "APPOINTMENTS",
    "CONSULTATIONS",
    "DEMOGRAPHIC_FIELDS",
    "TOOTH_DIAGNOSES",
    "TREATMENTS",
    "required_sources",
    "split_criteria",
    "EnrichedPatient",
    "calculate_age",
    "PredicateRegistry",
    "FieldSpec",
    "ValueKind",
    "FAIL_OPEN",
    "REGISTRY",
    "calculate_match_score",
    "deduplicate_and_transform",
]
