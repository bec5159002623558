"""
Static field -> source table.

Tells the enrichment pipeline which related tables a set of criteria needs.
Fields that are not listed need no extra source (they read patient columns or
are unknown and handled fail-open by the registry).
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from ..schemas.criteria import FilterCriterion

CONSULTATIONS = "consultations"
TREATMENTS = "treatments"
TOOTH_DIAGNOSES = "toothDiagnoses"
APPOINTMENTS = "appointments"

SOURCE_FIELDS: Dict[str, FrozenSet[str]] = {
    CONSULTATIONS: frozenset({
        # pain
        "pain_intensity", "pain_level", "pain_location", "pain_duration", "pain_character",
        # diagnosis
        "diagnosis", "diagnosis_primary", "diagnosis_secondary", "diagnosis_final",
        "diagnosis_provisional", "diagnosis_differential", "diagnosis_icd_code", "prognosis",
        # treatment plan
        "treatment_procedures", "proposed_procedure", "treatment_complexity",
        "treatment_tooth_numbers", "treatment_estimated_duration",
        # examination
        "periodontal_pocket_depth", "periodontal_bleeding", "periodontal_condition",
        "mobility_grade", "soft_tissue_findings",
        # medical history
        "medical_history_conditions", "current_medications", "allergies",
        # investigations
        "radiography_type", "pulp_vitality", "percussion_test",
        # prescriptions
        "prescribed_medication", "medication_category",
        # follow-up
        "follow_up_required", "follow_up_days", "follow_up_reason",
    }),
    TREATMENTS: frozenset({
        "treatment_type", "completed_treatment_type", "treatment_status", "treatment_outcome",
        "treatment_completion_date", "endodontic_treatment", "treatment_count",
    }),
    TOOTH_DIAGNOSES: frozenset({
        "tooth_primary_diagnosis", "tooth_status", "tooth_recommended_treatment",
        "tooth_treatment_priority", "tooth_number", "affected_teeth_count",
    }),
    APPOINTMENTS: frozenset({
        "appointment_status", "patient_satisfaction", "follow_up_compliance",
        "total_visits", "last_visit_date",
    }),
}

FIELD_SOURCES: Dict[str, str] = {
    name: source for source, names in SOURCE_FIELDS.items() for name in names
}

DEMOGRAPHIC_FIELDS: FrozenSet[str] = frozenset({"age", "first_name", "last_name", "gender"})


def source_for(field_name: str) -> Optional[str]:
    return FIELD_SOURCES.get(field_name)


def is_demographic(field_name: str) -> bool:
    return field_name in DEMOGRAPHIC_FIELDS


def required_sources(fields: Iterable[str]) -> Set[str]:
    """Sources that must be merged to evaluate ``fields``."""
    return {FIELD_SOURCES[name] for name in fields if name in FIELD_SOURCES}


def split_criteria(criteria: List[FilterCriterion]) -> Tuple[List[FilterCriterion], List[FilterCriterion]]:
    """(clinical, demographic); anything that is not a demographic field counts as clinical."""
    clinical = [c for c in criteria if not is_demographic(c.field)]
    demographic = [c for c in criteria if is_demographic(c.field)]
    return clinical, demographic
