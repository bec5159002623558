"""Deduplicate enriched patients and shape them into public match results."""

from typing import Dict, List, Optional, Sequence

from ..schemas.criteria import FilterCriterion
from ..schemas.patient import MatchResult
from .records import EnrichedPatient
from .registry import REGISTRY, PredicateRegistry
from .scoring import calculate_match_score

NO_DIAGNOSIS = "No diagnosis recorded"
NO_TREATMENT = "No treatment recorded"


def describe_condition(patient: EnrichedPatient) -> str:
    consultation = patient.consultation
    if consultation and consultation.diagnosis:
        headline = consultation.diagnosis.headline()
        if headline:
            return headline
    return NO_DIAGNOSIS


def describe_treatment(patient: EnrichedPatient) -> str:
    consultation = patient.consultation
    if consultation:
        procedures = consultation.planned_procedures()
        if procedures:
            return procedures[0]
    latest = patient.latest_treatment
    if latest and latest.get("treatment_type"):
        return str(latest["treatment_type"])
    return NO_TREATMENT


def _display(value: Optional[str], default: str) -> str:
    return str(value) if value not in (None, "") else default


def to_match_result(
    patient: EnrichedPatient,
    criteria: Sequence[FilterCriterion],
    registry: PredicateRegistry = REGISTRY,
) -> MatchResult:
    row = patient.row
    return MatchResult(
        id=patient.id,
        first_name=_display(row.get("first_name"), "Unknown"),
        last_name=_display(row.get("last_name"), "Unknown"),
        age=patient.age,
        gender=_display(row.get("gender"), "Not specified"),
        last_visit=patient.last_visit,
        condition=describe_condition(patient),
        treatment_type=describe_treatment(patient),
        match_score=calculate_match_score(patient, criteria, registry),
    )


def deduplicate_and_transform(
    patients: Sequence[EnrichedPatient],
    criteria: Sequence[FilterCriterion],
    registry: PredicateRegistry = REGISTRY,
) -> List[MatchResult]:
    """One result per patient id; the first occurrence wins and input order is kept."""
    unique: Dict[str, EnrichedPatient] = {}
    for patient in patients:
        unique.setdefault(patient.id, patient)
    return [to_match_result(patient, criteria, registry) for patient in unique.values()]
