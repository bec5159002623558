"""
Advisory match score: the percentage of criteria a patient satisfies.

Diagnosis, treatment and prognosis fields are scored by presence: the patient
counts for the criterion if it has any value in that family at all. Every
other field re-runs its predicate.
"""

from typing import Callable, Dict, Sequence

from ..schemas.criteria import FilterCriterion
from .records import EnrichedPatient
from .registry import REGISTRY, PredicateRegistry


def _has_diagnosis(patient: EnrichedPatient) -> bool:
    return bool(patient.consultation and patient.consultation.diagnosis_names())


def _has_treatment(patient: EnrichedPatient) -> bool:
    if patient.consultation and patient.consultation.planned_procedures():
        return True
    return any(patient.treatment_values("treatment_type"))


def _has_prognosis(patient: EnrichedPatient) -> bool:
    return bool(patient.consultation and patient.consultation.prognosis)


FAMILY_PRESENCE: Dict[str, Callable[[EnrichedPatient], bool]] = {
    "diagnosis": _has_diagnosis,
    "treatment": _has_treatment,
    "prognosis": _has_prognosis,
}


def criterion_counts(
    patient: EnrichedPatient,
    criterion: FilterCriterion,
    registry: PredicateRegistry = REGISTRY,
) -> bool:
    predicate = registry.predicate_for(criterion)
    family = predicate.score_family
    if family in FAMILY_PRESENCE:
        return FAMILY_PRESENCE[family](patient)
    return predicate.evaluate(patient, criterion)


def calculate_match_score(
    patient: EnrichedPatient,
    criteria: Sequence[FilterCriterion],
    registry: PredicateRegistry = REGISTRY,
) -> int:
    """
    Integer score in [0, 100].

    Returns:
        round(100 * matching / total), or 100 when there are no criteria
    """
    if not criteria:
        return 100
    matching = sum(1 for criterion in criteria if criterion_counts(patient, criterion, registry))
    return int(round(100 * matching / len(criteria)))
