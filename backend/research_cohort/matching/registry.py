"""
Predicate Evaluator Registry

Every filterable field is described once by a ``FieldSpec``: where its value
comes from (source), what kind of value it is, and how to reach it on an
``EnrichedPatient``. Evaluating a criterion is a registry lookup followed by
the comparator for the field's kind, never a per-field conditional.

Fields the registry does not know are handled by the ``FAIL_OPEN`` strategy:
the criterion passes every patient and a warning is logged.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..schemas.criteria import FilterCriterion
from .clinical_sections import ConsultationRecord
from .comparators import (
    Comparator,
    UnsupportedOperator,
    compare_any,
    compare_boolean,
    compare_date,
    compare_number,
    compare_string,
)
from .field_classifier import is_demographic, source_for
from .records import EnrichedPatient

logger = logging.getLogger(__name__)


# =============================================================================
# VALUE KINDS
# =============================================================================

class ValueKind(str, Enum):
    """Value kinds a field can have; each maps to one comparator."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"


COMPARATORS: Dict[ValueKind, Comparator] = {
    ValueKind.STRING: compare_string,
    ValueKind.NUMBER: compare_number,
    ValueKind.BOOLEAN: compare_boolean,
    ValueKind.DATE: compare_date,
}

_ORDERING = {
    "equals", "not_equals", "greater_than", "less_than",
    "greater_than_or_equal", "less_than_or_equal", "between", "is_null", "is_not_null",
}

SUPPORTED_OPERATORS: Dict[ValueKind, frozenset] = {
    ValueKind.STRING: frozenset({
        "equals", "not_equals", "contains", "not_contains", "starts_with", "ends_with",
        "in", "not_in", "is_null", "is_not_null",
    }),
    ValueKind.NUMBER: frozenset(_ORDERING),
    ValueKind.BOOLEAN: frozenset({"equals", "not_equals", "is_null", "is_not_null"}),
    ValueKind.DATE: frozenset(_ORDERING),
}


def operator_name(criterion: FilterCriterion) -> str:
    operator = criterion.operator
    return getattr(operator, "value", operator)


# =============================================================================
# FIELD SPECS
# =============================================================================

Accessor = Callable[[EnrichedPatient], Any]


@dataclass(frozen=True)
class FieldSpec:
    """
    How one filterable field is read and compared.

    Args:
        name: Field name used in criteria
        kind: Value kind, selects the comparator
        accessor: Reads the value off an enriched patient (None = no value)
        source: Related table that must be merged, None for patient columns
        multi_valued: Accessor returns a list; any-of / none-of semantics apply
        score_family: "diagnosis", "treatment" or "prognosis" when the scorer
            counts the field by family presence
    """
    name: str
    kind: ValueKind
    accessor: Accessor
    source: Optional[str] = None
    multi_valued: bool = False
    score_family: Optional[str] = None

    def supports(self, operator: str) -> bool:
        return operator in SUPPORTED_OPERATORS[self.kind]

    def evaluate(self, patient: EnrichedPatient, criterion: FilterCriterion) -> bool:
        operator = operator_name(criterion)
        if not self.supports(operator):
            return True
        if self.source and not patient.has_source(self.source):
            return False

        comparator = COMPARATORS[self.kind]
        value = self.accessor(patient)
        try:
            if self.multi_valued:
                return compare_any(value or [], operator, criterion.value, comparator)
            return comparator(value, operator, criterion.value)
        except UnsupportedOperator:
            return True


class FailOpenStrategy:
    """Default for unknown fields: the criterion does not restrict the cohort."""
    name = "FAIL_OPEN"
    source = None
    score_family = None

    def evaluate(self, patient: EnrichedPatient, criterion: FilterCriterion) -> bool:
        return True


FAIL_OPEN = FailOpenStrategy()


# =============================================================================
# ACCESSOR HELPERS
# =============================================================================

def _joined(values: Iterable[Any]) -> Optional[str]:
    text = ", ".join(str(v) for v in values if v not in (None, ""))
    return text or None


def _column(name: str) -> Accessor:
    return lambda patient: patient.row.get(name)


def _text_column(name: str) -> Accessor:
    def read(patient: EnrichedPatient) -> Optional[str]:
        value = patient.row.get(name)
        if isinstance(value, (list, tuple)):
            return _joined(value)
        if isinstance(value, dict):
            return _joined(k for k, flag in value.items() if flag)
        return value
    return read


def _consultation(read: Callable[[ConsultationRecord], Any]) -> Accessor:
    """Accessor on the latest consultation; no consultation yields None."""
    def access(patient: EnrichedPatient) -> Any:
        if patient.consultation is None:
            return None
        return read(patient.consultation)
    return access


def section_accessor(name: str, *path: str, read: Optional[Callable[[Any], Any]] = None) -> Accessor:
    """
    Optional chain from a consultation section down ``path``.

    The first missing node (no consultation, section or sub-section) yields
    None; ``read`` is applied only to a present node.
    """
    def follow(consultation: ConsultationRecord) -> Any:
        node = getattr(consultation, name)
        for attr in path:
            if node is None:
                return None
            node = getattr(node, attr)
        if node is None or read is None:
            return node
        return read(node)
    return _consultation(follow)


def _diagnosis_part(part: str) -> Accessor:
    return section_accessor("diagnosis", read=lambda d: _joined(d.names(part)))


def _prescription_values(key: str) -> Accessor:
    return section_accessor("prescriptions", read=lambda entries: [getattr(e, key) for e in entries])


def _treatments(key: str) -> Accessor:
    return lambda patient: patient.treatment_values(key)


def _teeth(key: str) -> Accessor:
    return lambda patient: patient.tooth_values(key)


def _latest_appointment(key: str) -> Accessor:
    return lambda patient: (patient.latest_appointment or {}).get(key)


def _completed_treatment_types(patient: EnrichedPatient) -> List[Any]:
    return [
        t.get("treatment_type") for t in patient.treatments
        if str(t.get("status") or "").lower() == "completed"
    ]


def _has_endodontic_treatment(patient: EnrichedPatient) -> bool:
    for treatment_type in patient.treatment_values("treatment_type"):
        text = str(treatment_type or "").lower()
        if "root canal" in text or "endodontic" in text:
            return True
    return False


def _affected_teeth_count(patient: EnrichedPatient) -> int:
    return sum(
        1 for status in patient.tooth_values("status")
        if status and str(status).lower() != "healthy"
    )


def _spec(name: str, kind: ValueKind, accessor: Accessor, **options: Any) -> FieldSpec:
    return FieldSpec(name=name, kind=kind, accessor=accessor, source=source_for(name), **options)


S, N, B, D = ValueKind.STRING, ValueKind.NUMBER, ValueKind.BOOLEAN, ValueKind.DATE


def default_field_specs() -> List[FieldSpec]:
    """The full field catalogue."""
    return [
        # --- patient columns ---
        _spec("age", N, lambda p: p.age),
        _spec("first_name", S, _column("first_name")),
        _spec("last_name", S, _column("last_name")),
        _spec("gender", S, _column("gender")),
        _spec("registration_date", D, _column("created_at")),
        _spec("medical_conditions", S, _text_column("medical_history_summary")),
        _spec("diabetes_status", S, _text_column("medical_history_summary")),
        _spec("smoking_status", S, _text_column("smoking_status")),
        _spec("referral_source", S, _text_column("referral_source")),

        # --- consultation: pain ---
        _spec("pain_intensity", N, section_accessor("pain_assessment", "intensity")),
        _spec("pain_level", N, section_accessor("pain_assessment", "intensity")),
        _spec("pain_location", S, section_accessor("pain_assessment", "location")),
        _spec("pain_duration", S, section_accessor("pain_assessment", "duration")),
        _spec("pain_character", S, section_accessor("pain_assessment", "character")),

        # --- consultation: diagnosis ---
        _spec("diagnosis", S, section_accessor("diagnosis", read=lambda d: _joined(d.all_names())),
              score_family="diagnosis"),
        _spec("diagnosis_primary", S, section_accessor("diagnosis", "primary"), score_family="diagnosis"),
        _spec("diagnosis_secondary", S, section_accessor("diagnosis", "secondary"), score_family="diagnosis"),
        _spec("diagnosis_final", S, _diagnosis_part("final"), score_family="diagnosis"),
        _spec("diagnosis_provisional", S, _diagnosis_part("provisional"), score_family="diagnosis"),
        _spec("diagnosis_differential", S, _diagnosis_part("differential"), score_family="diagnosis"),
        _spec("diagnosis_icd_code", S, section_accessor("diagnosis", read=lambda d: _joined(d.icd_codes())),
              score_family="diagnosis"),
        _spec("prognosis", S, _consultation(lambda c: c.prognosis), score_family="prognosis"),

        # --- consultation: treatment plan ---
        _spec("treatment_procedures", S,
              section_accessor("treatment_plan", read=lambda t: _joined(t.procedures())),
              score_family="treatment"),
        _spec("proposed_procedure", S, section_accessor("treatment_plan", "procedure"),
              score_family="treatment"),
        _spec("treatment_complexity", S, section_accessor("treatment_plan", "complexity")),
        _spec("treatment_tooth_numbers", S, section_accessor("treatment_plan", "tooth_numbers")),
        _spec("treatment_estimated_duration", N, section_accessor("treatment_plan", "estimated_duration")),

        # --- consultation: examination ---
        _spec("periodontal_pocket_depth", N,
              section_accessor("clinical_examination", "periodontal", "max_pocket_depth")),
        _spec("periodontal_bleeding", B, section_accessor("clinical_examination", "periodontal", "bleeding")),
        _spec("periodontal_condition", S, section_accessor("clinical_examination", "periodontal", "status")),
        _spec("mobility_grade", N, section_accessor("clinical_examination", "mobility_grade")),
        _spec("soft_tissue_findings", S, section_accessor("clinical_examination", "soft_tissue", "findings")),

        # --- consultation: medical history ---
        _spec("medical_history_conditions", S, section_accessor("medical_history", "conditions", read=_joined)),
        _spec("current_medications", S, section_accessor("medical_history", "medications", read=_joined)),
        _spec("allergies", S, section_accessor("medical_history", "allergies", read=_joined)),

        # --- consultation: investigations ---
        _spec("radiography_type", S, section_accessor("investigations", "radiography", "type")),
        _spec("pulp_vitality", S, section_accessor("investigations", "pulp_tests", "vitality")),
        _spec("percussion_test", S, section_accessor("investigations", "clinical_tests", "percussion")),

        # --- consultation: prescriptions ---
        _spec("prescribed_medication", S, _prescription_values("medication_name"),
              multi_valued=True),
        _spec("medication_category", S, _prescription_values("category"),
              multi_valued=True),

        # --- consultation: follow-up ---
        _spec("follow_up_required", B, section_accessor("follow_up", "required")),
        _spec("follow_up_days", N, section_accessor("follow_up", "days")),
        _spec("follow_up_reason", S, section_accessor("follow_up", "reason")),

        # --- treatments ---
        _spec("treatment_type", S, _treatments("treatment_type"), multi_valued=True, score_family="treatment"),
        _spec("completed_treatment_type", S, _completed_treatment_types, multi_valued=True,
              score_family="treatment"),
        _spec("treatment_status", S, _treatments("status"), multi_valued=True, score_family="treatment"),
        _spec("treatment_outcome", S, _treatments("outcome"), multi_valued=True, score_family="treatment"),
        _spec("treatment_completion_date", D, _treatments("completed_at"), multi_valued=True),
        _spec("endodontic_treatment", B, _has_endodontic_treatment),
        _spec("treatment_count", N, lambda p: len(p.treatments)),

        # --- tooth diagnoses ---
        _spec("tooth_primary_diagnosis", S, _teeth("primary_diagnosis"), multi_valued=True),
        _spec("tooth_status", S, _teeth("status"), multi_valued=True),
        _spec("tooth_recommended_treatment", S, _teeth("recommended_treatment"), multi_valued=True),
        _spec("tooth_treatment_priority", S, _teeth("treatment_priority"), multi_valued=True),
        _spec("tooth_number", S, _teeth("tooth_number"), multi_valued=True),
        _spec("affected_teeth_count", N, _affected_teeth_count),

        # --- appointments ---
        _spec("appointment_status", S, _latest_appointment("status")),
        _spec("patient_satisfaction", N, _latest_appointment("satisfaction_rating")),
        _spec("follow_up_compliance", B, _latest_appointment("attended")),
        _spec("total_visits", N, lambda p: p.appointment_count),
        _spec("last_visit_date", D, _latest_appointment("appointment_date")),
    ]


# =============================================================================
# REGISTRY
# =============================================================================

class PredicateRegistry:
    """
    Field name -> FieldSpec lookup plus the AND-chained filter.

    Args:
        specs: Field specs to register
        default: Strategy used for fields with no FieldSpec
    """

    def __init__(self, specs: Iterable[FieldSpec] = (), default: FailOpenStrategy = FAIL_OPEN):
        self._specs: Dict[str, FieldSpec] = {}
        self.default = default
        for spec in specs:
            self.register(spec)

    def register(self, spec: FieldSpec) -> None:
        self._specs[spec.name] = spec

    def get(self, field_name: str) -> Optional[FieldSpec]:
        return self._specs.get(field_name)

    def __contains__(self, field_name: str) -> bool:
        return field_name in self._specs

    def fields(self) -> List[str]:
        return sorted(self._specs)

    def predicate_for(self, criterion: FilterCriterion, announce: bool = False):
        """FieldSpec for the criterion's field, or the default strategy for unknown fields."""
        spec = self._specs.get(criterion.field)
        if spec is None:
            if announce:
                logger.warning("Unknown filter field '%s'; %s applies", criterion.field, self.default.name)
            return self.default
        if announce and not spec.supports(operator_name(criterion)):
            logger.warning("Operator '%s' does not apply to %s field '%s'; criterion ignored",
                           operator_name(criterion), spec.kind.value, spec.name)
        return spec

    def matches(self, patient: EnrichedPatient, criterion: FilterCriterion) -> bool:
        return self.predicate_for(criterion).evaluate(patient, criterion)

    def matches_all(self, patient: EnrichedPatient, criteria: Sequence[FilterCriterion]) -> bool:
        return all(self.matches(patient, criterion) for criterion in criteria)

    def filter_patients(
        self,
        patients: List[EnrichedPatient],
        criteria: Sequence[FilterCriterion],
    ) -> List[EnrichedPatient]:
        """Apply every criterion (AND), clinical ones before demographic ones."""
        ordered = [c for c in criteria if not is_demographic(c.field)]
        ordered += [c for c in criteria if is_demographic(c.field)]

        remaining = list(patients)
        for criterion in ordered:
            predicate = self.predicate_for(criterion, announce=True)
            before = len(remaining)
            remaining = [p for p in remaining if predicate.evaluate(p, criterion)]
            logger.debug("Filter %s: %d -> %d patients", criterion.describe(), before, len(remaining))
        return remaining


def build_default_registry() -> PredicateRegistry:
    return PredicateRegistry(default_field_specs())


# Global instance, built once
REGISTRY = build_default_registry()
