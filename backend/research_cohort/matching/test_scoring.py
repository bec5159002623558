"""
Tests for match scoring, deduplication and the public result shape

Run with: python -m pytest backend/research_cohort/matching/test_scoring.py -v
"""

from research_cohort.conftest import dob_for_age
from research_cohort.matching.clinical_sections import ConsultationRecord
from research_cohort.matching.field_classifier import CONSULTATIONS, TREATMENTS
from research_cohort.matching.records import EnrichedPatient
from research_cohort.matching.scoring import calculate_match_score
from research_cohort.matching.transform import deduplicate_and_transform, to_match_result
from research_cohort.schemas.criteria import FilterCriterion


def criterion(field, operator, value=None):
    return FilterCriterion(field=field, operator=operator, value=value)


def enriched(row, consultation=None, treatments=None):
    patient = EnrichedPatient(row=row)
    if consultation is not None:
        patient.consultation = ConsultationRecord.from_row(consultation)
        patient.merged_sources.add(CONSULTATIONS)
    if treatments is not None:
        patient.treatments = treatments
        patient.merged_sources.add(TREATMENTS)
    return patient


def test_empty_criteria_score_100():
    assert calculate_match_score(enriched({"id": "p1"}), []) == 100


def test_score_is_rounded_percentage():
    patient = enriched({"id": "p1", "date_of_birth": dob_for_age(40), "gender": "female"})
    criteria = [
        criterion("age", "greater_than", 30),
        criterion("gender", "equals", "male"),
        criterion("first_name", "is_null"),
    ]
    # 2 of 3
    assert calculate_match_score(patient, criteria) == 67


def test_family_fields_score_on_presence():
    """A diagnosis-family criterion counts whenever the patient has any diagnosis."""
    patient = enriched({"id": "p1"}, consultation={"diagnosis": {"primary": "Caries"}})
    criteria = [criterion("diagnosis_final", "contains", "pulpitis")]
    assert calculate_match_score(patient, criteria) == 100

    no_treatment = [criterion("treatment_type", "equals", "scaling")]
    assert calculate_match_score(patient, no_treatment) == 0

    with_plan = enriched({"id": "p2"}, consultation={"treatment_plan": {"procedure": "Crown"}})
    assert calculate_match_score(with_plan, no_treatment) == 100


def test_unknown_field_counts_as_matching():
    patient = enriched({"id": "p1", "date_of_birth": dob_for_age(20)})
    criteria = [criterion("age", "greater_than", 30), criterion("unknown_field", "equals", 1)]
    assert calculate_match_score(patient, criteria) == 50


def test_match_result_defaults():
    result = to_match_result(enriched({"id": "p1", "created_at": "2024-01-05T00:00:00Z"}), [])
    assert result.first_name == "Unknown"
    assert result.last_name == "Unknown"
    assert result.gender == "Not specified"
    assert result.age == 0
    assert result.condition == "No diagnosis recorded"
    assert result.treatment_type == "No treatment recorded"
    assert result.last_visit.isoformat().startswith("2024-01-05")
    assert result.match_score == 100


def test_match_result_uses_clinical_data():
    patient = enriched(
        {"id": "p1", "first_name": "Ana", "date_of_birth": dob_for_age(33)},
        consultation={"diagnosis": {"final": [{"diagnosis_name": "Pulpitis"}]}},
        treatments=[{"treatment_type": "Root canal", "created_at": "2024-02-01"}],
    )
    patient.latest_appointment = {"appointment_date": "2024-03-10T14:00:00Z"}
    result = to_match_result(patient, [])
    assert result.first_name == "Ana"
    assert result.age == 33
    assert result.condition == "Pulpitis"
    assert result.treatment_type == "Root canal"
    assert result.last_visit.isoformat().startswith("2024-03-10")


def test_public_shape_is_camel_case():
    payload = to_match_result(enriched({"id": "p1"}), []).model_dump(by_alias=True)
    assert set(payload) == {
        "id", "firstName", "lastName", "age", "gender",
        "lastVisit", "condition", "treatmentType", "matchScore",
    }


def test_deduplicate_first_occurrence_wins():
    first = enriched({"id": "p1", "first_name": "First"})
    duplicate = enriched({"id": "p1", "first_name": "Second"})
    other = enriched({"id": "p2", "first_name": "Other"})
    results = deduplicate_and_transform([first, other, duplicate], [])
    assert [r.id for r in results] == ["p1", "p2"]
    assert results[0].first_name == "First"
