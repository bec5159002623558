"""
Tests for clinical section parsing

Run with: python -m pytest backend/research_cohort/matching/test_clinical_sections.py -v
"""

import json

from research_cohort.matching.clinical_sections import (
    ConsultationRecord,
    Diagnosis,
    PainAssessment,
    load_json_document,
    parse_section,
)


def test_section_from_json_string_column():
    """Sections stored as JSON text in their own column are parsed."""
    row = {"pain_assessment": json.dumps({"intensity": 7, "location": "lower left molar"})}
    record = ConsultationRecord.from_row(row)
    assert record.pain_assessment.intensity == 7
    assert record.pain_assessment.location == "lower left molar"


def test_clinical_data_takes_precedence_over_column():
    row = {
        "clinical_data": {"diagnosis": {"primary": "Irreversible pulpitis"}},
        "diagnosis": {"primary": "Caries"},
    }
    record = ConsultationRecord.from_row(row)
    assert record.diagnosis.primary == "Irreversible pulpitis"


def test_clinical_data_as_json_text():
    row = {"clinical_data": json.dumps({"follow_up_data": {"required": True, "days": 14}})}
    record = ConsultationRecord.from_row(row)
    assert record.follow_up.required is True
    assert record.follow_up.days == 14


def test_malformed_section_is_no_value():
    """A broken section yields None without affecting the others."""
    row = {
        "pain_assessment": "{not json",
        "clinical_examination": {"mobility_grade": 2},
    }
    record = ConsultationRecord.from_row(row)
    assert record.pain_assessment is None
    assert record.clinical_examination.mobility_grade == 2


def test_wrong_type_is_no_value_for_that_key_only():
    pain = parse_section(PainAssessment, {"intensity": "7/10", "location": "Lower left molar"})
    assert pain.intensity is None
    assert pain.location == "Lower left molar"
    assert parse_section(PainAssessment, ["not", "an", "object"]) is None
    assert parse_section(PainAssessment, None) is None


def test_bad_nested_value_keeps_sibling_findings():
    record = ConsultationRecord.from_row({
        "clinical_examination": {
            "periodontal": {"max_pocket_depth": "5mm", "status": "Generalised gingivitis"},
            "mobility_grade": 2,
            "soft_tissue": "not an object",
        }
    })
    exam = record.clinical_examination
    assert exam.periodontal.max_pocket_depth is None
    assert exam.periodontal.status == "Generalised gingivitis"
    assert exam.mobility_grade == 2
    assert exam.soft_tissue is None


def test_bad_value_inside_diagnosis_entry():
    diagnosis = parse_section(Diagnosis, {
        "primary": "Caries",
        "final": [{"diagnosis_name": "Pulpitis", "icd_code": ["K04"]}],
    })
    assert diagnosis.primary == "Caries"
    assert diagnosis.names("final") == ["Pulpitis"]
    assert diagnosis.icd_codes() == []


def test_plain_text_diagnosis_and_treatment_plan():
    record = ConsultationRecord.from_row({
        "diagnosis": "Irreversible pulpitis",
        "treatment_plan": "Root canal treatment",
    })
    assert record.diagnosis.primary == "Irreversible pulpitis"
    assert record.diagnosis.headline() == "Irreversible pulpitis"
    assert record.diagnosis_names() == ["Irreversible pulpitis"]
    assert record.planned_procedures() == ["Root canal treatment"]


def test_plain_text_inside_clinical_data():
    record = ConsultationRecord.from_row({"clinical_data": {"diagnosis": json.dumps("Periapical abscess")}})
    assert record.diagnosis.primary == "Periapical abscess"


def test_plain_text_other_sections_stay_no_value():
    record = ConsultationRecord.from_row({"pain_assessment": "severe", "diagnosis": "   "})
    assert record.pain_assessment is None
    assert record.diagnosis is None


def test_blank_strings_read_as_missing():
    pain = parse_section(PainAssessment, {"intensity": "", "location": "  "})
    assert pain.intensity is None
    assert pain.location is None


def test_diagnosis_entries_strings_and_objects():
    diagnosis = parse_section(Diagnosis, {
        "primary": "Irreversible pulpitis",
        "final": [{"diagnosis_name": "Pulpitis", "icd_code": "K04.0"}, "Periapical abscess"],
        "provisional": "Dentin hypersensitivity",
        "prognosis": "Good",
    })
    assert diagnosis.names("final") == ["Pulpitis", "Periapical abscess"]
    assert diagnosis.names("provisional") == ["Dentin hypersensitivity"]
    assert diagnosis.icd_codes() == ["K04.0"]
    assert diagnosis.all_names()[0] == "Irreversible pulpitis"
    assert diagnosis.headline() == "Irreversible pulpitis"


def test_diagnosis_headline_falls_back_to_final():
    diagnosis = parse_section(Diagnosis, {"final": [{"diagnosis_name": "Pulpitis"}]})
    assert diagnosis.headline() == "Pulpitis"


def test_treatment_plan_shapes():
    record = ConsultationRecord.from_row({
        "treatment_plan": {
            "procedure": "Root canal treatment",
            "tooth_numbers": [36, 37],
            "estimated_duration": "90",
            "plan": ["Pulpectomy", {"procedure": "Crown"}],
        }
    })
    plan = record.treatment_plan
    assert plan.tooth_numbers == "36, 37"
    assert plan.estimated_duration == 90
    assert record.planned_procedures() == ["Pulpectomy", "Crown", "Root canal treatment"]


def test_medical_history_lists_and_flag_maps():
    record = ConsultationRecord.from_row({
        "medical_history": {
            "conditions": {"diabetes": True, "hypertension": False},
            "medications": ["Metformin", {"name": "Aspirin"}],
            "allergies": "Penicillin",
        }
    })
    history = record.medical_history
    assert history.conditions == ["diabetes"]
    assert history.medications == ["Metformin", "Aspirin"]
    assert history.allergies == ["Penicillin"]


def test_prescriptions_accept_aliases_and_drop_bad_entries():
    record = ConsultationRecord.from_row({
        "prescription_data": [
            {"medication_name": "Amoxicillin", "category": "antibiotic", "dosage": 500},
            {"name": "Ibuprofen", "category": "analgesic"},
            "not-an-entry",
        ]
    })
    names = [entry.medication_name for entry in record.prescriptions]
    assert names == ["Amoxicillin", "Ibuprofen"]
    assert record.prescriptions[0].dosage == "500"


def test_prognosis_from_diagnosis_or_column():
    assert ConsultationRecord.from_row({"diagnosis": {"prognosis": "Fair"}}).prognosis == "Fair"
    assert ConsultationRecord.from_row({"prognosis": "Poor"}).prognosis == "Poor"
    assert ConsultationRecord.from_row({}).prognosis is None


def test_load_json_document():
    assert load_json_document('{"a": 1}') == {"a": 1}
    assert load_json_document("") is None
    assert load_json_document("nope") is None
    assert load_json_document(42) is None
