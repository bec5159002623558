"""
Typed views over the clinical-data document of a consultation.

Consultations carry their findings either inside a ``clinical_data`` document
or as top-level JSON columns, and both may arrive as objects or as JSON text.
Each section is parsed into its own pydantic model. A section that is missing
or not an object is "no value" (None); inside a section, a key of the wrong
type is "no value" for that key only. Diagnosis and treatment plan may also be
plain text, which becomes the primary diagnosis or a single planned procedure.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)


class ClinicalSection(BaseModel):
    """
    Base for section models: unknown keys are ignored, numbers may stand in for text.

    A key that does not fit its field reads as the field's default; sibling
    keys keep their values.
    """
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_when_invalid(cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except ValidationError as exc:
            logger.debug("Ignoring %s.%s (%d validation errors)", cls.__name__, info.field_name, exc.error_count())
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)


# =============================================================================
# DIAGNOSIS
# =============================================================================

class DiagnosisEntry(ClinicalSection):
    """Structured diagnosis entry, e.g. {"diagnosis_name": "Pulpitis", "icd_code": "K04.0"}."""
    diagnosis_name: Optional[str] = None
    name: Optional[str] = None
    icd_code: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        return self.diagnosis_name or self.name


DiagnosisItem = Union[str, DiagnosisEntry]


def diagnosis_item_name(item: DiagnosisItem) -> Optional[str]:
    if isinstance(item, DiagnosisEntry):
        return item.display_name
    return item or None


def _as_item_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    items = []
    for entry in value:
        if entry is None:
            continue
        items.append(entry if isinstance(entry, (str, dict)) else str(entry))
    return items


class Diagnosis(ClinicalSection):
    primary: Optional[str] = None
    secondary: Optional[str] = None
    provisional: List[DiagnosisItem] = []
    differential: List[DiagnosisItem] = []
    final: List[DiagnosisItem] = []
    prognosis: Optional[str] = None

    @field_validator("primary", "secondary", mode="before")
    @classmethod
    def _entry_to_name(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return value.get("diagnosis_name") or value.get("name")
        return value

    @field_validator("provisional", "differential", "final", mode="before")
    @classmethod
    def _to_item_list(cls, value: Any) -> List[Any]:
        return _as_item_list(value)

    def names(self, part: str) -> List[str]:
        """Display names of one array part ("final", "provisional", "differential")."""
        items = getattr(self, part, None) or []
        return [name for name in (diagnosis_item_name(item) for item in items) if name]

    def all_names(self) -> List[str]:
        names = [name for name in (self.primary, self.secondary) if name]
        for part in ("final", "provisional", "differential"):
            names.extend(self.names(part))
        return names

    def icd_codes(self) -> List[str]:
        codes = []
        for part in ("final", "provisional", "differential"):
            for item in getattr(self, part):
                if isinstance(item, DiagnosisEntry) and item.icd_code:
                    codes.append(item.icd_code)
        return codes

    def headline(self) -> Optional[str]:
        """Best single label for the diagnosis: primary, else the first final/provisional name."""
        if self.primary:
            return self.primary
        for part in ("final", "provisional"):
            names = self.names(part)
            if names:
                return names[0]
        return None


# =============================================================================
# PAIN / TREATMENT PLAN / EXAMINATION
# =============================================================================

class PainAssessment(ClinicalSection):
    intensity: Optional[float] = None
    location: Optional[str] = None
    duration: Optional[str] = None
    character: Optional[str] = None


class TreatmentPlan(ClinicalSection):
    procedure: Optional[str] = None
    complexity: Optional[str] = None
    tooth_numbers: Optional[str] = None
    estimated_duration: Optional[float] = None
    plan: List[str] = []

    @field_validator("tooth_numbers", mode="before")
    @classmethod
    def _join_teeth(cls, value: Any) -> Any:
        if isinstance(value, list):
            return ", ".join(str(tooth) for tooth in value)
        return value

    @field_validator("plan", mode="before")
    @classmethod
    def _plan_to_text(cls, value: Any) -> List[str]:
        procedures = []
        for entry in _as_item_list(value):
            if isinstance(entry, dict):
                entry = entry.get("procedure") or entry.get("name") or entry.get("description")
            if entry:
                procedures.append(str(entry))
        return procedures

    def procedures(self) -> List[str]:
        """Planned procedures, the free-text plan first, then the single procedure field."""
        procedures = list(self.plan)
        if self.procedure:
            procedures.append(self.procedure)
        return procedures


class Periodontal(ClinicalSection):
    max_pocket_depth: Optional[float] = None
    bleeding: Any = None
    status: Optional[str] = None


class SoftTissue(ClinicalSection):
    findings: Optional[str] = None


class ClinicalExamination(ClinicalSection):
    periodontal: Optional[Periodontal] = None
    mobility_grade: Optional[float] = None
    soft_tissue: Optional[SoftTissue] = None


# =============================================================================
# HISTORY / INVESTIGATIONS / PRESCRIPTIONS / FOLLOW-UP
# =============================================================================

def _flatten_names(value: Any) -> List[str]:
    """
    Medical-history lists are stored either as ["diabetes", ...] or as
    {"diabetes": {...} | true, "cardiovascular": false}. Keep the names that apply.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        return [str(key) for key, flag in value.items() if flag not in (None, False, "", 0)]
    names = []
    for entry in value if isinstance(value, list) else [value]:
        if isinstance(entry, dict):
            entry = entry.get("name") or entry.get("condition") or entry.get("medication")
        if entry:
            names.append(str(entry))
    return names


class MedicalHistory(ClinicalSection):
    conditions: List[str] = []
    medications: List[str] = []
    allergies: List[str] = []

    @field_validator("conditions", "medications", "allergies", mode="before")
    @classmethod
    def _names(cls, value: Any) -> List[str]:
        return _flatten_names(value)


class Radiography(ClinicalSection):
    type: Optional[str] = None


class PulpTests(ClinicalSection):
    vitality: Optional[str] = None


class ClinicalTests(ClinicalSection):
    percussion: Optional[str] = None


class Investigations(ClinicalSection):
    radiography: Optional[Radiography] = None
    pulp_tests: Optional[PulpTests] = None
    clinical_tests: Optional[ClinicalTests] = None


class PrescriptionEntry(ClinicalSection):
    medication_name: Optional[str] = None
    category: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _medication_aliases(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("medication_name"):
            name = data.get("name") or data.get("medication")
            if isinstance(name, dict):
                name = name.get("name") or name.get("type")
            data = {**data, "medication_name": name}
        return data


class FollowUp(ClinicalSection):
    required: Any = None
    days: Optional[float] = None
    reason: Optional[str] = None


# =============================================================================
# PARSING CONTRACT
# =============================================================================

SectionT = TypeVar("SectionT", bound=BaseModel)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO dates/datetimes (``Z`` suffix allowed) into aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def load_json_document(raw: Any) -> Any:
    """Return a dict/list for JSON-ish input; None when absent or not valid JSON."""
    if raw is None:
        return None
    if isinstance(raw, (dict, list)):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            logger.debug("Ignoring clinical document that is not valid JSON")
            return None
    return None


def parse_section(model: Type[SectionT], raw: Any) -> Optional[SectionT]:
    """Parse one section; None unless the document is an object."""
    document = load_json_document(raw)
    if not isinstance(document, dict):
        return None
    try:
        return model.model_validate(document)
    except ValidationError as exc:
        logger.debug("Discarding %s section (%d validation errors)", model.__name__, exc.error_count())
        return None


def plain_text(raw: Any) -> Optional[str]:
    """The text of a free-text section value; None for blanks and JSON objects/arrays."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        document = json.loads(raw)
    except ValueError:
        return raw.strip()
    if isinstance(document, str):
        return document.strip() or None
    if isinstance(document, (int, float)) and not isinstance(document, bool):
        return raw.strip()
    return None


def parse_diagnosis(raw: Any) -> Optional[Diagnosis]:
    """Diagnosis document, or free text taken as the primary diagnosis."""
    text = plain_text(raw)
    if text is not None:
        return Diagnosis(primary=text)
    return parse_section(Diagnosis, raw)


def parse_treatment_plan(raw: Any) -> Optional[TreatmentPlan]:
    """Treatment plan document, or free text taken as the single planned procedure."""
    text = plain_text(raw)
    if text is not None:
        return TreatmentPlan(plan=[text])
    return parse_section(TreatmentPlan, raw)


def parse_prescriptions(raw: Any) -> Optional[List[PrescriptionEntry]]:
    """Prescriptions are a list; each entry parses on its own and bad entries are dropped."""
    document = load_json_document(raw)
    if isinstance(document, dict):
        document = document.get("medications") or document.get("prescriptions")
    if not isinstance(document, list):
        return None
    entries = []
    for item in document:
        entry = parse_section(PrescriptionEntry, item)
        if entry is not None:
            entries.append(entry)
    return entries


# Where each section may live: key inside clinical_data, then the same-named column.
SECTION_KEYS: Dict[str, tuple] = {
    "pain_assessment": ("pain_assessment",),
    "diagnosis": ("diagnosis",),
    "treatment_plan": ("treatment_plan",),
    "clinical_examination": ("clinical_examination",),
    "medical_history": ("medical_history",),
    "investigations": ("investigations",),
    "prescription_data": ("prescription_data", "prescriptions"),
    "follow_up_data": ("follow_up_data", "follow_up"),
}


@dataclass
class ConsultationRecord:
    """The latest consultation of a patient with every section parsed once."""
    row: Dict[str, Any]
    pain_assessment: Optional[PainAssessment] = None
    diagnosis: Optional[Diagnosis] = None
    treatment_plan: Optional[TreatmentPlan] = None
    clinical_examination: Optional[ClinicalExamination] = None
    medical_history: Optional[MedicalHistory] = None
    investigations: Optional[Investigations] = None
    prescriptions: Optional[List[PrescriptionEntry]] = None
    follow_up: Optional[FollowUp] = None
    consultation_date: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ConsultationRecord":
        clinical_data = load_json_document(row.get("clinical_data"))
        if not isinstance(clinical_data, dict):
            clinical_data = {}

        def raw_section(name: str) -> Any:
            for key in SECTION_KEYS[name]:
                if clinical_data.get(key) is not None:
                    return clinical_data[key]
            for key in SECTION_KEYS[name]:
                if row.get(key) is not None:
                    return row[key]
            return None

        return cls(
            row=row,
            pain_assessment=parse_section(PainAssessment, raw_section("pain_assessment")),
            diagnosis=parse_diagnosis(raw_section("diagnosis")),
            treatment_plan=parse_treatment_plan(raw_section("treatment_plan")),
            clinical_examination=parse_section(ClinicalExamination, raw_section("clinical_examination")),
            medical_history=parse_section(MedicalHistory, raw_section("medical_history")),
            investigations=parse_section(Investigations, raw_section("investigations")),
            prescriptions=parse_prescriptions(raw_section("prescription_data")),
            follow_up=parse_section(FollowUp, raw_section("follow_up_data")),
            consultation_date=parse_datetime(row.get("consultation_date") or row.get("created_at")),
        )

    @property
    def prognosis(self) -> Optional[str]:
        if self.diagnosis and self.diagnosis.prognosis:
            return self.diagnosis.prognosis
        return self.row.get("prognosis") or None

    def diagnosis_names(self) -> List[str]:
        return self.diagnosis.all_names() if self.diagnosis else []

    def planned_procedures(self) -> List[str]:
        return self.treatment_plan.procedures() if self.treatment_plan else []
