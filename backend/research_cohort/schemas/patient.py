from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .common import CamelModel


class MatchResult(CamelModel):
    """One matching patient, as shown in the cohort builder."""
    id: str
    first_name: str = "Unknown"
    last_name: str = "Unknown"
    age: int = 0
    gender: str = "Not specified"
    last_visit: Optional[datetime] = None
    condition: str = "No diagnosis recorded"
    treatment_type: Optional[str] = None
    match_score: int = Field(100, ge=0, le=100)


class PatientMatchResponse(CamelModel):
    success: bool = True
    patients: List[MatchResult] = Field(default_factory=list)
    count: int = 0


class CohortPatient(CamelModel):
    """A cohort membership joined with the patient's display data."""
    id: str
    patient_id: str
    anonymous_id: str
    group_name: str
    status: str = "included"
    inclusion_date: Optional[datetime] = None
    first_name: str = "Unknown"
    last_name: str = "Unknown"
    age: int = 0


class CohortPatientsResponse(CamelModel):
    success: bool = True
    patients: List[CohortPatient] = Field(default_factory=list)


class AddToCohortRequest(CamelModel):
    patient_id: str
    group_name: str = "Control"
