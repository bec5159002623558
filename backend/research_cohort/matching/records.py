"""
Enriched patient record used by the predicate registry and the scorer.

A patient row is joined in memory with whatever clinical sources the criteria
need. ``merged_sources`` records which sources were actually merged: a source
that failed to load (or was never requested) makes every predicate on that
source evaluate to False.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from .clinical_sections import ConsultationRecord, parse_datetime

DAYS_PER_YEAR = 365.25


def calculate_age(date_of_birth: Any, now: Optional[datetime] = None) -> Optional[int]:
    """Whole years since birth: floor((now - dob) / 365.25 days). None without a usable DOB."""
    dob = parse_datetime(date_of_birth)
    if dob is None:
        return None
    now = now or datetime.now(timezone.utc)
    elapsed_days = (now - dob).total_seconds() / 86400
    return math.floor(elapsed_days / DAYS_PER_YEAR)


def latest_row(rows: List[Dict[str, Any]], *date_keys: str) -> Optional[Dict[str, Any]]:
    """Most recent row by the first present date key; rows without any date sort last."""
    epoch = datetime.min.replace(tzinfo=timezone.utc)

    def sort_key(row: Dict[str, Any]) -> datetime:
        for key in date_keys:
            parsed = parse_datetime(row.get(key))
            if parsed is not None:
                return parsed
        return epoch

    if not rows:
        return None
    return max(rows, key=sort_key)


@dataclass
class EnrichedPatient:
    """A patient row plus the clinical sources merged onto it."""
    row: Dict[str, Any]
    consultation: Optional[ConsultationRecord] = None
    treatments: List[Dict[str, Any]] = field(default_factory=list)
    tooth_diagnoses: List[Dict[str, Any]] = field(default_factory=list)
    latest_appointment: Optional[Dict[str, Any]] = None
    appointment_count: int = 0
    merged_sources: Set[str] = field(default_factory=set)
    now: Optional[datetime] = None

    @property
    def id(self) -> str:
        return str(self.row.get("id"))

    def has_source(self, source: str) -> bool:
        return source in self.merged_sources

    @property
    def age(self) -> int:
        """Derived age; 0 when the date of birth is missing or unparseable."""
        age = calculate_age(self.row.get("date_of_birth"), self.now)
        return age if age is not None else 0

    @property
    def last_visit(self) -> Optional[datetime]:
        if self.latest_appointment:
            visit = parse_datetime(self.latest_appointment.get("appointment_date"))
            if visit is not None:
                return visit
        return parse_datetime(self.row.get("created_at"))

    @property
    def latest_treatment(self) -> Optional[Dict[str, Any]]:
        return latest_row(self.treatments, "completed_at", "created_at")

    def treatment_values(self, key: str) -> List[Any]:
        return [treatment.get(key) for treatment in self.treatments]

    def tooth_values(self, key: str) -> List[Any]:
        return [tooth.get(key) for tooth in self.tooth_diagnoses]
