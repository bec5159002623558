"""
Patient Enrichment Pipeline

Fetches the newest patients, then, for each clinical source the criteria
need, fetches the related rows for those patients (sequentially, capped) and
merges them in memory. A failing source is logged and skipped; the patients
then simply lack that source. Failure of the base patient fetch propagates.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..core.config import settings
from ..matching.clinical_sections import ConsultationRecord
from ..matching.field_classifier import APPOINTMENTS, CONSULTATIONS, TOOTH_DIAGNOSES, TREATMENTS
from ..matching.records import EnrichedPatient, latest_row
from .record_store import RecordStore, RecordStoreError, Row

logger = logging.getLogger(__name__)

PATIENTS_TABLE = "patients"

# source -> (table, settings attribute holding the row cap)
SOURCE_TABLES: Dict[str, tuple] = {
    CONSULTATIONS: ("consultations", "CONSULTATION_FETCH_LIMIT"),
    TREATMENTS: ("treatments", "TREATMENT_FETCH_LIMIT"),
    TOOTH_DIAGNOSES: ("tooth_diagnoses", "TOOTH_DIAGNOSIS_FETCH_LIMIT"),
    APPOINTMENTS: ("appointments", "APPOINTMENT_FETCH_LIMIT"),
}

# Fixed fetch order
SOURCE_ORDER = [CONSULTATIONS, TREATMENTS, TOOTH_DIAGNOSES, APPOINTMENTS]


def fetch_base_patients(store: RecordStore) -> List[Row]:
    """Newest patients first, capped."""
    return store.select(
        PATIENTS_TABLE,
        order_by="created_at",
        descending=True,
        limit=settings.PATIENT_FETCH_LIMIT,
    )


def fetch_source_rows(store: RecordStore, source: str, patient_ids: List[Any]) -> Dict[str, List[Row]]:
    """Rows of one source for the given patients, grouped by patient id."""
    table, limit_setting = SOURCE_TABLES[source]
    rows = store.select(table, in_=("patient_id", patient_ids), limit=getattr(settings, limit_setting))
    grouped: Dict[str, List[Row]] = defaultdict(list)
    for row in rows:
        grouped[str(row.get("patient_id"))].append(row)
    return grouped


def _merge_consultations(patient: EnrichedPatient, rows: List[Row]) -> None:
    latest = latest_row(rows, "consultation_date", "created_at")
    patient.consultation = ConsultationRecord.from_row(latest) if latest else None


def _merge_treatments(patient: EnrichedPatient, rows: List[Row]) -> None:
    patient.treatments = rows


def _merge_tooth_diagnoses(patient: EnrichedPatient, rows: List[Row]) -> None:
    patient.tooth_diagnoses = rows


def _merge_appointments(patient: EnrichedPatient, rows: List[Row]) -> None:
    patient.latest_appointment = latest_row(rows, "appointment_date", "created_at")
    patient.appointment_count = len(rows)


MERGERS: Dict[str, Callable[[EnrichedPatient, List[Row]], None]] = {
    CONSULTATIONS: _merge_consultations,
    TREATMENTS: _merge_treatments,
    TOOTH_DIAGNOSES: _merge_tooth_diagnoses,
    APPOINTMENTS: _merge_appointments,
}


def enrich_patients(
    store: RecordStore,
    rows: List[Row],
    sources: Iterable[str],
    now: Optional[datetime] = None,
) -> List[EnrichedPatient]:
    """
    Wrap patient rows and merge the requested sources onto them.

    Args:
        store: Record store to read related tables from
        rows: Base patient rows
        sources: Required sources (see ``field_classifier``)
        now: Reference time for age calculation (defaults to the current time)

    Returns:
        One EnrichedPatient per row, in input order
    """
    patients = [EnrichedPatient(row=row, now=now) for row in rows]
    wanted = set(sources)
    if not patients or not wanted:
        return patients

    patient_ids = [row.get("id") for row in rows]
    for source in SOURCE_ORDER:
        if source not in wanted:
            continue
        try:
            grouped = fetch_source_rows(store, source, patient_ids)
        except RecordStoreError as e:
            logger.warning("Skipping %s: fetch failed (%s)", source, e)
            continue

        merge = MERGERS[source]
        for patient in patients:
            merge(patient, grouped.get(patient.id, []))
            patient.merged_sources.add(source)
        logger.debug("Merged %s for %d patients", source, len(grouped))
    return patients
