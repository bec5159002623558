"""
Cohort Membership Manager

Adds, removes and lists the patients of a research project's cohort. Each
(project, patient) pair has at most one membership row; its anonymized id
("P001", "P002", ...) is assigned on first insertion and never changes.

The id counter relies on the store's unique constraints on
(project_id, patient_id) and (project_id, anonymous_id): a conflicting insert
either becomes an update of the existing membership or retries with the next
number.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from ..core.config import settings
from ..matching.records import calculate_age
from ..schemas.common import ACCESS_DENIED, OperationError, OperationSuccess
from ..schemas.patient import CohortPatient, CohortPatientsResponse
from .auth import AuthenticatedUser, require_user
from .record_store import DuplicateRecordError, RecordStore, RecordStoreError
from .research_projects import find_owned_project

logger = logging.getLogger(__name__)

COHORTS_TABLE = "research_cohorts"
PATIENTS_TABLE = "patients"
STATUS_INCLUDED = "included"
DEFAULT_GROUP = "Control"


def format_anonymous_id(number: int) -> str:
    return f"P{number:03d}"


def _membership_key(project_id: str, patient_id: str) -> dict:
    return {"project_id": project_id, "patient_id": patient_id}


def _existing_membership(store: RecordStore, project_id: str, patient_id: str) -> Optional[dict]:
    rows = store.select(COHORTS_TABLE, eq=_membership_key(project_id, patient_id), limit=1)
    return rows[0] if rows else None


def upsert_membership(store: RecordStore, project_id: str, patient_id: str, group_name: str) -> None:
    """Insert a membership or, if the patient is already in the cohort, move it to ``group_name``."""
    key = _membership_key(project_id, patient_id)
    if _existing_membership(store, project_id, patient_id):
        store.update(COHORTS_TABLE, {"group_name": group_name}, eq=key)
        return

    number = store.count(COHORTS_TABLE, eq={"project_id": project_id}) + 1
    for _ in range(settings.COHORT_ID_MAX_ATTEMPTS):
        row = {
            **key,
            "anonymous_id": format_anonymous_id(number),
            "group_name": group_name,
            "status": STATUS_INCLUDED,
            "inclusion_date": datetime.now(timezone.utc).isoformat(),
        }
        try:
            store.insert(COHORTS_TABLE, row)
            logger.info("Added patient %s to project %s as %s", patient_id, project_id, row["anonymous_id"])
            return
        except DuplicateRecordError:
            if _existing_membership(store, project_id, patient_id):
                # concurrent add of the same patient
                store.update(COHORTS_TABLE, {"group_name": group_name}, eq=key)
                return
            logger.debug("Anonymous id %s taken in project %s", row["anonymous_id"], project_id)
            number += 1

    raise RecordStoreError(
        f"Could not assign an anonymous id in project {project_id} "
        f"after {settings.COHORT_ID_MAX_ATTEMPTS} attempts"
    )


def add_patient_to_cohort(
    store: RecordStore,
    user: Optional[AuthenticatedUser],
    project_id: str,
    patient_id: str,
    group_name: str = DEFAULT_GROUP,
) -> Union[OperationSuccess, OperationError]:
    denied = require_user(user)
    if denied:
        return denied
    try:
        if find_owned_project(store, user, project_id) is None:
            return OperationError(error=ACCESS_DENIED)
        upsert_membership(store, project_id, patient_id, group_name or DEFAULT_GROUP)
    except RecordStoreError as e:
        logger.error("Error adding patient %s to cohort %s: %s", patient_id, project_id, e)
        return OperationError(error="Failed to add patient to cohort")
    return OperationSuccess()


def remove_patient_from_cohort(
    store: RecordStore,
    user: Optional[AuthenticatedUser],
    project_id: str,
    patient_id: str,
) -> Union[OperationSuccess, OperationError]:
    """Delete the membership; removing a patient that is not a member is not an error."""
    denied = require_user(user)
    if denied:
        return denied
    try:
        if find_owned_project(store, user, project_id) is None:
            return OperationError(error=ACCESS_DENIED)
        removed = store.delete(COHORTS_TABLE, eq=_membership_key(project_id, patient_id))
    except RecordStoreError as e:
        logger.error("Error removing patient %s from cohort %s: %s", patient_id, project_id, e)
        return OperationError(error="Failed to remove patient from cohort")
    logger.info("Removed %d membership(s) for patient %s in project %s", removed, patient_id, project_id)
    return OperationSuccess()


def get_cohort_patients(
    store: RecordStore,
    user: Optional[AuthenticatedUser],
    project_id: str,
) -> Union[CohortPatientsResponse, OperationError]:
    """Included members ordered by inclusion date, with patient names and age."""
    denied = require_user(user)
    if denied:
        return denied
    try:
        if find_owned_project(store, user, project_id) is None:
            return OperationError(error=ACCESS_DENIED)
        memberships = store.select(
            COHORTS_TABLE,
            eq={"project_id": project_id, "status": STATUS_INCLUDED},
            order_by="inclusion_date",
        )
        patient_ids = [m["patient_id"] for m in memberships]
        patients = {}
        if patient_ids:
            for row in store.select(PATIENTS_TABLE, in_=("id", patient_ids)):
                patients[str(row["id"])] = row
    except RecordStoreError as e:
        logger.error("Error fetching cohort patients for %s: %s", project_id, e)
        return OperationError(error="Failed to fetch cohort patients")

    members = []
    for membership in memberships:
        patient = patients.get(str(membership["patient_id"]), {})
        age = calculate_age(patient.get("date_of_birth"))
        members.append(CohortPatient(
            id=str(membership.get("id")),
            patient_id=str(membership["patient_id"]),
            anonymous_id=membership["anonymous_id"],
            group_name=membership.get("group_name") or DEFAULT_GROUP,
            status=membership.get("status") or STATUS_INCLUDED,
            inclusion_date=membership.get("inclusion_date"),
            first_name=patient.get("first_name") or "Unknown",
            last_name=patient.get("last_name") or "Unknown",
            age=age if age is not None else 0,
        ))
    return CohortPatientsResponse(patients=members)
