from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException

from ...schemas.common import ACCESS_DENIED, NOT_AUTHENTICATED, OperationError, OperationSuccess
from ...schemas.criteria import MatchRequest
from ...schemas.patient import AddToCohortRequest, CohortPatientsResponse, PatientMatchResponse
from ...schemas.research import (
    ProjectListResponse,
    ProjectResponse,
    ResearchProjectCreate,
    ResearchProjectUpdate,
    StatusUpdate,
)
from ...services import cohort_service, research_projects
from ...services.auth import AuthenticatedUser, get_current_user
from ...services.patient_matching import find_matching_patients
from ...services.record_store import RecordStore, get_record_store

router = APIRouter()


def _status_code(error: str) -> int:
    if error == NOT_AUTHENTICATED:
        return 401
    if error == ACCESS_DENIED or error.startswith("Only active dentists"):
        return 403
    return 400


def _unwrap(result: Union[OperationError, object]):
    """Service results pass through; OperationError becomes an HTTPException."""
    if isinstance(result, OperationError):
        raise HTTPException(status_code=_status_code(result.error), detail=result.error)
    return result


# =============================================================================
# PATIENT MATCHING
# =============================================================================

@router.post("/patients/match", response_model=PatientMatchResponse)
def match_patients(
    request: MatchRequest,
    store: RecordStore = Depends(get_record_store),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    """
    Find patients satisfying every criterion.

    Clinical fields are resolved against each patient's latest consultation,
    treatments, tooth diagnoses and latest appointment. Infrastructure
    failures degrade to demographic-only filtering rather than an error.
    """
    return _unwrap(find_matching_patients(store, user, request.criteria))


# =============================================================================
# PROJECTS
# =============================================================================

@router.get("/projects", response_model=ProjectListResponse)
def list_projects(
    store: RecordStore = Depends(get_record_store),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    return _unwrap(research_projects.list_projects(store, user))


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(
    data: ResearchProjectCreate,
    store: RecordStore = Depends(get_record_store),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    return _unwrap(research_projects.create_project(store, user, data))


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str,
    store: RecordStore = Depends(get_record_store),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    return _unwrap(research_projects.get_project(store, user, project_id))


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: str,
    changes: ResearchProjectUpdate,
    store: RecordStore = Depends(get_record_store),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    return _unwrap(research_projects.update_project(store, user, project_id, changes))


@router.delete("/projects/{project_id}", response_model=OperationSuccess)
def delete_project(
    project_id: str,
    store: RecordStore = Depends(get_record_store),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    return _unwrap(research_projects.delete_project(store, user, project_id))


@router.put("/projects/{project_id}/status", response_model=OperationSuccess)
def update_project_status(
    project_id: str,
    update: StatusUpdate,
    store: RecordStore = Depends(get_record_store),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    return _unwrap(research_projects.update_project_status(store, user, project_id, update.status))


# =============================================================================
# COHORT
# =============================================================================

@router.get("/projects/{project_id}/cohort", response_model=CohortPatientsResponse)
def get_cohort(
    project_id: str,
    store: RecordStore = Depends(get_record_store),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    return _unwrap(cohort_service.get_cohort_patients(store, user, project_id))


@router.post("/projects/{project_id}/cohort", response_model=OperationSuccess)
def add_to_cohort(
    project_id: str,
    request: AddToCohortRequest,
    store: RecordStore = Depends(get_record_store),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    """Add a patient, or move an existing member to another group."""
    return _unwrap(cohort_service.add_patient_to_cohort(
        store, user, project_id, request.patient_id, request.group_name
    ))


@router.delete("/projects/{project_id}/cohort/{patient_id}", response_model=OperationSuccess)
def remove_from_cohort(
    project_id: str,
    patient_id: str,
    store: RecordStore = Depends(get_record_store),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    return _unwrap(cohort_service.remove_patient_from_cohort(store, user, project_id, patient_id))
