"""
Research Project Manager

CRUD and status changes for a dentist's research projects. Only active
dentists may create projects or change their status; every other operation
requires the caller to own the project.

Filter criteria are persisted as a JSON string of filter rules
``{field, operator, value, valueType, logicConnector}``.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..schemas.common import ACCESS_DENIED, OperationError, OperationSuccess
from ..schemas.criteria import FilterCriterion
from ..schemas.research import (
    ProjectListResponse,
    ProjectResponse,
    ProjectStatus,
    ResearchProject,
    ResearchProjectCreate,
    ResearchProjectUpdate,
)
from .auth import AuthenticatedUser, require_active_dentist, require_user
from .record_store import RecordStore, RecordStoreError, Row

logger = logging.getLogger(__name__)

PROJECTS_TABLE = "research_projects"
COHORTS_TABLE = "research_cohorts"


# =============================================================================
# FILTER RULE (DE)SERIALIZATION
# =============================================================================

def criteria_to_rules(criteria: List[FilterCriterion]) -> str:
    rules = [
        {
            "field": c.field,
            "operator": getattr(c.operator, "value", c.operator),
            "value": c.value,
            "valueType": c.data_type or "string",
            "logicConnector": c.logical_operator or "AND",
        }
        for c in criteria
    ]
    return json.dumps(rules)


def rules_to_criteria(raw: Any) -> List[FilterCriterion]:
    """Stored rules back to criteria; unreadable rules are skipped."""
    if not raw:
        return []
    try:
        rules = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError:
        logger.warning("Ignoring filter_criteria that is not valid JSON")
        return []

    criteria = []
    for rule in rules if isinstance(rules, list) else []:
        if not isinstance(rule, dict):
            continue
        try:
            criteria.append(FilterCriterion(
                field=rule.get("field"),
                operator=rule.get("operator"),
                value=rule.get("value"),
                data_type=rule.get("valueType") or rule.get("dataType"),
                logical_operator=rule.get("logicConnector") or rule.get("logicalOperator"),
            ))
        except ValidationError:
            logger.warning("Skipping unreadable filter rule: %s", rule)
    return criteria


# =============================================================================
# ROW MAPPING
# =============================================================================

def to_project(row: Row, patient_count: int = 0) -> ResearchProject:
    return ResearchProject(
        id=str(row["id"]),
        name=row.get("name") or "",
        description=row.get("description") or "",
        hypothesis=row.get("hypothesis") or "",
        status=row.get("status") or ProjectStatus.DRAFT,
        start_date=row.get("start_date"),
        end_date=row.get("end_date"),
        tags=row.get("tags") or [],
        filter_criteria=rules_to_criteria(row.get("filter_criteria")),
        patient_count=patient_count,
        created_at=row.get("created_at"),
    )


def _isoformat(value: Any) -> Any:
    return value.isoformat() if hasattr(value, "isoformat") else value


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _patient_count(store: RecordStore, project_id: str) -> int:
    return store.count(COHORTS_TABLE, eq={"project_id": project_id, "status": "included"})


def find_owned_project(store: RecordStore, user: AuthenticatedUser, project_id: str) -> Optional[Row]:
    """The project row if it exists and belongs to ``user``; None otherwise."""
    rows = store.select(PROJECTS_TABLE, eq={"id": project_id}, limit=1)
    if not rows or str(rows[0].get("dentist_id")) != str(user.id):
        return None
    return rows[0]


# =============================================================================
# OPERATIONS
# =============================================================================

def create_project(
    store: RecordStore,
    user: Optional[AuthenticatedUser],
    data: ResearchProjectCreate,
) -> Union[ProjectResponse, OperationError]:
    denied = require_active_dentist(user, "create research projects")
    if denied:
        return denied

    now = _now()
    row = {
        "dentist_id": user.id,
        "name": data.name,
        "description": data.description,
        "hypothesis": data.hypothesis,
        "status": ProjectStatus(data.status).value,
        "start_date": _isoformat(data.start_date),
        "end_date": _isoformat(data.end_date),
        "tags": data.tags,
        "filter_criteria": criteria_to_rules(data.filter_criteria),
        "created_at": now,
        "updated_at": now,
    }
    try:
        created = store.insert(PROJECTS_TABLE, row)
    except RecordStoreError as e:
        logger.error("Error creating research project '%s': %s", data.name, e)
        return OperationError(error="Failed to create research project")
    logger.info("Created research project %s for dentist %s", created.get("id"), user.id)
    return ProjectResponse(project=to_project(created))


def list_projects(
    store: RecordStore,
    user: Optional[AuthenticatedUser],
) -> Union[ProjectListResponse, OperationError]:
    """The caller's projects, most recently updated first. Store failures yield an empty list."""
    denied = require_user(user)
    if denied:
        return denied
    try:
        rows = store.select(PROJECTS_TABLE, eq={"dentist_id": user.id}, order_by="updated_at", descending=True)
        projects = [to_project(row, _patient_count(store, row["id"])) for row in rows]
    except RecordStoreError as e:
        logger.warning("Returning empty project list after store error: %s", e)
        return ProjectListResponse(projects=[])
    return ProjectListResponse(projects=projects)


def get_project(
    store: RecordStore,
    user: Optional[AuthenticatedUser],
    project_id: str,
) -> Union[ProjectResponse, OperationError]:
    denied = require_user(user)
    if denied:
        return denied
    try:
        row = find_owned_project(store, user, project_id)
        if row is None:
            return OperationError(error=ACCESS_DENIED)
        project = to_project(row, _patient_count(store, project_id))
    except RecordStoreError as e:
        logger.error("Error fetching research project %s: %s", project_id, e)
        return OperationError(error="Failed to fetch research project")
    return ProjectResponse(project=project)


def update_project(
    store: RecordStore,
    user: Optional[AuthenticatedUser],
    project_id: str,
    changes: ResearchProjectUpdate,
) -> Union[ProjectResponse, OperationError]:
    """Apply the fields set on ``changes``; unset fields keep their stored value."""
    denied = require_user(user)
    if denied:
        return denied

    values: Dict[str, Any] = {}
    for name in ("name", "description", "hypothesis", "tags"):
        if getattr(changes, name) is not None:
            values[name] = getattr(changes, name)
    if changes.status is not None:
        values["status"] = ProjectStatus(changes.status).value
    if changes.start_date is not None:
        values["start_date"] = _isoformat(changes.start_date)
    if changes.end_date is not None:
        values["end_date"] = _isoformat(changes.end_date)
    if changes.filter_criteria is not None:
        values["filter_criteria"] = criteria_to_rules(changes.filter_criteria)
    values["updated_at"] = _now()

    try:
        if find_owned_project(store, user, project_id) is None:
            return OperationError(error=ACCESS_DENIED)
        updated = store.update(PROJECTS_TABLE, values, eq={"id": project_id})
        row = updated[0] if updated else find_owned_project(store, user, project_id)
        project = to_project(row, _patient_count(store, project_id))
    except RecordStoreError as e:
        logger.error("Error updating research project %s: %s", project_id, e)
        return OperationError(error="Failed to update research project")
    logger.info("Updated research project %s (%s)", project_id, ", ".join(sorted(values)))
    return ProjectResponse(project=project)


def delete_project(
    store: RecordStore,
    user: Optional[AuthenticatedUser],
    project_id: str,
) -> Union[OperationSuccess, OperationError]:
    """Delete the project and, first, its cohort memberships."""
    denied = require_user(user)
    if denied:
        return denied
    try:
        if find_owned_project(store, user, project_id) is None:
            return OperationError(error=ACCESS_DENIED)
        store.delete(COHORTS_TABLE, eq={"project_id": project_id})
        store.delete(PROJECTS_TABLE, eq={"id": project_id})
    except RecordStoreError as e:
        logger.error("Error deleting research project %s: %s", project_id, e)
        return OperationError(error="Failed to delete research project")
    logger.info("Deleted research project %s", project_id)
    return OperationSuccess()


def update_project_status(
    store: RecordStore,
    user: Optional[AuthenticatedUser],
    project_id: str,
    status: ProjectStatus,
) -> Union[OperationSuccess, OperationError]:
    """Set any status directly; there is no transition graph."""
    denied = require_active_dentist(user, "update research projects")
    if denied:
        return denied
    try:
        if find_owned_project(store, user, project_id) is None:
            return OperationError(error=ACCESS_DENIED)
        store.update(
            PROJECTS_TABLE,
            {"status": ProjectStatus(status).value, "updated_at": _now()},
            eq={"id": project_id},
        )
    except RecordStoreError as e:
        logger.error("Error updating status of research project %s: %s", project_id, e)
        return OperationError(error="Failed to update project status")
    logger.info("Research project %s is now %s", project_id, ProjectStatus(status).value)
    return OperationSuccess()
