"""
Tests for the research HTTP routes

Run with: python -m pytest backend/research_cohort/api/test_routes.py -v
"""

import pytest
from fastapi.testclient import TestClient

from main import app
from research_cohort.services.auth import AuthenticatedUser, get_current_user
from research_cohort.services.record_store import get_record_store

BASE = "/api/v1/research"


@pytest.fixture
def caller(dentist):
    return {"user": dentist}


@pytest.fixture
def client(project_store, caller):
    app.dependency_overrides[get_record_store] = lambda: project_store
    app.dependency_overrides[get_current_user] = lambda: caller["user"]
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_root_and_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["status"] == "running"


def test_match_requires_authentication(client, caller):
    caller["user"] = None
    response = client.post(f"{BASE}/patients/match", json={"criteria": []})
    assert response.status_code == 401
    assert response.json()["detail"] == "User not authenticated"


def test_match_patients_returns_camel_case(client):
    response = client.post(f"{BASE}/patients/match", json={
        "criteria": [{"field": "age", "operator": "greater_than", "value": 30, "dataType": "number"}]
    })
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["count"] == 2
    patient = body["patients"][0]
    assert {"firstName", "lastName", "lastVisit", "treatmentType", "matchScore"} <= set(patient)
    assert patient["matchScore"] == 100
    assert patient["condition"] == "No diagnosis recorded"


def test_match_rejects_unknown_operator(client):
    response = client.post(f"{BASE}/patients/match", json={
        "criteria": [{"field": "age", "operator": "roughly", "value": 30}]
    })
    assert response.status_code == 422


def test_project_lifecycle(client):
    created = client.post(f"{BASE}/projects", json={
        "name": "Perio study",
        "tags": ["perio"],
        "filterCriteria": [{"field": "periodontal_pocket_depth", "operator": "greater_than", "value": 4}],
    })
    assert created.status_code == 201
    project = created.json()["project"]
    assert project["status"] == "draft"
    assert project["filterCriteria"][0]["field"] == "periodontal_pocket_depth"
    project_id = project["id"]

    listed = client.get(f"{BASE}/projects").json()["projects"]
    assert project_id in [p["id"] for p in listed]

    patched = client.patch(f"{BASE}/projects/{project_id}", json={"description": "Pocket depth > 4mm"})
    assert patched.json()["project"]["description"] == "Pocket depth > 4mm"

    status = client.put(f"{BASE}/projects/{project_id}/status", json={"status": "active"})
    assert status.json() == {"success": True}
    assert client.get(f"{BASE}/projects/{project_id}").json()["project"]["status"] == "active"

    assert client.delete(f"{BASE}/projects/{project_id}").json() == {"success": True}
    assert client.get(f"{BASE}/projects/{project_id}").status_code == 403


def test_foreign_project_is_forbidden(client, caller, other_dentist):
    caller["user"] = other_dentist
    response = client.get(f"{BASE}/projects/project-1")
    assert response.status_code == 403
    assert response.json()["detail"] == "Project not found or access denied"


def test_non_dentist_cannot_create_project(client, caller, dentist):
    caller["user"] = AuthenticatedUser(id=dentist.id, role="patient", status="active")
    response = client.post(f"{BASE}/projects", json={"name": "Nope"})
    assert response.status_code == 403


def test_cohort_endpoints(client):
    url = f"{BASE}/projects/project-1/cohort"
    assert client.post(url, json={"patientId": "patient-2", "groupName": "Group1"}).json() == {"success": True}
    assert client.post(url, json={"patientId": "patient-2", "groupName": "Group2"}).status_code == 200
    assert client.post(url, json={"patientId": "patient-1"}).status_code == 200

    members = client.get(url).json()["patients"]
    assert [(m["anonymousId"], m["groupName"]) for m in members] == [("P001", "Group2"), ("P002", "Control")]

    assert client.delete(f"{url}/patient-2").json() == {"success": True}
    assert [m["patientId"] for m in client.get(url).json()["patients"]] == ["patient-1"]
