"""Shared fixtures: users, patient rows and in-memory stores (optionally failing)."""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import pytest

from research_cohort.services.auth import AuthenticatedUser
from research_cohort.services.memory_store import InMemoryRecordStore
from research_cohort.services.record_store import RecordStoreError


def dob_for_age(age: int) -> str:
    """A date of birth that makes the patient exactly ``age`` today (a month past the birthday)."""
    born = datetime.now(timezone.utc) - timedelta(days=age * 365.25 + 30)
    return born.date().isoformat()


class FailingStore(InMemoryRecordStore):
    """
    In-memory store whose ``select`` fails for chosen tables.

    ``failures`` maps table -> number of selects to fail (None = always).
    """

    def __init__(self, tables=None, failures: Optional[Dict[str, Optional[int]]] = None, **kwargs):
        super().__init__(tables, **kwargs)
        self.failures = dict(failures or {})

    def select(self, table, **kwargs):
        if table in self.failures:
            remaining = self.failures[table]
            if remaining is None or remaining > 0:
                if remaining is not None:
                    self.failures[table] = remaining - 1
                raise RecordStoreError(f"simulated outage on {table}")
        return super().select(table, **kwargs)


@pytest.fixture
def dentist():
    return AuthenticatedUser(id="dentist-1", role="dentist", status="active")


@pytest.fixture
def other_dentist():
    return AuthenticatedUser(id="dentist-2", role="dentist", status="active")


@pytest.fixture
def make_patient():
    counter = {"n": 0}

    def factory(age: Optional[int] = 30, **columns):
        counter["n"] += 1
        n = counter["n"]
        row = {
            "id": f"patient-{n}",
            "first_name": f"First{n}",
            "last_name": f"Last{n}",
            "gender": "female",
            "date_of_birth": dob_for_age(age) if age is not None else None,
            "created_at": f"2024-01-{n:02d}T09:00:00+00:00",
        }
        row.update(columns)
        return row

    return factory


@pytest.fixture
def make_store():
    def factory(failures: Optional[Dict[str, Optional[int]]] = None, **tables):
        if failures:
            return FailingStore(tables, failures=failures)
        return InMemoryRecordStore(tables)

    return factory


@pytest.fixture
def project_store(make_store, make_patient, dentist):
    """A store with one project owned by ``dentist`` and three patients."""
    patients = [make_patient(age=25), make_patient(age=31), make_patient(age=40)]
    return make_store(
        patients=patients,
        research_projects=[{
            "id": "project-1",
            "dentist_id": dentist.id,
            "name": "Pulpitis outcomes",
            "status": "active",
            "filter_criteria": "[]",
            "created_at": "2024-02-01T00:00:00+00:00",
            "updated_at": "2024-02-01T00:00:00+00:00",
        }],
    )
