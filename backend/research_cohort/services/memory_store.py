"""In-process RecordStore for tests and local runs."""

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .record_store import DuplicateRecordError, Row

# Unique constraints enforced on insert/update, per table
DEFAULT_UNIQUE_CONSTRAINTS: Dict[str, List[Tuple[str, ...]]] = {
    "research_cohorts": [("project_id", "patient_id"), ("project_id", "anonymous_id")],
}


class InMemoryRecordStore:
    """
    Dict-of-lists store with the same semantics as the Supabase adapter:
    equality filters, ``in`` filter, ordering, limits and unique constraints
    (raising ``DuplicateRecordError``).
    """

    def __init__(
        self,
        tables: Optional[Dict[str, Iterable[Row]]] = None,
        unique_constraints: Optional[Dict[str, List[Tuple[str, ...]]]] = None,
    ):
        self.tables: Dict[str, List[Row]] = {}
        self.unique_constraints = (
            DEFAULT_UNIQUE_CONSTRAINTS if unique_constraints is None else unique_constraints
        )
        for name, rows in (tables or {}).items():
            self.tables[name] = [dict(row) for row in rows]

    def rows(self, table: str) -> List[Row]:
        return self.tables.setdefault(table, [])

    @staticmethod
    def _matches(row: Row, eq: Optional[Dict[str, Any]]) -> bool:
        return all(row.get(column) == value for column, value in (eq or {}).items())

    def _check_unique(self, table: str, candidate: Row, ignore: Optional[Row] = None) -> None:
        for columns in self.unique_constraints.get(table, []):
            key = tuple(candidate.get(c) for c in columns)
            if any(v is None for v in key):
                continue
            for row in self.rows(table):
                if row is ignore:
                    continue
                if tuple(row.get(c) for c in columns) == key:
                    raise DuplicateRecordError(
                        f"duplicate key value violates unique constraint on {table}{columns}"
                    )

    def select(
        self,
        table: str,
        *,
        eq: Optional[Dict[str, Any]] = None,
        in_: Optional[Tuple[str, Sequence[Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        rows = [row for row in self.rows(table) if self._matches(row, eq)]
        if in_ is not None:
            column, values = in_
            allowed = set(values)
            rows = [row for row in rows if row.get(column) in allowed]
        if order_by:
            present = [row for row in rows if row.get(order_by) is not None]
            missing = [row for row in rows if row.get(order_by) is None]
            present.sort(key=lambda row: str(row[order_by]), reverse=descending)
            # PostgREST puts NULLs last on ascending order and first on descending order
            rows = missing + present if descending else present + missing
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    def insert(self, table: str, row: Row) -> Row:
        record = dict(row)
        record.setdefault("id", str(uuid.uuid4()))
        record.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self._check_unique(table, record)
        self.rows(table).append(record)
        return copy.deepcopy(record)

    def update(self, table: str, values: Row, *, eq: Dict[str, Any]) -> List[Row]:
        updated = []
        for row in self.rows(table):
            if self._matches(row, eq):
                self._check_unique(table, {**row, **values}, ignore=row)
                row.update(values)
                updated.append(copy.deepcopy(row))
        return updated

    def delete(self, table: str, *, eq: Dict[str, Any]) -> int:
        rows = self.rows(table)
        kept = [row for row in rows if not self._matches(row, eq)]
        self.tables[table] = kept
        return len(rows) - len(kept)

    def count(self, table: str, *, eq: Optional[Dict[str, Any]] = None) -> int:
        return sum(1 for row in self.rows(table) if self._matches(row, eq))
