"""
Record Store - table access behind a small interface

Services talk to a ``RecordStore`` rather than to a database client. The
production adapter wraps the Supabase (PostgREST) client; ``memory_store``
provides an in-process implementation for tests and local runs.

Table names may be qualified as ``"schema.table"``; unqualified names use the
configured default schema.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from postgrest.exceptions import APIError
from supabase import Client, create_client

from ..core.config import settings

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

UNIQUE_VIOLATION = "23505"


class RecordStoreError(Exception):
    """A store operation failed (network, permissions, bad query...)."""


class DuplicateRecordError(RecordStoreError):
    """An insert or update violated a unique constraint."""


class RecordStore(Protocol):
    """Minimal table interface used by the services."""

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
        ...

    def insert(self, table: str, row: Row) -> Row:
        ...

    def update(self, table: str, values: Row, *, eq: Dict[str, Any]) -> List[Row]:
        ...

    def delete(self, table: str, *, eq: Dict[str, Any]) -> int:
        ...

    def count(self, table: str, *, eq: Optional[Dict[str, Any]] = None) -> int:
        ...


def split_table_name(table: str, default_schema: str) -> Tuple[str, str]:
    """``"public.profiles"`` -> ("public", "profiles"); ``"patients"`` -> (default, "patients")."""
    if "." in table:
        schema, name = table.split(".", 1)
        return schema, name
    return default_schema, table


class SupabaseRecordStore:
    """
    RecordStore backed by supabase-py.

    Args:
        client: Configured Supabase client (service-role key on the server)
        schema: Default schema for unqualified table names
    """

    def __init__(self, client: Client, schema: str = "api"):
        self.client = client
        self.schema = schema

    def _table(self, table: str):
        schema, name = split_table_name(table, self.schema)
        return self.client.schema(schema).table(name)

    @staticmethod
    def _apply_eq(query, eq: Optional[Dict[str, Any]]):
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        return query

    def _execute(self, operation: str, table: str, query):
        try:
            return query.execute()
        except APIError as e:
            if str(getattr(e, "code", "")) == UNIQUE_VIOLATION:
                raise DuplicateRecordError(f"{operation} on {table}: {e.message}") from e
            raise RecordStoreError(f"{operation} on {table} failed: {e.message}") from e
        except Exception as e:
            raise RecordStoreError(f"{operation} on {table} failed: {e}") from e

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
        query = self._apply_eq(self._table(table).select("*"), eq)
        if in_ is not None:
            column, values = in_
            query = query.in_(column, list(values))
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        return list(self._execute("select", table, query).data or [])

    def insert(self, table: str, row: Row) -> Row:
        result = self._execute("insert", table, self._table(table).insert(row))
        return (result.data or [row])[0]

    def update(self, table: str, values: Row, *, eq: Dict[str, Any]) -> List[Row]:
        query = self._apply_eq(self._table(table).update(values), eq)
        return list(self._execute("update", table, query).data or [])

    def delete(self, table: str, *, eq: Dict[str, Any]) -> int:
        query = self._apply_eq(self._table(table).delete(), eq)
        return len(self._execute("delete", table, query).data or [])

    def count(self, table: str, *, eq: Optional[Dict[str, Any]] = None) -> int:
        query = self._apply_eq(self._table(table).select("id", count="exact"), eq)
        result = self._execute("count", table, query)
        return result.count if result.count is not None else len(result.data or [])


_store: Optional[RecordStore] = None
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Supabase client (singleton), built from the service-role credentials."""
    global _client
    if _client is None:
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise RecordStoreError("Supabase is not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY)")
        _client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
        logger.info("Supabase client initialized for %s", settings.SUPABASE_URL)
    return _client


def get_record_store() -> RecordStore:
    """Process-wide store selected by ``RECORD_STORE`` ("supabase" or "memory")."""
    global _store
    if _store is None:
        if settings.RECORD_STORE == "memory":
            from .memory_store import InMemoryRecordStore

            _store = InMemoryRecordStore()
            logger.warning("Using in-memory record store; data is not persisted")
        else:
            _store = SupabaseRecordStore(get_supabase_client(), schema=settings.SUPABASE_SCHEMA)
    return _store
