"""Database persistence for van, school and student records."""

from __future__ import annotations

import logging
from typing import Any

from ..db.supabase import get_supabase_client

TABLES: dict[str, str] = {
    "vans": "vans",
    "schools": "schools",
    "students": "students",
    "absences": "student_absences",
}


def load_records_from_database() -> dict[str, list[dict[str, Any]]] | None:
    """Load every record kind from Supabase.

    Returns None when the database is not configured or cannot be queried,
    so callers can fall back to file storage.
    """
    supabase = get_supabase_client()
    if not supabase:
        return None

    records: dict[str, list[dict[str, Any]]] = {}
    try:
        for kind, table in TABLES.items():
            response = supabase.table(table).select("id, payload").execute()
            records[kind] = [row["payload"] for row in (response.data or []) if row.get("payload")]
    except Exception as e:
        logging.warning(f"Database query failed, falling back to file storage: {e}")
        return None
    return records


def save_record_to_database(kind: str, record_id: str, payload: dict[str, Any]) -> None:
    supabase = get_supabase_client()
    if not supabase:
        return
    supabase.table(TABLES[kind]).upsert({"id": record_id, "payload": payload}).execute()


def delete_record_from_database(kind: str, record_id: str) -> None:
    supabase = get_supabase_client()
    if not supabase:
        return
    supabase.table(TABLES[kind]).delete().eq("id", record_id).execute()


def clear_records_from_database() -> int:
    """Delete every stored record. Returns the number of rows removed."""
    supabase = get_supabase_client()
    if not supabase:
        return 0

    deleted = 0
    for table in TABLES.values():
        response = supabase.table(table).delete().neq("id", "").execute()
        deleted += len(response.data or [])
    logging.info(f"Deleted {deleted} record(s) from database")
    return deleted


class SupabaseBackend:
    """Entity store backend mirroring each mutation into Supabase tables.

    ``records`` are rows already fetched while choosing the backend; they are
    handed out by the first :meth:`load` instead of querying again.
    """

    def __init__(self, records: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._records = records

    def load(self) -> dict[str, list[dict[str, Any]]]:
        records, self._records = self._records, None
        if records is None:
            records = load_records_from_database()
        if records is None:
            raise ConnectionError("Supabase records could not be loaded")
        return records

    def save(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        save_record_to_database(kind, record_id, payload)

    def delete(self, kind: str, record_id: str) -> None:
        delete_record_from_database(kind, record_id)

    def clear(self) -> None:
        clear_records_from_database()
