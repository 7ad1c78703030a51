"""Process-wide entity store with a database-first, file-fallback backend."""

from __future__ import annotations

import logging
from functools import lru_cache

from ..config import settings
from ..db.supabase import get_supabase_client
from ..persistence.database import SupabaseBackend, load_records_from_database
from ..persistence.filesystem import JsonStoreFile
from .entity_store import EntityStore, StoreBackend


def _select_backend() -> StoreBackend | None:
    if get_supabase_client() is not None:
        records = load_records_from_database()
        if records is not None:
            logging.info("Entity store backed by Supabase")
            return SupabaseBackend(records)
        if settings.store_file is not None:
            logging.warning(f"Supabase unavailable, entity store backed by file {settings.store_file}")
            return JsonStoreFile(settings.store_file)
        logging.warning("Supabase unavailable and no store file configured; entity store running in memory only")
        return None
    if settings.store_file is not None:
        logging.info(f"Entity store backed by file {settings.store_file}")
        return JsonStoreFile(settings.store_file)
    logging.info("Entity store running in memory only")
    return None


@lru_cache(maxsize=1)
def get_entity_store() -> EntityStore:
    return EntityStore(backend=_select_backend())
