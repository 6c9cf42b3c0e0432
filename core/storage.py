# core/storage.py

"""
Storage collaborator used by the verification services.

The services only need point reads, single-field lookups, plain writes and
one conditional (compare-and-set) update. Two backends implement that
contract:

    SupabaseStorage: PostgREST tables through the service-role client
    MemoryStorage:   in-process dicts, for local development and tests

Records are plain dicts carrying their key under "id".
"""

import copy
import uuid
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from core.config import settings
from core.errors import StorageError, extract_storage_error
from core.logging_config import get_logger
from core.supabase_client import get_supabase_client
from core.utils import sanitize

log = get_logger("storage")


class Storage(ABC):
    """Key-value / document contract shared by every backend."""

    backend = "abstract"

    @abstractmethod
    def get_by_key(self, collection: str, key: str) -> Optional[dict]:
        ...

    @abstractmethod
    def find_one_by_field(self, collection: str, field: str, value: Any) -> Optional[dict]:
        ...

    @abstractmethod
    def find_by_field(self, collection: str, field: str, value: Any) -> List[dict]:
        ...

    @abstractmethod
    def list_all(self, collection: str) -> List[dict]:
        ...

    @abstractmethod
    def create_or_replace(self, collection: str, data: dict, key: Optional[str] = None) -> dict:
        ...

    @abstractmethod
    def update(self, collection: str, key: str, patch: dict) -> Optional[dict]:
        ...

    @abstractmethod
    def delete(self, collection: str, key: str) -> bool:
        ...

    @abstractmethod
    def conditional_update(
        self,
        collection: str,
        key: str,
        expected: Dict[str, Any],
        patch: dict,
    ) -> bool:
        """
        Apply ``patch`` only if every field in ``expected`` currently holds
        the given value. Returns True when the row was updated.
        """

    def exists(self, collection: str, key: str) -> bool:
        if not key:
            return False
        return self.get_by_key(collection, key) is not None


# ============================================================
# In-memory backend
# ============================================================
class MemoryStorage(Storage):
    """
    Thread-safe dict-of-dicts store.

    Field equality is type-sensitive ("1234" does not equal 1234), the same
    way a document store compares imported values.
    """

    backend = "memory"

    def __init__(self):
        self._collections: Dict[str, Dict[str, dict]] = {}
        self._lock = Lock()

    def _rows(self, collection: str) -> Dict[str, dict]:
        return self._collections.setdefault(collection, {})

    def get_by_key(self, collection, key):
        if key is None or key == "":
            return None
        with self._lock:
            row = self._rows(collection).get(str(key))
            return copy.deepcopy(row) if row is not None else None

    def find_one_by_field(self, collection, field, value):
        with self._lock:
            for row in self._rows(collection).values():
                if field in row and _same(row[field], value):
                    return copy.deepcopy(row)
        return None

    def find_by_field(self, collection, field, value):
        with self._lock:
            return [
                copy.deepcopy(row)
                for row in self._rows(collection).values()
                if field in row and _same(row[field], value)
            ]

    def list_all(self, collection):
        with self._lock:
            return [copy.deepcopy(row) for row in self._rows(collection).values()]

    def create_or_replace(self, collection, data, key=None):
        key = str(key or data.get("id") or uuid.uuid4())
        row = sanitize(dict(data))
        row["id"] = key
        with self._lock:
            self._rows(collection)[key] = row
            return copy.deepcopy(row)

    def update(self, collection, key, patch):
        with self._lock:
            row = self._rows(collection).get(str(key))
            if row is None:
                return None
            row.update(sanitize(dict(patch)))
            return copy.deepcopy(row)

    def delete(self, collection, key):
        with self._lock:
            return self._rows(collection).pop(str(key), None) is not None

    def conditional_update(self, collection, key, expected, patch):
        with self._lock:
            row = self._rows(collection).get(str(key))
            if row is None:
                return False
            for field, value in expected.items():
                if not _same(row.get(field), value):
                    return False
            row.update(sanitize(dict(patch)))
            return True


UNDEFINED_COLUMN_CODES = ("42703", "PGRST204")


def _is_undefined_column(error: Exception) -> bool:
    return str(getattr(error, "code", "") or "") in UNDEFINED_COLUMN_CODES


def _same(stored: Any, wanted: Any) -> bool:
    if stored is None or wanted is None:
        return stored is wanted
    # type check keeps True from matching 1 and "1234" from matching 1234
    return type(stored) is type(wanted) and stored == wanted


# ============================================================
# Supabase / PostgREST backend
# ============================================================
class SupabaseStorage(Storage):
    """
    PostgREST-backed storage.

    conditional_update is a single ``UPDATE … WHERE id = :key AND <expected>``
    that returns the updated rows; an empty result means the precondition
    did not hold.
    """

    backend = "supabase"

    def __init__(self, client_factory: Callable = get_supabase_client):
        self._client_factory = client_factory
        self._client = None

    def _table(self, collection: str):
        if self._client is None:
            self._client = self._client_factory()
        if self._client is None:
            raise StorageError("Supabase client not configured")
        return self._client.table(collection)

    @staticmethod
    def _match(query, field: str, value: Any):
        if value is None:
            return query.is_(field, "null")
        return query.eq(field, value)

    def _run(self, operation: str, fn: Callable):
        try:
            return fn()
        except StorageError:
            raise
        except Exception as e:
            detail = extract_storage_error(e)
            log.error(f"{operation}: {detail}")
            raise StorageError(f"{operation}: {detail}") from e

    def get_by_key(self, collection, key):
        if key is None or key == "":
            return None

        def fetch():
            result = self._table(collection).select("*").eq("id", key).limit(1).execute()
            return result.data[0] if result.data else None

        return self._run(f"Failed to fetch {collection}/{key}", fetch)

    def find_one_by_field(self, collection, field, value):
        def fetch():
            query = self._match(self._table(collection).select("*"), field, value)
            try:
                result = query.limit(1).execute()
            except Exception as e:
                # Alias columns only exist on some imports
                if _is_undefined_column(e):
                    log.debug(f"{collection} has no column {field!r}")
                    return None
                raise
            return result.data[0] if result.data else None

        return self._run(f"Failed to query {collection}.{field}", fetch)

    def find_by_field(self, collection, field, value):
        def fetch():
            query = self._match(self._table(collection).select("*"), field, value)
            return query.execute().data or []

        return self._run(f"Failed to query {collection}.{field}", fetch)

    def list_all(self, collection):
        return self._run(
            f"Failed to list {collection}",
            lambda: self._table(collection).select("*").execute().data or [],
        )

    def create_or_replace(self, collection, data, key=None):
        payload = sanitize(dict(data))
        payload["id"] = str(key or data.get("id") or uuid.uuid4())

        def write():
            result = self._table(collection).upsert(payload).execute()
            return result.data[0] if result.data else payload

        return self._run(f"Failed to write {collection}", write)

    def update(self, collection, key, patch):
        def write():
            result = (
                self._table(collection)
                .update(sanitize(dict(patch)))
                .eq("id", key)
                .execute()
            )
            return result.data[0] if result.data else None

        return self._run(f"Failed to update {collection}/{key}", write)

    def delete(self, collection, key):
        def write():
            result = self._table(collection).delete().eq("id", key).execute()
            return bool(result.data)

        return self._run(f"Failed to delete {collection}/{key}", write)

    def conditional_update(self, collection, key, expected, patch):
        def write():
            query = self._table(collection).update(sanitize(dict(patch))).eq("id", key)
            for field, value in expected.items():
                query = self._match(query, field, value)
            result = query.execute()
            return bool(result.data)

        return self._run(f"Failed conditional update on {collection}/{key}", write)


# ============================================================
# Backend selection
# ============================================================
_memory_storage = MemoryStorage()
_supabase_storage: Optional[SupabaseStorage] = None


def get_storage() -> Storage:
    """Storage backend selected by STORAGE_BACKEND."""
    global _supabase_storage

    if settings.STORAGE_BACKEND == "memory":
        return _memory_storage

    if _supabase_storage is None:
        _supabase_storage = SupabaseStorage()
    return _supabase_storage
