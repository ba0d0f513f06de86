"""Persistent store contract and the in-memory implementation.

The runtime talks to storage only through the ``Store`` protocol: single-record
``get``/``insert``/``patch``/``delete`` plus ``query`` over an index. Records are
plain dicts in the camelCase shape produced by the model ``to_dict`` methods.
Each single-record write is atomic; nothing spans multiple records, and
concurrent edits of the same record resolve as last write wins.
"""

import copy
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional

from typing_extensions import Protocol

Record = Dict[str, Any]
Predicate = Callable[[Record], bool]

FORMS = "forms"
SUBMISSIONS = "submissions"
USERS = "users"
SESSIONS = "sessions"

# Index name -> (table, field)
INDEXES: Dict[str, tuple] = {
    "by_creator": (FORMS, "createdBy"),
    "by_form": (SUBMISSIONS, "formId"),
    "by_token": (USERS, "tokenIdentifier"),
    "by_user": (SESSIONS, "userId"),
}

ID_PREFIXES = {
    FORMS: "form",
    SUBMISSIONS: "sub",
    USERS: "user",
    SESSIONS: "sess",
}


class Store(Protocol):
    """Narrow interface the runtime needs from a document store."""

    def get(self, table: str, record_id: str) -> Optional[Record]:
        ...

    def insert(self, table: str, record: Record) -> str:
        ...

    def patch(self, table: str, record_id: str, fields: Record) -> None:
        ...

    def query(self, index: str, value: Any, predicate: Optional[Predicate] = None) -> List[Record]:
        ...

    def delete(self, table: str, record_id: str) -> None:
        ...


class MemoryStore:
    """Thread-safe in-memory Store.

    Records are copied on the way in and out so callers never share mutable
    state with the store.

    Examples:
        >>> store = MemoryStore()
        >>> form_id = store.insert("forms", {"title": "Contact", "createdBy": "user_1"})
        >>> store.get("forms", form_id)["title"]
        'Contact'
        >>> len(store.query("by_creator", "user_1"))
        1
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Record]] = {
            FORMS: {},
            SUBMISSIONS: {},
            USERS: {},
            SESSIONS: {},
        }
        self._lock = threading.Lock()

    def _table(self, table: str) -> Dict[str, Record]:
        try:
            return self._tables[table]
        except KeyError:
            raise KeyError(f"Unknown table: {table}") from None

    def get(self, table: str, record_id: str) -> Optional[Record]:
        with self._lock:
            record = self._table(table).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def insert(self, table: str, record: Record) -> str:
        record_id = record.get("id") or f"{ID_PREFIXES[table]}_{uuid.uuid4().hex[:16]}"
        stored = copy.deepcopy(record)
        stored["id"] = record_id
        with self._lock:
            rows = self._table(table)
            if record_id in rows:
                raise ValueError(f"Duplicate id {record_id} in {table}")
            rows[record_id] = stored
        return record_id

    def patch(self, table: str, record_id: str, fields: Record) -> None:
        with self._lock:
            rows = self._table(table)
            if record_id not in rows:
                raise KeyError(f"{table}/{record_id} does not exist")
            updated = dict(rows[record_id])
            updated.update(copy.deepcopy(fields))
            updated["id"] = record_id
            rows[record_id] = updated

    def query(self, index: str, value: Any, predicate: Optional[Predicate] = None) -> List[Record]:
        table, key = INDEXES[index]
        with self._lock:
            matches = [
                copy.deepcopy(r) for r in self._table(table).values() if r.get(key) == value
            ]
        if predicate is not None:
            matches = [r for r in matches if predicate(r)]
        return matches

    def delete(self, table: str, record_id: str) -> None:
        with self._lock:
            self._table(table).pop(record_id, None)


__all__ = [
    "FORMS",
    "SUBMISSIONS",
    "USERS",
    "SESSIONS",
    "INDEXES",
    "Record",
    "Store",
    "MemoryStore",
]
