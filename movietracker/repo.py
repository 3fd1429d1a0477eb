# movietracker/repo.py
import copy
import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Optional

from movietracker.models import now_iso

logger = logging.getLogger(__name__)

# --- Exceptions ---
class StoreError(Exception):
    """Backing-store read/write failure (I/O, locking, corrupt document)."""
    pass

class NotFoundError(Exception):
    """Raised when a user document does not exist."""
    pass

class _DeleteField:
    """Sentinel for update_fields: remove the key instead of setting it."""

    def __repr__(self):
        return "DELETE_FIELD"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

DELETE_FIELD = _DeleteField()

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS user_media (
    user_id TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS user_profiles (
    user_id TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
"""

def _apply_fields(data: Dict[str, Any], fields: Dict[str, Any]) -> None:
    """Apply top-level and dotted-path ("ratings.movie_42") updates in place."""
    for path, value in fields.items():
        parts = path.split(".")
        target = data
        for p in parts[:-1]:
            nxt = target.get(p)
            if not isinstance(nxt, dict):
                nxt = {}
                target[p] = nxt
            target = nxt
        if value is DELETE_FIELD:
            target.pop(parts[-1], None)
        else:
            target[parts[-1]] = value

def _union(data: Dict[str, Any], field: str, value: Any) -> bool:
    arr = data.setdefault(field, [])
    if value in arr:
        return False
    arr.append(value)
    return True

def _remove(data: Dict[str, Any], field: str, value: Any) -> int:
    arr = data.get(field) or []
    kept = [v for v in arr if v != value]
    data[field] = kept
    return len(arr) - len(kept)

# --- SQLite document store ---
class SqliteDocumentStore:
    """
    One JSON document per user in the user_media table. Every primitive does
    its read-modify-write inside a single IMMEDIATE transaction, and bumps
    the row version.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        dirname = os.path.dirname(db_path)
        if dirname:
            os.makedirs(dirname, exist_ok=True)

    @contextmanager
    def conn(self):
        try:
            con = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open store: {e}") from e
        con.row_factory = sqlite3.Row
        try:
            yield con
            con.commit()
        except sqlite3.Error as e:
            con.rollback()
            logger.error("store operation failed: %s", e)
            raise StoreError(str(e)) from e
        finally:
            con.close()

    def init_schema(self) -> None:
        with self.conn() as c:
            c.executescript(SCHEMA_SQL)

    def _load(self, c, user_id: str) -> Optional[Dict[str, Any]]:
        r = c.execute("SELECT data FROM user_media WHERE user_id = ?", (user_id,)).fetchone()
        if not r:
            return None
        try:
            return json.loads(r["data"])
        except ValueError as e:
            raise StoreError(f"corrupt document for user {user_id}") from e

    def _save(self, c, user_id: str, data: Dict[str, Any]) -> None:
        c.execute("UPDATE user_media SET data = ?, version = version + 1 WHERE user_id = ?",
                  (json.dumps(data), user_id))

    @contextmanager
    def _mutate(self, user_id: str):
        with self.conn() as c:
            c.execute("BEGIN IMMEDIATE")
            data = self._load(c, user_id)
            if data is None:
                raise NotFoundError(f"no document for user {user_id}")
            yield data
            data["lastUpdated"] = now_iso()
            self._save(c, user_id, data)

    def get_document(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self.conn() as c:
            return self._load(c, user_id)

    def get_version(self, user_id: str) -> Optional[int]:
        with self.conn() as c:
            r = c.execute("SELECT version FROM user_media WHERE user_id = ?", (user_id,)).fetchone()
            return r["version"] if r else None

    def create_document(self, user_id: str, data: Dict[str, Any]) -> None:
        with self.conn() as c:
            c.execute(
                "INSERT INTO user_media (user_id, data, version) VALUES (?, ?, 1) "
                "ON CONFLICT(user_id) DO UPDATE SET data = excluded.data, version = version + 1",
                (user_id, json.dumps(data)))

    def update_fields(self, user_id: str, fields: Dict[str, Any]) -> None:
        with self._mutate(user_id) as data:
            _apply_fields(data, fields)

    def array_union(self, user_id: str, field: str, value: Any) -> bool:
        with self._mutate(user_id) as data:
            return _union(data, field, value)

    def array_remove(self, user_id: str, field: str, value: Any) -> int:
        with self._mutate(user_id) as data:
            return _remove(data, field, value)

    # ---- Profiles (user_profiles table, no version column) ----
    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self.conn() as c:
            r = c.execute("SELECT data FROM user_profiles WHERE user_id = ?", (user_id,)).fetchone()
        if not r:
            return None
        try:
            return json.loads(r["data"])
        except ValueError as e:
            raise StoreError(f"corrupt profile for user {user_id}") from e

    def create_profile(self, user_id: str, data: Dict[str, Any]) -> bool:
        """Insert unless a profile exists. Returns True when inserted."""
        with self.conn() as c:
            cur = c.execute(
                "INSERT INTO user_profiles (user_id, data) VALUES (?, ?) ON CONFLICT(user_id) DO NOTHING",
                (user_id, json.dumps(data)))
            return cur.rowcount == 1

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> None:
        with self.conn() as c:
            c.execute("BEGIN IMMEDIATE")
            r = c.execute("SELECT data FROM user_profiles WHERE user_id = ?", (user_id,)).fetchone()
            if not r:
                raise NotFoundError(f"no profile for user {user_id}")
            data = json.loads(r["data"])
            _apply_fields(data, fields)
            c.execute("UPDATE user_profiles SET data = ? WHERE user_id = ?", (json.dumps(data), user_id))

# --- In-memory store (simple, used for unit tests) ---
class InMemoryDocumentStore:
    def __init__(self):
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, int] = {}
        self._profiles: Dict[str, Dict[str, Any]] = {}

    def _doc(self, user_id: str) -> Dict[str, Any]:
        if user_id not in self._docs:
            raise NotFoundError(f"no document for user {user_id}")
        return self._docs[user_id]

    def _touch(self, user_id: str):
        self._docs[user_id]["lastUpdated"] = now_iso()
        self._versions[user_id] += 1

    def init_schema(self): pass

    def get_document(self, user_id: str):
        d = self._docs.get(user_id)
        return copy.deepcopy(d) if d is not None else None

    def get_version(self, user_id: str): return self._versions.get(user_id)

    def create_document(self, user_id: str, data: Dict[str, Any]):
        self._docs[user_id] = copy.deepcopy(data)
        self._versions[user_id] = self._versions.get(user_id, 0) + 1

    def update_fields(self, user_id: str, fields: Dict[str, Any]):
        _apply_fields(self._doc(user_id), copy.deepcopy(fields))
        self._touch(user_id)

    def array_union(self, user_id: str, field: str, value: Any) -> bool:
        added = _union(self._doc(user_id), field, copy.deepcopy(value))
        self._touch(user_id)
        return added

    def array_remove(self, user_id: str, field: str, value: Any) -> int:
        removed = _remove(self._doc(user_id), field, value)
        self._touch(user_id)
        return removed

    def get_profile(self, user_id: str):
        p = self._profiles.get(user_id)
        return copy.deepcopy(p) if p is not None else None

    def create_profile(self, user_id: str, data: Dict[str, Any]) -> bool:
        if user_id in self._profiles:
            return False
        self._profiles[user_id] = copy.deepcopy(data)
        return True

    def update_profile(self, user_id: str, fields: Dict[str, Any]):
        if user_id not in self._profiles:
            raise NotFoundError(f"no profile for user {user_id}")
        _apply_fields(self._profiles[user_id], copy.deepcopy(fields))
