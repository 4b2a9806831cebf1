"""
draftstore/backends.py -- Storage media for draft documents.

Two interchangeable backends sit behind :class:`StorageBackend`:

    FileBackend     one JSON file per entity plus an ``index.json`` of
                    list summaries, written atomically.
    SQLiteBackend   one row per entity holding the JSON document and its
                    summary, in a single database shared by both kinds.

Backends only move bytes.  Ids, timestamps and locking are the
repository's concern.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from draftstore.errors import NotFound, StorageError
from draftstore.utils import is_safe_id, read_json, safe_read_json, safe_write_json

logger = logging.getLogger(__name__)


INDEX_FILENAME = "index.json"


class StorageBackend(ABC):
    """Interface every storage medium implements."""

    @abstractmethod
    def read(self, entity_id: str) -> dict:
        """Return the stored document.  Raises NotFound / StorageError."""

    @abstractmethod
    def write(self, entity: dict, summary: dict) -> None:
        """Store *entity* (whole-document overwrite) and its list summary."""

    @abstractmethod
    def delete(self, entity_id: str) -> bool:
        """Remove the document.  Returns False if it was already gone."""

    @abstractmethod
    def exists(self, entity_id: str) -> bool:
        ...

    @abstractmethod
    def summaries(self) -> list[dict]:
        """Return the list summaries of every stored document, unordered."""

    def close(self) -> None:
        """Release resources.  No-op by default."""


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------

class FileBackend(StorageBackend):
    """Stores ``<root>/<id>.json`` with a summary index beside it.

    Parameters
    ----------
    root : str or pathlib.Path
        Directory for this kind's documents.  Created on first write.
    summarize : callable, optional
        ``summarize(entity) -> dict``.  Used to rebuild ``index.json``
        from the documents when the index is missing or unreadable.
    """

    def __init__(self, root, summarize: Callable[[dict], dict] | None = None):
        self.root = Path(root)
        self._summarize = summarize or _minimal_summary
        self._index_lock = threading.Lock()

    @property
    def index_path(self) -> Path:
        return self.root / INDEX_FILENAME

    def _path_for(self, entity_id) -> Path:
        if not is_safe_id(entity_id):
            raise NotFound(str(entity_id))
        return self.root / f"{entity_id}.json"

    def read(self, entity_id: str) -> dict:
        path = self._path_for(entity_id)
        try:
            data = read_json(path)
        except FileNotFoundError:
            raise NotFound(entity_id) from None
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Cannot read {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"{path} does not contain a JSON object")
        return data

    def write(self, entity: dict, summary: dict) -> None:
        try:
            path = self._path_for(entity.get("id"))
        except NotFound:
            raise StorageError(f"Refusing to store unsafe id {entity.get('id')!r}") from None
        try:
            safe_write_json(path, entity)
            with self._index_lock:
                index = self._load_index()
                index[entity["id"]] = summary
                safe_write_json(self.index_path, index)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"Cannot write {path}: {exc}") from exc

    def delete(self, entity_id: str) -> bool:
        try:
            path = self._path_for(entity_id)
        except NotFound:
            return False
        try:
            path.unlink()
            removed = True
        except FileNotFoundError:
            removed = False
        except OSError as exc:
            raise StorageError(f"Cannot delete {path}: {exc}") from exc
        with self._index_lock:
            index = self._load_index()
            if index.pop(entity_id, None) is not None:
                try:
                    safe_write_json(self.index_path, index)
                except OSError as exc:
                    raise StorageError(f"Cannot update {self.index_path}: {exc}") from exc
        return removed

    def exists(self, entity_id: str) -> bool:
        try:
            return self._path_for(entity_id).is_file()
        except NotFound:
            return False

    def summaries(self) -> list[dict]:
        with self._index_lock:
            return list(self._load_index().values())

    # -- index maintenance ------------------------------------------------

    def _load_index(self) -> dict:
        """Return the index, rebuilding it by scanning when it is unusable.

        Caller must hold ``_index_lock``.
        """
        index = safe_read_json(self.index_path)
        if isinstance(index, dict):
            return index
        return self._rebuild_index()

    def _rebuild_index(self) -> dict:
        index: dict = {}
        if not self.root.is_dir():
            return index
        logger.info("Rebuilding summary index in %s", self.root)
        for name in sorted(os.listdir(self.root)):
            if not name.endswith(".json") or name == INDEX_FILENAME:
                continue
            doc = safe_read_json(self.root / name)
            if not isinstance(doc, dict) or not doc.get("id"):
                logger.warning("Skipping unreadable document %s", name)
                continue
            index[doc["id"]] = self._summarize(doc)
        try:
            safe_write_json(self.index_path, index)
        except OSError:
            logger.exception("Could not persist rebuilt index %s", self.index_path)
        return index


def _minimal_summary(entity: dict) -> dict:
    return {
        "id": entity.get("id"),
        "name": entity.get("name", ""),
        "phase": entity.get("phase", ""),
        "created_at": entity.get("created_at", ""),
        "updated_at": entity.get("updated_at", ""),
    }


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS drafts (
    kind TEXT NOT NULL,
    id TEXT NOT NULL,
    name TEXT NOT NULL,
    phase TEXT,
    summary JSON NOT NULL,
    data JSON NOT NULL,
    created_at TEXT,
    updated_at TEXT,
    PRIMARY KEY (kind, id)
);

CREATE INDEX IF NOT EXISTS idx_drafts_updated ON drafts(kind, updated_at);
"""


class SQLiteBackend(StorageBackend):
    """Stores documents of one *kind* in an SQLite database.

    Several backends (one per kind) may share the same database file;
    each opens its own connection.  Access to the connection is
    serialised with a lock because it is shared across threads.
    """

    def __init__(self, db_path, kind: str):
        self.db_path = Path(db_path)
        self.kind = kind
        self._lock = threading.Lock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            with self._conn:
                self._conn.executescript(_SCHEMA_SQL)
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"Cannot open database {self.db_path}: {exc}") from exc

    def read(self, entity_id: str) -> dict:
        row = self._fetchone(
            "SELECT data FROM drafts WHERE kind = ? AND id = ?", (self.kind, entity_id)
        )
        if row is None:
            raise NotFound(entity_id, self.kind)
        try:
            data = json.loads(row["data"])
        except json.JSONDecodeError as exc:
            raise StorageError(f"Corrupt document {entity_id}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Document {entity_id} is not a JSON object")
        return data

    def write(self, entity: dict, summary: dict) -> None:
        try:
            payload = json.dumps(entity, ensure_ascii=False)
            summary_json = json.dumps(summary, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Document {entity.get('id')} is not serialisable: {exc}") from exc
        self._execute(
            "INSERT OR REPLACE INTO drafts "
            "(kind, id, name, phase, summary, data, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                self.kind,
                entity["id"],
                entity.get("name", ""),
                entity.get("phase"),
                summary_json,
                payload,
                entity.get("created_at"),
                entity.get("updated_at"),
            ),
        )

    def delete(self, entity_id: str) -> bool:
        cursor = self._execute(
            "DELETE FROM drafts WHERE kind = ? AND id = ?", (self.kind, entity_id)
        )
        return cursor.rowcount > 0

    def exists(self, entity_id: str) -> bool:
        row = self._fetchone(
            "SELECT 1 FROM drafts WHERE kind = ? AND id = ?", (self.kind, entity_id)
        )
        return row is not None

    def summaries(self) -> list[dict]:
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT id, summary FROM drafts WHERE kind = ?", (self.kind,)
                ).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(f"Cannot list {self.kind}s: {exc}") from exc
        result = []
        for row in rows:
            try:
                result.append(json.loads(row["summary"]))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt summary for %s", row["id"])
        return result

    def close(self) -> None:
        with self._lock:
            try:
                self._conn.close()
            except sqlite3.Error:
                logger.exception("Error closing %s", self.db_path)

    def _execute(self, sql, params):
        with self._lock:
            try:
                with self._conn:
                    return self._conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise StorageError(f"Database error on {self.db_path}: {exc}") from exc

    def _fetchone(self, sql, params):
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchone()
            except sqlite3.Error as exc:
                raise StorageError(f"Database error on {self.db_path}: {exc}") from exc
