"""
Tests for draftstore/backends.py -- SQLiteBackend, and both backends
behaving the same through the repository.
"""

import sqlite3

import pytest

from draftstore.backends import SQLiteBackend
from draftstore.errors import NotFound, StorageError


class TestSQLiteBackend:
    """Tests for the raw SQLite backend."""

    def test_write_read_delete(self, tmp_path):
        backend = SQLiteBackend(tmp_path / "store.db", "solution")
        entity = {"id": "sol_a", "name": "A", "phase": "VALIDATION", "skills": [{"id": "x"}]}
        backend.write(entity, {"id": "sol_a", "name": "A"})

        assert backend.exists("sol_a")
        assert backend.read("sol_a") == entity
        assert backend.summaries() == [{"id": "sol_a", "name": "A"}]
        assert backend.delete("sol_a") is True
        assert backend.delete("sol_a") is False
        assert not backend.exists("sol_a")
        backend.close()

    def test_read_missing(self, tmp_path):
        backend = SQLiteBackend(tmp_path / "store.db", "skill")
        with pytest.raises(NotFound):
            backend.read("skill_missing")
        backend.close()

    def test_kinds_are_separate(self, tmp_path):
        """Two kinds share one database file without seeing each other."""
        db = tmp_path / "store.db"
        skills = SQLiteBackend(db, "skill")
        solutions = SQLiteBackend(db, "solution")
        skills.write({"id": "same"}, {"id": "same"})

        assert skills.exists("same")
        assert not solutions.exists("same")
        assert solutions.summaries() == []
        skills.close()
        solutions.close()

    def test_overwrite_replaces_document(self, tmp_path):
        backend = SQLiteBackend(tmp_path / "store.db", "solution")
        backend.write({"id": "s", "name": "Old"}, {"id": "s", "name": "Old"})
        backend.write({"id": "s", "name": "New"}, {"id": "s", "name": "New"})
        assert backend.read("s")["name"] == "New"
        assert len(backend.summaries()) == 1
        backend.close()

    def test_corrupt_row(self, tmp_path):
        db = tmp_path / "store.db"
        backend = SQLiteBackend(db, "solution")
        backend.write({"id": "s"}, {"id": "s"})
        conn = sqlite3.connect(str(db))
        with conn:
            conn.execute("UPDATE drafts SET data = '{broken' WHERE id = 's'")
        conn.close()
        with pytest.raises(StorageError):
            backend.read("s")
        backend.close()

    def test_unserialisable_document(self, tmp_path):
        backend = SQLiteBackend(tmp_path / "store.db", "solution")
        with pytest.raises(StorageError):
            backend.write({"id": "s", "bad": object()}, {"id": "s"})
        backend.close()

    def test_use_after_close(self, tmp_path):
        backend = SQLiteBackend(tmp_path / "store.db", "solution")
        backend.close()
        with pytest.raises(StorageError):
            backend.exists("s")


@pytest.mark.parametrize("store_fixture", ["store", "sqlite_store"])
class TestBackendParity:
    """The repository contract holds on both media."""

    def test_crud(self, request, store_fixture):
        repo = request.getfixturevalue(store_fixture).solutions
        sol = repo.create("Shop")
        repo.update_state(sol["id"], {"skills_push": [{"id": "a"}, {"id": "b"}]})

        loaded = repo.load(sol["id"])
        assert [s["id"] for s in loaded["skills"]] == ["a", "b"]
        row = repo.list()[0]
        assert row["skills_count"] == 2

        assert repo.remove(sol["id"]) is True
        assert repo.remove(sol["id"]) is False
        with pytest.raises(NotFound):
            repo.load(sol["id"])

    def test_import_keeps_free_id(self, request, store_fixture):
        repo = request.getfixturevalue(store_fixture).solutions
        sol = repo.import_document({"id": "shop", "name": "Shop"}, ["d1"])
        assert sol["id"] == "shop"
        assert repo.load("shop")["linked_domains"] == ["d1"]

    def test_sqlite_file_location(self, request, store_fixture):
        store = request.getfixturevalue(store_fixture)
        store.skills.create("Anything")
        if store.config.backend == "sqlite":
            assert store.config.sqlite_path.exists()
        else:
            assert (store.config.root / "skills" / "index.json").exists()
