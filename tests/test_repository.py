"""
Tests for draftstore/repository.py -- EntityRepository CRUD on the file backend.

Validates:
    - create / load / save / remove contracts
    - update_state and append_message
    - import_document (mapping and YAML text)
    - list() summaries and index rebuilding
    - The seed scenarios for solutions
"""

import json

import pytest

from draftstore.errors import InvalidMutation, NotFound, StorageError


# ---------------------------------------------------------------------------
# Seed scenarios
# ---------------------------------------------------------------------------

class TestSolutionScenarios:
    """End-to-end scenarios on a solution repository."""

    def test_create_defaults(self, solutions):
        """create() gives a prefixed id, default version and first phase."""
        sol = solutions.create("Test Solution")
        assert sol["id"].startswith("sol_")
        assert sol["version"] == "1.0.0"
        assert sol["phase"] == "SOLUTION_DISCOVERY"
        assert sol["skills"] == []
        assert sol["conversation"] == []
        assert sol["created_at"] == sol["updated_at"]

    def test_push_same_skill_twice(self, solutions):
        sol = solutions.create("Test Solution")
        solutions.update_state(sol["id"], {"skills_push": {"id": "gateway", "role": "gateway"}})
        report = solutions.update_state(
            sol["id"],
            {"skills_push": {"id": "gateway", "role": "gateway", "description": "Updated"}},
        )
        skills = report.entity["skills"]
        assert len(skills) == 1
        assert skills[0]["description"] == "Updated"
        assert solutions.load(sol["id"])["skills"] == skills

    def test_batch_push_onto_existing(self, solutions):
        sol = solutions.create("Test Solution")
        solutions.update_state(sol["id"], {"skills_push": {"id": "gateway"}})
        report = solutions.update_state(sol["id"], {"skills_push": [{"id": "a"}, {"id": "b"}]})
        assert len(report.entity["skills"]) == 3

    def test_delete_then_delete_absent(self, solutions):
        sol = solutions.create("Test Solution")
        solutions.update_state(sol["id"], {"skills_push": [{"id": "a"}, {"id": "b"}]})

        report = solutions.update_state(sol["id"], {"skills_delete": "a"})
        assert [s["id"] for s in report.entity["skills"]] == ["b"]

        report = solutions.update_state(sol["id"], {"skills_delete": "nonexistent"})
        assert [s["id"] for s in report.entity["skills"]] == ["b"]
        assert report.rejected == []

    def test_import_document(self, solutions):
        doc = {
            "id": "x",
            "name": "Imported shop",
            "phase": "SOLUTION_DISCOVERY",
            "skills": [{"id": "identity"}, {"id": "orders"}],
            "grants": [{"key": "ecom.customer_id", "issued_by": ["identity"]}],
            "conversation": [{"role": "user", "content": "old chat"}],
        }
        sol = solutions.import_document(doc, ["d1", "d2"])
        assert sol["id"] == "x"
        assert sol["phase"] == "VALIDATION"
        assert sol["conversation"] == []
        assert sol["linked_domains"] == ["d1", "d2"]
        assert [s["id"] for s in sol["skills"]] == ["identity", "orders"]
        assert solutions.load("x")["grants"] == doc["grants"]

    def test_remove_then_load(self, solutions):
        sol = solutions.create("Test Solution")
        assert solutions.remove(sol["id"]) is True
        with pytest.raises(NotFound):
            solutions.load(sol["id"])
        assert solutions.remove("does-not-exist") is False


# ---------------------------------------------------------------------------
# Create / load / save
# ---------------------------------------------------------------------------

class TestCreate:
    """Tests for EntityRepository.create."""

    def test_skill_defaults(self, skills):
        skill = skills.create("Order lookup")
        assert skill["id"].startswith("skill_")
        assert skill["phase"] == "PROBLEM_DISCOVERY"
        assert skill["intents"]["thresholds"] == {"accept": 0.8, "clarify": 0.5, "reject": 0.5}
        assert skill["tools"] == []

    def test_initial_fields_merged(self, skills):
        skill = skills.create("Order lookup", {"problem": {"statement": "Track orders"}})
        assert skill["problem"]["statement"] == "Track orders"
        assert skill["problem"]["goals"] == []

    def test_initial_fields_cannot_set_system_fields(self, solutions):
        sol = solutions.create(
            "Shop",
            {"id": "sol_mine", "conversation": [{"role": "user", "content": "hi"}], "created_at": "1999"},
        )
        assert sol["id"] != "sol_mine"
        assert sol["conversation"] == []
        assert sol["created_at"] != "1999"

    def test_initial_phase_validated(self, solutions):
        with pytest.raises(InvalidMutation):
            solutions.create("Shop", {"phase": "NOT_A_PHASE"})

    def test_blank_name_rejected(self, solutions):
        with pytest.raises(InvalidMutation):
            solutions.create("   ")

    def test_persisted_immediately(self, solutions):
        sol = solutions.create("Shop")
        assert solutions.exists(sol["id"])
        assert solutions.load(sol["id"]) == sol


class TestLoadAndSave:
    """Tests for load() and save()."""

    def test_round_trip(self, solutions):
        sol = solutions.create("Shop")
        sol["description"] = "Online shop"
        saved = solutions.save(sol)
        loaded = solutions.load(sol["id"])
        assert loaded == saved
        assert loaded["description"] == "Online shop"
        assert loaded["updated_at"] >= sol["created_at"]

    def test_save_never_created(self, solutions):
        with pytest.raises(NotFound):
            solutions.save({"id": "sol_ghost123", "name": "Ghost"})

    def test_save_after_remove(self, solutions):
        sol = solutions.create("Shop")
        solutions.remove(sol["id"])
        with pytest.raises(NotFound):
            solutions.save(sol)

    def test_stale_save_keeps_newer_messages(self, solutions):
        """A copy loaded before append_message does not drop the message."""
        sol = solutions.create("Shop")
        stale = solutions.load(sol["id"])
        solutions.append_message(sol["id"], {"role": "user", "content": "Hello"})
        stale["description"] = "Online shop"
        saved = solutions.save(stale)
        assert [m["content"] for m in saved["conversation"]] == ["Hello"]
        loaded = solutions.load(sol["id"])
        assert loaded["description"] == "Online shop"
        assert len(loaded["conversation"]) == 1

    def test_save_appends_unseen_messages(self, solutions):
        sol = solutions.create("Shop")
        current = solutions.append_message(sol["id"], {"role": "user", "content": "one"})
        current["conversation"].append(
            {"id": "msg_extra001", "role": "assistant", "content": "two", "timestamp": "2026-01-01T00:00:00Z"},
        )
        saved = solutions.save(current)
        assert [m["content"] for m in saved["conversation"]] == ["one", "two"]

    def test_save_cannot_truncate_conversation(self, solutions):
        sol = solutions.create("Shop")
        current = solutions.append_message(sol["id"], {"role": "user", "content": "one"})
        current["conversation"] = []
        assert len(solutions.save(current)["conversation"]) == 1

    def test_save_with_non_string_name_still_listed(self, solutions):
        sol = solutions.create("Shop")
        sol["name"] = 123
        solutions.save(sol)
        row = next(r for r in solutions.list() if r["id"] == sol["id"])
        assert row["name"] == "123"

    def test_load_missing(self, solutions):
        with pytest.raises(NotFound, match="not found"):
            solutions.load("sol_missing1")

    def test_load_path_traversal_is_not_found(self, solutions):
        with pytest.raises(NotFound):
            solutions.load("../../etc/passwd")

    def test_load_corrupt_document(self, solutions):
        """An unreadable file is a StorageError, not NotFound."""
        sol = solutions.create("Shop")
        path = solutions.backend.root / f"{sol['id']}.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            solutions.load(sol["id"])

    def test_load_normalises_conversation(self, solutions):
        sol = solutions.create("Shop")
        path = solutions.backend.root / f"{sol['id']}.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        del data["conversation"]
        path.write_text(json.dumps(data), encoding="utf-8")
        assert solutions.load(sol["id"])["conversation"] == []


# ---------------------------------------------------------------------------
# Update / messages
# ---------------------------------------------------------------------------

class TestUpdateState:
    """Tests for update_state()."""

    def test_nested_routing_set(self, solutions):
        sol = solutions.create("Shop")
        report = solutions.update_state(sol["id"], {"routing.telegram.default_skill": "gateway"})
        assert report.entity["routing"] == {"telegram": {"default_skill": "gateway"}}
        assert solutions.load(sol["id"])["routing"] == {"telegram": {"default_skill": "gateway"}}

    def test_rejections_reported_rest_saved(self, solutions):
        sol = solutions.create("Shop")
        report = solutions.update_state(
            sol["id"], {"conversation": [], "skills_push": {"id": "a"}},
        )
        assert [exc.key for exc in report.rejected] == ["conversation"]
        assert solutions.load(sol["id"])["skills"] == [{"id": "a"}]

    def test_non_string_name_rejected_rest_saved(self, solutions):
        sol = solutions.create("Shop")
        report = solutions.update_state(sol["id"], {"skills_push": {"id": "a"}, "name": 123})
        assert [exc.key for exc in report.rejected] == ["name"]
        loaded = solutions.load(sol["id"])
        assert loaded["skills"] == [{"id": "a"}]
        assert loaded["name"] == "Shop"

    def test_nothing_applied_does_not_rewrite(self, solutions):
        sol = solutions.create("Shop")
        report = solutions.update_state(sol["id"], {"widgets_push": {"id": "w"}})
        assert report.applied == []
        assert solutions.load(sol["id"])["updated_at"] == sol["updated_at"]

    def test_phase_change_updates_summary_progress(self, solutions):
        sol = solutions.create("Shop")
        solutions.update_state(sol["id"], {"phase": "VALIDATION"})
        row = next(r for r in solutions.list() if r["id"] == sol["id"])
        assert row["phase"] == "VALIDATION"
        assert row["progress"] == 100

    def test_missing_entity(self, solutions):
        with pytest.raises(NotFound):
            solutions.update_state("sol_missing1", {"skills_push": {"id": "a"}})


class TestAppendMessage:
    """Tests for append_message()."""

    def test_append_assigns_id_and_timestamp(self, solutions):
        sol = solutions.create("Shop")
        updated = solutions.append_message(sol["id"], {"role": "user", "content": "Hello"})
        msg = updated["conversation"][-1]
        assert msg["id"].startswith("msg_")
        assert msg["timestamp"]
        assert msg["role"] == "user"
        assert msg["content"] == "Hello"

    def test_caller_id_is_replaced(self, solutions):
        sol = solutions.create("Shop")
        updated = solutions.append_message(
            sol["id"], {"role": "assistant", "content": "Hi", "id": "mine", "state_update": {"a": 1}},
        )
        msg = updated["conversation"][-1]
        assert msg["id"] != "mine"
        assert msg["state_update"] == {"a": 1}

    def test_messages_accumulate(self, solutions):
        sol = solutions.create("Shop")
        solutions.append_message(sol["id"], {"role": "user", "content": "one"})
        solutions.append_message(sol["id"], {"role": "assistant", "content": "two"})
        convo = solutions.load(sol["id"])["conversation"]
        assert [m["content"] for m in convo] == ["one", "two"]

    def test_invalid_role_rejected(self, solutions):
        sol = solutions.create("Shop")
        with pytest.raises(InvalidMutation):
            solutions.append_message(sol["id"], {"role": "robot", "content": "beep"})
        assert solutions.load(sol["id"])["conversation"] == []

    def test_missing_entity(self, solutions):
        with pytest.raises(NotFound):
            solutions.append_message("sol_missing1", {"role": "user", "content": "x"})


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

class TestImport:
    """Tests for import_document()."""

    def test_yaml_text(self, skills):
        text = (
            "id: skill_orders\n"
            "name: Orders\n"
            "phase: EXPORTED\n"
            "tools:\n"
            "  - id: tool_get_order\n"
            "    name: get_order\n"
        )
        skill = skills.import_from_yaml(text, ["sol_shop"])
        assert skill["id"] == "skill_orders"
        assert skill["phase"] == "TOOL_DEFINITION"
        assert skill["tools"][0]["name"] == "get_order"
        assert skill["linked_domains"] == ["sol_shop"]
        # Skeleton sections are filled in
        assert skill["policy"]["guardrails"] == {"never": [], "always": []}

    def test_taken_id_gets_fresh_one(self, solutions):
        first = solutions.import_document({"id": "shop", "name": "Shop"})
        second = solutions.import_document({"id": "shop", "name": "Shop again"})
        assert first["id"] == "shop"
        assert second["id"].startswith("sol_")

    def test_unsafe_id_replaced(self, solutions):
        sol = solutions.import_document({"id": "../escape", "name": "Shop"})
        assert sol["id"].startswith("sol_")

    def test_duplicate_refs_dropped(self, solutions):
        sol = solutions.import_document({"name": "Shop"}, ["d1", "d2", "d1"])
        assert sol["linked_domains"] == ["d1", "d2"]

    def test_missing_name_defaulted(self, solutions):
        sol = solutions.import_document({"skills": []})
        assert sol["name"] == "Imported solution"

    def test_bad_yaml(self, solutions):
        with pytest.raises(InvalidMutation, match="YAML"):
            solutions.import_document("skills: [unclosed")

    def test_non_mapping(self, solutions):
        with pytest.raises(InvalidMutation):
            solutions.import_document("- just\n- a list\n")


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestList:
    """Tests for list() summaries."""

    def test_empty(self, solutions):
        assert solutions.list() == []

    def test_summary_shape(self, solutions):
        sol = solutions.create("Shop")
        solutions.update_state(sol["id"], {"skills_push": [{"id": "a"}, {"id": "b"}]})
        row = solutions.list()[0]
        assert row["id"] == sol["id"]
        assert row["name"] == "Shop"
        assert row["skills_count"] == 2
        assert row["grants_count"] == 0
        assert row["handoffs_count"] == 0
        assert "conversation" not in row

    def test_newest_first(self, solutions):
        first = solutions.create("First")
        second = solutions.create("Second")
        ids = [r["id"] for r in solutions.list()]
        assert ids.index(second["id"]) < ids.index(first["id"])

    def test_removed_not_listed(self, solutions):
        sol = solutions.create("Shop")
        solutions.remove(sol["id"])
        assert solutions.list() == []

    def test_index_rebuilt_when_missing(self, solutions):
        sol = solutions.create("Shop")
        solutions.backend.index_path.unlink()
        rows = solutions.list()
        assert [r["id"] for r in rows] == [sol["id"]]
        assert rows[0]["skills_count"] == 0
        assert solutions.backend.index_path.exists()

    def test_rebuild_skips_corrupt_documents(self, solutions):
        sol = solutions.create("Shop")
        (solutions.backend.root / "sol_broken1.json").write_text("{", encoding="utf-8")
        solutions.backend.index_path.write_text("not an index", encoding="utf-8")
        assert [r["id"] for r in solutions.list()] == [sol["id"]]

    def test_skill_counts(self, skills, skill_fields):
        skills.create("Orders", skill_fields)
        row = skills.list()[0]
        assert row["tools_count"] == 1
        assert row["intents_count"] == 1
        assert row["scenarios_count"] == 1
