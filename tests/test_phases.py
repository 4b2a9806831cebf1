"""
Tests for draftstore/phases.py -- phase order, progress and advisory checks.
"""

import pytest

from draftstore.phases import SKILL_PHASES, SOLUTION_PHASES, blocking_issues, suggest_advance


class TestPhaseSequence:
    """Tests for PhaseSequence navigation and progress."""

    def test_first_phases(self):
        assert SKILL_PHASES.first == "PROBLEM_DISCOVERY"
        assert SOLUTION_PHASES.first == "SOLUTION_DISCOVERY"

    def test_membership(self):
        assert "TOOL_DEFINITION" in SKILL_PHASES
        assert "TOOL_DEFINITION" not in SOLUTION_PHASES
        assert not SKILL_PHASES.is_valid(None)
        assert not SKILL_PHASES.is_valid(3)

    @pytest.mark.parametrize("phase, expected", [
        ("SOLUTION_DISCOVERY", 0),
        ("IDENTITY_DESIGN", 14),
        ("HANDOFF_DESIGN", 57),
        ("VALIDATION", 100),
        ("NOT_A_PHASE", 0),
    ])
    def test_solution_progress(self, phase, expected):
        assert SOLUTION_PHASES.progress(phase) == expected

    def test_skill_complete_phases(self):
        """Both terminal skill phases count as fully done."""
        assert SKILL_PHASES.progress("READY_TO_EXPORT") == 100
        assert SKILL_PHASES.progress("EXPORTED") == 100
        assert SKILL_PHASES.progress("TOOL_DEFINITION") == 50

    def test_neighbours(self):
        assert SKILL_PHASES.next_phase("PROBLEM_DISCOVERY") == "SCENARIO_EXPLORATION"
        assert SKILL_PHASES.next_phase("EXPORTED") is None
        assert SKILL_PHASES.previous_phase("PROBLEM_DISCOVERY") is None
        assert SOLUTION_PHASES.previous_phase("VALIDATION") == "SECURITY_CONTRACTS"
        assert SOLUTION_PHASES.next_phase("bogus") is None

    def test_labels(self):
        assert SOLUTION_PHASES.label("IDENTITY_DESIGN") == "Identity & Actors"
        assert SOLUTION_PHASES.label("UNKNOWN") == "UNKNOWN"


class TestAdvisoryChecks:
    """Tests for blocking_issues() and suggest_advance()."""

    def test_empty_skill_blocked_from_scenarios(self):
        issues = blocking_issues({"problem": {"statement": ""}}, "SCENARIO_EXPLORATION")
        assert issues == ["Problem statement needs more detail"]

    def test_unknown_target(self):
        assert blocking_issues({}, "NOWHERE") == ["Unknown phase: NOWHERE"]

    def test_complete_skill_has_no_blockers(self, skill_fields):
        assert blocking_issues(skill_fields, "READY_TO_EXPORT") == []

    def test_untested_tools_reported(self, skill_fields):
        skill_fields["tools"][0]["mock_status"] = "untested"
        issues = blocking_issues(skill_fields, "READY_TO_EXPORT")
        assert issues == ["1 tool(s) have not been mock tested"]

    @pytest.mark.parametrize("output", [None, "text", []])
    def test_malformed_tool_output(self, skill_fields, output):
        skill_fields["tools"][0]["output"] = output
        issues = blocking_issues(skill_fields, "READY_TO_EXPORT")
        assert issues == ["Tool 'get_order' has no output description"]

    @pytest.mark.parametrize("problem", ["Orders are late", None, ["x"]])
    def test_malformed_problem(self, problem):
        issues = blocking_issues({"problem": problem}, "SCENARIO_EXPLORATION")
        assert issues == ["Problem statement needs more detail"]

    def test_malformed_sections(self, skill_fields):
        skill_fields["intents"] = ["intent_track"]
        skill_fields["policy"] = "be nice"
        issues = blocking_issues(skill_fields, "READY_TO_EXPORT")
        assert issues == ["At least one intent is required", "At least one guardrail is required"]

    def test_suggest_advance(self, skill_fields):
        skill = dict(skill_fields, phase="MOCK_TESTING")
        assert suggest_advance(skill) == "READY_TO_EXPORT"
        skill["tools"][0]["mock_status"] = "untested"
        assert suggest_advance(skill) is None

    def test_suggest_advance_at_end(self):
        assert suggest_advance({"phase": "EXPORTED"}) is None
