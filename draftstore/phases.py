"""
draftstore/phases.py -- Phase state machine for skills and solutions.

Each entity kind walks a fixed, ordered list of wizard phases.  This
module maps a phase to its position, a progress percentage and its
neighbours.  Nothing here rejects a transition: the chat layer decides
when to move on, and the store only records the phase it is given.

Usage::

    from draftstore.phases import SKILL_PHASES

    SKILL_PHASES.progress("TOOL_DEFINITION")     # 50
    SKILL_PHASES.next_phase("TOOL_DEFINITION")   # "POLICY_DEFINITION"
"""

from __future__ import annotations

from dataclasses import dataclass, field

from draftstore.utils import get_path


@dataclass(frozen=True)
class PhaseSequence:
    """An ordered set of phases with optional display labels.

    Parameters
    ----------
    phases : tuple[str, ...]
        Phase names in order.  The first one is the phase of a new entity.
    complete : tuple[str, ...]
        Phases that count as 100 % regardless of their position.
    labels : dict[str, str]
        Human-readable names, used by the CLI.
    """

    phases: tuple
    complete: tuple = ()
    labels: dict = field(default_factory=dict)

    @property
    def first(self) -> str:
        return self.phases[0]

    def __contains__(self, phase) -> bool:
        return phase in self.phases

    def __iter__(self):
        return iter(self.phases)

    def __len__(self) -> int:
        return len(self.phases)

    def is_valid(self, phase) -> bool:
        return isinstance(phase, str) and phase in self.phases

    def index(self, phase) -> int:
        """Return the 0-based position of *phase*, or -1 if unknown."""
        try:
            return self.phases.index(phase)
        except ValueError:
            return -1

    def progress(self, phase) -> int:
        """Return completion in percent.

        ``round(index / (len - 1) * 100)`` for known phases, 100 for the
        phases listed in ``complete`` and 0 for anything unknown.
        """
        if phase in self.complete:
            return 100
        idx = self.index(phase)
        if idx < 0:
            return 0
        if len(self.phases) < 2:
            return 100
        return round(idx / (len(self.phases) - 1) * 100)

    def next_phase(self, phase):
        """Return the phase after *phase*, or ``None`` at the end / if unknown."""
        idx = self.index(phase)
        if idx < 0 or idx >= len(self.phases) - 1:
            return None
        return self.phases[idx + 1]

    def previous_phase(self, phase):
        """Return the phase before *phase*, or ``None`` at the start / if unknown."""
        idx = self.index(phase)
        if idx <= 0:
            return None
        return self.phases[idx - 1]

    def label(self, phase) -> str:
        return self.labels.get(phase, phase)


SKILL_PHASES = PhaseSequence(
    phases=(
        "PROBLEM_DISCOVERY",
        "SCENARIO_EXPLORATION",
        "INTENT_DEFINITION",
        "TOOLS_PROPOSAL",
        "TOOL_DEFINITION",
        "POLICY_DEFINITION",
        "MOCK_TESTING",
        "READY_TO_EXPORT",
        "EXPORTED",
    ),
    complete=("READY_TO_EXPORT", "EXPORTED"),
    labels={
        "PROBLEM_DISCOVERY": "Problem Discovery",
        "SCENARIO_EXPLORATION": "Scenario Exploration",
        "INTENT_DEFINITION": "Intent Definition",
        "TOOLS_PROPOSAL": "Tools Proposal",
        "TOOL_DEFINITION": "Tool Definition",
        "POLICY_DEFINITION": "Policy Definition",
        "MOCK_TESTING": "Mock Testing",
        "READY_TO_EXPORT": "Ready to Export",
        "EXPORTED": "Exported",
    },
)

SOLUTION_PHASES = PhaseSequence(
    phases=(
        "SOLUTION_DISCOVERY",
        "IDENTITY_DESIGN",
        "SKILL_TOPOLOGY",
        "GRANT_ECONOMY",
        "HANDOFF_DESIGN",
        "ROUTING_CONFIG",
        "SECURITY_CONTRACTS",
        "VALIDATION",
    ),
    labels={
        "SOLUTION_DISCOVERY": "Solution Discovery",
        "IDENTITY_DESIGN": "Identity & Actors",
        "SKILL_TOPOLOGY": "Skill Topology",
        "GRANT_ECONOMY": "Grant Economy",
        "HANDOFF_DESIGN": "Handoff Design",
        "ROUTING_CONFIG": "Routing Config",
        "SECURITY_CONTRACTS": "Security Contracts",
        "VALIDATION": "Validation",
    },
)


# ---------------------------------------------------------------------------
# Advisory checks (skills)
# ---------------------------------------------------------------------------

def _list(skill, path) -> list:
    value = get_path(skill, path)
    return value if isinstance(value, list) else []


def blocking_issues(skill: dict, target_phase: str) -> list[str]:
    """List what a skill still lacks before the wizard should enter *target_phase*.

    Purely advisory.  The repository accepts any valid phase regardless
    of what this returns.
    """
    issues: list[str] = []
    statement = get_path(skill, "problem.statement")
    statement = statement if isinstance(statement, str) else ""
    scenarios = _list(skill, "scenarios")
    intents = _list(skill, "intents.supported")
    tools = _list(skill, "tools")

    target_idx = SKILL_PHASES.index(target_phase)
    if target_idx < 0:
        return [f"Unknown phase: {target_phase}"]

    if target_idx > SKILL_PHASES.index("PROBLEM_DISCOVERY"):
        if len(statement) < 10:
            issues.append("Problem statement needs more detail")
    if target_idx > SKILL_PHASES.index("SCENARIO_EXPLORATION"):
        if not scenarios:
            issues.append("At least one scenario is required")
    if target_idx > SKILL_PHASES.index("INTENT_DEFINITION"):
        if not intents:
            issues.append("At least one intent is required")
    if target_idx > SKILL_PHASES.index("TOOLS_PROPOSAL"):
        if not tools:
            issues.append("At least one tool is required")
    if target_idx > SKILL_PHASES.index("TOOL_DEFINITION"):
        for tool in tools:
            if not isinstance(tool, dict):
                continue
            if not get_path(tool, "output.description"):
                issues.append(f"Tool '{tool.get('name', tool.get('id'))}' has no output description")
    if target_idx > SKILL_PHASES.index("POLICY_DEFINITION"):
        if not (_list(skill, "policy.guardrails.never") or _list(skill, "policy.guardrails.always")):
            issues.append("At least one guardrail is required")
    if target_idx > SKILL_PHASES.index("MOCK_TESTING"):
        untested = [t for t in tools if isinstance(t, dict) and t.get("mock_status", "untested") == "untested"]
        if untested:
            issues.append(f"{len(untested)} tool(s) have not been mock tested")
    return issues


def suggest_advance(skill: dict):
    """Return the next phase if the skill already satisfies it, else ``None``."""
    current = skill.get("phase")
    nxt = SKILL_PHASES.next_phase(current)
    if nxt is None:
        return None
    return nxt if not blocking_issues(skill, nxt) else None
