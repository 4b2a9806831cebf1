"""
draftstore/validation/completeness.py -- Per-section completeness flags.

Completeness never blocks anything by itself.  It reports one boolean
per wizard section and a suggestion for each section that is still
missing something; the pipeline uses the kind's required sections to
decide ``ready_to_export``.
"""

from __future__ import annotations

from draftstore.kinds import EntityKind
from draftstore.utils import get_path
from draftstore.validation.issues import ValidatorOutcome, suggestion
from draftstore.validation.security import is_security_complete

MIN_STATEMENT_LENGTH = 10


def _list(entity, path) -> list:
    value = get_path(entity, path)
    return value if isinstance(value, list) else []


def _text(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


# ---------------------------------------------------------------------------
# Skill sections
# ---------------------------------------------------------------------------

def _problem(skill):
    statement = get_path(skill, "problem.statement") or ""
    if not isinstance(statement, str) or len(statement.strip()) < MIN_STATEMENT_LENGTH:
        return f"Problem statement needs at least {MIN_STATEMENT_LENGTH} characters"
    return None


def _scenarios(skill):
    scenarios = _list(skill, "scenarios")
    if not scenarios:
        return "Add at least one scenario"
    if not all(isinstance(s, dict) and _text(s.get("title")) for s in scenarios):
        return "Every scenario needs a title"
    return None


def _role(skill):
    if not _text(get_path(skill, "role.name")) or not _text(get_path(skill, "role.persona")):
        return "Give the role a name and a persona"
    return None


def _intents(skill):
    intents = _list(skill, "intents.supported")
    if not intents:
        return "Define at least one intent"
    for intent in intents:
        if not isinstance(intent, dict) or not _text(intent.get("description")):
            return "Every intent needs a description"
        examples = intent.get("examples")
        if not isinstance(examples, list) or not examples:
            return f"Intent {intent.get('id')!r} needs at least one example"
    return None


def _tools(skill):
    tools = _list(skill, "tools")
    if not tools:
        return "Define at least one tool"
    for tool in tools:
        if not isinstance(tool, dict):
            return "Tools must be objects"
        label = tool.get("name") or tool.get("id")
        if not _text(tool.get("name")) or not _text(tool.get("description")):
            return f"Tool {label!r} needs a name and a description"
        if not _text(get_path(tool, "output.description")):
            return f"Tool {label!r} needs an output description"
    return None


def _policy(skill):
    if not (_list(skill, "policy.guardrails.never") or _list(skill, "policy.guardrails.always")):
        return "Add at least one guardrail"
    return None


def _security(skill):
    if not is_security_complete(skill):
        return "Cover every high-risk tool with an access policy rule"
    return None


def _engine(skill):
    return None


def _mocks_tested(skill):
    tools = _list(skill, "tools")
    if not tools:
        return "No tools to test yet"
    untested = [t for t in tools if not isinstance(t, dict) or t.get("mock_status", "untested") == "untested"]
    if untested:
        return f"{len(untested)} tool(s) have not been mock tested"
    return None


SKILL_SECTIONS = {
    "problem": _problem,
    "scenarios": _scenarios,
    "role": _role,
    "intents": _intents,
    "tools": _tools,
    "policy": _policy,
    "security": _security,
    "engine": _engine,
    "mocks_tested": _mocks_tested,
}


# ---------------------------------------------------------------------------
# Solution sections
# ---------------------------------------------------------------------------

def _sol_skills(solution):
    return None if _list(solution, "skills") else "Add at least one skill"


def _sol_identity(solution):
    return None if _list(solution, "identity.actor_types") else "Define at least one actor type"


def _sol_grants(solution):
    if len(_list(solution, "skills")) <= 1 or _list(solution, "grants"):
        return None
    return "Declare the grants your skills exchange"


def _sol_handoffs(solution):
    if len(_list(solution, "skills")) <= 1 or _list(solution, "handoffs"):
        return None
    return "Describe how skills hand conversations to each other"


def _sol_routing(solution):
    routing = solution.get("routing")
    return None if isinstance(routing, dict) and routing else "Route at least one channel to a skill"


def _sol_security(solution):
    return None


SOLUTION_SECTIONS = {
    "skills": _sol_skills,
    "identity": _sol_identity,
    "grants": _sol_grants,
    "handoffs": _sol_handoffs,
    "routing": _sol_routing,
    "security_contracts": _sol_security,
}


class CompletenessChecker:
    """Report which sections of a draft are filled in."""

    name = "completeness"

    def __init__(self, kind: EntityKind):
        self.kind = kind
        self.sections = SKILL_SECTIONS if kind.name == "skill" else SOLUTION_SECTIONS

    def check(self, entity: dict) -> ValidatorOutcome:
        outcome = ValidatorOutcome()
        for section, check in self.sections.items():
            gap = check(entity)
            outcome.completeness[section] = gap is None
            if gap is not None:
                outcome.add(suggestion("incomplete_section", gap, path=section))
        return outcome

    def is_exportable(self, completeness: dict) -> bool:
        """True when every required section of the kind is complete."""
        return all(completeness.get(section, False) for section in self.kind.required_sections)
