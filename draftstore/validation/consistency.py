"""
draftstore/validation/consistency.py -- Pluggable semantic consistency checks.

A consistency checker is anything with a
``check_consistency(entity, focus=None) -> list[Issue]`` method.  Two are
provided:

    NamingConsistencyChecker   deterministic; flags mixed naming styles
                               (snake_case next to camelCase, etc.)
    ClaudeConsistencyChecker   asks an Anthropic model to look for
                               duplicate, ambiguous or overlapping items

The pipeline treats their findings as advisory: blockers are downgraded
to warnings unless the pipeline is built with ``consistency_blocks=True``.

Usage::

    from draftstore.validation.consistency import ClaudeConsistencyChecker

    checker = ClaudeConsistencyChecker(client=anthropic.Anthropic())
    issues = checker.check_consistency(skill, focus="tools")
"""

from __future__ import annotations

import json
import logging
import re
from typing import Protocol, runtime_checkable

from draftstore.validation.issues import Issue, Severity, ValidatorOutcome, suggestion

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@runtime_checkable
class ConsistencyChecker(Protocol):
    def check_consistency(self, entity: dict, focus: str | None = None) -> list[Issue]:
        ...


# ---------------------------------------------------------------------------
# Naming conventions
# ---------------------------------------------------------------------------

_CONVENTIONS = (
    ("SCREAMING_SNAKE", re.compile(r"^[A-Z][A-Z0-9]*(_[A-Z0-9]+)*$")),
    ("snake_case", re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)*$")),
    ("kebab-case", re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]+)*$")),
    ("PascalCase", re.compile(r"^[A-Z][a-zA-Z0-9]*[a-z][a-zA-Z0-9]*$")),
    ("camelCase", re.compile(r"^[a-z][a-z0-9]*[A-Z][a-zA-Z0-9]*$")),
)


def detect_naming_convention(name) -> str:
    """Return the naming style of *name*, ``"mixed"`` or ``"unknown"``."""
    if not isinstance(name, str) or not name:
        return "unknown"
    for convention, pattern in _CONVENTIONS:
        if pattern.match(name):
            return convention
    return "mixed"


def naming_issue(label: str, names) -> Issue | None:
    """Return a suggestion if *names* use more than one naming style."""
    by_convention: dict[str, list[str]] = {}
    for name in names:
        convention = detect_naming_convention(name)
        if convention in ("unknown", "mixed"):
            continue
        by_convention.setdefault(convention, []).append(name)
    if len(by_convention) < 2:
        return None

    most_common = max(by_convention, key=lambda c: len(by_convention[c]))
    detail = "; ".join(f"{conv}: {', '.join(group)}" for conv, group in by_convention.items())
    return suggestion(
        "naming_inconsistency",
        f"{label} use different naming conventions: {detail}",
        suggestion=f"Standardize all names to {most_common}",
        related_ids=[n for group in by_convention.values() for n in group],
        path=label.lower(),
    )


def _names(items, key):
    return [i.get(key) for i in items or [] if isinstance(i, dict) and i.get(key)]


class NamingConsistencyChecker:
    """Flag collections whose item names mix naming styles."""

    def check_consistency(self, entity: dict, focus: str | None = None) -> list[Issue]:
        if "skills" in entity and "tools" not in entity:
            groups = {
                "skills": ("Skills", _names(entity.get("skills"), "id")),
                "handoffs": ("Handoffs", _names(entity.get("handoffs"), "id")),
            }
        else:
            policy = entity.get("policy") or {}
            groups = {
                "tools": ("Tools", _names(entity.get("tools"), "name")),
                "intents": ("Intents", _names((entity.get("intents") or {}).get("supported"), "id")),
                "policy": ("Workflows", _names(policy.get("workflows"), "name")),
            }

        issues = []
        for section, (label, names) in groups.items():
            if focus and focus != section:
                continue
            issue = naming_issue(label, names)
            if issue is not None:
                issues.append(issue)
        return issues


# ---------------------------------------------------------------------------
# LLM judge
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """You are a configuration consistency analyzer for conversational agents.
Report real problems only, not unusual but valid design choices.
Answer with JSON of this exact shape and nothing else:
{
  "issues": [
    {
      "type": "duplicate" | "ambiguous" | "overlap" | "contradiction",
      "severity": "blocker" | "warning" | "suggestion",
      "related_ids": [<ids or names of the items involved>],
      "description": "Brief description",
      "suggestion": "How to fix"
    }
  ]
}
Do NOT check naming conventions. If there are no issues, return {"issues": []}."""

_SEVERITY_ALIASES = {
    "blocker": Severity.BLOCKER,
    "error": Severity.BLOCKER,
    "warning": Severity.WARNING,
    "suggestion": Severity.SUGGESTION,
    "info": Severity.SUGGESTION,
}


def _skill_sections(skill: dict) -> dict:
    policy = skill.get("policy") or {}
    return {
        "tools": [
            {
                "name": t.get("name"),
                "description": t.get("description"),
                "inputs": [i.get("name") for i in t.get("inputs") or [] if isinstance(i, dict)],
            }
            for t in skill.get("tools") or [] if isinstance(t, dict)
        ],
        "intents": [
            {"id": i.get("id"), "description": i.get("description"), "examples": i.get("examples") or []}
            for i in (skill.get("intents") or {}).get("supported") or [] if isinstance(i, dict)
        ],
        "policy": {
            "guardrails": policy.get("guardrails") or {},
            "workflows": [
                {"name": w.get("name"), "steps": w.get("steps") or []}
                for w in policy.get("workflows") or [] if isinstance(w, dict)
            ],
        },
    }


def _solution_sections(solution: dict) -> dict:
    return {
        "skills": [
            {"id": s.get("id"), "role": s.get("role"), "description": s.get("description")}
            for s in solution.get("skills") or [] if isinstance(s, dict)
        ],
        "grants": solution.get("grants") or [],
        "handoffs": solution.get("handoffs") or [],
    }


def parse_llm_issues(text: str) -> list[Issue]:
    """Turn the model's JSON reply into :class:`Issue` objects.

    Raises
    ------
    ValueError
        If no JSON object can be found in *text*.
    """
    start, end = text.find("{"), text.rfind("}")
    if start < 0 or end <= start:
        raise ValueError("Consistency reply contains no JSON object")
    payload = json.loads(text[start:end + 1])

    issues = []
    for raw in payload.get("issues") or []:
        if not isinstance(raw, dict) or raw.get("type") == "naming_inconsistency":
            continue
        related = raw.get("related_ids") or raw.get("tools") or raw.get("intents") or []
        issues.append(Issue(
            severity=_SEVERITY_ALIASES.get(str(raw.get("severity", "")).lower(), Severity.WARNING),
            type=str(raw.get("type") or "consistency"),
            description=str(raw.get("description") or ""),
            suggestion=str(raw.get("suggestion") or ""),
            related_ids=[str(r) for r in related],
            path=str(raw.get("path") or ""),
        ))
    return issues


class ClaudeConsistencyChecker:
    """Consistency judge backed by the Anthropic Messages API.

    Parameters
    ----------
    client : anthropic.Anthropic, optional
        Pre-built client.  One is created from the environment's API key
        when omitted.
    model : str
        Model name passed to ``messages.create``.
    max_tokens : int
        Reply budget.
    """

    def __init__(self, client=None, model: str = DEFAULT_MODEL, max_tokens: int = 2048):
        if client is None:
            import anthropic
            client = anthropic.Anthropic()
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    def check_consistency(self, entity: dict, focus: str | None = None) -> list[Issue]:
        is_solution = "skills" in entity and "tools" not in entity
        sections = _solution_sections(entity) if is_solution else _skill_sections(entity)
        if focus:
            sections = {k: v for k, v in sections.items() if k == focus}
        if not any(sections.values()):
            return []

        prompt = self._build_prompt(entity, sections, "solution" if is_solution else "skill")
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(
            getattr(block, "text", "") for block in response.content
            if getattr(block, "type", "text") == "text"
        )
        issues = parse_llm_issues(text)
        logger.debug("Consistency judge returned %d issue(s) for %s", len(issues), entity.get("id"))
        return issues

    @staticmethod
    def _build_prompt(entity, sections, label) -> str:
        lines = [
            f"Analyze this {label} configuration named {entity.get('name')!r}.",
            "Look for duplicate or overlapping items, ambiguous descriptions,",
            "and guardrails that contradict workflows.",
            "",
            json.dumps(sections, indent=2, ensure_ascii=False),
        ]
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Pipeline adapter
# ---------------------------------------------------------------------------

class ConsistencyValidator:
    """Wrap a :class:`ConsistencyChecker` so the pipeline can run it."""

    def __init__(self, checker: ConsistencyChecker, *, blocks: bool = False):
        self.checker = checker
        self.blocks = blocks
        self.name = f"consistency:{type(checker).__name__}"

    def check(self, entity: dict, focus: str | None = None) -> ValidatorOutcome:
        outcome = ValidatorOutcome()
        for issue in self.checker.check_consistency(entity, focus=focus):
            if issue.severity is Severity.BLOCKER and not self.blocks:
                issue.severity = Severity.WARNING
            outcome.add(issue)
        return outcome
