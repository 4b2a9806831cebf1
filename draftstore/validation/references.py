"""
draftstore/validation/references.py -- Cross-reference resolution.

Verifies that every id a draft mentions points at something that exists
inside the same draft, and that keyed collections hold no duplicate
keys.  Collections are indexed with the same key table the mutation
processor uses (:mod:`draftstore.kinds`).

Skill references:

    policy.workflows[].steps        -> tool id or name      (bucket: tools)
    policy.approvals[].tool_id      -> tool id or name      (bucket: tools)
    intents.supported[].maps_to_workflow -> workflow id     (bucket: workflows)
    policy.workflows[].trigger      -> intent id            (bucket: intents)

Solution references (all resolved against the solution's own skills):

    grants[].issued_by / consumed_by, handoffs[].from / to,
    routing.<channel>.default_skill, security_contracts[].consumer / provider
                                     -> skill id            (bucket: skills)
    handoffs[].grants_passed, security_contracts[].requires_grants
                                     -> grant key           (bucket: grants)
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Hashable

from draftstore.kinds import EntityKind
from draftstore.utils import get_path
from draftstore.validation.issues import ValidatorOutcome, blocker, warning

logger = logging.getLogger(__name__)

# Tools provided by the runtime; they never need a local definition.
SYSTEM_TOOL_PREFIXES = ("sys.", "ui.", "cp.")


def is_system_tool(name) -> bool:
    return isinstance(name, str) and name.lower().startswith(SYSTEM_TOOL_PREFIXES)


def _items(entity, path) -> list:
    value = get_path(entity, path)
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def _key_set(items, field) -> set:
    """Return the non-empty string values of *field* across *items*."""
    return {item[field] for item in items if isinstance(item.get(field), str) and item[field]}


def _resolves(ref, known) -> bool:
    # Lists, dicts and numbers never name anything.
    return isinstance(ref, str) and ref in known


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


class ReferenceResolver:
    """Flag dangling references and duplicate local keys."""

    name = "references"

    def __init__(self, kind: EntityKind):
        self.kind = kind

    def check(self, entity: dict) -> ValidatorOutcome:
        outcome = ValidatorOutcome()
        self._check_duplicates(entity, outcome)
        if self.kind.name == "skill":
            self._check_skill(entity, outcome)
        else:
            self._check_solution(entity, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Duplicates
    # ------------------------------------------------------------------

    def _check_duplicates(self, entity, outcome):
        for spec in self.kind.collections:
            if spec.scalar:
                continue
            counts = Counter(
                item.get(spec.key) for item in _items(entity, spec.path)
                if item.get(spec.key) is not None and isinstance(item.get(spec.key), Hashable)
            )
            for key, n in counts.items():
                if n > 1:
                    outcome.add(blocker(
                        "duplicate_id",
                        f"Duplicate {spec.key} {key!r} in {spec.path} ({n} items)",
                        suggestion=f"Each item in {spec.path} must have a unique {spec.key}",
                        related_ids=[str(key)],
                        path=spec.path,
                    ))

        if self.kind.name == "skill":
            names = Counter(
                tool["name"].lower() for tool in _items(entity, "tools")
                if isinstance(tool.get("name"), str) and tool["name"]
            )
            for name, n in names.items():
                if n > 1:
                    outcome.add(warning(
                        "duplicate_name",
                        f"Duplicate tool name: {name!r}",
                        suggestion="Tool names should be unique for clarity",
                        path="tools",
                    ))

    # ------------------------------------------------------------------
    # Skills
    # ------------------------------------------------------------------

    def _check_skill(self, skill, outcome):
        tools = _items(skill, "tools") + _items(skill, "meta_tools")
        tool_ids = _key_set(tools, "id")
        tool_names = {t["name"].lower() for t in tools if isinstance(t.get("name"), str)}
        workflows = _items(skill, "policy.workflows")
        workflow_ids = _key_set(workflows, "id")
        intent_ids = _key_set(_items(skill, "intents.supported"), "id")

        def tool_exists(ref):
            if _resolves(ref, tool_ids) or is_system_tool(ref):
                return True
            return isinstance(ref, str) and ref.lower() in tool_names

        for wi, workflow in enumerate(workflows):
            for si, step in enumerate(_as_list(workflow.get("steps"))):
                ref = step.get("tool") if isinstance(step, dict) else step
                if not ref or tool_exists(ref):
                    continue
                outcome.flag("tools", ref)
                outcome.add(blocker(
                    "unresolved_tool",
                    f"Workflow {workflow.get('name') or workflow.get('id')!r} step {si + 1} "
                    f"calls tool {ref!r}, which is not defined",
                    suggestion=f"Define tool {ref!r} or remove it from the workflow",
                    related_ids=[str(ref)],
                    path=f"policy.workflows[{wi}].steps[{si}]",
                ))

            trigger = workflow.get("trigger")
            if trigger and not _resolves(trigger, intent_ids):
                outcome.flag("intents", trigger)
                outcome.add(warning(
                    "unresolved_intent",
                    f"Workflow {workflow.get('name') or workflow.get('id')!r} is triggered by "
                    f"intent {trigger!r}, which is not defined",
                    suggestion=f"Add intent {trigger!r} or change the workflow trigger",
                    related_ids=[str(trigger)],
                    path=f"policy.workflows[{wi}].trigger",
                ))

        for ai, rule in enumerate(_items(skill, "policy.approvals")):
            ref = rule.get("tool_id")
            if not ref or tool_exists(ref):
                continue
            outcome.flag("tools", ref)
            outcome.add(blocker(
                "unresolved_tool",
                f"Approval rule references tool {ref!r}, which is not defined",
                suggestion=f"Define tool {ref!r} or update the approval rule",
                related_ids=[str(ref)],
                path=f"policy.approvals[{ai}].tool_id",
            ))

        for ii, intent in enumerate(_items(skill, "intents.supported")):
            ref = intent.get("maps_to_workflow")
            if not ref or _resolves(ref, workflow_ids):
                continue
            outcome.flag("workflows", ref)
            outcome.add(blocker(
                "unresolved_workflow",
                f"Intent {intent.get('id')!r} maps to workflow {ref!r}, which is not defined",
                suggestion=f"Define workflow {ref!r} or remove the mapping",
                related_ids=[str(ref)],
                path=f"intents.supported[{ii}].maps_to_workflow",
            ))

    # ------------------------------------------------------------------
    # Solutions
    # ------------------------------------------------------------------

    def _check_solution(self, solution, outcome):
        skill_ids = _key_set(_items(solution, "skills"), "id")
        grant_keys = _key_set(_items(solution, "grants"), "key")

        def need_skill(ref, where, path):
            if not ref or _resolves(ref, skill_ids):
                return
            outcome.flag("skills", ref)
            outcome.add(blocker(
                "unresolved_skill",
                f"{where} references skill {ref!r}, which is not part of this solution",
                suggestion=f"Add skill {ref!r} to the solution or fix the reference",
                related_ids=[str(ref)],
                path=path,
            ))

        def need_grant(ref, where, path):
            if not ref or _resolves(ref, grant_keys):
                return
            outcome.flag("grants", ref)
            outcome.add(warning(
                "unresolved_grant",
                f"{where} references grant {ref!r}, which is not declared",
                suggestion=f"Declare grant {ref!r} in the grant economy",
                related_ids=[str(ref)],
                path=path,
            ))

        for gi, grant in enumerate(_items(solution, "grants")):
            if grant.get("internal"):
                continue
            where = f"Grant {grant.get('key')!r}"
            for n, ref in enumerate(_as_list(grant.get("issued_by"))):
                need_skill(ref, where, f"grants[{gi}].issued_by[{n}]")
            for n, ref in enumerate(_as_list(grant.get("consumed_by"))):
                need_skill(ref, where, f"grants[{gi}].consumed_by[{n}]")

        for hi, handoff in enumerate(_items(solution, "handoffs")):
            where = f"Handoff {handoff.get('id')!r}"
            need_skill(handoff.get("from"), where, f"handoffs[{hi}].from")
            need_skill(handoff.get("to"), where, f"handoffs[{hi}].to")
            for n, ref in enumerate(_as_list(handoff.get("grants_passed"))):
                need_grant(ref, where, f"handoffs[{hi}].grants_passed[{n}]")

        routing = solution.get("routing")
        if isinstance(routing, dict):
            for channel, config in routing.items():
                if isinstance(config, dict):
                    need_skill(
                        config.get("default_skill"),
                        f"Routing for channel {channel!r}",
                        f"routing.{channel}.default_skill",
                    )

        for ci, contract in enumerate(_items(solution, "security_contracts")):
            where = f"Security contract {contract.get('name')!r}"
            need_skill(contract.get("consumer"), where, f"security_contracts[{ci}].consumer")
            need_skill(contract.get("provider"), where, f"security_contracts[{ci}].provider")
            for n, ref in enumerate(_as_list(contract.get("requires_grants"))):
                need_grant(ref, where, f"security_contracts[{ci}].requires_grants[{n}]")

        self._check_identity(solution, outcome)

    def _check_identity(self, solution, outcome):
        identity = solution.get("identity")
        if not isinstance(identity, dict):
            return
        actor_keys = _key_set(_items(solution, "identity.actor_types"), "key")
        default = identity.get("default_actor_type")
        if default and actor_keys and not _resolves(default, actor_keys):
            outcome.add(blocker(
                "unresolved_actor_type",
                f"Default actor type {default!r} is not a defined actor type",
                suggestion="Pick one of: " + ", ".join(sorted(actor_keys)),
                related_ids=[str(default)],
                path="identity.default_actor_type",
            ))
        for n, role in enumerate(_as_list(identity.get("admin_roles"))):
            if actor_keys and not _resolves(role, actor_keys):
                outcome.add(warning(
                    "unresolved_actor_type",
                    f"Admin role {role!r} is not a defined actor type",
                    related_ids=[str(role)],
                    path=f"identity.admin_roles[{n}]",
                ))
