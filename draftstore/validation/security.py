"""
draftstore/validation/security.py -- Tool security checks for skills.

Every tool may carry a ``security`` block::

    {"classification": "pii_read", "risk": "medium", "data_owner_field": "customer_id"}

and the skill declares who may call what in ``access_policy.rules``,
which grants a tool result captures in ``grant_mappings`` and which
response fields are stripped or masked in ``response_filters``.  This
stage checks that those pieces agree:

    - unclassified tools                               (warning)
    - unknown classification, risk or rule effect      (blocker)
    - high-risk tools no access rule covers            (blocker)
    - PII tools with neither a filter nor a rule       (warning)
    - data-owner tools nothing constrains              (warning)
    - rules and grant mappings naming unknown tools    (blocker)
    - malformed filter field paths                     (blocker)

A rule listing ``"*"`` covers every tool.

Usage::

    from draftstore.validation.security import SecurityValidator, security_report

    outcome = SecurityValidator().check(skill)
    security_report(skill)["high_risk_with_policy"]
"""

from __future__ import annotations

import logging
import re

from draftstore.utils import get_path
from draftstore.validation.issues import ValidatorOutcome, blocker, warning

logger = logging.getLogger(__name__)

VALID_CLASSIFICATIONS = ("public", "pii_read", "pii_write", "financial", "destructive")
HIGH_RISK_CLASSIFICATIONS = ("pii_write", "financial", "destructive")
PII_CLASSIFICATIONS = ("pii_read", "pii_write")
VALID_RISK_LEVELS = ("low", "medium", "high", "critical")
VALID_EFFECTS = ("allow", "deny", "constrain")

WILDCARD = "*"

# "customer.address.line1" or "items[0].name"
FIELD_PATH_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*|\[\d+\])*$")


def _dicts(value) -> list:
    return [v for v in value if isinstance(v, dict)] if isinstance(value, list) else []


def _strings(value) -> list:
    if isinstance(value, str):
        return [value]
    return [v for v in value if isinstance(v, str)] if isinstance(value, list) else []


def _rules(skill) -> list:
    return _dicts(get_path(skill, "access_policy.rules"))


def _tool_names(skill) -> set:
    return {t["name"] for t in _dicts(skill.get("tools")) if isinstance(t.get("name"), str) and t["name"]}


def policy_coverage(skill: dict) -> tuple[set, bool]:
    """Return the tool names some access rule lists, and whether any rule uses ``*``."""
    covered: set = set()
    wildcard = False
    for rule in _rules(skill):
        for ref in _strings(rule.get("tools")):
            if ref == WILDCARD:
                wildcard = True
            else:
                covered.add(ref)
    return covered, wildcard


def _covers(tool, covered, wildcard) -> bool:
    name = tool.get("name")
    return wildcard or (isinstance(name, str) and name in covered)


def _security(tool) -> dict:
    block = tool.get("security")
    return block if isinstance(block, dict) else {}


def is_security_complete(skill: dict) -> bool:
    """True when every high-risk tool is covered by an access rule."""
    covered, wildcard = policy_coverage(skill)
    for tool in _dicts(skill.get("tools")):
        if _security(tool).get("classification") not in HIGH_RISK_CLASSIFICATIONS:
            continue
        if not _covers(tool, covered, wildcard):
            return False
    return True


def _constrains(skill, tool_name, field_name) -> bool:
    for rule in _rules(skill):
        if rule.get("effect") != "constrain":
            continue
        targets = _strings(rule.get("tools"))
        if WILDCARD not in targets and tool_name not in targets:
            continue
        constrain = rule.get("constrain")
        if isinstance(constrain, dict) and any(
            key == field_name or value == field_name for key, value in constrain.items()
        ):
            return True
    for mapping in _dicts(skill.get("grant_mappings")):
        if mapping.get("tool") != tool_name:
            continue
        if any(grant.get("value_from") == field_name for grant in _dicts(mapping.get("grants"))):
            return True
    return False


def security_report(skill: dict) -> dict:
    """Counts of classified, high-risk and PII tools and their coverage."""
    tools = _dicts(skill.get("tools"))
    covered, wildcard = policy_coverage(skill)
    has_filters = bool(_dicts(skill.get("response_filters")))
    report = {
        "total_tools": len(tools),
        "classified": 0,
        "unclassified": 0,
        "high_risk": 0,
        "high_risk_with_policy": 0,
        "pii_tools": 0,
        "pii_with_filters": 0,
        "grant_mappings_count": len(_dicts(skill.get("grant_mappings"))),
        "access_rules_count": len(_rules(skill)),
        "response_filters_count": len(_dicts(skill.get("response_filters"))),
    }
    for tool in tools:
        classification = _security(tool).get("classification")
        if not classification:
            report["unclassified"] += 1
            continue
        report["classified"] += 1
        in_policy = _covers(tool, covered, wildcard)
        if classification in HIGH_RISK_CLASSIFICATIONS:
            report["high_risk"] += 1
            report["high_risk_with_policy"] += in_policy
        if classification in PII_CLASSIFICATIONS:
            report["pii_tools"] += 1
            report["pii_with_filters"] += has_filters or in_policy
    return report


class SecurityValidator:
    """Check tool classifications against access rules, grant mappings and filters."""

    name = "security"

    def check(self, skill: dict) -> ValidatorOutcome:
        outcome = ValidatorOutcome()
        tool_names = _tool_names(skill)
        covered, wildcard = policy_coverage(skill)
        has_filters = bool(_dicts(skill.get("response_filters")))

        for ti, tool in enumerate(_dicts(skill.get("tools"))):
            self._check_tool(skill, ti, tool, covered, wildcard, has_filters, outcome)

        for mi, mapping in enumerate(_dicts(skill.get("grant_mappings"))):
            ref = mapping.get("tool")
            if ref and not (isinstance(ref, str) and ref in tool_names):
                outcome.add(blocker(
                    "grant_mapping_invalid_tool",
                    f"Grant mapping references tool {ref!r}, which is not defined",
                    suggestion="Update the tool name or define the missing tool",
                    related_ids=[str(ref)],
                    path=f"grant_mappings[{mi}].tool",
                ))

        for ri, rule in enumerate(_rules(skill)):
            for n, ref in enumerate(_strings(rule.get("tools"))):
                if ref != WILDCARD and ref not in tool_names:
                    outcome.add(blocker(
                        "access_policy_invalid_tool",
                        f"Access policy rule references tool {ref!r}, which is not defined",
                        suggestion="Update the tool name or define the missing tool",
                        related_ids=[ref],
                        path=f"access_policy.rules[{ri}].tools[{n}]",
                    ))
            effect = rule.get("effect")
            if effect and effect not in VALID_EFFECTS:
                outcome.add(blocker(
                    "invalid_policy_effect",
                    f"Access policy rule has invalid effect {effect!r}",
                    suggestion="Must be one of: " + ", ".join(VALID_EFFECTS),
                    path=f"access_policy.rules[{ri}].effect",
                ))

        for fi, response_filter in enumerate(_dicts(skill.get("response_filters"))):
            for field_name in ("strip_fields", "mask_fields"):
                values = response_filter.get(field_name)
                if not isinstance(values, list):
                    continue
                for n, value in enumerate(values):
                    if isinstance(value, str) and FIELD_PATH_RE.match(value):
                        continue
                    outcome.add(blocker(
                        "invalid_filter_field_path",
                        f"Invalid field path {value!r} in response filter",
                        suggestion='Use dotted ("customer.ssn") or bracket ("items[0].name") notation',
                        path=f"response_filters[{fi}].{field_name}[{n}]",
                    ))
        return outcome

    def _check_tool(self, skill, ti, tool, covered, wildcard, has_filters, outcome):
        security = _security(tool)
        name = tool.get("name") or tool.get("id")
        base = f"tools[{ti}].security"
        classification = security.get("classification")
        if not classification:
            outcome.add(warning(
                "unclassified_tool",
                f"Tool {name!r} has no security classification",
                suggestion="Assign one of: " + ", ".join(VALID_CLASSIFICATIONS),
                path=f"{base}.classification",
            ))
            return

        if classification not in VALID_CLASSIFICATIONS:
            outcome.add(blocker(
                "invalid_classification",
                f"Tool {name!r} has invalid classification {classification!r}",
                suggestion="Must be one of: " + ", ".join(VALID_CLASSIFICATIONS),
                path=f"{base}.classification",
            ))

        risk = security.get("risk")
        if risk and risk not in VALID_RISK_LEVELS:
            outcome.add(blocker(
                "invalid_risk_level",
                f"Tool {name!r} has invalid risk level {risk!r}",
                suggestion="Must be one of: " + ", ".join(VALID_RISK_LEVELS),
                path=f"{base}.risk",
            ))

        in_policy = _covers(tool, covered, wildcard)
        if classification in HIGH_RISK_CLASSIFICATIONS and not in_policy:
            outcome.add(blocker(
                "high_risk_no_policy",
                f"High-risk tool {name!r} ({classification}) has no access policy",
                suggestion="Add an access_policy rule covering this tool",
                related_ids=[str(name)],
                path=base,
            ))

        if classification in PII_CLASSIFICATIONS and not has_filters and not in_policy:
            outcome.add(warning(
                "pii_no_filter",
                f"PII tool {name!r} ({classification}) has no response filter or access policy",
                suggestion="Strip or mask sensitive fields with a response filter, or add an access rule",
                related_ids=[str(name)],
                path=base,
            ))

        owner_field = security.get("data_owner_field")
        if owner_field and tool.get("name") and not _constrains(skill, tool["name"], owner_field):
            outcome.add(warning(
                "data_owner_no_constrain",
                f"Tool {name!r} has data_owner_field {owner_field!r} but no constrain rule "
                f"or grant mapping injects it",
                suggestion=f"Add a constrain rule referencing {owner_field!r}, or a grant mapping that captures it",
                related_ids=[str(name)],
                path=f"{base}.data_owner_field",
            ))
