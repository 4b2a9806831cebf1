"""
draftstore/kinds.py -- Entity kinds and the collection key table.

The key table tells the mutation processor how to upsert into each
array-valued field and tells the reference resolver how to index those
same arrays.  Both read it from here, so there is exactly one answer to
"what identifies an item in ``policy.workflows``?".

Usage::

    from draftstore.kinds import SKILL, SOLUTION

    spec = SKILL.collection("policy.workflows")
    spec.key          # "id"
    spec.prefix       # "workflow"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from draftstore.defaults import empty_skill, empty_solution
from draftstore.phases import SKILL_PHASES, SOLUTION_PHASES, PhaseSequence


@dataclass(frozen=True)
class CollectionSpec:
    """How items inside one array field are identified.

    Parameters
    ----------
    path : str
        Dotted path of the array inside the entity (``"intents.supported"``).
    key : str or None
        Primary local key.  ``None`` marks a scalar list whose items are
        identified by their own value (guardrail strings, channel names).
    prefix : str or None
        When set, items pushed without a key get ``<prefix>_<hex>`` ids.
    alt_key : str or None
        Secondary key used to match items that arrive without the primary
        key (tools pushed by name only).
    """

    path: str
    key: str | None = "id"
    prefix: str | None = None
    alt_key: str | None = None

    @property
    def scalar(self) -> bool:
        return self.key is None

    def item_key(self, item):
        """Return the identity of *item* in this collection, or ``None``."""
        if self.scalar:
            return item
        if isinstance(item, dict):
            return item.get(self.key)
        return None


@dataclass(frozen=True)
class EntityKind:
    """Static description of one entity kind (skill or solution)."""

    name: str
    id_prefix: str
    phases: PhaseSequence
    import_phase: str
    skeleton: Callable[[], dict]
    collections: tuple = ()
    required_sections: tuple = ()
    summary_counts: tuple = ()

    @property
    def plural(self) -> str:
        return f"{self.name}s"

    def collection(self, path: str):
        """Return the :class:`CollectionSpec` for *path*, or ``None``."""
        for spec in self.collections:
            if spec.path == path:
                return spec
        return None

    def is_collection(self, path: str) -> bool:
        return self.collection(path) is not None


SKILL = EntityKind(
    name="skill",
    id_prefix="skill",
    phases=SKILL_PHASES,
    import_phase="TOOL_DEFINITION",
    skeleton=empty_skill,
    collections=(
        CollectionSpec("tools", "id", "tool", alt_key="name"),
        CollectionSpec("meta_tools", "id", "meta_tool", alt_key="name"),
        CollectionSpec("triggers", "id", "trigger"),
        CollectionSpec("scenarios", "id", "scenario", alt_key="title"),
        CollectionSpec("intents.supported", "id", "intent"),
        CollectionSpec("policy.workflows", "id", "workflow", alt_key="name"),
        CollectionSpec("policy.approvals", "id", "approval", alt_key="tool_id"),
        CollectionSpec("access_policy.rules", "id", "rule"),
        CollectionSpec("grant_mappings", "id", "mapping"),
        CollectionSpec("response_filters", "id", "filter"),
        CollectionSpec("policy.guardrails.never", None),
        CollectionSpec("policy.guardrails.always", None),
        CollectionSpec("policy.escalation.conditions", None),
        CollectionSpec("toolbox_imports", None),
        CollectionSpec("connectors", None),
        CollectionSpec("channels", None),
        CollectionSpec("linked_domains", None),
    ),
    required_sections=("problem", "tools"),
    summary_counts=("tools", "intents.supported", "scenarios"),
)

SOLUTION = EntityKind(
    name="solution",
    id_prefix="sol",
    phases=SOLUTION_PHASES,
    import_phase="VALIDATION",
    skeleton=empty_solution,
    collections=(
        CollectionSpec("skills", "id"),
        CollectionSpec("grants", "key"),
        CollectionSpec("handoffs", "id", "handoff"),
        CollectionSpec("security_contracts", "name"),
        CollectionSpec("platform_connectors", "id"),
        CollectionSpec("identity.actor_types", "key"),
        CollectionSpec("identity.admin_roles", None),
        CollectionSpec("linked_domains", None),
    ),
    required_sections=("skills", "routing"),
    summary_counts=("skills", "grants", "handoffs"),
)

KINDS = {SKILL.name: SKILL, SOLUTION.name: SOLUTION}


def get_kind(name: str) -> EntityKind:
    """Return the kind registered under *name* (``"skill"`` or ``"solution"``)."""
    try:
        return KINDS[name]
    except KeyError:
        raise ValueError(
            f"Unknown entity kind '{name}'. Expected one of: {', '.join(sorted(KINDS))}"
        ) from None
