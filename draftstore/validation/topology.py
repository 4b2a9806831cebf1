"""
draftstore/validation/topology.py -- Handoff graph checks for solutions.

Builds a ``networkx.DiGraph`` with one node per skill and one edge per
handoff, then looks for shapes that a per-reference check cannot see:

    - circular handoff chains                     (blocker)
    - grants consumed by skills but never issued  (blocker)
    - contract grants dropped along the handoff path (blocker)
    - contracts with no handoff path at all       (warning)
    - skills unreachable via routing or handoffs  (warning)
    - entry channels with no routing rule         (warning)
    - handoff mechanisms with no declared connector (warning)

Usage::

    from draftstore.validation.topology import TopologyChecker, build_handoff_graph

    graph = build_handoff_graph(solution)
    outcome = TopologyChecker().check(solution)
"""

from __future__ import annotations

import logging

import networkx as nx

from draftstore.validation.issues import ValidatorOutcome, blocker, warning

logger = logging.getLogger(__name__)

INTERNAL_MECHANISM = "internal-message"


def _items(solution, key) -> list:
    value = solution.get(key)
    return [i for i in value if isinstance(i, dict)] if isinstance(value, list) else []


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _is_ref(value) -> bool:
    return isinstance(value, str) and bool(value)


def build_handoff_graph(solution: dict) -> nx.DiGraph:
    """Return a DiGraph of skill ids connected by handoffs.

    Each edge carries a ``handoffs`` attribute listing the handoff
    objects between the two skills (there may be more than one).
    """
    graph = nx.DiGraph()
    for skill in _items(solution, "skills"):
        if _is_ref(skill.get("id")):
            graph.add_node(skill["id"])
    for handoff in _items(solution, "handoffs"):
        src, dst = handoff.get("from"), handoff.get("to")
        if not _is_ref(src) or not _is_ref(dst):
            continue
        if graph.has_edge(src, dst):
            graph[src][dst]["handoffs"].append(handoff)
        else:
            graph.add_edge(src, dst, handoffs=[handoff])
    return graph


class TopologyChecker:
    """Graph-level checks over a solution's skills and handoffs."""

    name = "topology"

    def check(self, solution: dict) -> ValidatorOutcome:
        outcome = ValidatorOutcome()
        graph = build_handoff_graph(solution)
        self._cycles(graph, outcome)
        self._grant_issuers(solution, outcome)
        self._contracts(solution, graph, outcome)
        self._reachability(solution, outcome)
        self._channels(solution, outcome)
        self._connectors(solution, outcome)
        return outcome

    def _cycles(self, graph, outcome):
        for cycle in sorted(nx.simple_cycles(graph), key=lambda c: (len(c), c)):
            chain = " -> ".join(cycle + [cycle[0]])
            outcome.add(blocker(
                "circular_handoff",
                f"Circular handoff chain detected: {chain}",
                suggestion="Break the loop or return control through routing instead",
                related_ids=list(cycle),
                path="handoffs",
            ))

    def _grant_issuers(self, solution, outcome):
        for gi, grant in enumerate(_items(solution, "grants")):
            if grant.get("internal"):
                continue
            consumers = _as_list(grant.get("consumed_by"))
            if consumers and not _as_list(grant.get("issued_by")):
                outcome.add(blocker(
                    "grant_without_issuer",
                    f"Grant {grant.get('key')!r} is consumed by {', '.join(map(str, consumers))} "
                    f"but no skill issues it",
                    suggestion="Add an issuing skill to issued_by",
                    related_ids=[str(grant.get("key"))],
                    path=f"grants[{gi}].issued_by",
                ))

    def _contracts(self, solution, graph, outcome):
        for ci, contract in enumerate(_items(solution, "security_contracts")):
            provider, consumer = contract.get("provider"), contract.get("consumer")
            if not _is_ref(provider) or not _is_ref(consumer):
                continue
            if provider not in graph or consumer not in graph:
                # Dangling skill ids are reported by the reference resolver.
                continue
            try:
                path = nx.shortest_path(graph, provider, consumer)
            except nx.NetworkXNoPath:
                outcome.add(warning(
                    "contract_without_path",
                    f"Security contract {contract.get('name')!r}: no handoff path from "
                    f"{provider!r} to {consumer!r}",
                    related_ids=[provider, consumer],
                    path=f"security_contracts[{ci}]",
                ))
                continue

            edges = list(zip(path, path[1:]))
            for grant in _as_list(contract.get("requires_grants")):
                if not _is_ref(grant):
                    continue
                dropped = [
                    (a, b) for a, b in edges
                    if not any(grant in _as_list(h.get("grants_passed")) for h in graph[a][b]["handoffs"])
                ]
                if dropped:
                    outcome.add(blocker(
                        "grant_not_passed",
                        f"Security contract {contract.get('name')!r}: grant {grant!r} is not passed "
                        f"from {dropped[0][0]!r} to {dropped[0][1]!r}",
                        suggestion=f"Add {grant!r} to grants_passed on that handoff",
                        related_ids=[str(grant)],
                        path=f"security_contracts[{ci}].requires_grants",
                    ))

    def _reachability(self, solution, outcome):
        routing = solution.get("routing") if isinstance(solution.get("routing"), dict) else {}
        refs = [cfg.get("default_skill") for cfg in routing.values() if isinstance(cfg, dict)]
        for handoff in _items(solution, "handoffs"):
            refs.extend((handoff.get("from"), handoff.get("to")))
        reachable = {ref for ref in refs if _is_ref(ref)}

        for si, skill in enumerate(_items(solution, "skills")):
            sid = skill.get("id")
            if _is_ref(sid) and sid not in reachable:
                outcome.add(warning(
                    "orphan_skill",
                    f"Skill {sid!r} is not reachable via routing or handoffs",
                    suggestion="Route a channel to it or add a handoff that targets it",
                    related_ids=[sid],
                    path=f"skills[{si}]",
                ))

    def _channels(self, solution, outcome):
        routing = solution.get("routing") if isinstance(solution.get("routing"), dict) else {}
        for skill in _items(solution, "skills"):
            for channel in _as_list(skill.get("entry_channels")):
                if _is_ref(channel) and channel not in routing:
                    outcome.add(warning(
                        "unrouted_channel",
                        f"Skill {skill.get('id')!r} declares entry channel {channel!r} "
                        f"but no routing rule exists for it",
                        related_ids=[str(skill.get("id")), str(channel)],
                        path="routing",
                    ))

    def _connectors(self, solution, outcome):
        declared = {c["id"] for c in _items(solution, "platform_connectors") if _is_ref(c.get("id"))}
        for hi, handoff in enumerate(_items(solution, "handoffs")):
            mechanism = handoff.get("mechanism")
            if not _is_ref(mechanism) or mechanism == INTERNAL_MECHANISM:
                continue
            if mechanism not in declared:
                outcome.add(warning(
                    "undeclared_connector",
                    f"Handoff {handoff.get('id')!r} uses mechanism {mechanism!r}, "
                    f"which is not declared in platform_connectors",
                    related_ids=[str(mechanism)],
                    path=f"handoffs[{hi}].mechanism",
                ))
