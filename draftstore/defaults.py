"""
draftstore/defaults.py -- Empty skeletons for new entities.

``empty_skill`` and ``empty_solution`` return fresh nested dicts every
call, so callers may mutate the result freely.  Ids, names, phases and
timestamps are filled in by the repository.
"""

from __future__ import annotations


def empty_skill() -> dict:
    """Return the content of a brand-new skill draft."""
    return {
        "description": "",
        "version": "0.1.0",
        "problem": {
            "statement": "",
            "context": "",
            "goals": [],
        },
        "scenarios": [],
        "role": {
            "name": "",
            "persona": "",
            "goals": [],
            "limitations": [],
        },
        "glossary": {},
        "intents": {
            "supported": [],
            "thresholds": {"accept": 0.8, "clarify": 0.5, "reject": 0.5},
            "out_of_domain": {"action": "redirect", "message": ""},
        },
        "engine": {
            "rv2": {
                "max_iterations": 10,
                "iteration_timeout_ms": 30000,
                "allow_parallel_tools": False,
                "on_max_iterations": "ask_user",
            },
            "hlr": {
                "enabled": True,
                "critic": {"enabled": True, "check_interval": 3, "strictness": "medium"},
                "reflection": {"enabled": True, "depth": "shallow"},
                "replanning": {"enabled": True, "max_replans": 2},
            },
            "autonomy": {"level": "supervised"},
            "finalization_gate": {"enabled": True, "max_retries": 2},
            "internal_error": {
                "enabled": True,
                "tool_not_found": {"enter_resolution_after": 1, "retryable": False},
                "resolution": {
                    "max_iterations": 1,
                    "allowed_capabilities": ["read", "search", "document_output"],
                },
                "loop_detection": {"enabled": True, "identical_call_threshold": 2},
            },
        },
        "toolbox_imports": [],
        "tools": [],
        "meta_tools": [],
        "triggers": [],
        "policy": {
            "guardrails": {"never": [], "always": []},
            "approvals": [],
            "workflows": [],
            "escalation": {"enabled": False, "conditions": [], "target": ""},
        },
        "access_policy": {"rules": []},
        "grant_mappings": [],
        "response_filters": [],
        "connectors": [],
        "channels": [],
        "linked_domains": [],
        "conversation": [],
    }


def empty_solution() -> dict:
    """Return the content of a brand-new solution draft."""
    return {
        "description": "",
        "version": "1.0.0",
        "identity": {
            "actor_types": [],
            "admin_roles": [],
            "default_actor_type": "",
        },
        "skills": [],
        "grants": [],
        "handoffs": [],
        "routing": {},
        "platform_connectors": [],
        "security_contracts": [],
        "linked_domains": [],
        "conversation": [],
    }
