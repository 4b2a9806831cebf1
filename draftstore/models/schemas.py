"""
draftstore/models/schemas.py -- JSON Schemas for skill and solution drafts.

The schemas only pin down what every stage of the wizard relies on:
identity fields, primitive types of the main sections, the phase enum
and a handful of enums/ranges.  Optional content is left open so that a
draft in its first phase still validates.
"""

from __future__ import annotations

from draftstore.phases import SKILL_PHASES, SOLUTION_PHASES

_TIMESTAMP = {"type": "string"}
_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_THRESHOLD = {"type": "number", "minimum": 0, "maximum": 1}

_COMMON_PROPERTIES = {
    "id": {"type": "string", "minLength": 1},
    "name": {"type": "string", "minLength": 1},
    "version": {"type": "string"},
    "description": {"type": "string"},
    "created_at": _TIMESTAMP,
    "updated_at": _TIMESTAMP,
    "linked_domains": _STRING_LIST,
    "conversation": {
        "type": "array",
        "items": {
            "type": "object",
            "required": ["role", "content"],
            "properties": {
                "role": {"enum": ["user", "assistant", "system"]},
                "content": {"type": "string"},
            },
        },
    },
}


SKILL_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Skill draft",
    "type": "object",
    "required": ["id", "name", "phase", "problem", "role", "intents"],
    "properties": {
        **_COMMON_PROPERTIES,
        "phase": {"enum": list(SKILL_PHASES)},
        "problem": {
            "type": "object",
            "properties": {
                "statement": {"type": "string"},
                "context": {"type": "string"},
                "goals": _STRING_LIST,
            },
        },
        "scenarios": {"type": "array", "items": {"type": "object"}},
        "role": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "persona": {"type": "string"},
                "goals": _STRING_LIST,
                "limitations": _STRING_LIST,
                "communication_style": {
                    "type": "object",
                    "properties": {
                        "tone": {"enum": ["formal", "casual", "technical"]},
                        "verbosity": {"enum": ["concise", "balanced", "detailed"]},
                    },
                },
            },
        },
        "glossary": {"type": "object"},
        "intents": {
            "type": "object",
            "properties": {
                "supported": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "string"},
                            "description": {"type": "string"},
                            "examples": _STRING_LIST,
                        },
                    },
                },
                "thresholds": {
                    "type": "object",
                    "properties": {
                        "accept": _THRESHOLD,
                        "clarify": _THRESHOLD,
                        "reject": _THRESHOLD,
                    },
                },
            },
        },
        "tools": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "inputs": {"type": "array"},
                    "output": {"type": "object"},
                    "security": {"type": "object"},
                },
            },
        },
        "meta_tools": {"type": "array", "items": {"type": "object"}},
        "triggers": {"type": "array", "items": {"type": "object"}},
        "policy": {
            "type": "object",
            "properties": {
                "guardrails": {
                    "type": "object",
                    "properties": {"never": _STRING_LIST, "always": _STRING_LIST},
                },
                "approvals": {"type": "array", "items": {"type": "object"}},
                "workflows": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"steps": {"type": "array"}},
                    },
                },
            },
        },
        "engine": {"type": "object"},
        "access_policy": {
            "type": "object",
            "properties": {
                "rules": {
                    "type": "array",
                    "items": {"type": "object", "properties": {"tools": _STRING_LIST}},
                },
            },
        },
        "grant_mappings": {"type": "array", "items": {"type": "object"}},
        "response_filters": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"strip_fields": _STRING_LIST, "mask_fields": _STRING_LIST},
            },
        },
        "channels": {"type": "array"},
        "connectors": {"type": "array"},
    },
}


SOLUTION_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Solution draft",
    "type": "object",
    "required": ["id", "name", "phase"],
    "properties": {
        **_COMMON_PROPERTIES,
        "phase": {"enum": list(SOLUTION_PHASES)},
        "identity": {
            "type": "object",
            "properties": {
                "actor_types": {
                    "type": "array",
                    "items": {"type": "object", "required": ["key"]},
                },
                "admin_roles": _STRING_LIST,
                "default_actor_type": {"type": "string"},
            },
        },
        "skills": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id"],
                "properties": {"id": {"type": "string", "minLength": 1}},
            },
        },
        "grants": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["key"],
                "properties": {
                    "key": {"type": "string", "minLength": 1},
                    "issued_by": _STRING_LIST,
                    "consumed_by": _STRING_LIST,
                },
            },
        },
        "handoffs": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "from": {"type": "string"},
                    "to": {"type": "string"},
                    "grants_passed": _STRING_LIST,
                },
            },
        },
        "routing": {"type": "object"},
        "platform_connectors": {"type": "array", "items": {"type": "object"}},
        "security_contracts": {"type": "array", "items": {"type": "object"}},
    },
}


SCHEMAS = {"skill": SKILL_SCHEMA, "solution": SOLUTION_SCHEMA}
