"""
Shared pytest fixtures for the draftstore test suite.

Provides:
    - store_config: a StoreConfig rooted in a temporary directory
    - store: a StoreManager on the file backend (closed after the test)
    - sqlite_store: the same on the SQLite backend
    - solutions / skills: the two file-backed repositories
    - skill_fields: content of a complete, exportable skill
    - solution_fields: content of a consistent two-skill solution
    - skill_doc / solution_doc: full in-memory documents built from them
"""

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Ensure draftstore/ is importable regardless of where pytest is invoked
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from draftstore.config import StoreConfig  # noqa: E402
from draftstore.defaults import empty_skill, empty_solution  # noqa: E402
from draftstore.manager import StoreManager  # noqa: E402
from draftstore.utils import deep_merge  # noqa: E402


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

@pytest.fixture
def store_config(tmp_path):
    """Return a file-backend config rooted in a fresh temp directory."""
    return StoreConfig(root=tmp_path / "drafts")


@pytest.fixture
def store(store_config):
    """Return a StoreManager on the file backend."""
    manager = StoreManager(store_config)
    yield manager
    manager.close()


@pytest.fixture
def sqlite_store(tmp_path):
    """Return a StoreManager on the SQLite backend."""
    manager = StoreManager(StoreConfig(root=tmp_path / "db", backend="sqlite"))
    yield manager
    manager.close()


@pytest.fixture
def solutions(store):
    return store.solutions


@pytest.fixture
def skills(store):
    return store.skills


# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------

@pytest.fixture
def skill_fields():
    """Content of a skill that passes every validator."""
    return {
        "problem": {
            "statement": "Customers cannot track their orders without calling support",
            "context": "Online shop with ~2k orders per day",
            "goals": ["Self-service order tracking"],
        },
        "scenarios": [
            {"id": "scenario_track", "title": "Track an order", "description": "Customer asks where a parcel is"},
        ],
        "role": {
            "name": "Order assistant",
            "persona": "Precise and friendly",
            "goals": [],
            "limitations": [],
        },
        "intents": {
            "supported": [
                {
                    "id": "intent_track",
                    "description": "User wants the status of an order",
                    "examples": ["Where is my order?"],
                    "maps_to_workflow": "workflow_track",
                },
            ],
        },
        "tools": [
            {
                "id": "tool_get_order",
                "name": "get_order",
                "description": "Fetch an order by id",
                "inputs": [{"name": "order_id", "type": "string"}],
                "output": {"type": "object", "description": "The order record"},
                "mock_status": "tested",
                "security": {"classification": "public", "risk": "low"},
            },
        ],
        "policy": {
            "guardrails": {"never": ["Reveal card numbers"], "always": ["Confirm the order id"]},
            "workflows": [
                {
                    "id": "workflow_track",
                    "name": "track_order",
                    "trigger": "intent_track",
                    "steps": ["get_order"],
                },
            ],
            "approvals": [],
        },
    }


@pytest.fixture
def solution_fields():
    """Content of a two-skill solution with consistent references."""
    return {
        "identity": {
            "actor_types": [{"key": "customer", "label": "Customer"}, {"key": "agent", "label": "Agent"}],
            "admin_roles": ["agent"],
            "default_actor_type": "customer",
        },
        "skills": [
            {"id": "identity", "role": "gateway", "entry_channels": ["telegram"]},
            {"id": "orders", "role": "worker"},
        ],
        "grants": [
            {"key": "ecom.customer_id", "issued_by": ["identity"], "consumed_by": ["orders"]},
        ],
        "handoffs": [
            {
                "id": "identity-to-orders",
                "from": "identity",
                "to": "orders",
                "grants_passed": ["ecom.customer_id"],
                "mechanism": "internal-message",
            },
        ],
        "routing": {"telegram": {"default_skill": "identity"}},
        "security_contracts": [
            {
                "name": "orders need a verified customer",
                "consumer": "orders",
                "provider": "identity",
                "requires_grants": ["ecom.customer_id"],
            },
        ],
    }


@pytest.fixture
def skill_doc(skill_fields):
    """A full skill document built from skill_fields, not stored anywhere."""
    doc = deep_merge(empty_skill(), skill_fields)
    doc.update(id="skill_orders", name="Orders", phase="MOCK_TESTING")
    return doc


@pytest.fixture
def solution_doc(solution_fields):
    """A full solution document built from solution_fields, not stored anywhere."""
    doc = deep_merge(empty_solution(), solution_fields)
    doc.update(id="sol_shop", name="Shop", phase="VALIDATION")
    return doc
