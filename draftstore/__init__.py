"""
draftstore -- Draft entity store and validation engine.

Holds the skill and solution drafts produced by a chat-driven wizard,
applies flat update-descriptions to them, tracks their wizard phase and
validates their internal cross references.

Usage::

    from draftstore import StoreConfig, StoreManager

    store = StoreManager(StoreConfig(root="/tmp/drafts"))
    sol = store.solutions.create("Retail support")
    store.solutions.update_state(sol["id"], {"skills_push": [{"id": "identity"}]})
    report = store.validate("solution", sol["id"])
"""

from draftstore.config import StoreConfig
from draftstore.errors import DraftStoreError, InvalidMutation, NotFound, StorageError
from draftstore.kinds import SKILL, SOLUTION
from draftstore.manager import StoreManager
from draftstore.repository import EntityRepository

__version__ = "0.1.0"

__all__ = [
    "DraftStoreError",
    "EntityRepository",
    "InvalidMutation",
    "NotFound",
    "SKILL",
    "SOLUTION",
    "StorageError",
    "StoreConfig",
    "StoreManager",
]
