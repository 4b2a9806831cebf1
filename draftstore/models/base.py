"""
draftstore/models/base.py -- Pydantic models shared by both entity kinds.

Draft documents themselves stay plain dicts (the wizard adds fields
faster than a model could keep up).  The small, stable shapes around
them are modelled here: conversation messages, which are validated on
append, and the summary rows returned by ``EntityRepository.list()``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from draftstore.utils import new_id, now_iso


class ConversationMessage(BaseModel):
    """One chat turn stored in an entity's ``conversation`` list.

    Extra caller fields (``state_update``, ``suggested_focus``...) are kept
    as-is.  ``id`` and ``timestamp`` are always assigned by the store.
    """

    model_config = ConfigDict(extra="allow")

    role: Literal["user", "assistant", "system"]
    content: str
    id: str = Field(default_factory=lambda: new_id("msg"))
    timestamp: str = Field(default_factory=now_iso)

    @classmethod
    def stamp(cls, message: dict) -> "ConversationMessage":
        """Validate *message* and give it a fresh id and timestamp."""
        fields = {k: v for k, v in message.items() if k not in ("id", "timestamp")}
        return cls.model_validate(fields)


class EntitySummary(BaseModel):
    """Row shape of ``EntityRepository.list()``."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    phase: str = ""
    progress: int = 0
    created_at: str = ""
    updated_at: str = ""
