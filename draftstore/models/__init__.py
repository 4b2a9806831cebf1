"""
draftstore/models/ -- Pydantic models and JSON Schemas for draft documents.

Submodules:
    base      Pydantic models for conversation messages and list summaries.
    schemas   JSON Schema (Draft 2020-12) definitions per entity kind.
"""

from draftstore.models.base import ConversationMessage, EntitySummary

__all__ = ["ConversationMessage", "EntitySummary"]
