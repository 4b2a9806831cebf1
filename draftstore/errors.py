"""
draftstore/errors.py -- Exception hierarchy for the draft store.

Every error raised by the repository, the storage backends and the
mutation processor derives from ``DraftStoreError`` so that callers
can catch the whole family in one place.  The validation pipeline
never raises; it reports problems as issues instead.
"""

from __future__ import annotations


class DraftStoreError(Exception):
    """Base class for all draft store errors."""


class NotFound(DraftStoreError, LookupError):
    """Raised when an entity id does not exist in the store."""

    def __init__(self, entity_id: str, kind: str = "entity"):
        self.entity_id = entity_id
        self.kind = kind
        super().__init__(f"{kind.capitalize()} '{entity_id}' not found")


class StorageError(DraftStoreError):
    """Raised when the storage medium cannot be read or written."""


class InvalidMutation(DraftStoreError, ValueError):
    """Raised (or collected) when an update instruction cannot be applied.

    Parameters
    ----------
    key : str
        The update-description key that was rejected.
    reason : str
        Human-readable explanation.
    """

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid mutation '{key}': {reason}")

    def to_dict(self) -> dict:
        return {"key": self.key, "reason": self.reason}
