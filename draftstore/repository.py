"""
draftstore/repository.py -- Entity CRUD for skill and solution drafts.

One :class:`EntityRepository` serves one entity kind on top of a storage
backend.  It owns id allocation, timestamps, the per-id locks and the
two read-modify-write operations (``update_state`` and
``append_message``), which run entirely under the entity's lock so that
concurrent writers on the same draft never lose each other's changes.

Usage::

    from draftstore.backends import FileBackend
    from draftstore.kinds import SOLUTION
    from draftstore.repository import EntityRepository

    repo = EntityRepository(FileBackend("/tmp/drafts/solutions"), SOLUTION)
    sol = repo.create("Retail support")
    repo.update_state(sol["id"], {"skills_push": [{"id": "identity"}]})
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping

import yaml
from pydantic import ValidationError

from draftstore.backends import StorageBackend
from draftstore.errors import InvalidMutation, NotFound
from draftstore.kinds import EntityKind
from draftstore.locks import LockRegistry
from draftstore.models.base import ConversationMessage, EntitySummary
from draftstore.mutations import PROTECTED_FIELDS, MutationReport, apply_updates
from draftstore.utils import deep_merge, get_path, is_safe_id, new_id, now_iso

logger = logging.getLogger(__name__)

# Fields a caller cannot seed through create() or import_document().
_SYSTEM_FIELDS = PROTECTED_FIELDS | {"updated_at"}
# Status fields of an imported document that the import contract overrides.
_IMPORT_DROPPED = _SYSTEM_FIELDS | {"phase", "status", "validation", "linked_domains"}


def summarize(entity: dict, kind: EntityKind) -> dict:
    """Build the list-summary row for *entity*.

    Counts are named after the first segment of each counted collection,
    so ``intents.supported`` becomes ``intents_count``.
    """
    summary = EntitySummary(
        id=str(entity.get("id") or ""),
        name=str(entity.get("name") or ""),
        phase=str(entity.get("phase") or ""),
        progress=kind.phases.progress(entity.get("phase")),
        created_at=str(entity.get("created_at") or ""),
        updated_at=str(entity.get("updated_at") or ""),
    ).model_dump()
    for path in kind.summary_counts:
        items = get_path(entity, path)
        summary[f"{path.split('.')[0]}_count"] = len(items) if isinstance(items, list) else 0
    return summary


def _grow_conversation(stored: list, incoming) -> list:
    seen = {str(m.get("id")) for m in stored if isinstance(m, Mapping) and m.get("id")}
    merged = copy.deepcopy(stored)
    for message in incoming if isinstance(incoming, list) else []:
        if not isinstance(message, Mapping) or not message.get("id"):
            continue
        if str(message["id"]) not in seen:
            seen.add(str(message["id"]))
            merged.append(copy.deepcopy(dict(message)))
    return merged


class EntityRepository:
    """Create, load, save and remove drafts of one kind.

    Parameters
    ----------
    backend : StorageBackend
        Storage medium for this kind.
    kind : EntityKind
        ``SKILL`` or ``SOLUTION``.
    locks : LockRegistry, optional
        Shared lock registry.  A private one is created when omitted.
    """

    def __init__(self, backend: StorageBackend, kind: EntityKind, locks: LockRegistry | None = None):
        self.backend = backend
        self.kind = kind
        self.locks = locks or LockRegistry()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list(self) -> list[dict]:
        """Return summaries of every draft, newest first (ties by name).

        Only the summary index is read, never the full documents.
        """
        rows = [row for row in self.backend.summaries() if isinstance(row, dict) and row.get("id")]
        rows.sort(key=lambda r: r.get("name") or "")
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return rows

    def load(self, entity_id: str) -> dict:
        """Return the stored draft.

        Raises
        ------
        NotFound
            If no draft with *entity_id* exists.
        StorageError
            If the stored document cannot be read.
        """
        entity = self.backend.read(entity_id)
        if not isinstance(entity.get("conversation"), list):
            entity["conversation"] = []
        return entity

    def exists(self, entity_id: str) -> bool:
        return self.backend.exists(entity_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, name: str, initial_fields: Mapping | None = None) -> dict:
        """Create and persist a new draft in the kind's first phase.

        Parameters
        ----------
        name : str
            Display name.
        initial_fields : Mapping, optional
            Template content deep-merged over the empty skeleton.  ``id``,
            ``conversation`` and the timestamps are ignored.

        Returns
        -------
        dict
            The stored draft.

        Raises
        ------
        InvalidMutation
            If *name* is blank or ``initial_fields`` carries an unknown phase.
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidMutation("name", f"a {self.kind.name} needs a name")

        seed = dict(initial_fields or {})
        phase = seed.pop("phase", None)
        if phase is not None and not self.kind.phases.is_valid(phase):
            raise InvalidMutation("phase", f"unknown {self.kind.name} phase {phase!r}")
        for key in _SYSTEM_FIELDS:
            seed.pop(key, None)
        seed.pop("name", None)

        entity = deep_merge(self.kind.skeleton(), seed)
        entity_id = self._allocate_id()
        now = now_iso()
        entity = {
            "id": entity_id,
            "name": name.strip(),
            "phase": phase or self.kind.phases.first,
            **entity,
            "conversation": [],
            "created_at": now,
            "updated_at": now,
        }
        with self.locks.lock(entity_id):
            self.backend.write(entity, summarize(entity, self.kind))
        logger.info("Created %s %s (%s)", self.kind.name, entity_id, entity["name"])
        return copy.deepcopy(entity)

    def save(self, entity: dict) -> dict:
        """Overwrite a stored draft and bump its ``updated_at``.

        The conversation only grows: the stored messages are kept and any
        message in *entity* with an id not yet stored is appended, so a
        stale copy cannot drop messages written since it was loaded.

        Raises
        ------
        NotFound
            If the draft was never created (or has been removed).
        """
        entity_id = entity.get("id") if isinstance(entity, Mapping) else None
        if not entity_id:
            raise NotFound(str(entity_id), self.kind.name)
        with self.locks.lock(entity_id):
            stored = self.load(entity_id)
            entity = dict(entity)
            entity["conversation"] = _grow_conversation(stored["conversation"], entity.get("conversation"))
            return self._write(entity)

    def remove(self, entity_id: str) -> bool:
        """Delete a draft.  Removing an absent id is not an error."""
        with self.locks.lock(entity_id):
            removed = self.backend.delete(entity_id)
        if removed:
            logger.info("Removed %s %s", self.kind.name, entity_id)
        return removed

    def import_document(self, document, extra_refs=()) -> dict:
        """Create a draft from an exported document.

        Parameters
        ----------
        document : Mapping or str
            The document, or YAML text of it.
        extra_refs : iterable of str
            Ids of related drafts, stored in ``linked_domains`` in order
            with duplicates dropped.

        Returns
        -------
        dict
            The new draft: empty conversation, phase set to the kind's
            import phase, source id kept when it is free.

        Raises
        ------
        InvalidMutation
            If *document* is not a mapping or not parseable YAML.
        """
        if isinstance(document, str):
            try:
                document = yaml.safe_load(document)
            except yaml.YAMLError as exc:
                raise InvalidMutation("document", f"not valid YAML: {exc}") from exc
        if not isinstance(document, Mapping):
            raise InvalidMutation("document", f"a {self.kind.name} document must be a mapping")

        source_id = document.get("id")
        content = {k: v for k, v in document.items() if k not in _IMPORT_DROPPED and k != "name"}
        name = document.get("name")
        if not isinstance(name, str) or not name.strip():
            name = f"Imported {self.kind.name}"

        entity = deep_merge(self.kind.skeleton(), content)
        entity_id = source_id if is_safe_id(source_id) and not self.backend.exists(source_id) else self._allocate_id()
        now = now_iso()
        entity = {
            "id": entity_id,
            "name": name.strip(),
            "phase": self.kind.import_phase,
            **entity,
            "linked_domains": list(dict.fromkeys(str(ref) for ref in extra_refs)),
            "conversation": [],
            "created_at": now,
            "updated_at": now,
        }
        with self.locks.lock(entity_id):
            self.backend.write(entity, summarize(entity, self.kind))
        logger.info(
            "Imported %s %s (source id %s, %d linked)",
            self.kind.name, entity_id, source_id, len(entity["linked_domains"]),
        )
        return copy.deepcopy(entity)

    import_from_yaml = import_document

    def append_message(self, entity_id: str, message: Mapping) -> dict:
        """Append one conversation message and return the updated draft.

        The message gets a ``msg_`` id and a timestamp.  Raises
        ``InvalidMutation`` if it lacks a valid ``role`` or ``content``.
        """
        if not isinstance(message, Mapping):
            raise InvalidMutation("message", "a message must be a mapping")
        try:
            stamped = ConversationMessage.stamp(dict(message))
        except ValidationError as exc:
            raise InvalidMutation("message", str(exc)) from exc

        with self.locks.lock(entity_id):
            entity = self.load(entity_id)
            entity["conversation"].append(stamped.model_dump())
            return self._write(entity)

    def update_state(self, entity_id: str, updates: Mapping) -> MutationReport:
        """Apply an update-description and persist the result once.

        Load, mutate and save happen under the entity's lock.  Rejected
        instructions are reported on the returned
        :class:`~draftstore.mutations.MutationReport`; the others are saved.
        If nothing applied, the draft is not rewritten.
        """
        with self.locks.lock(entity_id):
            entity = self.load(entity_id)
            report = apply_updates(entity, updates, self.kind)
            if report.applied:
                report.entity = self._write(report.entity)
            else:
                report.entity = entity
        logger.debug(
            "Updated %s %s: %d applied, %d rejected",
            self.kind.name, entity_id, len(report.applied), len(report.rejected),
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _write(self, entity: dict) -> dict:
        """Stamp ``updated_at`` and hand the document to the backend.

        Caller must hold the entity's lock.
        """
        entity["updated_at"] = now_iso()
        self.backend.write(entity, summarize(entity, self.kind))
        return copy.deepcopy(entity)

    def _allocate_id(self) -> str:
        while True:
            candidate = new_id(self.kind.id_prefix)
            if not self.backend.exists(candidate):
                return candidate
