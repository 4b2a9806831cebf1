"""
draftstore/manager.py -- Wires repositories and pipelines from a config.

Provides a single access point for both entity kinds.  Repositories and
pipelines are created lazily on first access; creation is guarded by a
lock so that concurrent first calls from several threads still build
exactly one instance of each.

Usage::

    from draftstore import StoreConfig, StoreManager

    with StoreManager(StoreConfig(root="/tmp/drafts")) as store:
        skill = store.skills.create("Order lookup")
        report = store.validate("skill", skill["id"])
"""

from __future__ import annotations

import logging
import threading

from draftstore.backends import FileBackend, SQLiteBackend, StorageBackend
from draftstore.config import StoreConfig
from draftstore.kinds import EntityKind, get_kind
from draftstore.locks import LockRegistry
from draftstore.repository import EntityRepository, summarize
from draftstore.validation.pipeline import ValidationPipeline, ValidationReport

logger = logging.getLogger(__name__)


class StoreManager:
    """Owns the repository and validation pipeline of each entity kind.

    Parameters
    ----------
    config : StoreConfig, optional
        Storage root and backend.  Defaults to ``StoreConfig()``.
    consistency_checkers : list, optional
        Checkers handed to every pipeline.
    consistency_blocks : bool
        Let consistency findings block export.
    """

    def __init__(self, config: StoreConfig | None = None, consistency_checkers=None,
                 *, consistency_blocks: bool = False):
        self.config = config or StoreConfig()
        self._checkers = list(consistency_checkers or [])
        self._consistency_blocks = consistency_blocks
        self._init_lock = threading.Lock()
        self._entity_locks = LockRegistry()
        self._repositories: dict[str, EntityRepository] = {}
        self._pipelines: dict[str, ValidationPipeline] = {}

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def skills(self) -> EntityRepository:
        return self.repository("skill")

    @property
    def solutions(self) -> EntityRepository:
        return self.repository("solution")

    def repository(self, kind_name: str) -> EntityRepository:
        """Return the repository for ``"skill"`` or ``"solution"``."""
        repo = self._repositories.get(kind_name)
        if repo is not None:
            return repo
        kind = get_kind(kind_name)
        with self._init_lock:
            # Double-check after acquiring lock
            repo = self._repositories.get(kind_name)
            if repo is None:
                repo = EntityRepository(self._make_backend(kind), kind, self._entity_locks)
                self._repositories[kind_name] = repo
            return repo

    def pipeline(self, kind_name: str) -> ValidationPipeline:
        """Return the validation pipeline for ``"skill"`` or ``"solution"``."""
        pipe = self._pipelines.get(kind_name)
        if pipe is not None:
            return pipe
        kind = get_kind(kind_name)
        with self._init_lock:
            pipe = self._pipelines.get(kind_name)
            if pipe is None:
                pipe = ValidationPipeline(
                    kind,
                    self._checkers,
                    consistency_blocks=self._consistency_blocks,
                    parallel=self.config.parallel_validation,
                )
                self._pipelines[kind_name] = pipe
            return pipe

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, kind_name: str, entity_id: str, focus: str | None = None) -> ValidationReport:
        """Load a stored draft and validate it.

        Raises ``NotFound`` if the draft does not exist; validation
        problems are always reported on the returned report instead.
        """
        entity = self.repository(kind_name).load(entity_id)
        return self.pipeline(kind_name).run(entity, focus=focus)

    def validate_entity(self, kind_name: str, entity: dict, focus: str | None = None) -> ValidationReport:
        """Validate an in-memory draft without touching storage."""
        return self.pipeline(kind_name).run(entity, focus=focus)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release backend resources (SQLite connections)."""
        with self._init_lock:
            for repo in self._repositories.values():
                repo.backend.close()
            self._repositories.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _make_backend(self, kind: EntityKind) -> StorageBackend:
        if self.config.backend == "sqlite":
            logger.debug("Opening SQLite store %s for %s", self.config.sqlite_path, kind.plural)
            return SQLiteBackend(self.config.sqlite_path, kind.name)
        root = self.config.root / kind.plural
        logger.debug("Opening file store %s", root)
        return FileBackend(root, summarize=lambda entity: summarize(entity, kind))
