"""
draftstore/config.py -- Store configuration.

The store never looks at the environment while it is working.  A
``StoreConfig`` is built once, either explicitly or through
:meth:`StoreConfig.from_env`, and handed to :class:`StoreManager`.

Usage::

    from draftstore.config import StoreConfig

    cfg = StoreConfig(root="/var/lib/drafts", backend="sqlite")
    cfg = StoreConfig.from_env()          # DRAFTSTORE_ROOT etc.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Mapping

from platformdirs import user_data_dir
from pydantic import BaseModel, ConfigDict, Field, field_validator

_APP_NAME = "DraftStore"
_APP_AUTHOR = "DraftStore"

ENV_ROOT = "DRAFTSTORE_ROOT"
ENV_BACKEND = "DRAFTSTORE_BACKEND"
ENV_LOG_LEVEL = "DRAFTSTORE_LOG_LEVEL"


def default_root() -> Path:
    """Return the platform-appropriate data directory for drafts."""
    return Path(user_data_dir(_APP_NAME, _APP_AUTHOR))


class StoreConfig(BaseModel):
    """Where and how drafts are stored.

    Attributes
    ----------
    root : Path
        Storage root.  The file backend keeps ``<root>/skills/`` and
        ``<root>/solutions/``; the SQLite backend keeps ``<root>/draftstore.db``.
    backend : "file" | "sqlite"
        Storage medium.
    log_level : str
        Level used by the CLI when it configures logging.
    parallel_validation : bool
        Run validators on a thread pool instead of one after another.
    """

    model_config = ConfigDict(frozen=True)

    root: Path = Field(default_factory=default_root)
    backend: Literal["file", "sqlite"] = "file"
    log_level: str = "WARNING"
    parallel_validation: bool = False

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def sqlite_path(self) -> Path:
        return self.root / "draftstore.db"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "StoreConfig":
        """Build a config from ``DRAFTSTORE_*`` variables.

        Explicit keyword *overrides* win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict = {}
        if env.get(ENV_ROOT):
            values["root"] = Path(env[ENV_ROOT]).expanduser()
        if env.get(ENV_BACKEND):
            values["backend"] = env[ENV_BACKEND].strip().lower()
        if env.get(ENV_LOG_LEVEL):
            values["log_level"] = env[ENV_LOG_LEVEL]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
