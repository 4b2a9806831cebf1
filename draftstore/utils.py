"""
Shared helpers for the draft store.

All JSON writes use atomic temp-file-then-os.replace() so that a reader
never observes a partially written document, even if the process dies
halfway through a save.
"""

import copy
import json
import logging
import os
import re
import tempfile
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# JSON I/O (atomic writes)
# ---------------------------------------------------------------------------

def read_json(path):
    """Read and parse a JSON file.

    Unlike :func:`safe_read_json` this propagates ``FileNotFoundError``,
    ``OSError`` and ``json.JSONDecodeError`` so the caller can tell a
    missing document from a corrupt one.
    """
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def safe_read_json(path, default=None):
    """Read a JSON file, returning *default* if the file is missing or corrupt.

    Parameters
    ----------
    path : str or pathlib.Path
        Absolute path to the JSON file.
    default
        Value returned when the file cannot be read (default ``None``).

    Returns
    -------
    object
        Parsed JSON content, or *default* on failure.
    """
    try:
        return read_json(path)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return default


def safe_write_json(path, data, *, indent=2):
    """Atomically write *data* as JSON to *path*.

    Uses a temporary file in the same directory followed by
    ``os.replace()``.  Parent directories are created if they do not
    exist.

    Parameters
    ----------
    path : str or pathlib.Path
        Absolute path to the target JSON file.
    data
        JSON-serialisable object to write.
    indent : int, optional
        JSON indentation level (default 2).
    """
    path = str(path)
    parent = os.path.dirname(path)
    os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent, ensure_ascii=False)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# ---------------------------------------------------------------------------
# Ids and timestamps
# ---------------------------------------------------------------------------

def new_id(prefix: str) -> str:
    """Return ``<prefix>_<8 hex chars>``, e.g. ``tool_1a2b3c4d``."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Dict helpers
# ---------------------------------------------------------------------------

def deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge *overlay* into a copy of *base*.

    Nested dicts are merged key by key; every other value in *overlay*
    (lists included) replaces the value in *base*.
    """
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def get_path(data, path: str, default=None):
    """Return the value at dotted *path* in *data*, or *default*."""
    node = data
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def is_safe_id(value) -> bool:
    """True if *value* can be used as a file name without escaping the root."""
    return isinstance(value, str) and bool(_SAFE_ID_RE.match(value))
