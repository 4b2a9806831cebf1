"""
draftstore/mutations.py -- Flat update-description language.

An update-description is a mapping from instruction keys to values.
Each key is first parsed into exactly one tagged instruction and then
applied to a deep copy of the entity, in the mapping's insertion order:

    ``<collection>_push``     upsert items by their local key
    ``<collection>_update``   merge fields into existing items
    ``<collection>_delete``   remove items by key (absent keys are no-ops)
    ``<collection>_rename``   change an item's name: ``{"from": old, "to": new}``
    ``a.b.c`` / ``a[2].b``    set a nested value, creating dicts on the way
    ``field``                 assign a top-level field

Instructions that cannot be applied are collected as
:class:`~draftstore.errors.InvalidMutation` on the report; the remaining
instructions still run.  References between items are not checked here,
that is the validation pipeline's job.

Usage::

    from draftstore.kinds import SOLUTION
    from draftstore.mutations import apply_updates

    report = apply_updates(solution, {"grants_push": [{"key": "ecom.id"}]}, SOLUTION)
    report.entity["grants"]
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from draftstore.errors import InvalidMutation
from draftstore.kinds import CollectionSpec, EntityKind
from draftstore.utils import new_id

logger = logging.getLogger(__name__)

PROTECTED_FIELDS = frozenset({"id", "created_at", "conversation"})

_SUFFIXES = ("_push", "_update", "_delete", "_rename")
_SEGMENT_RE = re.compile(r"^([^\[\]]+)((?:\[\d+\])*)$")
_INDEX_RE = re.compile(r"\[(\d+)\]")


# ---------------------------------------------------------------------------
# Instruction variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CollectionPush:
    key: str
    spec: CollectionSpec
    items: tuple

    def apply(self, entity: dict) -> list[str]:
        target = _resolve_list(entity, self.key, self.spec.path, create=True)
        if self.spec.scalar:
            for value in self.items:
                if value not in target:
                    target.append(value)
            return []

        spec = self.spec
        for item in self.items:
            existing = _find(target, spec, item)
            if existing is not None:
                _merge(existing, item, spec)
                continue
            new_item = copy.deepcopy(item)
            if new_item.get(spec.key) is None:
                new_item.pop(spec.key, None)
                new_item = {spec.key: _unique_id(target, spec), **new_item}
            target.append(new_item)
        return []


@dataclass(frozen=True)
class CollectionUpdate:
    key: str
    spec: CollectionSpec
    items: tuple

    def apply(self, entity: dict) -> list[str]:
        target = _resolve_list(entity, self.key, self.spec.path, create=False)
        notes = []
        for item in self.items:
            existing = _find(target or [], self.spec, item)
            if existing is None:
                ident = item.get(self.spec.key) or item.get(self.spec.alt_key or "")
                notes.append(f"{self.key}: no item with {self.spec.key}={ident!r}")
                continue
            _merge(existing, item, self.spec)
        return notes


@dataclass(frozen=True)
class CollectionDelete:
    key: str
    spec: CollectionSpec
    keys: tuple

    def apply(self, entity: dict) -> list[str]:
        target = _resolve_list(entity, self.key, self.spec.path, create=False)
        if not target:
            return []
        spec = self.spec
        keep = []
        for item in target:
            if spec.scalar:
                doomed = item in self.keys
            else:
                doomed = isinstance(item, dict) and (
                    item.get(spec.key) in self.keys
                    or (spec.alt_key is not None and item.get(spec.alt_key) in self.keys)
                )
            if not doomed:
                keep.append(item)
        target[:] = keep
        return []


@dataclass(frozen=True)
class CollectionRename:
    """Rename items in place; keyed collections rename their ``alt_key`` field."""

    key: str
    spec: CollectionSpec
    pairs: tuple

    def apply(self, entity: dict) -> list[str]:
        target = _resolve_list(entity, self.key, self.spec.path, create=False)
        if target is None:
            return [f"{self.key}: {self.spec.path} is empty"]
        # Work on a copy so a conflict halfway through leaves the list alone.
        working = copy.deepcopy(target)
        notes = []
        for old, new in self.pairs:
            if self.spec.scalar:
                values = working
            else:
                values = [i.get(self.spec.alt_key) if isinstance(i, dict) else None for i in working]
            if old not in values:
                notes.append(f"{self.key}: nothing named {old!r}")
                continue
            if new != old and new in values:
                raise InvalidMutation(self.key, f"{new!r} is already used in {self.spec.path}")
            pos = values.index(old)
            if self.spec.scalar:
                working[pos] = new
            else:
                working[pos][self.spec.alt_key] = new
        target[:] = working
        return notes


@dataclass(frozen=True)
class NestedSet:
    key: str
    segments: tuple
    value: object

    def apply(self, entity: dict) -> list[str]:
        # Dry run first so a bad path leaves the entity untouched.
        _walk(entity, self.key, self.segments, create=False)
        parent = _walk(entity, self.key, self.segments, create=True)
        parent[self.segments[-1]] = copy.deepcopy(self.value)
        return []


@dataclass(frozen=True)
class DirectSet:
    key: str
    value: object

    def apply(self, entity: dict) -> list[str]:
        entity[self.key] = copy.deepcopy(self.value)
        return []


@dataclass
class MutationReport:
    """Outcome of :func:`apply_updates`.

    ``entity`` is the mutated copy; the input is never touched.
    ``applied`` lists instruction keys that ran, ``rejected`` holds one
    :class:`InvalidMutation` per refused key, and ``skipped`` holds notes
    for updates whose target item did not exist.
    """

    entity: dict
    applied: list[str] = field(default_factory=list)
    rejected: list[InvalidMutation] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.rejected


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_instruction(key, value, kind: EntityKind):
    """Classify one update-description entry into an instruction variant.

    Parameters
    ----------
    key : str
        The instruction key, e.g. ``"tools_push"`` or ``"problem.statement"``.
    value
        The instruction value.
    kind : EntityKind
        Supplies the collection key table and the phase set.

    Returns
    -------
    CollectionPush | CollectionUpdate | CollectionDelete | CollectionRename | NestedSet | DirectSet

    Raises
    ------
    InvalidMutation
        If the key is malformed, targets an unknown collection, replaces a
        keyed collection wholesale or writes a protected field.
    """
    if not isinstance(key, str) or not key.strip():
        raise InvalidMutation(str(key), "empty instruction key")

    for suffix in _SUFFIXES:
        if key.endswith(suffix):
            return _parse_collection_op(key, suffix, value, kind)

    if "." in key or "[" in key:
        return _parse_nested_set(key, value, kind)

    if key in PROTECTED_FIELDS:
        raise InvalidMutation(key, "field is read-only")
    if key == "phase" and not kind.phases.is_valid(value):
        raise InvalidMutation(key, f"unknown {kind.name} phase {value!r}")
    if key == "name" and not (isinstance(value, str) and value.strip()):
        raise InvalidMutation(key, "name must be a non-empty string")
    _reject_collection_replacement(key, key, value, kind)
    return DirectSet(key, value)


def _parse_collection_op(key, suffix, value, kind):
    path = key[: -len(suffix)]
    if not path or any(not part for part in path.split(".")):
        raise InvalidMutation(key, "missing collection name")
    spec = kind.collection(path)
    if spec is None:
        raise InvalidMutation(key, f"'{path}' is not a known {kind.name} collection")

    if suffix == "_rename":
        return _parse_rename(key, path, value, spec)

    if suffix == "_delete":
        raw = value if isinstance(value, list) else [value]
        keys = []
        for entry in raw:
            if isinstance(entry, dict):
                entry = None if spec.scalar else (
                    entry.get(spec.key) if entry.get(spec.key) is not None
                    else entry.get(spec.alt_key or "")
                )
            if entry is None:
                raise InvalidMutation(key, "delete needs key values")
            keys.append(entry)
        return CollectionDelete(key, spec, tuple(keys))

    items = value if isinstance(value, list) else [value]
    if spec.scalar:
        if suffix == "_update":
            raise InvalidMutation(key, f"'{path}' holds plain values; use _push or _delete")
        if any(isinstance(item, (dict, list)) for item in items):
            raise InvalidMutation(key, f"'{path}' holds plain values, not objects")
        return CollectionPush(key, spec, tuple(items))

    for item in items:
        if not isinstance(item, dict):
            raise InvalidMutation(key, f"items of '{path}' must be objects")
        has_key = item.get(spec.key) is not None
        has_alt = spec.alt_key is not None and item.get(spec.alt_key) is not None
        if suffix == "_update" and not (has_key or has_alt):
            raise InvalidMutation(key, f"update item has no '{spec.key}'")
        if suffix == "_push" and not has_key and spec.prefix is None:
            raise InvalidMutation(key, f"item is missing required key '{spec.key}'")

    cls = CollectionPush if suffix == "_push" else CollectionUpdate
    return cls(key, spec, tuple(items))


def _parse_rename(key, path, value, spec):
    if not spec.scalar and spec.alt_key is None:
        raise InvalidMutation(key, f"items of '{path}' have no name to rename")
    pairs = []
    for entry in value if isinstance(value, list) else [value]:
        if not isinstance(entry, dict):
            raise InvalidMutation(key, 'rename needs {"from": ..., "to": ...}')
        old, new = entry.get("from"), entry.get("to")
        if not isinstance(old, str) or not old or not isinstance(new, str) or not new.strip():
            raise InvalidMutation(key, "rename needs non-empty 'from' and 'to' strings")
        pairs.append((old, new))
    return CollectionRename(key, spec, tuple(pairs))


def _parse_nested_set(key, value, kind):
    segments: list = []
    for raw in key.split("."):
        match = _SEGMENT_RE.match(raw)
        if not raw or match is None:
            raise InvalidMutation(key, "malformed path")
        segments.append(match.group(1))
        segments.extend(int(i) for i in _INDEX_RE.findall(match.group(2)))

    if segments[0] in PROTECTED_FIELDS:
        raise InvalidMutation(key, f"'{segments[0]}' is read-only")
    if segments[0] in ("phase", "name"):
        raise InvalidMutation(key, f"{segments[0]} is a plain string")

    if all(isinstance(s, str) for s in segments):
        _reject_collection_replacement(key, ".".join(segments), value, kind)
    return NestedSet(key, tuple(segments), value)


def _reject_collection_replacement(key, path, value, kind):
    """Refuse assignments that would overwrite a keyed collection."""
    for spec in kind.collections:
        if spec.scalar:
            continue
        if spec.path == path:
            raise InvalidMutation(
                key, f"'{path}' cannot be replaced wholesale; use {path}_push / _delete"
            )
        prefix = path + "."
        if spec.path.startswith(prefix) and isinstance(value, dict):
            rest = spec.path[len(prefix):].split(".")
            node = value
            for part in rest:
                if not isinstance(node, dict) or part not in node:
                    break
                node = node[part]
            else:
                raise InvalidMutation(
                    key, f"value would replace '{spec.path}'; use {spec.path}_push instead"
                )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

def apply_updates(entity: dict, updates, kind: EntityKind) -> MutationReport:
    """Apply an update-description to a copy of *entity*.

    Parameters
    ----------
    entity : dict
        The current document.  Not modified.
    updates : Mapping
        Instruction key -> value, applied in insertion order.
    kind : EntityKind
        The entity's kind.

    Returns
    -------
    MutationReport

    Raises
    ------
    InvalidMutation
        If *updates* is not a mapping at all.
    """
    if not isinstance(updates, Mapping):
        raise InvalidMutation("<updates>", "update-description must be a mapping")

    report = MutationReport(entity=copy.deepcopy(entity))
    for key, value in updates.items():
        try:
            instruction = parse_instruction(key, value, kind)
            notes = instruction.apply(report.entity)
        except InvalidMutation as exc:
            logger.warning("Rejected %s update %s", kind.name, exc)
            report.rejected.append(exc)
            continue
        report.applied.append(key)
        report.skipped.extend(notes)
    return report


def _resolve_list(entity, key, path, *, create):
    node = entity
    parts = path.split(".")
    for part in parts[:-1]:
        child = node.get(part)
        if child is None:
            if not create:
                return None
            child = node[part] = {}
        elif not isinstance(child, dict):
            raise InvalidMutation(key, f"'{part}' is not an object")
        node = child

    last = parts[-1]
    target = node.get(last)
    if target is None:
        if not create:
            return None
        target = node[last] = []
    elif not isinstance(target, list):
        raise InvalidMutation(key, f"'{path}' is not a list")
    return target


def _walk(entity, key, segments, *, create):
    """Return the container that holds the last segment.

    With ``create=False`` nothing is written; missing dicts are tracked
    as ``None`` so that the rest of the path can still be checked.
    """
    node = entity
    for pos, seg in enumerate(segments[:-1]):
        nxt = segments[pos + 1]
        if isinstance(seg, int):
            if not isinstance(node, list) or not 0 <= seg < len(node):
                raise InvalidMutation(key, f"index [{seg}] is out of range")
            child = node[seg]
        else:
            if node is None:
                child = None
            elif not isinstance(node, dict):
                raise InvalidMutation(key, f"'{seg}' is inside a non-object value")
            else:
                child = node.get(seg)
            if child is None:
                if isinstance(nxt, int):
                    raise InvalidMutation(key, f"'{seg}' does not exist")
                if create:
                    child = node[seg] = {}
        if child is not None and not isinstance(child, (dict, list)):
            raise InvalidMutation(key, f"cannot descend into scalar at '{seg}'")
        node = child

    last = segments[-1]
    if isinstance(last, int):
        if not isinstance(node, list) or not 0 <= last < len(node):
            raise InvalidMutation(key, f"index [{last}] is out of range")
    elif node is not None and not isinstance(node, dict):
        raise InvalidMutation(key, f"'{last}' is inside a non-object value")
    return node


def _find(target, spec, item):
    """Locate the existing item that *item* should merge into."""
    ident = item.get(spec.key)
    if ident is not None:
        for existing in target:
            if isinstance(existing, dict) and existing.get(spec.key) == ident:
                return existing
        return None
    if spec.alt_key is not None:
        alt = item.get(spec.alt_key)
        if alt is not None:
            for existing in target:
                if isinstance(existing, dict) and existing.get(spec.alt_key) == alt:
                    return existing
    return None


def _merge(existing, item, spec):
    incoming = copy.deepcopy(item)
    if incoming.get(spec.key) is None:
        # Matched by alt_key; keep the stored key.
        incoming.pop(spec.key, None)
    existing.update(incoming)


def _unique_id(target, spec):
    taken = {item.get(spec.key) for item in target if isinstance(item, dict)}
    while True:
        candidate = new_id(spec.prefix)
        if candidate not in taken:
            return candidate
