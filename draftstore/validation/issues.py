"""
draftstore/validation/issues.py -- Shared result types for validators.

Every validator returns a :class:`ValidatorOutcome`: a list of
:class:`Issue` objects plus whatever unresolved references or
completeness flags it found.  The pipeline merges the outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

UNRESOLVED_BUCKETS = ("tools", "workflows", "intents", "skills", "grants")


class Severity(Enum):
    BLOCKER = "blocker"
    WARNING = "warning"
    SUGGESTION = "suggestion"


@dataclass
class Issue:
    """A single validation finding."""
    severity: Severity
    type: str
    description: str
    suggestion: str = ""
    related_ids: list[str] = field(default_factory=list)
    path: str = ""

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "type": self.type,
            "description": self.description,
            "suggestion": self.suggestion,
            "relatedIds": list(self.related_ids),
            "path": self.path,
        }


def blocker(type_, description, **kwargs) -> Issue:
    return Issue(Severity.BLOCKER, type_, description, **kwargs)


def warning(type_, description, **kwargs) -> Issue:
    return Issue(Severity.WARNING, type_, description, **kwargs)


def suggestion(type_, description, **kwargs) -> Issue:
    return Issue(Severity.SUGGESTION, type_, description, **kwargs)


def empty_unresolved() -> dict[str, list[str]]:
    return {bucket: [] for bucket in UNRESOLVED_BUCKETS}


@dataclass
class ValidatorOutcome:
    """What one validator found."""
    issues: list[Issue] = field(default_factory=list)
    unresolved: dict[str, list[str]] = field(default_factory=empty_unresolved)
    completeness: dict[str, bool] = field(default_factory=dict)

    def add(self, issue: Issue) -> None:
        self.issues.append(issue)

    def flag(self, bucket: str, ref) -> None:
        """Record an unresolved reference once, keeping first-seen order."""
        refs = self.unresolved.setdefault(bucket, [])
        ref = str(ref)
        if ref not in refs:
            refs.append(ref)
