"""
draftstore/validation/pipeline.py -- Multi-stage validation of a draft.

Runs every validator over one snapshot of the draft and merges their
findings into a single :class:`ValidationReport`:

    Stage 1: JSON Schema structure            (SchemaValidator)
    Stage 2: Cross-reference resolution       (ReferenceResolver)
    Stage 3: Section completeness             (CompletenessChecker)
    Stage 4: Tool security, skills only        (SecurityValidator)
    Stage 5: Handoff topology, solutions only (TopologyChecker)
    Stage 6: Injected consistency checkers    (advisory)

The pipeline never short-circuits and never raises.  A validator that
crashes is logged and reported as a ``validator_error``: a blocker for
the core stages, since their checks did not happen, and a warning for
advisory consistency checkers.  The caller always gets a report back.

Usage::

    from draftstore.kinds import SKILL
    from draftstore.validation.pipeline import ValidationPipeline

    report = ValidationPipeline(SKILL).run(skill)
    report.to_dict()["ready_to_export"]
"""

from __future__ import annotations

import copy
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from draftstore.kinds import EntityKind
from draftstore.validation.completeness import CompletenessChecker
from draftstore.validation.consistency import ConsistencyChecker, ConsistencyValidator
from draftstore.validation.issues import (
    Issue,
    Severity,
    ValidatorOutcome,
    blocker,
    empty_unresolved,
    warning,
)
from draftstore.validation.references import ReferenceResolver
from draftstore.validation.schema import SchemaValidator
from draftstore.validation.security import SecurityValidator
from draftstore.validation.topology import TopologyChecker

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    """Merged result of a pipeline run."""
    valid: bool
    ready_to_export: bool
    issues: list[Issue] = field(default_factory=list)
    unresolved: dict[str, list[str]] = field(default_factory=empty_unresolved)
    completeness: dict[str, bool] = field(default_factory=dict)
    progress: int = 0

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.severity is Severity.BLOCKER]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    @property
    def suggestions(self) -> list[Issue]:
        return [i for i in self.issues if i.severity is Severity.SUGGESTION]

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "ready_to_export": self.ready_to_export,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "suggestions": [i.to_dict() for i in self.suggestions],
            "unresolved": {k: list(v) for k, v in self.unresolved.items()},
            "completeness": dict(self.completeness),
            "progress": self.progress,
        }

    def format_summary(self) -> str:
        """One line per blocker and warning, for logs and the CLI."""
        state = "ready to export" if self.ready_to_export else ("valid" if self.valid else "INVALID")
        lines = [f"{state}: {len(self.errors)} error(s), {len(self.warnings)} warning(s), "
                 f"{len(self.suggestions)} suggestion(s)"]
        for issue in self.errors + self.warnings:
            where = f"[{issue.path}] " if issue.path else ""
            lines.append(f"  - {issue.severity.value.upper()}: {where}{issue.description}")
        return "\n".join(lines)


class ValidationPipeline:
    """Validate drafts of one kind.

    Parameters
    ----------
    kind : EntityKind
        ``SKILL`` or ``SOLUTION``.
    consistency_checkers : list, optional
        Objects implementing ``check_consistency(entity, focus=None)``.
    consistency_blocks : bool
        Keep blocker severity on consistency findings (default: downgrade
        them to warnings).
    parallel : bool
        Run the validators on a thread pool.  They share one read-only
        snapshot of the draft.
    """

    def __init__(
        self,
        kind: EntityKind,
        consistency_checkers: list[ConsistencyChecker] | None = None,
        *,
        consistency_blocks: bool = False,
        parallel: bool = False,
    ):
        self.kind = kind
        self.parallel = parallel
        self.completeness = CompletenessChecker(kind)
        self.validators = [
            SchemaValidator(kind),
            ReferenceResolver(kind),
            self.completeness,
        ]
        if kind.name == "skill":
            self.validators.append(SecurityValidator())
        else:
            self.validators.append(TopologyChecker())
        self.consistency = [
            ConsistencyValidator(checker, blocks=consistency_blocks)
            for checker in consistency_checkers or []
        ]

    def run(self, entity: dict, focus: str | None = None) -> ValidationReport:
        """Validate *entity* and return a report.  Never raises.

        Parameters
        ----------
        entity : dict
            The draft.  It is deep-copied once; validators never see the
            caller's object.
        focus : str, optional
            Section hint forwarded to the consistency checkers.
        """
        try:
            snapshot = copy.deepcopy(entity)
        except Exception:
            logger.exception("Could not snapshot %s for validation", self.kind.name)
            snapshot = entity

        jobs = [(v.name, v.check, False) for v in self.validators]
        jobs += [(c.name, _with_focus(c, focus), not c.blocks) for c in self.consistency]

        if self.parallel and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="validate") as pool:
                futures = [pool.submit(self._run_one, name, fn, snapshot, advisory)
                           for name, fn, advisory in jobs]
                outcomes = [f.result() for f in futures]
        else:
            outcomes = [self._run_one(name, fn, snapshot, advisory) for name, fn, advisory in jobs]

        return self._merge(snapshot, outcomes)

    def _run_one(self, name, fn, snapshot, advisory=False) -> ValidatorOutcome:
        try:
            return fn(snapshot)
        except Exception as exc:
            logger.exception("Validator %s failed", name)
            outcome = ValidatorOutcome()
            make = warning if advisory else blocker
            outcome.add(make(
                "validator_error",
                f"Validator '{name}' could not run: {exc}",
                suggestion="Check the document structure; other checks still ran",
            ))
            return outcome

    def _merge(self, snapshot, outcomes) -> ValidationReport:
        issues: list[Issue] = []
        unresolved = empty_unresolved()
        completeness: dict[str, bool] = {}
        for outcome in outcomes:
            issues.extend(outcome.issues)
            for bucket, refs in outcome.unresolved.items():
                target = unresolved.setdefault(bucket, [])
                target.extend(r for r in refs if r not in target)
            completeness.update(outcome.completeness)

        valid = not any(i.severity is Severity.BLOCKER for i in issues)
        phase = snapshot.get("phase") if isinstance(snapshot, dict) else None
        return ValidationReport(
            valid=valid,
            ready_to_export=valid and self.completeness.is_exportable(completeness),
            issues=issues,
            unresolved=unresolved,
            completeness=completeness,
            progress=self.kind.phases.progress(phase),
        )


def _with_focus(validator, focus):
    def run(snapshot):
        return validator.check(snapshot, focus=focus)
    return run
