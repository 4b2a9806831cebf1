"""
draftstore/validation/ -- Validation pipeline for skill and solution drafts.

Submodules:
    issues        Issue / Severity / ValidatorOutcome result types.
    schema        JSON Schema structure checks.
    references    Cross-reference resolution and duplicate keys.
    completeness  Per-section completeness flags.
    security      Tool classification and access policy checks (skills).
    topology      Handoff graph checks (solutions).
    consistency   Pluggable semantic consistency checkers.
    pipeline      ValidationPipeline and ValidationReport.
"""

from draftstore.validation.issues import Issue, Severity
from draftstore.validation.pipeline import ValidationPipeline, ValidationReport

__all__ = ["Issue", "Severity", "ValidationPipeline", "ValidationReport"]
