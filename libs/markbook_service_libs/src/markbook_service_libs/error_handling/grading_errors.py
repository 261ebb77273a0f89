"""
Typed exceptions for grade resolution, aggregation, ranking and publication.

Input-level errors (InvalidScoreError) are surfaced per record. Scale errors
block scale creation and activation. Cohort-level errors abort the whole
cohort operation.
"""

from __future__ import annotations

from markbook_service_libs.error_handling.markbook_error import MarkbookError


class InvalidScoreError(MarkbookError):
    """A component mark is negative, exceeds its maximum, or is unknown."""


class GradeScaleValidationError(MarkbookError):
    """A grade scale violates the partition or monotonicity invariants."""


class MissingRangeError(GradeScaleValidationError):
    """No range of the scale covers the requested percentage."""


class OverlappingRangeError(GradeScaleValidationError):
    """Two ranges of one scale share at least one percentage."""


class CoverageGapError(GradeScaleValidationError):
    """The union of a scale's ranges leaves part of [0, 100] uncovered."""


class NoActiveGradeScaleError(MarkbookError):
    """The institution has no active grade scale to resolve against."""


class GradeScaleInUseError(MarkbookError):
    """The scale is referenced by results and cannot be edited or deleted."""


class IncompleteCohortError(MarkbookError):
    """The cohort cannot be published: ranking is missing, stale, or partial."""


class RecomputeConflictError(MarkbookError):
    """The cohort changed while a recompute pass was in flight."""


class InvalidStatusTransitionError(MarkbookError):
    """The requested publication transition is not allowed from the current status."""


class ResultLockedError(MarkbookError):
    """Marks cannot change while the student's term result is published."""


class InvalidCohortError(MarkbookError):
    """Results handed to the ranker do not share one (institution, class, term)."""
