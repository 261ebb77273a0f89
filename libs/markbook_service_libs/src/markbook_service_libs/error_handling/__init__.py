"""Error handling framework for Markbook services."""

from .factories import (
    create_error_detail,
    raise_cohort_published,
    raise_coverage_gap,
    raise_external_service_error,
    raise_grade_scale_in_use,
    raise_incomplete_cohort,
    raise_invalid_cohort,
    raise_invalid_score,
    raise_invalid_status_transition,
    raise_missing_range,
    raise_no_active_grade_scale,
    raise_non_monotonic_points,
    raise_overlapping_range,
    raise_processing_error,
    raise_recompute_conflict,
    raise_resource_not_found,
    raise_result_locked,
    raise_validation_error,
)
from .grading_errors import (
    CoverageGapError,
    GradeScaleInUseError,
    GradeScaleValidationError,
    IncompleteCohortError,
    InvalidCohortError,
    InvalidScoreError,
    InvalidStatusTransitionError,
    MissingRangeError,
    NoActiveGradeScaleError,
    OverlappingRangeError,
    RecomputeConflictError,
    ResultLockedError,
)
from .markbook_error import MarkbookError

__all__ = [
    "CoverageGapError",
    "GradeScaleInUseError",
    "GradeScaleValidationError",
    "IncompleteCohortError",
    "InvalidCohortError",
    "InvalidScoreError",
    "InvalidStatusTransitionError",
    "MarkbookError",
    "MissingRangeError",
    "NoActiveGradeScaleError",
    "OverlappingRangeError",
    "RecomputeConflictError",
    "ResultLockedError",
    "create_error_detail",
    "raise_cohort_published",
    "raise_coverage_gap",
    "raise_external_service_error",
    "raise_grade_scale_in_use",
    "raise_incomplete_cohort",
    "raise_invalid_cohort",
    "raise_invalid_score",
    "raise_invalid_status_transition",
    "raise_missing_range",
    "raise_no_active_grade_scale",
    "raise_non_monotonic_points",
    "raise_overlapping_range",
    "raise_processing_error",
    "raise_recompute_conflict",
    "raise_resource_not_found",
    "raise_result_locked",
    "raise_validation_error",
]
