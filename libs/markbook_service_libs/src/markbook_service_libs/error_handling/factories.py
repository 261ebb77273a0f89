"""
Factory functions that build an ErrorDetail and raise the matching exception.

Every factory takes the calling service and operation plus a correlation ID so
that errors can be traced across a recompute or publish pass. Extra keyword
arguments are stored in ``ErrorDetail.details``.
"""

from __future__ import annotations

import traceback
from datetime import datetime, timezone
from typing import Any, NoReturn, Optional, Union
from uuid import UUID

from markbook_core.error_enums import ErrorCode, GradingErrorCode
from markbook_core.models.error_models import ErrorDetail

from markbook_service_libs.error_handling.grading_errors import (
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
from markbook_service_libs.error_handling.markbook_error import MarkbookError


def create_error_detail(
    error_code: Union[ErrorCode, GradingErrorCode],
    message: str,
    service: str,
    operation: str,
    correlation_id: UUID,
    details: Optional[dict[str, Any]] = None,
    capture_stack: bool = False,
) -> ErrorDetail:
    """Build an ErrorDetail stamped with the current UTC time."""
    return ErrorDetail(
        error_code=error_code,
        message=message,
        correlation_id=correlation_id,
        timestamp=datetime.now(timezone.utc),
        service=service,
        operation=operation,
        details=details or {},
        stack_trace="".join(traceback.format_stack()) if capture_stack else None,
    )


# --- Generic factories ---


def raise_validation_error(
    service: str,
    operation: str,
    field: str,
    message: str,
    correlation_id: UUID,
    value: Any = None,
    **additional_context: Any,
) -> NoReturn:
    details: dict[str, Any] = {"field": field}
    if value is not None:
        details["value"] = value
    details.update(additional_context)
    raise MarkbookError(
        create_error_detail(
            ErrorCode.VALIDATION_ERROR, message, service, operation, correlation_id, details
        )
    )


def raise_resource_not_found(
    service: str,
    operation: str,
    resource_type: str,
    resource_id: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    message = f"{resource_type} with ID '{resource_id}' not found"
    details = {"resource_type": resource_type, "resource_id": resource_id, **additional_context}
    raise MarkbookError(
        create_error_detail(
            ErrorCode.RESOURCE_NOT_FOUND, message, service, operation, correlation_id, details
        )
    )


def raise_external_service_error(
    service: str,
    operation: str,
    external_service: str,
    message: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    details = {"external_service": external_service, **additional_context}
    raise MarkbookError(
        create_error_detail(
            ErrorCode.EXTERNAL_SERVICE_ERROR, message, service, operation, correlation_id, details
        )
    )


def raise_processing_error(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    raise MarkbookError(
        create_error_detail(
            ErrorCode.PROCESSING_ERROR,
            message,
            service,
            operation,
            correlation_id,
            dict(additional_context),
            capture_stack=True,
        )
    )


# --- Grading factories ---


def raise_invalid_score(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID,
    component: str,
    value: Any = None,
    maximum: Any = None,
    **additional_context: Any,
) -> NoReturn:
    details: dict[str, Any] = {"component": component}
    if value is not None:
        details["value"] = str(value)
    if maximum is not None:
        details["maximum"] = str(maximum)
    details.update(additional_context)
    raise InvalidScoreError(
        create_error_detail(
            GradingErrorCode.INVALID_SCORE, message, service, operation, correlation_id, details
        )
    )


def raise_missing_range(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    raise MissingRangeError(
        create_error_detail(
            GradingErrorCode.MISSING_RANGE,
            message,
            service,
            operation,
            correlation_id,
            dict(additional_context),
        )
    )


def raise_overlapping_range(
    service: str,
    operation: str,
    lower_grade: str,
    upper_grade: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    message = f"Grade ranges '{lower_grade}' and '{upper_grade}' overlap"
    details = {"lower_grade": lower_grade, "upper_grade": upper_grade, **additional_context}
    raise OverlappingRangeError(
        create_error_detail(
            GradingErrorCode.OVERLAPPING_RANGE, message, service, operation, correlation_id, details
        )
    )


def raise_coverage_gap(
    service: str,
    operation: str,
    gap_start: Any,
    gap_end: Any,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    message = f"Grade ranges leave percentages between {gap_start} and {gap_end} uncovered"
    details = {"gap_start": str(gap_start), "gap_end": str(gap_end), **additional_context}
    raise CoverageGapError(
        create_error_detail(
            GradingErrorCode.COVERAGE_GAP, message, service, operation, correlation_id, details
        )
    )


def raise_non_monotonic_points(
    service: str,
    operation: str,
    lower_grade: str,
    upper_grade: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    message = (
        f"Grade '{upper_grade}' awards fewer points than the lower band '{lower_grade}'"
    )
    details = {"lower_grade": lower_grade, "upper_grade": upper_grade, **additional_context}
    raise GradeScaleValidationError(
        create_error_detail(
            GradingErrorCode.NON_MONOTONIC_POINTS,
            message,
            service,
            operation,
            correlation_id,
            details,
        )
    )


def raise_no_active_grade_scale(
    service: str,
    operation: str,
    institution_id: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    message = f"No active grade scale found for institution '{institution_id}'"
    details = {"institution_id": institution_id, **additional_context}
    raise NoActiveGradeScaleError(
        create_error_detail(
            GradingErrorCode.NO_ACTIVE_GRADE_SCALE,
            message,
            service,
            operation,
            correlation_id,
            details,
        )
    )


def raise_grade_scale_in_use(
    service: str,
    operation: str,
    scale_id: str,
    message: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    details = {"scale_id": scale_id, **additional_context}
    raise GradeScaleInUseError(
        create_error_detail(
            GradingErrorCode.GRADE_SCALE_IN_USE, message, service, operation, correlation_id, details
        )
    )


def raise_incomplete_cohort(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID,
    reason: str,
    **additional_context: Any,
) -> NoReturn:
    details = {"reason": reason, **additional_context}
    raise IncompleteCohortError(
        create_error_detail(
            GradingErrorCode.INCOMPLETE_COHORT, message, service, operation, correlation_id, details
        )
    )


def raise_recompute_conflict(
    service: str,
    operation: str,
    expected_version: int,
    actual_version: Optional[int],
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    message = (
        f"Cohort changed during recompute (expected version {expected_version}, "
        f"found {actual_version})"
    )
    details = {
        "expected_version": expected_version,
        "actual_version": actual_version,
        **additional_context,
    }
    raise RecomputeConflictError(
        create_error_detail(
            GradingErrorCode.RECOMPUTE_CONFLICT, message, service, operation, correlation_id, details
        )
    )


def raise_invalid_status_transition(
    service: str,
    operation: str,
    current_status: str,
    target_status: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    message = f"Cannot transition results from '{current_status}' to '{target_status}'"
    details = {
        "current_status": current_status,
        "target_status": target_status,
        **additional_context,
    }
    raise InvalidStatusTransitionError(
        create_error_detail(
            GradingErrorCode.INVALID_STATUS_TRANSITION,
            message,
            service,
            operation,
            correlation_id,
            details,
        )
    )


def raise_result_locked(
    service: str,
    operation: str,
    result_id: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    message = f"Result '{result_id}' is published; unpublish it before changing marks"
    details = {"result_id": result_id, **additional_context}
    raise ResultLockedError(
        create_error_detail(
            GradingErrorCode.RESULT_LOCKED, message, service, operation, correlation_id, details
        )
    )


def raise_cohort_published(
    service: str,
    operation: str,
    published_count: int,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    message = (
        f"Cohort has {published_count} published results; "
        "unpublish it before changing marks or recomputing"
    )
    details = {"published_count": published_count, **additional_context}
    raise ResultLockedError(
        create_error_detail(
            GradingErrorCode.RESULT_LOCKED, message, service, operation, correlation_id, details
        )
    )


def raise_invalid_cohort(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    raise InvalidCohortError(
        create_error_detail(
            ErrorCode.VALIDATION_ERROR,
            message,
            service,
            operation,
            correlation_id,
            dict(additional_context),
        )
    )
