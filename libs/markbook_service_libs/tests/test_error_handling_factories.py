"""
Unit tests for error factory functions.

Each factory must raise the typed exception with the matching code and put its
context into ErrorDetail.details.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from markbook_core.error_enums import ErrorCode, GradingErrorCode
from markbook_service_libs.error_handling import (
    CoverageGapError,
    GradeScaleInUseError,
    GradeScaleValidationError,
    IncompleteCohortError,
    InvalidCohortError,
    InvalidScoreError,
    InvalidStatusTransitionError,
    MarkbookError,
    MissingRangeError,
    NoActiveGradeScaleError,
    OverlappingRangeError,
    RecomputeConflictError,
    ResultLockedError,
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
    raise_recompute_conflict,
    raise_resource_not_found,
    raise_result_locked,
    raise_validation_error,
)

SERVICE = "test_service"
OPERATION = "test_operation"


class TestCreateErrorDetail:
    def test_populates_fields(self) -> None:
        correlation_id = uuid4()

        detail = create_error_detail(
            ErrorCode.PROCESSING_ERROR, "boom", SERVICE, OPERATION, correlation_id, {"k": 1}
        )

        assert detail.error_code == ErrorCode.PROCESSING_ERROR
        assert detail.correlation_id == correlation_id
        assert detail.details == {"k": 1}
        assert detail.stack_trace is None
        assert detail.timestamp.tzinfo is not None

    def test_capture_stack(self) -> None:
        detail = create_error_detail(
            ErrorCode.UNKNOWN_ERROR, "boom", SERVICE, OPERATION, uuid4(), capture_stack=True
        )

        assert detail.stack_trace


class TestGenericFactories:
    def test_validation_error(self) -> None:
        with pytest.raises(MarkbookError) as exc_info:
            raise_validation_error(
                SERVICE, OPERATION, "subject_id", "unknown subject", uuid4(), value="math"
            )

        assert exc_info.value.error_code == ErrorCode.VALIDATION_ERROR.value
        assert exc_info.value.details == {"field": "subject_id", "value": "math"}

    def test_resource_not_found(self) -> None:
        with pytest.raises(MarkbookError) as exc_info:
            raise_resource_not_found(SERVICE, OPERATION, "Result", "s-1", uuid4())

        assert exc_info.value.error_code == ErrorCode.RESOURCE_NOT_FOUND.value
        assert "Result" in str(exc_info.value)

    def test_external_service_error(self) -> None:
        with pytest.raises(MarkbookError) as exc_info:
            raise_external_service_error(
                SERVICE, OPERATION, "class_management", "timeout", uuid4(), url="http://x"
            )

        assert exc_info.value.error_code == ErrorCode.EXTERNAL_SERVICE_ERROR.value
        assert exc_info.value.details["external_service"] == "class_management"
        assert exc_info.value.details["url"] == "http://x"


class TestGradingFactories:
    def test_invalid_score_stringifies_numbers(self) -> None:
        with pytest.raises(InvalidScoreError) as exc_info:
            raise_invalid_score(
                SERVICE,
                OPERATION,
                "too high",
                uuid4(),
                component="exam",
                value=Decimal("75"),
                maximum=Decimal("70"),
            )

        assert exc_info.value.error_code == GradingErrorCode.INVALID_SCORE.value
        assert exc_info.value.details == {"component": "exam", "value": "75", "maximum": "70"}

    @pytest.mark.parametrize(
        "raise_call, expected_type, code",
        [
            (
                lambda cid: raise_missing_range(SERVICE, OPERATION, "no range", cid),
                MissingRangeError,
                GradingErrorCode.MISSING_RANGE,
            ),
            (
                lambda cid: raise_overlapping_range(SERVICE, OPERATION, "B", "A", cid),
                OverlappingRangeError,
                GradingErrorCode.OVERLAPPING_RANGE,
            ),
            (
                lambda cid: raise_coverage_gap(SERVICE, OPERATION, "49.99", "55", cid),
                CoverageGapError,
                GradingErrorCode.COVERAGE_GAP,
            ),
            (
                lambda cid: raise_non_monotonic_points(SERVICE, OPERATION, "B", "A", cid),
                GradeScaleValidationError,
                GradingErrorCode.NON_MONOTONIC_POINTS,
            ),
        ],
    )
    def test_scale_errors_share_base(self, raise_call, expected_type, code) -> None:
        with pytest.raises(GradeScaleValidationError) as exc_info:
            raise_call(uuid4())

        assert type(exc_info.value) is expected_type
        assert exc_info.value.error_code == code.value

    def test_coverage_gap_details(self) -> None:
        with pytest.raises(CoverageGapError) as exc_info:
            raise_coverage_gap(SERVICE, OPERATION, Decimal("49.99"), Decimal("55"), uuid4())

        assert exc_info.value.details == {"gap_start": "49.99", "gap_end": "55"}

    def test_no_active_grade_scale(self) -> None:
        with pytest.raises(NoActiveGradeScaleError) as exc_info:
            raise_no_active_grade_scale(SERVICE, OPERATION, "inst-1", uuid4())

        assert exc_info.value.details["institution_id"] == "inst-1"

    def test_grade_scale_in_use(self) -> None:
        with pytest.raises(GradeScaleInUseError) as exc_info:
            raise_grade_scale_in_use(SERVICE, OPERATION, "scale-1", "pinned", uuid4())

        assert exc_info.value.details == {"scale_id": "scale-1"}

    def test_incomplete_cohort_carries_reason(self) -> None:
        with pytest.raises(IncompleteCohortError) as exc_info:
            raise_incomplete_cohort(
                SERVICE, OPERATION, "not ranked", uuid4(), reason="not_ranked", version=3
            )

        assert exc_info.value.details == {"reason": "not_ranked", "version": 3}

    def test_recompute_conflict(self) -> None:
        with pytest.raises(RecomputeConflictError) as exc_info:
            raise_recompute_conflict(SERVICE, OPERATION, 4, 5, uuid4())

        assert exc_info.value.details == {"expected_version": 4, "actual_version": 5}
        assert "expected version 4" in str(exc_info.value)

    def test_invalid_status_transition(self) -> None:
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            raise_invalid_status_transition(SERVICE, OPERATION, "published", "published", uuid4())

        assert exc_info.value.error_code == GradingErrorCode.INVALID_STATUS_TRANSITION.value

    def test_result_locked(self) -> None:
        with pytest.raises(ResultLockedError) as exc_info:
            raise_result_locked(SERVICE, OPERATION, "r-1", uuid4(), student_id="s-1")

        assert exc_info.value.details == {"result_id": "r-1", "student_id": "s-1"}

    def test_cohort_published_is_result_locked(self) -> None:
        with pytest.raises(ResultLockedError) as exc_info:
            raise_cohort_published(SERVICE, OPERATION, 2, uuid4(), class_id="jss1-a")

        assert exc_info.value.error_code == GradingErrorCode.RESULT_LOCKED.value
        assert exc_info.value.details == {"published_count": 2, "class_id": "jss1-a"}

    def test_invalid_cohort_is_validation_family(self) -> None:
        with pytest.raises(InvalidCohortError) as exc_info:
            raise_invalid_cohort(SERVICE, OPERATION, "mixed cohorts", uuid4())

        assert exc_info.value.error_code == ErrorCode.VALIDATION_ERROR.value
