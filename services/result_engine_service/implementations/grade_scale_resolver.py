"""
Grade scale resolution and definition-time validation.

Resolution never validates: a scale reaches the resolver only after
validate_grade_scale accepted it at creation, edit or activation.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence, Union
from uuid import UUID, uuid4

from markbook_core.grade_scales import PERCENTAGE_CEILING, PERCENTAGE_FLOOR, PERCENTAGE_QUANTUM
from markbook_core.status_enums import ResultStatus
from markbook_service_libs.error_handling import (
    raise_coverage_gap,
    raise_missing_range,
    raise_no_active_grade_scale,
    raise_non_monotonic_points,
    raise_overlapping_range,
    raise_resource_not_found,
)

from services.result_engine_service.constants import SERVICE_NAME
from services.result_engine_service.domain_models import GradeRange, GradeScale, Result

Number = Union[Decimal, int, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_percentage(value: Decimal) -> Decimal:
    """Round to two decimal places, half away from zero."""
    return value.quantize(PERCENTAGE_QUANTUM, rounding=ROUND_HALF_UP)


def clamp_percentage(value: Decimal) -> Decimal:
    return max(PERCENTAGE_FLOOR, min(PERCENTAGE_CEILING, value))


class GradeScaleResolver:
    """Maps percentages to grade ranges and checks that scales partition [0, 100]."""

    def resolve(
        self,
        scale: GradeScale,
        percentage: Number,
        correlation_id: Optional[UUID] = None,
    ) -> GradeRange:
        """
        Find the range covering a percentage.

        The percentage is clamped to [0, 100] and quantized to two decimal
        places before lookup.

        Raises:
            MissingRangeError: If no range covers the percentage
        """
        value = quantize_percentage(clamp_percentage(to_decimal(percentage)))
        for grade_range in scale.ranges:
            if grade_range.contains(value):
                return grade_range

        raise_missing_range(
            service=SERVICE_NAME,
            operation="resolve",
            message=f"Grade scale '{scale.name}' has no range covering {value}",
            correlation_id=correlation_id or uuid4(),
            scale_id=scale.scale_id,
            percentage=str(value),
        )

    def validate_grade_scale(
        self,
        ranges: Sequence[GradeRange],
        correlation_id: Optional[UUID] = None,
    ) -> list[GradeRange]:
        """
        Check that ranges partition [0, 100] with non-decreasing points.

        Adjacent ranges must be exactly one percentage quantum apart
        (e.g. [80, 89.99] then [90, 100]).

        Returns:
            The ranges ordered by min_score ascending

        Raises:
            MissingRangeError: If ranges is empty
            OverlappingRangeError: If two ranges share a percentage
            CoverageGapError: If part of [0, 100] is not covered
            GradeScaleValidationError: If points decrease as percentages rise
        """
        correlation_id = correlation_id or uuid4()
        operation = "validate_grade_scale"

        if not ranges:
            raise_missing_range(
                service=SERVICE_NAME,
                operation=operation,
                message="Grade scale must define at least one range",
                correlation_id=correlation_id,
            )

        ordered = sorted(ranges, key=lambda r: (r.min_score, r.max_score))

        if ordered[0].min_score != PERCENTAGE_FLOOR:
            raise_coverage_gap(
                service=SERVICE_NAME,
                operation=operation,
                gap_start=PERCENTAGE_FLOOR,
                gap_end=ordered[0].min_score,
                correlation_id=correlation_id,
            )

        for previous, current in zip(ordered, ordered[1:]):
            if current.min_score <= previous.max_score:
                raise_overlapping_range(
                    service=SERVICE_NAME,
                    operation=operation,
                    lower_grade=previous.grade,
                    upper_grade=current.grade,
                    correlation_id=correlation_id,
                )
            if current.min_score - previous.max_score > PERCENTAGE_QUANTUM:
                raise_coverage_gap(
                    service=SERVICE_NAME,
                    operation=operation,
                    gap_start=previous.max_score,
                    gap_end=current.min_score,
                    correlation_id=correlation_id,
                )
            if current.points < previous.points:
                raise_non_monotonic_points(
                    service=SERVICE_NAME,
                    operation=operation,
                    lower_grade=previous.grade,
                    upper_grade=current.grade,
                    correlation_id=correlation_id,
                )

        if ordered[-1].max_score != PERCENTAGE_CEILING:
            raise_coverage_gap(
                service=SERVICE_NAME,
                operation=operation,
                gap_start=ordered[-1].max_score,
                gap_end=PERCENTAGE_CEILING,
                correlation_id=correlation_id,
            )

        return ordered

    def select_scale_for_result(
        self,
        result: Optional[Result],
        active_scale: Optional[GradeScale],
        scales_by_id: dict[str, GradeScale],
        institution_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> GradeScale:
        """
        Pick the scale a result's grades resolve through.

        PUBLISHED results use the scale pinned at publication; DRAFT results
        (and students without a term result yet) use the active scale.
        """
        correlation_id = correlation_id or uuid4()

        if result is not None and result.status == ResultStatus.PUBLISHED:
            pinned_id = result.grade_scale_id
            if pinned_id is None or pinned_id not in scales_by_id:
                raise_resource_not_found(
                    service=SERVICE_NAME,
                    operation="select_scale_for_result",
                    resource_type="GradeScale",
                    resource_id=str(pinned_id),
                    correlation_id=correlation_id,
                    result_id=result.result_id,
                )
            return scales_by_id[pinned_id]

        if active_scale is None:
            raise_no_active_grade_scale(
                service=SERVICE_NAME,
                operation="select_scale_for_result",
                institution_id=institution_id,
                correlation_id=correlation_id,
            )
        return active_scale
