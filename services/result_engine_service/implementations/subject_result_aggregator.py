"""Subject-level aggregation: component marks to a graded percentage."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Mapping, Optional
from uuid import UUID, uuid4

from markbook_core.status_enums import CompletenessStatus
from markbook_service_libs.error_handling import raise_invalid_score

from services.result_engine_service.constants import ASSESSMENT_COMPONENT, SERVICE_NAME
from services.result_engine_service.domain_models import (
    GradeScale,
    SubjectAssessmentConfig,
    SubjectResult,
)
from services.result_engine_service.implementations.grade_scale_resolver import (
    GradeScaleResolver,
    quantize_percentage,
)

HUNDRED = Decimal("100")


class SubjectResultAggregator:
    """Turns raw component marks for one student and subject into a SubjectResult."""

    def __init__(self, resolver: GradeScaleResolver) -> None:
        self.resolver = resolver

    def validate_component_marks(
        self,
        config: SubjectAssessmentConfig,
        marks: Mapping[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Reject marks that are negative, above their maximum, or for unknown components.

        Marks are never clamped.
        """
        correlation_id = correlation_id or uuid4()
        for name, mark in marks.items():
            component = config.component(name)
            if component is None:
                raise_invalid_score(
                    service=SERVICE_NAME,
                    operation="validate_component_marks",
                    message=(
                        f"Component '{name}' is not configured for subject '{config.subject_id}'"
                    ),
                    correlation_id=correlation_id,
                    component=name,
                    value=mark,
                    subject_id=config.subject_id,
                )
            if mark < 0:
                raise_invalid_score(
                    service=SERVICE_NAME,
                    operation="validate_component_marks",
                    message=f"Mark for '{name}' cannot be negative",
                    correlation_id=correlation_id,
                    component=name,
                    value=mark,
                    subject_id=config.subject_id,
                )
            if mark > component.max_score:
                raise_invalid_score(
                    service=SERVICE_NAME,
                    operation="validate_component_marks",
                    message=f"Mark for '{name}' exceeds its maximum of {component.max_score}",
                    correlation_id=correlation_id,
                    component=name,
                    value=mark,
                    maximum=component.max_score,
                    subject_id=config.subject_id,
                )

    def calculate_percentage(
        self,
        obtained_and_maxima: Iterable[tuple[Decimal, Decimal]],
        correlation_id: Optional[UUID] = None,
    ) -> Decimal:
        """sum(obtained) / sum(maxima) * 100, two decimal places, half-up."""
        total_obtained = Decimal("0")
        total_maximum = Decimal("0")
        for obtained, maximum in obtained_and_maxima:
            total_obtained += obtained
            total_maximum += maximum

        if total_maximum <= 0:
            raise_invalid_score(
                service=SERVICE_NAME,
                operation="calculate_percentage",
                message="Total maximum marks must be greater than zero",
                correlation_id=correlation_id or uuid4(),
                component="*",
                maximum=total_maximum,
            )
        return quantize_percentage(total_obtained / total_maximum * HUNDRED)

    def aggregate_subject_result(
        self,
        *,
        institution_id: str,
        student_id: str,
        class_id: str,
        term_id: str,
        config: SubjectAssessmentConfig,
        component_marks: Mapping[str, Decimal],
        scale: GradeScale,
        existing: Optional[SubjectResult] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SubjectResult:
        """
        Build a SubjectResult from component marks.

        Missing components count as zero obtained out of their full maximum;
        when a required component is missing the result is INCOMPLETE but still
        carries the best-effort percentage and grade.
        """
        correlation_id = correlation_id or uuid4()
        self.validate_component_marks(config, component_marks, correlation_id)

        pairs = [
            (component_marks.get(component.name, Decimal("0")), component.max_score)
            for component in config.components
        ]
        percentage = self.calculate_percentage(pairs, correlation_id)

        is_complete = all(
            component.name in component_marks
            for component in config.components
            if component.is_required
        )
        grade_range = self.resolver.resolve(scale, percentage, correlation_id)

        return SubjectResult(
            institution_id=institution_id,
            student_id=student_id,
            class_id=class_id,
            term_id=term_id,
            subject_id=config.subject_id,
            component_marks=dict(component_marks),
            total_score=percentage,
            grade=grade_range.grade,
            points=grade_range.points,
            remark=grade_range.remark,
            completeness=CompletenessStatus.from_flag(is_complete),
            grade_scale_id=scale.scale_id,
            position=existing.position if existing else None,
            created_at=existing.created_at if existing else None,
        )

    def aggregate_assessment_score(
        self,
        *,
        institution_id: str,
        student_id: str,
        class_id: str,
        term_id: str,
        subject_id: str,
        marks_obtained: Decimal,
        total_marks: Decimal,
        scale: GradeScale,
        existing: Optional[SubjectResult] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SubjectResult:
        """Build a complete SubjectResult from a single (obtained, total) pair."""
        correlation_id = correlation_id or uuid4()
        if total_marks <= 0:
            raise_invalid_score(
                service=SERVICE_NAME,
                operation="aggregate_assessment_score",
                message="Total marks must be greater than zero",
                correlation_id=correlation_id,
                component=ASSESSMENT_COMPONENT,
                maximum=total_marks,
                subject_id=subject_id,
            )
        if marks_obtained < 0 or marks_obtained > total_marks:
            raise_invalid_score(
                service=SERVICE_NAME,
                operation="aggregate_assessment_score",
                message=f"Marks obtained must be between 0 and {total_marks}",
                correlation_id=correlation_id,
                component=ASSESSMENT_COMPONENT,
                value=marks_obtained,
                maximum=total_marks,
                subject_id=subject_id,
            )

        percentage = self.calculate_percentage([(marks_obtained, total_marks)], correlation_id)
        grade_range = self.resolver.resolve(scale, percentage, correlation_id)

        return SubjectResult(
            institution_id=institution_id,
            student_id=student_id,
            class_id=class_id,
            term_id=term_id,
            subject_id=subject_id,
            component_marks={ASSESSMENT_COMPONENT: marks_obtained},
            total_score=percentage,
            grade=grade_range.grade,
            points=grade_range.points,
            remark=grade_range.remark,
            completeness=CompletenessStatus.COMPLETE,
            grade_scale_id=scale.scale_id,
            position=existing.position if existing else None,
            created_at=existing.created_at if existing else None,
        )
