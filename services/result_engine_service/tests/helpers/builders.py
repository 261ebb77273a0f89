"""Builders for grade scales, subject configuration and results used across tests."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from markbook_core.grade_scales import get_grade_scale_template
from markbook_core.status_enums import CompletenessStatus

from services.result_engine_service.domain_models import (
    AssessmentComponent,
    CohortKey,
    GradeRange,
    GradeScale,
    Result,
    SubjectAssessmentConfig,
    SubjectResult,
    make_result_id,
)

INSTITUTION_ID = "inst-greenfield"
CLASS_ID = "jss1-a"
TERM_ID = "2025-first-term"
COHORT = CohortKey(institution_id=INSTITUTION_ID, class_id=CLASS_ID, term_id=TERM_ID)


def scale_from_template(
    template_id: str = "primary_100",
    scale_id: Optional[str] = None,
    institution_id: str = INSTITUTION_ID,
    is_active: bool = True,
) -> GradeScale:
    template = get_grade_scale_template(template_id)
    return GradeScale(
        scale_id=scale_id or f"scale-{template_id}",
        institution_id=institution_id,
        name=template.display_name,
        ranges=[
            GradeRange(
                min_score=band.min_score,
                max_score=band.max_score,
                grade=band.grade,
                points=band.points,
                remark=band.remark,
            )
            for band in template.bands
        ],
        is_active=is_active,
    )


def grade_range(low: str, high: str, grade: str, points: str = "1") -> GradeRange:
    return GradeRange(
        min_score=Decimal(low), max_score=Decimal(high), grade=grade, points=Decimal(points)
    )


def ca_exam_config(
    subject_id: str = "mathematics",
    credit_hours: str = "1",
    is_required: bool = True,
) -> SubjectAssessmentConfig:
    """Three continuous assessments out of 30 and an exam out of 70."""
    return SubjectAssessmentConfig(
        subject_id=subject_id,
        subject_name=subject_id.title(),
        components=[
            AssessmentComponent(name="ca1", max_score=Decimal("30")),
            AssessmentComponent(name="ca2", max_score=Decimal("30")),
            AssessmentComponent(name="ca3", max_score=Decimal("30")),
            AssessmentComponent(name="exam", max_score=Decimal("70")),
        ],
        credit_hours=Decimal(credit_hours),
        is_required=is_required,
    )


def full_marks(ca1: str, ca2: str, ca3: str, exam: str) -> dict[str, Decimal]:
    return {
        "ca1": Decimal(ca1),
        "ca2": Decimal(ca2),
        "ca3": Decimal(ca3),
        "exam": Decimal(exam),
    }


def subject_result(
    student_id: str,
    subject_id: str,
    total_score: str,
    complete: bool = True,
    cohort: CohortKey = COHORT,
    **overrides: Any,
) -> SubjectResult:
    values: dict[str, Any] = {
        "institution_id": cohort.institution_id,
        "student_id": student_id,
        "class_id": cohort.class_id,
        "term_id": cohort.term_id,
        "subject_id": subject_id,
        "total_score": Decimal(total_score),
        "grade": "A",
        "points": Decimal("4.0"),
        "completeness": CompletenessStatus.from_flag(complete),
        "grade_scale_id": "scale-primary_100",
    }
    values.update(overrides)
    return SubjectResult(**values)


def term_result(
    student_id: str,
    average_score: str,
    complete: bool = True,
    cohort: CohortKey = COHORT,
    **overrides: Any,
) -> Result:
    values: dict[str, Any] = {
        "result_id": make_result_id(
            cohort.institution_id, cohort.class_id, cohort.term_id, student_id
        ),
        "institution_id": cohort.institution_id,
        "student_id": student_id,
        "class_id": cohort.class_id,
        "term_id": cohort.term_id,
        "average_score": Decimal(average_score),
        "completeness": CompletenessStatus.from_flag(complete),
    }
    values.update(overrides)
    return Result(**values)
