"""Term-level aggregation of a student's subject results."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from markbook_core.config_enums import AverageWeightingPolicy
from markbook_core.status_enums import CompletenessStatus
from markbook_service_libs.logging_utils import create_service_logger

from services.result_engine_service.domain_models import (
    CurriculumSnapshot,
    Result,
    SubjectAssessmentConfig,
    SubjectResult,
    make_result_id,
)
from services.result_engine_service.implementations.grade_scale_resolver import (
    quantize_percentage,
)

logger = create_service_logger("result_engine.result_aggregator")

ZERO = Decimal("0")


class ResultAggregator:
    """
    Combines a student's subject results into one term Result.

    Only score and completeness fields are computed here; ranking,
    publication and report card fields are carried over from the existing row.
    """

    def aggregate_result(
        self,
        *,
        institution_id: str,
        student_id: str,
        class_id: str,
        term_id: str,
        subject_results: Sequence[SubjectResult],
        curriculum: CurriculumSnapshot,
        existing: Optional[Result] = None,
    ) -> Result:
        """
        Compute totals, averages and completeness for one student.

        total_score is the sum of subject percentages. The averaging
        denominator is every required subject plus any elective the student
        actually sat, so a missing required subject lowers the average and
        keeps the result INCOMPLETE. Subject results for subjects no longer in
        the curriculum are ignored.
        """
        configured: list[tuple[SubjectResult, SubjectAssessmentConfig]] = []
        for subject_result in subject_results:
            config = curriculum.config_for(subject_result.subject_id)
            if config is None:
                logger.warning(
                    "Ignoring subject result for unconfigured subject",
                    student_id=student_id,
                    subject_id=subject_result.subject_id,
                )
                continue
            configured.append((subject_result, config))

        present_ids = {subject_result.subject_id for subject_result, _ in configured}
        required = [config for config in curriculum.subject_configs if config.is_required]
        electives_sat = [config for _, config in configured if not config.is_required]
        counted = required + electives_sat

        total_score = sum((sr.total_score for sr, _ in configured), ZERO)
        average_score = self._average(configured, counted, curriculum.weighting_policy)
        grade_point_average = self._grade_point_average(configured)

        is_complete = (
            bool(configured)
            and all(config.subject_id in present_ids for config in required)
            and all(sr.is_complete for sr, _ in configured)
        )

        base = existing or Result(
            result_id=make_result_id(institution_id, class_id, term_id, student_id),
            institution_id=institution_id,
            student_id=student_id,
            class_id=class_id,
            term_id=term_id,
        )
        return base.model_copy(
            update={
                "total_score": quantize_percentage(total_score),
                "average_score": average_score,
                "grade_point_average": grade_point_average,
                "subject_count": len(configured),
                "required_subject_count": len(required),
                "completeness": CompletenessStatus.from_flag(is_complete),
            }
        )

    def _average(
        self,
        configured: Sequence[tuple[SubjectResult, SubjectAssessmentConfig]],
        counted: Sequence[SubjectAssessmentConfig],
        policy: AverageWeightingPolicy,
    ) -> Decimal:
        if not counted:
            return quantize_percentage(ZERO)

        if policy == AverageWeightingPolicy.CREDIT_WEIGHTED:
            weighted = sum(
                (sr.total_score * config.credit_hours for sr, config in configured), ZERO
            )
            credits = sum((config.credit_hours for config in counted), ZERO)
            return quantize_percentage(weighted / credits)

        total = sum((sr.total_score for sr, _ in configured), ZERO)
        return quantize_percentage(total / Decimal(len(counted)))

    def _grade_point_average(
        self, configured: Sequence[tuple[SubjectResult, SubjectAssessmentConfig]]
    ) -> Decimal:
        """Credit-weighted mean of subject points over the subjects present."""
        credits = sum((config.credit_hours for _, config in configured), ZERO)
        if credits == 0:
            return quantize_percentage(ZERO)
        weighted = sum((sr.points * config.credit_hours for sr, config in configured), ZERO)
        return quantize_percentage(weighted / credits)
