"""Class-level statistics for cohort report summaries."""

from __future__ import annotations

from collections import Counter, defaultdict
from decimal import Decimal
from typing import Sequence

from services.result_engine_service.domain_models import (
    CohortKey,
    CohortState,
    CohortSummary,
    Result,
    SubjectPerformance,
    SubjectResult,
)
from services.result_engine_service.implementations.grade_scale_resolver import (
    quantize_percentage,
)


def _mean(values: Sequence[Decimal]) -> Decimal:
    return quantize_percentage(sum(values, Decimal("0")) / Decimal(len(values)))


class CohortStatisticsCalculator:
    """Computes averages, extremes and grade distributions over a cohort."""

    def summarize(
        self,
        cohort: CohortKey,
        state: CohortState,
        results: Sequence[Result],
        graded_subject_results: Sequence[SubjectResult],
    ) -> CohortSummary:
        """
        Build a CohortSummary.

        graded_subject_results must already carry grades resolved through each
        result's effective scale.
        """
        averages = [result.average_score for result in results]

        by_subject: dict[str, list[SubjectResult]] = defaultdict(list)
        for subject_result in graded_subject_results:
            by_subject[subject_result.subject_id].append(subject_result)

        subject_performance = [
            SubjectPerformance(
                subject_id=subject_id,
                student_count=len(entries),
                average_score=_mean([sr.total_score for sr in entries]),
                highest_score=max(sr.total_score for sr in entries),
                lowest_score=min(sr.total_score for sr in entries),
                grade_distribution=dict(sorted(Counter(sr.grade for sr in entries).items())),
            )
            for subject_id, entries in sorted(by_subject.items())
        ]

        distribution = Counter(sr.grade for sr in graded_subject_results)

        return CohortSummary(
            institution_id=cohort.institution_id,
            class_id=cohort.class_id,
            term_id=cohort.term_id,
            total_students=len(results),
            ranked_count=state.ranked_count,
            excluded_count=state.excluded_count,
            class_average=_mean(averages) if averages else None,
            highest_average=max(averages) if averages else None,
            lowest_average=min(averages) if averages else None,
            grade_distribution=dict(sorted(distribution.items())),
            subject_performance=subject_performance,
        )
