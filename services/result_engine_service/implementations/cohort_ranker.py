"""
Cohort ranking with standard competition ranking.

Equal scores share a position and the next distinct score skips ahead by
the number of tied entries: averages [95, 90, 90, 80] rank [1, 2, 2, 4].
Ties are reported as-is; there is no secondary tie-break key.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Callable, Optional, Sequence, TypeVar
from uuid import UUID, uuid4

from markbook_service_libs.error_handling import raise_invalid_cohort
from markbook_service_libs.logging_utils import create_service_logger

from services.result_engine_service.constants import SERVICE_NAME
from services.result_engine_service.domain_models import CohortRanking, Result, SubjectResult

logger = create_service_logger("result_engine.cohort_ranker")

T = TypeVar("T", Result, SubjectResult)


def competition_positions(entries: Sequence[T], score: Callable[[T], Decimal]) -> dict[str, int]:
    """
    Assign standard competition positions keyed by student_id.

    Entries must already be ordered by score descending.
    """
    positions: dict[str, int] = {}
    previous_score: Optional[Decimal] = None
    previous_position = 0
    for index, entry in enumerate(entries, start=1):
        current = score(entry)
        if previous_score is None or current != previous_score:
            previous_position = index
            previous_score = current
        positions[entry.student_id] = previous_position
    return positions


def _ordered_by_score(entries: Sequence[T], score: Callable[[T], Decimal]) -> list[T]:
    return sorted(entries, key=lambda entry: (-score(entry), entry.student_id))


def _output_order(entry: Result | SubjectResult) -> tuple[int, int, str]:
    if entry.position is None:
        return (1, 0, entry.student_id)
    return (0, entry.position, entry.student_id)


class CohortRanker:
    """Assigns positions across a cohort. Recomputation fully replaces positions."""

    def rank_cohort(
        self, results: Sequence[Result], correlation_id: Optional[UUID] = None
    ) -> CohortRanking:
        """
        Rank complete results by average_score descending.

        Incomplete results get position None. Every result, ranked or not,
        gets total_students equal to the number of ranked results.

        Raises:
            InvalidCohortError: If the results span more than one cohort
        """
        self._ensure_single_cohort(
            [(r.institution_id, r.class_id, r.term_id) for r in results], correlation_id
        )

        complete = [result for result in results if result.is_complete]
        ordered = _ordered_by_score(complete, lambda r: r.average_score)
        positions = competition_positions(ordered, lambda r: r.average_score)
        ranked_count = len(complete)
        excluded_count = len(results) - ranked_count

        ranked = [
            result.model_copy(
                update={
                    "position": positions.get(result.student_id) if result.is_complete else None,
                    "total_students": ranked_count,
                }
            )
            for result in results
        ]
        ranked.sort(key=_output_order)

        if excluded_count:
            logger.warning(
                "Incomplete results excluded from ranking",
                ranked_count=ranked_count,
                excluded_count=excluded_count,
            )

        return CohortRanking(
            results=ranked, ranked_count=ranked_count, excluded_count=excluded_count
        )

    def rank_subject_results(
        self,
        subject_results: Sequence[SubjectResult],
        correlation_id: Optional[UUID] = None,
    ) -> list[SubjectResult]:
        """
        Rank each subject separately by total_score descending.

        Only COMPLETE subject results receive a position.
        """
        self._ensure_single_cohort(
            [(sr.institution_id, sr.class_id, sr.term_id) for sr in subject_results],
            correlation_id,
        )

        by_subject: dict[str, list[SubjectResult]] = defaultdict(list)
        for subject_result in subject_results:
            by_subject[subject_result.subject_id].append(subject_result)

        ranked: list[SubjectResult] = []
        for subject_id in sorted(by_subject):
            entries = by_subject[subject_id]
            complete = [sr for sr in entries if sr.is_complete]
            ordered = _ordered_by_score(complete, lambda sr: sr.total_score)
            positions = competition_positions(ordered, lambda sr: sr.total_score)
            subject_ranked = [
                sr.model_copy(
                    update={"position": positions.get(sr.student_id) if sr.is_complete else None}
                )
                for sr in entries
            ]
            subject_ranked.sort(key=_output_order)
            ranked.extend(subject_ranked)
        return ranked

    def _ensure_single_cohort(
        self, keys: Sequence[tuple[str, str, str]], correlation_id: Optional[UUID]
    ) -> None:
        distinct = set(keys)
        if len(distinct) > 1:
            raise_invalid_cohort(
                service=SERVICE_NAME,
                operation="rank_cohort",
                message="All results must share institution, class and term",
                correlation_id=correlation_id or uuid4(),
                cohorts=sorted("/".join(key) for key in distinct),
            )
