"""Unit tests for CohortRanker competition ranking."""

from __future__ import annotations

from decimal import Decimal

import pytest
from markbook_service_libs.error_handling import InvalidCohortError

from services.result_engine_service.domain_models import CohortKey
from services.result_engine_service.implementations.cohort_ranker import CohortRanker
from services.result_engine_service.tests.helpers.builders import subject_result, term_result


@pytest.fixture
def ranker() -> CohortRanker:
    return CohortRanker()


def positions(ranking) -> dict[str, int | None]:
    return {result.student_id: result.position for result in ranking.results}


def test_ties_share_position_and_next_position_skips(ranker: CohortRanker) -> None:
    results = [
        term_result("d", "80"),
        term_result("b", "90"),
        term_result("a", "95"),
        term_result("c", "90"),
    ]

    ranking = ranker.rank_cohort(results)

    assert positions(ranking) == {"a": 1, "b": 2, "c": 2, "d": 4}
    assert [r.student_id for r in ranking.results] == ["a", "b", "c", "d"]
    assert ranking.ranked_count == 4
    assert ranking.excluded_count == 0
    assert {r.total_students for r in ranking.results} == {4}


def test_incomplete_results_are_excluded(ranker: CohortRanker) -> None:
    results = [
        term_result("a", "70"),
        term_result("b", "99", complete=False),
        term_result("c", "60"),
    ]

    ranking = ranker.rank_cohort(results)

    assert positions(ranking) == {"a": 1, "c": 2, "b": None}
    assert ranking.results[-1].student_id == "b"
    assert ranking.ranked_count == 2
    assert ranking.excluded_count == 1
    # excluded results also carry the ranked count
    assert {r.total_students for r in ranking.results} == {2}


def test_all_equal_scores_share_first_place(ranker: CohortRanker) -> None:
    ranking = ranker.rank_cohort([term_result(s, "75.5") for s in ("x", "y", "z")])

    assert set(positions(ranking).values()) == {1}


def test_hundredths_break_ties(ranker: CohortRanker) -> None:
    ranking = ranker.rank_cohort([term_result("a", "80.00"), term_result("b", "80.01")])

    assert positions(ranking) == {"b": 1, "a": 2}


def test_reranking_replaces_stale_positions(ranker: CohortRanker) -> None:
    stale = [term_result("a", "50", position=1), term_result("b", "60", position=1)]

    ranking = ranker.rank_cohort(stale)

    assert positions(ranking) == {"b": 1, "a": 2}


def test_empty_cohort(ranker: CohortRanker) -> None:
    ranking = ranker.rank_cohort([])

    assert ranking.results == []
    assert ranking.ranked_count == 0


def test_mixed_cohorts_are_rejected(ranker: CohortRanker) -> None:
    other = CohortKey(institution_id="inst-greenfield", class_id="jss2-b", term_id="t")

    with pytest.raises(InvalidCohortError) as exc_info:
        ranker.rank_cohort([term_result("a", "80"), term_result("b", "70", cohort=other)])

    assert len(exc_info.value.details["cohorts"]) == 2


def test_subject_results_rank_per_subject(ranker: CohortRanker) -> None:
    subject_results = [
        subject_result("a", "mathematics", "70"),
        subject_result("b", "mathematics", "90"),
        subject_result("c", "mathematics", "90"),
        subject_result("a", "english", "88"),
        subject_result("b", "english", "40", complete=False),
        subject_result("c", "english", "60"),
    ]

    ranked = ranker.rank_subject_results(subject_results)

    by_key = {(sr.subject_id, sr.student_id): sr.position for sr in ranked}
    assert by_key == {
        ("mathematics", "b"): 1,
        ("mathematics", "c"): 1,
        ("mathematics", "a"): 3,
        ("english", "a"): 1,
        ("english", "c"): 2,
        ("english", "b"): None,
    }
    assert [sr.subject_id for sr in ranked][:3] == ["english"] * 3
    assert all(isinstance(sr.total_score, Decimal) for sr in ranked)
