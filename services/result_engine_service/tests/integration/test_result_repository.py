"""
Repository behaviour shared by the in-memory and SQLAlchemy implementations.

Each test runs against both so the unit-test double keeps the same
versioning and field-ownership rules as the database repository.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from markbook_core.status_enums import CompletenessStatus, ResultStatus
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.result_engine_service.domain_models import (
    AttendanceRecord,
    CohortKey,
    ConductRecord,
)
from services.result_engine_service.implementations.mock_result_repository import (
    MockResultRepository,
)
from services.result_engine_service.implementations.result_repository_postgres_impl import (
    ResultRepositoryPostgresImpl,
)
from services.result_engine_service.protocols import ResultRepositoryProtocol
from services.result_engine_service.tests.helpers.builders import (
    COHORT,
    INSTITUTION_ID,
    grade_range,
    scale_from_template,
    subject_result,
    term_result,
)


@pytest.fixture(params=["memory", "sqlalchemy"])
def repo(request: pytest.FixtureRequest, session_factory: async_sessionmaker):
    if request.param == "memory":
        return MockResultRepository()
    return ResultRepositoryPostgresImpl(session_factory)


async def version(repo: ResultRepositoryProtocol, cohort: CohortKey = COHORT) -> int:
    return (await repo.get_cohort_state(cohort)).version


class TestGradeScales:
    @pytest.mark.asyncio
    async def test_activation_keeps_one_active_scale_per_institution(
        self, repo: ResultRepositoryProtocol
    ) -> None:
        primary = await repo.create_grade_scale(scale_from_template("primary_100"), True)
        waec = await repo.create_grade_scale(scale_from_template("waec_neco"), True)
        await repo.create_grade_scale(
            scale_from_template("cambridge", institution_id="other-inst"), True
        )

        active = await repo.get_active_grade_scale(INSTITUTION_ID)
        assert active is not None and active.scale_id == waec.scale_id

        await repo.activate_grade_scale(primary.scale_id)

        scales = {s.scale_id: s.is_active for s in await repo.list_grade_scales(INSTITUTION_ID)}
        assert scales == {primary.scale_id: True, waec.scale_id: False}
        other = await repo.get_active_grade_scale("other-inst")
        assert other is not None and other.scale_id == "scale-cambridge"

    @pytest.mark.asyncio
    async def test_ranges_round_trip_in_order(self, repo: ResultRepositoryProtocol) -> None:
        await repo.create_grade_scale(scale_from_template("primary_100"), False)

        stored = await repo.get_grade_scale("scale-primary_100")

        assert stored is not None
        assert [r.grade for r in stored.ranges] == ["F", "D", "C", "B", "A"]
        assert stored.ranges[-2].max_score == Decimal("89.99")
        assert stored.ranges[-1].points == Decimal("4.0")
        assert stored.ranges[-1].remark == "Excellent"

    @pytest.mark.asyncio
    async def test_update_replaces_ranges_and_name(self, repo: ResultRepositoryProtocol) -> None:
        await repo.create_grade_scale(scale_from_template("primary_100"), True)
        ranges = [grade_range("0", "49.99", "F", "0"), grade_range("50", "100", "P", "1")]

        updated = await repo.update_grade_scale("scale-primary_100", "Pass/Fail", ranges)

        assert updated is not None
        assert updated.name == "Pass/Fail"
        stored = await repo.get_grade_scale("scale-primary_100")
        assert stored is not None and [r.grade for r in stored.ranges] == ["F", "P"]
        assert await repo.update_grade_scale("missing", "x", None) is None

    @pytest.mark.asyncio
    async def test_delete(self, repo: ResultRepositoryProtocol) -> None:
        await repo.create_grade_scale(scale_from_template("primary_100"), True)

        assert await repo.delete_grade_scale("scale-primary_100") is True
        assert await repo.delete_grade_scale("scale-primary_100") is False
        assert await repo.get_grade_scale("scale-primary_100") is None

    @pytest.mark.asyncio
    async def test_reference_checks(self, repo: ResultRepositoryProtocol) -> None:
        await repo.upsert_subject_result(subject_result("ada", "mathematics", "80"))

        assert await repo.is_grade_scale_referenced("scale-primary_100", published_only=False)
        assert not await repo.is_grade_scale_referenced("scale-primary_100", published_only=True)
        assert not await repo.is_grade_scale_referenced("scale-waec_neco", published_only=False)


class TestResults:
    @pytest.mark.asyncio
    async def test_subject_upsert_bumps_version_and_keeps_position(
        self, repo: ResultRepositoryProtocol
    ) -> None:
        marks = {"ca1": Decimal("28.5"), "exam": Decimal("65")}
        await repo.upsert_subject_result(
            subject_result("ada", "mathematics", "80", component_marks=marks)
        )
        await repo.replace_cohort_results(
            COHORT,
            expected_version=1,
            results=[],
            subject_results=[subject_result("ada", "mathematics", "80", position=1)],
            ranked_count=0,
            excluded_count=0,
            ranked_at=datetime.now(UTC),
        )

        saved = await repo.upsert_subject_result(
            subject_result("ada", "mathematics", "85", component_marks=marks, position=7)
        )

        assert saved is not None
        assert saved.position == 1
        assert saved.total_score == Decimal("85")
        assert saved.component_marks == marks
        assert await version(repo) == 2

    @pytest.mark.asyncio
    async def test_result_upsert_writes_only_score_fields(
        self, repo: ResultRepositoryProtocol
    ) -> None:
        created = await repo.upsert_result(term_result("ada", "70", position=9))
        assert created.position is None

        updated = await repo.upsert_result(
            term_result("ada", "75.5", complete=False, status=ResultStatus.PUBLISHED)
        )

        assert updated.average_score == Decimal("75.5")
        assert updated.completeness == CompletenessStatus.INCOMPLETE
        assert updated.status == ResultStatus.DRAFT
        assert await version(repo) == 2

    @pytest.mark.asyncio
    async def test_details_update_does_not_bump_version(
        self, repo: ResultRepositoryProtocol
    ) -> None:
        await repo.upsert_result(term_result("ada", "70"))

        updated = await repo.update_result_details(
            COHORT,
            "ada",
            AttendanceRecord(days_present=50, days_absent=3),
            ConductRecord(principal_comment="Keep it up"),
        )
        conduct_only = await repo.update_result_details(
            COHORT, "ada", None, ConductRecord(conduct_grade="B")
        )

        assert updated is not None and conduct_only is not None
        assert conduct_only.attendance.days_absent == 3
        assert conduct_only.conduct.conduct_grade == "B"
        assert await version(repo) == 1
        assert await repo.update_result_details(COHORT, "ghost", None, None) is None

    @pytest.mark.asyncio
    async def test_cohorts_are_isolated(self, repo: ResultRepositoryProtocol) -> None:
        other = CohortKey(institution_id=INSTITUTION_ID, class_id="jss2-b", term_id="t2")
        await repo.upsert_result(term_result("ada", "70"))
        await repo.upsert_result(term_result("ada", "20", cohort=other))

        snapshot = await repo.snapshot_cohort(COHORT)

        assert [r.average_score for r in snapshot.results] == [Decimal("70")]
        assert await version(repo, other) == 1


class TestCohortWrites:
    async def _seed(self, repo: ResultRepositoryProtocol) -> int:
        for student_id, score in (("ben", "60"), ("ada", "80")):
            await repo.upsert_subject_result(subject_result(student_id, "mathematics", score))
            await repo.upsert_result(term_result(student_id, score))
        return await version(repo)

    @pytest.mark.asyncio
    async def test_snapshot_is_ordered(self, repo: ResultRepositoryProtocol) -> None:
        await self._seed(repo)
        await repo.upsert_subject_result(subject_result("ada", "english", "70"))

        snapshot = await repo.snapshot_cohort(COHORT)

        assert [(sr.student_id, sr.subject_id) for sr in snapshot.subject_results] == [
            ("ada", "english"),
            ("ada", "mathematics"),
            ("ben", "mathematics"),
        ]
        assert [r.student_id for r in snapshot.results] == ["ada", "ben"]
        assert snapshot.state.version == 5

    @pytest.mark.asyncio
    async def test_replace_is_version_guarded(self, repo: ResultRepositoryProtocol) -> None:
        current = await self._seed(repo)
        ranked = [
            term_result("ada", "80", position=1, total_students=2),
            term_result("ben", "60", position=2, total_students=2),
        ]

        stale = await repo.replace_cohort_results(
            COHORT, current - 1, ranked, [], 2, 0, datetime.now(UTC)
        )
        assert stale is None
        ada = await repo.get_result(COHORT, "ada")
        assert ada is not None and ada.position is None

        state = await repo.replace_cohort_results(
            COHORT,
            current,
            ranked,
            [subject_result("ada", "mathematics", "80", position=1)],
            2,
            0,
            datetime.now(UTC),
        )

        assert state is not None
        assert state.version == current
        assert state.ranked_version == current
        assert state.ranking_is_current
        assert state.ranked_count == 2
        ada = await repo.get_result(COHORT, "ada")
        assert ada is not None and (ada.position, ada.total_students) == (1, 2)
        maths = await repo.get_subject_result(COHORT, "ada", "mathematics")
        assert maths is not None and maths.position == 1

    @pytest.mark.asyncio
    async def test_publish_is_version_guarded_and_locks_marks(
        self, repo: ResultRepositoryProtocol
    ) -> None:
        current = await self._seed(repo)
        published_at = datetime.now(UTC)
        results = [
            term_result(
                s,
                score,
                status=ResultStatus.PUBLISHED,
                grade_scale_id="scale-waec_neco",
                published_at=published_at,
            )
            for s, score in (("ada", "80"), ("ben", "60"))
        ]
        regraded = [
            subject_result(
                "ada", "mathematics", "80", grade="B1", grade_scale_id="scale-waec_neco"
            )
        ]

        assert await repo.publish_cohort(COHORT, current + 1, results, regraded) is False
        assert await repo.publish_cohort(COHORT, current, results, regraded) is True

        ada = await repo.get_result(COHORT, "ada")
        assert ada is not None
        assert ada.status == ResultStatus.PUBLISHED
        assert ada.grade_scale_id == "scale-waec_neco"
        assert ada.published_at is not None
        maths = await repo.get_subject_result(COHORT, "ada", "mathematics")
        assert maths is not None and maths.grade == "B1"
        assert await version(repo) == current
        assert await repo.is_grade_scale_referenced("scale-waec_neco", published_only=True)

        refused = await repo.upsert_subject_result(subject_result("ada", "mathematics", "10"))
        unchanged = await repo.upsert_result(term_result("ada", "10"))

        assert refused is None
        assert unchanged.average_score == Decimal("80")
        assert await version(repo) == current

    @pytest.mark.asyncio
    async def test_replace_leaves_published_students_untouched(
        self, repo: ResultRepositoryProtocol
    ) -> None:
        current = await self._seed(repo)
        await repo.publish_cohort(
            COHORT,
            current,
            [term_result("ada", "80", status=ResultStatus.PUBLISHED, grade_scale_id="s")],
            [],
        )

        await repo.replace_cohort_results(
            COHORT,
            current,
            [
                term_result("ada", "10", position=2, total_students=2),
                term_result("ben", "60", position=1, total_students=2),
            ],
            [
                subject_result("ada", "mathematics", "80", position=2),
                subject_result("ben", "mathematics", "60", position=1),
            ],
            2,
            0,
            datetime.now(UTC),
        )

        ada = await repo.get_result(COHORT, "ada")
        ben = await repo.get_result(COHORT, "ben")
        assert ada is not None and ben is not None
        assert (ada.average_score, ada.position) == (Decimal("80"), None)
        assert ben.position == 1
        ada_maths = await repo.get_subject_result(COHORT, "ada", "mathematics")
        ben_maths = await repo.get_subject_result(COHORT, "ben", "mathematics")
        assert ada_maths is not None and ada_maths.position is None
        assert ben_maths is not None and ben_maths.position == 1

    @pytest.mark.asyncio
    async def test_unpublish_keeps_pinned_scale(self, repo: ResultRepositoryProtocol) -> None:
        current = await self._seed(repo)
        await repo.publish_cohort(
            COHORT,
            current,
            [
                term_result(s, "0", status=ResultStatus.PUBLISHED, grade_scale_id="pinned")
                for s in ("ada", "ben")
            ],
            [],
        )

        unpublished = await repo.unpublish_cohort(COHORT)

        assert [r.student_id for r in unpublished] == ["ada", "ben"]
        assert all(r.status == ResultStatus.DRAFT for r in unpublished)
        assert all(r.grade_scale_id == "pinned" for r in unpublished)
        assert await repo.unpublish_cohort(COHORT) == []
        assert await version(repo) == current
