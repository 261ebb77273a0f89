"""
PostgreSQL implementation of ResultRepositoryProtocol.

Every cohort write locks the cohort_states row first, so version bumps,
guarded cohort writes and the published-result check are serialized per
cohort. Works against asyncpg in production and aiosqlite in tests.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional

from markbook_core.status_enums import ResultStatus
from markbook_service_libs.logging_utils import create_service_logger
from sqlalchemy import exists, or_, select, update

from services.result_engine_service.domain_models import (
    AttendanceRecord,
    CohortKey,
    CohortSnapshot,
    CohortState,
    ConductRecord,
    GradeRange,
    GradeScale,
    Result,
    SubjectResult,
)
from services.result_engine_service.implementations.result_repository_mappers import (
    ResultRepositoryMappers,
)
from services.result_engine_service.models_db import (
    CohortStateRow,
    GradeScaleRow,
    SubjectResultRow,
    TermResultRow,
)
from services.result_engine_service.protocols import ResultRepositoryProtocol

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = create_service_logger("result_engine.repository")


def _now() -> datetime:
    return datetime.now(UTC)


class ResultRepositoryPostgresImpl(ResultRepositoryProtocol):
    """SQLAlchemy async repository for grade scales, results and cohort state."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        """Initialize with session factory.

        Args:
            session_factory: SQLAlchemy async session factory (injected from DI)
        """
        self.session_factory = session_factory
        self.mappers = ResultRepositoryMappers()

    # ========== Grade scales ==========

    async def create_grade_scale(self, scale: GradeScale, activate: bool) -> GradeScale:
        now = _now()
        async with self.session_factory() as session:
            async with session.begin():
                if activate:
                    await self._deactivate_institution_scales(session, scale.institution_id, now)

                row = GradeScaleRow(
                    scale_id=scale.scale_id,
                    institution_id=scale.institution_id,
                    name=scale.name,
                    is_active=activate,
                    created_at=now,
                    updated_at=now,
                    ranges=[self.mappers.map_range_to_row(r) for r in scale.ranges],
                )
                session.add(row)
                await session.flush()
                return self.mappers.map_scale_to_domain(row)

    async def update_grade_scale(
        self, scale_id: str, name: Optional[str], ranges: Optional[list[GradeRange]]
    ) -> Optional[GradeScale]:
        async with self.session_factory() as session:
            async with session.begin():
                row = await self._get_scale_row(session, scale_id)
                if row is None:
                    return None
                if name is not None:
                    row.name = name
                if ranges is not None:
                    row.ranges = [self.mappers.map_range_to_row(r) for r in ranges]
                row.updated_at = _now()
                await session.flush()
                return self.mappers.map_scale_to_domain(row)

    async def activate_grade_scale(self, scale_id: str) -> Optional[GradeScale]:
        now = _now()
        async with self.session_factory() as session:
            async with session.begin():
                row = await self._get_scale_row(session, scale_id)
                if row is None:
                    return None
                await self._deactivate_institution_scales(session, row.institution_id, now)
                row.is_active = True
                row.updated_at = now
                await session.flush()
                return self.mappers.map_scale_to_domain(row)

    async def delete_grade_scale(self, scale_id: str) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                row = await self._get_scale_row(session, scale_id)
                if row is None:
                    return False
                await session.delete(row)
                return True

    async def get_grade_scale(self, scale_id: str) -> Optional[GradeScale]:
        async with self.session_factory() as session:
            row = await self._get_scale_row(session, scale_id)
            return self.mappers.map_scale_to_domain(row) if row else None

    async def get_active_grade_scale(self, institution_id: str) -> Optional[GradeScale]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(GradeScaleRow).where(
                    GradeScaleRow.institution_id == institution_id,
                    GradeScaleRow.is_active.is_(True),
                )
            )
            row = result.scalars().first()
            return self.mappers.map_scale_to_domain(row) if row else None

    async def list_grade_scales(self, institution_id: str) -> list[GradeScale]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(GradeScaleRow)
                .where(GradeScaleRow.institution_id == institution_id)
                .order_by(GradeScaleRow.created_at, GradeScaleRow.scale_id)
            )
            return [self.mappers.map_scale_to_domain(row) for row in result.scalars()]

    async def is_grade_scale_referenced(self, scale_id: str, published_only: bool) -> bool:
        pinned = exists().where(TermResultRow.grade_scale_id == scale_id)
        if published_only:
            condition = exists().where(
                TermResultRow.grade_scale_id == scale_id,
                TermResultRow.status == ResultStatus.PUBLISHED,
            )
        else:
            condition = or_(pinned, exists().where(SubjectResultRow.grade_scale_id == scale_id))

        async with self.session_factory() as session:
            result = await session.execute(select(condition))
            return bool(result.scalar())

    # ========== Subject and term results ==========

    async def get_subject_result(
        self, cohort: CohortKey, student_id: str, subject_id: str
    ) -> Optional[SubjectResult]:
        async with self.session_factory() as session:
            row = await self._get_subject_row(session, cohort, student_id, subject_id)
            return self.mappers.map_subject_result_to_domain(row) if row else None

    async def list_student_subject_results(
        self, cohort: CohortKey, student_id: str
    ) -> list[SubjectResult]:
        async with self.session_factory() as session:
            result = await session.execute(
                self._subject_rows_query(cohort)
                .where(SubjectResultRow.student_id == student_id)
                .order_by(SubjectResultRow.subject_id)
            )
            return [self.mappers.map_subject_result_to_domain(row) for row in result.scalars()]

    async def upsert_subject_result(self, subject_result: SubjectResult) -> Optional[SubjectResult]:
        cohort = CohortKey(
            institution_id=subject_result.institution_id,
            class_id=subject_result.class_id,
            term_id=subject_result.term_id,
        )
        now = _now()
        async with self.session_factory() as session:
            async with session.begin():
                state = await self._lock_cohort_state(session, cohort)

                term_row = await self._get_result_row(session, cohort, subject_result.student_id)
                if term_row is not None and term_row.status == ResultStatus.PUBLISHED:
                    logger.info(
                        "Subject result write refused, term result is published",
                        student_id=subject_result.student_id,
                        subject_id=subject_result.subject_id,
                    )
                    return None

                row = await self._get_subject_row(
                    session, cohort, subject_result.student_id, subject_result.subject_id
                )
                if row is None:
                    row = SubjectResultRow(
                        institution_id=cohort.institution_id,
                        class_id=cohort.class_id,
                        term_id=cohort.term_id,
                        student_id=subject_result.student_id,
                        subject_id=subject_result.subject_id,
                        created_at=now,
                    )
                    session.add(row)
                self.mappers.apply_subject_result(row, subject_result)
                row.updated_at = now

                state.version += 1
                await session.flush()
                return self.mappers.map_subject_result_to_domain(row)

    async def get_result(self, cohort: CohortKey, student_id: str) -> Optional[Result]:
        async with self.session_factory() as session:
            row = await self._get_result_row(session, cohort, student_id)
            return self.mappers.map_result_to_domain(row) if row else None

    async def upsert_result(self, result: Result) -> Result:
        now = _now()
        async with self.session_factory() as session:
            async with session.begin():
                state = await self._lock_cohort_state(session, result.cohort_key)

                row = await self._get_result_row(session, result.cohort_key, result.student_id)
                if row is None:
                    row = self.mappers.new_result_row(result)
                    row.created_at = now
                    session.add(row)
                elif row.status == ResultStatus.PUBLISHED:
                    return self.mappers.map_result_to_domain(row)
                else:
                    self.mappers.apply_result_scores(row, result)
                row.updated_at = now

                state.version += 1
                await session.flush()
                return self.mappers.map_result_to_domain(row)

    async def update_result_details(
        self,
        cohort: CohortKey,
        student_id: str,
        attendance: Optional[AttendanceRecord],
        conduct: Optional[ConductRecord],
    ) -> Optional[Result]:
        async with self.session_factory() as session:
            async with session.begin():
                row = await self._get_result_row(session, cohort, student_id)
                if row is None:
                    return None
                if attendance is not None:
                    self.mappers.apply_attendance(row, attendance)
                if conduct is not None:
                    self.mappers.apply_conduct(row, conduct)
                row.updated_at = _now()
                await session.flush()
                return self.mappers.map_result_to_domain(row)

    # ========== Cohort-wide operations ==========

    async def get_cohort_state(self, cohort: CohortKey) -> CohortState:
        async with self.session_factory() as session:
            row = await session.get(
                CohortStateRow, (cohort.institution_id, cohort.class_id, cohort.term_id)
            )
            return self._state_or_initial(cohort, row)

    async def snapshot_cohort(self, cohort: CohortKey) -> CohortSnapshot:
        async with self.session_factory() as session:
            async with session.begin():
                state_row = await session.get(
                    CohortStateRow, (cohort.institution_id, cohort.class_id, cohort.term_id)
                )
                subject_rows = await session.execute(
                    self._subject_rows_query(cohort).order_by(
                        SubjectResultRow.student_id, SubjectResultRow.subject_id
                    )
                )
                result_rows = await session.execute(
                    self._result_rows_query(cohort).order_by(TermResultRow.student_id)
                )
                return CohortSnapshot(
                    state=self._state_or_initial(cohort, state_row),
                    subject_results=[
                        self.mappers.map_subject_result_to_domain(row)
                        for row in subject_rows.scalars()
                    ],
                    results=[
                        self.mappers.map_result_to_domain(row) for row in result_rows.scalars()
                    ],
                )

    async def replace_cohort_results(
        self,
        cohort: CohortKey,
        expected_version: int,
        results: list[Result],
        subject_results: list[SubjectResult],
        ranked_count: int,
        excluded_count: int,
        ranked_at: datetime,
    ) -> Optional[CohortState]:
        now = _now()
        async with self.session_factory() as session:
            async with session.begin():
                state = await self._lock_cohort_state(session, cohort)
                if state.version != expected_version:
                    logger.info(
                        "Cohort version moved, recompute write skipped",
                        expected_version=expected_version,
                        actual_version=state.version,
                    )
                    return None

                result_rows = await self._result_rows_by_student(session, cohort)
                published = {
                    student_id
                    for student_id, row in result_rows.items()
                    if row.status == ResultStatus.PUBLISHED
                }
                for result in results:
                    row = result_rows.get(result.student_id)
                    if row is None:
                        row = self.mappers.new_result_row(result)
                        row.created_at = now
                        session.add(row)
                    elif result.student_id in published:
                        continue
                    else:
                        self.mappers.apply_result_scores(row, result)
                    self.mappers.apply_result_ranking(row, result)
                    row.updated_at = now

                subject_rows = await self._subject_rows_by_key(session, cohort)
                for subject_result in subject_results:
                    if subject_result.student_id in published:
                        continue
                    subject_row = subject_rows.get(
                        (subject_result.student_id, subject_result.subject_id)
                    )
                    if subject_row is not None:
                        subject_row.position = subject_result.position

                state.ranked_version = expected_version
                state.ranked_count = ranked_count
                state.excluded_count = excluded_count
                state.ranked_at = ranked_at
                await session.flush()
                return self.mappers.map_state_to_domain(state)

    async def publish_cohort(
        self,
        cohort: CohortKey,
        expected_version: int,
        results: list[Result],
        subject_results: list[SubjectResult],
    ) -> bool:
        now = _now()
        async with self.session_factory() as session:
            async with session.begin():
                state = await self._lock_cohort_state(session, cohort)
                if state.version != expected_version:
                    return False

                result_rows = await self._result_rows_by_student(session, cohort)
                for result in results:
                    row = result_rows.get(result.student_id)
                    if row is not None:
                        self.mappers.apply_result_publication(row, result)
                        row.updated_at = now

                subject_rows = await self._subject_rows_by_key(session, cohort)
                for subject_result in subject_results:
                    subject_row = subject_rows.get(
                        (subject_result.student_id, subject_result.subject_id)
                    )
                    if subject_row is not None:
                        self.mappers.apply_subject_grade(subject_row, subject_result)
                        subject_row.updated_at = now
                return True

    async def unpublish_cohort(self, cohort: CohortKey) -> list[Result]:
        now = _now()
        async with self.session_factory() as session:
            async with session.begin():
                await self._lock_cohort_state(session, cohort)
                result = await session.execute(
                    self._result_rows_query(cohort)
                    .where(TermResultRow.status == ResultStatus.PUBLISHED)
                    .order_by(TermResultRow.student_id)
                )
                rows = list(result.scalars())
                for row in rows:
                    row.status = ResultStatus.DRAFT
                    row.updated_at = now
                await session.flush()
                return [self.mappers.map_result_to_domain(row) for row in rows]

    # ========== Helpers ==========

    async def _lock_cohort_state(self, session: AsyncSession, cohort: CohortKey) -> CohortStateRow:
        row = await session.get(
            CohortStateRow,
            (cohort.institution_id, cohort.class_id, cohort.term_id),
            with_for_update=True,
        )
        if row is None:
            row = CohortStateRow(
                institution_id=cohort.institution_id,
                class_id=cohort.class_id,
                term_id=cohort.term_id,
                version=0,
                ranked_count=0,
                excluded_count=0,
            )
            session.add(row)
        return row

    def _state_or_initial(self, cohort: CohortKey, row: Optional[CohortStateRow]) -> CohortState:
        if row is None:
            return CohortState(
                institution_id=cohort.institution_id,
                class_id=cohort.class_id,
                term_id=cohort.term_id,
            )
        return self.mappers.map_state_to_domain(row)

    async def _deactivate_institution_scales(
        self, session: AsyncSession, institution_id: str, now: datetime
    ) -> None:
        await session.execute(
            update(GradeScaleRow)
            .where(
                GradeScaleRow.institution_id == institution_id,
                GradeScaleRow.is_active.is_(True),
            )
            .values(is_active=False, updated_at=now)
        )

    async def _get_scale_row(
        self, session: AsyncSession, scale_id: str
    ) -> Optional[GradeScaleRow]:
        result = await session.execute(
            select(GradeScaleRow).where(GradeScaleRow.scale_id == scale_id)
        )
        return result.scalars().first()

    def _subject_rows_query(self, cohort: CohortKey):
        return select(SubjectResultRow).where(
            SubjectResultRow.institution_id == cohort.institution_id,
            SubjectResultRow.class_id == cohort.class_id,
            SubjectResultRow.term_id == cohort.term_id,
        )

    def _result_rows_query(self, cohort: CohortKey):
        return select(TermResultRow).where(
            TermResultRow.institution_id == cohort.institution_id,
            TermResultRow.class_id == cohort.class_id,
            TermResultRow.term_id == cohort.term_id,
        )

    async def _get_subject_row(
        self, session: AsyncSession, cohort: CohortKey, student_id: str, subject_id: str
    ) -> Optional[SubjectResultRow]:
        result = await session.execute(
            self._subject_rows_query(cohort).where(
                SubjectResultRow.student_id == student_id,
                SubjectResultRow.subject_id == subject_id,
            )
        )
        return result.scalars().first()

    async def _get_result_row(
        self, session: AsyncSession, cohort: CohortKey, student_id: str
    ) -> Optional[TermResultRow]:
        result = await session.execute(
            self._result_rows_query(cohort).where(TermResultRow.student_id == student_id)
        )
        return result.scalars().first()

    async def _result_rows_by_student(
        self, session: AsyncSession, cohort: CohortKey
    ) -> dict[str, TermResultRow]:
        result = await session.execute(self._result_rows_query(cohort))
        return {row.student_id: row for row in result.scalars()}

    async def _subject_rows_by_key(
        self, session: AsyncSession, cohort: CohortKey
    ) -> dict[tuple[str, str], SubjectResultRow]:
        result = await session.execute(self._subject_rows_query(cohort))
        return {(row.student_id, row.subject_id): row for row in result.scalars()}

