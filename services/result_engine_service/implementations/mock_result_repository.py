"""
In-memory implementation of ResultRepositoryProtocol.

Mirrors ResultRepositoryPostgresImpl semantics for unit tests: one asyncio
lock per cohort stands in for the cohort_states row lock, and every write
touches only the fields its owner is allowed to change.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Optional

from markbook_core.status_enums import ResultStatus
from markbook_service_libs.logging_utils import create_service_logger

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
from services.result_engine_service.protocols import ResultRepositoryProtocol

SubjectKey = tuple[CohortKey, str, str]
ResultKey = tuple[CohortKey, str]

_RANKING_FIELDS = ("position", "total_students")
_SCORE_FIELDS = (
    "total_score",
    "average_score",
    "grade_point_average",
    "subject_count",
    "required_subject_count",
    "completeness",
)
_PUBLICATION_FIELDS = ("status", "grade_scale_id", "published_at")
_SUBJECT_GRADE_FIELDS = ("grade", "points", "remark", "grade_scale_id")


def _fields(source: Result | SubjectResult, names: tuple[str, ...]) -> dict:
    return {name: getattr(source, name) for name in names}


class MockResultRepository(ResultRepositoryProtocol):
    """Fast in-memory repository with per-cohort atomicity."""

    def __init__(self) -> None:
        self.scales: dict[str, GradeScale] = {}
        self.subject_results: dict[SubjectKey, SubjectResult] = {}
        self.results: dict[ResultKey, Result] = {}
        self.states: dict[CohortKey, CohortState] = {}

        self._locks: dict[CohortKey, asyncio.Lock] = {}
        self._scales_lock = asyncio.Lock()
        self.logger = create_service_logger("result_engine.repository.mock")

    def _get_lock(self, cohort: CohortKey) -> asyncio.Lock:
        """Get or create the lock for a cohort (simulates the cohort_states row lock)."""
        if cohort not in self._locks:
            self._locks[cohort] = asyncio.Lock()
        return self._locks[cohort]

    # ---- Grade scales ----

    async def create_grade_scale(self, scale: GradeScale, activate: bool) -> GradeScale:
        now = datetime.now(UTC)
        async with self._scales_lock:
            if activate:
                self._deactivate_institution_scales(scale.institution_id, now)
            stored = scale.model_copy(
                update={"is_active": activate, "created_at": now, "updated_at": now}
            )
            self.scales[stored.scale_id] = stored
            return stored

    async def update_grade_scale(
        self, scale_id: str, name: Optional[str], ranges: Optional[list[GradeRange]]
    ) -> Optional[GradeScale]:
        async with self._scales_lock:
            scale = self.scales.get(scale_id)
            if scale is None:
                return None
            update: dict = {"updated_at": datetime.now(UTC)}
            if name is not None:
                update["name"] = name
            if ranges is not None:
                update["ranges"] = sorted(ranges, key=lambda r: r.min_score)
            self.scales[scale_id] = scale.model_copy(update=update)
            return self.scales[scale_id]

    async def activate_grade_scale(self, scale_id: str) -> Optional[GradeScale]:
        now = datetime.now(UTC)
        async with self._scales_lock:
            scale = self.scales.get(scale_id)
            if scale is None:
                return None
            self._deactivate_institution_scales(scale.institution_id, now)
            self.scales[scale_id] = scale.model_copy(update={"is_active": True, "updated_at": now})
            return self.scales[scale_id]

    async def delete_grade_scale(self, scale_id: str) -> bool:
        async with self._scales_lock:
            return self.scales.pop(scale_id, None) is not None

    async def get_grade_scale(self, scale_id: str) -> Optional[GradeScale]:
        return self.scales.get(scale_id)

    async def get_active_grade_scale(self, institution_id: str) -> Optional[GradeScale]:
        for scale in self.scales.values():
            if scale.institution_id == institution_id and scale.is_active:
                return scale
        return None

    async def list_grade_scales(self, institution_id: str) -> list[GradeScale]:
        return [s for s in self.scales.values() if s.institution_id == institution_id]

    async def is_grade_scale_referenced(self, scale_id: str, published_only: bool) -> bool:
        if published_only:
            return any(
                r.grade_scale_id == scale_id and r.status == ResultStatus.PUBLISHED
                for r in self.results.values()
            )
        return any(r.grade_scale_id == scale_id for r in self.results.values()) or any(
            sr.grade_scale_id == scale_id for sr in self.subject_results.values()
        )

    def _deactivate_institution_scales(self, institution_id: str, now: datetime) -> None:
        for scale_id, scale in list(self.scales.items()):
            if scale.institution_id == institution_id and scale.is_active:
                self.scales[scale_id] = scale.model_copy(
                    update={"is_active": False, "updated_at": now}
                )

    # ---- Subject and term results ----

    async def get_subject_result(
        self, cohort: CohortKey, student_id: str, subject_id: str
    ) -> Optional[SubjectResult]:
        return self.subject_results.get((cohort, student_id, subject_id))

    async def list_student_subject_results(
        self, cohort: CohortKey, student_id: str
    ) -> list[SubjectResult]:
        return sorted(
            (
                sr
                for (key_cohort, key_student, _), sr in self.subject_results.items()
                if key_cohort == cohort and key_student == student_id
            ),
            key=lambda sr: sr.subject_id,
        )

    async def upsert_subject_result(self, subject_result: SubjectResult) -> Optional[SubjectResult]:
        cohort = CohortKey(
            institution_id=subject_result.institution_id,
            class_id=subject_result.class_id,
            term_id=subject_result.term_id,
        )
        key = (cohort, subject_result.student_id, subject_result.subject_id)
        now = datetime.now(UTC)
        async with self._get_lock(cohort):
            term_result = self.results.get((cohort, subject_result.student_id))
            if term_result is not None and term_result.status == ResultStatus.PUBLISHED:
                return None

            existing = self.subject_results.get(key)
            stored = subject_result.model_copy(
                update={
                    "position": existing.position if existing else None,
                    "created_at": existing.created_at if existing else now,
                    "updated_at": now,
                }
            )
            self.subject_results[key] = stored
            self._bump_version(cohort)
            return stored

    async def get_result(self, cohort: CohortKey, student_id: str) -> Optional[Result]:
        return self.results.get((cohort, student_id))

    async def upsert_result(self, result: Result) -> Result:
        cohort = result.cohort_key
        key = (cohort, result.student_id)
        now = datetime.now(UTC)
        async with self._get_lock(cohort):
            existing = self.results.get(key)
            if existing is None:
                stored = Result(
                    result_id=result.result_id,
                    institution_id=result.institution_id,
                    student_id=result.student_id,
                    class_id=result.class_id,
                    term_id=result.term_id,
                    created_at=now,
                    updated_at=now,
                ).model_copy(update=_fields(result, _SCORE_FIELDS))
            elif existing.status == ResultStatus.PUBLISHED:
                return existing
            else:
                stored = existing.model_copy(
                    update={**_fields(result, _SCORE_FIELDS), "updated_at": now}
                )
            self.results[key] = stored
            self._bump_version(cohort)
            return stored

    async def update_result_details(
        self,
        cohort: CohortKey,
        student_id: str,
        attendance: Optional[AttendanceRecord],
        conduct: Optional[ConductRecord],
    ) -> Optional[Result]:
        key = (cohort, student_id)
        async with self._get_lock(cohort):
            existing = self.results.get(key)
            if existing is None:
                return None
            update: dict = {"updated_at": datetime.now(UTC)}
            if attendance is not None:
                update["attendance"] = attendance
            if conduct is not None:
                update["conduct"] = conduct
            self.results[key] = existing.model_copy(update=update)
            return self.results[key]

    # ---- Cohort-wide operations ----

    async def get_cohort_state(self, cohort: CohortKey) -> CohortState:
        return self.states.get(cohort) or CohortState(
            institution_id=cohort.institution_id,
            class_id=cohort.class_id,
            term_id=cohort.term_id,
        )

    async def snapshot_cohort(self, cohort: CohortKey) -> CohortSnapshot:
        async with self._get_lock(cohort):
            return CohortSnapshot(
                state=await self.get_cohort_state(cohort),
                subject_results=sorted(
                    (sr for (c, _, _), sr in self.subject_results.items() if c == cohort),
                    key=lambda sr: (sr.student_id, sr.subject_id),
                ),
                results=sorted(
                    (r for (c, _), r in self.results.items() if c == cohort),
                    key=lambda r: r.student_id,
                ),
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
        now = datetime.now(UTC)
        async with self._get_lock(cohort):
            state = await self.get_cohort_state(cohort)
            if state.version != expected_version:
                return None

            published = {
                student_id
                for (result_cohort, student_id), stored_result in self.results.items()
                if result_cohort == cohort and stored_result.status == ResultStatus.PUBLISHED
            }
            for result in results:
                key = (cohort, result.student_id)
                if result.student_id in published:
                    continue
                existing = self.results.get(key)
                base = existing or result.model_copy(
                    update={"status": ResultStatus.DRAFT, "created_at": now}
                )
                self.results[key] = base.model_copy(
                    update={
                        **_fields(result, _SCORE_FIELDS),
                        **_fields(result, _RANKING_FIELDS),
                        "updated_at": now,
                    }
                )

            for subject_result in subject_results:
                if subject_result.student_id in published:
                    continue
                key = (cohort, subject_result.student_id, subject_result.subject_id)
                stored = self.subject_results.get(key)
                if stored is not None:
                    self.subject_results[key] = stored.model_copy(
                        update={"position": subject_result.position}
                    )

            new_state = state.model_copy(
                update={
                    "ranked_version": expected_version,
                    "ranked_count": ranked_count,
                    "excluded_count": excluded_count,
                    "ranked_at": ranked_at,
                }
            )
            self.states[cohort] = new_state
            return new_state

    async def publish_cohort(
        self,
        cohort: CohortKey,
        expected_version: int,
        results: list[Result],
        subject_results: list[SubjectResult],
    ) -> bool:
        now = datetime.now(UTC)
        async with self._get_lock(cohort):
            state = await self.get_cohort_state(cohort)
            if state.version != expected_version:
                return False

            for result in results:
                key = (cohort, result.student_id)
                stored = self.results.get(key)
                if stored is not None:
                    self.results[key] = stored.model_copy(
                        update={**_fields(result, _PUBLICATION_FIELDS), "updated_at": now}
                    )

            for subject_result in subject_results:
                key = (cohort, subject_result.student_id, subject_result.subject_id)
                stored_subject = self.subject_results.get(key)
                if stored_subject is not None:
                    self.subject_results[key] = stored_subject.model_copy(
                        update={**_fields(subject_result, _SUBJECT_GRADE_FIELDS), "updated_at": now}
                    )
            return True

    async def unpublish_cohort(self, cohort: CohortKey) -> list[Result]:
        now = datetime.now(UTC)
        async with self._get_lock(cohort):
            unpublished = []
            for key, result in sorted(self.results.items(), key=lambda item: item[0][1]):
                if key[0] == cohort and result.status == ResultStatus.PUBLISHED:
                    self.results[key] = result.model_copy(
                        update={"status": ResultStatus.DRAFT, "updated_at": now}
                    )
                    unpublished.append(self.results[key])
            return unpublished

    def _bump_version(self, cohort: CohortKey) -> None:
        """Caller must hold the cohort lock."""
        state = self.states.get(cohort) or CohortState(
            institution_id=cohort.institution_id,
            class_id=cohort.class_id,
            term_id=cohort.term_id,
        )
        self.states[cohort] = state.model_copy(update={"version": state.version + 1})
