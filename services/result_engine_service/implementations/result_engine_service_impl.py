"""
Marks ingestion, cohort recompute and result queries.

Subject results are recomputed whenever marks change. Term results are
refreshed per student on single edits; ranking happens only on an explicit
cohort recompute, which reads a snapshot, recomputes every term result, ranks
and writes everything in one version-guarded unit of work. A version
conflict retries the whole recompute.
"""

from __future__ import annotations

import time
from collections import defaultdict
from datetime import UTC, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from markbook_core.status_enums import ResultStatus
from markbook_service_libs.error_handling import (
    MarkbookError,
    RecomputeConflictError,
    raise_cohort_published,
    raise_recompute_conflict,
    raise_resource_not_found,
    raise_result_locked,
    raise_validation_error,
)
from markbook_service_libs.logging_utils import bind_cohort_context, create_service_logger

from services.result_engine_service.config import Settings
from services.result_engine_service.constants import SERVICE_NAME
from services.result_engine_service.domain_models import (
    AttendanceRecord,
    BulkRecordEntry,
    BulkRecordOutcome,
    CohortKey,
    CohortRecomputeOutcome,
    CohortSummary,
    ConductRecord,
    CurriculumSnapshot,
    GradeScale,
    MarksRecordOutcome,
    RecordRejection,
    Result,
    StudentResultView,
    SubjectAssessmentConfig,
    SubjectGradeView,
    SubjectResult,
)
from services.result_engine_service.implementations.cohort_ranker import CohortRanker
from services.result_engine_service.implementations.cohort_statistics_calculator import (
    CohortStatisticsCalculator,
)
from services.result_engine_service.implementations.grade_scale_resolver import (
    GradeScaleResolver,
)
from services.result_engine_service.implementations.result_aggregator import ResultAggregator
from services.result_engine_service.implementations.subject_result_aggregator import (
    SubjectResultAggregator,
)
from services.result_engine_service.metrics import ResultEngineMetrics
from services.result_engine_service.protocols import (
    CurriculumProviderProtocol,
    ResultEngineServiceProtocol,
    ResultRepositoryProtocol,
)

logger = create_service_logger("result_engine.service")


class ResultEngineServiceImpl(ResultEngineServiceProtocol):
    """Coordinates the aggregators, the ranker and the repository."""

    def __init__(
        self,
        repository: ResultRepositoryProtocol,
        curriculum: CurriculumProviderProtocol,
        resolver: GradeScaleResolver,
        subject_aggregator: SubjectResultAggregator,
        result_aggregator: ResultAggregator,
        ranker: CohortRanker,
        statistics: CohortStatisticsCalculator,
        settings: Settings,
        metrics: Optional[ResultEngineMetrics] = None,
    ) -> None:
        self.repository = repository
        self.curriculum = curriculum
        self.resolver = resolver
        self.subject_aggregator = subject_aggregator
        self.result_aggregator = result_aggregator
        self.ranker = ranker
        self.statistics = statistics
        self.settings = settings
        self.metrics = metrics

    # ---- Marks ingestion ----

    async def record_subject_marks(
        self,
        institution_id: str,
        class_id: str,
        term_id: str,
        student_id: str,
        subject_id: str,
        component_marks: dict[str, Decimal],
        correlation_id: UUID,
    ) -> MarksRecordOutcome:
        """
        Record component marks for one subject and refresh the student's term result.

        New marks are merged over previously recorded components.

        Raises:
            InvalidScoreError: If a mark is negative, too high or for an unknown component
            ResultLockedError: If any term result of the cohort is published
        """
        bind_cohort_context(institution_id, class_id, term_id, correlation_id)
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)
        await self._ensure_cohort_open(cohort, "record_subject_marks", correlation_id)
        curriculum = await self._load_curriculum(cohort, correlation_id)
        scale = await self._active_scale(institution_id, correlation_id)

        subject_result = await self._record_components(
            cohort, student_id, subject_id, component_marks, curriculum, scale, correlation_id
        )
        result = await self._refresh_student_result(cohort, student_id, curriculum)

        self._count_recorded("components")
        logger.info(
            "Subject marks recorded",
            student_id=student_id,
            subject_id=subject_id,
            total_score=str(subject_result.total_score),
            completeness=subject_result.completeness.value,
        )
        return MarksRecordOutcome(subject_result=subject_result, result=result)

    async def record_assessment_score(
        self,
        institution_id: str,
        class_id: str,
        term_id: str,
        student_id: str,
        subject_id: str,
        marks_obtained: Decimal,
        total_marks: Decimal,
        correlation_id: UUID,
    ) -> MarksRecordOutcome:
        """Record a single (obtained, total) score for an assessment-based subject."""
        bind_cohort_context(institution_id, class_id, term_id, correlation_id)
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)
        await self._ensure_cohort_open(cohort, "record_assessment_score", correlation_id)
        curriculum = await self._load_curriculum(cohort, correlation_id)
        scale = await self._active_scale(institution_id, correlation_id)

        subject_result = await self._record_assessment(
            cohort,
            student_id,
            subject_id,
            marks_obtained,
            total_marks,
            curriculum,
            scale,
            correlation_id,
        )
        result = await self._refresh_student_result(cohort, student_id, curriculum)

        self._count_recorded("assessment")
        return MarksRecordOutcome(subject_result=subject_result, result=result)

    async def bulk_record_marks(
        self,
        institution_id: str,
        class_id: str,
        term_id: str,
        entries: list[BulkRecordEntry],
        correlation_id: UUID,
    ) -> BulkRecordOutcome:
        """
        Record many entries, then recompute the cohort.

        A rejected entry is reported in the outcome and does not stop the
        others. Cohort-level failures (published cohort, no active scale,
        curriculum unavailable, recompute conflicts exhausted) abort the
        whole call.
        """
        bind_cohort_context(institution_id, class_id, term_id, correlation_id)
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)
        await self._ensure_cohort_open(cohort, "bulk_record_marks", correlation_id)
        curriculum = await self._load_curriculum(cohort, correlation_id)
        scale = await self._active_scale(institution_id, correlation_id)

        accepted = 0
        rejections: list[RecordRejection] = []
        for index, entry in enumerate(entries):
            try:
                if entry.component_marks is not None:
                    await self._record_components(
                        cohort,
                        entry.student_id,
                        entry.subject_id,
                        entry.component_marks,
                        curriculum,
                        scale,
                        correlation_id,
                    )
                else:
                    assert entry.marks_obtained is not None and entry.total_marks is not None
                    await self._record_assessment(
                        cohort,
                        entry.student_id,
                        entry.subject_id,
                        entry.marks_obtained,
                        entry.total_marks,
                        curriculum,
                        scale,
                        correlation_id,
                    )
                accepted += 1
            except MarkbookError as e:
                if self.metrics:
                    self.metrics.marks_rejected_total.labels(error_code=e.error_code).inc()
                logger.info(
                    "Bulk entry rejected",
                    entry_index=index,
                    student_id=entry.student_id,
                    subject_id=entry.subject_id,
                    error_code=e.error_code,
                )
                rejections.append(
                    RecordRejection(
                        entry_index=index,
                        student_id=entry.student_id,
                        subject_id=entry.subject_id,
                        error=e.error_detail,
                    )
                )

        self._count_recorded("bulk", accepted)
        logger.info(
            "Bulk marks recorded",
            accepted_count=accepted,
            rejected_count=len(rejections),
        )

        recompute = None
        if accepted:
            recompute = await self.recompute_cohort(
                institution_id, class_id, term_id, correlation_id
            )

        return BulkRecordOutcome(
            accepted_count=accepted, rejections=rejections, recompute=recompute
        )

    async def record_attendance_and_conduct(
        self,
        institution_id: str,
        class_id: str,
        term_id: str,
        student_id: str,
        attendance: Optional[AttendanceRecord],
        conduct: Optional[ConductRecord],
        correlation_id: UUID,
    ) -> Result:
        """Store report card pass-through fields on an existing term result."""
        bind_cohort_context(institution_id, class_id, term_id, correlation_id)
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)

        updated = await self.repository.update_result_details(
            cohort, student_id, attendance, conduct
        )
        if updated is None:
            raise_resource_not_found(
                service=SERVICE_NAME,
                operation="record_attendance_and_conduct",
                resource_type="Result",
                resource_id=student_id,
                correlation_id=correlation_id,
            )
        return updated

    # ---- Cohort recompute ----

    async def recompute_cohort(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> CohortRecomputeOutcome:
        """
        Recompute and rank every term result of a cohort.

        Raises:
            RecomputeConflictError: If the cohort kept changing for
                RECOMPUTE_MAX_RETRIES retries
            ResultLockedError: If any term result of the cohort is published
        """
        bind_cohort_context(institution_id, class_id, term_id, correlation_id)
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)
        start_time = time.perf_counter()
        outcome_label = "error"
        attempt = 0

        try:
            while True:
                attempt += 1
                try:
                    outcome = await self._recompute_once(cohort, attempt, correlation_id)
                except RecomputeConflictError as e:
                    if self.metrics:
                        self.metrics.recompute_conflicts_total.inc()
                    if attempt > self.settings.RECOMPUTE_MAX_RETRIES:
                        outcome_label = "conflict_exhausted"
                        logger.error(
                            "Cohort recompute gave up after repeated conflicts",
                            attempts=attempt,
                            error=str(e),
                        )
                        raise
                    logger.warning(
                        "Cohort changed during recompute, retrying",
                        attempt=attempt,
                        expected_version=e.details.get("expected_version"),
                        actual_version=e.details.get("actual_version"),
                    )
                    continue

                outcome_label = "success"
                if self.metrics:
                    self.metrics.results_excluded_total.inc(outcome.excluded_count)
                return outcome
        finally:
            if self.metrics:
                self.metrics.recomputes_total.labels(outcome=outcome_label).inc()
                self.metrics.recompute_duration.observe(time.perf_counter() - start_time)

    async def _recompute_once(
        self, cohort: CohortKey, attempt: int, correlation_id: UUID
    ) -> CohortRecomputeOutcome:
        # Policy and subject configuration are read once per pass
        curriculum = await self._load_curriculum(cohort, correlation_id)
        snapshot = await self.repository.snapshot_cohort(cohort)
        # Ranks of a published cohort stay frozen until it is unpublished
        self._check_cohort_open(snapshot.results, "recompute_cohort", correlation_id)

        subject_results_by_student: dict[str, list[SubjectResult]] = defaultdict(list)
        for subject_result in snapshot.subject_results:
            subject_results_by_student[subject_result.student_id].append(subject_result)
        existing_by_student = {result.student_id: result for result in snapshot.results}

        student_ids = sorted(set(subject_results_by_student) | set(existing_by_student))
        results = [
            self.result_aggregator.aggregate_result(
                institution_id=cohort.institution_id,
                student_id=student_id,
                class_id=cohort.class_id,
                term_id=cohort.term_id,
                subject_results=subject_results_by_student.get(student_id, []),
                curriculum=curriculum,
                existing=existing_by_student.get(student_id),
            )
            for student_id in student_ids
        ]

        ranking = self.ranker.rank_cohort(results, correlation_id)
        ranked_subjects = self.ranker.rank_subject_results(snapshot.subject_results, correlation_id)

        state = await self.repository.replace_cohort_results(
            cohort,
            expected_version=snapshot.state.version,
            results=ranking.results,
            subject_results=ranked_subjects,
            ranked_count=ranking.ranked_count,
            excluded_count=ranking.excluded_count,
            ranked_at=datetime.now(UTC),
        )
        if state is None:
            current = await self.repository.get_cohort_state(cohort)
            raise_recompute_conflict(
                service=SERVICE_NAME,
                operation="recompute_cohort",
                expected_version=snapshot.state.version,
                actual_version=current.version,
                correlation_id=correlation_id,
            )

        logger.info(
            "Cohort recomputed",
            version=state.version,
            ranked_count=ranking.ranked_count,
            excluded_count=ranking.excluded_count,
            attempt=attempt,
        )
        return CohortRecomputeOutcome(
            institution_id=cohort.institution_id,
            class_id=cohort.class_id,
            term_id=cohort.term_id,
            version=state.version,
            ranked_count=ranking.ranked_count,
            excluded_count=ranking.excluded_count,
            results_written=len(ranking.results),
            attempts=attempt,
        )

    # ---- Queries ----

    async def get_student_result(
        self,
        institution_id: str,
        class_id: str,
        term_id: str,
        student_id: str,
        correlation_id: UUID,
    ) -> StudentResultView:
        """Return a term result with subject grades resolved through its effective scale."""
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)
        result = await self.repository.get_result(cohort, student_id)
        if result is None:
            raise_resource_not_found(
                service=SERVICE_NAME,
                operation="get_student_result",
                resource_type="Result",
                resource_id=student_id,
                correlation_id=correlation_id,
                class_id=class_id,
                term_id=term_id,
            )

        scale = await self._effective_scale(result, {}, correlation_id)
        subject_results = await self.repository.list_student_subject_results(cohort, student_id)
        return self._student_view(result, subject_results, scale, correlation_id)

    async def list_cohort_results(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> list[StudentResultView]:
        """
        Every term result of a cohort with its subject grades, in class order.

        Ranked results come first by position, ties by student ID; results
        excluded from ranking follow. Each result is graded through its own
        effective scale.
        """
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)
        snapshot = await self.repository.snapshot_cohort(cohort)

        subject_results_by_student: dict[str, list[SubjectResult]] = defaultdict(list)
        for subject_result in snapshot.subject_results:
            subject_results_by_student[subject_result.student_id].append(subject_result)

        scale_cache: dict[str, GradeScale] = {}
        views = []
        for result in sorted(
            snapshot.results,
            key=lambda r: (r.position is None, r.position or 0, r.student_id),
        ):
            scale = await self._effective_scale(
                result, scale_cache, correlation_id, institution_id=institution_id
            )
            views.append(
                self._student_view(
                    result, subject_results_by_student[result.student_id], scale, correlation_id
                )
            )
        return views

    async def get_cohort_summary(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> CohortSummary:
        """Class average, extremes, grade distribution and per-subject performance."""
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)
        snapshot = await self.repository.snapshot_cohort(cohort)

        results_by_student = {result.student_id: result for result in snapshot.results}
        scale_cache: dict[str, GradeScale] = {}
        graded: list[SubjectResult] = []
        for subject_result in snapshot.subject_results:
            scale = await self._effective_scale(
                results_by_student.get(subject_result.student_id),
                scale_cache,
                correlation_id,
                institution_id=institution_id,
            )
            graded.append(self._grade_under(scale, subject_result, correlation_id))

        return self.statistics.summarize(cohort, snapshot.state, snapshot.results, graded)

    # ---- Helpers ----

    async def _load_curriculum(
        self, cohort: CohortKey, correlation_id: UUID
    ) -> CurriculumSnapshot:
        configs = await self.curriculum.get_subject_configs(
            cohort.institution_id, cohort.class_id, cohort.term_id, correlation_id
        )
        policy = await self.curriculum.get_weighting_policy(cohort.institution_id, correlation_id)
        return CurriculumSnapshot(subject_configs=configs, weighting_policy=policy)

    async def _active_scale(self, institution_id: str, correlation_id: UUID) -> GradeScale:
        active = await self.repository.get_active_grade_scale(institution_id)
        return self.resolver.select_scale_for_result(
            None, active, {}, institution_id, correlation_id
        )

    async def _effective_scale(
        self,
        result: Optional[Result],
        scale_cache: dict[str, GradeScale],
        correlation_id: UUID,
        institution_id: Optional[str] = None,
    ) -> GradeScale:
        """Pinned scale for published results, the active scale otherwise."""
        institution_id = institution_id or (result.institution_id if result else "")
        pinned_id = result.grade_scale_id if result else None
        if pinned_id and pinned_id not in scale_cache:
            pinned = await self.repository.get_grade_scale(pinned_id)
            if pinned is not None:
                scale_cache[pinned_id] = pinned

        active_key = f"active:{institution_id}"
        if active_key not in scale_cache:
            active = await self.repository.get_active_grade_scale(institution_id)
            if active is not None:
                scale_cache[active_key] = active

        return self.resolver.select_scale_for_result(
            result, scale_cache.get(active_key), scale_cache, institution_id, correlation_id
        )

    def _grade_under(
        self, scale: GradeScale, subject_result: SubjectResult, correlation_id: UUID
    ) -> SubjectResult:
        grade_range = self.resolver.resolve(scale, subject_result.total_score, correlation_id)
        return subject_result.model_copy(
            update={
                "grade": grade_range.grade,
                "points": grade_range.points,
                "remark": grade_range.remark,
                "grade_scale_id": scale.scale_id,
            }
        )

    def _student_view(
        self,
        result: Result,
        subject_results: list[SubjectResult],
        scale: GradeScale,
        correlation_id: UUID,
    ) -> StudentResultView:
        graded = [self._grade_under(scale, sr, correlation_id) for sr in subject_results]
        return StudentResultView(
            result=result,
            grade_scale_id=scale.scale_id,
            grade_scale_name=scale.name,
            subjects=[
                SubjectGradeView(
                    subject_id=sr.subject_id,
                    total_score=sr.total_score,
                    grade=sr.grade,
                    points=sr.points,
                    remark=sr.remark,
                    completeness=sr.completeness,
                    position=sr.position,
                )
                for sr in sorted(graded, key=lambda sr: sr.subject_id)
            ],
        )

    async def _ensure_cohort_open(
        self, cohort: CohortKey, operation: str, correlation_id: UUID
    ) -> None:
        snapshot = await self.repository.snapshot_cohort(cohort)
        self._check_cohort_open(snapshot.results, operation, correlation_id)

    def _check_cohort_open(
        self, results: list[Result], operation: str, correlation_id: UUID
    ) -> None:
        """A cohort with any published result accepts no new marks and no re-ranking."""
        published = [result for result in results if result.status == ResultStatus.PUBLISHED]
        if published:
            logger.warning(
                "Cohort is published, write rejected",
                operation=operation,
                published_count=len(published),
            )
            raise_cohort_published(
                service=SERVICE_NAME,
                operation=operation,
                published_count=len(published),
                correlation_id=correlation_id,
                class_id=published[0].class_id,
                term_id=published[0].term_id,
            )

    async def _ensure_unlocked(
        self, cohort: CohortKey, student_id: str, correlation_id: UUID
    ) -> Optional[Result]:
        existing = await self.repository.get_result(cohort, student_id)
        if existing is not None and existing.status == ResultStatus.PUBLISHED:
            raise_result_locked(
                service=SERVICE_NAME,
                operation="record_marks",
                result_id=existing.result_id,
                correlation_id=correlation_id,
                student_id=student_id,
            )
        return existing

    def _subject_config(
        self, curriculum: CurriculumSnapshot, subject_id: str, correlation_id: UUID
    ) -> SubjectAssessmentConfig:
        config = curriculum.config_for(subject_id)
        if config is None:
            raise_validation_error(
                service=SERVICE_NAME,
                operation="record_marks",
                field="subject_id",
                message=f"Subject '{subject_id}' is not configured for this class and term",
                correlation_id=correlation_id,
                value=subject_id,
            )
        return config

    async def _record_components(
        self,
        cohort: CohortKey,
        student_id: str,
        subject_id: str,
        component_marks: dict[str, Decimal],
        curriculum: CurriculumSnapshot,
        scale: GradeScale,
        correlation_id: UUID,
    ) -> SubjectResult:
        config = self._subject_config(curriculum, subject_id, correlation_id)
        # Reject bad input before merging so the error names the submitted mark
        self.subject_aggregator.validate_component_marks(config, component_marks, correlation_id)
        existing_result = await self._ensure_unlocked(cohort, student_id, correlation_id)

        existing = await self.repository.get_subject_result(cohort, student_id, subject_id)
        merged = dict(existing.component_marks) if existing else {}
        merged.update(component_marks)
        subject_result = self.subject_aggregator.aggregate_subject_result(
            institution_id=cohort.institution_id,
            student_id=student_id,
            class_id=cohort.class_id,
            term_id=cohort.term_id,
            config=config,
            component_marks=merged,
            scale=scale,
            existing=existing,
            correlation_id=correlation_id,
        )
        return await self._save_subject_result(subject_result, existing_result, correlation_id)

    async def _record_assessment(
        self,
        cohort: CohortKey,
        student_id: str,
        subject_id: str,
        marks_obtained: Decimal,
        total_marks: Decimal,
        curriculum: CurriculumSnapshot,
        scale: GradeScale,
        correlation_id: UUID,
    ) -> SubjectResult:
        self._subject_config(curriculum, subject_id, correlation_id)
        existing_result = await self._ensure_unlocked(cohort, student_id, correlation_id)

        existing = await self.repository.get_subject_result(cohort, student_id, subject_id)
        subject_result = self.subject_aggregator.aggregate_assessment_score(
            institution_id=cohort.institution_id,
            student_id=student_id,
            class_id=cohort.class_id,
            term_id=cohort.term_id,
            subject_id=subject_id,
            marks_obtained=marks_obtained,
            total_marks=total_marks,
            scale=scale,
            existing=existing,
            correlation_id=correlation_id,
        )
        return await self._save_subject_result(subject_result, existing_result, correlation_id)

    async def _save_subject_result(
        self,
        subject_result: SubjectResult,
        existing_result: Optional[Result],
        correlation_id: UUID,
    ) -> SubjectResult:
        saved = await self.repository.upsert_subject_result(subject_result)
        if saved is None:
            # Published between the lock check and the write
            raise_result_locked(
                service=SERVICE_NAME,
                operation="record_marks",
                result_id=existing_result.result_id if existing_result else "",
                correlation_id=correlation_id,
                student_id=subject_result.student_id,
            )
        return saved

    async def _refresh_student_result(
        self, cohort: CohortKey, student_id: str, curriculum: CurriculumSnapshot
    ) -> Result:
        subject_results = await self.repository.list_student_subject_results(cohort, student_id)
        existing = await self.repository.get_result(cohort, student_id)
        result = self.result_aggregator.aggregate_result(
            institution_id=cohort.institution_id,
            student_id=student_id,
            class_id=cohort.class_id,
            term_id=cohort.term_id,
            subject_results=subject_results,
            curriculum=curriculum,
            existing=existing,
        )
        return await self.repository.upsert_result(result)

    def _count_recorded(self, path: str, amount: int = 1) -> None:
        if self.metrics and amount:
            self.metrics.marks_recorded_total.labels(path=path).inc(amount)
