"""Service protocols for Result Engine Service."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol
from uuid import UUID

from markbook_core.config_enums import AverageWeightingPolicy

from services.result_engine_service.domain_models import (
    AttendanceRecord,
    BulkRecordEntry,
    BulkRecordOutcome,
    CohortKey,
    CohortRecomputeOutcome,
    CohortSnapshot,
    CohortState,
    CohortSummary,
    ConductRecord,
    GradeRange,
    GradeScale,
    MarksRecordOutcome,
    PublicationOutcome,
    Result,
    StudentResultView,
    SubjectAssessmentConfig,
    SubjectResult,
)


class ResultRepositoryProtocol(Protocol):
    """
    Persistence port for grade scales, subject results, term results and cohort state.

    Every write that can change ranking inputs (subject results, term result
    scores) bumps the cohort version. Cohort-wide writes are atomic and
    guarded by an expected version.
    """

    # ---- Grade scales ----

    async def create_grade_scale(self, scale: GradeScale, activate: bool) -> GradeScale:
        """Store a new scale; when activate is set, deactivate the institution's others."""
        ...

    async def update_grade_scale(
        self, scale_id: str, name: Optional[str], ranges: Optional[list[GradeRange]]
    ) -> Optional[GradeScale]:
        """Replace name and/or ranges. Returns None when the scale does not exist."""
        ...

    async def activate_grade_scale(self, scale_id: str) -> Optional[GradeScale]:
        """Make the scale the institution's only active scale."""
        ...

    async def delete_grade_scale(self, scale_id: str) -> bool:
        ...

    async def get_grade_scale(self, scale_id: str) -> Optional[GradeScale]:
        ...

    async def get_active_grade_scale(self, institution_id: str) -> Optional[GradeScale]:
        ...

    async def list_grade_scales(self, institution_id: str) -> list[GradeScale]:
        ...

    async def is_grade_scale_referenced(self, scale_id: str, published_only: bool) -> bool:
        """
        Whether results reference the scale.

        With published_only, only PUBLISHED term results pinned to the scale
        count; otherwise any term result or subject result referencing it does.
        """
        ...

    # ---- Subject and term results ----

    async def get_subject_result(
        self, cohort: CohortKey, student_id: str, subject_id: str
    ) -> Optional[SubjectResult]:
        ...

    async def list_student_subject_results(
        self, cohort: CohortKey, student_id: str
    ) -> list[SubjectResult]:
        ...

    async def upsert_subject_result(self, subject_result: SubjectResult) -> Optional[SubjectResult]:
        """
        Insert or replace a subject result and bump the cohort version.

        Returns None without writing when the student's term result is PUBLISHED.
        """
        ...

    async def get_result(self, cohort: CohortKey, student_id: str) -> Optional[Result]:
        ...

    async def upsert_result(self, result: Result) -> Result:
        """
        Write the aggregator-owned fields of a term result and bump the cohort version.

        A PUBLISHED term result is returned unchanged.
        """
        ...

    async def update_result_details(
        self,
        cohort: CohortKey,
        student_id: str,
        attendance: Optional[AttendanceRecord],
        conduct: Optional[ConductRecord],
    ) -> Optional[Result]:
        """Update report card pass-through fields. Does not bump the cohort version."""
        ...

    # ---- Cohort-wide operations ----

    async def get_cohort_state(self, cohort: CohortKey) -> CohortState:
        """Return the cohort state, version 0 when the cohort has never been written."""
        ...

    async def snapshot_cohort(self, cohort: CohortKey) -> CohortSnapshot:
        """Read cohort state, subject results and term results in one transaction."""
        ...

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
        """
        Atomically write recomputed scores, positions and subject positions.
        PUBLISHED term results and their subject results are left untouched.

        Returns None without writing when the cohort version differs from
        expected_version.
        """
        ...

    async def publish_cohort(
        self,
        cohort: CohortKey,
        expected_version: int,
        results: list[Result],
        subject_results: list[SubjectResult],
    ) -> bool:
        """
        Atomically write publication fields and re-resolved subject grades.

        Returns False without writing when the cohort version differs.
        """
        ...

    async def unpublish_cohort(self, cohort: CohortKey) -> list[Result]:
        """Flip every PUBLISHED term result in the cohort back to DRAFT."""
        ...


class CurriculumProviderProtocol(Protocol):
    """Read-only source of subject assessment configuration."""

    async def get_subject_configs(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> list[SubjectAssessmentConfig]:
        ...

    async def get_weighting_policy(
        self, institution_id: str, correlation_id: UUID
    ) -> AverageWeightingPolicy:
        ...


class NotificationDispatcherProtocol(Protocol):
    """Trigger point for result-published notifications."""

    async def dispatch_result_published(
        self, student_id: str, result_id: str, correlation_id: UUID
    ) -> None:
        ...


class PublicationWorkflowProtocol(Protocol):
    """Draft/published lifecycle of a cohort."""

    async def publish(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> PublicationOutcome:
        ...

    async def unpublish(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> PublicationOutcome:
        ...

    async def resend_notifications(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> int:
        ...


class ResultEngineServiceProtocol(Protocol):
    """Marks ingestion, cohort recompute and result queries."""

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
        ...

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
        ...

    async def bulk_record_marks(
        self,
        institution_id: str,
        class_id: str,
        term_id: str,
        entries: list[BulkRecordEntry],
        correlation_id: UUID,
    ) -> BulkRecordOutcome:
        ...

    async def recompute_cohort(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> CohortRecomputeOutcome:
        ...

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
        ...

    async def get_student_result(
        self,
        institution_id: str,
        class_id: str,
        term_id: str,
        student_id: str,
        correlation_id: UUID,
    ) -> StudentResultView:
        ...

    async def list_cohort_results(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> list[StudentResultView]:
        ...

    async def get_cohort_summary(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> CohortSummary:
        ...


class GradeScaleServiceProtocol(Protocol):
    """Grade scale lifecycle for an institution."""

    async def create_grade_scale(
        self,
        institution_id: str,
        name: str,
        ranges: list[GradeRange],
        activate: bool,
        correlation_id: UUID,
    ) -> GradeScale:
        ...

    async def create_from_template(
        self,
        institution_id: str,
        template_id: str,
        activate: bool,
        correlation_id: UUID,
        name: Optional[str] = None,
    ) -> GradeScale:
        ...

    async def update_grade_scale(
        self,
        scale_id: str,
        correlation_id: UUID,
        name: Optional[str] = None,
        ranges: Optional[list[GradeRange]] = None,
    ) -> GradeScale:
        ...

    async def activate_grade_scale(self, scale_id: str, correlation_id: UUID) -> GradeScale:
        ...

    async def delete_grade_scale(self, scale_id: str, correlation_id: UUID) -> None:
        ...

    async def get_active_grade_scale(
        self, institution_id: str, correlation_id: UUID
    ) -> GradeScale:
        ...

    async def list_grade_scales(self, institution_id: str) -> list[GradeScale]:
        ...
