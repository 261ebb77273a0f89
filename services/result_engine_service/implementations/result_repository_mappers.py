"""Database to domain model mappers for Result Engine Service."""

from __future__ import annotations

from decimal import Decimal

from services.result_engine_service.domain_models import (
    AttendanceRecord,
    CohortState,
    ConductRecord,
    GradeRange,
    GradeScale,
    Result,
    SubjectResult,
)
from services.result_engine_service.models_db import (
    CohortStateRow,
    GradeRangeRow,
    GradeScaleRow,
    SubjectResultRow,
    TermResultRow,
)


class ResultRepositoryMappers:
    """Maps between database rows and domain models."""

    # ---- Grade scales ----

    def map_scale_to_domain(self, row: GradeScaleRow) -> GradeScale:
        return GradeScale(
            scale_id=row.scale_id,
            institution_id=row.institution_id,
            name=row.name,
            ranges=[self.map_range_to_domain(range_row) for range_row in row.ranges],
            is_active=row.is_active,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def map_range_to_domain(self, row: GradeRangeRow) -> GradeRange:
        return GradeRange(
            min_score=row.min_score,
            max_score=row.max_score,
            grade=row.grade,
            points=row.points,
            remark=row.remark,
        )

    def map_range_to_row(self, grade_range: GradeRange) -> GradeRangeRow:
        return GradeRangeRow(
            min_score=grade_range.min_score,
            max_score=grade_range.max_score,
            grade=grade_range.grade,
            points=grade_range.points,
            remark=grade_range.remark,
        )

    # ---- Subject results ----

    def map_subject_result_to_domain(self, row: SubjectResultRow) -> SubjectResult:
        return SubjectResult(
            institution_id=row.institution_id,
            student_id=row.student_id,
            class_id=row.class_id,
            term_id=row.term_id,
            subject_id=row.subject_id,
            component_marks={
                name: Decimal(mark) for name, mark in (row.component_marks or {}).items()
            },
            total_score=row.total_score,
            grade=row.grade,
            points=row.points,
            remark=row.remark,
            completeness=row.completeness,
            grade_scale_id=row.grade_scale_id,
            position=row.position,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def apply_subject_result(self, row: SubjectResultRow, subject_result: SubjectResult) -> None:
        """Copy marks and grading fields onto a row. Position is left to the ranker."""
        row.component_marks = {
            name: str(mark) for name, mark in subject_result.component_marks.items()
        }
        row.total_score = subject_result.total_score
        row.grade = subject_result.grade
        row.points = subject_result.points
        row.remark = subject_result.remark
        row.completeness = subject_result.completeness
        row.grade_scale_id = subject_result.grade_scale_id

    def apply_subject_grade(self, row: SubjectResultRow, subject_result: SubjectResult) -> None:
        """Copy only the resolved grade and the scale it was resolved under."""
        row.grade = subject_result.grade
        row.points = subject_result.points
        row.remark = subject_result.remark
        row.grade_scale_id = subject_result.grade_scale_id

    # ---- Term results ----

    def map_result_to_domain(self, row: TermResultRow) -> Result:
        return Result(
            result_id=row.result_id,
            institution_id=row.institution_id,
            student_id=row.student_id,
            class_id=row.class_id,
            term_id=row.term_id,
            total_score=row.total_score,
            average_score=row.average_score,
            grade_point_average=row.grade_point_average,
            subject_count=row.subject_count,
            required_subject_count=row.required_subject_count,
            completeness=row.completeness,
            position=row.position,
            total_students=row.total_students,
            grade_scale_id=row.grade_scale_id,
            status=row.status,
            published_at=row.published_at,
            attendance=AttendanceRecord(
                days_present=row.days_present,
                days_absent=row.days_absent,
                times_late=row.times_late,
            ),
            conduct=ConductRecord(
                conduct_grade=row.conduct_grade,
                teacher_comment=row.teacher_comment,
                principal_comment=row.principal_comment,
            ),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def apply_result_scores(self, row: TermResultRow, result: Result) -> None:
        """Aggregator-owned fields."""
        row.total_score = result.total_score
        row.average_score = result.average_score
        row.grade_point_average = result.grade_point_average
        row.subject_count = result.subject_count
        row.required_subject_count = result.required_subject_count
        row.completeness = result.completeness

    def apply_result_ranking(self, row: TermResultRow, result: Result) -> None:
        """Ranker-owned fields."""
        row.position = result.position
        row.total_students = result.total_students

    def apply_result_publication(self, row: TermResultRow, result: Result) -> None:
        """Publication-owned fields."""
        row.status = result.status
        row.grade_scale_id = result.grade_scale_id
        row.published_at = result.published_at

    def apply_attendance(self, row: TermResultRow, attendance: AttendanceRecord) -> None:
        row.days_present = attendance.days_present
        row.days_absent = attendance.days_absent
        row.times_late = attendance.times_late

    def apply_conduct(self, row: TermResultRow, conduct: ConductRecord) -> None:
        row.conduct_grade = conduct.conduct_grade
        row.teacher_comment = conduct.teacher_comment
        row.principal_comment = conduct.principal_comment

    def new_result_row(self, result: Result) -> TermResultRow:
        row = TermResultRow(
            result_id=result.result_id,
            institution_id=result.institution_id,
            class_id=result.class_id,
            term_id=result.term_id,
            student_id=result.student_id,
            status=result.status,
        )
        self.apply_result_scores(row, result)
        return row

    # ---- Cohort state ----

    def map_state_to_domain(self, row: CohortStateRow) -> CohortState:
        return CohortState(
            institution_id=row.institution_id,
            class_id=row.class_id,
            term_id=row.term_id,
            version=row.version,
            ranked_version=row.ranked_version,
            ranked_count=row.ranked_count,
            excluded_count=row.excluded_count,
            ranked_at=row.ranked_at,
        )
