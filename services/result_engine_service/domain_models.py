"""
Domain models for Result Engine Service.

Pure domain entities independent of storage. All scores, percentages and
points are Decimal; percentages carry two decimal places.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import NAMESPACE_URL, uuid5

from markbook_core.config_enums import AverageWeightingPolicy
from markbook_core.grade_scales import PERCENTAGE_CEILING, PERCENTAGE_FLOOR, PERCENTAGE_QUANTUM
from markbook_core.models.error_models import ErrorDetail
from markbook_core.status_enums import CompletenessStatus, ResultStatus
from pydantic import BaseModel, ConfigDict, Field, model_validator

RESULT_ID_NAMESPACE = uuid5(NAMESPACE_URL, "markbook:result_engine:term_result")


def make_result_id(institution_id: str, class_id: str, term_id: str, student_id: str) -> str:
    """Deterministic term result ID so recomputation never mints a new identity."""
    return str(uuid5(RESULT_ID_NAMESPACE, f"{institution_id}/{class_id}/{term_id}/{student_id}"))


class CohortKey(BaseModel):
    """Identity of a cohort: every result sharing (institution, class, term)."""

    model_config = ConfigDict(frozen=True)

    institution_id: str
    class_id: str
    term_id: str


class GradeRange(BaseModel):
    """One percentage band of a grade scale, inclusive on both ends."""

    model_config = ConfigDict(frozen=True)

    min_score: Decimal
    max_score: Decimal
    grade: str = Field(min_length=1)
    points: Decimal
    remark: Optional[str] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> GradeRange:
        if not (PERCENTAGE_FLOOR <= self.min_score <= self.max_score <= PERCENTAGE_CEILING):
            raise ValueError(
                f"range '{self.grade}' must satisfy 0 <= min_score <= max_score <= 100, "
                f"got [{self.min_score}, {self.max_score}]"
            )
        for bound in (self.min_score, self.max_score):
            if bound != bound.quantize(PERCENTAGE_QUANTUM):
                raise ValueError(
                    f"range '{self.grade}' bound {bound} has more than two decimal places"
                )
        if self.points < 0:
            raise ValueError(f"range '{self.grade}' points must be non-negative")
        return self

    def contains(self, percentage: Decimal) -> bool:
        return self.min_score <= percentage <= self.max_score


class GradeScale(BaseModel):
    """A named grade table owned by one institution."""

    model_config = ConfigDict(frozen=True)

    scale_id: str
    institution_id: str
    name: str
    ranges: list[GradeRange]
    is_active: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AssessmentComponent(BaseModel):
    """A markable component of a subject (a CA test, the exam)."""

    model_config = ConfigDict(frozen=True)

    name: str
    max_score: Decimal = Field(gt=0)
    is_required: bool = True


class SubjectAssessmentConfig(BaseModel):
    """Read-only subject configuration supplied by the curriculum provider."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    subject_name: Optional[str] = None
    components: list[AssessmentComponent] = Field(default_factory=list)
    credit_hours: Decimal = Field(default=Decimal("1"), gt=0)
    is_required: bool = True

    def component(self, name: str) -> Optional[AssessmentComponent]:
        for component in self.components:
            if component.name == name:
                return component
        return None


class CurriculumSnapshot(BaseModel):
    """Subject configuration and weighting policy for one cohort, read once per pass."""

    model_config = ConfigDict(frozen=True)

    subject_configs: list[SubjectAssessmentConfig]
    weighting_policy: AverageWeightingPolicy

    def config_for(self, subject_id: str) -> Optional[SubjectAssessmentConfig]:
        for config in self.subject_configs:
            if config.subject_id == subject_id:
                return config
        return None


class SubjectResult(BaseModel):
    """A student's normalized result in one subject for one term."""

    model_config = ConfigDict(frozen=True)

    institution_id: str
    student_id: str
    class_id: str
    term_id: str
    subject_id: str
    component_marks: dict[str, Decimal] = Field(default_factory=dict)
    total_score: Decimal
    grade: str
    points: Decimal
    remark: Optional[str] = None
    completeness: CompletenessStatus
    grade_scale_id: str
    position: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.completeness == CompletenessStatus.COMPLETE


class AttendanceRecord(BaseModel):
    """Attendance figures printed on the report card; never computed here."""

    model_config = ConfigDict(frozen=True)

    days_present: Optional[int] = Field(default=None, ge=0)
    days_absent: Optional[int] = Field(default=None, ge=0)
    times_late: Optional[int] = Field(default=None, ge=0)


class ConductRecord(BaseModel):
    """Conduct grade and comments printed on the report card."""

    model_config = ConfigDict(frozen=True)

    conduct_grade: Optional[str] = None
    teacher_comment: Optional[str] = None
    principal_comment: Optional[str] = None


class Result(BaseModel):
    """
    A student's term result.

    Score and completeness fields are written by the result aggregator,
    position and total_students by the cohort ranker, and status,
    grade_scale_id and published_at by the publication workflow.
    """

    model_config = ConfigDict(frozen=True)

    result_id: str
    institution_id: str
    student_id: str
    class_id: str
    term_id: str
    total_score: Decimal = Decimal("0.00")
    average_score: Decimal = Decimal("0.00")
    grade_point_average: Decimal = Decimal("0.00")
    subject_count: int = 0
    required_subject_count: int = 0
    completeness: CompletenessStatus = CompletenessStatus.INCOMPLETE
    position: Optional[int] = None
    total_students: Optional[int] = None
    grade_scale_id: Optional[str] = None
    status: ResultStatus = ResultStatus.DRAFT
    published_at: Optional[datetime] = None
    attendance: AttendanceRecord = Field(default_factory=AttendanceRecord)
    conduct: ConductRecord = Field(default_factory=ConductRecord)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.completeness == CompletenessStatus.COMPLETE

    @property
    def cohort_key(self) -> CohortKey:
        return CohortKey(
            institution_id=self.institution_id, class_id=self.class_id, term_id=self.term_id
        )


class CohortState(BaseModel):
    """Concurrency bookkeeping for a cohort."""

    model_config = ConfigDict(frozen=True)

    institution_id: str
    class_id: str
    term_id: str
    version: int = 0
    ranked_version: Optional[int] = None
    ranked_count: int = 0
    excluded_count: int = 0
    ranked_at: Optional[datetime] = None

    @property
    def ranking_is_current(self) -> bool:
        return self.ranked_version is not None and self.ranked_version == self.version


class CohortSnapshot(BaseModel):
    """Consistent read of a cohort: its state plus every subject and term result."""

    model_config = ConfigDict(frozen=True)

    state: CohortState
    subject_results: list[SubjectResult] = Field(default_factory=list)
    results: list[Result] = Field(default_factory=list)


class CohortRanking(BaseModel):
    """Output of one ranking pass."""

    model_config = ConfigDict(frozen=True)

    results: list[Result]
    ranked_count: int
    excluded_count: int


class CohortRecomputeOutcome(BaseModel):
    """Summary of a committed cohort recompute."""

    institution_id: str
    class_id: str
    term_id: str
    version: int
    ranked_count: int
    excluded_count: int
    results_written: int
    attempts: int


class MarksRecordOutcome(BaseModel):
    """Stored subject result and the student's refreshed term result."""

    subject_result: SubjectResult
    result: Result


class BulkRecordEntry(BaseModel):
    """
    One row of a bulk marks upload.

    Either component_marks or the (marks_obtained, total_marks) pair is given.
    """

    student_id: str
    subject_id: str
    component_marks: Optional[dict[str, Decimal]] = None
    marks_obtained: Optional[Decimal] = None
    total_marks: Optional[Decimal] = None

    @model_validator(mode="after")
    def _check_shape(self) -> BulkRecordEntry:
        has_components = self.component_marks is not None
        has_pair = self.marks_obtained is not None or self.total_marks is not None
        if has_components == has_pair:
            raise ValueError(
                "exactly one of component_marks or marks_obtained/total_marks must be given"
            )
        if has_pair and (self.marks_obtained is None or self.total_marks is None):
            raise ValueError("marks_obtained and total_marks must be given together")
        return self


class RecordRejection(BaseModel):
    """A bulk entry that was refused, with the structured reason."""

    entry_index: int
    student_id: str
    subject_id: str
    error: ErrorDetail


class BulkRecordOutcome(BaseModel):
    accepted_count: int
    rejections: list[RecordRejection] = Field(default_factory=list)
    recompute: Optional[CohortRecomputeOutcome] = None


class PublicationOutcome(BaseModel):
    """Result of a publish or unpublish transition."""

    institution_id: str
    class_id: str
    term_id: str
    status: ResultStatus
    grade_scale_id: Optional[str]
    published_at: Optional[datetime]
    results_affected: int


class SubjectGradeView(BaseModel):
    subject_id: str
    total_score: Decimal
    grade: str
    points: Decimal
    remark: Optional[str] = None
    completeness: CompletenessStatus
    position: Optional[int] = None


class StudentResultView(BaseModel):
    """A term result with subject grades resolved through its effective scale."""

    result: Result
    grade_scale_id: str
    grade_scale_name: str
    subjects: list[SubjectGradeView]


class SubjectPerformance(BaseModel):
    subject_id: str
    student_count: int
    average_score: Decimal
    highest_score: Decimal
    lowest_score: Decimal
    grade_distribution: dict[str, int] = Field(default_factory=dict)


class CohortSummary(BaseModel):
    """Class-level statistics for a cohort report."""

    institution_id: str
    class_id: str
    term_id: str
    total_students: int
    ranked_count: int
    excluded_count: int
    class_average: Optional[Decimal] = None
    highest_average: Optional[Decimal] = None
    lowest_average: Optional[Decimal] = None
    grade_distribution: dict[str, int] = Field(default_factory=dict)
    subject_performance: list[SubjectPerformance] = Field(default_factory=list)
