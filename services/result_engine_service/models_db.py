"""Database models for Result Engine Service."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

from markbook_core.status_enums import CompletenessStatus, ResultStatus
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.dialects.postgresql import UUID as PostgresUUID
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _enum_values(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""

    pass


class GradeScaleRow(Base):
    """An institution's grade scale."""

    __tablename__ = "grade_scales"

    scale_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    institution_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    ranges: Mapped[list["GradeRangeRow"]] = relationship(
        "GradeRangeRow",
        back_populates="scale",
        cascade="all, delete-orphan",
        order_by="GradeRangeRow.min_score",
        lazy="selectin",
    )

    __table_args__ = (Index("idx_grade_scale_institution_active", "institution_id", "is_active"),)


class GradeRangeRow(Base):
    """One band of a grade scale."""

    __tablename__ = "grade_ranges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scale_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("grade_scales.scale_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    min_score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    max_score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    grade: Mapped[str] = mapped_column(String(20), nullable=False)
    points: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    remark: Mapped[Optional[str]] = mapped_column(String(255))

    scale: Mapped[GradeScaleRow] = relationship("GradeScaleRow", back_populates="ranges")


class SubjectResultRow(Base):
    """A student's result in one subject for one term."""

    __tablename__ = "subject_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    institution_id: Mapped[str] = mapped_column(String(255), nullable=False)
    class_id: Mapped[str] = mapped_column(String(255), nullable=False)
    term_id: Mapped[str] = mapped_column(String(255), nullable=False)
    student_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Component name -> mark as a decimal string
    component_marks: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    total_score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    grade: Mapped[str] = mapped_column(String(20), nullable=False)
    points: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    remark: Mapped[Optional[str]] = mapped_column(String(255))
    completeness: Mapped[CompletenessStatus] = mapped_column(
        SQLAlchemyEnum(
            CompletenessStatus, name="completeness_status", values_callable=_enum_values
        ),
        nullable=False,
    )
    grade_scale_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    position: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "institution_id",
            "class_id",
            "term_id",
            "student_id",
            "subject_id",
            name="uq_subject_result",
        ),
        Index("idx_subject_result_cohort", "institution_id", "class_id", "term_id"),
    )


class TermResultRow(Base):
    """A student's term result."""

    __tablename__ = "term_results"

    result_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    institution_id: Mapped[str] = mapped_column(String(255), nullable=False)
    class_id: Mapped[str] = mapped_column(String(255), nullable=False)
    term_id: Mapped[str] = mapped_column(String(255), nullable=False)
    student_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Aggregator-owned
    total_score: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    average_score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    grade_point_average: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    subject_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required_subject_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completeness: Mapped[CompletenessStatus] = mapped_column(
        SQLAlchemyEnum(
            CompletenessStatus, name="completeness_status", values_callable=_enum_values
        ),
        nullable=False,
    )

    # Ranker-owned
    position: Mapped[Optional[int]] = mapped_column(Integer)
    total_students: Mapped[Optional[int]] = mapped_column(Integer)

    # Publication-owned
    grade_scale_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    status: Mapped[ResultStatus] = mapped_column(
        SQLAlchemyEnum(ResultStatus, name="result_status", values_callable=_enum_values),
        nullable=False,
        default=ResultStatus.DRAFT,
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Report card pass-through
    days_present: Mapped[Optional[int]] = mapped_column(Integer)
    days_absent: Mapped[Optional[int]] = mapped_column(Integer)
    times_late: Mapped[Optional[int]] = mapped_column(Integer)
    conduct_grade: Mapped[Optional[str]] = mapped_column(String(20))
    teacher_comment: Mapped[Optional[str]] = mapped_column(Text)
    principal_comment: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "institution_id", "class_id", "term_id", "student_id", name="uq_term_result"
        ),
        Index("idx_term_result_cohort", "institution_id", "class_id", "term_id"),
        Index("idx_term_result_status", "status"),
    )


class CohortStateRow(Base):
    """Version counter and last ranking bookkeeping for a cohort."""

    __tablename__ = "cohort_states"

    institution_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    class_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    term_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ranked_version: Mapped[Optional[int]] = mapped_column(Integer)
    ranked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    excluded_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ranked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class EventOutbox(Base):
    """
    Event outbox table for reliable event publishing using Transactional Outbox Pattern.

    Rows are written when results are published; a relay process delivers
    them and records published_at or the last error.
    """

    __tablename__ = "event_outbox"

    id: Mapped[UUID] = mapped_column(
        PostgresUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        nullable=False,
        comment="Unique identifier for the outbox entry",
    )

    aggregate_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="ID of the aggregate (result_id) that generated this event",
    )
    aggregate_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Type of aggregate (term_result) for categorization",
    )

    event_type: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Type/topic of the event",
    )
    event_data: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        comment="The complete event payload as JSON",
    )
    event_key: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Partitioning key (student_id)",
    )
    topic: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Topic the relay publishes to",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.current_timestamp(),
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("idx_outbox_unpublished", "published_at", "created_at"),)
