"""Shared fixtures for Result Engine Service tests."""

from __future__ import annotations

from decimal import Decimal
from typing import Awaitable, Callable
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest
from markbook_core.config_enums import AverageWeightingPolicy
from prometheus_client import CollectorRegistry

from services.result_engine_service.config import Settings
from services.result_engine_service.domain_models import SubjectAssessmentConfig
from services.result_engine_service.implementations.cohort_ranker import CohortRanker
from services.result_engine_service.implementations.cohort_statistics_calculator import (
    CohortStatisticsCalculator,
)
from services.result_engine_service.implementations.grade_scale_resolver import (
    GradeScaleResolver,
)
from services.result_engine_service.implementations.grade_scale_service_impl import (
    GradeScaleServiceImpl,
)
from services.result_engine_service.implementations.mock_result_repository import (
    MockResultRepository,
)
from services.result_engine_service.implementations.publication_workflow import (
    PublicationWorkflow,
)
from services.result_engine_service.implementations.result_aggregator import ResultAggregator
from services.result_engine_service.implementations.result_engine_service_impl import (
    ResultEngineServiceImpl,
)
from services.result_engine_service.implementations.subject_result_aggregator import (
    SubjectResultAggregator,
)
from services.result_engine_service.metrics import ResultEngineMetrics
from services.result_engine_service.protocols import (
    CurriculumProviderProtocol,
    NotificationDispatcherProtocol,
)
from services.result_engine_service.tests.helpers.builders import (
    CLASS_ID,
    INSTITUTION_ID,
    TERM_ID,
    ca_exam_config,
    scale_from_template,
)


@pytest.fixture
def correlation_id() -> UUID:
    return uuid4()


@pytest.fixture
def resolver() -> GradeScaleResolver:
    return GradeScaleResolver()


@pytest.fixture
def repository() -> MockResultRepository:
    return MockResultRepository()


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> ResultEngineMetrics:
    """Metrics on an isolated registry so tests never collide on metric names."""
    return ResultEngineMetrics(registry=registry)


@pytest.fixture
def test_settings() -> Settings:
    settings = Mock(spec=Settings)
    settings.SERVICE_NAME = "result_engine_service"
    settings.RECOMPUTE_MAX_RETRIES = 2
    settings.DEFAULT_WEIGHTING_POLICY = AverageWeightingPolicy.SIMPLE_MEAN
    settings.RESULT_PUBLISHED_TOPIC = "markbook.result_engine.result.published.v1"
    settings.CURRICULUM_SERVICE_URL = "http://curriculum.test"
    settings.CURRICULUM_TIMEOUT_SECONDS = 5
    return settings


@pytest.fixture
def subject_configs() -> list[SubjectAssessmentConfig]:
    return [ca_exam_config("mathematics"), ca_exam_config("english")]


@pytest.fixture
def mock_curriculum(subject_configs: list[SubjectAssessmentConfig]) -> AsyncMock:
    curriculum = AsyncMock(spec=CurriculumProviderProtocol)
    curriculum.get_subject_configs.return_value = subject_configs
    curriculum.get_weighting_policy.return_value = AverageWeightingPolicy.SIMPLE_MEAN
    return curriculum


@pytest.fixture
def mock_dispatcher() -> AsyncMock:
    return AsyncMock(spec=NotificationDispatcherProtocol)


@pytest.fixture
def result_engine(
    repository: MockResultRepository,
    mock_curriculum: AsyncMock,
    resolver: GradeScaleResolver,
    test_settings: Settings,
    metrics: ResultEngineMetrics,
) -> ResultEngineServiceImpl:
    return ResultEngineServiceImpl(
        repository=repository,
        curriculum=mock_curriculum,
        resolver=resolver,
        subject_aggregator=SubjectResultAggregator(resolver),
        result_aggregator=ResultAggregator(),
        ranker=CohortRanker(),
        statistics=CohortStatisticsCalculator(),
        settings=test_settings,
        metrics=metrics,
    )


@pytest.fixture
def publication(
    repository: MockResultRepository,
    resolver: GradeScaleResolver,
    mock_dispatcher: AsyncMock,
    metrics: ResultEngineMetrics,
) -> PublicationWorkflow:
    return PublicationWorkflow(repository, resolver, mock_dispatcher, metrics)


@pytest.fixture
def grade_scale_service(
    repository: MockResultRepository, resolver: GradeScaleResolver
) -> GradeScaleServiceImpl:
    return GradeScaleServiceImpl(repository, resolver)


MarksByStudent = dict[str, dict[str, dict[str, Decimal]]]


@pytest.fixture
def seed_cohort(
    repository: MockResultRepository,
    result_engine: ResultEngineServiceImpl,
    correlation_id: UUID,
) -> Callable[..., Awaitable[None]]:
    """Record marks per student and subject, then optionally recompute the cohort."""

    async def _seed(marks: MarksByStudent, recompute: bool = True) -> None:
        if await repository.get_active_grade_scale(INSTITUTION_ID) is None:
            await repository.create_grade_scale(scale_from_template("primary_100"), activate=True)
        for student_id, subjects in marks.items():
            for subject_id, component_marks in subjects.items():
                await result_engine.record_subject_marks(
                    INSTITUTION_ID,
                    CLASS_ID,
                    TERM_ID,
                    student_id,
                    subject_id,
                    component_marks,
                    correlation_id,
                )
        if recompute:
            await result_engine.recompute_cohort(INSTITUTION_ID, CLASS_ID, TERM_ID, correlation_id)

    return _seed
