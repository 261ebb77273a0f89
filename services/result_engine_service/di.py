"""Dependency injection configuration for Result Engine Service."""

from __future__ import annotations

from typing import AsyncIterator

import aiohttp
from dishka import Provider, Scope, provide
from markbook_service_libs.logging_utils import create_service_logger
from prometheus_client import REGISTRY, CollectorRegistry
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from services.result_engine_service.config import Settings
from services.result_engine_service.implementations.cohort_ranker import CohortRanker
from services.result_engine_service.implementations.cohort_statistics_calculator import (
    CohortStatisticsCalculator,
)
from services.result_engine_service.implementations.curriculum_client_impl import (
    CurriculumClientImpl,
)
from services.result_engine_service.implementations.grade_scale_resolver import (
    GradeScaleResolver,
)
from services.result_engine_service.implementations.grade_scale_service_impl import (
    GradeScaleServiceImpl,
)
from services.result_engine_service.implementations.outbox_notification_dispatcher import (
    OutboxNotificationDispatcher,
)
from services.result_engine_service.implementations.publication_workflow import (
    PublicationWorkflow,
)
from services.result_engine_service.implementations.result_aggregator import ResultAggregator
from services.result_engine_service.implementations.result_engine_service_impl import (
    ResultEngineServiceImpl,
)
from services.result_engine_service.implementations.result_repository_postgres_impl import (
    ResultRepositoryPostgresImpl,
)
from services.result_engine_service.implementations.subject_result_aggregator import (
    SubjectResultAggregator,
)
from services.result_engine_service.metrics import ResultEngineMetrics
from services.result_engine_service.protocols import (
    CurriculumProviderProtocol,
    GradeScaleServiceProtocol,
    NotificationDispatcherProtocol,
    PublicationWorkflowProtocol,
    ResultEngineServiceProtocol,
    ResultRepositoryProtocol,
)

logger = create_service_logger("result_engine.di")


class CoreInfrastructureProvider(Provider):
    """Provider for core infrastructure components."""

    scope = Scope.APP

    @provide
    def provide_settings(self) -> Settings:
        """Provide service settings."""
        return Settings()

    @provide
    def provide_collector_registry(self) -> CollectorRegistry:
        """Provide the default Prometheus collector registry."""
        return REGISTRY

    @provide
    def provide_metrics(self, registry: CollectorRegistry) -> ResultEngineMetrics:
        return ResultEngineMetrics(registry=registry)

    @provide
    async def provide_http_session(
        self, settings: Settings
    ) -> AsyncIterator[aiohttp.ClientSession]:
        """Provide HTTP client session."""
        timeout = aiohttp.ClientTimeout(total=settings.CURRICULUM_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            yield session


class DatabaseProvider(Provider):
    """Provider for database components."""

    scope = Scope.APP

    @provide
    async def provide_database_engine(self, settings: Settings) -> AsyncIterator[AsyncEngine]:
        engine = create_async_engine(
            settings.DATABASE_URL,
            echo=False,
            future=True,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        logger.info("Database engine created", pool_size=settings.DATABASE_POOL_SIZE)
        try:
            yield engine
        finally:
            await engine.dispose()

    @provide
    def provide_session_factory(self, engine: AsyncEngine) -> async_sessionmaker:
        return async_sessionmaker(engine, expire_on_commit=False)

    @provide
    def provide_result_repository(
        self, session_factory: async_sessionmaker
    ) -> ResultRepositoryProtocol:
        return ResultRepositoryPostgresImpl(session_factory)

    @provide
    def provide_notification_dispatcher(
        self, session_factory: async_sessionmaker, settings: Settings
    ) -> NotificationDispatcherProtocol:
        """Provide outbox-backed result notification dispatcher."""
        return OutboxNotificationDispatcher(session_factory, settings)


class ServiceProvider(Provider):
    """Provider for calculators, clients and service implementations."""

    scope = Scope.APP

    @provide
    def provide_grade_scale_resolver(self) -> GradeScaleResolver:
        return GradeScaleResolver()

    @provide
    def provide_subject_result_aggregator(
        self, resolver: GradeScaleResolver
    ) -> SubjectResultAggregator:
        return SubjectResultAggregator(resolver)

    @provide
    def provide_result_aggregator(self) -> ResultAggregator:
        return ResultAggregator()

    @provide
    def provide_cohort_ranker(self) -> CohortRanker:
        return CohortRanker()

    @provide
    def provide_statistics_calculator(self) -> CohortStatisticsCalculator:
        return CohortStatisticsCalculator()

    @provide
    def provide_curriculum_client(
        self, settings: Settings, http_session: aiohttp.ClientSession
    ) -> CurriculumProviderProtocol:
        """Provide class management service client."""
        return CurriculumClientImpl(settings, http_session)

    @provide
    def provide_publication_workflow(
        self,
        repository: ResultRepositoryProtocol,
        resolver: GradeScaleResolver,
        dispatcher: NotificationDispatcherProtocol,
        metrics: ResultEngineMetrics,
    ) -> PublicationWorkflowProtocol:
        return PublicationWorkflow(repository, resolver, dispatcher, metrics)

    @provide
    def provide_grade_scale_service(
        self, repository: ResultRepositoryProtocol, resolver: GradeScaleResolver
    ) -> GradeScaleServiceProtocol:
        return GradeScaleServiceImpl(repository, resolver)

    @provide
    def provide_result_engine_service(
        self,
        repository: ResultRepositoryProtocol,
        curriculum: CurriculumProviderProtocol,
        resolver: GradeScaleResolver,
        subject_aggregator: SubjectResultAggregator,
        result_aggregator: ResultAggregator,
        ranker: CohortRanker,
        statistics: CohortStatisticsCalculator,
        settings: Settings,
        metrics: ResultEngineMetrics,
    ) -> ResultEngineServiceProtocol:
        """Provide the marks ingestion and recompute service."""
        return ResultEngineServiceImpl(
            repository=repository,
            curriculum=curriculum,
            resolver=resolver,
            subject_aggregator=subject_aggregator,
            result_aggregator=result_aggregator,
            ranker=ranker,
            statistics=statistics,
            settings=settings,
            metrics=metrics,
        )
