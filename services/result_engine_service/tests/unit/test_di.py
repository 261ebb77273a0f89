"""Wiring tests for the service-level Dishka providers."""

from __future__ import annotations

from typing import AsyncIterator
from unittest.mock import AsyncMock

import aiohttp
import pytest
from dishka import Provider, Scope, make_async_container, provide
from prometheus_client import CollectorRegistry

from services.result_engine_service.config import Settings
from services.result_engine_service.di import ServiceProvider
from services.result_engine_service.implementations.curriculum_client_impl import (
    CurriculumClientImpl,
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
from services.result_engine_service.implementations.result_engine_service_impl import (
    ResultEngineServiceImpl,
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


class InfrastructureOverrides(Provider):
    """Stands in for the core and database providers."""

    scope = Scope.APP

    @provide
    def provide_settings(self) -> Settings:
        return Settings()

    @provide
    def provide_metrics(self) -> ResultEngineMetrics:
        return ResultEngineMetrics(registry=CollectorRegistry())

    @provide
    async def provide_http_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        async with aiohttp.ClientSession() as session:
            yield session

    @provide
    def provide_repository(self) -> ResultRepositoryProtocol:
        return MockResultRepository()

    @provide
    def provide_dispatcher(self) -> NotificationDispatcherProtocol:
        return AsyncMock(spec=NotificationDispatcherProtocol)


@pytest.mark.asyncio
async def test_service_provider_wires_implementations() -> None:
    container = make_async_container(InfrastructureOverrides(), ServiceProvider())
    try:
        engine_service = await container.get(ResultEngineServiceProtocol)
        publication = await container.get(PublicationWorkflowProtocol)
        scales = await container.get(GradeScaleServiceProtocol)
        curriculum = await container.get(CurriculumProviderProtocol)
        repository = await container.get(ResultRepositoryProtocol)

        assert isinstance(engine_service, ResultEngineServiceImpl)
        assert isinstance(publication, PublicationWorkflow)
        assert isinstance(scales, GradeScaleServiceImpl)
        assert isinstance(curriculum, CurriculumClientImpl)
        assert engine_service.repository is repository
        assert publication.repository is repository
        assert engine_service.resolver is publication.resolver
    finally:
        await container.close()
