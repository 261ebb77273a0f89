"""Startup and shutdown logic for Result Engine Service."""

from __future__ import annotations

from dishka import AsyncContainer, make_async_container
from markbook_service_libs.logging_utils import configure_service_logging, create_service_logger
from sqlalchemy.ext.asyncio import AsyncEngine

from services.result_engine_service.config import Settings
from services.result_engine_service.di import (
    CoreInfrastructureProvider,
    DatabaseProvider,
    ServiceProvider,
)
from services.result_engine_service.models_db import Base


def create_container() -> AsyncContainer:
    """Create the Dishka AsyncContainer with all service providers."""
    return make_async_container(
        CoreInfrastructureProvider(),
        DatabaseProvider(),
        ServiceProvider(),
    )


def configure_logging(settings: Settings) -> None:
    configure_service_logging(
        settings.SERVICE_NAME,
        environment=settings.ENVIRONMENT.value,
        log_level=settings.LOG_LEVEL,
    )


async def initialize_database_schema(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet."""
    logger = create_service_logger("result_engine.startup")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database schema initialized successfully")

    except Exception as e:
        logger.critical("Failed to initialize database schema: %s", e, exc_info=True)
        raise


async def startup(container: AsyncContainer) -> None:
    """Configure logging and make sure the schema exists."""
    settings = await container.get(Settings)
    configure_logging(settings)
    engine = await container.get(AsyncEngine)
    await initialize_database_schema(engine)
