"""Configuration for Result Engine Service."""

from __future__ import annotations

import os

from dotenv import find_dotenv, load_dotenv
from markbook_core.config_enums import AverageWeightingPolicy
from markbook_service_libs.config import MarkbookServiceSettings
from pydantic import Field
from pydantic_settings import SettingsConfigDict

# Load .env file from repository root, regardless of current working directory
load_dotenv(find_dotenv(".env"))


class Settings(MarkbookServiceSettings):
    """Service configuration."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service Identity
    SERVICE_NAME: str = Field(default="result_engine_service")
    SERVICE_VERSION: str = Field(default="1.0.0")

    @property
    def DATABASE_URL(self) -> str:
        """Return the PostgreSQL database URL for both runtime and migrations."""
        env_type = os.getenv("ENV_TYPE", "development").lower()
        if env_type == "docker":
            dev_host = os.getenv("RESULT_ENGINE_DB_HOST", "result_engine_db")
            dev_port = int(os.getenv("RESULT_ENGINE_DB_PORT", "5432"))
        else:
            dev_host = "localhost"
            dev_port = 5440

        return self.build_database_url(
            database_name="markbook_result_engine",
            service_env_var_prefix="RESULT_ENGINE",
            dev_port=dev_port,
            dev_host=dev_host,
        )

    DATABASE_POOL_SIZE: int = Field(default=10)
    DATABASE_MAX_OVERFLOW: int = Field(default=5)

    # Curriculum (class management) service
    CURRICULUM_SERVICE_URL: str = Field(
        default="http://localhost:5002", description="Class management service URL"
    )
    CURRICULUM_TIMEOUT_SECONDS: int = Field(default=10, description="Curriculum HTTP timeout")

    # Recompute behaviour
    RECOMPUTE_MAX_RETRIES: int = Field(
        default=3,
        ge=0,
        description="Extra attempts for a cohort recompute after a version conflict",
    )
    DEFAULT_WEIGHTING_POLICY: AverageWeightingPolicy = Field(
        default=AverageWeightingPolicy.SIMPLE_MEAN,
        description="Used when the curriculum service does not report a policy",
    )

    # Notifications
    RESULT_PUBLISHED_TOPIC: str = Field(default="markbook.result_engine.result.published.v1")

    # Monitoring Configuration
    LOG_LEVEL: str = Field(default="INFO")


settings = Settings()
