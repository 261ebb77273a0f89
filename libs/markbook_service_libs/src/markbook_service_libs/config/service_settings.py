"""Base settings shared by Markbook services."""

from __future__ import annotations

from markbook_core.config_enums import Environment
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .database_utils import build_database_url


class MarkbookServiceSettings(BaseSettings):
    """Common service settings with database URL assembly."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ENVIRONMENT: Environment = Field(
        default=Environment.DEVELOPMENT,
        validation_alias="ENVIRONMENT",
        description="Runtime environment for the service",
    )

    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION

    def build_database_url(
        self,
        *,
        database_name: str,
        service_env_var_prefix: str,
        dev_port: int,
        dev_host: str = "localhost",
    ) -> str:
        return build_database_url(
            database_name=database_name,
            service_env_var_prefix=service_env_var_prefix,
            is_production=self.is_production(),
            dev_port=dev_port,
            dev_host=dev_host,
        )
