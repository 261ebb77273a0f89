"""Class management service client providing subject assessment configuration."""

from __future__ import annotations

import asyncio
from typing import Any, Optional
from uuid import UUID

import aiohttp
from markbook_core.config_enums import AverageWeightingPolicy
from markbook_service_libs.error_handling import (
    raise_external_service_error,
    raise_resource_not_found,
)
from markbook_service_libs.logging_utils import create_service_logger
from pydantic import TypeAdapter, ValidationError

from services.result_engine_service.config import Settings
from services.result_engine_service.constants import SERVICE_NAME
from services.result_engine_service.domain_models import SubjectAssessmentConfig
from services.result_engine_service.protocols import CurriculumProviderProtocol

logger = create_service_logger("result_engine.curriculum_client")

EXTERNAL_SERVICE = "class_management"

_subject_configs_adapter = TypeAdapter(list[SubjectAssessmentConfig])


class CurriculumClientImpl(CurriculumProviderProtocol):
    """HTTP client for the class management service internal API."""

    def __init__(self, settings: Settings, http_session: aiohttp.ClientSession) -> None:
        self.settings = settings
        self.http_session = http_session

    async def get_subject_configs(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> list[SubjectAssessmentConfig]:
        """
        Fetch component maxima, credit hours and required flags for a class and term.

        Raises:
            MarkbookError: RESOURCE_NOT_FOUND when the class has no curriculum
                for the term, EXTERNAL_SERVICE_ERROR on any transport or format failure
        """
        url = (
            f"{self.settings.CURRICULUM_SERVICE_URL}/internal/v1/institutions/{institution_id}"
            f"/classes/{class_id}/terms/{term_id}/subject-configs"
        )
        data = await self._get_json(url, "get_subject_configs", correlation_id)
        if data is None:
            raise_resource_not_found(
                service=SERVICE_NAME,
                operation="get_subject_configs",
                resource_type="Curriculum",
                resource_id=f"{class_id}/{term_id}",
                correlation_id=correlation_id,
                institution_id=institution_id,
            )

        try:
            configs = _subject_configs_adapter.validate_python(data.get("subjects"))
        except ValidationError as e:
            raise_external_service_error(
                service=SERVICE_NAME,
                operation="get_subject_configs",
                external_service=EXTERNAL_SERVICE,
                message="Invalid response format: 'subjects' is not a list of subject configs",
                correlation_id=correlation_id,
                url=url,
                validation_errors=e.error_count(),
            )

        logger.info(
            "Fetched subject configuration",
            class_id=class_id,
            term_id=term_id,
            subject_count=len(configs),
        )
        return configs

    async def get_weighting_policy(
        self, institution_id: str, correlation_id: UUID
    ) -> AverageWeightingPolicy:
        """Institution averaging policy; the configured default when none is set."""
        url = (
            f"{self.settings.CURRICULUM_SERVICE_URL}/internal/v1/institutions/{institution_id}"
            "/grading-policy"
        )
        data = await self._get_json(url, "get_weighting_policy", correlation_id)
        raw_policy = data.get("weighting_policy") if data else None
        if raw_policy is None:
            logger.debug(
                "No weighting policy configured, using default",
                institution_id=institution_id,
                default_policy=self.settings.DEFAULT_WEIGHTING_POLICY.value,
            )
            return self.settings.DEFAULT_WEIGHTING_POLICY

        try:
            return AverageWeightingPolicy(raw_policy)
        except ValueError:
            raise_external_service_error(
                service=SERVICE_NAME,
                operation="get_weighting_policy",
                external_service=EXTERNAL_SERVICE,
                message=f"Unknown weighting policy '{raw_policy}'",
                correlation_id=correlation_id,
                url=url,
            )

    async def _get_json(
        self, url: str, operation: str, correlation_id: UUID
    ) -> Optional[dict[str, Any]]:
        """GET a JSON object. Returns None on 404."""
        timeout = aiohttp.ClientTimeout(total=self.settings.CURRICULUM_TIMEOUT_SECONDS)
        headers = {"X-Correlation-ID": str(correlation_id), "Accept": "application/json"}

        try:
            async with self.http_session.get(url, timeout=timeout, headers=headers) as response:
                if response.status == 404:
                    logger.info("Curriculum resource not found", url=url, operation=operation)
                    return None
                response.raise_for_status()
                data = await response.json()

        except asyncio.TimeoutError:
            logger.error(
                "Timeout while querying class management service",
                url=url,
                timeout_seconds=self.settings.CURRICULUM_TIMEOUT_SECONDS,
            )
            raise_external_service_error(
                service=SERVICE_NAME,
                operation=operation,
                external_service=EXTERNAL_SERVICE,
                message=f"Timeout after {self.settings.CURRICULUM_TIMEOUT_SECONDS}s",
                correlation_id=correlation_id,
                url=url,
            )
        except aiohttp.ClientResponseError as e:
            logger.error("Class management service returned an error", url=url, status=e.status)
            raise_external_service_error(
                service=SERVICE_NAME,
                operation=operation,
                external_service=EXTERNAL_SERVICE,
                message=f"HTTP error: {e.status} - {e.message}",
                correlation_id=correlation_id,
                url=url,
                status_code=e.status,
            )
        except aiohttp.ClientError as e:
            logger.error(
                "HTTP client error while querying class management service",
                url=url,
                error=str(e),
                exc_info=True,
            )
            raise_external_service_error(
                service=SERVICE_NAME,
                operation=operation,
                external_service=EXTERNAL_SERVICE,
                message=f"Client error: {e}",
                correlation_id=correlation_id,
                url=url,
                error_type=type(e).__name__,
            )

        if not isinstance(data, dict):
            raise_external_service_error(
                service=SERVICE_NAME,
                operation=operation,
                external_service=EXTERNAL_SERVICE,
                message="Invalid response format: expected a JSON object",
                correlation_id=correlation_id,
                url=url,
                response_data=str(data)[:200],
            )
        return data
