"""Grade scale management for Result Engine Service."""

from __future__ import annotations

from typing import Optional
from uuid import UUID, uuid4

from markbook_core.grade_scales import get_grade_scale_template
from markbook_service_libs.error_handling import (
    raise_grade_scale_in_use,
    raise_no_active_grade_scale,
    raise_resource_not_found,
    raise_validation_error,
)
from markbook_service_libs.logging_utils import create_service_logger

from services.result_engine_service.constants import SERVICE_NAME
from services.result_engine_service.domain_models import GradeRange, GradeScale
from services.result_engine_service.implementations.grade_scale_resolver import (
    GradeScaleResolver,
)
from services.result_engine_service.protocols import (
    GradeScaleServiceProtocol,
    ResultRepositoryProtocol,
)

logger = create_service_logger("result_engine.grade_scale_service")


class GradeScaleServiceImpl(GradeScaleServiceProtocol):
    """Creates, edits and activates grade scales, validating every definition."""

    def __init__(self, repository: ResultRepositoryProtocol, resolver: GradeScaleResolver) -> None:
        self.repository = repository
        self.resolver = resolver

    async def create_grade_scale(
        self,
        institution_id: str,
        name: str,
        ranges: list[GradeRange],
        activate: bool,
        correlation_id: UUID,
    ) -> GradeScale:
        ordered = self.resolver.validate_grade_scale(ranges, correlation_id)
        scale = GradeScale(
            scale_id=str(uuid4()),
            institution_id=institution_id,
            name=name,
            ranges=ordered,
            is_active=activate,
        )
        created = await self.repository.create_grade_scale(scale, activate)
        logger.info(
            "Grade scale created",
            institution_id=institution_id,
            scale_id=created.scale_id,
            range_count=len(ordered),
            activated=activate,
            correlation_id=str(correlation_id),
        )
        return created

    async def create_from_template(
        self,
        institution_id: str,
        template_id: str,
        activate: bool,
        correlation_id: UUID,
        name: Optional[str] = None,
    ) -> GradeScale:
        """Create a scale from one of the default templates (e.g. "waec_neco")."""
        try:
            template = get_grade_scale_template(template_id)
        except ValueError as e:
            raise_validation_error(
                service=SERVICE_NAME,
                operation="create_from_template",
                field="template_id",
                message=str(e),
                correlation_id=correlation_id,
                value=template_id,
            )

        ranges = [
            GradeRange(
                min_score=band.min_score,
                max_score=band.max_score,
                grade=band.grade,
                points=band.points,
                remark=band.remark,
            )
            for band in template.bands
        ]
        return await self.create_grade_scale(
            institution_id, name or template.display_name, ranges, activate, correlation_id
        )

    async def update_grade_scale(
        self,
        scale_id: str,
        correlation_id: UUID,
        name: Optional[str] = None,
        ranges: Optional[list[GradeRange]] = None,
    ) -> GradeScale:
        """
        Rename a scale and/or replace its ranges.

        Raises:
            GradeScaleInUseError: If a published result is pinned to the scale
        """
        await self._get_or_raise(scale_id, "update_grade_scale", correlation_id)

        if await self.repository.is_grade_scale_referenced(scale_id, published_only=True):
            raise_grade_scale_in_use(
                service=SERVICE_NAME,
                operation="update_grade_scale",
                scale_id=scale_id,
                message="Grade scale is pinned by published results and cannot be edited",
                correlation_id=correlation_id,
            )

        ordered = (
            self.resolver.validate_grade_scale(ranges, correlation_id)
            if ranges is not None
            else None
        )
        updated = await self.repository.update_grade_scale(scale_id, name, ordered)
        if updated is None:
            raise_resource_not_found(
                service=SERVICE_NAME,
                operation="update_grade_scale",
                resource_type="GradeScale",
                resource_id=scale_id,
                correlation_id=correlation_id,
            )
        logger.info("Grade scale updated", scale_id=scale_id, correlation_id=str(correlation_id))
        return updated

    async def activate_grade_scale(self, scale_id: str, correlation_id: UUID) -> GradeScale:
        """Re-validate and make the scale the institution's only active scale."""
        scale = await self._get_or_raise(scale_id, "activate_grade_scale", correlation_id)
        self.resolver.validate_grade_scale(scale.ranges, correlation_id)

        activated = await self.repository.activate_grade_scale(scale_id)
        if activated is None:
            raise_resource_not_found(
                service=SERVICE_NAME,
                operation="activate_grade_scale",
                resource_type="GradeScale",
                resource_id=scale_id,
                correlation_id=correlation_id,
            )
        logger.info(
            "Grade scale activated",
            institution_id=activated.institution_id,
            scale_id=scale_id,
            correlation_id=str(correlation_id),
        )
        return activated

    async def delete_grade_scale(self, scale_id: str, correlation_id: UUID) -> None:
        """
        Delete a scale no result references.

        Raises:
            GradeScaleInUseError: If any term or subject result references the scale
        """
        await self._get_or_raise(scale_id, "delete_grade_scale", correlation_id)

        if await self.repository.is_grade_scale_referenced(scale_id, published_only=False):
            raise_grade_scale_in_use(
                service=SERVICE_NAME,
                operation="delete_grade_scale",
                scale_id=scale_id,
                message="Cannot delete a grade scale that results reference",
                correlation_id=correlation_id,
            )

        await self.repository.delete_grade_scale(scale_id)
        logger.info("Grade scale deleted", scale_id=scale_id, correlation_id=str(correlation_id))

    async def get_active_grade_scale(
        self, institution_id: str, correlation_id: UUID
    ) -> GradeScale:
        scale = await self.repository.get_active_grade_scale(institution_id)
        if scale is None:
            raise_no_active_grade_scale(
                service=SERVICE_NAME,
                operation="get_active_grade_scale",
                institution_id=institution_id,
                correlation_id=correlation_id,
            )
        return scale

    async def list_grade_scales(self, institution_id: str) -> list[GradeScale]:
        return await self.repository.list_grade_scales(institution_id)

    async def _get_or_raise(
        self, scale_id: str, operation: str, correlation_id: UUID
    ) -> GradeScale:
        scale = await self.repository.get_grade_scale(scale_id)
        if scale is None:
            raise_resource_not_found(
                service=SERVICE_NAME,
                operation=operation,
                resource_type="GradeScale",
                resource_id=scale_id,
                correlation_id=correlation_id,
            )
        return scale
