"""
Draft/published lifecycle of a cohort.

Publishing pins every term result to the institution's active grade scale and
re-resolves the cohort's subject grades under it, so later scale changes do
not alter published results. Unpublishing only flips the status; the pinned
scale, totals and positions stay as an audit trail.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Optional, Sequence
from uuid import UUID

from markbook_core.status_enums import ResultStatus
from markbook_service_libs.error_handling import (
    IncompleteCohortError,
    raise_external_service_error,
    raise_incomplete_cohort,
    raise_invalid_status_transition,
    raise_no_active_grade_scale,
    raise_validation_error,
)
from markbook_service_libs.logging_utils import bind_cohort_context, create_service_logger

from services.result_engine_service.constants import SERVICE_NAME
from services.result_engine_service.domain_models import (
    CohortKey,
    CohortSnapshot,
    GradeScale,
    PublicationOutcome,
    Result,
    SubjectResult,
)
from services.result_engine_service.implementations.grade_scale_resolver import (
    GradeScaleResolver,
)
from services.result_engine_service.metrics import ResultEngineMetrics
from services.result_engine_service.protocols import (
    NotificationDispatcherProtocol,
    PublicationWorkflowProtocol,
    ResultRepositoryProtocol,
)

logger = create_service_logger("result_engine.publication_workflow")


def cohort_status(results: Sequence[Result]) -> ResultStatus:
    """A cohort counts as PUBLISHED while any of its results is published."""
    if any(result.status == ResultStatus.PUBLISHED for result in results):
        return ResultStatus.PUBLISHED
    return ResultStatus.DRAFT


def ensure_transition(
    current: ResultStatus,
    target: ResultStatus,
    correlation_id: UUID,
    operation: str,
    **context: str,
) -> None:
    if not current.can_transition_to(target):
        raise_invalid_status_transition(
            service=SERVICE_NAME,
            operation=operation,
            current_status=current.value,
            target_status=target.value,
            correlation_id=correlation_id,
            **context,
        )


class PublicationWorkflow(PublicationWorkflowProtocol):
    """State machine DRAFT -> PUBLISHED -> DRAFT over a whole cohort."""

    def __init__(
        self,
        repository: ResultRepositoryProtocol,
        resolver: GradeScaleResolver,
        dispatcher: NotificationDispatcherProtocol,
        metrics: Optional[ResultEngineMetrics] = None,
    ) -> None:
        self.repository = repository
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.metrics = metrics

    def plan_publication(
        self,
        snapshot: CohortSnapshot,
        scale: GradeScale,
        published_at: datetime,
        correlation_id: UUID,
    ) -> tuple[list[Result], list[SubjectResult]]:
        """Pin results to scale and re-resolve every subject grade under it."""
        results = [
            result.model_copy(
                update={
                    "status": ResultStatus.PUBLISHED,
                    "grade_scale_id": scale.scale_id,
                    "published_at": published_at,
                }
            )
            for result in snapshot.results
        ]
        subject_results = []
        for subject_result in snapshot.subject_results:
            grade_range = self.resolver.resolve(scale, subject_result.total_score, correlation_id)
            subject_results.append(
                subject_result.model_copy(
                    update={
                        "grade": grade_range.grade,
                        "points": grade_range.points,
                        "remark": grade_range.remark,
                        "grade_scale_id": scale.scale_id,
                    }
                )
            )
        return results, subject_results

    async def publish(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> PublicationOutcome:
        """
        Publish a ranked, fully complete cohort.

        Raises:
            IncompleteCohortError: If the cohort is empty, unranked, ranked
                against an older version, or has excluded results
            InvalidStatusTransitionError: If the cohort is already published
            NoActiveGradeScaleError: If the institution has no active scale
        """
        bind_cohort_context(institution_id, class_id, term_id, correlation_id)
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)

        snapshot = await self.repository.snapshot_cohort(cohort)
        try:
            self._check_publishable(snapshot, correlation_id)
        except IncompleteCohortError as e:
            if self.metrics:
                self.metrics.publish_blocked_total.labels(reason=e.details["reason"]).inc()
            logger.warning("Publish blocked", reason=e.details["reason"], error=str(e))
            raise

        scale = await self.repository.get_active_grade_scale(institution_id)
        if scale is None:
            raise_no_active_grade_scale(
                service=SERVICE_NAME,
                operation="publish",
                institution_id=institution_id,
                correlation_id=correlation_id,
            )

        published_at = datetime.now(UTC)
        results, subject_results = self.plan_publication(
            snapshot, scale, published_at, correlation_id
        )

        written = await self.repository.publish_cohort(
            cohort, snapshot.state.version, results, subject_results
        )
        if not written:
            if self.metrics:
                self.metrics.publish_blocked_total.labels(reason="stale_ranking").inc()
            raise_incomplete_cohort(
                service=SERVICE_NAME,
                operation="publish",
                message="Cohort changed while publishing; recompute before publishing",
                correlation_id=correlation_id,
                reason="stale_ranking",
                expected_version=snapshot.state.version,
            )

        if self.metrics:
            self.metrics.results_published_total.inc(len(results))
        logger.info(
            "Cohort published",
            grade_scale_id=scale.scale_id,
            results_published=len(results),
        )

        await self._notify(results, "publish", correlation_id)

        return PublicationOutcome(
            institution_id=institution_id,
            class_id=class_id,
            term_id=term_id,
            status=ResultStatus.PUBLISHED,
            grade_scale_id=scale.scale_id,
            published_at=published_at,
            results_affected=len(results),
        )

    async def unpublish(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> PublicationOutcome:
        """Return a published cohort to DRAFT, keeping pinned scale and computed fields."""
        bind_cohort_context(institution_id, class_id, term_id, correlation_id)
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)

        snapshot = await self.repository.snapshot_cohort(cohort)
        ensure_transition(
            cohort_status(snapshot.results),
            ResultStatus.DRAFT,
            correlation_id,
            "unpublish",
            class_id=class_id,
            term_id=term_id,
        )

        unpublished = await self.repository.unpublish_cohort(cohort)

        if self.metrics:
            self.metrics.results_unpublished_total.inc(len(unpublished))
        logger.info("Cohort unpublished", results_unpublished=len(unpublished))

        pinned = {result.grade_scale_id for result in unpublished}
        return PublicationOutcome(
            institution_id=institution_id,
            class_id=class_id,
            term_id=term_id,
            status=ResultStatus.DRAFT,
            grade_scale_id=pinned.pop() if len(pinned) == 1 else None,
            published_at=max(
                (r.published_at for r in unpublished if r.published_at is not None),
                default=None,
            ),
            results_affected=len(unpublished),
        )

    async def resend_notifications(
        self, institution_id: str, class_id: str, term_id: str, correlation_id: UUID
    ) -> int:
        """
        Dispatch result published notifications again for a published cohort.

        Recovers from dispatch failures reported by publish. Published results
        are not rewritten. Returns the number of notifications dispatched.
        """
        bind_cohort_context(institution_id, class_id, term_id, correlation_id)
        cohort = CohortKey(institution_id=institution_id, class_id=class_id, term_id=term_id)

        snapshot = await self.repository.snapshot_cohort(cohort)
        published = [
            result for result in snapshot.results if result.status == ResultStatus.PUBLISHED
        ]
        if not published:
            raise_validation_error(
                service=SERVICE_NAME,
                operation="resend_notifications",
                field="status",
                message="Cohort has no published results to notify",
                correlation_id=correlation_id,
                class_id=class_id,
                term_id=term_id,
            )

        await self._notify(published, "resend_notifications", correlation_id)
        logger.info("Result published notifications resent", results_notified=len(published))
        return len(published)

    def _check_publishable(self, snapshot: CohortSnapshot, correlation_id: UUID) -> None:
        state = snapshot.state
        if not snapshot.results:
            raise_incomplete_cohort(
                service=SERVICE_NAME,
                operation="publish",
                message="Cohort has no results to publish",
                correlation_id=correlation_id,
                reason="empty_cohort",
            )

        ensure_transition(
            cohort_status(snapshot.results),
            ResultStatus.PUBLISHED,
            correlation_id,
            "publish",
            class_id=state.class_id,
            term_id=state.term_id,
        )

        if state.ranked_version is None:
            raise_incomplete_cohort(
                service=SERVICE_NAME,
                operation="publish",
                message="Cohort has not been ranked; recompute before publishing",
                correlation_id=correlation_id,
                reason="not_ranked",
            )
        if not state.ranking_is_current:
            raise_incomplete_cohort(
                service=SERVICE_NAME,
                operation="publish",
                message="Cohort changed since it was last ranked; recompute before publishing",
                correlation_id=correlation_id,
                reason="stale_ranking",
                version=state.version,
                ranked_version=state.ranked_version,
            )

        incomplete = [result.student_id for result in snapshot.results if not result.is_complete]
        if state.excluded_count or incomplete:
            raise_incomplete_cohort(
                service=SERVICE_NAME,
                operation="publish",
                message=f"{len(incomplete)} results are incomplete and were excluded from ranking",
                correlation_id=correlation_id,
                reason="incomplete_results",
                excluded_count=max(state.excluded_count, len(incomplete)),
                incomplete_student_ids=sorted(incomplete),
            )

    async def _notify(
        self, results: Sequence[Result], operation: str, correlation_id: UUID
    ) -> None:
        """
        Invoke the dispatcher once per published result, after commit.

        Dispatch runs in its own transaction, so a failure leaves the cohort
        published without notifications; resend_notifications retries them.
        """
        failed: list[str] = []
        for result in results:
            try:
                await self.dispatcher.dispatch_result_published(
                    result.student_id, result.result_id, correlation_id
                )
            except Exception as e:
                logger.error(
                    "Failed to dispatch result published notification",
                    student_id=result.student_id,
                    result_id=result.result_id,
                    error=str(e),
                    exc_info=True,
                )
                failed.append(result.result_id)

        if failed:
            raise_external_service_error(
                service=SERVICE_NAME,
                operation=operation,
                external_service="notification_dispatcher",
                message=(
                    f"{len(failed)} result notifications could not be dispatched; "
                    "resend them once the dispatcher recovers"
                ),
                correlation_id=correlation_id,
                failed_result_ids=failed,
            )
