"""
Result-published notifications through the transactional outbox.

Each dispatch stores one event_outbox row; a relay process owns delivery
and retries.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from markbook_service_libs.error_handling import raise_external_service_error
from markbook_service_libs.logging_utils import create_service_logger

from services.result_engine_service.config import Settings
from services.result_engine_service.constants import (
    RESULT_PUBLISHED_EVENT,
    SERVICE_NAME,
    TERM_RESULT_AGGREGATE,
)
from services.result_engine_service.models_db import EventOutbox
from services.result_engine_service.protocols import NotificationDispatcherProtocol

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import async_sessionmaker

logger = create_service_logger("result_engine.notification_dispatcher")


class OutboxNotificationDispatcher(NotificationDispatcherProtocol):
    """Writes a result.published event to the outbox per published result."""

    def __init__(self, session_factory: async_sessionmaker, settings: Settings) -> None:
        self.session_factory = session_factory
        self.settings = settings

    async def dispatch_result_published(
        self, student_id: str, result_id: str, correlation_id: UUID
    ) -> None:
        event_data = {
            "event_type": RESULT_PUBLISHED_EVENT,
            "source_service": self.settings.SERVICE_NAME,
            "correlation_id": str(correlation_id),
            "event_timestamp": datetime.now(UTC).isoformat(),
            "data": {"student_id": student_id, "result_id": result_id},
        }

        async with self.session_factory() as session:
            try:
                outbox_event = EventOutbox(
                    aggregate_id=result_id,
                    aggregate_type=TERM_RESULT_AGGREGATE,
                    event_type=RESULT_PUBLISHED_EVENT,
                    event_data=event_data,
                    event_key=student_id,
                    topic=self.settings.RESULT_PUBLISHED_TOPIC,
                )
                session.add(outbox_event)
                await session.commit()
            except Exception as e:
                await session.rollback()
                raise_external_service_error(
                    service=SERVICE_NAME,
                    operation="dispatch_result_published",
                    external_service="database",
                    message=f"Failed to add event to outbox: {e.__class__.__name__}",
                    correlation_id=correlation_id,
                    aggregate_id=result_id,
                    error_details=str(e),
                )

        logger.info(
            "Result published event added to outbox",
            outbox_id=str(outbox_event.id),
            result_id=result_id,
            student_id=student_id,
            topic=self.settings.RESULT_PUBLISHED_TOPIC,
        )
