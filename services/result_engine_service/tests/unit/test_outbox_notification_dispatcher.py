"""Unit tests for OutboxNotificationDispatcher error handling."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from markbook_core.error_enums import ErrorCode
from markbook_service_libs.error_handling import MarkbookError

from services.result_engine_service.config import Settings
from services.result_engine_service.implementations.outbox_notification_dispatcher import (
    OutboxNotificationDispatcher,
)
from services.result_engine_service.models_db import EventOutbox


class _FakeSessionContext:
    def __init__(self, session: Any) -> None:
        self.session = session

    async def __aenter__(self) -> Any:
        return self.session

    async def __aexit__(self, *args: Any) -> None:
        return None


def make_session(commit_error: Exception | None = None) -> MagicMock:
    session = MagicMock()
    session.commit = AsyncMock(side_effect=commit_error)
    session.rollback = AsyncMock()
    return session


@pytest.mark.asyncio
async def test_dispatch_adds_outbox_row(test_settings: Settings) -> None:
    session = make_session()
    dispatcher = OutboxNotificationDispatcher(lambda: _FakeSessionContext(session), test_settings)
    correlation_id = uuid4()

    await dispatcher.dispatch_result_published("ada", "result-1", correlation_id)

    outbox_row = session.add.call_args.args[0]
    assert isinstance(outbox_row, EventOutbox)
    assert outbox_row.aggregate_id == "result-1"
    assert outbox_row.aggregate_type == "term_result"
    assert outbox_row.event_type == "result.published"
    assert outbox_row.event_key == "ada"
    assert outbox_row.topic == test_settings.RESULT_PUBLISHED_TOPIC
    assert outbox_row.event_data["correlation_id"] == str(correlation_id)
    assert outbox_row.event_data["data"] == {"student_id": "ada", "result_id": "result-1"}
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_commit_failure_rolls_back_and_raises(test_settings: Settings) -> None:
    session = make_session(RuntimeError("database is locked"))
    dispatcher = OutboxNotificationDispatcher(lambda: _FakeSessionContext(session), test_settings)

    with pytest.raises(MarkbookError) as exc_info:
        await dispatcher.dispatch_result_published("ada", "result-1", uuid4())

    assert exc_info.value.error_code == ErrorCode.EXTERNAL_SERVICE_ERROR.value
    assert exc_info.value.details["external_service"] == "database"
    assert exc_info.value.details["aggregate_id"] == "result-1"
    session.rollback.assert_awaited_once()
