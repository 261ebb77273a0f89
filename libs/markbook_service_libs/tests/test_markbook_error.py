"""
Unit tests for MarkbookError core exception class.

Tests error creation, property access, serialization and detail extension.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from uuid import UUID

import pytest
from markbook_core.error_enums import ErrorCode, GradingErrorCode
from markbook_core.models.error_models import ErrorDetail
from markbook_service_libs.error_handling import MarkbookError, ResultLockedError


@pytest.fixture
def test_correlation_id() -> UUID:
    """Provide consistent correlation ID for testing."""
    return uuid.uuid4()


@pytest.fixture
def basic_error_detail(test_correlation_id: UUID) -> ErrorDetail:
    return ErrorDetail(
        error_code=ErrorCode.VALIDATION_ERROR,
        message="Validation failed",
        correlation_id=test_correlation_id,
        timestamp=datetime.now(timezone.utc),
        service="result_engine_service",
        operation="record_marks",
        details={"field": "subject_id"},
    )


class TestMarkbookErrorConstruction:
    def test_properties_delegate_to_error_detail(
        self, basic_error_detail: ErrorDetail, test_correlation_id: UUID
    ) -> None:
        error = MarkbookError(basic_error_detail)

        assert isinstance(error, Exception)
        assert error.error_code == "VALIDATION_ERROR"
        assert error.service == "result_engine_service"
        assert error.operation == "record_marks"
        assert error.correlation_id == str(test_correlation_id)
        assert error.details == {"field": "subject_id"}

    def test_str_includes_code_and_message(self, basic_error_detail: ErrorDetail) -> None:
        error = MarkbookError(basic_error_detail)

        assert str(error) == "[VALIDATION_ERROR] Validation failed"

    def test_repr_names_subclass(self, basic_error_detail: ErrorDetail) -> None:
        error = ResultLockedError(
            basic_error_detail.model_copy(update={"error_code": GradingErrorCode.RESULT_LOCKED})
        )

        assert repr(error).startswith("ResultLockedError(error_code='RESULT_LOCKED'")

    def test_details_returns_a_copy(self, basic_error_detail: ErrorDetail) -> None:
        error = MarkbookError(basic_error_detail)

        error.details["field"] = "changed"

        assert error.details == {"field": "subject_id"}


class TestMarkbookErrorUtilities:
    def test_to_dict_is_json_ready(
        self, basic_error_detail: ErrorDetail, test_correlation_id: UUID
    ) -> None:
        payload = MarkbookError(basic_error_detail).to_dict()

        assert payload["error_code"] == "VALIDATION_ERROR"
        assert payload["correlation_id"] == str(test_correlation_id)
        assert isinstance(payload["timestamp"], str)

    def test_add_detail_keeps_type_and_original(self, basic_error_detail: ErrorDetail) -> None:
        original = ResultLockedError(basic_error_detail)

        extended = original.add_detail("student_id", "s-1")

        assert isinstance(extended, ResultLockedError)
        assert extended.details == {"field": "subject_id", "student_id": "s-1"}
        assert "student_id" not in original.details
