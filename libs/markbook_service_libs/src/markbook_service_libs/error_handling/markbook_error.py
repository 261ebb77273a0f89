"""
Core exception class for the Markbook error handling framework.

MarkbookError wraps an immutable ErrorDetail. Typed subclasses in
grading_errors let callers catch a specific failure (an invalid score, a
malformed scale, a blocked publish) while keeping one serializable payload.
"""

from __future__ import annotations

from typing import Any

from markbook_core.models.error_models import ErrorDetail


class MarkbookError(Exception):
    """Exception carrying a structured ErrorDetail."""

    def __init__(self, error_detail: ErrorDetail) -> None:
        self.error_detail = error_detail
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"[{self.error_detail.error_code.value}] {self.error_detail.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(error_code={self.error_code!r}, "
            f"service={self.service!r}, operation={self.operation!r})"
        )

    @property
    def correlation_id(self) -> str:
        return str(self.error_detail.correlation_id)

    @property
    def error_code(self) -> str:
        return self.error_detail.error_code.value

    @property
    def service(self) -> str:
        return self.error_detail.service

    @property
    def operation(self) -> str:
        return self.error_detail.operation

    @property
    def details(self) -> dict[str, Any]:
        return dict(self.error_detail.details)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for logs and API payloads."""
        return self.error_detail.model_dump(mode="json")

    def add_detail(self, key: str, value: Any) -> MarkbookError:
        """Return a new error of the same type with one extra detail entry."""
        details = {**self.error_detail.details, key: value}
        new_detail = self.error_detail.model_copy(update={"details": details})
        return self.__class__(new_detail)
