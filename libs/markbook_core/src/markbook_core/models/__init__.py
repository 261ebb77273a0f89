"""Pure data models shared across Markbook services."""

from .error_models import ErrorDetail

__all__ = ["ErrorDetail"]
