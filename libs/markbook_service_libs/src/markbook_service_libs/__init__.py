"""
Markbook Service Libraries Package.

This package contains shared utilities used across Markbook services:
structured logging, the error handling framework and configuration helpers.
"""

from .logging_utils import configure_service_logging, create_service_logger

__all__ = [
    "configure_service_logging",
    "create_service_logger",
]

# Error handling should be imported from:
# - markbook_service_libs.error_handling
