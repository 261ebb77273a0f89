"""
markbook_core.error_enums - Centralized error code definitions.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    PROCESSING_ERROR = "PROCESSING_ERROR"  # Internal processing failures

    # Generic external service errors
    TIMEOUT = "TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"


class GradingErrorCode(str, Enum):
    """
    Business logic specific error codes for grade resolution and result ranking.

    Note: Common operations use the generic ErrorCode enum (VALIDATION_ERROR,
    RESOURCE_NOT_FOUND, EXTERNAL_SERVICE_ERROR, etc.)
    """

    # Input-level, surfaced per record
    INVALID_SCORE = "INVALID_SCORE"

    # Malformed scale, blocks scale creation/activation
    MISSING_RANGE = "MISSING_RANGE"
    OVERLAPPING_RANGE = "OVERLAPPING_RANGE"
    COVERAGE_GAP = "COVERAGE_GAP"
    NON_MONOTONIC_POINTS = "NON_MONOTONIC_POINTS"
    NO_ACTIVE_GRADE_SCALE = "NO_ACTIVE_GRADE_SCALE"
    GRADE_SCALE_IN_USE = "GRADE_SCALE_IN_USE"

    # Cohort-level, abort the whole operation
    INCOMPLETE_COHORT = "INCOMPLETE_COHORT"
    RECOMPUTE_CONFLICT = "RECOMPUTE_CONFLICT"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    RESULT_LOCKED = "RESULT_LOCKED"
