"""
Result Engine Service specific constants.

Shared grading constants (percentage bounds and quantum, scale templates)
live in markbook_core.grade_scales.
"""

from __future__ import annotations

SERVICE_NAME = "result_engine_service"

# Component name used when a subject is marked as a single (obtained, total) pair
ASSESSMENT_COMPONENT = "assessment"

# Outbox aggregate type for term result events
TERM_RESULT_AGGREGATE = "term_result"
RESULT_PUBLISHED_EVENT = "result.published"
