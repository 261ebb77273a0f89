"""
markbook_core.config_enums - Enums related to service configuration.
"""

from __future__ import annotations

from enum import Enum


class Environment(str, Enum):
    """Defines application environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class AverageWeightingPolicy(str, Enum):
    """How an institution averages subject percentages into a term average."""

    SIMPLE_MEAN = "simple_mean"
    CREDIT_WEIGHTED = "credit_weighted"
