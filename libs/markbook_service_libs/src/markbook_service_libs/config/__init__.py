"""Configuration utilities for Markbook services."""

from .database_utils import build_database_url
from .service_settings import MarkbookServiceSettings

__all__ = ["MarkbookServiceSettings", "build_database_url"]
