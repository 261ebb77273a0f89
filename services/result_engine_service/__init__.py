"""Markbook Result Engine Service: grade resolution, aggregation, ranking and publication."""
