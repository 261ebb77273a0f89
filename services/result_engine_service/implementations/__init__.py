"""Implementations for Result Engine Service."""
