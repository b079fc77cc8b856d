"""Common utilities and helpers used across the API service."""

__all__ = [
    "exceptions",
    "ids",
    "logging",
    "middleware",
    "schema",
    "time",
]
