"""Scenario Run API: builds, dispatches and tracks simulation runs."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
