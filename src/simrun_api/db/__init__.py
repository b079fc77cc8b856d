"""DB package exports."""

from .base import NAMING_CONVENTION, Base, TimestampMixin, metadata
from .database import Database, DatabaseConfig, build_async_url, session_scope
from .types import UTCDateTime

__all__ = [
    "Base",
    "metadata",
    "NAMING_CONVENTION",
    "TimestampMixin",
    "UTCDateTime",
    "Database",
    "DatabaseConfig",
    "build_async_url",
    "session_scope",
]
