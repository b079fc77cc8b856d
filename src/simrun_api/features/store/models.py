"""Tables backing the keyed-document store."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from simrun_api.common.time import utc_now
from simrun_api.db import Base, TimestampMixin, UTCDateTime

__all__ = ["StoredContainer", "StoredDocument"]


class StoredContainer(Base):
    """A named document collection, e.g. ``o-123_scenario_data``."""

    __tablename__ = "document_containers"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)


class StoredDocument(TimestampMixin, Base):
    """One JSON document keyed by ``(container, id)``."""

    __tablename__ = "documents"
    __table_args__ = (Index("documents_container_partition_idx", "container", "partition_key"),)

    container: Mapped[str] = mapped_column(String(255), primary_key=True)
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    partition_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    body: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
